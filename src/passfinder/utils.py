"""
Utility functions for passfinder.

Logging setup, datetime parsing, element-set downloads and display
formatting shared by the CLI and the library modules.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union
import logging
import os

import requests

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV_VAR = "PASSFINDER_LOG_LEVEL"
DOWNLOAD_TIMEOUT_SECONDS = 30


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path

    Environment Variables:
        PASSFINDER_LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_level = os.environ.get(LOG_LEVEL_ENV_VAR)
    if env_level:
        level = env_level
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger.debug(f"Logging configured at {level} level")


def parse_datetime(date_string: str) -> datetime:
    """
    Parse a datetime string in one of the accepted formats.

    Offsets are honoured; strings without one are taken as UTC.

    Args:
        date_string: Date string to parse

    Returns:
        Naive UTC datetime

    Raises:
        ValueError: If date string cannot be parsed
    """
    formats = [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S.%fZ",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%d",
    ]

    for fmt in formats:
        try:
            dt = datetime.strptime(date_string, fmt)
        except ValueError:
            continue
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).replace(tzinfo=None)

    raise ValueError(f"Could not parse datetime string: {date_string}")


def fetch_tle_text(url: str) -> str:
    """
    Fetch element-set text from a URL.

    Raises:
        requests.RequestException: On network or HTTP errors
    """
    logger.info(f"Downloading TLE data from {url}")
    response = requests.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS)
    response.raise_for_status()
    return response.text


def download_tle_file(url: str, output_file: Union[str, Path]) -> bool:
    """
    Download a TLE file.

    Args:
        url: URL to download TLE data from
        output_file: Local file path to save TLE data

    Returns:
        True if successful, False otherwise
    """
    try:
        text = fetch_tle_text(url)
    except requests.RequestException as e:
        logger.error(f"Error downloading TLE file: {e}")
        return False

    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(text)

    logger.info(f"TLE data saved to {output_path}")
    return True


def get_common_tle_sources() -> Dict[str, str]:
    """
    Get the catalogs of visually interesting objects.

    Returns:
        Dictionary mapping source names to URLs
    """
    base = "https://celestrak.org/NORAD/elements/gp.php"
    return {
        "visual": f"{base}?GROUP=visual&FORMAT=tle",
        "stations": f"{base}?GROUP=stations&FORMAT=tle",
        "starlink": f"{base}?GROUP=starlink&FORMAT=tle",
        "last-30-days": f"{base}?GROUP=last-30-days&FORMAT=tle",
        "active": f"{base}?GROUP=active&FORMAT=tle",
    }


def format_duration(seconds: float) -> str:
    """Format a pass duration as minutes and seconds, e.g. ``4m 30s``."""
    seconds = max(0, int(round(seconds)))
    minutes, secs = divmod(seconds, 60)
    if minutes == 0:
        return f"{secs}s"
    return f"{minutes}m {secs:02d}s"
