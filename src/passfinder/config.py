"""
Prediction configuration.

All tunables of the pass search, the batch scheduler, the proximity scanner
and the magnitude estimator live in one dataclass. Values can be loaded
from a YAML file; ``PASSFINDER_CONFIG`` points at the default file.
"""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import os

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PASSFINDER_CONFIG"


@dataclass
class PredictionConfig:
    """
    Tunable parameters for visible-pass prediction.

    Defaults reproduce the behaviour of the observing app: a 10° horizon
    mask, 40 minutes of twilight margin, one-minute sampling, one-day
    batches for the full catalog and 15-day batches for favorites, up to
    30 days ahead, with results cached for 15 minutes.
    """

    # Pass detection
    elevation_threshold_deg: float = 10.0
    grace_period_minutes: float = 40.0
    sample_step_seconds: float = 60.0
    max_passes: int = 20
    future_days: int = 30
    past_days: int = 3
    best_pass_min_elevation_deg: float = 50.0

    # Batch scheduler
    batch_days_all: int = 1
    batch_days_favorites: int = 15
    max_days: int = 30
    cache_ttl_seconds: float = 15 * 60

    # Proximity scanner
    proximity_radius_km: float = 1200.0
    orbit_samples: int = 240

    # Magnitude estimator
    magnitude_step_seconds: float = 20.0
    extinction_coefficient: float = 0.2
    default_standard_magnitude: float = 5.0
    satcat_url: str = "https://celestrak.org/pub/satcat.json"
    satcat_cache_path: Optional[str] = None
    satcat_cache_days: float = 7.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 0 <= self.elevation_threshold_deg < 90:
            raise ValueError(
                f"elevation_threshold_deg must be in [0, 90), got {self.elevation_threshold_deg}"
            )

        if self.grace_period_minutes < 0:
            raise ValueError(
                f"grace_period_minutes must be >= 0, got {self.grace_period_minutes}"
            )

        if self.sample_step_seconds <= 0:
            raise ValueError(
                f"sample_step_seconds must be > 0, got {self.sample_step_seconds}"
            )

        for name in ("max_passes", "batch_days_all", "batch_days_favorites", "max_days", "orbit_samples"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")

        if self.proximity_radius_km <= 0:
            raise ValueError(
                f"proximity_radius_km must be > 0, got {self.proximity_radius_km}"
            )

        if self.cache_ttl_seconds < 0:
            raise ValueError(f"cache_ttl_seconds must be >= 0, got {self.cache_ttl_seconds}")

    def batch_days_for(self, source: str) -> int:
        """Days per scheduler batch: small for the full catalog, large for favorites."""
        return self.batch_days_all if source == "all" else self.batch_days_favorites

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictionConfig":
        """Build a config, ignoring (and logging) unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(config_path: Optional[Union[str, Path]] = None) -> PredictionConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to YAML file. Defaults to ``$PASSFINDER_CONFIG``;
            when neither is set the built-in defaults are used.

    Returns:
        PredictionConfig instance

    Raises:
        FileNotFoundError: If an explicit path does not exist
        ValueError: If the file holds invalid values
    """
    path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return PredictionConfig()

    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    with open(config_file, "r") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config file {config_file} must contain a mapping")

    # Allow a top-level "prediction:" section
    section = raw.get("prediction", raw)
    config = PredictionConfig.from_dict(section)
    logger.info(f"Loaded configuration from {config_file}")
    return config
