"""iCalendar export of visible passes."""

from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union
import logging

from .visibility import Pass

logger = logging.getLogger(__name__)

UID_DOMAIN = "passfinder"
EPOCH = datetime(1970, 1, 1)


def to_ics_date(when: datetime) -> str:
    """Format a naive UTC datetime as an iCalendar UTC timestamp."""
    return when.strftime("%Y%m%dT%H%M%SZ")


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def _event_lines(p: Pass, location_name: str, stamp: datetime) -> list:
    epoch_seconds = int((p.start - EPOCH).total_seconds())
    uid = f"{epoch_seconds}-{p.satellite_name.replace(' ', '_')}@{UID_DOMAIN}"
    summary = f"{p.satellite_name} visible pass"
    description = (
        f"{p.satellite_name} pass, max elevation {p.max_elevation:.0f}°"
    )
    return [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{to_ics_date(stamp)}",
        f"DTSTART:{to_ics_date(p.start)}",
        f"DTEND:{to_ics_date(p.end)}",
        f"SUMMARY:{_escape(summary)}",
        f"DESCRIPTION:{_escape(description)}",
        f"LOCATION:{_escape(location_name)}",
        "END:VEVENT",
    ]


def passes_to_ics(
    passes: Iterable[Pass],
    location_name: str = "Observer location",
    stamp: Optional[datetime] = None,
) -> str:
    """
    Render passes as one VCALENDAR document.

    Args:
        passes: Passes to export, one VEVENT each
        location_name: Text for the LOCATION field
        stamp: DTSTAMP value (defaults to now)

    Returns:
        iCalendar text with CRLF line endings
    """
    stamp = stamp or datetime.utcnow()
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//passfinder//EN"]
    for p in passes:
        lines.extend(_event_lines(p, location_name, stamp))
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def ics_filename(satellite_name: str) -> str:
    return f"pass_{'_'.join(satellite_name.split())}.ics"


def export_ics(
    passes: Iterable[Pass],
    output_file: Union[str, Path],
    location_name: str = "Observer location",
) -> Path:
    """Write passes to an .ics file and return its path."""
    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        f.write(passes_to_ics(passes, location_name))
    logger.info(f"Calendar written to {output_path}")
    return output_path
