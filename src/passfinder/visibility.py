"""
Visible pass detection and prediction.

This module turns a stream of per-step elevation/illumination samples
into discrete visible passes, and provides the single-object prediction
entry points built on top of it.

A pass is visible when three conditions hold at the same sample: the
observer is in darkness, the object is sunlit and the object is above the
elevation threshold. Passes are trimmed to the visible part of the
geometric rise/set window.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .config import PredictionConfig
from .observer import ObserverLocation
from .orbit import TrackedObject, tle_identity
from .sunlight import is_object_illuminated, is_observer_in_darkness, sun_times, to_naive_utc

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

MIN_VISIBLE_SAMPLES = 2  # Single visible samples are treated as noise
DUSK_DAWN_WINDOW = timedelta(hours=3)
SKY_PATH_LEAD = timedelta(minutes=30)
SKY_PATH_SPAN = timedelta(hours=2)
SKY_PATH_STEP_SECONDS = 5
CARDINAL_DIRECTIONS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]


@dataclass
class SamplePoint:
    """One scan step: where the object is in the sky and whether it can be seen."""

    time: datetime
    elevation: float
    azimuth: float
    is_visible: bool


@dataclass
class Pass:
    """
    A visible pass of one object over the observer.

    ``start``/``end`` bound the visible sub-window, which always lies inside
    the geometric window ``geometric_start``/``geometric_end`` where the
    object is above the elevation threshold.
    """

    satellite_name: str
    tle: str
    start: datetime
    end: datetime
    max_elevation: float  # degrees, over visible samples only
    start_azimuth: float  # degrees
    end_azimuth: float  # degrees
    is_historical: bool = False
    max_elevation_time: Optional[datetime] = None
    geometric_start: Optional[datetime] = None
    geometric_end: Optional[datetime] = None
    points: List[SamplePoint] = field(default_factory=list, repr=False, compare=False)
    obj: Optional[TrackedObject] = field(default=None, repr=False, compare=False)

    @property
    def identity(self) -> Optional[str]:
        return tle_identity(self.tle)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def sort_key(self) -> Tuple[datetime, str, str]:
        """Start time first; identity and name break ties deterministically."""
        return (self.start, self.identity or "", self.satellite_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert pass to a JSON-friendly dictionary."""
        result: Dict[str, Any] = {
            "satellite_name": self.satellite_name,
            "tle": self.tle,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_s": round(self.duration.total_seconds(), 1),
            "max_elevation": self.max_elevation,
            "start_azimuth": self.start_azimuth,
            "end_azimuth": self.end_azimuth,
            "start_direction": cardinal_direction(self.start_azimuth),
            "end_direction": cardinal_direction(self.end_azimuth),
            "is_historical": self.is_historical,
        }
        if self.max_elevation_time is not None:
            result["max_elevation_time"] = self.max_elevation_time.isoformat()
        if self.geometric_start is not None:
            result["geometric_start"] = self.geometric_start.isoformat()
        if self.geometric_end is not None:
            result["geometric_end"] = self.geometric_end.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pass":
        def _dt(key: str) -> Optional[datetime]:
            value = data.get(key)
            return datetime.fromisoformat(value) if value else None

        return cls(
            satellite_name=data["satellite_name"],
            tle=data["tle"],
            start=datetime.fromisoformat(data["start"]),
            end=datetime.fromisoformat(data["end"]),
            max_elevation=float(data["max_elevation"]),
            start_azimuth=float(data["start_azimuth"]),
            end_azimuth=float(data["end_azimuth"]),
            is_historical=bool(data.get("is_historical", False)),
            max_elevation_time=_dt("max_elevation_time"),
            geometric_start=_dt("geometric_start"),
            geometric_end=_dt("geometric_end"),
        )

    def __str__(self) -> str:
        """String representation of the pass."""
        return (
            f"{self.satellite_name}: "
            f"{self.start.strftime('%Y-%m-%d %H:%M:%S')} - "
            f"{self.end.strftime('%H:%M:%S')} UTC, "
            f"Max Elev: {self.max_elevation:.1f}°, "
            f"{cardinal_direction(self.start_azimuth)} → {cardinal_direction(self.end_azimuth)}"
        )


class PassDetector:
    """
    IDLE → IN_PASS → IDLE state machine over a sample stream.

    Feed samples in scan order (forward or backward in time). The detector
    enters a pass when elevation rises above the threshold, buffers every
    sample while in the pass and, when elevation drops below the
    threshold again, emits a Pass if at least two buffered samples were
    visible.
    """

    IDLE = "idle"
    IN_PASS = "in_pass"

    def __init__(
        self,
        satellite_name: str = "",
        tle: str = "",
        elevation_threshold_deg: float = 10.0,
        is_historical: bool = False,
    ) -> None:
        self.satellite_name = satellite_name
        self.tle = tle
        self.elevation_threshold_deg = elevation_threshold_deg
        self.is_historical = is_historical
        self.state = self.IDLE
        self._buffer: List[SamplePoint] = []

    def reset(self) -> None:
        """Drop any partial pass and go back to IDLE."""
        self.state = self.IDLE
        self._buffer = []

    def flush(self) -> None:
        """End of scan: an unfinished pass is discarded."""
        if self.state == self.IN_PASS:
            logger.debug(f"Discarding unfinished pass of {self.satellite_name}")
        self.reset()

    def feed(self, sample: SamplePoint) -> Optional[Pass]:
        """
        Advance the state machine by one sample.

        Returns:
            The completed Pass when this sample closes a visible pass,
            otherwise None
        """
        threshold = self.elevation_threshold_deg

        if self.state == self.IDLE:
            if sample.elevation > threshold:
                self.state = self.IN_PASS
                self._buffer = [sample]
            return None

        if sample.elevation < threshold:
            completed = self._build_pass()
            self.reset()
            return completed

        self._buffer.append(sample)
        return None

    def _build_pass(self) -> Optional[Pass]:
        visible = [p for p in self._buffer if p.is_visible]
        if len(visible) < MIN_VISIBLE_SAMPLES:
            return None

        # Backward scans buffer newest-first, so order explicitly by time
        visible.sort(key=lambda p: p.time)
        first, last = visible[0], visible[-1]
        peak = max(visible, key=lambda p: p.elevation)
        points = sorted(self._buffer, key=lambda p: p.time)

        return Pass(
            satellite_name=self.satellite_name,
            tle=self.tle,
            start=first.time,
            end=last.time,
            max_elevation=peak.elevation,
            start_azimuth=first.azimuth,
            end_azimuth=last.azimuth,
            is_historical=self.is_historical,
            max_elevation_time=peak.time,
            geometric_start=points[0].time,
            geometric_end=points[-1].time,
            points=points,
        )


def sample_object(
    obj: TrackedObject,
    location: ObserverLocation,
    timestamp: datetime,
    config: PredictionConfig,
) -> Optional[SamplePoint]:
    """
    Propagate ``obj`` and build the sample seen from ``location``.

    Returns None when propagation fails at this instant.
    """
    result = obj.propagate(timestamp)
    if not result.ok:
        return None

    elevation, azimuth = location.look_angles(result)
    is_visible = False
    # Darkness and shadow tests only matter above the mask
    if elevation > config.elevation_threshold_deg:
        is_visible = is_observer_in_darkness(
            timestamp,
            location.latitude,
            location.longitude,
            config.grace_period_minutes,
        ) and is_object_illuminated(result.position_eci, timestamp)

    return SamplePoint(timestamp, elevation, azimuth, is_visible)


def predict_passes(
    obj: TrackedObject,
    location: ObserverLocation,
    days: Optional[float] = None,
    direction: str = "future",
    start_date: Optional[datetime] = None,
    config: Optional[PredictionConfig] = None,
) -> List[Pass]:
    """
    Predict the visible passes of one object.

    Future scans start at the observer's local midnight of ``start_date``
    and move forward; past scans start at ``start_date`` and move
    backwards, tagging passes as historical. A forward scan stops early
    once ``config.max_passes`` passes were found.

    Args:
        obj: Object to predict
        location: Observer location
        days: Length of the scan (defaults to the configured future/past days)
        direction: "future" or "past"
        start_date: Reference time, naive UTC (defaults to now)
        config: Prediction configuration

    Returns:
        List of Pass sorted by start time
    """
    if direction not in ("future", "past"):
        raise ValueError(f"Invalid direction: {direction}. Must be 'future' or 'past'.")

    config = config or PredictionConfig()
    if days is None:
        days = config.future_days if direction == "future" else config.past_days

    reference = to_naive_utc(start_date) if start_date else datetime.utcnow()
    base = location.local_midnight(reference) if direction == "future" else reference
    sign = 1 if direction == "future" else -1

    step = config.sample_step_seconds
    total_steps = int(days * 86400 / step)

    detector = PassDetector(
        satellite_name=obj.name,
        tle=obj.tle_text,
        elevation_threshold_deg=config.elevation_threshold_deg,
        is_historical=direction == "past",
    )

    passes: List[Pass] = []
    failures = 0
    for i in range(total_steps):
        timestamp = base + timedelta(seconds=sign * i * step)
        sample = sample_object(obj, location, timestamp, config)
        if sample is None:
            failures += 1
            detector.reset()
            continue

        completed = detector.feed(sample)
        if completed is not None:
            completed.obj = obj
            passes.append(completed)
            if direction == "future" and len(passes) >= config.max_passes:
                break

    detector.flush()

    if failures:
        logger.debug(f"{obj.name}: {failures}/{total_steps} samples failed to propagate")

    passes.sort(key=Pass.sort_key)
    return passes


def find_next_visible_pass(
    obj: TrackedObject,
    location: ObserverLocation,
    now: Optional[datetime] = None,
    days: float = 2,
    config: Optional[PredictionConfig] = None,
) -> Optional[Pass]:
    """First visible pass that has not ended yet, or None."""
    now = to_naive_utc(now) if now else datetime.utcnow()
    passes = predict_passes(obj, location, days=days, direction="future", start_date=now, config=config)
    for p in passes:
        if p.end >= now:
            return p
    return None


def calculate_sky_path(
    obj: TrackedObject,
    location: ObserverLocation,
    reference: datetime,
    config: Optional[PredictionConfig] = None,
) -> List[SamplePoint]:
    """
    Az/el track of the object above the horizon around ``reference``.

    Samples every 5 seconds from 30 minutes before the reference over two
    hours, keeping only points above the horizon.
    """
    config = config or PredictionConfig()
    reference = to_naive_utc(reference)
    start = reference - SKY_PATH_LEAD
    steps = int(SKY_PATH_SPAN.total_seconds() / SKY_PATH_STEP_SECONDS)

    path = []
    for i in range(steps):
        timestamp = start + timedelta(seconds=i * SKY_PATH_STEP_SECONDS)
        sample = sample_object(obj, location, timestamp, config)
        if sample is not None and sample.elevation > 0:
            path.append(sample)
    return path


def filter_passes(
    passes: List[Pass], location: Optional[ObserverLocation], mode: str = "all"
) -> List[Pass]:
    """
    Keep passes by time of night.

    Args:
        passes: Passes to filter
        location: Observer location; without one nothing is filtered
        mode: "all", "dusk" (start within 3 h after sunset) or
            "dawn" (start within 3 h before sunrise)

    Returns:
        Filtered list, order preserved
    """
    if mode not in ("all", "dusk", "dawn"):
        raise ValueError(f"Unknown pass filter: {mode}")

    if mode == "all" or location is None:
        return list(passes)

    selected = []
    for p in passes:
        times = sun_times(p.start, location.latitude, location.longitude)
        if times.polar is not None:
            continue
        if mode == "dusk" and times.sunset <= p.start <= times.sunset + DUSK_DAWN_WINDOW:
            selected.append(p)
        elif mode == "dawn" and times.sunrise - DUSK_DAWN_WINDOW <= p.start <= times.sunrise:
            selected.append(p)
    return selected


def best_passes(
    passes: List[Pass], min_elevation: float = 50.0, after: Optional[datetime] = None
) -> List[Pass]:
    """High passes (above ``min_elevation``), optionally only those starting after ``after``."""
    return [
        p
        for p in passes
        if p.max_elevation > min_elevation and (after is None or p.start > after)
    ]


def cardinal_direction(azimuth_degrees: float) -> str:
    """8-point compass label for an azimuth."""
    index = round((azimuth_degrees % 360.0) / 45.0) % 8
    return CARDINAL_DIRECTIONS[index]
