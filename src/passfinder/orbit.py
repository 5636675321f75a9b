"""
Tracked objects, element-set handling and orbit propagation.

This module wraps the orbit-predictor library so that propagation never
raises into the scanning loops: every call returns a PropagationResult
that either carries the position or explains why there is none.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union
import logging
import math

from orbit_predictor.sources import get_predictor_from_tle_lines
import numpy as np

from .sunlight import calculate_gmst, to_naive_utc

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_MINUTES = 90.0  # Fallback for LEO objects


class ElementSet(NamedTuple):
    """One parsed two-line element set."""

    name: str
    line1: str
    line2: str

    @property
    def text(self) -> str:
        return f"{self.name}\n{self.line1}\n{self.line2}"


def _is_line1(line: Optional[str]) -> bool:
    return bool(line) and line.startswith("1 ")


def _is_line2(line: Optional[str]) -> bool:
    return bool(line) and line.startswith("2 ")


def parse_tle_text(text: str) -> List[ElementSet]:
    """
    Parse a block of TLE text into element sets.

    Accepts both the three-line form (name, line 1, line 2) and the bare
    two-line form, in which case the object is named after its catalog
    number. Lines that do not form a complete set are skipped.

    Args:
        text: Raw TLE text, possibly holding many objects

    Returns:
        List of ElementSet, in input order
    """
    if not text:
        return []

    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    element_sets = []
    i = 0
    while i < len(lines):
        current = lines[i]
        nxt = lines[i + 1] if i + 1 < len(lines) else None
        after = lines[i + 2] if i + 2 < len(lines) else None

        if not _is_line1(current) and _is_line1(nxt) and _is_line2(after):
            element_sets.append(ElementSet(current, nxt, after))
            i += 3
        elif _is_line1(current) and _is_line2(nxt):
            element_sets.append(ElementSet(f"SAT-{current[2:7]}", current, nxt))
            i += 2
        else:
            i += 1

    return element_sets


def tle_identity(tle_text: str) -> Optional[str]:
    """
    Stable identity key of an element set: its second data line.

    Line 2 is unique per real-world object, so the same satellite loaded
    from two catalogs maps to the same key.
    """
    if not tle_text:
        return None
    lines = [line.strip() for line in tle_text.strip().splitlines()]
    for line in lines:
        if line.startswith("2 "):
            return line
    return "\n".join(lines)


def ecef_to_eci(ecef: Sequence[float], timestamp: datetime) -> Tuple[float, float, float]:
    """Rotate an Earth-fixed vector into the inertial frame using GMST."""
    theta = math.radians(calculate_gmst(timestamp))
    x, y, z = ecef
    return (
        math.cos(theta) * x - math.sin(theta) * y,
        math.sin(theta) * x + math.cos(theta) * y,
        z,
    )


@dataclass
class PropagationResult:
    """Outcome of propagating one object to one instant."""

    timestamp: datetime
    ok: bool
    position_eci: Optional[Tuple[float, float, float]] = None
    position_ecef: Optional[Tuple[float, float, float]] = None
    velocity_ecef: Optional[Tuple[float, float, float]] = None
    position_llh: Optional[Tuple[float, float, float]] = None
    error: Optional[str] = None

    @property
    def latitude(self) -> float:
        return self.position_llh[0]

    @property
    def longitude(self) -> float:
        return self.position_llh[1]

    @property
    def altitude_km(self) -> float:
        return self.position_llh[2]

    @classmethod
    def failure(cls, timestamp: datetime, error: str) -> "PropagationResult":
        return cls(timestamp=timestamp, ok=False, error=error)


class TrackedObject:
    """
    An orbiting object the user is tracking.

    Holds the display name, the canonical element-set text (whose line 2
    is the object's identity) and the predictor used for propagation.
    """

    def __init__(
        self,
        name: str,
        tle_text: str,
        predictor: Any = None,
        source: str = "custom",
    ) -> None:
        """
        Initialize a tracked object from element-set text.

        Args:
            name: Display name
            tle_text: Element-set text (two or three lines)
            predictor: Optional ready-made predictor. Anything exposing
                ``get_position(when_utc)`` like orbit-predictor's TLEPredictor.
            source: Catalog the object came from (favorites, starlink, ...)

        Raises:
            ValueError: If the element set cannot be parsed
        """
        self.name = name
        self.tle_text = tle_text.strip()
        self.source = source

        element_sets = parse_tle_text(self.tle_text)
        if not element_sets:
            raise ValueError(f"Invalid TLE data for satellite {name}")
        self.element_set = element_sets[0]

        if predictor is None:
            try:
                predictor = get_predictor_from_tle_lines(
                    (self.element_set.line1, self.element_set.line2)
                )
            except Exception as e:
                logger.error(f"Failed to initialize predictor for {name}: {e}")
                raise ValueError(f"Invalid TLE data for satellite {name}: {e}")

        self.predictor = predictor
        self._last_error: Optional[str] = None

    @classmethod
    def from_element_set(cls, element_set: ElementSet, source: str = "custom") -> "TrackedObject":
        return cls(element_set.name, element_set.text, source=source)

    @classmethod
    def from_tle_file(cls, tle_file_path: Union[str, Path], satellite_name: str) -> "TrackedObject":
        """
        Create a TrackedObject from a TLE file.

        Args:
            tle_file_path: Path to TLE file
            satellite_name: Name (or part of it) of the satellite to extract

        Returns:
            TrackedObject instance

        Raises:
            FileNotFoundError: If TLE file doesn't exist
            ValueError: If satellite not found in TLE file
        """
        tle_path = Path(tle_file_path)
        if not tle_path.exists():
            raise FileNotFoundError(f"TLE file not found: {tle_file_path}")

        for element_set in parse_tle_text(tle_path.read_text()):
            if satellite_name.upper() in element_set.name.upper():
                return cls.from_element_set(element_set)

        raise ValueError(f"Satellite '{satellite_name}' not found in TLE file")

    @property
    def identity(self) -> str:
        return tle_identity(self.tle_text)

    @property
    def norad_id(self) -> Optional[int]:
        try:
            return int(self.element_set.line2[2:7])
        except ValueError:
            return None

    @property
    def mean_motion_rev_per_day(self) -> Optional[float]:
        try:
            return float(self.element_set.line2[52:63])
        except ValueError:
            return None

    def get_orbital_period(self) -> timedelta:
        """
        Orbital period, from the element set's mean motion.

        Falls back to the predictor, then to a typical LEO period.
        """
        mean_motion = self.mean_motion_rev_per_day
        if mean_motion and mean_motion > 0:
            # 2π / (mean motion in rad/min)
            rad_per_minute = mean_motion * 2 * math.pi / 1440.0
            return timedelta(minutes=2 * math.pi / rad_per_minute)

        try:
            return timedelta(minutes=self.predictor.period)
        except Exception as e:
            logger.error(f"Error calculating orbital period for {self.name}: {e}")
            return timedelta(minutes=DEFAULT_PERIOD_MINUTES)

    def propagate(self, timestamp: datetime) -> PropagationResult:
        """
        Propagate the object to ``timestamp``.

        Never raises: degenerate element sets and numerical failures are
        reported through ``PropagationResult.ok``.
        """
        timestamp = to_naive_utc(timestamp)
        try:
            position = self.predictor.get_position(timestamp)
            ecef = tuple(float(v) for v in position.position_ecef)
            llh = tuple(float(v) for v in position.position_llh)
            velocity = tuple(float(v) for v in position.velocity_ecef)
        except Exception as e:
            if self._last_error != str(e):
                logger.debug(f"Propagation failed for {self.name} at {timestamp}: {e}")
                self._last_error = str(e)
            return PropagationResult.failure(timestamp, str(e))

        if not np.all(np.isfinite(ecef)) or not np.all(np.isfinite(llh)):
            return PropagationResult.failure(timestamp, "non-finite state vector")

        return PropagationResult(
            timestamp=timestamp,
            ok=True,
            position_eci=ecef_to_eci(ecef, timestamp),
            position_ecef=ecef,
            velocity_ecef=velocity,
            position_llh=llh,
        )

    def get_ground_track(
        self,
        start_time: datetime,
        end_time: datetime,
        time_step_seconds: float = 60.0,
    ) -> List[PropagationResult]:
        """
        Generate ground track points over a time period.

        Failed samples are skipped.
        """
        ground_track = []
        current_time = start_time
        step = timedelta(seconds=time_step_seconds)

        while current_time <= end_time:
            result = self.propagate(current_time)
            if result.ok:
                ground_track.append(result)
            current_time += step

        logger.debug(f"Generated ground track with {len(ground_track)} points for {self.name}")
        return ground_track

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "tle": self.tle_text,
            "norad_id": self.norad_id,
            "source": self.source,
        }

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TrackedObject) and other.identity == self.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __repr__(self) -> str:
        return f"TrackedObject(name='{self.name}', norad_id={self.norad_id})"


def load_objects(tle_text: str, source: str = "custom") -> List[TrackedObject]:
    """
    Build tracked objects from TLE text, skipping sets that fail to load.

    Malformed sets never reach the prediction pipeline; the caller simply
    gets fewer objects.
    """
    objects = []
    for element_set in parse_tle_text(tle_text):
        try:
            objects.append(TrackedObject.from_element_set(element_set, source=source))
        except ValueError as e:
            logger.warning(f"Skipping element set '{element_set.name}': {e}")
    return objects


def dedupe_objects(*catalogs: Iterable[TrackedObject]) -> List[TrackedObject]:
    """Merge catalogs keeping the first object seen for each identity."""
    seen: Dict[str, TrackedObject] = {}
    for catalog in catalogs:
        for obj in catalog:
            key = obj.identity
            if key and key not in seen:
                seen[key] = obj
    return list(seen.values())
