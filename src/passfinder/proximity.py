"""
Nearby-object scanning around a fixed observer.

On every tick the scanner propagates a catalog, keeps the objects whose
sub-satellite point lies within a radius of the observer and, for one
selected object, clips a full-orbit ground track to the radius circle.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import PredictionConfig
from .geometry import LatLon, bearing, circle_polygon, great_circle_distance, unwrap_longitude
from .observer import ObserverLocation
from .orbit import PropagationResult, TrackedObject, dedupe_objects
from .sunlight import is_object_illuminated, is_observer_in_darkness

logger = logging.getLogger(__name__)

HEADING_LOOKAHEAD = timedelta(seconds=1)
ORBIT_SPAN_FACTOR = 1.01  # Slight overlap so the track closes on itself


@dataclass
class TrackPoint:
    """One ground-track sample."""

    latitude: float
    longitude: float  # may be unwrapped beyond [-180, 180]
    time: datetime
    position_eci: Optional[Tuple[float, float, float]] = None
    is_visible: bool = False

    @property
    def coords(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass
class OrbitSegment:
    """Part of a ground track with one consistent inside/visibility state."""

    points: List[TrackPoint]
    is_visible: bool
    inside: bool = True

    @property
    def coordinates(self) -> List[Tuple[float, float]]:
        return [p.coords for p in self.points]


@dataclass
class ProximityEntry:
    """An object currently within the scan radius."""

    obj: TrackedObject
    latitude: float = 0.0
    longitude: float = 0.0
    altitude_km: float = 0.0
    distance_km: float = 0.0
    elevation: float = 0.0
    bearing: float = 0.0
    is_visible: bool = False
    orbit_segments: List[OrbitSegment] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "name": self.obj.name,
            "norad_id": self.obj.norad_id,
            "latitude": round(self.latitude, 4),
            "longitude": round(self.longitude, 4),
            "altitude_km": round(self.altitude_km, 1),
            "distance_km": round(self.distance_km, 1),
            "elevation": round(self.elevation, 2),
            "bearing": round(self.bearing, 1),
            "is_visible": self.is_visible,
            "orbit_segments": len(self.orbit_segments),
        }


def interpolate_crossing(
    p1: TrackPoint, p2: TrackPoint, center: Tuple[float, float], radius_km: float
) -> TrackPoint:
    """
    Point where the segment p1→p2 crosses the radius circle.

    Interpolates linearly in latitude, longitude, time and ECI position
    using the fraction ``t = (radius - d1) / (d2 - d1)`` of the endpoint
    distances from the center.
    """
    d1 = great_circle_distance(center, p1.coords)
    d2 = great_circle_distance(center, p2.coords)
    if abs(d2 - d1) < 1e-9:
        t = 0.0
    else:
        t = (radius_km - d1) / (d2 - d1)

    position = None
    if p1.position_eci is not None and p2.position_eci is not None:
        a = np.asarray(p1.position_eci, dtype=float)
        b = np.asarray(p2.position_eci, dtype=float)
        position = tuple(float(v) for v in a + t * (b - a))

    return TrackPoint(
        latitude=p1.latitude + t * (p2.latitude - p1.latitude),
        longitude=p1.longitude + t * (p2.longitude - p1.longitude),
        time=p1.time + (p2.time - p1.time) * t,
        position_eci=position,
    )


def clip_track_to_radius(
    track: Sequence[TrackPoint],
    center: Tuple[float, float],
    radius_km: float,
    visibility: Callable[[TrackPoint], bool] = lambda point: False,
) -> List[OrbitSegment]:
    """
    Split a ground track at the radius circle and at visibility changes.

    Each returned segment has a single inside/outside state and a single
    visibility state. Where the track crosses the circle an interpolated
    boundary point ends one segment and starts the next; where visibility
    changes the last point is shared between both segments. Segments with
    fewer than two points are dropped.

    Args:
        track: Ground-track points in time order
        center: Circle center (lat, lon)
        radius_km: Circle radius
        visibility: Decides whether a point is optically visible

    Returns:
        List of OrbitSegment, inside and outside, in track order
    """
    segments: List[OrbitSegment] = []
    current: List[TrackPoint] = []
    state: Tuple[bool, bool] = (False, False)

    def close() -> None:
        if len(current) >= 2:
            segments.append(OrbitSegment(list(current), is_visible=state[1], inside=state[0]))

    previous: Optional[TrackPoint] = None
    previous_inside = False
    for point in track:
        point.is_visible = visibility(point)
        inside = great_circle_distance(center, point.coords) <= radius_km

        if previous is None:
            current = [point]
            state = (inside, point.is_visible)
        else:
            if inside != previous_inside:
                crossing = interpolate_crossing(previous, point, center, radius_km)
                crossing.is_visible = visibility(crossing)
                current.append(crossing)
                close()
                current = [crossing]
                state = (inside, crossing.is_visible)

            if (inside, point.is_visible) != state:
                close()
                current = [current[-1]]
                state = (inside, point.is_visible)
            current.append(point)

        previous, previous_inside = point, inside

    close()
    return segments


class ProximityScanner:
    """
    Keeps the set of catalog objects near the observer up to date.

    Call ``tick`` once per second. Objects whose propagation fails are left
    out of the active set for that tick.
    """

    def __init__(
        self,
        catalog: Iterable[TrackedObject],
        location: ObserverLocation,
        config: Optional[PredictionConfig] = None,
    ) -> None:
        self.catalog = dedupe_objects(catalog)
        self.location = location
        self.config = config or PredictionConfig()
        self.entries: Dict[str, ProximityEntry] = {}
        self.selected: Optional[str] = None

    @property
    def radius_km(self) -> float:
        return self.config.proximity_radius_km

    def tick(self, now: Optional[datetime] = None) -> List[ProximityEntry]:
        """
        Refresh the active set.

        Returns:
            Entries within the radius, nearest first
        """
        now = now or datetime.utcnow()
        seen = set()

        for obj in self.catalog:
            result = obj.propagate(now)
            if not result.ok:
                continue

            distance = great_circle_distance(self.location.coords, (result.latitude, result.longitude))
            if distance > self.radius_km:
                continue

            key = obj.identity
            seen.add(key)
            entry = self.entries.get(key)
            if entry is None:
                entry = ProximityEntry(obj=obj)
                self.entries[key] = entry
                logger.debug(f"{obj.name} entered the {self.radius_km:.0f} km radius")

            elevation, _ = self.location.look_angles(result)
            entry.latitude = result.latitude
            entry.longitude = result.longitude
            entry.altitude_km = result.altitude_km
            entry.distance_km = distance
            entry.elevation = elevation
            entry.is_visible = self._is_visible(result, elevation)
            entry.bearing = self._heading(obj, result, entry.bearing)

        for key in list(self.entries):
            if key not in seen:
                logger.debug(f"{self.entries[key].obj.name} left the radius")
                del self.entries[key]

        for key, entry in self.entries.items():
            if key == self.selected:
                entry.orbit_segments = self.orbit_segments(entry.obj, now)
            else:
                entry.orbit_segments = []

        return sorted(self.entries.values(), key=lambda e: e.distance_km)

    def select(self, obj: Optional[TrackedObject]) -> bool:
        """
        Toggle the object whose orbit is drawn.

        Returns:
            True if ``obj`` is now selected, False if the selection was cleared
        """
        if obj is None or obj.identity == self.selected:
            self.selected = None
            return False
        self.selected = obj.identity
        return True

    def stop(self) -> None:
        self.entries.clear()
        self.selected = None

    def radius_outline(self) -> List[LatLon]:
        """Outline of the scan radius, for drawing."""
        return circle_polygon(self.location.coords, self.radius_km)

    def orbit_segments(self, obj: TrackedObject, start: datetime) -> List[OrbitSegment]:
        """Parts of one orbit of ``obj`` that fall inside the radius."""
        track = self._orbit_track(obj, start)
        if len(track) < 2:
            return []

        segments = clip_track_to_radius(
            track, self.location.coords, self.radius_km, self._track_point_visible
        )
        return [s for s in segments if s.inside]

    def _orbit_track(self, obj: TrackedObject, start: datetime) -> List[TrackPoint]:
        period = obj.get_orbital_period().total_seconds()
        samples = self.config.orbit_samples
        step = period / samples
        count = int(samples * ORBIT_SPAN_FACTOR) + 1

        track: List[TrackPoint] = []
        last_lon: Optional[float] = None
        for i in range(count):
            when = start + timedelta(seconds=i * step)
            result = obj.propagate(when)
            if not result.ok:
                continue
            lon = result.longitude
            if last_lon is not None:
                lon = unwrap_longitude(lon, last_lon)
            last_lon = lon
            track.append(TrackPoint(result.latitude, lon, when, result.position_eci))
        return track

    def _is_visible(self, result: PropagationResult, elevation: float) -> bool:
        if elevation <= self.config.elevation_threshold_deg:
            return False
        return is_observer_in_darkness(
            result.timestamp,
            self.location.latitude,
            self.location.longitude,
            self.config.grace_period_minutes,
        ) and is_object_illuminated(result.position_eci, result.timestamp)

    def _track_point_visible(self, point: TrackPoint) -> bool:
        if point.position_eci is None:
            return False
        return is_observer_in_darkness(
            point.time,
            self.location.latitude,
            self.location.longitude,
            self.config.grace_period_minutes,
        ) and is_object_illuminated(point.position_eci, point.time)

    @staticmethod
    def _heading(obj: TrackedObject, result: PropagationResult, fallback: float) -> float:
        ahead = obj.propagate(result.timestamp + HEADING_LOOKAHEAD)
        if not ahead.ok:
            return fallback
        # Across the antimeridian the short hop looks like a 360° jump
        if abs(result.longitude - ahead.longitude) >= 180:
            return fallback
        return bearing((result.latitude, result.longitude), (ahead.latitude, ahead.longitude))
