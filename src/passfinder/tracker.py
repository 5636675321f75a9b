"""
Real-time tracking loop state.

Two cooperative loops share one LiveTracker: a one-second tick that moves
every object and refreshes the next visible pass once it has expired, and
a slower round-robin tick that recomputes one object's ground track per
call, so per-call cost does not grow with the number of objects.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .config import PredictionConfig
from .observer import ObserverLocation
from .orbit import PropagationResult, TrackedObject, dedupe_objects
from .sunlight import is_object_illuminated, is_observer_in_darkness
from .visibility import Pass, find_next_visible_pass

logger = logging.getLogger(__name__)

PASS_EXPIRY_MARGIN = timedelta(minutes=2)
PASS_LEAD_TIME = timedelta(minutes=10)


@dataclass
class TrackedState:
    """Latest known state of one tracked object."""

    obj: TrackedObject
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude_km: Optional[float] = None
    elevation: Optional[float] = None
    azimuth: Optional[float] = None
    is_visible: bool = False
    updated: Optional[datetime] = None
    ground_track: List[PropagationResult] = field(default_factory=list, repr=False)


class LiveTracker:
    """Holds live positions, the next visible pass and round-robin orbit refresh."""

    def __init__(
        self,
        objects: Iterable[TrackedObject],
        location: Optional[ObserverLocation] = None,
        config: Optional[PredictionConfig] = None,
    ) -> None:
        self.config = config or PredictionConfig()
        self.location = location
        self.objects = dedupe_objects(objects)
        self.states: Dict[str, TrackedState] = {obj.identity: TrackedState(obj) for obj in self.objects}
        self.next_pass: Optional[Pass] = None
        self._next_pass_searched = False
        self._orbit_index = 0

    def set_location(self, location: Optional[ObserverLocation]) -> None:
        self.location = location
        self.next_pass = None
        self._next_pass_searched = False

    def tick(self, now: Optional[datetime] = None) -> List[TrackedState]:
        """
        Move every object to ``now``.

        With a single tracked object and an observer, also looks up the next
        visible pass on first use and again once the current one has ended.
        """
        now = now or datetime.utcnow()

        for obj in self.objects:
            state = self.states[obj.identity]
            result = obj.propagate(now)
            if not result.ok:
                continue
            state.latitude = result.latitude
            state.longitude = result.longitude
            state.altitude_km = result.altitude_km
            state.updated = now
            if self.location is not None:
                state.elevation, state.azimuth = self.location.look_angles(result)
                state.is_visible = self._is_visible(result, state.elevation)

        if len(self.objects) == 1 and self.location is not None and self._next_pass_expired(now):
            self.refresh_next_pass(now)

        return [self.states[obj.identity] for obj in self.objects]

    def refresh_next_pass(self, now: Optional[datetime] = None) -> Optional[Pass]:
        """Recompute the next visible pass of the single tracked object."""
        now = now or datetime.utcnow()
        self._next_pass_searched = True
        if not self.objects or self.location is None:
            self.next_pass = None
            return None

        self.next_pass = find_next_visible_pass(self.objects[0], self.location, now, config=self.config)
        if self.next_pass:
            logger.info(f"Next visible pass: {self.next_pass}")
        else:
            logger.info(f"No visible pass of {self.objects[0].name} in the next two days")
        return self.next_pass

    def pass_imminent(self, now: Optional[datetime] = None) -> bool:
        """True from ten minutes before the next pass until two minutes after it."""
        if self.next_pass is None:
            return False
        now = now or datetime.utcnow()
        return (
            self.next_pass.start - PASS_LEAD_TIME
            <= now
            <= self.next_pass.end + PASS_EXPIRY_MARGIN
        )

    def refresh_next_orbit(self, now: Optional[datetime] = None) -> Optional[Tuple[TrackedObject, List[PropagationResult]]]:
        """
        Recompute one object's ground track over one orbital period.

        Successive calls cycle through the tracked objects.

        Returns:
            Tuple of (object, ground track), or None with nothing tracked
        """
        if not self.objects:
            return None

        now = now or datetime.utcnow()
        index = self._orbit_index % len(self.objects)
        self._orbit_index = (index + 1) % len(self.objects)

        obj = self.objects[index]
        period = obj.get_orbital_period()
        step = period.total_seconds() / self.config.orbit_samples
        track = obj.get_ground_track(now, now + period, time_step_seconds=step)
        self.states[obj.identity].ground_track = track
        return obj, track

    def _next_pass_expired(self, now: datetime) -> bool:
        if not self._next_pass_searched:
            return True
        return self.next_pass is not None and now > self.next_pass.end + PASS_EXPIRY_MARGIN

    def _is_visible(self, result: PropagationResult, elevation: float) -> bool:
        if elevation <= self.config.elevation_threshold_deg:
            return False
        return is_observer_in_darkness(
            result.timestamp,
            self.location.latitude,
            self.location.longitude,
            self.config.grace_period_minutes,
        ) and is_object_illuminated(result.position_eci, result.timestamp)
