"""
Ground observer definition.

This module provides the observer location used by every prediction and
the look-angle computation from the observer to a propagated object.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from datetime import timezone as dt_timezone
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import math

from .geometry import EARTH_RADIUS_KM, bearing
from .orbit import PropagationResult, ecef_to_eci

logger = logging.getLogger(__name__)

OBSERVER_HEIGHT_KM = 0.1


@dataclass(frozen=True)
class ObserverLocation:
    """
    Where the observer stands.

    Immutable: a new location means a new object, and anything cached for
    the previous one is keyed by its coordinates.
    """

    latitude: float  # degrees, -90 to +90
    longitude: float  # degrees, -180 to +180
    timezone: Optional[str] = None  # IANA identifier, e.g. "America/Argentina/Buenos_Aires"
    name: str = "Observer"

    def __post_init__(self) -> None:
        """Validate coordinates and time zone."""
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Invalid latitude: {self.latitude}. Must be between -90 and 90 degrees.")

        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Invalid longitude: {self.longitude}. Must be between -180 and 180 degrees.")

        if self.timezone is not None:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown time zone: {self.timezone}")

    @property
    def coords(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def local_midnight(self, when: datetime) -> datetime:
        """
        Start of the observer's local day containing ``when``.

        With an IANA zone the zone rules are used; without one the offset
        is the mean solar offset rounded to the hour (longitude / 15).

        Args:
            when: Naive UTC datetime

        Returns:
            Naive UTC datetime of local midnight
        """
        if self.timezone is not None:
            zone = ZoneInfo(self.timezone)
            local = when.replace(tzinfo=dt_timezone.utc).astimezone(zone)
            midnight = datetime.combine(local.date(), time(0, 0), tzinfo=zone)
            return midnight.astimezone(dt_timezone.utc).replace(tzinfo=None)

        offset = timedelta(hours=round(self.longitude / 15.0))
        local_day: date = (when + offset).date()
        return datetime.combine(local_day, time(0, 0)) - offset

    def look_angles(self, result: PropagationResult) -> Tuple[float, float]:
        """
        Elevation and azimuth from the observer to a propagated object.

        Uses a spherical Earth and the object's sub-satellite point.

        Args:
            result: Successful PropagationResult

        Returns:
            Tuple of (elevation_degrees, azimuth_degrees)
        """
        sat_lat, sat_lon, sat_alt_km = result.position_llh

        sat_lat_rad = math.radians(sat_lat)
        sat_lon_rad = math.radians(sat_lon)
        sat_r = EARTH_RADIUS_KM + sat_alt_km
        sat_x = sat_r * math.cos(sat_lat_rad) * math.cos(sat_lon_rad)
        sat_y = sat_r * math.cos(sat_lat_rad) * math.sin(sat_lon_rad)
        sat_z = sat_r * math.sin(sat_lat_rad)

        lat_rad = math.radians(self.latitude)
        lon_rad = math.radians(self.longitude)
        ground_r = EARTH_RADIUS_KM + OBSERVER_HEIGHT_KM
        up_x = math.cos(lat_rad) * math.cos(lon_rad)
        up_y = math.cos(lat_rad) * math.sin(lon_rad)
        up_z = math.sin(lat_rad)

        # Vector from ground to satellite
        dx = sat_x - ground_r * up_x
        dy = sat_y - ground_r * up_y
        dz = sat_z - ground_r * up_z
        range_km = math.sqrt(dx * dx + dy * dy + dz * dz)

        if range_km <= 0:
            return 90.0, 0.0

        sin_elevation = (dx * up_x + dy * up_y + dz * up_z) / range_km
        elevation = math.degrees(math.asin(max(-1.0, min(1.0, sin_elevation))))
        azimuth = bearing(self.coords, (sat_lat, sat_lon))
        return elevation, azimuth

    def eci_position(self, when: datetime) -> Tuple[float, float, float]:
        """Observer position in the inertial frame, kilometers."""
        lat_rad = math.radians(self.latitude)
        lon_rad = math.radians(self.longitude)
        r = EARTH_RADIUS_KM + OBSERVER_HEIGHT_KM
        ecef = (
            r * math.cos(lat_rad) * math.cos(lon_rad),
            r * math.cos(lat_rad) * math.sin(lon_rad),
            r * math.sin(lat_rad),
        )
        return ecef_to_eci(ecef, when)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObserverLocation":
        return cls(**data)

    def __str__(self) -> str:
        return f"{self.name} ({self.latitude:.4f}°, {self.longitude:.4f}°)"
