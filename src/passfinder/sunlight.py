"""
Sunlight and illumination calculations for visual satellite observing.

This module provides the low-precision solar ephemeris used to decide
whether an orbiting object is lit by the sun and whether the observer is
standing in enough darkness to see it.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Tuple

import numpy as np

# Constants
EARTH_RADIUS_KM = 6371.0
EARTH_EQUATORIAL_RADIUS_KM = 6378.137  # Radius of the shadow cylinder
AU_KM = 149597870.7  # Astronomical Unit in kilometers
J2000 = datetime(2000, 1, 1, 12, 0, 0)
J2000_JD = 2451545.0
UNIX_EPOCH_JD = 2440588.0
SUNRISE_ALTITUDE_DEG = -0.833  # Upper limb with standard refraction
DEFAULT_GRACE_PERIOD_MINUTES = 40.0


def to_naive_utc(timestamp: datetime) -> datetime:
    """Return ``timestamp`` as a timezone-naive UTC datetime."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp


def _days_since_j2000(timestamp: datetime) -> float:
    delta = to_naive_utc(timestamp) - J2000
    return delta.total_seconds() / 86400.0


def calculate_sun_position(timestamp: datetime) -> Tuple[float, float, float]:
    """
    Calculate the sun's position in Earth-Centered Inertial (ECI) coordinates.

    Uses the low-precision almanac formulae: mean anomaly, ecliptic
    longitude with the equation of centre, a drifting obliquity and the
    Earth-Sun distance. Good to roughly 0.01 degrees, which is plenty for
    shadow and terminator tests.

    Args:
        timestamp: UTC datetime

    Returns:
        Tuple of (x, y, z) coordinates in kilometers
    """
    days = _days_since_j2000(timestamp)

    # Mean anomaly
    mean_anomaly = math.radians((357.5291 + 0.98560028 * days) % 360.0)

    # Mean longitude
    mean_longitude = (280.459 + 0.98564736 * days) % 360.0

    # Equation of center
    center = 1.915 * math.sin(mean_anomaly) + 0.020 * math.sin(2 * mean_anomaly)

    # Ecliptic longitude
    lambda_sun = math.radians((mean_longitude + center) % 360.0)

    # Obliquity of ecliptic
    epsilon = math.radians(23.4393 - 3.563e-7 * days)

    distance_au = (
        1.00014
        - 0.01671 * math.cos(mean_anomaly)
        - 0.00014 * math.cos(2 * mean_anomaly)
    )
    distance_km = distance_au * AU_KM

    # Convert to equatorial coordinates
    x = distance_km * math.cos(lambda_sun)
    y = distance_km * math.sin(lambda_sun) * math.cos(epsilon)
    z = distance_km * math.sin(lambda_sun) * math.sin(epsilon)

    return x, y, z


def calculate_gmst(timestamp: datetime) -> float:
    """
    Calculate Greenwich Mean Sidereal Time (GMST) in degrees.

    Args:
        timestamp: UTC datetime

    Returns:
        GMST in degrees
    """
    days = _days_since_j2000(timestamp)

    # GMST calculation
    T = days / 36525.0  # Julian centuries
    gmst = 280.46061837 + 360.98564736629 * days + 0.000387933 * T * T

    return gmst % 360.0


def subsolar_point(timestamp: datetime) -> Tuple[float, float]:
    """
    Latitude and longitude of the point where the sun is at the zenith.

    Callers use it to draw the day/night terminator.

    Args:
        timestamp: UTC datetime

    Returns:
        Tuple of (latitude, longitude) in degrees, longitude in [-180, 180)
    """
    x, y, z = calculate_sun_position(timestamp)
    r = math.sqrt(x * x + y * y + z * z)
    declination = math.degrees(math.asin(z / r))
    right_ascension = math.degrees(math.atan2(y, x))
    longitude = right_ascension - calculate_gmst(timestamp)
    longitude = ((longitude + 180.0) % 360.0) - 180.0
    return declination, longitude


def get_sun_elevation(
    target_lat: float, target_lon: float, timestamp: datetime
) -> float:
    """
    Get the sun elevation angle at a ground location.

    Args:
        target_lat: Latitude in degrees
        target_lon: Longitude in degrees
        timestamp: UTC datetime

    Returns:
        Sun elevation angle in degrees (positive = above horizon, negative = below)
    """
    sun = np.array(calculate_sun_position(timestamp))

    gmst = calculate_gmst(timestamp)
    lon_rad = math.radians(target_lon + gmst)
    lat_rad = math.radians(target_lat)

    # Ground point in ECI
    up_vec = np.array(
        [
            math.cos(lat_rad) * math.cos(lon_rad),
            math.cos(lat_rad) * math.sin(lon_rad),
            math.sin(lat_rad),
        ]
    )
    sun_vec = sun - up_vec * EARTH_RADIUS_KM
    sun_unit = sun_vec / np.linalg.norm(sun_vec)

    sin_elevation = float(np.dot(sun_unit, up_vec))
    return math.degrees(math.asin(max(-1.0, min(1.0, sin_elevation))))


def is_object_illuminated(
    object_eci: Sequence[float], timestamp: datetime
) -> bool:
    """
    Check if an orbiting object is in sunlight.

    The object is lit when it is on the sun side of the Earth, or when on
    the night side its perpendicular distance from the Earth-Sun line is
    larger than the Earth's radius. This is a cylindrical shadow model,
    not a conical umbra/penumbra one.

    Args:
        object_eci: Object position (x, y, z) in ECI, kilometers
        timestamp: UTC datetime

    Returns:
        True if the object is illuminated
    """
    obj = np.asarray(object_eci, dtype=float)
    sun = np.array(calculate_sun_position(timestamp))

    dot_product = float(np.dot(obj, sun))
    if dot_product > 0:
        return True

    obj_mag_sq = float(np.dot(obj, obj))
    sun_mag_sq = float(np.dot(sun, sun))
    perpendicular_sq = obj_mag_sq - dot_product**2 / sun_mag_sq
    return perpendicular_sq > EARTH_EQUATORIAL_RADIUS_KM**2


@dataclass(frozen=True)
class SunTimes:
    """Sunrise and sunset for one solar day at a location."""

    sunrise: Optional[datetime]
    sunset: Optional[datetime]
    polar: Optional[str] = None  # "day" (sun never sets) or "night" (never rises)


def _from_julian(julian_date: float) -> datetime:
    return datetime(1970, 1, 1) + timedelta(days=julian_date + 0.5 - UNIX_EPOCH_JD)


def sun_times(timestamp: datetime, latitude: float, longitude: float) -> SunTimes:
    """
    Compute sunrise and sunset for the solar day nearest ``timestamp``.

    Follows the standard sunrise equation: solar transit for the local
    longitude, the sun's declination on that day and the hour angle at
    which the upper limb touches the refracted horizon.

    Args:
        timestamp: UTC datetime
        latitude: Observer latitude in degrees
        longitude: Observer longitude in degrees

    Returns:
        SunTimes with naive UTC datetimes. At high latitudes, when the sun
        never rises or never sets, sunrise and sunset are None and
        ``polar`` says which case applies.
    """
    rad = math.pi / 180.0
    j0 = 0.0009
    lw = rad * -longitude
    phi = rad * latitude
    days = _days_since_j2000(timestamp)

    cycle = math.floor(days - j0 - lw / (2 * math.pi) + 0.5)
    solar_day = j0 + lw / (2 * math.pi) + cycle

    mean_anomaly = rad * (357.5291 + 0.98560028 * solar_day)
    center = rad * (
        1.9148 * math.sin(mean_anomaly)
        + 0.02 * math.sin(2 * mean_anomaly)
        + 0.0003 * math.sin(3 * mean_anomaly)
    )
    perihelion = rad * 102.9372
    ecliptic_longitude = mean_anomaly + center + perihelion + math.pi
    obliquity = rad * 23.4397
    declination = math.asin(math.sin(obliquity) * math.sin(ecliptic_longitude))

    def transit(approx: float) -> float:
        return (
            J2000_JD
            + approx
            + 0.0053 * math.sin(mean_anomaly)
            - 0.0069 * math.sin(2 * ecliptic_longitude)
        )

    j_noon = transit(solar_day)

    cos_hour_angle = (
        math.sin(rad * SUNRISE_ALTITUDE_DEG) - math.sin(phi) * math.sin(declination)
    ) / (math.cos(phi) * math.cos(declination))

    if cos_hour_angle > 1.0:
        return SunTimes(None, None, polar="night")
    if cos_hour_angle < -1.0:
        return SunTimes(None, None, polar="day")

    hour_angle = math.acos(cos_hour_angle)
    j_set = transit(j0 + (hour_angle + lw) / (2 * math.pi) + cycle)
    j_rise = j_noon - (j_set - j_noon)

    return SunTimes(sunrise=_from_julian(j_rise), sunset=_from_julian(j_set))


def is_observer_in_darkness(
    timestamp: datetime,
    latitude: float,
    longitude: float,
    grace_minutes: float = DEFAULT_GRACE_PERIOD_MINUTES,
) -> bool:
    """
    Check whether the sky is dark enough to see satellites.

    Darkness starts ``grace_minutes`` after sunset and ends ``grace_minutes``
    before sunrise, which leaves out the bright part of twilight.

    Args:
        timestamp: UTC datetime
        latitude: Observer latitude in degrees
        longitude: Observer longitude in degrees
        grace_minutes: Twilight margin in minutes

    Returns:
        True if the observer is in darkness
    """
    timestamp = to_naive_utc(timestamp)
    times = sun_times(timestamp, latitude, longitude)

    if times.polar == "night":
        return True
    if times.polar == "day":
        return False

    grace = timedelta(minutes=grace_minutes)
    evening_limit = times.sunset + grace
    morning_limit = times.sunrise - grace
    return timestamp > evening_limit or timestamp < morning_limit
