"""
Spherical-Earth geometry helpers.

This module provides the great-circle primitives used to build ground
tracks, radius circles and sensor view cones. All angles are in degrees
and all distances in kilometres unless stated otherwise.
"""

import math
from typing import List, Sequence, Tuple

# Constants
EARTH_RADIUS_KM = 6371.0
CONE_ARC_POINTS = 10

LatLon = Tuple[float, float]


def _safe(value: float, default: float = 0.0) -> float:
    return value if math.isfinite(value) else default


def destination_point(
    lat: float, lon: float, bearing_deg: float, distance_km: float
) -> LatLon:
    """
    Calculate the point reached by travelling along a great circle.

    Args:
        lat: Start latitude in degrees
        lon: Start longitude in degrees
        bearing_deg: Initial bearing in degrees (0 = North, 90 = East)
        distance_km: Distance to travel in kilometres

    Returns:
        Tuple of (latitude, longitude) in degrees. The longitude is not
        normalised so consecutive points stay continuous.
    """
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    bearing_rad = math.radians(bearing_deg)
    angular = distance_km / EARTH_RADIUS_KM

    sin_lat2 = math.sin(lat_rad) * math.cos(angular) + math.cos(lat_rad) * math.sin(
        angular
    ) * math.cos(bearing_rad)
    lat2_rad = math.asin(max(-1.0, min(1.0, sin_lat2)))

    y = math.sin(bearing_rad) * math.sin(angular) * math.cos(lat_rad)
    x = math.cos(angular) - math.sin(lat_rad) * math.sin(lat2_rad)
    # atan2(0, 0) at the poles is defined, but guard against NaN inputs
    lon2_rad = lon_rad + math.atan2(y, x)

    return (
        _safe(math.degrees(lat2_rad)),
        _safe(math.degrees(lon2_rad), lon if math.isfinite(lon) else 0.0),
    )


def bearing(p1: Sequence[float], p2: Sequence[float]) -> float:
    """
    Initial great-circle bearing from p1 to p2.

    Args:
        p1: (latitude, longitude) of the start point
        p2: (latitude, longitude) of the end point

    Returns:
        Bearing in degrees, normalised to [0, 360)
    """
    lat1, lon1 = math.radians(p1[0]), math.radians(p1[1])
    lat2, lon2 = math.radians(p2[0]), math.radians(p2[1])

    y = math.sin(lon2 - lon1) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(
        lon2 - lon1
    )
    result = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    return _safe(result)


def great_circle_distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """
    Calculate great circle distance between two points on Earth.

    Args:
        p1: (latitude, longitude) of the first point in degrees
        p2: (latitude, longitude) of the second point in degrees

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(p1[0])
    lat2_rad = math.radians(p2[0])
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(p2[1] - p1[1])

    # Haversine formula
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    a = max(0.0, min(1.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def view_cone_polygon(
    center: Sequence[float], heading: float, angle: float, radius_km: float
) -> List[LatLon]:
    """Triangle from the centre to the two edges of a view cone."""
    left = (heading - angle / 2 + 360.0) % 360.0
    right = (heading + angle / 2) % 360.0
    lat, lon = center[0], center[1]
    return [
        (lat, lon),
        destination_point(lat, lon, left, radius_km),
        destination_point(lat, lon, right, radius_km),
    ]


def cone_segment_polygon(
    center: Sequence[float],
    heading: float,
    angle: float,
    inner_radius_km: float,
    outer_radius_km: float,
) -> List[LatLon]:
    """
    Build an annular sector polygon for sensor field-of-view rendering.

    The outer arc is walked left to right and the inner arc right to left
    so the result is a closed ring. With a zero inner radius the polygon
    starts at the centre instead.

    Args:
        center: (latitude, longitude) of the apex
        heading: Bearing of the cone axis in degrees
        angle: Full opening angle of the cone in degrees
        inner_radius_km: Inner arc radius (0 for a plain sector)
        outer_radius_km: Outer arc radius

    Returns:
        List of (latitude, longitude) vertices
    """
    lat, lon = center[0], center[1]
    left = (heading - angle / 2 + 360.0) % 360.0

    outer = [
        destination_point(lat, lon, left + angle * i / CONE_ARC_POINTS, outer_radius_km)
        for i in range(CONE_ARC_POINTS + 1)
    ]

    if inner_radius_km == 0:
        return [(lat, lon)] + outer

    inner = [
        destination_point(lat, lon, left + angle * i / CONE_ARC_POINTS, inner_radius_km)
        for i in range(CONE_ARC_POINTS, -1, -1)
    ]
    return outer + inner


def circle_polygon(
    center: Sequence[float], radius_km: float, points: int = 360
) -> List[LatLon]:
    """Closed outline of a geodesic circle around ``center``."""
    return [
        destination_point(center[0], center[1], 360.0 * i / points, radius_km)
        for i in range(points + 1)
    ]


def unwrap_longitude(lon: float, previous: float) -> float:
    """
    Shift ``lon`` by multiples of 360° so it stays within 180° of ``previous``.

    Keeps ground-track polylines continuous across the antimeridian.
    """
    while lon - previous > 180.0:
        lon -= 360.0
    while lon - previous < -180.0:
        lon += 360.0
    return lon


def normalize_longitude(lon: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    return ((lon + 180.0) % 360.0) - 180.0
