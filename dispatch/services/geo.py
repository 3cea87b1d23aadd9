"""Straight-line distance and travel-time estimates"""

import math
from typing import Tuple

from dispatch.exceptions import InvalidInputError

# (longitude, latitude)
Point = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0

# km/h by vehicle class; anything else travels at the car speed
SPEED_KMH = {
    "bicycle": 15.0,
    "motorcycle": 30.0,
    "car": 40.0,
}
DEFAULT_SPEED_KMH = 40.0


def distance_km(a: Point, b: Point) -> float:
    """Haversine great-circle distance between two (longitude, latitude) points"""
    lon1, lat1 = a
    lon2, lat2 = b
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def eta_minutes(distance: float, vehicle_type) -> float:
    """Travel time in minutes for the vehicle's speed class"""
    key = getattr(vehicle_type, "value", vehicle_type)
    return distance / SPEED_KMH.get(key, DEFAULT_SPEED_KMH) * 60


def validate_point(point: Point, field: str = "location") -> Point:
    """Reject coordinates outside the valid longitude/latitude ranges"""
    try:
        lon, lat = float(point[0]), float(point[1])
    except (TypeError, ValueError, IndexError):
        raise InvalidInputError(f"{field} must be a (longitude, latitude) pair", field=field)
    if math.isnan(lon) or math.isnan(lat) or not -180 <= lon <= 180 or not -90 <= lat <= 90:
        raise InvalidInputError(f"{field} coordinates are out of range", field=field)
    return (lon, lat)
