"""
Geofence validation service.
Uses Haversine formula to calculate distance between points.
"""
import math
from typing import Optional, Tuple

from .errors import MissingLocation, OutOfRange

# Earth radius in meters
EARTH_RADIUS_M = 6371000

Point = Tuple[float, float]  # (latitude, longitude)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_meters(point_a: Point, point_b: Point) -> float:
    return haversine_distance(point_a[0], point_a[1], point_b[0], point_b[1])


def is_within_radius(point: Point, center: Point, radius_meters: float) -> bool:
    return distance_meters(point, center) <= radius_meters


def validate_location(policy, point: Optional[Point]) -> Optional[float]:
    """
    Enforce the company GPS policy for a clock event.

    Returns the measured distance when a check ran, None otherwise.
    Raises MissingLocation when GPS is required but no coordinates were sent,
    and OutOfRange when the point lies outside the configured radius.
    """
    if not policy.require_gps:
        return None

    if point is None or point[0] is None or point[1] is None:
        raise MissingLocation()

    center = policy.company_center
    if center is None:
        # GPS is captured but there is no center to measure against
        return None

    distance = distance_meters(point, center)
    if distance > policy.max_gps_radius_meters:
        raise OutOfRange(distance, policy.max_gps_radius_meters)
    return distance
