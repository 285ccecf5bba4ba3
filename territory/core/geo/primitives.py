"""
Geometry Primitives

Great-circle helpers over WGS84 coordinates. All public functions take and
return degrees; conversion to radians happens internally. Points are any
objects with `lat` and `lng` attributes (GPSSample, LatLng).
"""

import math
from typing import Iterable

from territory.core.models import BoundingBox, PointLike, PointSequence
from territory.utils.constants import EARTH_RADIUS_M
from territory.utils.error_handling import EmptyInputError


def distance_meters(a: PointLike, b: PointLike) -> float:
    """
    Haversine distance between two points in meters.

    Accurate to ~0.5% for separations up to 1000 km (spherical Earth).
    """
    rlat1, rlng1, rlat2, rlng2 = map(math.radians, (a.lat, a.lng, b.lat, b.lng))
    dlat, dlng = rlat2 - rlat1, rlng2 - rlng1
    h = math.sin(dlat/2)**2 + math.cos(rlat1)*math.cos(rlat2)*math.sin(dlng/2)**2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def bearing_degrees(a: PointLike, b: PointLike) -> float:
    """Initial bearing from a to b, normalized to [0, 360)."""
    rlat1, rlat2 = math.radians(a.lat), math.radians(b.lat)
    dlng = math.radians(b.lng - a.lng)
    y = math.sin(dlng) * math.cos(rlat2)
    x = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(dlng)
    bearing = math.degrees(math.atan2(y, x)) % 360.0
    # -1e-15 % 360 rounds to 360.0
    return 0.0 if bearing >= 360.0 else bearing


def bearing_deviation(a: PointLike, b: PointLike, c: PointLike) -> float:
    """
    Signed turn at b between legs a->b and b->c, in (-180, 180].

    0 means the path continues straight through b.
    """
    deviation = bearing_degrees(b, c) - bearing_degrees(a, b)
    while deviation > 180.0:
        deviation -= 360.0
    while deviation <= -180.0:
        deviation += 360.0
    return deviation


def bounding_box(points: Iterable[PointLike]) -> BoundingBox:
    """
    Bounding box over a non-empty point set.

    Raises:
        EmptyInputError: If points is empty
    """
    points = list(points)
    if not points:
        raise EmptyInputError("bounding_box requires at least one point")

    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    return BoundingBox(
        min_lat=min(lats),
        max_lat=max(lats),
        min_lng=min(lngs),
        max_lng=max(lngs),
    )


def path_length_meters(points: PointSequence) -> float:
    """Sum of Haversine legs along an ordered point sequence."""
    if len(points) < 2:
        return 0.0
    return sum(distance_meters(points[i-1], points[i]) for i in range(1, len(points)))
