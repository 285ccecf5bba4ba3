from territory.core.geo.primitives import (
    bearing_degrees,
    bearing_deviation,
    bounding_box,
    distance_meters,
    path_length_meters,
)

__all__ = [
    "bearing_degrees",
    "bearing_deviation",
    "bounding_box",
    "distance_meters",
    "path_length_meters",
]
