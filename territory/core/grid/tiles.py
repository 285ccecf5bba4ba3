"""
Tile Grid

Fixed-precision partition of the Earth's surface used as the unit of
territory ownership.

Canonical encoding: standard base32 geohash (alphabet
0123456789bcdefghjkmnpqrstuvwxyz), longitude bit first, a coordinate exactly
on a bisection line goes to the lower half. At precision 7 a cell spans
0.001373° of latitude and of longitude (~150 m N-S, less E-W away from the
equator). Any component that agrees on this encoding agrees on tile
boundaries.

Polygons handed to the scan may use unwrapped longitudes (e.g. 179.99 to
180.01 for a path across the antimeridian); sampled longitudes are folded
back into [-180, 180) before encoding.

Dependencies: pygeohash, shapely, pyproj
"""

import functools
import logging
import math
from typing import List, Sequence, Tuple, Union

import pygeohash as pgh
import pyproj
from shapely.geometry import Polygon, box
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep

from territory.core.models import BoundingBox
from territory.utils.constants import (
    GEOHASH_BASE32,
    METERS_PER_KM,
    TILE_PRECISION,
    TILE_SCAN_MARGIN_DEG,
    TILE_SCAN_STEP_DEG,
)
from territory.utils.error_handling import CoordinateRangeError, InvalidTileIdError

logger = logging.getLogger(__name__)

_BASE32_CHARS = frozenset(GEOHASH_BASE32)

# Geodesic area on the WGS84 ellipsoid
GEOD = pyproj.Geod(ellps="WGS84")

Ring = List[Tuple[float, float]]


def wrap_lng(lng: float) -> float:
    """Fold a longitude into [-180, 180)."""
    if -180.0 <= lng < 180.0:
        return lng
    return (lng + 180.0) % 360.0 - 180.0


def tile_id_for(lat: float, lng: float, precision: int = TILE_PRECISION) -> str:
    """
    Geohash of a coordinate at the grid precision.

    Raises:
        CoordinateRangeError: If lat/lng are not finite WGS84 degrees
    """
    if not (math.isfinite(lat) and math.isfinite(lng)) or abs(lat) > 90.0 or abs(lng) > 180.0:
        raise CoordinateRangeError(f"Coordinate out of range: lat={lat}, lng={lng}")
    return pgh.encode(lat, lng, precision=precision)


@functools.lru_cache(maxsize=65536)
def tile_bounds(tile_id: str, precision: int = TILE_PRECISION) -> BoundingBox:
    """
    Bounding rectangle of a tile.

    Raises:
        InvalidTileIdError: If tile_id is not a geohash of the grid precision
    """
    if not isinstance(tile_id, str) or len(tile_id) != precision:
        raise InvalidTileIdError(f"Tile id must be a {precision}-character geohash, got {tile_id!r}")
    for c in tile_id:
        if c not in _BASE32_CHARS:
            raise InvalidTileIdError(f"Invalid geohash character {c!r} in tile id {tile_id!r}")

    lat, lng, lat_err, lng_err = pgh.decode_exactly(tile_id)
    return BoundingBox(
        min_lat=lat - lat_err,
        max_lat=lat + lat_err,
        min_lng=lng - lng_err,
        max_lng=lng + lng_err,
    )


def tile_polygon(tile_id: str, precision: int = TILE_PRECISION) -> Ring:
    """
    Closed 5-point ring of a tile's rectangle in [lng, lat] order.

    Raises:
        InvalidTileIdError: If tile_id is not a geohash of the grid precision
    """
    b = tile_bounds(tile_id, precision)
    return [
        (b.min_lng, b.min_lat),
        (b.max_lng, b.min_lat),
        (b.max_lng, b.max_lat),
        (b.min_lng, b.max_lat),
        (b.min_lng, b.min_lat),  # Close the ring
    ]


def tile_shape(tile_id: str, precision: int = TILE_PRECISION) -> Polygon:
    """Tile rectangle as a shapely Polygon (lng/lat axes)."""
    return Polygon(tile_polygon(tile_id, precision))


def tile_area_km2(tile_id: str, precision: int = TILE_PRECISION) -> float:
    """Geodesic area of a tile on the WGS84 ellipsoid, in km²."""
    ring = tile_polygon(tile_id, precision)
    lngs = [p[0] for p in ring]
    lats = [p[1] for p in ring]
    area_m2, _ = GEOD.polygon_area_perimeter(lngs, lats)
    return abs(area_m2) / (METERS_PER_KM * METERS_PER_KM)


def tiles_intersecting(
    polygon: Union[BaseGeometry, Sequence[Tuple[float, float]]],
    step_deg: float = TILE_SCAN_STEP_DEG,
    margin_deg: float = TILE_SCAN_MARGIN_DEG,
    precision: int = TILE_PRECISION
) -> List[str]:
    """
    Tiles whose rectangle intersects a polygon, in discovery order.

    Samples the polygon's bounding box, grown by margin_deg, on a step_deg
    lat/lng grid (latitude rows south to north, longitude west to east) and
    keeps each distinct sampled tile that intersects the polygon. With
    step_deg below the cell edge and margin_deg at or above it, every tile
    touching the bounding box receives at least one sample.

    Sample rows falling in an already scanned tile row are skipped, as are
    rows whose strip misses the polygon. Within a row only the longitude
    span where the strip meets the polygon is sampled, and consecutive
    samples inside the same tile are encoded once.

    Args:
        polygon: shapely geometry, or a ring of (lng, lat) pairs
        step_deg: Sampling step in degrees
        margin_deg: Margin added to every side of the bounding box
        precision: Geohash precision

    Returns:
        Distinct tile ids in scan order (deterministic for a given input)
    """
    if not isinstance(polygon, BaseGeometry):
        polygon = Polygon(polygon)
    if polygon.is_empty:
        return []
    if step_deg <= 0:
        raise ValueError(f"step_deg must be positive, got {step_deg}")

    min_lng, min_lat, max_lng, max_lat = polygon.bounds
    min_lat = max(-90.0, min_lat - margin_deg)
    max_lat = min(90.0, max_lat + margin_deg)
    min_lng = min_lng - margin_deg
    max_lng = min(max_lng + margin_deg, min_lng + 360.0)

    # Index-based sampling keeps the grid free of accumulated float drift
    lat_steps = int(math.floor((max_lat - min_lat) / step_deg)) + 1
    lng_steps = int(math.floor((max_lng - min_lng) / step_deg)) + 1

    target = prep(polygon)
    clip = polygon.is_valid
    seen = set()
    tiles: List[str] = []
    last_row = None
    rows_scanned = 0
    encoded = 0
    for i in range(lat_steps):
        lat = min_lat + i * step_deg
        row = tile_bounds(tile_id_for(lat, 0.0, precision), precision)
        # Same tile row, same longitudes: same tiles as the previous row
        if row.min_lat == last_row:
            continue
        last_row = row.min_lat

        strip = box(min_lng, row.min_lat, max_lng, row.max_lat)
        if not target.intersects(strip):
            continue
        rows_scanned += 1
        hit_lo, hit_hi = min_lng, max_lng
        if clip:
            clipped = polygon.intersection(strip)
            if clipped.is_empty:
                continue
            hit_lo, _, hit_hi, _ = clipped.bounds
        cell_w = row.max_lng - row.min_lng
        j_lo = max(0, int(math.floor((hit_lo - cell_w - min_lng) / step_deg)))
        j_hi = min(lng_steps - 1, int(math.ceil((hit_hi + cell_w - min_lng) / step_deg)))

        current = None
        for j in range(j_lo, j_hi + 1):
            lng = min_lng + j * step_deg
            wrapped = wrap_lng(lng)
            if current is not None and current.min_lng < wrapped <= current.max_lng:
                continue
            tile_id = tile_id_for(lat, wrapped, precision)
            encoded += 1
            current = tile_bounds(tile_id, precision)
            if tile_id in seen:
                continue
            seen.add(tile_id)
            # Shift the tile into the polygon's longitude frame
            offset = lng - wrapped
            rect = box(current.min_lng + offset, current.min_lat, current.max_lng + offset, current.max_lat)
            if target.intersects(rect):
                tiles.append(tile_id)

    logger.debug(
        f"Scanned {rows_scanned} tile rows ({encoded} encodes), {len(seen)} candidate tiles, "
        f"{len(tiles)} intersecting"
    )
    return tiles
