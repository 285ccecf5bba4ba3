"""
Claim Geometry Builder

Turns a validated trace into its claim polygon and the tiles it touches.
Linear buffer approach:

1. Unwrap longitudes so the path is continuous across the antimeridian
2. Work in a metric CRS centred on the trace (azimuthal equidistant) so the
   buffer distance is in true meters anywhere on the globe
3. Buffer the path with round caps/joins at a fixed quarter-circle resolution
4. Reproject the polygon back to WGS84 and scan it against the tile grid

The claim polygon keeps the unwrapped longitudes, so a path across the
antimeridian yields e.g. 179.99..180.01 rather than a globe-wide band.

A path with fewer than two distinct positions cannot be buffered as a line;
its samples are tiled directly instead.

Dependencies: shapely, pyproj
"""

import logging
from typing import List, Optional, Sequence, Tuple

import pyproj
from pyproj.exceptions import ProjError
from shapely.affinity import translate
from shapely.errors import GEOSException
from shapely.geometry import LineString, Polygon
from shapely.ops import transform

from territory.core.geo.primitives import bounding_box
from territory.core.grid.tiles import tile_id_for, tiles_intersecting
from territory.core.models import ClaimGeometry, LatLng, Trace
from territory.rulebook import ClaimRules, load_rules
from territory.utils.constants import METERS_PER_KM
from territory.utils.error_handling import handle_specific_exceptions

logger = logging.getLogger(__name__)

# Coordinate Reference Systems
WGS84 = pyproj.CRS("EPSG:4326")  # GPS coordinates (lat/lon)


class DegeneratePathError(ValueError):
    """Raised when a path has too few distinct positions to buffer."""
    pass


def local_metric_crs(center: LatLng) -> pyproj.CRS:
    """Azimuthal equidistant CRS centred on a point, in meters."""
    return pyproj.CRS(
        f"+proj=aeqd +lat_0={center.lat} +lon_0={center.lng} +datum=WGS84 +units=m +no_defs"
    )


def unwrap_path(path: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
    """
    Make a (lng, lat) path continuous in longitude.

    Each longitude is shifted by a multiple of 360° so it lies within 180° of
    the previous point; the first point is kept as is.
    """
    unwrapped: List[Tuple[float, float]] = []
    prev = None
    for lng, lat in path:
        if prev is not None:
            lng += 360.0 * round((prev - lng) / 360.0)
        unwrapped.append((lng, lat))
        prev = lng
    return unwrapped


@handle_specific_exceptions(
    (DegeneratePathError, GEOSException, ProjError),
    error_context="Claim buffer failed, tiling samples instead",
    log_level=logging.WARNING,
)
def buffer_path(
    path: Sequence[Tuple[float, float]],  # (lng, lat) in WGS84
    buffer_m: float,
    quad_segs: int
) -> Polygon:
    """
    Buffer a path to a claim polygon.

    Args:
        path: Ordered (lng, lat) coordinates in WGS84
        buffer_m: Buffer radius in meters
        quad_segs: Segments per quarter circle for round caps and joins

    Returns:
        Polygon in WGS84 (lng/lat axes), longitudes unwrapped along the path

    Raises:
        DegeneratePathError: If the path has fewer than two distinct positions
    """
    unwrapped = unwrap_path(path)
    distinct = list(dict.fromkeys(unwrapped))
    if len(distinct) < 2:
        raise DegeneratePathError(f"Path has {len(distinct)} distinct position(s), cannot buffer")

    center = bounding_box([LatLng(lat, lng) for lng, lat in distinct]).center

    # Buffered about lon 0, then shifted back to the path's longitudes
    local = local_metric_crs(LatLng(center.lat, 0.0))
    to_local = pyproj.Transformer.from_crs(WGS84, local, always_xy=True)
    to_wgs84 = pyproj.Transformer.from_crs(local, WGS84, always_xy=True)

    line = LineString([(lng - center.lng, lat) for lng, lat in unwrapped])
    polygon_local = transform(to_local.transform, line).buffer(buffer_m, quad_segs=quad_segs)
    polygon = translate(transform(to_wgs84.transform, polygon_local), xoff=center.lng)

    if polygon.is_empty or not isinstance(polygon, Polygon):
        raise DegeneratePathError(f"Buffer produced {polygon.geom_type}, expected a Polygon")
    return polygon


def _tiles_from_samples(trace: Trace, precision: int) -> List[str]:
    return list(dict.fromkeys(tile_id_for(s.lat, s.lng, precision) for s in trace.samples))


def build_claim_geometry(trace: Trace, rules: Optional[ClaimRules] = None) -> ClaimGeometry:
    """
    Claim polygon and touched tiles for a trace.

    Args:
        trace: Trace that passed validation
        rules: Claim rules (defaults to the process-wide rules)

    Returns:
        ClaimGeometry with tiles in discovery order; buffered_polygon is None
        when the raw samples were tiled instead
    """
    rules = rules or load_rules()
    grid = rules.grid
    buffer_m = rules.claim.buffer_km * METERS_PER_KM

    try:
        polygon = buffer_path(trace.path(), buffer_m, rules.claim.quad_segs)
    except (DegeneratePathError, GEOSException, ProjError):
        # buffer_path has already logged the cause
        tiles = _tiles_from_samples(trace, grid.precision)
        logger.debug(f"Per-sample fallback: {len(tiles)} tiles")
        return ClaimGeometry(touched_tiles=tuple(tiles))

    tiles = tiles_intersecting(
        polygon,
        step_deg=grid.scan_step_deg,
        margin_deg=grid.scan_margin_deg,
        precision=grid.precision,
    )
    logger.debug(f"Claim polygon area {polygon.area:.8f} deg², {len(tiles)} tiles")
    return ClaimGeometry(touched_tiles=tuple(tiles), buffered_polygon=polygon)
