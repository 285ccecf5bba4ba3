from territory.core.grid.tiles import (
    tile_area_km2,
    tile_bounds,
    tile_id_for,
    tile_polygon,
    tile_shape,
    tiles_intersecting,
    wrap_lng,
)

__all__ = [
    "tile_area_km2",
    "tile_bounds",
    "tile_id_for",
    "tile_polygon",
    "tile_shape",
    "tiles_intersecting",
    "wrap_lng",
]
