from __future__ import annotations

from typing import Tuple
import math

from common.types import GeoPoint, Viewport


# Edge length of one tile in pixels. Must match the tile servers.
TILE_SIZE = 256

# Web Mercator is undefined at the poles; the square world ends here.
MAX_LATITUDE = 85.0511287798


# -------------------------
# Web Mercator tile space
# -------------------------
def lon_to_tile(lon: float, zoom: int) -> float:
    """Fractional tile x for a longitude (deg) at `zoom`."""
    return (lon + 180.0) / 360.0 * (2 ** zoom)


def lat_to_tile(lat: float, zoom: int) -> float:
    """
    Fractional tile y for a latitude (deg) at `zoom` (standard slippy-map formula).
    Latitudes beyond +-MAX_LATITUDE (poles included) land on the top or bottom edge.
    """
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    rad = lat * math.pi / 180.0
    return (1.0 - math.log(math.tan(rad) + 1.0 / math.cos(rad)) / math.pi) / 2.0 * (2 ** zoom)


def tile_to_lon(x: float, zoom: int) -> float:
    return x / (2 ** zoom) * 360.0 - 180.0


def tile_to_lat(y: float, zoom: int) -> float:
    # https://wiki.openstreetmap.org/wiki/Slippy_map_tilenames
    n = math.pi * (1.0 - 2.0 * y / (2 ** zoom))
    return math.degrees(math.atan(math.sinh(n)))


def init_coords(center: GeoPoint, zoom: int) -> Tuple[float, float, int, int]:
    """
    Fractional center tile and the sub-tile pixel offset of the tile origin.

    Returns:
        (center_x, center_y, offset_x, offset_y); offsets are <= 0.
    """
    cx = lon_to_tile(center.lon, zoom)
    cy = lat_to_tile(center.lat, zoom)
    offset_x = math.floor((math.floor(cx) - cx) * TILE_SIZE)
    offset_y = math.floor((math.floor(cy) - cy) * TILE_SIZE)
    return cx, cy, offset_x, offset_y


# -------------------------
# Canvas helpers
# -------------------------
def geo_to_canvas_px(point: GeoPoint, viewport: Viewport) -> Tuple[int, int]:
    """
    Pixel position of `point` on a logical canvas centred on the viewport.
    NOTE: No bounds checking; points off the canvas give off-canvas pixels.
    """
    cx = lon_to_tile(viewport.center.lon, viewport.zoom)
    cy = lat_to_tile(viewport.center.lat, viewport.zoom)
    px = math.floor(viewport.width / 2.0 - TILE_SIZE * (cx - lon_to_tile(point.lon, viewport.zoom)))
    py = math.floor(viewport.height / 2.0 - TILE_SIZE * (cy - lat_to_tile(point.lat, viewport.zoom)))
    return int(px), int(py)


def canvas_px_to_geo(px: float, py: float, viewport: Viewport) -> GeoPoint:
    """Inverse of geo_to_canvas_px (up to pixel flooring)."""
    cx = lon_to_tile(viewport.center.lon, viewport.zoom)
    cy = lat_to_tile(viewport.center.lat, viewport.zoom)
    tx = cx + (px - viewport.width / 2.0) / TILE_SIZE
    ty = cy + (py - viewport.height / 2.0) / TILE_SIZE
    return GeoPoint(tile_to_lat(ty, viewport.zoom), tile_to_lon(tx, viewport.zoom))
