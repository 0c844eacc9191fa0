from __future__ import annotations

import math
from typing import Tuple

from common.types import BoundingBox


# Markers stay this many pixels away from the canvas edges.
MARKER_MARGIN_PX = 20


def angular_size(width: int, height: int, zoom: int, lat_center: float) -> Tuple[float, float]:
    """
    Degrees of longitude and latitude covered by a `width` x `height` px
    viewport at `zoom`. The latitude extent is scaled by cos(lat_center);
    without it the result would only be exact on the equator.
    """
    world_px = 2 ** (zoom + 8)
    deg_w = width * 360.0 / world_px
    lat_deg_per_px = 360.0 * math.cos(math.radians(lat_center)) / world_px
    return deg_w, lat_deg_per_px * height


def covers(box: BoundingBox, width: int, height: int, zoom: int) -> bool:
    deg_w, deg_h = angular_size(width, height, zoom, box.lat_center)
    return deg_w >= box.lon_size and deg_h >= box.lat_size


def center_from_markers(
    box: BoundingBox,
    width: int,
    height: int,
    max_zoom: int,
    min_zoom: int,
) -> Tuple[float, float, int]:
    """
    Best-fit center and zoom for a marker bounding box.

    Walks from `max_zoom` down to `min_zoom` and stops at the first zoom whose
    viewport covers the box. If none does, `min_zoom` is returned anyway.
    `width`/`height` are the usable size, i.e. already reduced by the margin.

    Returns:
        (lat_center, lon_center, zoom)
    """
    zoom = max_zoom
    while zoom > min_zoom and not covers(box, width, height, zoom):
        zoom -= 1
    return box.lat_center, box.lon_center, zoom


def fit_viewport(box: BoundingBox, width: int, height: int, min_zoom: int, max_zoom: int) -> Tuple[float, float, int]:
    """center_from_markers for a raw canvas size (margin applied here)."""
    return center_from_markers(
        box,
        width - MARKER_MARGIN_PX,
        height - MARKER_MARGIN_PX,
        max_zoom,
        min_zoom,
    )
