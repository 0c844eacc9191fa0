from __future__ import annotations

import io
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, UnidentifiedImageError

from common.geo import TILE_SIZE, init_coords
from common.logging_setup import fields, get_logger
from common.types import TileCoord, Viewport


log = get_logger(__name__)

PLACEHOLDER_FILL = (221, 221, 221, 255)
PLACEHOLDER_TEXT = (160, 0, 0, 255)

# (template, tile) -> bytes or None
FetchFn = Callable[[str, TileCoord], Optional[bytes]]


@dataclass(frozen=True)
class TileGrid:
    """Inclusive tile index range covering a viewport, plus the pixel origin of tile (start_x, start_y)."""
    zoom: int
    start_x: int
    end_x: int
    start_y: int
    end_y: int
    origin_x: int
    origin_y: int

    @classmethod
    def for_viewport(cls, vp: Viewport) -> "TileGrid":
        cx, cy, offset_x, offset_y = init_coords(vp.center, vp.zoom)
        half_w = (vp.width / TILE_SIZE) / 2.0
        half_h = (vp.height / TILE_SIZE) / 2.0
        start_x = math.floor(cx - half_w)
        start_y = math.floor(cy - half_h)
        # sub-tile offset + half viewport + whole tiles between start and center tile
        origin_x = offset_x + vp.width // 2 + (start_x - math.floor(cx)) * TILE_SIZE
        origin_y = offset_y + vp.height // 2 + (start_y - math.floor(cy)) * TILE_SIZE
        return cls(
            zoom=vp.zoom,
            start_x=start_x,
            end_x=math.ceil(cx + half_w),
            start_y=start_y,
            end_y=math.ceil(cy + half_h),
            origin_x=origin_x,
            origin_y=origin_y,
        )

    def tiles(self) -> List[Tuple[int, int]]:
        """(x, y) pairs, row-major over x then y."""
        return [(x, y) for x in range(self.start_x, self.end_x + 1) for y in range(self.start_y, self.end_y + 1)]

    def dest(self, x: int, y: int) -> Tuple[int, int]:
        return (self.origin_x + (x - self.start_x) * TILE_SIZE, self.origin_y + (y - self.start_y) * TILE_SIZE)

    def world_tile(self, x: int, y: int) -> Optional[TileCoord]:
        """Tile to request for grid cell (x, y): x wraps around the world, y off the world is None."""
        n = 2 ** self.zoom
        if y < 0 or y >= n:
            return None
        return TileCoord(x=x % n, y=y, zoom=self.zoom)


def placeholder_tile() -> Image.Image:
    """Solid grey tile labelled 'err', drawn where a tile could not be fetched."""
    img = Image.new("RGBA", (TILE_SIZE, TILE_SIZE), PLACEHOLDER_FILL)
    draw = ImageDraw.Draw(img)
    draw.text((TILE_SIZE // 2 - 8, TILE_SIZE // 2 - 6), "err", fill=PLACEHOLDER_TEXT)
    return img


def decode_tile(data: Optional[bytes]) -> Optional[Image.Image]:
    if not data:
        return None
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log.warning("undecodable tile (%d bytes): %s", len(data), e)
        return None
    return img.convert("RGBA")


class GridCompositor:
    """
    Builds the base map: fetches every tile of the grid (bounded parallelism)
    and pastes them onto a fresh canvas. A failed tile becomes a placeholder;
    it never fails the map.
    """
    def __init__(self, fetch: FetchFn, max_workers: int = 8):
        self.fetch = fetch
        self.max_workers = max(1, int(max_workers))

    def compose(self, vp: Viewport, template: str) -> Image.Image:
        grid = TileGrid.for_viewport(vp)
        cells = grid.tiles()
        images = self._fetch_all(grid, cells, template)

        canvas = Image.new("RGBA", (vp.width, vp.height), PLACEHOLDER_FILL)
        failed = 0
        for x, y in cells:
            tile_img = images.get((x, y))
            if tile_img is None:
                tile_img = placeholder_tile()
                failed += 1
            canvas.paste(tile_img, grid.dest(x, y))
        if failed:
            log.warning("%d of %d tiles replaced by placeholders", failed, len(cells), extra=fields(zoom=vp.zoom))
        return canvas

    def _fetch_one(self, template: str, tile: Optional[TileCoord]) -> Optional[Image.Image]:
        if tile is None:
            return None
        try:
            data = self.fetch(template, tile)
        except Exception as e:
            # a broken fetcher must not take sibling tiles down with it
            log.exception("tile fetch raised for %s: %s", tile.zxy, e)
            return None
        return decode_tile(data)

    def _fetch_all(self, grid: TileGrid, cells: List[Tuple[int, int]], template: str) -> Dict[Tuple[int, int], Optional[Image.Image]]:
        workers = min(self.max_workers, len(cells)) or 1
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tile") as pool:
            futures = {cell: pool.submit(self._fetch_one, template, grid.world_tile(*cell)) for cell in cells}
            return {cell: fut.result() for cell, fut in futures.items()}
