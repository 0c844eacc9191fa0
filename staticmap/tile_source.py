"""
Tile source gateway.

Fetches single raster tiles from a slippy-map server, consulting the tile disk
cache first. The gateway owns the timeouts and never retries: connecting is
bounded by connect_timeout, each socket read by read_timeout, and the whole
download by total_timeout (checked between body chunks, so one tile costs at
most total_timeout + read_timeout). The caller gets None instead of an
exception.

Usage:
    src = TileSource(cache=TileDiskCache("cache/tiles"))
    data = src.fetch("https://tile.openstreetmap.org/{Z}/{X}/{Y}.png", TileCoord(4823, 6160, 14))
    if data:
        # data -> encoded tile bytes (PNG/JPEG as served)
        pass
"""

from __future__ import annotations

import time
from typing import Optional, Tuple

import requests

from common.logging_setup import fields, get_logger
from common.types import TileCoord
from staticmap.tile_cache import TileDiskCache


log = get_logger(__name__)

CHUNK_SIZE = 16 * 1024

# Monotonic clock used for download deadlines.
_now = time.monotonic


def tile_url(template: str, tile: TileCoord) -> str:
    """Fill {Z}/{X}/{Y} (either case) in a tile URL template."""
    url = template
    for name, value in (("Z", tile.zoom), ("X", tile.x), ("Y", tile.y)):
        url = url.replace("{" + name + "}", str(value)).replace("{" + name.lower() + "}", str(value))
    return url


class TileSource:
    def __init__(
        self,
        cache: Optional[TileDiskCache] = None,
        session: Optional[requests.Session] = None,
        user_agent: str = "staticmaplite-py/0.4",
        connect_timeout: float = 3.0,
        read_timeout: float = 5.0,
        total_timeout: float = 10.0,
    ):
        """
        Params:
            cache: tile disk cache; None disables tile caching
            session: optional requests.Session for connection reuse
            user_agent: sent with every tile request (tile servers require one)
            connect_timeout, read_timeout: seconds, handed to requests
            total_timeout: seconds of wall clock per tile, body download included
        """
        self.cache = cache
        self.session = session or requests.Session()
        self.user_agent = user_agent
        self.timeout: Tuple[float, float] = (float(connect_timeout), float(read_timeout))
        self.total_timeout = float(total_timeout)

    # ----------------------------
    # Public API
    # ----------------------------
    def fetch(self, template: str, tile: TileCoord) -> Optional[bytes]:
        """
        Return encoded tile bytes, or None on any failure (network error,
        timeout, non-200, empty or non-image body).
        """
        url = tile_url(template, tile)
        if self.cache is not None:
            cached = self.cache.get(url)
            if cached:
                log.debug("tile cache hit %s", url)
                return cached

        data = self._download(url)
        if data and self.cache is not None:
            self.cache.put(url, data)
        return data

    # ----------------------------
    # Internals
    # ----------------------------
    def _download(self, url: str) -> Optional[bytes]:
        deadline = _now() + self.total_timeout
        try:
            r = self.session.get(url, timeout=self.timeout, headers={"User-Agent": self.user_agent}, stream=True)
        except requests.RequestException as e:
            log.warning("tile fetch failed: %s (%s)", url, e)
            return None
        try:
            if r.status_code != 200:
                log.warning("tile fetch failed: %s status=%s", url, r.status_code)
                return None
            ctype = (r.headers.get("Content-Type") or "").lower()
            if ctype and not ctype.startswith("image/"):
                # error pages served with 200 must not poison the cache
                log.warning("tile fetch returned non-image content: %s (%s)", url, ctype)
                return None
            data = self._read_body(r, deadline)
        except requests.RequestException as e:
            log.warning("tile fetch failed: %s (%s)", url, e)
            return None
        finally:
            r.close()

        if data is None:
            log.warning("tile fetch exceeded %.1fs: %s", self.total_timeout, url, extra=fields(url=url, timeout=self.total_timeout))
            return None
        if not data:
            log.warning("tile fetch returned an empty body: %s", url)
            return None
        return data

    @staticmethod
    def _read_body(r: requests.Response, deadline: float) -> Optional[bytes]:
        """Body bytes, or None once the deadline passes mid-download."""
        buf = bytearray()
        for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
            if chunk:
                buf.extend(chunk)
            if _now() > deadline:
                return None
        return bytes(buf)
