"""
Static map renderer and cache manager.

Order of checks for one request:
  1) HTTP conditional cache: If-None-Match against the cache key (no I/O at all)
  2) Composed-map disk cache: hit -> If-Modified-Since against the file mtime,
     else stored bytes; miss -> render, persist, return
  3) Tile disk cache: inside TileSource, per tile

Usage:
    renderer = StaticMapRenderer(load_settings())
    req = parse_params({"center": "40.714728,-73.998672", "zoom": "14", "size": "512x512"}, renderer.settings)
    resp = renderer.show_map(req)
    # resp.status -> 200 | 304, resp.body -> encoded image, resp.headers -> HTTP headers
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests
from PIL import Image, features

from common.logging_setup import fields, get_logger
from common.types import RenderRequest
from common.utils import http_date, parse_http_date
from staticmap import output
from staticmap.compositor import GridCompositor
from staticmap.config import Settings
from staticmap.markers import MarkerOverlay
from staticmap.tile_cache import MapDiskCache, TileDiskCache
from staticmap.tile_source import TileSource


log = get_logger(__name__)


def serialize_params(req: RenderRequest) -> str:
    """
    Canonical text form of everything that changes the rendered bytes.
    Markers are serialized in draw order, which is a total order, so input
    order inside the query does not matter.
    """
    vp = req.viewport
    payload = [
        vp.zoom,
        vp.center.lat,
        vp.center.lon,
        vp.width,
        vp.height,
        vp.scale,
        vp.format,
        req.maptype,
        [m.to_dict() for m in req.markers],
    ]
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def cache_key(req: RenderRequest) -> str:
    """Stable identity hash of a request; used as ETag and map cache file name."""
    return hashlib.md5(serialize_params(req).encode("utf-8")).hexdigest()


def etag_matches(header: Optional[str], key: str) -> bool:
    """If-None-Match check; accepts quoted, weak (W/) and comma separated tags and '*'."""
    if not header:
        return False
    for tag in header.split(","):
        tag = tag.strip()
        if tag == "*":
            return True
        if tag.startswith("W/"):
            tag = tag[2:]
        if tag.strip('"') == key:
            return True
    return False


@dataclass
class MapResponse:
    status: int
    body: bytes
    content_type: str
    headers: Dict[str, str] = field(default_factory=dict)
    cache_key: str = ""

    @property
    def not_modified(self) -> bool:
        return self.status == 304


class StaticMapRenderer:
    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        tile_source: Optional[TileSource] = None,
    ):
        """
        Params:
            settings: service configuration
            session: optional requests.Session handed to the default TileSource
            tile_source: replaces the default TileSource entirely (tests, custom transports)

        Raises RuntimeError if Pillow cannot encode PNG: no map could ever be produced.
        """
        if not features.check("zlib"):
            raise RuntimeError("Pillow was built without zlib support; PNG tiles cannot be decoded or encoded")

        self.settings = settings
        self.tile_cache = TileDiskCache(settings.tile_cache_dir)
        self.map_cache = MapDiskCache(settings.map_cache_dir)
        self.tile_source = tile_source or TileSource(
            cache=self.tile_cache if settings.use_tile_cache else None,
            session=session,
            user_agent=settings.user_agent,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            total_timeout=settings.total_timeout,
        )
        self.compositor = GridCompositor(self.tile_source.fetch, max_workers=settings.max_workers)
        self.overlay = MarkerOverlay(settings.marker_dir)

    # ----------------------------
    # Rendering
    # ----------------------------
    def compose(self, req: RenderRequest) -> Image.Image:
        """Logical-size canvas: tiles, markers, attribution. Not scaled."""
        vp = req.viewport
        template = self.settings.map_sources[req.maptype]
        canvas = self.compositor.compose(vp, template)
        if req.markers:
            self.overlay.place(canvas, vp, req.markers)
        return output.add_attribution(canvas, self.settings.attribution_logo)

    def render(self, req: RenderRequest) -> bytes:
        """Encoded image bytes, bypassing every cache tier."""
        t0 = time.perf_counter()
        vp = req.viewport
        body = output.finish(self.compose(req), vp.format, vp.scale, jpeg_quality=self.settings.jpeg_quality)
        log.info(
            "rendered map",
            extra=fields(**req.to_meta(), bytes=len(body), ms=int((time.perf_counter() - t0) * 1000)),
        )
        return body

    # ----------------------------
    # Cache manager
    # ----------------------------
    def show_map(
        self,
        req: RenderRequest,
        if_none_match: Optional[str] = None,
        if_modified_since: Optional[str] = None,
    ) -> MapResponse:
        """
        Serve a map through the three cache tiers. Never raises for tile,
        marker or cache-write problems; those degrade inside the pipeline.
        """
        s = self.settings
        key = cache_key(req)
        ctype = output.content_type(req.viewport.format)

        if s.use_http_cache and etag_matches(if_none_match, key):
            log.debug("etag match, not modified", extra=fields(key=key))
            return self._not_modified(key, ctype)

        if not s.use_map_cache:
            return self._ok(self.render(req), key, ctype, None)

        map_key = MapDiskCache.map_key(key, req.maptype, req.viewport.zoom, output.extension(req.viewport.format))
        if self.map_cache.exists(map_key):
            mtime = self.map_cache.mtime(map_key)
            since = parse_http_date(if_modified_since)
            if s.use_http_cache and since is not None and mtime is not None and since >= int(mtime):
                log.debug("map unchanged since %s", if_modified_since, extra=fields(key=key))
                return self._not_modified(key, ctype, mtime)
            try:
                body = self.map_cache.read(map_key)
            except OSError as e:
                log.warning("map cache read failed for %s: %s", map_key, e)
            else:
                log.debug("map cache hit", extra=fields(key=key))
                return self._ok(body, key, ctype, mtime)

        log.debug("map cache miss", extra=fields(key=key))
        body = self.render(req)
        mtime = None
        if self.map_cache.write(map_key, body):
            mtime = self.map_cache.mtime(map_key)
        else:
            log.warning("serving uncached map", extra=fields(key=key))
        return self._ok(body, key, ctype, mtime)

    # ----------------------------
    # Response helpers
    # ----------------------------
    def cache_headers(self, key: str, mtime: Optional[float]) -> Dict[str, str]:
        s = self.settings
        if not s.use_http_cache:
            return {}
        expires = s.expire_seconds
        headers = {
            "Pragma": "public",
            "Cache-Control": f"public, max-age={expires}",
            "Expires": http_date(time.time() + expires),
            "ETag": f'"{key}"',
        }
        if mtime is not None:
            headers["Last-Modified"] = http_date(mtime)
        return headers

    def _ok(self, body: bytes, key: str, ctype: str, mtime: Optional[float]) -> MapResponse:
        return MapResponse(200, body, ctype, self.cache_headers(key, mtime), cache_key=key)

    def _not_modified(self, key: str, ctype: str, mtime: Optional[float] = None) -> MapResponse:
        return MapResponse(304, b"", ctype, self.cache_headers(key, mtime), cache_key=key)

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {"tiles": self.tile_cache.stats(), "maps": self.map_cache.stats()}
