from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from common.logging_setup import get_logger
from staticmap.errors import ConfigError


log = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/staticmap.yaml"

# Marker icon set shipped inside the package.
DEFAULT_MARKER_DIR = str(Path(__file__).resolve().parent / "assets" / "markers")

DEFAULT_MAP_SOURCES: Dict[str, str] = {
    "mapnik": "https://tile.openstreetmap.org/{Z}/{X}/{Y}.png",
}

# Output formats the encoder understands.
KNOWN_FORMATS = ("png", "png8", "jpg", "jpeg", "gif")


@dataclass(frozen=True)
class Settings:
    """
    Service configuration. `map_sources` is ordered; the first entry is the
    default map type.
    """
    map_sources: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MAP_SOURCES))
    use_http_cache: bool = True
    use_tile_cache: bool = True
    use_map_cache: bool = True
    tile_cache_dir: str = "cache/tiles"
    map_cache_dir: str = "cache/maps"
    marker_dir: str = DEFAULT_MARKER_DIR
    attribution_logo: Optional[str] = None
    # Auto zoom to markers is disabled if either bound is None.
    min_zoom: Optional[int] = 12
    max_zoom: Optional[int] = 18
    default_size: Tuple[int, int] = (500, 350)
    max_size: int = 2048
    default_format: str = "png"
    formats: Tuple[str, ...] = KNOWN_FORMATS
    scales: Tuple[int, ...] = (1, 2, 4)
    jpeg_quality: int = 85
    expire_days: int = 14
    user_agent: str = "staticmaplite-py/0.4"
    connect_timeout: float = 3.0
    read_timeout: float = 5.0
    # Wall-clock cap per tile download, connect and body included.
    total_timeout: float = 10.0
    max_workers: int = 8

    @property
    def default_maptype(self) -> str:
        return next(iter(self.map_sources))

    @property
    def autozoom_enabled(self) -> bool:
        return self.min_zoom is not None and self.max_zoom is not None and self.min_zoom <= self.max_zoom

    @property
    def expire_seconds(self) -> int:
        return int(self.expire_days) * 24 * 60 * 60

    def with_overrides(self, **kw: Any) -> "Settings":
        return replace(self, **kw)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Settings":
        """
        Build settings from the YAML schema:

            map_sources: {mapnik: "https://.../{Z}/{X}/{Y}.png"}
            cache: {http: true, tile: true, map: true, tile_dir: ..., map_dir: ...}
            markers: {dir: path/to/icons}   (default: bundled set)
            attribution_logo: images/osm_logo.png
            zoom: {min: 12, max: 18}
            size: {default: "500x350", max: 2048}
            output: {default_format: png, formats: [...], scales: [1, 2, 4], jpeg_quality: 85}
            http: {expire_days: 14, user_agent: ..., connect_timeout: 3, read_timeout: 5, total_timeout: 10, max_workers: 8}
        """
        d = dict(d or {})
        cache = d.get("cache") or {}
        zoom = d.get("zoom") or {}
        size = d.get("size") or {}
        out = d.get("output") or {}
        http = d.get("http") or {}
        base = cls()

        sources = d.get("map_sources") or base.map_sources
        if not isinstance(sources, Mapping) or not sources:
            raise ConfigError("map_sources must be a non-empty mapping of name -> URL template")
        sources = {str(k): str(v) for k, v in sources.items()}
        for name, tmpl in sources.items():
            if not all(p in tmpl.upper() for p in ("{Z}", "{X}", "{Y}")):
                raise ConfigError(f"map source {name!r} lacks {{Z}}/{{X}}/{{Y}} placeholders: {tmpl}")

        try:
            default_size = _parse_size(size.get("default"), base.default_size)
            formats = tuple(str(f).lower() for f in out.get("formats", base.formats))
            scales = tuple(int(s) for s in out.get("scales", base.scales))
            settings = cls(
                map_sources=sources,
                use_http_cache=bool(cache.get("http", base.use_http_cache)),
                use_tile_cache=bool(cache.get("tile", base.use_tile_cache)),
                use_map_cache=bool(cache.get("map", base.use_map_cache)),
                tile_cache_dir=str(cache.get("tile_dir", base.tile_cache_dir)),
                map_cache_dir=str(cache.get("map_dir", base.map_cache_dir)),
                marker_dir=str((d.get("markers") or {}).get("dir", base.marker_dir)),
                attribution_logo=d.get("attribution_logo", base.attribution_logo),
                min_zoom=_opt_int(zoom.get("min", base.min_zoom)),
                max_zoom=_opt_int(zoom.get("max", base.max_zoom)),
                default_size=default_size,
                max_size=int(size.get("max", base.max_size)),
                default_format=str(out.get("default_format", base.default_format)).lower(),
                formats=formats,
                scales=scales,
                jpeg_quality=int(out.get("jpeg_quality", base.jpeg_quality)),
                expire_days=int(http.get("expire_days", base.expire_days)),
                user_agent=str(http.get("user_agent", base.user_agent)),
                connect_timeout=float(http.get("connect_timeout", base.connect_timeout)),
                read_timeout=float(http.get("read_timeout", base.read_timeout)),
                total_timeout=float(http.get("total_timeout", base.total_timeout)),
                max_workers=int(http.get("max_workers", base.max_workers)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid configuration value: {e}") from e

        unknown = [f for f in settings.formats if f not in KNOWN_FORMATS]
        if unknown:
            raise ConfigError(f"unsupported output formats: {unknown}")
        if settings.default_format not in settings.formats:
            raise ConfigError(f"default_format {settings.default_format!r} not in formats")
        if 1 not in settings.scales or any(s not in (1, 2, 4) for s in settings.scales):
            raise ConfigError("scales must include 1 and may only contain 1, 2, 4")
        if min(settings.connect_timeout, settings.read_timeout, settings.total_timeout) <= 0:
            raise ConfigError("timeouts must be > 0")
        if settings.max_workers < 1:
            raise ConfigError("max_workers must be >= 1")
        return settings


def _opt_int(v: Any) -> Optional[int]:
    return None if v is None else int(v)


def _parse_size(v: Any, default: Tuple[int, int]) -> Tuple[int, int]:
    if v is None:
        return default
    w, h = str(v).lower().split("x")
    return (int(w), int(h))


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from YAML.
    Path precedence: explicit `path`, env STATICMAP_CONFIG, config/staticmap.yaml.
    A missing file yields the built-in defaults.
    """
    path = path or os.environ.get("STATICMAP_CONFIG") or DEFAULT_CONFIG_PATH
    if not Path(path).exists():
        log.info("config file %s not found, using defaults", path)
        return Settings()
    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"cannot parse {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")
    return Settings.from_dict(raw)
