"""
Request parameter resolution.

Turns a static-maps style query into an immutable RenderRequest. Nothing here
touches disk or network, so the cache key can be computed before any I/O.

Query parameters (all optional):
    center=lat,lon
    zoom=0..18
    size=WxH
    maptype=<name of a configured map source>
    markers=lat,lon[,icon]|lat,lon[,icon]|...   (repeatable, one marker set each)
    scale=1|2|4
    format=png|png8|jpg|jpeg|gif

Inside a marker set, an entry whose first two fields are both exactly 0 is a
style directive, not a marker:
    0,0,color:gold          color for the following markers of this set
    0,0,transparent         use transparent icon variants from here on
    0,0,opaque              back to normal icons
A real marker at exactly (0, 0) is therefore never drawn.
"""

from __future__ import annotations

import math
import re
from pathlib import PureWindowsPath
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from common.logging_setup import get_logger
from common.types import MAX_ZOOM, BoundingBox, GeoPoint, MarkerSpec, RenderRequest, Viewport, draw_order
from common.utils import clamp_int, parse_float, parse_int
from staticmap.autozoom import fit_viewport
from staticmap.config import Settings


log = get_logger(__name__)

QueryLike = Union[Mapping[str, Union[str, Sequence[str]]], Iterable[Tuple[str, str]]]

_MARKER_SEP = re.compile(r"%7C|\|", re.IGNORECASE)


def _multi(query: QueryLike) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    items = query.items() if isinstance(query, Mapping) else query
    for k, v in items:
        if isinstance(v, (list, tuple)):
            out.setdefault(str(k), []).extend(str(x) for x in v)
        else:
            out.setdefault(str(k), []).append(str(v))
    return out


def _first(q: Dict[str, List[str]], name: str) -> Optional[str]:
    vals = [v for v in q.get(name, []) if v.strip()]
    return vals[0].strip() if vals else None


# ----------------------------
# Field parsers (lenient)
# ----------------------------
def parse_size(s: Optional[str], settings: Settings) -> Tuple[int, int]:
    """'512x512' -> (512, 512); malformed -> default size; sides clamped to [1, max_size]."""
    if not s or "x" not in s.lower():
        return settings.default_size
    w_s, _, h_s = s.lower().partition("x")
    w, h = parse_int(w_s), parse_int(h_s)
    if w is None or h is None:
        return settings.default_size
    return (clamp_int(w, 1, settings.max_size), clamp_int(h, 1, settings.max_size))


def parse_coord(s: Optional[str]) -> Optional[float]:
    """Float coordinate; nan and inf count as malformed."""
    v = parse_float(s)
    if v is None or not math.isfinite(v):
        return None
    return v


def parse_center(s: Optional[str]) -> Optional[GeoPoint]:
    if not s:
        return None
    parts = s.split(",")
    if len(parts) < 2:
        return None
    lat, lon = parse_coord(parts[0]), parse_coord(parts[1])
    if lat is None or lon is None:
        return None
    return GeoPoint(lat, lon)


def icon_basename(raw: str) -> str:
    """Strip any directory part so icon keys cannot escape the marker directory."""
    return PureWindowsPath(raw.strip()).name


def parse_marker_set(s: str) -> List[MarkerSpec]:
    """
    Parse one `markers` value. Style directives apply to the markers that
    follow them in the same set. Malformed entries are skipped.
    """
    markers: List[MarkerSpec] = []
    color = ""
    transparent = False
    for entry in _MARKER_SEP.split(s):
        fields = [f.strip() for f in entry.split(",")]
        if len(fields) < 2:
            continue
        lat, lon = parse_coord(fields[0]), parse_coord(fields[1])
        if lat is None or lon is None:
            log.debug("skipping malformed marker entry %r", entry)
            continue
        rest = fields[2:]
        if lat == 0 and lon == 0:
            for d in rest:
                key, _, value = d.partition(":")
                key = key.strip().lower()
                value = value.strip().lower()
                if key == "color":
                    color = value
                elif key == "transparent":
                    transparent = value not in ("0", "false", "no", "off")
                elif key == "opaque":
                    transparent = False
            continue
        icon = icon_basename(rest[0]) if rest else ""
        markers.append(MarkerSpec(GeoPoint(lat, lon), icon=icon, transparent=transparent, color=color))
    return markers


def parse_markers(values: Iterable[str]) -> Tuple[MarkerSpec, ...]:
    """All marker sets of a request, flattened and in draw order."""
    out: List[MarkerSpec] = []
    for v in values:
        out.extend(parse_marker_set(v))
    return draw_order(out)


# ----------------------------
# Public API
# ----------------------------
def parse_params(query: QueryLike, settings: Settings) -> RenderRequest:
    """
    Resolve a query into a RenderRequest.

    Center: explicit `center`, else the marker bounding box (with auto zoom when
    enabled), else (0, 0). An explicit `zoom` always wins over the solved one.
    """
    q = _multi(query)
    width, height = parse_size(_first(q, "size"), settings)
    markers = parse_markers(q.get("markers", []))

    zoom = 0
    center = parse_center(_first(q, "center"))
    if center is None:
        box = BoundingBox.from_points(m.geo for m in markers)
        if box is not None and settings.autozoom_enabled:
            lat, lon, zoom = fit_viewport(box, width, height, settings.min_zoom, settings.max_zoom)  # type: ignore[arg-type]
            center = GeoPoint(lat, lon)
        else:
            center = GeoPoint(0.0, 0.0)

    z = parse_int(_first(q, "zoom"))
    if z is not None:
        zoom = z
    zoom = clamp_int(zoom, 0, MAX_ZOOM)

    maptype = _first(q, "maptype")
    if maptype not in settings.map_sources:
        maptype = settings.default_maptype

    scale = parse_int(_first(q, "scale"), 1)
    if scale not in settings.scales:
        scale = 1

    fmt = (_first(q, "format") or settings.default_format).lower()
    if fmt not in settings.formats:
        fmt = settings.default_format

    viewport = Viewport(center=center, zoom=zoom, width=width, height=height, scale=scale, format=fmt)
    return RenderRequest(viewport=viewport, maptype=maptype, markers=markers)
