from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, Optional, Tuple


MAX_ZOOM = 18


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """
    WGS84-ish position in degrees (no datum correction).

    Out-of-range values are accepted. Longitudes project outside the world
    grid, latitudes beyond the Mercator limit onto its top or bottom edge.
    """
    lat: float
    lon: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "lat", float(self.lat))
        object.__setattr__(self, "lon", float(self.lon))


@dataclass(frozen=True, slots=True)
class TileCoord:
    x: int
    y: int
    zoom: int

    @property
    def zxy(self) -> Tuple[int, int, int]:
        return (self.zoom, self.x, self.y)


@dataclass(frozen=True, slots=True)
class Viewport:
    """
    Resolved geometry of one rendered map.

    Attributes:
        center: geographic center of the canvas.
        zoom: tile zoom level, 0..18.
        width, height: logical canvas size in pixels (tile math uses these).
        scale: output multiplier (1, 2 or 4); physical size = scale * logical.
        format: output image format key (png, png8, jpg, jpeg, gif).
    """
    center: GeoPoint
    zoom: int
    width: int
    height: int
    scale: int = 1
    format: str = "png"

    @property
    def output_size(self) -> Tuple[int, int]:
        return (self.width * self.scale, self.height * self.scale)


@dataclass(frozen=True, slots=True)
class MarkerSpec:
    """
    One drawable marker.

    Attributes:
        geo: marker position.
        icon: icon key as given in the request ("" when absent).
        transparent: draw the transparent icon variant when one exists.
        color: style color in effect for this marker ("" when none).
    """
    geo: GeoPoint
    icon: str = ""
    transparent: bool = False
    color: str = ""

    def sort_key(self) -> Tuple[float, float, str, bool, str]:
        # North first, south last: southern markers end up on top.
        return (-self.geo.lat, self.geo.lon, self.icon, self.transparent, self.color)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["geo"] = [self.geo.lat, self.geo.lon]
        return d


def draw_order(markers: Iterable[MarkerSpec]) -> Tuple[MarkerSpec, ...]:
    """Markers sorted by latitude descending, then longitude."""
    return tuple(sorted(markers, key=MarkerSpec.sort_key))


@dataclass(frozen=True, slots=True)
class BoundingBox:
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_points(cls, points: Iterable[GeoPoint]) -> Optional["BoundingBox"]:
        pts = list(points)
        if not pts:
            return None
        lats = [p.lat for p in pts]
        lons = [p.lon for p in pts]
        return cls(lat_min=min(lats), lat_max=max(lats), lon_min=min(lons), lon_max=max(lons))

    @property
    def lat_center(self) -> float:
        return (self.lat_min + self.lat_max) / 2.0

    @property
    def lon_center(self) -> float:
        return (self.lon_min + self.lon_max) / 2.0

    @property
    def lat_size(self) -> float:
        return self.lat_max - self.lat_min

    @property
    def lon_size(self) -> float:
        return self.lon_max - self.lon_min

    @property
    def center(self) -> GeoPoint:
        return GeoPoint(self.lat_center, self.lon_center)


@dataclass(frozen=True, slots=True)
class RenderRequest:
    """
    Everything the pipeline needs for one map, built once by parameter
    resolution and never mutated afterwards. `markers` is already in draw order.
    """
    viewport: Viewport
    maptype: str
    markers: Tuple[MarkerSpec, ...] = field(default_factory=tuple)

    def to_meta(self) -> Dict[str, Any]:
        """Loggable summary (no marker payload)."""
        vp = self.viewport
        return {
            "lat": vp.center.lat,
            "lon": vp.center.lon,
            "zoom": vp.zoom,
            "size": f"{vp.width}x{vp.height}",
            "scale": vp.scale,
            "format": vp.format,
            "maptype": self.maptype,
            "markers": len(self.markers),
        }
