"""
Marker overlay.

Icons are resolved against an ordered table of (classifier, style) pairs; the
first classifier that accepts the icon name wins. Anything that does not
resolve to an existing asset falls back to the numbered default icon
`lightblue<N>.png`, where N is the marker's position in draw order. If even
that file is missing, lightblue1.png is used, and failing that a generated
numbered pin, so a map is always produced.

Asset directory layout (settings.marker_dir, default: the set bundled in
staticmap/assets/markers):
    lightblue1.png ... lightblue9.png
    ol-marker.png, ol-marker-blue.png, ol-marker-gold.png, ol-marker-green.png
    <color>-pushpin.png for pink, purple, red, ltblu, ylw
    bullseye.png
    marker_shadow.png
    <name>-t.png   transparent variants (ol-marker / pushpin families)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from common.geo import geo_to_canvas_px
from common.logging_setup import get_logger
from common.types import MarkerSpec, Viewport
from staticmap.config import DEFAULT_MARKER_DIR


log = get_logger(__name__)

Offset = Tuple[int, int]


@dataclass(frozen=True)
class MarkerStyle:
    """
    How to draw one icon family.

    Attributes:
        family: short name, for logs.
        filename: asset file name template, `{name}` is the resolved icon name.
        offset: added to the anchor pixel to get the icon's top-left corner.
        shadow: optional shadow asset drawn below the icon.
        shadow_offset: same as offset, for the shadow.
        transparent: whether `{name}-t.png` variants exist for this family.
        bare: family name without a color slot (e.g. "ol-marker").
        colored: template applied to `bare` when a style color is set.
        colors: colors accepted for `colored`.
    """
    family: str
    filename: str = "{name}.png"
    offset: Offset = (0, 0)
    shadow: Optional[str] = None
    shadow_offset: Offset = (0, 0)
    transparent: bool = False
    bare: Optional[str] = None
    colored: Optional[str] = None
    colors: Tuple[str, ...] = ()

    def apply_color(self, name: str, color: str) -> str:
        if self.bare and self.colored and name == self.bare and color in self.colors:
            return self.colored.format(color=color)
        return name

    def asset_name(self, name: str, transparent: bool) -> str:
        if transparent and self.transparent:
            return self.filename.format(name=f"{name}-t")
        return self.filename.format(name=name)


_OL_COLORS = ("blue", "gold", "green")
_PIN_COLORS = ("pink", "purple", "red", "ltblu", "ylw")


def _is_lightblue(name: str) -> bool:
    return name.startswith("lightblue") and name[len("lightblue"):].isdigit()


def _is_ol_marker(name: str) -> bool:
    return name == "ol-marker" or name in {f"ol-marker-{c}" for c in _OL_COLORS}


def _is_pushpin(name: str) -> bool:
    return name == "pushpin" or name in {f"{c}-pushpin" for c in _PIN_COLORS}


def _is_bullseye(name: str) -> bool:
    return name == "bullseye"


DEFAULT_STYLE = MarkerStyle(family="lightblue", offset=(0, -19))

# Evaluated in order; first match wins.
MARKER_PROTOTYPES: Sequence[Tuple[Callable[[str], bool], MarkerStyle]] = (
    (_is_lightblue, DEFAULT_STYLE),
    (
        _is_ol_marker,
        MarkerStyle(
            family="ol-marker",
            offset=(-10, -25),
            shadow="marker_shadow.png",
            shadow_offset=(-1, -13),
            transparent=True,
            bare="ol-marker",
            colored="ol-marker-{color}",
            colors=_OL_COLORS,
        ),
    ),
    (
        _is_pushpin,
        MarkerStyle(
            family="pushpin",
            offset=(-10, -32),
            shadow="marker_shadow.png",
            shadow_offset=(-1, -13),
            transparent=True,
            bare="pushpin",
            colored="{color}-pushpin",
            colors=_PIN_COLORS,
        ),
    ),
    (_is_bullseye, MarkerStyle(family="bullseye", offset=(-20, -20))),
)


@dataclass(frozen=True)
class ResolvedIcon:
    asset: str
    offset: Offset
    shadow: Optional[str] = None
    shadow_offset: Offset = (0, 0)
    fallback_index: Optional[int] = None


def classify(name: str) -> Optional[MarkerStyle]:
    """First prototype whose classifier accepts `name`, or None."""
    for matches, style in MARKER_PROTOTYPES:
        if matches(name):
            return style
    return None


class MarkerOverlay:
    def __init__(self, marker_dir: str = DEFAULT_MARKER_DIR):
        self.marker_dir = Path(marker_dir)
        self._images: Dict[str, Optional[Image.Image]] = {}

    # -------- public API --------

    def resolve(self, marker: MarkerSpec, index: int) -> ResolvedIcon:
        """
        Icon, offsets and shadow for `marker`. `index` is the marker's 1-based
        position in draw order; a marker that needs the default icon gets
        `lightblue<index>.png`.
        """
        name = marker.icon
        if not name and marker.color:
            # color with no icon: colored pushpin when the color is known
            name = "pushpin"
        if name:
            style = classify(name)
            if style is not None:
                # fill the color slot: "ol-marker" + gold -> "ol-marker-gold"
                name = style.apply_color(name, marker.color)
                asset = style.asset_name(name, marker.transparent)
                if not self._asset_exists(asset) and asset != style.asset_name(name, False):
                    # transparent variant missing: plain icon is better than the default
                    asset = style.asset_name(name, False)
                if self._asset_exists(asset):
                    shadow = style.shadow if style.shadow and self._asset_exists(style.shadow) else None
                    return ResolvedIcon(asset, style.offset, shadow, style.shadow_offset)
        return ResolvedIcon(
            DEFAULT_STYLE.asset_name(f"lightblue{index}", False),
            DEFAULT_STYLE.offset,
            fallback_index=index,
        )

    def place(self, canvas: Image.Image, vp: Viewport, markers: Iterable[MarkerSpec]) -> int:
        """
        Draw markers onto `canvas` in the given order (callers pass draw order:
        north to south). Returns the number of markers placed, including
        those that end up entirely off the canvas.
        """
        placed = 0
        for index, marker in enumerate(markers, 1):
            icon = self.resolve(marker, index)
            x, y = geo_to_canvas_px(marker.geo, vp)

            if icon.shadow:
                shadow_img = self._load(icon.shadow)
                if shadow_img is not None:
                    self._paste(canvas, shadow_img, x + icon.shadow_offset[0], y + icon.shadow_offset[1])

            img = self._load(icon.asset)
            offset = icon.offset
            if img is None and icon.fallback_index is not None:
                img = self._load("lightblue1.png")
            if img is None:
                img = numbered_pin(icon.fallback_index or index)
                offset = PIN_OFFSET
            self._paste(canvas, img, x + offset[0], y + offset[1])
            placed += 1
        return placed

    # -------- internals --------

    def _asset_exists(self, name: str) -> bool:
        return (self.marker_dir / name).is_file()

    def _load(self, name: str) -> Optional[Image.Image]:
        if name not in self._images:
            path = self.marker_dir / name
            img: Optional[Image.Image] = None
            if path.is_file():
                try:
                    with Image.open(path) as src:
                        img = src.convert("RGBA")
                except OSError as e:
                    log.warning("cannot read marker asset %s: %s", path, e)
            self._images[name] = img
        return self._images[name]

    @staticmethod
    def _paste(canvas: Image.Image, img: Image.Image, x: int, y: int) -> None:
        x, y = int(x), int(y)
        if x >= canvas.width or y >= canvas.height or x + img.width <= 0 or y + img.height <= 0:
            # off the canvas; far away markers would overflow paste()'s box coordinates
            return
        # paste() accepts negative offsets (icons hanging off the edge), alpha_composite() does not
        canvas.paste(img, (x, y), img)


_PIN_SIZE = (20, 34)
# The tip of the generated pin sits on the marker position.
PIN_OFFSET: Offset = (-(_PIN_SIZE[0] // 2), -_PIN_SIZE[1])


def numbered_pin(n: int) -> Image.Image:
    """Light blue pin with the number `n`, tip at bottom center (see PIN_OFFSET)."""
    w, h = _PIN_SIZE
    img = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse((0, 0, w - 1, w - 1), fill=(120, 170, 230, 255), outline=(40, 80, 140, 255))
    draw.polygon([(3, w // 2 + 4), (w - 4, w // 2 + 4), (w // 2, h - 1)], fill=(120, 170, 230, 255))
    label = str(n)
    draw.text((w // 2 - 3 * len(label), w // 2 - 6), label, fill=(255, 255, 255, 255))
    return img
