from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, Optional

from PIL import Image

from common.logging_setup import get_logger


log = get_logger(__name__)

CONTENT_TYPES: Dict[str, str] = {
    "png": "image/png",
    "png8": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
}

# File extension of cached maps per format.
EXTENSIONS: Dict[str, str] = {
    "png": "png",
    "png8": "png",
    "jpg": "jpg",
    "jpeg": "jpg",
    "gif": "gif",
}


def content_type(fmt: str) -> str:
    return CONTENT_TYPES.get(fmt, CONTENT_TYPES["png"])


def extension(fmt: str) -> str:
    return EXTENSIONS.get(fmt, "png")


def apply_scale(canvas: Image.Image, scale: int) -> Image.Image:
    """Resample the whole canvas to scale x its size (1 returns it unchanged)."""
    if scale == 1:
        return canvas
    w, h = canvas.size
    return canvas.resize((w * scale, h * scale), Image.Resampling.LANCZOS)


def add_attribution(canvas: Image.Image, logo_path: Optional[str]) -> Image.Image:
    """Paste the attribution logo into the bottom-right corner, if configured and present."""
    if not logo_path:
        return canvas
    path = Path(logo_path)
    if not path.is_file():
        log.warning("attribution logo %s not found, skipping", path)
        return canvas
    with Image.open(path) as src:
        logo = src.convert("RGBA")
    x = canvas.width - logo.width
    y = canvas.height - logo.height
    canvas.paste(logo, (x, y), logo)
    return canvas


def encode(canvas: Image.Image, fmt: str, jpeg_quality: int = 85) -> bytes:
    """
    Encode the final image. Unknown formats fall back to PNG.

    png   lossless, max zlib compression
    png8  256-color palette PNG
    jpg   lossy, `jpeg_quality` (1..95)
    gif   256-color palette
    """
    buf = io.BytesIO()
    if fmt in ("jpg", "jpeg"):
        canvas.convert("RGB").save(buf, format="JPEG", quality=int(jpeg_quality), optimize=True)
    elif fmt == "gif":
        _palette(canvas).save(buf, format="GIF")
    elif fmt == "png8":
        _palette(canvas).save(buf, format="PNG", optimize=True)
    else:
        canvas.save(buf, format="PNG", compress_level=9)
    return buf.getvalue()


def _palette(canvas: Image.Image) -> Image.Image:
    return canvas.convert("RGB").quantize(colors=256, method=Image.Quantize.MEDIANCUT)


def finish(canvas: Image.Image, fmt: str, scale: int = 1, jpeg_quality: int = 85) -> bytes:
    """Scale, then encode."""
    return encode(apply_scale(canvas, scale), fmt, jpeg_quality=jpeg_quality)
