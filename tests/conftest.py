"""Shared pytest fixtures for the static map tests."""

import io
import re
import threading
from pathlib import Path
from typing import List, Optional, Set, Tuple
from unittest.mock import Mock

import pytest
import requests
from PIL import Image

from staticmap.config import Settings
from staticmap.renderer import StaticMapRenderer


TILE_TEMPLATE = "https://tiles.test/{Z}/{X}/{Y}.png"

_ZXY = re.compile(r"/(\d+)/(\d+)/(\d+)\.png$")


def tile_color(x: int, y: int) -> Tuple[int, int, int, int]:
    """Distinct solid color per tile so tests can tell where each tile landed."""
    return ((x * 37) % 256, (y * 59) % 256, 128, 255)


def png_bytes(size: Tuple[int, int], color) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeTileSession:
    """
    Stands in for requests.Session: serves a solid PNG per tile URL.
    `fail` holds (x, y) tiles that time out.
    """

    def __init__(self, fail: Optional[Set[Tuple[int, int]]] = None):
        self.fail = set(fail or ())
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None, headers=None, stream=False):
        with self._lock:
            self.calls.append(url)
        m = _ZXY.search(url)
        z, x, y = (int(g) for g in m.groups())
        if (x, y) in self.fail:
            raise requests.Timeout(f"timed out: {url}")
        r = Mock()
        r.status_code = 200
        r.headers = {"Content-Type": "image/png"}
        body = png_bytes((256, 256), tile_color(x, y))
        r.content = body
        r.iter_content = lambda chunk_size=None: iter([body])
        return r


@pytest.fixture
def marker_dir(tmp_path):
    d = tmp_path / "markers"
    d.mkdir()
    return d


def make_asset(directory: Path, name: str, size: Tuple[int, int], color) -> Path:
    p = directory / name
    Image.new("RGBA", size, color).save(p)
    return p


@pytest.fixture
def settings(tmp_path, marker_dir):
    return Settings(
        map_sources={"mapnik": TILE_TEMPLATE, "other": "https://other.test/{z}/{x}/{y}.png"},
        tile_cache_dir=str(tmp_path / "cache" / "tiles"),
        map_cache_dir=str(tmp_path / "cache" / "maps"),
        marker_dir=str(marker_dir),
        min_zoom=12,
        max_zoom=18,
        max_workers=4,
    )


@pytest.fixture
def fake_session():
    return FakeTileSession()


@pytest.fixture
def renderer(settings, fake_session):
    return StaticMapRenderer(settings, session=fake_session)
