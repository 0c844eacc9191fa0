from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional

from common.logging_setup import get_logger


log = get_logger(__name__)

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def ensure_dir(path: Path) -> None:
    """Create `path` and all missing ancestors. Safe if another process races us."""
    path.mkdir(parents=True, exist_ok=True)


class DiskCache:
    """
    Write-once file store addressed by relative, slash separated keys.

        root/
          └─ <key segments...>

    Writes go to a temp file in the target directory and are renamed into
    place, so readers never observe a partial entry. An existing entry is
    never rewritten.
    """
    def __init__(self, root: str):
        self.root = Path(root)

    # -------- storage contract --------

    def path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p not in ("", ".", "..")]
        return self.root.joinpath(*parts)

    def exists(self, key: str) -> bool:
        p = self.path(key)
        return p.is_file() and p.stat().st_size > 0

    def read(self, key: str) -> bytes:
        # Raises FileNotFoundError if missing; callers check exists() first
        with self.path(key).open("rb") as f:
            return f.read()

    def write(self, key: str, data: bytes) -> bool:
        """
        Persist `data` under `key`. Returns False (and logs) instead of raising
        when the filesystem refuses the write.
        """
        target = self.path(key)
        if target.is_file():
            return True
        tmp_name: Optional[str] = None
        try:
            ensure_dir(target.parent)
            fd, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=".tmp-", suffix=target.suffix)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
            tmp_name = None
            return True
        except OSError as e:
            log.warning("cache write failed for %s: %s", target, e)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    # -------- extras --------

    def mtime(self, key: str) -> Optional[float]:
        try:
            return self.path(key).stat().st_mtime
        except OSError:
            return None

    def stats(self) -> Dict[str, int]:
        if not self.root.exists():
            return {"entries": 0, "bytes": 0}
        entries = 0
        size = 0
        for p in self.root.rglob("*"):
            if p.is_file() and not p.name.startswith(".tmp-"):
                entries += 1
                size += p.stat().st_size
        return {"entries": entries, "bytes": size}


class TileDiskCache(DiskCache):
    """
    Raw tile bytes keyed by tile URL with the scheme stripped:

        https://tile.openstreetmap.org/14/4823/6160.png
          -> root/tile.openstreetmap.org/14/4823/6160.png
    """

    @staticmethod
    def url_to_key(url: str) -> str:
        key = _SCHEME.sub("", url)
        # query strings (api keys etc.) become part of the file name
        return key.replace("?", "_").replace("&", "_").replace("=", "-")

    def get(self, url: str) -> Optional[bytes]:
        key = self.url_to_key(url)
        if not self.exists(key):
            return None
        try:
            return self.read(key)
        except OSError:
            return None

    def put(self, url: str, data: bytes) -> bool:
        return self.write(self.url_to_key(url), data)


class MapDiskCache(DiskCache):
    """
    Composed map images, sharded by cache key to bound directory sizes:

        root/{maptype}/{zoom}/{key[0:2]}/{key[2:4]}/{key[4:]}.{ext}
    """

    @staticmethod
    def map_key(cache_key: str, maptype: str, zoom: int, ext: str) -> str:
        return f"{maptype}/{int(zoom)}/{cache_key[:2]}/{cache_key[2:4]}/{cache_key[4:]}.{ext}"
