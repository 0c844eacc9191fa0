"""
Process-wide JSON logging for the map service.

One line per record on stdout:
  { "t": 169, "lvl": "INFO", "name": "staticmap.renderer", "msg": "rendered map",
    "thread": "tile_0", "extra": {"zoom": 14, "bytes": 51234} }

"thread" only appears for records emitted off the main thread (tile download
workers, server worker threads). Structured context is attached with
`fields()`:

    log.info("rendered map", extra=fields(zoom=14, bytes=len(body)))
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import sys
import threading
import time
from typing import Any, Dict, Optional


LEVEL_ENV_VARS = ("STATICMAP_LOG_LEVEL", "LOG_LEVEL")


def fields(**context: Any) -> Dict[str, Dict[str, Any]]:
    """`extra=` payload understood by JsonFormatter."""
    return {"extra": context}


def _json_default(value: Any) -> Any:
    # request objects (GeoPoint, Viewport, ...) are frozen dataclasses
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.threadName and record.threadName != threading.main_thread().name:
            payload["thread"] = record.threadName
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict) and extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=_json_default)


def resolve_level(level: Optional[str] = None) -> int:
    """
    Level precedence:
      - explicit `level` arg
      - env STATICMAP_LOG_LEVEL, then LOG_LEVEL (DEBUG/INFO/WARNING/ERROR)
      - default INFO
    Unknown names fall back to INFO.
    """
    name = level
    for var in LEVEL_ENV_VARS:
        name = name or os.environ.get(var)
    lvl = logging.getLevelName((name or "INFO").upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once; an explicit level still applies on later calls."""
    root = logging.getLogger()
    if getattr(root, "_staticmap_configured", False):
        if level:
            root.setLevel(resolve_level(level))
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolve_level(level))
    root._staticmap_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    """Get a module logger; ensures root is configured."""
    setup_logging()
    return logging.getLogger(name)
