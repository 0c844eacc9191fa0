from __future__ import annotations

from typing import Optional
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime


def clamp_int(v: int, lo: int, hi: int) -> int:
    return int(min(hi, max(lo, v)))


def parse_int(s: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Lenient int parsing: '14', ' 14 ', '14.7' -> 14; garbage -> default."""
    if s is None:
        return default
    try:
        return int(float(str(s).strip()))
    except (TypeError, ValueError):
        return default


def parse_float(s: Optional[str], default: Optional[float] = None) -> Optional[float]:
    if s is None:
        return default
    try:
        return float(str(s).strip())
    except (TypeError, ValueError):
        return default


def http_date(ts: float) -> str:
    """RFC 7231 IMF-fixdate for a POSIX timestamp, e.g. 'Sun, 06 Nov 1994 08:49:37 GMT'."""
    return format_datetime(datetime.fromtimestamp(int(ts), tz=timezone.utc), usegmt=True)


def parse_http_date(s: Optional[str]) -> Optional[float]:
    """Parse an HTTP date header into a POSIX timestamp; None if absent or malformed."""
    if not s:
        return None
    try:
        dt = parsedate_to_datetime(s)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
