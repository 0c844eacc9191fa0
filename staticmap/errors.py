from __future__ import annotations


class StaticMapError(Exception):
    """Base class for errors raised by the static map service."""


class ConfigError(StaticMapError):
    """Invalid configuration. Raised at startup, never while serving a request."""
