"""
Shared building blocks for the static map service.

- types: immutable request values (GeoPoint, Viewport, MarkerSpec, ...)
- geo: Web Mercator tile projection and canvas pixel helpers
- logging_setup: JSON logging configured once per process
- utils: lenient query value parsing and HTTP date helpers
"""
