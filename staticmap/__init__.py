"""
Static map service: a drop-in replacement for a hosted "static maps" API.

- Fetches slippy-map tiles (disk-cached) and composites the tile grid for a viewport
- Draws marker icons, auto-centers/zooms on markers when no center is given
- Serves GET /staticmap with ETag / Last-Modified conditional caching,
  composed maps are cached on disk
- Optional endpoints: /health, /stats
"""
