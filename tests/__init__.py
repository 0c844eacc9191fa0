"""
Static map service test suite.

Structure:
- unit/: projection, solver, parsing, caches, gateway, compositor, markers, output
- integration/: renderer and HTTP app end to end, with a fake tile server (no network)
- conftest.py: shared fixtures (settings on tmp dirs, fake tile session, marker assets)
"""
