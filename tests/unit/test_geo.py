"""
Unit tests for the Web Mercator tile projection
"""

import math

import pytest

from common.geo import (
    TILE_SIZE,
    canvas_px_to_geo,
    geo_to_canvas_px,
    init_coords,
    lat_to_tile,
    lon_to_tile,
    tile_to_lat,
    tile_to_lon,
)
from common.types import GeoPoint, Viewport


class TestProjection:
    """Test cases for lon_to_tile / lat_to_tile"""

    def test_known_values(self):
        """Origin, antimeridian and equator land on the expected tile edges"""
        assert lon_to_tile(-180.0, 3) == pytest.approx(0.0)
        assert lon_to_tile(180.0, 3) == pytest.approx(8.0)
        assert lon_to_tile(0.0, 3) == pytest.approx(4.0)
        assert lat_to_tile(0.0, 3) == pytest.approx(4.0)
        # Web Mercator latitude limit maps to the top edge
        assert lat_to_tile(85.0511287798, 0) == pytest.approx(0.0, abs=1e-6)

    def test_new_york_tile(self):
        """Matches the slippy-map tile index used by public tile servers"""
        assert math.floor(lon_to_tile(-73.998672, 14)) == 4824

    @pytest.mark.parametrize("zoom", [0, 5, 12, 18])
    def test_monotonic(self, zoom):
        """x grows with longitude, y shrinks with latitude"""
        lons = [-179.0, -90.0, -1.0, 0.0, 0.5, 45.0, 179.0]
        xs = [lon_to_tile(lon, zoom) for lon in lons]
        assert xs == sorted(xs)
        lats = [-80.0, -45.0, -0.1, 0.0, 0.1, 40.0, 80.0]
        ys = [lat_to_tile(lat, zoom) for lat in lats]
        assert ys == sorted(ys, reverse=True)

    @pytest.mark.parametrize("lat,lon", [(40.714728, -73.998672), (-33.86, 151.21), (51.5, -0.12)])
    def test_zoom_doubles_distance_from_reference(self, lat, lon):
        """One zoom level doubles the tile distance from a fixed reference point"""
        for z in range(0, 18):
            dx0 = lon_to_tile(lon, z) - lon_to_tile(-180.0, z)
            dx1 = lon_to_tile(lon, z + 1) - lon_to_tile(-180.0, z + 1)
            assert dx1 == pytest.approx(2 * dx0)
            dy0 = lat_to_tile(lat, z) - lat_to_tile(0.0, z)
            dy1 = lat_to_tile(lat, z + 1) - lat_to_tile(0.0, z + 1)
            assert dy1 == pytest.approx(2 * dy0)

    def test_inverse(self):
        """tile_to_lat/lon undo the projection"""
        for lat, lon in [(0.0, 0.0), (40.714728, -73.998672), (-60.0, 120.0)]:
            assert tile_to_lon(lon_to_tile(lon, 14), 14) == pytest.approx(lon)
            assert tile_to_lat(lat_to_tile(lat, 14), 14) == pytest.approx(lat)

    @pytest.mark.parametrize("lat,edge", [(90.0, 0.0), (95.0, 0.0), (-90.0, 8.0), (-1000.0, 8.0)])
    def test_beyond_mercator_limit_clamps_to_edge(self, lat, edge):
        """Poles and out-of-range latitudes land on the top or bottom edge instead of failing"""
        assert lat_to_tile(lat, 3) == pytest.approx(edge, abs=1e-6)

    def test_init_coords_at_pole(self):
        cx, cy, ox, oy = init_coords(GeoPoint(-90.0, 0.0), 3)
        assert (cx, cy) == (pytest.approx(4.0), pytest.approx(8.0))
        assert ox <= 0 and oy <= 0


class TestInitCoords:
    def test_offset_is_sub_tile(self):
        """Offset is floor((floor(c) - c) * 256), always in (-256, 0]"""
        cx, cy, ox, oy = init_coords(GeoPoint(40.714728, -73.998672), 14)
        assert ox == math.floor((math.floor(cx) - cx) * TILE_SIZE)
        assert oy == math.floor((math.floor(cy) - cy) * TILE_SIZE)
        assert -TILE_SIZE < ox <= 0
        assert -TILE_SIZE < oy <= 0

    def test_offset_zero_on_tile_corner(self):
        cx, cy, ox, oy = init_coords(GeoPoint(0.0, 0.0), 4)
        assert (cx, cy) == (pytest.approx(8.0), pytest.approx(8.0))
        assert (ox, oy) == (0, 0)


class TestCanvasPixels:
    def test_center_maps_to_canvas_center(self):
        vp = Viewport(center=GeoPoint(40.714728, -73.998672), zoom=14, width=512, height=400)
        assert geo_to_canvas_px(vp.center, vp) == (256, 200)

    def test_north_east_is_up_right(self):
        vp = Viewport(center=GeoPoint(40.7, -74.0), zoom=14, width=512, height=512)
        x, y = geo_to_canvas_px(GeoPoint(40.71, -73.99), vp)
        assert x > 256
        assert y < 256

    def test_round_trip(self):
        vp = Viewport(center=GeoPoint(40.7, -74.0), zoom=15, width=640, height=480)
        p = canvas_px_to_geo(100, 50, vp)
        x, y = geo_to_canvas_px(p, vp)
        assert abs(x - 100) <= 1 and abs(y - 50) <= 1
