"""
Unit tests for request parameter resolution
"""

import pytest

from common.types import GeoPoint, MarkerSpec
from staticmap.config import Settings
from staticmap.params import icon_basename, parse_marker_set, parse_markers, parse_params, parse_size


@pytest.fixture
def S():
    return Settings(map_sources={"mapnik": "https://a.test/{Z}/{X}/{Y}.png", "topo": "https://b.test/{Z}/{X}/{Y}.png"})


class TestSimpleFields:
    def test_defaults(self, S):
        req = parse_params({}, S)
        vp = req.viewport
        assert (vp.width, vp.height) == (500, 350)
        assert vp.center == GeoPoint(0.0, 0.0)
        assert vp.zoom == 0
        assert vp.scale == 1
        assert vp.format == "png"
        assert req.maptype == "mapnik"
        assert req.markers == ()

    def test_explicit_viewport(self, S):
        req = parse_params(
            {"center": "40.714728,-73.998672", "zoom": "14", "size": "512x512", "maptype": "topo", "scale": "2", "format": "JPG"},
            S,
        )
        vp = req.viewport
        assert vp.center == GeoPoint(40.714728, -73.998672)
        assert vp.zoom == 14
        assert (vp.width, vp.height) == (512, 512)
        assert vp.output_size == (1024, 1024)
        assert vp.format == "jpg"
        assert req.maptype == "topo"

    @pytest.mark.parametrize("raw,expected", [("30", 18), ("-3", 0), ("abc", 0), ("12.9", 12)])
    def test_zoom_is_clamped_or_defaulted(self, S, raw, expected):
        assert parse_params({"zoom": raw}, S).viewport.zoom == expected

    @pytest.mark.parametrize("raw,expected", [
        ("640x480", (640, 480)),
        ("bogus", (500, 350)),
        ("10xabc", (500, 350)),
        ("0x99999", (1, 2048)),
    ])
    def test_size(self, S, raw, expected):
        assert parse_size(raw, S) == expected

    def test_unknown_values_fall_back(self, S):
        req = parse_params({"maptype": "nope", "scale": "3", "format": "bmp", "center": "garbage"}, S)
        assert req.maptype == "mapnik"
        assert req.viewport.scale == 1
        assert req.viewport.format == "png"
        assert req.viewport.center == GeoPoint(0.0, 0.0)

    @pytest.mark.parametrize("raw", ["nan,nan", "inf,0", "10,-inf", "NaN,5"])
    def test_non_finite_center_falls_back(self, S, raw):
        assert parse_params({"center": raw}, S).viewport.center == GeoPoint(0.0, 0.0)

    @pytest.mark.parametrize("raw,expected", [("-90,0", GeoPoint(-90.0, 0.0)), ("95,10", GeoPoint(95.0, 10.0))])
    def test_out_of_range_center_is_kept(self, S, raw, expected):
        assert parse_params({"center": raw, "zoom": "3"}, S).viewport.center == expected


class TestMarkers:
    def test_basic_entries_and_separators(self):
        ms = parse_marker_set("40.70,-74.01,ol-marker|40.71,-74.00%7C40.72,-73.99,bullseye")
        assert [m.icon for m in ms] == ["ol-marker", "", "bullseye"]
        assert ms[0].geo == GeoPoint(40.70, -74.01)

    def test_malformed_entries_skipped(self):
        ms = parse_marker_set("40.70|abc,def,x|40.71,-74.00|")
        assert len(ms) == 1

    def test_non_finite_markers_skipped(self):
        ms = parse_marker_set("nan,1|40.71,inf,bullseye|-90,5|40.71,-74.00")
        assert [m.geo for m in ms] == [GeoPoint(-90.0, 5.0), GeoPoint(40.71, -74.00)]

    def test_icon_path_is_stripped(self):
        assert icon_basename("../../etc/passwd") == "passwd"
        assert icon_basename("..\\secret\\ol-marker") == "ol-marker"
        ms = parse_marker_set("1,2,../x/bullseye")
        assert ms[0].icon == "bullseye"

    def test_style_directives_scope_within_set(self):
        """0,0 entries are directives for the markers that follow them"""
        ms = parse_marker_set("1,1,ol-marker|0,0,color:gold|2,2,ol-marker|0,0,transparent|3,3,pushpin|0,0,opaque|4,4")
        assert len(ms) == 4
        assert [(m.color, m.transparent) for m in ms] == [
            ("", False),
            ("gold", False),
            ("gold", True),
            ("gold", False),
        ]

    def test_directives_do_not_leak_across_sets(self):
        ms = parse_markers(["0,0,color:red|10,10", "5,5"])
        by_lat = {m.geo.lat: m for m in ms}
        assert by_lat[10.0].color == "red"
        assert by_lat[5.0].color == ""

    def test_marker_at_null_island_is_a_directive(self):
        assert parse_marker_set("0,0") == []
        assert parse_marker_set("0.0,-0.0,ol-marker") == []

    def test_draw_order_north_to_south(self):
        """Southern markers last; equal latitude ordered by longitude"""
        ms = parse_markers(["10,5|30,1|10,-5|20,0"])
        assert [(m.geo.lat, m.geo.lon) for m in ms] == [(30, 1), (20, 0), (10, -5), (10, 5)]

    def test_order_independent(self):
        a = parse_markers(["40.70,-74.01,ol-marker|40.72,-73.99"])
        b = parse_markers(["40.72,-73.99|40.70,-74.01,ol-marker"])
        assert a == b


class TestAutoCenter:
    def test_center_and_zoom_from_markers(self, S):
        req = parse_params({"markers": "40.702147,-74.015794|40.718217,-73.998284"}, S)
        vp = req.viewport
        assert vp.center.lat == pytest.approx(40.7101820)
        assert vp.center.lon == pytest.approx(-74.007039)
        assert vp.zoom == 14

    def test_explicit_zoom_wins(self, S):
        req = parse_params({"markers": "40.702147,-74.015794|40.718217,-73.998284", "zoom": "11"}, S)
        assert req.viewport.zoom == 11
        assert req.viewport.center.lat == pytest.approx(40.7101820)

    def test_explicit_center_skips_solver(self, S):
        req = parse_params({"markers": "40.70,-74.01", "center": "10,20"}, S)
        assert req.viewport.center == GeoPoint(10, 20)
        assert req.viewport.zoom == 0

    def test_autozoom_disabled_without_bounds(self, S):
        s = S.with_overrides(min_zoom=None)
        req = parse_params({"markers": "40.70,-74.01"}, s)
        assert req.viewport.center == GeoPoint(0.0, 0.0)
        assert req.viewport.zoom == 0

    def test_repeated_markers_pairs(self, S):
        req = parse_params([("markers", "1,1"), ("markers", "2,2"), ("center", "0,0"), ("zoom", "3")], S)
        assert [m.geo.lat for m in req.markers] == [2.0, 1.0]
        assert isinstance(req.markers[0], MarkerSpec)
