"""
Test name + proximity deduplication
"""
import pytest

from mapifyit.geometry_utils import haversine_m, meters_per_degree_lat, meters_per_degree_lon
from mapifyit.poi.conflate import dedup

from conftest import make_poi


def _north_of(lat, meters):
    return lat + meters / meters_per_degree_lat()


class TestDedup:

    def test_close_same_name_collapses(self):
        a = make_poi("Centaurus Mall", 73.0623, 33.7135)
        b = make_poi("Centaurus Mall", 73.0623, _north_of(33.7135, 10.0))
        kept, dropped = dedup([a, b])
        assert kept == [a]
        assert dropped == 1

    def test_far_same_name_both_kept(self):
        a = make_poi("Centaurus Mall", 73.0623, 33.7135)
        b = make_poi("Centaurus Mall", 73.0623, _north_of(33.7135, 60.0))
        kept, dropped = dedup([a, b])
        assert kept == [a, b]
        assert dropped == 0

    def test_case_and_whitespace_variants_are_duplicates(self):
        a = make_poi("F-8 Markaz", 73.0479, 33.6844)
        b = make_poi("  f-8   MARKAZ", 73.0479, _north_of(33.6844, 5.0))
        kept, _ = dedup([a, b])
        assert kept == [a]

    def test_different_names_are_not_duplicates(self):
        a = make_poi("Jinnah Super", 73.05, 33.70)
        b = make_poi("Jinnah Market", 73.05, 33.70)
        kept, dropped = dedup([a, b])
        assert kept == [a, b]
        assert dropped == 0

    def test_first_occurrence_survives(self):
        late = make_poi("Kohsar Market", 73.0700, 33.7300, poi_id="later")
        early = make_poi("Kohsar Market", 73.0700, _north_of(33.7300, 20.0), poi_id="earlier")
        kept, _ = dedup([early, late])
        assert [p.poi_id for p in kept] == ["earlier"]

    def test_chain_compares_against_kept_only(self):
        # A-B is 30 m, B-C is 30 m, A-C is 60 m: B goes, C stays
        a = make_poi("Stop", 73.05, 33.70, poi_id="a")
        b = make_poi("Stop", 73.05, _north_of(33.70, 30.0), poi_id="b")
        c = make_poi("Stop", 73.05, _north_of(33.70, 60.0), poi_id="c")
        kept, dropped = dedup([a, b, c])
        assert [p.poi_id for p in kept] == ["a", "c"]
        assert dropped == 1

    @pytest.mark.parametrize("bearing", ["east", "west", "north", "south"])
    def test_duplicates_across_cell_edges(self, bearing):
        # a cell edge falls between the pair in at least one direction
        lat, lon = 33.70001, 73.00001
        step_lon = 40.0 / meters_per_degree_lon(lat)
        step_lat = 40.0 / meters_per_degree_lat()
        offsets = {
            "east": (step_lon, 0.0),
            "west": (-step_lon, 0.0),
            "north": (0.0, step_lat),
            "south": (0.0, -step_lat),
        }
        dx, dy = offsets[bearing]
        a = make_poi("Booth", lon, lat)
        b = make_poi("Booth", lon + dx, lat + dy)
        assert haversine_m(a.lat, a.lon, b.lat, b.lon) < 50.0
        assert dedup([a, b])[1] == 1

    def test_empty(self):
        assert dedup([]) == ([], 0)

    def test_custom_radius(self):
        a = make_poi("Stop", 73.05, 33.70)
        b = make_poi("Stop", 73.05, _north_of(33.70, 80.0))
        assert dedup([a, b], radius_m=100.0)[1] == 1
        assert dedup([a, b], radius_m=50.0)[1] == 0
