"""
Test the command-line entry points end to end on a tiny dataset
"""
import json
import os

import geopandas as gpd
import pytest
import requests

from mapifyit.cli import CANONICAL_FILE, REPORT_FILE, load_canonical_snapshot, main

from conftest import ISLAMABAD_RING


def _feature(name, lon, lat, **props):
    props["name"] = name
    return {"type": "Feature", "geometry": {"type": "Point", "coordinates": [lon, lat]}, "properties": props}


@pytest.fixture
def inputs(tmp_path):
    raw = tmp_path / "rawPois.geojson"
    raw.write_text(json.dumps({
        "type": "FeatureCollection",
        "features": [
            _feature("F-8 Markaz", 73.0479, 33.6844, shop="mall"),
            _feature("F-10 Markaz", 73.0450, 33.6900, shop="mall"),
            _feature("Faisal Mosque", 73.0366, 33.7294, amenity="place_of_worship"),
            _feature("PIMS", 73.0490, 33.7050, amenity="hospital"),
            _feature("Polyclinic", 73.0880, 33.7180, amenity="hospital"),
            _feature("PIMS", 73.04901, 33.70501, amenity="hospital"),
            {"type": "Feature", "geometry": None, "properties": {"name": "Lost"}},
        ],
    }), encoding="utf-8")
    boundary = tmp_path / "islamabad.geojson"
    boundary.write_text(json.dumps({
        "type": "FeatureCollection",
        "features": [{
            "type": "Feature",
            "properties": {"name": "Islamabad Capital Territory"},
            "geometry": {"type": "Polygon", "coordinates": [[list(p) for p in ISLAMABAD_RING]]},
        }],
    }), encoding="utf-8")
    return str(raw), str(boundary), str(tmp_path / "out")


@pytest.fixture
def canonical(inputs, capsys):
    raw, boundary, out = inputs
    assert main(["ingest", "--raw", raw, "--boundary", boundary, "--out", out]) == 0
    capsys.readouterr()
    return os.path.join(out, CANONICAL_FILE)


class TestIngestCommand:

    def test_writes_dataset_and_report(self, inputs, capsys):
        raw, boundary, out = inputs
        assert main(["ingest", "--raw", raw, "--boundary", boundary, "--out", out, "--parquet"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["total_raw"] == 7
        assert report["total_kept"] == 5
        assert report["duplicates_dropped"] == 1
        assert report["invalid_dropped"] == 1
        assert report["category_counts"]["Health"] == 2

        assert os.path.exists(os.path.join(out, CANONICAL_FILE))
        assert os.path.exists(os.path.join(out, REPORT_FILE))
        parquet = gpd.read_parquet(os.path.join(out, "canonical_pois.parquet"))
        assert list(parquet["name"]) == ["F-8 Markaz", "F-10 Markaz", "Faisal Mosque", "PIMS", "Polyclinic"]

    def test_rerun_is_byte_identical(self, inputs):
        raw, boundary, out = inputs
        main(["ingest", "--raw", raw, "--boundary", boundary, "--out", out])
        with open(os.path.join(out, CANONICAL_FILE), "rb") as f:
            first = f.read()
        main(["ingest", "--raw", raw, "--boundary", boundary, "--out", out])
        with open(os.path.join(out, CANONICAL_FILE), "rb") as f:
            assert f.read() == first

    def test_missing_raw_file(self, tmp_path):
        assert main(["ingest", "--raw", str(tmp_path / "nope.geojson"), "--out", str(tmp_path / "out")]) == 2

    def test_snapshot_round_trip(self, canonical):
        snapshot = load_canonical_snapshot(canonical)
        assert len(snapshot.pois) == 5
        assert snapshot.report.total_raw == 7

    def test_overpass_fallback(self, inputs, capsys, monkeypatch):
        def unreachable(self, *args, **kwargs):
            raise requests.ConnectionError("unreachable")
        monkeypatch.setattr(requests.Session, "post", unreachable)
        _, boundary, out = inputs

        assert main(["ingest", "--overpass", "--boundary", boundary, "--out", out]) == 2
        assert main(["ingest", "--overpass", "--overpass-fallback", "--boundary", boundary, "--out", out]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["total_kept"] == 5
        assert report["category_counts"]["Commercial"] == 3


class TestQueryCommands:

    def test_search(self, canonical, capsys):
        assert main(["search", "markaz", "--canonical", canonical]) == 0
        hits = json.loads(capsys.readouterr().out)
        assert [h["name"] for h in hits] == ["F-8 Markaz", "F-10 Markaz"]

    def test_search_empty_query(self, canonical, capsys):
        assert main(["search", "   ", "--canonical", canonical]) == 1
        assert json.loads(capsys.readouterr().out)["error"] == "invalid_input"

    def test_reverse(self, canonical, capsys):
        assert main(["reverse", "33.7294", "73.0366", "--canonical", canonical]) == 0
        hit = json.loads(capsys.readouterr().out)
        assert hit["name"] == "Faisal Mosque"
        assert hit["distance_km"] == 0.0

    def test_buffers_to_stdout(self, canonical, capsys):
        assert main(["buffers", "Health", "500", "--canonical", canonical]) == 0
        collection = json.loads(capsys.readouterr().out)
        assert len(collection["features"]) == 2
        assert all(len(f["geometry"]["coordinates"][0]) == 65 for f in collection["features"])

    def test_buffers_to_file(self, canonical, tmp_path):
        path = str(tmp_path / "health_buffers.geojson")
        assert main(["buffers", "Health", "500", "--canonical", canonical, "--out", path]) == 0
        gdf = gpd.read_file(path)
        assert len(gdf) == 2
        assert set(gdf["category_group"]) == {"Health"}

    def test_buffers_bad_radius(self, canonical, capsys):
        assert main(["buffers", "Health", "wide", "--canonical", canonical]) == 1
        assert json.loads(capsys.readouterr().out)["error"] == "invalid_input"

    def test_missing_canonical_file(self, tmp_path):
        assert main(["search", "x", "--canonical", str(tmp_path / "missing.geojson")]) == 2
