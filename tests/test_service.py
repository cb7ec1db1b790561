"""
Test the service facade and snapshot publishing
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from shapely.geometry import Polygon

from mapifyit.errors import ErrorKind, IndexUnavailable
import mapifyit.index.snapshot as snapshot_module
from mapifyit.index.snapshot import IndexHolder
from mapifyit.poi.taxonomy import active_rules
from mapifyit.query.engine import QueryEngine
from mapifyit.service import GeocodingService

from conftest import make_poi, make_raw, snapshot_of


@pytest.fixture
def raw_records():
    return [
        make_raw("F-8 Markaz", lon=73.0479, lat=33.6844, shop="mall"),
        make_raw("F-10 Markaz", lon=73.0450, lat=33.6900, shop="mall"),
        make_raw("Centaurus Mall", lon=73.0623, lat=33.7135, shop="mall"),
        make_raw("Centaurus Mall", lon=73.0623, lat=33.71355, shop="mall"),
        make_raw(" Faisal   Mosque ", lon=73.0366, lat=33.7294, amenity="place_of_worship"),
        make_raw("PIMS", lon=73.0490, lat=33.7050, amenity="hospital"),
        make_raw("Lahore Fort", lon=74.3100, lat=31.5880, historic="castle"),
        make_raw("No Coordinates", lon=None, lat=None),
    ]


class TestBeforePublish:

    def test_holder_raises(self):
        with pytest.raises(IndexUnavailable):
            IndexHolder().current()
        assert not IndexHolder().is_ready

    @pytest.mark.parametrize("call", [
        lambda s: s.search("mark"),
        lambda s: s.reverse(33.7, 73.05),
        lambda s: s.buffers("Health", 500),
        lambda s: s.ingestion_report(),
    ])
    def test_every_query_reports_unavailable(self, call):
        result = call(GeocodingService())
        assert not result.ok
        assert result.error is ErrorKind.INDEX_UNAVAILABLE


class TestIngestAndQuery:

    def test_ingest_publishes(self, raw_records, islamabad_boundary):
        service = GeocodingService()
        result = service.ingest(raw_records, islamabad_boundary)
        assert result.ok
        assert result.data["total_raw"] == 8
        assert result.data["total_kept"] == 5
        assert result.data["duplicates_dropped"] == 1
        assert result.data["invalid_dropped"] == 2
        assert service.holder.is_ready
        assert service.ingestion_report().data == result.data

    def test_typed_results(self, raw_records, islamabad_boundary):
        service = GeocodingService()
        service.ingest(raw_records, islamabad_boundary)

        search = service.search("mark")
        assert search.ok
        assert search.data == [
            {"name": "F-8 Markaz", "category_group": "Commercial", "coordinates": [73.0479, 33.6844]},
            {"name": "F-10 Markaz", "category_group": "Commercial", "coordinates": [73.045, 33.69]},
        ]

        reverse = service.reverse(33.6844, 73.0479)
        assert reverse.data["name"] == "F-8 Markaz"
        assert reverse.data["distance_km"] == 0.0

        buffers = service.buffers("Health", 500)
        assert [f["properties"]["category_group"] for f in buffers.data["features"]] == ["Health"]

    def test_errors_become_results(self, raw_records, islamabad_boundary):
        service = GeocodingService()
        service.ingest(raw_records, islamabad_boundary)
        assert service.search("  ").error is ErrorKind.INVALID_INPUT
        assert service.reverse("north", 73.0).error is ErrorKind.INVALID_INPUT
        assert service.buffers("Shopping", 500).error is ErrorKind.INVALID_INPUT
        assert service.search("  ").message

    def test_failed_ingest_keeps_previous_snapshot(self, raw_records, islamabad_boundary):
        service = GeocodingService()
        service.ingest(raw_records, islamabad_boundary)
        before = service.holder.current()

        result = service.ingest([], islamabad_boundary)
        assert not result.ok
        assert result.error is ErrorKind.INGESTION_FAILED
        assert service.holder.current() is before

    def test_empty_boundary_is_a_failed_result(self, raw_records, islamabad_boundary):
        service = GeocodingService()
        service.ingest(raw_records, islamabad_boundary)
        before = service.holder.current()

        result = service.ingest(raw_records, Polygon())
        assert not result.ok
        assert result.error is ErrorKind.INGESTION_FAILED
        assert service.holder.current() is before

    @pytest.mark.parametrize("text", [
        "rules:\n  - {group: Shopping, key: shop, values: [mall]}\n",
        "rules: [{group: Health, key: amenity\n",
    ])
    def test_malformed_rules_file_is_a_failed_result(self, raw_records, islamabad_boundary, tmp_path, monkeypatch, text):
        path = tmp_path / "rules.yml"
        path.write_text(text)
        monkeypatch.setattr(snapshot_module, "active_rules", lambda: active_rules(str(path)))

        result = GeocodingService().ingest(raw_records, islamabad_boundary)
        assert not result.ok
        assert result.error is ErrorKind.INGESTION_FAILED
        assert "category rules" in result.message


class TestPublish:

    def test_swap_does_not_disturb_held_snapshot(self, landmark_pois):
        holder = IndexHolder()
        old = snapshot_of(landmark_pois)
        assert holder.publish(old) is None

        engine = QueryEngine(holder.current())
        new = snapshot_of([make_poi("Daman-e-Koh", 73.0580, 33.7390)])
        assert holder.publish(new) is old

        assert [p.name for p in engine.search_by_name("markaz")] == ["F-8 Markaz", "F-10 Markaz"]
        assert QueryEngine(holder.current()).search_by_name("markaz") == []

    def test_concurrent_reads_during_publish(self, landmark_pois):
        service = GeocodingService()
        snapshots = [
            snapshot_of(landmark_pois),
            snapshot_of(landmark_pois + [make_poi("Markaz Kiosk", 73.0700, 33.7000)]),
        ]
        service.publish(snapshots[0])

        def read(i):
            if i % 10 == 0:
                service.publish(snapshots[(i // 10) % 2])
            return service.search("markaz")

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(read, range(200)))

        assert all(r.ok for r in results)
        assert {len(r.data) for r in results} <= {2, 3}
