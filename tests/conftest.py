"""Shared fixtures: an Islamabad-sized region and small raw/canonical POI sets."""
import pytest
from shapely.geometry import Polygon

from mapifyit.index.snapshot import Snapshot, snapshot_from_pois
from mapifyit.poi.normalize import IngestionReport, normalize_name
from mapifyit.poi.schema import CanonicalPOI, CategoryGroup, RawPOIRecord


ISLAMABAD_RING = [
    (72.90, 33.55),
    (73.20, 33.55),
    (73.20, 33.80),
    (72.90, 33.80),
    (72.90, 33.55),
]

# L-shaped region: the north-east quarter of its bbox is outside the boundary
L_SHAPED_RING = [
    (73.00, 33.60),
    (73.20, 33.60),
    (73.20, 33.70),
    (73.10, 33.70),
    (73.10, 33.80),
    (73.00, 33.80),
    (73.00, 33.60),
]


def make_raw(name=None, lon=73.05, lat=33.70, raw_id=None, **tags) -> RawPOIRecord:
    if name is not None:
        tags["name"] = name
    return RawPOIRecord(raw_id=raw_id, tags=tags, lon=lon, lat=lat)


def make_poi(name, lon, lat, group=CategoryGroup.COMMERCIAL, poi_id=None) -> CanonicalPOI:
    return CanonicalPOI(
        poi_id=poi_id or f"poi-{name}-{lon}-{lat}",
        name=name,
        normalized_name=normalize_name(name),
        category_group=group,
        lon=lon,
        lat=lat,
    )


def snapshot_of(pois, bbox=None) -> Snapshot:
    counts = {g.value: 0 for g in CategoryGroup}
    for p in pois:
        counts[p.category_group.value] += 1
    report = IngestionReport(
        total_raw=len(pois), total_kept=len(pois), duplicates_dropped=0,
        invalid_dropped=0, category_counts=counts,
    )
    return snapshot_from_pois(pois, report, bbox=bbox)


@pytest.fixture
def islamabad_boundary():
    return Polygon(ISLAMABAD_RING)


@pytest.fixture
def l_shaped_boundary():
    return Polygon(L_SHAPED_RING)


@pytest.fixture
def landmark_pois():
    """Islamabad landmarks used as a small canonical dataset."""
    return [
        make_poi("F-8 Markaz", 73.0479, 33.6844, CategoryGroup.COMMERCIAL),
        make_poi("F-10 Markaz", 73.0450, 33.6900, CategoryGroup.COMMERCIAL),
        make_poi("Centaurus Mall", 73.0623, 33.7135, CategoryGroup.COMMERCIAL),
        make_poi("Pakistan Monument", 73.0678, 33.6934, CategoryGroup.CULTURAL),
        make_poi("Faisal Mosque", 73.0366, 33.7294, CategoryGroup.RELIGIOUS),
    ]
