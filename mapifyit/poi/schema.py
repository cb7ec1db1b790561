"""
Canonical POI Schema Definition

Defines the raw and canonical POI records, the closed category enumeration and
the tabular/GeoJSON forms of the canonical dataset.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import geopandas as gpd
import pandas as pd
from shapely.geometry import Point


class CategoryGroup(str, Enum):
    HEALTH = "Health"
    EDUCATION = "Education"
    COMMERCIAL = "Commercial"
    RELIGIOUS = "Religious"
    TRANSPORT = "Transport"
    PARK = "Park"
    CULTURAL = "Cultural"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Any) -> "CategoryGroup":
        """Accept an enum member, its value or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown category_group: {value!r}. Available: {[m.value for m in cls]}")


@dataclass(frozen=True)
class RawPOIRecord:
    """One feature as it arrived from a source. Coordinates are not trusted yet."""

    raw_id: Optional[str]
    tags: Mapping[str, Any]
    lon: Any
    lat: Any
    source: str = "geojson"
    source_meta: Mapping[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class CanonicalPOI:
    poi_id: str
    name: str
    normalized_name: str
    category_group: CategoryGroup
    lon: float
    lat: float
    source: str = "geojson"

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.lon, self.lat)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poi_id": self.poi_id,
            "name": self.name,
            "category_group": self.category_group.value,
            "coordinates": [self.lon, self.lat],
        }


# Canonical Data Schema
# This defines the tabular form of the canonical dataset.
CANONICAL_POI_SCHEMA = {
    "poi_id": "str",
    "name": "str",
    "normalized_name": "str",
    "category_group": "str",
    "lon": "float64",
    "lat": "float64",
    "source": "str",
    "geometry": "geometry",
}


def create_empty_poi_dataframe() -> gpd.GeoDataFrame:
    """Create an empty GeoDataFrame with the canonical POI schema."""
    return gpd.GeoDataFrame(
        columns=list(CANONICAL_POI_SCHEMA.keys()),
        geometry='geometry',
        crs="EPSG:4326"
    )


def to_geodataframe(pois: Iterable[CanonicalPOI]) -> gpd.GeoDataFrame:
    """Canonical POIs as a GeoDataFrame in canonical order."""
    rows = [
        {
            "poi_id": p.poi_id,
            "name": p.name,
            "normalized_name": p.normalized_name,
            "category_group": p.category_group.value,
            "lon": p.lon,
            "lat": p.lat,
            "source": p.source,
            "geometry": Point(p.lon, p.lat),
        }
        for p in pois
    ]
    if not rows:
        return create_empty_poi_dataframe()
    return gpd.GeoDataFrame(pd.DataFrame(rows), geometry="geometry", crs="EPSG:4326")


def validate_poi_dataframe(gdf: gpd.GeoDataFrame) -> bool:
    """
    Validate that a GeoDataFrame conforms to the canonical POI schema.

    Args:
        gdf: GeoDataFrame to validate

    Returns:
        True if valid, raises ValueError otherwise
    """
    missing_cols = set(CANONICAL_POI_SCHEMA.keys()) - set(gdf.columns)
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    allowed = {g.value for g in CategoryGroup}
    bad = set(gdf["category_group"].dropna()) - allowed
    if bad:
        raise ValueError(f"category_group outside the closed enum: {bad}")

    if (gdf["normalized_name"].fillna("").astype(str).str.len() == 0).any():
        raise ValueError("normalized_name must be non-empty")

    if gdf["poi_id"].duplicated().any():
        raise ValueError("poi_id must be unique")

    return True


def to_geojson(pois: Iterable[CanonicalPOI]) -> Dict[str, Any]:
    features: List[Dict[str, Any]] = []
    for p in pois:
        features.append({
            "type": "Feature",
            "id": p.poi_id,
            "geometry": {"type": "Point", "coordinates": [p.lon, p.lat]},
            "properties": {
                "name": p.name,
                "normalized_name": p.normalized_name,
                "category_group": p.category_group.value,
                "source": p.source,
            },
        })
    return {"type": "FeatureCollection", "features": features}


def dumps_canonical(pois: Iterable[CanonicalPOI]) -> str:
    """Deterministic serialization; identical input order gives identical bytes."""
    return json.dumps(to_geojson(pois), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def pois_from_geojson(payload: Mapping[str, Any]) -> List[CanonicalPOI]:
    """Read back a canonical FeatureCollection written by `dumps_canonical`."""
    pois = []
    for feat in payload.get("features", []):
        props = feat["properties"]
        lon, lat = feat["geometry"]["coordinates"][:2]
        pois.append(CanonicalPOI(
            poi_id=str(feat["id"]),
            name=props["name"],
            normalized_name=props["normalized_name"],
            category_group=CategoryGroup.parse(props["category_group"]),
            lon=float(lon),
            lat=float(lat),
            source=props.get("source", "geojson"),
        ))
    return pois
