"""
mapifyit.poi - POI ingestion, normalization, and deduplication logic.

This module turns raw POI features (GeoJSON, Overpass) into the canonical
schema that the spatial index and query layer run against.
"""

from .schema import CANONICAL_POI_SCHEMA, CanonicalPOI, CategoryGroup, RawPOIRecord, validate_poi_dataframe
from .ingest import fallback_pois, fetch_overpass_pois, load_boundary, load_raw_pois
from .normalize import IngestionReport, clean_name, normalize_name, normalize_pois, validate
from .taxonomy import CATEGORY_RULES, classify
from .conflate import dedup

__all__ = [
    "CANONICAL_POI_SCHEMA",
    "CanonicalPOI",
    "CategoryGroup",
    "RawPOIRecord",
    "validate_poi_dataframe",
    "fallback_pois",
    "fetch_overpass_pois",
    "load_boundary",
    "load_raw_pois",
    "IngestionReport",
    "clean_name",
    "normalize_name",
    "normalize_pois",
    "validate",
    "CATEGORY_RULES",
    "classify",
    "dedup",
]
