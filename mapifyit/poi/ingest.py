"""
Raw POI Ingestion

Loads raw POI features (GeoJSON FeatureCollection or Overpass API JSON) into
RawPOIRecord objects and loads the region boundary polygon.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterable, List, Mapping, Optional

import geopandas as gpd
import requests
from shapely.geometry.base import BaseGeometry

from ..config import FALLBACK_POIS, OVERPASS_FILTERS, OVERPASS_TIMEOUT, OVERPASS_URL, REGION_BBOX
from ..errors import IngestionError
from ..geometry_utils import BBox, boundary_from_geodataframe, fallback_boundary
from .schema import RawPOIRecord

logger = logging.getLogger(__name__)

_ID_KEYS = ("@id", "osm_id", "id")


def raw_record_from_feature(feature: Any, index: int = 0) -> RawPOIRecord:
    """
    Convert one GeoJSON feature into a raw record.

    Never raises: a feature without usable geometry keeps lon/lat as None so
    validation can count it as malformed.
    """
    if not isinstance(feature, Mapping):
        return RawPOIRecord(raw_id=None, tags={}, lon=None, lat=None, source_meta={"index": index})

    props = feature.get("properties") or {}
    if not isinstance(props, Mapping):
        props = {}
    tags = {str(k): v for k, v in props.items() if v is not None}

    raw_id = feature.get("id")
    if raw_id is None:
        raw_id = next((tags[k] for k in _ID_KEYS if tags.get(k) not in (None, "")), None)

    lon = lat = None
    geom = feature.get("geometry") or {}
    if isinstance(geom, Mapping) and geom.get("type") == "Point":
        coords = geom.get("coordinates")
        if isinstance(coords, (list, tuple)) and len(coords) >= 2:
            lon, lat = coords[0], coords[1]

    return RawPOIRecord(
        raw_id=None if raw_id is None else str(raw_id),
        tags=tags,
        lon=lon,
        lat=lat,
        source="geojson",
        source_meta={"index": index},
    )


def raw_records_from_geojson(payload: Any) -> List[RawPOIRecord]:
    if not isinstance(payload, Mapping) or not isinstance(payload.get("features"), list):
        raise IngestionError("Raw POI payload is not a GeoJSON FeatureCollection")
    return [raw_record_from_feature(f, i) for i, f in enumerate(payload["features"])]


def load_raw_pois(path: str) -> List[RawPOIRecord]:
    """
    Load raw POIs from a GeoJSON file.

    Args:
        path: e.g. data/rawPois.geojson

    Returns:
        Raw records in file order
    """
    if not os.path.exists(path):
        raise IngestionError(f"Raw POI file not found: {path}")
    logger.info(f"--- Loading raw POIs from {path} ---")
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise IngestionError(f"Raw POI file {path} is not valid JSON: {e}") from e
    records = raw_records_from_geojson(payload)
    logger.info(f"[ok] Loaded {len(records)} raw POI features")
    return records


# --- Overpass ---

def build_overpass_query(bbox: BBox = REGION_BBOX, filters: Mapping[str, Iterable[str]] = OVERPASS_FILTERS, timeout: int = 25) -> str:
    min_lon, min_lat, max_lon, max_lat = bbox
    # Overpass bboxes are (south, west, north, east)
    area = f"({min_lat},{min_lon},{max_lat},{max_lon})"
    clauses = "\n".join(
        f'  node["{key}"~"{"|".join(values)}"]{area};' for key, values in filters.items()
    )
    return f"[out:json][timeout:{timeout}];\n(\n{clauses}\n);\nout body;\n"


def raw_record_from_overpass_element(element: Mapping[str, Any]) -> RawPOIRecord:
    return RawPOIRecord(
        raw_id=f"{element.get('type', 'node')}/{element.get('id')}" if element.get("id") is not None else None,
        tags=dict(element.get("tags") or {}),
        lon=element.get("lon"),
        lat=element.get("lat"),
        source="overpass",
        source_meta={"type": element.get("type")},
    )


def fallback_pois() -> List[RawPOIRecord]:
    """Built-in landmark records, pre-labelled with their category group."""
    return [
        RawPOIRecord(
            raw_id=f"fallback/{i}",
            tags={"name": name, "category_group": group},
            lon=lon,
            lat=lat,
            source="fallback",
        )
        for i, (name, lon, lat, group) in enumerate(FALLBACK_POIS)
    ]


def _overpass_elements(http, url: str, query: str, timeout: float) -> list:
    try:
        response = http.post(url, data=query, headers={"Content-Type": "text/plain"}, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        raise IngestionError(f"Overpass request failed: {e}") from e

    elements = payload.get("elements") if isinstance(payload, Mapping) else None
    if not isinstance(elements, list):
        raise IngestionError("Overpass response has no 'elements' list")
    return elements


def fetch_overpass_pois(
    bbox: BBox = REGION_BBOX,
    session: Optional[requests.Session] = None,
    url: str = OVERPASS_URL,
    timeout: float = OVERPASS_TIMEOUT,
    limit: Optional[int] = None,
    use_fallback: bool = False,
) -> List[RawPOIRecord]:
    """
    Fetch raw POI nodes for a bbox from the Overpass API.

    Args:
        limit: keep at most this many elements (in response order)
        use_fallback: return the built-in landmarks instead of raising when the fetch fails

    Raises:
        IngestionError: the request failed or the response is not Overpass JSON
    """
    query = build_overpass_query(bbox)
    http = session or requests.Session()
    logger.info(f"--- Fetching POIs from Overpass for bbox {bbox} ---")
    try:
        elements = _overpass_elements(http, url, query, timeout)
    except IngestionError as e:
        if not use_fallback:
            raise
        logger.warning(f"[warn] {e}; using {len(FALLBACK_POIS)} built-in landmark POIs")
        return fallback_pois()

    records = [raw_record_from_overpass_element(el) for el in elements if isinstance(el, Mapping)]
    if limit is not None:
        records = records[:max(limit, 0)]
    logger.info(f"[ok] Fetched {len(records)} POIs from Overpass")
    return records


# --- Boundary ---

def load_boundary(path: Optional[str] = None) -> BaseGeometry:
    """
    Load the region boundary as a single (Multi)Polygon in EPSG:4326.

    Without a path, or when the file is missing, the inline fallback boundary
    is used.
    """
    if not path:
        logger.warning("[warn] No boundary file given; using inline fallback boundary")
        return fallback_boundary()
    if not os.path.exists(path):
        logger.warning(f"[warn] Boundary file not found at {path}; using inline fallback boundary")
        return fallback_boundary()

    logger.info(f"Loading region boundary from {path}")
    gdf = gpd.read_file(path)
    try:
        boundary = boundary_from_geodataframe(gdf)
    except ValueError as e:
        raise IngestionError(f"{path}: {e}") from e
    logger.info(f"[ok] Boundary loaded with bounds {tuple(round(b, 5) for b in boundary.bounds)}")
    return boundary
