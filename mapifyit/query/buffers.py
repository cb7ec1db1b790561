"""
Geodesic proximity buffers for a category.

Each ring vertex is the destination of a great-circle walk of `radius_m` from the
POI along an evenly spaced bearing, so the ring narrows in longitude degrees as
latitude grows instead of using a flat-Earth offset.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache, partial
from typing import Any, Dict, List, Sequence, Tuple

import geopandas as gpd
import numpy as np
from shapely.geometry import Polygon

from ..config import BUFFER_SEGMENTS
from ..errors import InvalidInput
from ..geometry_utils import destination_points
from ..index.snapshot import Snapshot
from ..poi.schema import CanonicalPOI, CategoryGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BufferPolygon:
    poi_id: str
    category_group: CategoryGroup
    radius_m: float
    ring: Tuple[Tuple[float, float], ...]  # closed: first vertex repeated last

    @property
    def polygon(self) -> Polygon:
        return Polygon(self.ring)

    def to_feature(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [[list(v) for v in self.ring]]},
            "properties": {
                "poi_id": self.poi_id,
                "category_group": self.category_group.value,
                "radius_m": self.radius_m,
            },
        }


def buffer_ring(lon: float, lat: float, radius_m: float, segments: int = BUFFER_SEGMENTS) -> Tuple[Tuple[float, float], ...]:
    # decreasing bearings walk the ring counter-clockwise (GeoJSON exterior winding)
    bearings = (-np.arange(segments, dtype=np.float64) * (360.0 / segments)) % 360.0
    lats, lons = destination_points(lat, lon, bearings, radius_m)
    ring = tuple(zip(lons.tolist(), lats.tolist()))
    return ring + (ring[0],)


def _buffer_for(poi: CanonicalPOI, radius_m: float, segments: int) -> BufferPolygon:
    return BufferPolygon(
        poi_id=poi.poi_id,
        category_group=poi.category_group,
        radius_m=radius_m,
        ring=buffer_ring(poi.lon, poi.lat, radius_m, segments),
    )


def _build_buffers(snapshot: Snapshot, group: CategoryGroup, radius_m: float, segments: int) -> Tuple[BufferPolygon, ...]:
    pois = snapshot.index.query_category(group)
    buffers = tuple(_buffer_for(p, radius_m, segments) for p in pois)
    logger.info(f"[ok] Generated {len(buffers)} {group.value} buffers at {radius_m:g} m")
    return buffers


def _snapshot_cache(snapshot: Snapshot):
    cache = snapshot.memo.get("buffers")
    if cache is None:
        cache = snapshot.memo.setdefault("buffers", lru_cache(maxsize=64)(partial(_build_buffers, snapshot)))
    return cache


def generate_buffers(
    snapshot: Snapshot,
    category_group: Any,
    radius_meters: Any,
    segments: int = BUFFER_SEGMENTS,
) -> Tuple[BufferPolygon, ...]:
    """
    One closed ring per POI of `category_group`, in canonical order.

    Results are memoized per (category, radius, segments) in a cache owned by
    the snapshot, so rings of a replaced snapshot are released with it.

    Raises:
        InvalidInput: unknown category, or radius not a positive number
    """
    try:
        group = CategoryGroup.parse(category_group)
    except ValueError as e:
        raise InvalidInput(str(e)) from e
    try:
        radius_m = float(radius_meters)
    except (TypeError, ValueError):
        raise InvalidInput(f"radius_meters must be numeric, got {radius_meters!r}")
    if not math.isfinite(radius_m) or radius_m <= 0:
        raise InvalidInput(f"radius_meters must be positive, got {radius_meters!r}")
    if segments < 3:
        raise InvalidInput("segments must be at least 3")
    return _snapshot_cache(snapshot)(group, radius_m, int(segments))


def buffers_to_geojson(buffers: Sequence[BufferPolygon]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": [b.to_feature() for b in buffers]}


def buffers_to_geodataframe(buffers: Sequence[BufferPolygon]) -> gpd.GeoDataFrame:
    rows: List[Dict[str, Any]] = [
        {
            "poi_id": b.poi_id,
            "category_group": b.category_group.value,
            "radius_m": b.radius_m,
            "geometry": b.polygon,
        }
        for b in buffers
    ]
    if not rows:
        return gpd.GeoDataFrame(columns=["poi_id", "category_group", "radius_m", "geometry"], geometry="geometry", crs="EPSG:4326")
    return gpd.GeoDataFrame(rows, geometry="geometry", crs="EPSG:4326")
