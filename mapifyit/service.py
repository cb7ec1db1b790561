"""
Transport-facing facade.

Every call returns a ServiceResult; GeocodingError never escapes, so whatever
transport sits in front maps `error` to its own status vocabulary.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from shapely.geometry.base import BaseGeometry

from .errors import ErrorKind, GeocodingError
from .index.snapshot import IndexHolder, Snapshot, build_snapshot
from .poi.schema import RawPOIRecord
from .query.buffers import buffers_to_geojson, generate_buffers
from .query.engine import QueryEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    ok: bool
    data: Any = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(cls, data: Any) -> "ServiceResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, exc: GeocodingError) -> "ServiceResult":
        return cls(ok=False, error=exc.kind, message=str(exc))


class GeocodingService:

    def __init__(self, holder: Optional[IndexHolder] = None):
        self.holder = holder or IndexHolder()

    def ingest(self, raw_records: Iterable[RawPOIRecord], boundary: BaseGeometry) -> ServiceResult:
        """Build a fresh snapshot and publish it; the old one stays live on failure."""
        try:
            snapshot = build_snapshot(raw_records, boundary)
        except GeocodingError as e:
            logger.error(f"Ingestion failed: {e}")
            return ServiceResult.failure(e)
        self.holder.publish(snapshot)
        return ServiceResult.success(snapshot.report.to_dict())

    def publish(self, snapshot: Snapshot) -> None:
        self.holder.publish(snapshot)

    def search(self, query: Any) -> ServiceResult:
        try:
            engine = QueryEngine(self.holder.current())
            pois = engine.search_by_name(query)
        except GeocodingError as e:
            return ServiceResult.failure(e)
        return ServiceResult.success([
            {"name": p.name, "category_group": p.category_group.value, "coordinates": [p.lon, p.lat]}
            for p in pois
        ])

    def reverse(self, lat: Any, lng: Any) -> ServiceResult:
        try:
            hit = QueryEngine(self.holder.current()).reverse_geocode(lat, lng)
        except GeocodingError as e:
            return ServiceResult.failure(e)
        return ServiceResult.success(hit.to_dict())

    def buffers(self, category_group: Any, radius_meters: Any) -> ServiceResult:
        try:
            buffers = generate_buffers(self.holder.current(), category_group, radius_meters)
        except GeocodingError as e:
            return ServiceResult.failure(e)
        return ServiceResult.success(buffers_to_geojson(buffers))

    def ingestion_report(self) -> ServiceResult:
        try:
            snapshot = self.holder.current()
        except GeocodingError as e:
            return ServiceResult.failure(e)
        return ServiceResult.success(snapshot.report.to_dict())
