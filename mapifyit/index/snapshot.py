"""
Snapshot lifecycle: build once per ingestion run, publish by reference swap.

Readers call `IndexHolder.current()` once per request and keep that snapshot;
a later publish never changes a snapshot already handed out.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from shapely.geometry.base import BaseGeometry

from ..errors import IndexUnavailable, IngestionError
from ..geometry_utils import BBox
from ..poi.normalize import IngestionReport, NormalizationResult, RegionBoundary, normalize_pois
from ..poi.schema import CanonicalPOI, RawPOIRecord
from ..poi.taxonomy import active_rules
from .grid import GridIndex

logger = logging.getLogger(__name__)


# eq=False keeps identity hashing; `memo` holds per-snapshot query caches and dies with the snapshot
@dataclass(frozen=True, eq=False)
class Snapshot:
    pois: tuple
    index: GridIndex
    report: IngestionReport
    built_at: datetime
    memo: dict = field(default_factory=dict, repr=False)


def snapshot_from_pois(pois: Iterable[CanonicalPOI], report: IngestionReport, bbox: Optional[BBox] = None) -> Snapshot:
    pois = tuple(pois)
    return Snapshot(
        pois=pois,
        index=GridIndex.build(pois, bbox=bbox),
        report=report,
        built_at=datetime.now(timezone.utc),
    )


def build_snapshot(raw_records: Iterable[RawPOIRecord], boundary: BaseGeometry) -> Snapshot:
    """Normalize raw records against the boundary and index the result."""
    region = RegionBoundary(boundary)
    try:
        rules = active_rules()
    except (OSError, ValueError) as e:
        raise IngestionError(f"Could not load category rules: {e}") from e
    result: NormalizationResult = normalize_pois(raw_records, region, rules=rules)
    return snapshot_from_pois(result.pois, result.report, bbox=region.bounds)


class IndexHolder:
    """Holds the published snapshot; publishing replaces it wholesale."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None

    def publish(self, snapshot: Snapshot) -> Optional[Snapshot]:
        """Swap in a new snapshot and return the one it replaced."""
        with self._lock:
            previous, self._snapshot = self._snapshot, snapshot
        logger.info(f"[ok] Published snapshot with {len(snapshot.pois)} POIs")
        return previous

    def current(self) -> Snapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise IndexUnavailable("No index has been published yet")
        return snapshot

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None
