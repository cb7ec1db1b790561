"""
POI Deduplication

Two cleaned records are duplicates when their normalized names are equal and
they lie closer than the dedup radius on the great circle. The first occurrence
in input order survives.

Records are bucketed on a coarse lat/lon grid whose cells are at least twice the
dedup radius on each axis, so any duplicate of a record sits in its home cell or
one of the 8 neighbours.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple, TypeVar

from ..config import DEDUP_RADIUS_M
from ..geometry_utils import haversine_m, meters_per_degree_lat, meters_per_degree_lon

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NEIGHBOURS = [(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1)]


def _cell_size_deg(records: Sequence, radius_m: float) -> Tuple[float, float]:
    cell_m = max(2.0 * radius_m, 1.0)
    max_abs_lat = max(abs(r.lat) for r in records)
    # the narrowest longitude degree in the set decides the column width
    return (
        cell_m / meters_per_degree_lon(min(max_abs_lat, 89.9)),
        cell_m / meters_per_degree_lat(),
    )


def dedup(records: Sequence[T], radius_m: float = DEDUP_RADIUS_M) -> Tuple[List[T], int]:
    """
    Drop later records that duplicate an earlier kept one.

    Args:
        records: objects exposing `normalized_name`, `lon`, `lat`, in input order
        radius_m: duplicates are strictly closer than this

    Returns:
        (kept records in input order, number of duplicates dropped)
    """
    if not records:
        return [], 0

    cell_w, cell_h = _cell_size_deg(records, radius_m)
    buckets: Dict[Tuple[str, int, int], List[T]] = defaultdict(list)
    kept: List[T] = []
    dropped = 0

    for rec in records:
        cx = math.floor(rec.lon / cell_w)
        cy = math.floor(rec.lat / cell_h)
        is_dup = False
        for dx, dy in _NEIGHBOURS:
            for other in buckets.get((rec.normalized_name, cx + dx, cy + dy), ()):
                if haversine_m(rec.lat, rec.lon, other.lat, other.lon) < radius_m:
                    is_dup = True
                    break
            if is_dup:
                break

        if is_dup:
            dropped += 1
            logger.debug(f"Duplicate dropped: {rec.normalized_name!r} at ({rec.lon}, {rec.lat})")
            continue
        buckets[(rec.normalized_name, cx, cy)].append(rec)
        kept.append(rec)

    logger.info(f"[ok] Deduplicated POIs: {len(kept)} remaining, {dropped} dropped")
    return kept, dropped
