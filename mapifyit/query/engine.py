"""Name search and reverse geocoding against one published snapshot."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import SEARCH_LIMIT
from ..errors import InvalidInput, NotFound
from ..index.snapshot import Snapshot
from ..poi.normalize import normalize_name
from ..poi.schema import CanonicalPOI

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReverseHit:
    poi: CanonicalPOI
    distance_km: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.poi.name,
            "category_group": self.poi.category_group.value,
            "coordinates": [self.poi.lon, self.poi.lat],
            "distance_km": self.distance_km,
        }


def _coordinate(value: Any, axis: str, limit: float) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidInput(f"{axis} is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{axis} must be numeric, got {value!r}")
    if not math.isfinite(number) or abs(number) > limit:
        raise InvalidInput(f"{axis} out of range: {value!r}")
    return number


class QueryEngine:
    """Read-only queries over a snapshot; safe to share between threads."""

    def __init__(self, snapshot: Snapshot, limit: int = SEARCH_LIMIT):
        self.snapshot = snapshot
        self.limit = limit

    def search_by_name(self, query: Any, limit: Optional[int] = None) -> List[CanonicalPOI]:
        """
        Substring search on normalized names.

        Ranking: exact match, then match position (prefix matches first), then
        alphabetical normalized name, then canonical order. At most `limit` hits
        (the engine default when not given); `limit=0` returns nothing.
        """
        needle = normalize_name(query) if isinstance(query, str) else ""
        if not needle:
            raise InvalidInput("search query must be a non-empty string")
        if limit is None:
            limit = self.limit
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 0:
            raise InvalidInput(f"limit must be a non-negative integer, got {limit!r}")

        hits = []
        for seq, poi in enumerate(self.snapshot.pois):
            pos = poi.normalized_name.find(needle)
            if pos < 0:
                continue
            hits.append((poi.normalized_name != needle, pos, poi.normalized_name, seq, poi))
        hits.sort(key=lambda h: h[:4])
        logger.debug(f"search {needle!r}: {len(hits)} matches")
        return [h[4] for h in hits[:limit]]

    def reverse_geocode(self, lat: Any, lng: Any) -> ReverseHit:
        """
        Nearest POI to (lat, lng), however far away.

        Raises:
            InvalidInput: non-numeric or out-of-range coordinates
            NotFound: the snapshot holds no POIs
        """
        lat = _coordinate(lat, "lat", 90.0)
        lng = _coordinate(lng, "lng", 180.0)
        found = self.snapshot.index.query_nearest(lng, lat)
        if found is None:
            raise NotFound("the index holds no POIs")
        poi, distance_m = found
        return ReverseHit(poi=poi, distance_km=round(distance_m / 1000.0, 2))
