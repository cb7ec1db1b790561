"""
POI Normalization

Cleans, classifies, validates and deduplicates raw POI records into the
canonical dataset. Per-record problems are skipped and counted; only an empty
or entirely unparsable input is fatal.
"""
from __future__ import annotations

import hashlib
import logging
import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep

from ..config import DEDUP_RADIUS_M, NAME_TAG_PRIORITY, UNNAMED_POI
from ..errors import IngestionError, InvalidInput, OutOfRegion
from .conflate import dedup
from .schema import CanonicalPOI, CategoryGroup, RawPOIRecord
from .taxonomy import CATEGORY_RULES, CategoryRule, classify

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")
_CTRL_RE = re.compile(r"[\x00-\x1f\x7f]")
_PUNCT = r"""!"#$%&'*+,\-./:;<=>?@\\^_`|~"""
_EDGE_PUNCT_RE = re.compile(rf"^[{_PUNCT}\s]+|[{_PUNCT}\s]+$")
_REPEAT_PUNCT_RE = re.compile(r"([.,;:!?_~*\-])\1+")
_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {v: k for k, v in _BRACKETS.items()}


def _strip_unbalanced(text: str) -> str:
    """Drop an edge bracket whose partner does not appear in the text."""
    if text and (text[-1] in _BRACKETS or (text[-1] in _CLOSERS and _CLOSERS[text[-1]] not in text)):
        text = text[:-1].rstrip()
    if text and (text[0] in _CLOSERS or (text[0] in _BRACKETS and _BRACKETS[text[0]] not in text)):
        text = text[1:].lstrip()
    return text


def _clean_text(value: Any) -> str:
    text = _CTRL_RE.sub(" ", str(value))
    text = _WS_RE.sub(" ", text).strip()
    text = _REPEAT_PUNCT_RE.sub(r"\1", text)
    # bracket removal can expose new edge punctuation; repeat until stable
    previous = None
    while text != previous:
        previous = text
        text = _EDGE_PUNCT_RE.sub("", text)
        text = _strip_unbalanced(text)
    return text


def clean_name(raw) -> str:
    """
    Display name for a raw record.

    Walks the tag priority (name, amenity, shop, tourism) and returns the first
    value that survives cleaning; category tag values are humanized
    ("place_of_worship" -> "Place Of Worship"). Falls back to "Unnamed POI".
    """
    tags = getattr(raw, "tags", raw) or {}
    for key in NAME_TAG_PRIORITY:
        value = tags.get(key)
        if value is None:
            continue
        if key != "name":
            value = str(value).replace("_", " ").title()
        cleaned = _clean_text(value)
        if normalize_name(cleaned):
            return cleaned
    return UNNAMED_POI


def normalize_name(text: Any) -> str:
    """Search key: cleaned, whitespace-collapsed, lowercase. Used for names and queries alike."""
    if text is None:
        return ""
    return _clean_text(text).lower()


def _as_coordinate(value: Any, axis: str) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidInput(f"missing {axis}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"non-numeric {axis}: {value!r}")
    if not math.isfinite(number):
        raise InvalidInput(f"non-finite {axis}: {value!r}")
    return number


def parse_coordinates(lon: Any, lat: Any) -> Tuple[float, float]:
    x = _as_coordinate(lon, "longitude")
    y = _as_coordinate(lat, "latitude")
    if not -180.0 <= x <= 180.0:
        raise InvalidInput(f"longitude out of range: {x}")
    if not -90.0 <= y <= 90.0:
        raise InvalidInput(f"latitude out of range: {y}")
    return x, y


class RegionBoundary:
    """Prepared region polygon; bbox rejects the obvious misses before the real test."""

    def __init__(self, geometry: BaseGeometry):
        if geometry is None or geometry.is_empty:
            raise IngestionError("Region boundary is empty")
        self.geometry = geometry
        self.bounds = geometry.bounds
        self._prepared = prep(geometry)

    def covers(self, lon: float, lat: float) -> bool:
        min_lon, min_lat, max_lon, max_lat = self.bounds
        if not (min_lon <= lon <= max_lon and min_lat <= lat <= max_lat):
            return False
        return self._prepared.covers(Point(lon, lat))


def validate(raw: RawPOIRecord, boundary: RegionBoundary) -> Tuple[float, float]:
    """
    Check a raw record's coordinates.

    Returns:
        (lon, lat) as floats
    Raises:
        InvalidInput: coordinates missing, non-numeric or out of range
        OutOfRegion: point not inside the region polygon
    """
    lon, lat = parse_coordinates(raw.lon, raw.lat)
    if not boundary.covers(lon, lat):
        raise OutOfRegion(f"({lon}, {lat}) is outside the region boundary")
    return lon, lat


@dataclass(frozen=True)
class IngestionReport:
    total_raw: int
    total_kept: int
    duplicates_dropped: int
    invalid_dropped: int
    category_counts: Dict[str, int]
    invalid_reasons: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_raw": self.total_raw,
            "total_kept": self.total_kept,
            "duplicates_dropped": self.duplicates_dropped,
            "invalid_dropped": self.invalid_dropped,
            "category_counts": dict(self.category_counts),
            "invalid_reasons": dict(self.invalid_reasons),
        }


@dataclass(frozen=True)
class NormalizationResult:
    pois: Tuple[CanonicalPOI, ...]
    report: IngestionReport


@dataclass(frozen=True)
class _Cleaned:
    raw: RawPOIRecord
    name: str
    normalized_name: str
    category_group: CategoryGroup
    lon: float
    lat: float


def _stable_id(record: _Cleaned, taken: set) -> str:
    raw_id = record.raw.raw_id
    if raw_id not in (None, ""):
        seed = f"mapifyit|{record.raw.source}|{raw_id}"
    else:
        digest = hashlib.sha1(
            f"{record.raw.source}|{record.lon:.7f}|{record.lat:.7f}|{record.normalized_name}".encode("utf-8")
        ).hexdigest()
        seed = f"mapifyit|{record.raw.source}|anon|{digest}"
    poi_id = str(uuid.uuid5(uuid.NAMESPACE_URL, seed))
    ordinal = 1
    while poi_id in taken:
        poi_id = str(uuid.uuid5(uuid.NAMESPACE_URL, f"{seed}|{ordinal}"))
        ordinal += 1
    taken.add(poi_id)
    return poi_id


def normalize_pois(
    raw_records: Iterable[RawPOIRecord],
    boundary: RegionBoundary | BaseGeometry,
    rules: Sequence[CategoryRule] = CATEGORY_RULES,
    dedup_radius_m: float = DEDUP_RADIUS_M,
) -> NormalizationResult:
    """
    Run the full ingestion pipeline over raw records.

    Args:
        raw_records: raw POIs in source order
        boundary: region polygon (or an already prepared RegionBoundary)
        rules: ordered category rule table
        dedup_radius_m: duplicate distance threshold

    Returns:
        NormalizationResult with canonical POIs in input order and the ingestion report
    """
    if not isinstance(boundary, RegionBoundary):
        boundary = RegionBoundary(boundary)
    records = list(raw_records)
    logger.info(f"--- Normalizing {len(records)} raw POIs ---")
    if not records:
        raise IngestionError("Raw POI dataset is empty")

    cleaned: List[_Cleaned] = []
    invalid_reasons = {"invalid_input": 0, "out_of_region": 0}
    for i, raw in enumerate(records):
        try:
            lon, lat = validate(raw, boundary)
            name = clean_name(raw)
            cleaned.append(_Cleaned(
                raw=raw,
                name=name,
                normalized_name=normalize_name(name),
                category_group=classify(raw, rules),
                lon=lon,
                lat=lat,
            ))
        except InvalidInput as e:
            invalid_reasons["invalid_input"] += 1
            logger.debug(f"Skipping record #{i} ({raw.raw_id}): {e}")
        except OutOfRegion as e:
            invalid_reasons["out_of_region"] += 1
            logger.debug(f"Skipping record #{i} ({raw.raw_id}): {e}")

    if invalid_reasons["invalid_input"] == len(records):
        raise IngestionError(f"None of the {len(records)} raw POIs could be parsed")
    if not cleaned:
        logger.warning("[warn] Every raw POI fell outside the region boundary")

    kept, duplicates = dedup(cleaned, radius_m=dedup_radius_m)

    taken: set = set()
    pois = tuple(
        CanonicalPOI(
            poi_id=_stable_id(rec, taken),
            name=rec.name,
            normalized_name=rec.normalized_name,
            category_group=rec.category_group,
            lon=rec.lon,
            lat=rec.lat,
            source=rec.raw.source,
        )
        for rec in kept
    )

    category_counts = {g.value: 0 for g in CategoryGroup}
    for p in pois:
        category_counts[p.category_group.value] += 1

    invalid_dropped = sum(invalid_reasons.values())
    report = IngestionReport(
        total_raw=len(records),
        total_kept=len(pois),
        duplicates_dropped=duplicates,
        invalid_dropped=invalid_dropped,
        category_counts=category_counts,
        invalid_reasons=invalid_reasons,
    )
    logger.info(
        f"[ok] Normalized {len(pois)} POIs "
        f"(invalid={invalid_dropped}, duplicates={duplicates})"
    )
    return NormalizationResult(pois=pois, report=report)
