"""
Defines the MapifyIt category taxonomy for POIs.

A single ordered rule table maps OSM-style tag key/value pairs to one
CategoryGroup. Rules are evaluated top to bottom and the first match wins; a
record that matches nothing is `Other`.

Config-driven: if MAPIFY_CATEGORY_RULES_YML points at a YAML file, its rules
(a list of {group, key, values} entries) are evaluated before the built-ins.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

from ..config import CATEGORY_RULES_YML
from .schema import CategoryGroup

logger = logging.getLogger(__name__)

ANY_VALUE = "*"


@dataclass(frozen=True)
class CategoryRule:
    group: CategoryGroup
    key: str
    values: Union[FrozenSet[str], str]

    def matches(self, tags: Mapping[str, Any]) -> bool:
        raw = tags.get(self.key)
        if raw is None:
            return False
        value = str(raw).strip().lower()
        if not value:
            return False
        if self.values == ANY_VALUE:
            return True
        return value in self.values


def _rule(group: CategoryGroup, key: str, values: Union[Sequence[str], str]) -> CategoryRule:
    if values == ANY_VALUE:
        return CategoryRule(group, key, ANY_VALUE)
    return CategoryRule(group, key, frozenset(v.lower() for v in values))


# --- Category rule table ---
# Order is part of the contract: tag namespaces overlap (a hospital may also carry
# shop=chemist, a mosque may carry tourism=attraction), so the earlier group wins.
CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    # Pre-labelled data (category_group already present on the feature)
    _rule(CategoryGroup.HEALTH, "category_group", ["health"]),
    _rule(CategoryGroup.EDUCATION, "category_group", ["education"]),
    _rule(CategoryGroup.COMMERCIAL, "category_group", ["commercial"]),
    _rule(CategoryGroup.RELIGIOUS, "category_group", ["religious"]),
    _rule(CategoryGroup.TRANSPORT, "category_group", ["transport"]),
    _rule(CategoryGroup.PARK, "category_group", ["park"]),
    _rule(CategoryGroup.CULTURAL, "category_group", ["cultural"]),
    _rule(CategoryGroup.OTHER, "category_group", ["other"]),

    # Health
    _rule(CategoryGroup.HEALTH, "amenity", ["hospital", "clinic", "doctors", "dentist", "pharmacy", "nursing_home"]),
    _rule(CategoryGroup.HEALTH, "healthcare", ANY_VALUE),
    _rule(CategoryGroup.HEALTH, "emergency", ["ambulance_station"]),

    # Education
    _rule(CategoryGroup.EDUCATION, "amenity", ["school", "university", "college", "kindergarten", "language_school", "training"]),

    # Religious
    _rule(CategoryGroup.RELIGIOUS, "amenity", ["place_of_worship", "monastery"]),
    _rule(CategoryGroup.RELIGIOUS, "religion", ANY_VALUE),
    _rule(CategoryGroup.RELIGIOUS, "building", ["mosque", "church", "temple", "cathedral", "chapel", "shrine"]),

    # Transport
    _rule(CategoryGroup.TRANSPORT, "amenity", ["bus_station", "fuel", "charging_station", "ferry_terminal", "taxi", "parking", "car_rental"]),
    _rule(CategoryGroup.TRANSPORT, "highway", ["bus_stop"]),
    _rule(CategoryGroup.TRANSPORT, "railway", ["station", "halt", "tram_stop"]),
    _rule(CategoryGroup.TRANSPORT, "public_transport", ["station", "stop_position", "platform"]),
    _rule(CategoryGroup.TRANSPORT, "aeroway", ["aerodrome", "terminal"]),

    # Park
    _rule(CategoryGroup.PARK, "leisure", ["park", "garden", "playground", "nature_reserve", "dog_park"]),
    _rule(CategoryGroup.PARK, "boundary", ["national_park"]),

    # Cultural
    _rule(CategoryGroup.CULTURAL, "tourism", ["museum", "gallery", "attraction", "artwork", "viewpoint", "zoo"]),
    _rule(CategoryGroup.CULTURAL, "amenity", ["theatre", "arts_centre", "cinema", "library", "community_centre"]),
    _rule(CategoryGroup.CULTURAL, "historic", ANY_VALUE),

    # Commercial
    _rule(CategoryGroup.COMMERCIAL, "shop", ANY_VALUE),
    _rule(CategoryGroup.COMMERCIAL, "amenity", ["restaurant", "cafe", "fast_food", "bank", "atm", "bar", "marketplace", "food_court", "ice_cream"]),
    _rule(CategoryGroup.COMMERCIAL, "tourism", ["hotel", "guest_house", "hostel", "motel"]),
    _rule(CategoryGroup.COMMERCIAL, "office", ANY_VALUE),
)


def load_rules_yaml(path: str) -> List[CategoryRule]:
    """
    Load extra rules from YAML.

    Expected layout:
        rules:
          - {group: Health, key: amenity, values: [blood_bank]}
          - {group: Commercial, key: craft, values: "*"}
    """
    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: not valid YAML ({e})") from e
    entries = data.get("rules", data) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a list of rules")

    rules = []
    for i, entry in enumerate(entries):
        try:
            group = CategoryGroup.parse(entry["group"])
            key = str(entry["key"]).strip()
            values = entry.get("values", ANY_VALUE)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"{path}: rule #{i} is malformed ({e})") from e
        if isinstance(values, str) and values != ANY_VALUE:
            values = [values]
        rules.append(_rule(group, key, values))
    logger.info(f"Loaded {len(rules)} category rules from {path}")
    return rules


def active_rules(path: Optional[str] = CATEGORY_RULES_YML) -> Tuple[CategoryRule, ...]:
    if path and os.path.isfile(path):
        return tuple(load_rules_yaml(path)) + CATEGORY_RULES
    if path:
        logger.warning(f"[warn] Category rules file not found: {path}; using built-in table")
    return CATEGORY_RULES


def classify(raw, rules: Sequence[CategoryRule] = CATEGORY_RULES) -> CategoryGroup:
    """Return the group of the first rule matching the record's tags; `Other` if none does."""
    tags = getattr(raw, "tags", raw) or {}
    for rule in rules:
        if rule.matches(tags):
            return rule.group
    return CategoryGroup.OTHER
