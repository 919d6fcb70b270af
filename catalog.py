from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from errors import CatalogConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE = "scoring_config.json"
RATING_VALUES = (1, 2, 3, 4, 5)
TOTAL_WEIGHT = 100


def resource_path(rel_path: str) -> str:
    if hasattr(sys, "_MEIPASS"):
        return os.path.join(sys._MEIPASS, rel_path)
    return os.path.join(os.path.dirname(__file__), rel_path)


@dataclass(frozen=True)
class Criterion:
    id: str
    name: str
    description: str
    weight: int
    rating_guide: Mapping[int, str]

    def guide_for(self, rating: int) -> str:
        return self.rating_guide.get(rating, "")


def _criterion_from_config(raw: Dict[str, Any]) -> Criterion:
    try:
        cid = str(raw["id"]).strip()
        weight = raw["weight"]
        guide_raw = raw.get("rating_guide", {})
    except (KeyError, TypeError) as ex:
        raise CatalogConfigError(f"Criterion entry is missing a required key: {ex}") from ex

    if not cid:
        raise CatalogConfigError("Criterion id must be non-empty.")
    if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
        raise CatalogConfigError(f"Criterion '{cid}' weight must be a non-negative integer percentage, got {weight!r}.")

    guide = {int(k): str(v) for k, v in dict(guide_raw).items()}
    missing = [r for r in RATING_VALUES if r not in guide]
    extra = [r for r in guide if r not in RATING_VALUES]
    if missing or extra:
        raise CatalogConfigError(
            f"Criterion '{cid}' rating guide must cover exactly ratings 1-5 "
            f"(missing: {missing}, unexpected: {extra})."
        )

    return Criterion(
        id=cid,
        name=str(raw.get("name", cid)),
        description=str(raw.get("description", "")),
        weight=weight,
        rating_guide=guide,
    )


class CriteriaCatalog:
    """Ordered, immutable set of weighted criteria.

    Checked once on construction: ids are unique, every rating guide covers
    1-5, and the weights add up to exactly 100.
    """

    def __init__(self, criteria: List[Criterion]) -> None:
        if not criteria:
            raise CatalogConfigError("Criteria catalog is empty.")
        ids = [c.id for c in criteria]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise CatalogConfigError(f"Duplicate criterion ids: {dupes}")
        total = sum(c.weight for c in criteria)
        if total != TOTAL_WEIGHT:
            raise CatalogConfigError(f"Criteria weights must sum to {TOTAL_WEIGHT}, got {total}.")

        self._criteria: Tuple[Criterion, ...] = tuple(criteria)
        self._by_id: Dict[str, Criterion] = {c.id: c for c in self._criteria}

    def get_criteria(self) -> Tuple[Criterion, ...]:
        return self._criteria

    def ids(self) -> List[str]:
        return [c.id for c in self._criteria]

    def get(self, criterion_id: str) -> Optional[Criterion]:
        return self._by_id.get(criterion_id)

    def weight_of(self, criterion_id: str) -> int:
        return self._by_id[criterion_id].weight

    def __contains__(self, criterion_id: object) -> bool:
        return criterion_id in self._by_id

    def __iter__(self) -> Iterator[Criterion]:
        return iter(self._criteria)

    def __len__(self) -> int:
        return len(self._criteria)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CriteriaCatalog":
        raw_criteria = config.get("criteria")
        if not isinstance(raw_criteria, list):
            raise CatalogConfigError("Config must contain a 'criteria' list.")
        return cls([_criterion_from_config(c) for c in raw_criteria])


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or resource_path(CONFIG_FILE)
    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)
    logger.debug("Loaded scoring config from %s", path)
    return config


@lru_cache(maxsize=None)
def default_config() -> Dict[str, Any]:
    return load_config()


def load_catalog(path: Optional[str] = None) -> CriteriaCatalog:
    config = load_config(path) if path else default_config()
    catalog = CriteriaCatalog.from_config(config)
    logger.debug("Criteria catalog ready: %d criteria", len(catalog))
    return catalog


@lru_cache(maxsize=None)
def default_catalog() -> CriteriaCatalog:
    return load_catalog()


def get_criteria() -> Tuple[Criterion, ...]:
    return default_catalog().get_criteria()
