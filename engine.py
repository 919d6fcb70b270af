from __future__ import annotations

import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from catalog import CriteriaCatalog, RATING_VALUES, default_catalog
from errors import ValidationError

MIN_RATING = RATING_VALUES[0]
MAX_RATING = RATING_VALUES[-1]

# Thresholds in hundredths of a point: total >= 3.50 is High, >= 2.50 Medium.
HIGH_THRESHOLD_POINTS = 350
MEDIUM_THRESHOLD_POINTS = 250


class PriorityLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


PRIORITY_ORDER = {
    PriorityLevel.HIGH: 3,
    PriorityLevel.MEDIUM: 2,
    PriorityLevel.LOW: 1,
}


@dataclass(frozen=True)
class ScoreResult:
    weighted_scores: Dict[str, float]
    total_weighted_score: float
    priority_level: PriorityLevel


def _is_rating(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        return False
    return MIN_RATING <= int(value) <= MAX_RATING


def validate_ratings(criteria_scores: Mapping[str, Any], catalog: CriteriaCatalog) -> Dict[str, int]:
    """
    Check that there is exactly one whole-number rating 1-5 per catalog
    criterion. Returns the ratings as plain ints in catalog order.
    """
    if not isinstance(criteria_scores, Mapping):
        raise ValidationError("Criteria scores must be a mapping of criterion id to rating.")

    field_errors: Dict[str, str] = {}
    for criterion in catalog:
        if criterion.id not in criteria_scores:
            field_errors[criterion.id] = f"Missing rating for '{criterion.name}'."
            continue
        value = criteria_scores[criterion.id]
        if not _is_rating(value):
            field_errors[criterion.id] = (
                f"Rating for '{criterion.name}' must be a whole number from {MIN_RATING} to {MAX_RATING}, got {value!r}."
            )
    for key in criteria_scores:
        if key not in catalog:
            field_errors[str(key)] = f"Unknown criterion '{key}'."

    if field_errors:
        raise ValidationError(
            f"Invalid criteria ratings: {', '.join(sorted(field_errors))}",
            field_errors=field_errors,
        )
    return {c.id: int(criteria_scores[c.id]) for c in catalog}


def _level_from_points(points: int) -> PriorityLevel:
    if points >= HIGH_THRESHOLD_POINTS:
        return PriorityLevel.HIGH
    if points >= MEDIUM_THRESHOLD_POINTS:
        return PriorityLevel.MEDIUM
    return PriorityLevel.LOW


def priority_level_for(total_weighted_score: float) -> PriorityLevel:
    return _level_from_points(int(round(float(total_weighted_score) * 100)))


def score(criteria_scores: Mapping[str, Any], catalog: Optional[CriteriaCatalog] = None) -> ScoreResult:
    """
    Weighted total of a set of 1-5 ratings.

    Each criterion contributes rating * weight / 100. The sum is kept in
    integer hundredths so the threshold comparison and the 2-decimal display
    value never disagree.
    """
    catalog = catalog or default_catalog()
    ratings = validate_ratings(criteria_scores, catalog)

    points = {c.id: ratings[c.id] * c.weight for c in catalog}
    total_points = sum(points.values())

    return ScoreResult(
        weighted_scores={cid: p / 100.0 for cid, p in points.items()},
        total_weighted_score=round(total_points / 100.0, 2),
        priority_level=_level_from_points(total_points),
    )


def _row_label(row: pd.Series, position: int) -> str:
    for col in ("title", "id"):
        val = row.get(col)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return f"row {position + 1}"


def score_frame(df: pd.DataFrame, catalog: Optional[CriteriaCatalog] = None) -> Tuple[pd.DataFrame, List[str]]:
    """
    Returns (results_df, warnings)
    results_df keeps the input columns and adds weighted_<criterion> columns,
    total_weighted_score, priority_level and rank. Rows with a missing or
    invalid rating are left out and reported in warnings.
    """
    catalog = catalog or default_catalog()
    ids = catalog.ids()

    missing = [c for c in ids if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    warnings: List[str] = []
    ratings = df[ids].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)

    with np.errstate(invalid="ignore"):
        valid = (
            ~np.isnan(ratings)
            & (ratings >= MIN_RATING)
            & (ratings <= MAX_RATING)
            & (np.mod(ratings, 1) == 0)
        )
    row_ok = valid.all(axis=1)

    for i in np.flatnonzero(~row_ok):
        bad = [ids[j] for j in np.flatnonzero(~valid[i])]
        warnings.append(
            f"Row '{_row_label(df.iloc[i], int(i))}' has invalid ratings for: {', '.join(bad)} "
            f"(expected whole numbers {MIN_RATING}-{MAX_RATING}). Row skipped."
        )

    weights = np.array([c.weight for c in catalog], dtype=int)
    kept_ratings = ratings[row_ok].astype(int)
    points = kept_ratings * weights
    totals = points.sum(axis=1)

    out = df.loc[row_ok].copy()
    out[ids] = kept_ratings
    for j, cid in enumerate(ids):
        out[f"weighted_{cid}"] = points[:, j] / 100.0
    out["total_weighted_score"] = np.round(totals / 100.0, 2)
    out["priority_level"] = [_level_from_points(int(p)).value for p in totals]

    # Rank (higher score = more urgent)
    out["rank"] = out["total_weighted_score"].rank(ascending=False, method="min").astype(int)
    if "title" in out.columns:
        out = out.sort_values(["total_weighted_score", "title"], ascending=[False, True])
    else:
        out = out.sort_values("total_weighted_score", ascending=False, kind="stable")
    return out.reset_index(drop=True), warnings
