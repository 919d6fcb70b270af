from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from catalog import CriteriaCatalog, default_catalog
from engine import PRIORITY_ORDER, PriorityLevel
from errors import AuthorizationError, RecordNotFoundError
from permissions import DEFAULT_PAGE_ID, UserProfile, can_edit, is_page_admin
from records import (
    EDIT_DENIED_MESSAGE,
    PrioritizationRecord,
    approve_record,
    create_record,
    delete_record,
    edit_record,
)
from repository import RecordRepository
from visibility import Viewer, visible_records

logger = logging.getLogger(__name__)

SIGN_IN_MESSAGE = "Please sign in to {action}"
ALL = "all"

SORT_KEYS: Dict[str, Callable[[PrioritizationRecord], Any]] = {
    "priority": lambda r: PRIORITY_ORDER.get(r.priority_level, 0),
    "score": lambda r: r.total_weighted_score,
    "cost": lambda r: r.estimated_cost,
    "beneficiaries": lambda r: r.estimated_beneficiaries,
}


def _require_profile(profile: Optional[UserProfile], action: str) -> UserProfile:
    if profile is None:
        raise AuthorizationError(f"Anonymous viewer tried to {action}.", user_message=SIGN_IN_MESSAGE.format(action=action))
    return profile


class PrioritizationMatrix:
    """Owns the record store for one page and runs lifecycle actions against it."""

    def __init__(
        self,
        repository: RecordRepository,
        catalog: Optional[CriteriaCatalog] = None,
        page_id: str = DEFAULT_PAGE_ID,
    ) -> None:
        self.repository = repository
        self.catalog = catalog or default_catalog()
        self.page_id = page_id

    def is_admin(self, profile: Optional[UserProfile]) -> bool:
        return is_page_admin(profile, self.page_id)

    def viewer_for(self, profile: Optional[UserProfile]) -> Viewer:
        return Viewer.for_profile(profile, self.page_id)

    def list_visible(self, profile: Optional[UserProfile]) -> List[PrioritizationRecord]:
        return visible_records(self.repository.list(), self.viewer_for(profile))

    def get(self, record_id: str) -> PrioritizationRecord:
        record = self.repository.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def submit(
        self,
        form_data: Mapping[str, Any],
        profile: Optional[UserProfile],
        now: Optional[datetime] = None,
    ) -> PrioritizationRecord:
        profile = _require_profile(profile, "create prioritization item")
        record = create_record(
            form_data, profile.name, self.catalog, existing_ids=self.repository.issued_ids(), now=now
        )
        self.repository.put(record)
        return record

    def edit(
        self,
        record_id: str,
        form_data: Mapping[str, Any],
        profile: Optional[UserProfile],
        now: Optional[datetime] = None,
    ) -> PrioritizationRecord:
        profile = _require_profile(profile, "edit prioritization item")
        existing = self.get(record_id)
        if not can_edit(profile.role):
            logger.warning("Edit of %s denied for role %s", record_id, profile.role.value)
            raise AuthorizationError(f"Edit of {record_id} denied.", user_message=EDIT_DENIED_MESSAGE)
        updated = edit_record(
            existing, form_data, profile.name, self.is_admin(profile), self.catalog, now=now
        )
        self.repository.put(updated)
        return updated

    def approve(
        self,
        record_id: str,
        profile: Optional[UserProfile],
        now: Optional[datetime] = None,
    ) -> PrioritizationRecord:
        approved = approve_record(self.get(record_id), self.is_admin(profile), now=now)
        self.repository.put(approved)
        return approved

    def delete(self, record_id: str, profile: Optional[UserProfile]) -> None:
        profile = _require_profile(profile, "delete prioritization item")
        delete_record(self.get(record_id), profile.role)
        self.repository.delete(record_id)
        logger.info("Deleted %s (by %s)", record_id, profile.name)


# ----------------------------
# List views
# ----------------------------
def _active(value: Optional[Union[int, str]]) -> bool:
    return value is not None and value != "" and value != ALL


def filter_records(
    records: Iterable[PrioritizationRecord],
    search: Optional[str] = None,
    campus: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    college: Optional[str] = None,
    year: Optional[Union[int, str]] = None,
) -> List[PrioritizationRecord]:
    """`year` matches the creation year of the record."""
    term = (search or "").strip().lower()
    out = []
    for r in records:
        if term and not any(term in str(v).lower() for v in (r.title, r.location, r.college)):
            continue
        if _active(campus) and r.campus != campus:
            continue
        if _active(priority) and r.priority_level.value != priority:
            continue
        if _active(category) and r.category != category:
            continue
        if _active(college) and r.college != college:
            continue
        if _active(year) and r.date_created.year != int(year):
            continue
        out.append(r)
    return out


def sort_records(records: Iterable[PrioritizationRecord], sort_by: str = "priority") -> List[PrioritizationRecord]:
    """Highest first; ties and unknown sort keys keep the incoming order."""
    key = SORT_KEYS.get(sort_by)
    if key is None:
        return list(records)
    return sorted(records, key=key, reverse=True)


def records_frame(
    records: Iterable[PrioritizationRecord],
    catalog: Optional[CriteriaCatalog] = None,
) -> pd.DataFrame:
    catalog = catalog or default_catalog()
    score_cols = [f"score_{cid}" for cid in catalog.ids()]
    columns = (
        ["id", "title", "location", "campus", "college", "category", "assessor"]
        + score_cols
        + ["total_weighted_score", "priority_level", "estimated_cost", "estimated_beneficiaries",
           "urgency", "status", "record_status", "submitted_by", "date_created", "last_modified"]
    )
    rows = []
    for r in records:
        row = {
            "id": r.id,
            "title": r.title,
            "location": r.location,
            "campus": r.campus,
            "college": r.college,
            "category": r.category,
            "assessor": r.assessor,
            "total_weighted_score": r.total_weighted_score,
            "priority_level": r.priority_level.value,
            "estimated_cost": r.estimated_cost,
            "estimated_beneficiaries": r.estimated_beneficiaries,
            "urgency": r.urgency,
            "status": r.status,
            "record_status": r.record_status.value,
            "submitted_by": r.submitted_by,
            "date_created": r.date_created.date().isoformat(),
            "last_modified": r.last_modified.date().isoformat(),
        }
        for cid in catalog.ids():
            row[f"score_{cid}"] = r.criteria_scores.get(cid)
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def _pct(count: int, total: int) -> int:
    return int(count * 100 / total + 0.5) if total else 0


def overview_stats(records: Iterable[PrioritizationRecord]) -> Dict[str, Any]:
    frame = records_frame(records)
    total = len(frame)
    counts = frame["priority_level"].value_counts()
    high = int(counts.get(PriorityLevel.HIGH.value, 0))
    medium = int(counts.get(PriorityLevel.MEDIUM.value, 0))
    low = int(counts.get(PriorityLevel.LOW.value, 0))
    avg = round(float(frame["total_weighted_score"].mean()), 2) if total else 0.0
    return {
        "total_items": total,
        "assessed_items": int((frame["status"] != "Planning").sum()),
        "high_priority": high,
        "medium_priority": medium,
        "low_priority": low,
        "high_pct": _pct(high, total),
        "medium_pct": _pct(medium, total),
        "low_pct": _pct(low, total),
        "avg_priority_score": avg,
    }


def record_years(records: Iterable[PrioritizationRecord]) -> List[int]:
    """Creation years present in `records`, newest first."""
    return sorted({r.date_created.year for r in records}, reverse=True)
