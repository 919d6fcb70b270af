"""Prioritization records and their Draft -> Published lifecycle.

Records are immutable; every lifecycle operation returns a new record and
leaves storage to the caller. Derived score fields are always recomputed from
`criteria_scores` and never taken from form input.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple

from catalog import CriteriaCatalog
from engine import PriorityLevel, score
from errors import AuthorizationError, ValidationError
from permissions import Role, can_delete

logger = logging.getLogger(__name__)

APPROVE_DENIED_MESSAGE = "Only authorized admins can approve records."
DELETE_DENIED_MESSAGE = "Access denied. Admin privileges required."
EDIT_DENIED_MESSAGE = DELETE_DENIED_MESSAGE

RECORD_ID_PREFIX = "PM"
_RECORD_ID_RE = re.compile(r"^PM-(\d{4})-(\d+)$")


class RecordStatus(str, Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"


# Publication is one-way: there is no unpublish.
ALLOWED_TRANSITIONS: Dict[RecordStatus, Set[RecordStatus]] = {
    RecordStatus.DRAFT: {RecordStatus.PUBLISHED},
    RecordStatus.PUBLISHED: set(),
}

DETAIL_DEFAULTS: Dict[str, Any] = {
    "title": "",
    "location": "",
    "campus": "CSU Main Campus",
    "college": "CED",
    "category": "Infrastructure",
    "assessment_date": "",
    "assessor": "",
    "estimated_cost": 0.0,
    "estimated_beneficiaries": 0,
    "urgency": "Within 90 days",
    "description": "",
    "justification": "",
    "comments": "",
    "status": "Planning",
}


@dataclass(frozen=True)
class PrioritizationRecord:
    id: str
    criteria_scores: Dict[str, int]
    weighted_scores: Dict[str, float]
    total_weighted_score: float
    priority_level: PriorityLevel
    record_status: RecordStatus
    submitted_by: str
    date_created: datetime
    last_modified: datetime
    title: str = ""
    location: str = ""
    campus: str = ""
    college: str = ""
    category: str = ""
    assessment_date: str = ""
    assessor: str = ""
    estimated_cost: float = 0.0
    estimated_beneficiaries: int = 0
    urgency: str = ""
    description: str = ""
    justification: str = ""
    comments: str = ""
    # Operational workflow label (Planning, Under Review, ...); unrelated to record_status.
    status: str = "Planning"

    @property
    def is_draft(self) -> bool:
        return self.record_status is RecordStatus.DRAFT

    @property
    def is_published(self) -> bool:
        return self.record_status is RecordStatus.PUBLISHED


def can_transition(current: RecordStatus, target: RecordStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def parse_record_id(record_id: str) -> Optional[Tuple[int, int]]:
    m = _RECORD_ID_RE.match(str(record_id))
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def record_sort_key(record_id: str) -> Tuple[int, int, str]:
    parsed = parse_record_id(record_id)
    if parsed is None:
        return (0, 0, str(record_id))
    return (parsed[0], parsed[1], "")


def format_record_id(year: int, seq: int) -> str:
    return f"{RECORD_ID_PREFIX}-{year}-{seq:03d}"


def next_record_id(existing_ids: Iterable[str], now: Optional[datetime] = None) -> str:
    """PM-<year>-<seq>, seq one past the highest in `existing_ids` for this year.

    Pass every id ever issued (see `InMemoryRecordRepository.issued_ids`), not
    only the live ones, or a deleted newest id comes back.
    """
    year = _now(now).year
    used = [p[1] for p in (parse_record_id(i) for i in existing_ids) if p and p[0] == year]
    return format_record_id(year, max(used, default=0) + 1)


def _as_number(value: Any, cast, field_name: str, field_errors: Dict[str, str]):
    """Non-negative, finite number; `int` fields also reject fractions."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return cast(0)
    try:
        number = float(value)
    except (TypeError, ValueError):
        field_errors[field_name] = f"'{field_name}' must be a number, got {value!r}."
        return cast(0)

    if not math.isfinite(number) or number < 0:
        field_errors[field_name] = f"'{field_name}' must be zero or more, got {value!r}."
        return cast(0)
    if cast is int and not number.is_integer():
        field_errors[field_name] = f"'{field_name}' must be a whole number, got {value!r}."
        return 0
    return cast(number)


def _details_from_form(form_data: Mapping[str, Any], base: Optional[PrioritizationRecord] = None) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    for key, default in DETAIL_DEFAULTS.items():
        fallback = getattr(base, key) if base is not None else default
        value = form_data.get(key, fallback)
        details[key] = fallback if value is None else value

    field_errors: Dict[str, str] = {}
    details["estimated_cost"] = _as_number(details["estimated_cost"], float, "estimated_cost", field_errors)
    details["estimated_beneficiaries"] = _as_number(
        details["estimated_beneficiaries"], int, "estimated_beneficiaries", field_errors
    )
    if field_errors:
        raise ValidationError("Invalid record details.", field_errors=field_errors)

    for key in DETAIL_DEFAULTS:
        if key not in ("estimated_cost", "estimated_beneficiaries"):
            details[key] = str(details[key])
    return details


def create_record(
    form_data: Mapping[str, Any],
    submitted_by: str,
    catalog: Optional[CriteriaCatalog] = None,
    existing_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> PrioritizationRecord:
    """
    New records always start as Draft, whoever submits them. Only an explicit
    approval publishes a record.
    """
    if not submitted_by or not str(submitted_by).strip():
        raise ValidationError(
            "A submitter identity is required.",
            field_errors={"submitted_by": "Sign in to submit a prioritization record."},
        )

    result = score(form_data.get("criteria_scores") or {}, catalog)
    details = _details_from_form(form_data)
    ts = _now(now)

    record = PrioritizationRecord(
        id=next_record_id(existing_ids, ts),
        criteria_scores={cid: int(form_data["criteria_scores"][cid]) for cid in result.weighted_scores},
        weighted_scores=result.weighted_scores,
        total_weighted_score=result.total_weighted_score,
        priority_level=result.priority_level,
        record_status=RecordStatus.DRAFT,
        submitted_by=str(submitted_by).strip(),
        date_created=ts,
        last_modified=ts,
        **details,
    )
    logger.info(
        "Created %s as Draft (submitted by %s, score %.2f, %s)",
        record.id, record.submitted_by, record.total_weighted_score, record.priority_level.value,
    )
    return record


def edit_record(
    existing: PrioritizationRecord,
    form_data: Mapping[str, Any],
    editor: Optional[str],
    editor_is_page_admin: bool,
    catalog: Optional[CriteriaCatalog] = None,
    now: Optional[datetime] = None,
) -> PrioritizationRecord:
    """Apply new form data to a record.

    Scores are recomputed. `record_status`, `submitted_by`, `date_created` and
    `id` carry over unchanged for every editor, admin or not; admins publish
    through `approve_record` only.
    """
    new_scores = form_data.get("criteria_scores")
    if new_scores is None:
        new_scores = existing.criteria_scores
    result = score(new_scores, catalog)
    details = _details_from_form(form_data, base=existing)

    updated = replace(
        existing,
        criteria_scores={cid: int(new_scores[cid]) for cid in result.weighted_scores},
        weighted_scores=result.weighted_scores,
        total_weighted_score=result.total_weighted_score,
        priority_level=result.priority_level,
        last_modified=_now(now),
        **details,
    )
    logger.info(
        "Edited %s (editor=%s, page_admin=%s); record status stays %s",
        updated.id, editor, editor_is_page_admin, updated.record_status.value,
    )
    return updated


def approve_record(
    record: PrioritizationRecord,
    actor_is_page_admin: bool,
    now: Optional[datetime] = None,
) -> PrioritizationRecord:
    if not actor_is_page_admin:
        logger.warning("Approval of %s denied: actor is not a page admin", record.id)
        raise AuthorizationError(f"Approval of {record.id} denied.", user_message=APPROVE_DENIED_MESSAGE)

    if record.is_published:
        logger.info("%s is already Published; approval is a no-op", record.id)
        return record

    if not can_transition(record.record_status, RecordStatus.PUBLISHED):
        raise ValidationError(f"{record.id} cannot move from {record.record_status.value} to Published.")

    approved = replace(record, record_status=RecordStatus.PUBLISHED, last_modified=_now(now))
    logger.info("Approved %s: Draft -> Published", approved.id)
    return approved


def delete_record(record: PrioritizationRecord, actor_role: Optional[Role]) -> None:
    """Authorize removal of `record`; the caller drops it from its store."""
    if not can_delete(actor_role):
        role_name = actor_role.value if actor_role is not None else "anonymous"
        logger.warning("Delete of %s denied for role %s", record.id, role_name)
        raise AuthorizationError(f"Delete of {record.id} denied.", user_message=DELETE_DENIED_MESSAGE)
    logger.info("Delete of %s authorized for role %s", record.id, actor_role.value)


# ----------------------------
# Workspace serialization
# ----------------------------
def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def record_to_dict(record: PrioritizationRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": record.id,
        "criteria_scores": dict(record.criteria_scores),
        "weighted_scores": dict(record.weighted_scores),
        "total_weighted_score": record.total_weighted_score,
        "priority_level": record.priority_level.value,
        "record_status": record.record_status.value,
        "submitted_by": record.submitted_by,
        "date_created": record.date_created.isoformat(),
        "last_modified": record.last_modified.isoformat(),
    }
    for key in DETAIL_DEFAULTS:
        out[key] = getattr(record, key)
    return out


def record_from_dict(raw: Mapping[str, Any], catalog: Optional[CriteriaCatalog] = None) -> PrioritizationRecord:
    """Rebuild a stored record. Score fields are recomputed, not trusted."""
    try:
        record_id = str(raw["id"])
        submitted_by = str(raw["submitted_by"])
        created = _parse_timestamp(raw["date_created"])
    except (KeyError, ValueError) as ex:
        raise ValueError(f"Stored record is missing or has an invalid field: {ex}") from ex

    criteria_scores = raw.get("criteria_scores") or {}
    result = score(criteria_scores, catalog)
    details = _details_from_form(raw)

    return PrioritizationRecord(
        id=record_id,
        criteria_scores={cid: int(criteria_scores[cid]) for cid in result.weighted_scores},
        weighted_scores=result.weighted_scores,
        total_weighted_score=result.total_weighted_score,
        priority_level=result.priority_level,
        record_status=RecordStatus(raw.get("record_status", RecordStatus.DRAFT.value)),
        submitted_by=submitted_by,
        date_created=created,
        last_modified=_parse_timestamp(raw.get("last_modified", raw["date_created"])),
        **details,
    )
