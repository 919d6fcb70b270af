from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from catalog import CriteriaCatalog, resource_path
from errors import PrioritizationError
from records import (
    PrioritizationRecord,
    format_record_id,
    parse_record_id,
    record_from_dict,
    record_to_dict,
)

logger = logging.getLogger(__name__)

WORKSPACE_VERSION = 1
DEMO_RECORDS_FILE = "demo_records.json"


class RecordRepository(Protocol):
    def list(self) -> List[PrioritizationRecord]:
        ...

    def get(self, record_id: str) -> Optional[PrioritizationRecord]:
        ...

    def put(self, record: PrioritizationRecord) -> None:
        ...

    def delete(self, record_id: str) -> bool:
        ...

    def issued_ids(self) -> List[str]:
        ...


class InMemoryRecordRepository:
    """Insertion-ordered store. `put` on an existing id replaces it in place.

    The highest sequence ever stored per year outlives deletes, so
    `issued_ids()` keeps a deleted newest id from being handed out again.
    """

    def __init__(self, records: Optional[List[PrioritizationRecord]] = None) -> None:
        self._records: Dict[str, PrioritizationRecord] = {}
        self._high_water: Dict[int, int] = {}
        for r in records or []:
            self.put(r)

    def list(self) -> List[PrioritizationRecord]:
        return list(self._records.values())

    def get(self, record_id: str) -> Optional[PrioritizationRecord]:
        return self._records.get(record_id)

    def put(self, record: PrioritizationRecord) -> None:
        self._records[record.id] = record
        self.mark_issued(record.id)

    def delete(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    def mark_issued(self, record_id: str) -> None:
        parsed = parse_record_id(record_id)
        if parsed is None:
            return
        year, seq = parsed
        if seq > self._high_water.get(year, 0):
            self._high_water[year] = seq

    def issued_ids(self) -> List[str]:
        """Live ids plus the highest id ever issued in each year."""
        return [r for r in self._records] + [
            format_record_id(year, seq) for year, seq in sorted(self._high_water.items())
        ]

    def clear(self) -> None:
        self._records.clear()
        self._high_water.clear()

    def __len__(self) -> int:
        return len(self._records)


def build_workspace_bundle(repo: RecordRepository) -> dict:
    records = repo.list()
    live = {r.id for r in records}
    return {
        "version": WORKSPACE_VERSION,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "records": [record_to_dict(r) for r in records],
        "issued_ids": [i for i in repo.issued_ids() if i not in live],
    }


def apply_workspace_bundle(
    repo: InMemoryRecordRepository,
    bundle: Any,
    catalog: Optional[CriteriaCatalog] = None,
) -> int:
    """Replace the repository contents with the records in `bundle`.

    Every record is parsed before anything is replaced, so a bad bundle
    leaves the repository untouched.
    """
    if not isinstance(bundle, dict):
        raise ValueError("Invalid workspace file.")
    raw_records = bundle.get("records")
    if not isinstance(raw_records, list):
        raise ValueError("Workspace file is missing record content.")
    issued = bundle.get("issued_ids", [])
    if not isinstance(issued, list) or not all(isinstance(i, str) for i in issued):
        raise ValueError("Workspace 'issued_ids' must be a list of record ids.")

    parsed: List[PrioritizationRecord] = []
    for i, raw in enumerate(raw_records):
        if not isinstance(raw, dict):
            raise ValueError(f"Workspace record #{i + 1} is not an object.")
        try:
            parsed.append(record_from_dict(raw, catalog))
        except PrioritizationError as ex:
            raise ValueError(f"Workspace record '{raw.get('id', i + 1)}' is invalid: {ex}") from ex

    repo.clear()
    for r in parsed:
        repo.put(r)
    for record_id in issued:
        repo.mark_issued(record_id)
    logger.info("Loaded workspace with %d records", len(parsed))
    return len(parsed)


def save_workspace(repo: RecordRepository, path: str) -> str:
    bundle = build_workspace_bundle(repo)
    with open(path, "w", encoding="utf-8") as wf:
        json.dump(bundle, wf, indent=2)
    logger.info("Workspace exported to %s (%d records)", path, len(bundle["records"]))
    return path


def load_workspace(
    repo: InMemoryRecordRepository,
    path: str,
    catalog: Optional[CriteriaCatalog] = None,
) -> int:
    with open(path, "r", encoding="utf-8") as jf:
        bundle = json.load(jf)
    return apply_workspace_bundle(repo, bundle, catalog)


def load_demo_repository(catalog: Optional[CriteriaCatalog] = None) -> InMemoryRecordRepository:
    repo = InMemoryRecordRepository()
    load_workspace(repo, resource_path(DEMO_RECORDS_FILE), catalog)
    return repo
