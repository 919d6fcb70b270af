from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from permissions import DEFAULT_PAGE_ID, UserProfile, is_page_admin
from records import PrioritizationRecord, RecordStatus


@dataclass(frozen=True)
class Viewer:
    identity: Optional[str] = None
    is_page_admin: bool = False

    @property
    def is_anonymous(self) -> bool:
        return self.identity is None

    @classmethod
    def for_profile(cls, profile: Optional[UserProfile], page_id: str = DEFAULT_PAGE_ID) -> "Viewer":
        if profile is None:
            return cls()
        return cls(identity=profile.name, is_page_admin=is_page_admin(profile, page_id))


ANONYMOUS = Viewer()


def is_visible(record: PrioritizationRecord, viewer: Viewer) -> bool:
    if viewer.is_anonymous:
        return record.record_status is RecordStatus.PUBLISHED
    if viewer.is_page_admin:
        return True
    if record.record_status is RecordStatus.PUBLISHED:
        return True
    return record.record_status is RecordStatus.DRAFT and record.submitted_by == viewer.identity


def visible_records(all_records: Iterable[PrioritizationRecord], viewer: Viewer) -> List[PrioritizationRecord]:
    """
    Records `viewer` may see, in their original order.

    Anonymous viewers get Published records only; page admins get everything;
    other signed-in viewers get Published records plus their own Drafts.
    """
    return [r for r in all_records if is_visible(r, viewer)]
