"""
Page-scoped role checks for the prioritization matrix.

A profile either covers every page (`ALL_PAGES`) or an explicit set of page
ids. Page admins may approve and publish records on their page. Editing is open
to the Admin and Staff roles; deletion is reserved for the Admin role.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

from catalog import default_config

WILDCARD_PAGE = "*"
DEFAULT_PAGE_ID = default_config().get("page_id", "prioritization-matrix")


class Role(str, Enum):
    ADMIN = "Admin"
    DIRECTOR = "Director"
    STAFF = "Staff"
    EDITOR = "Editor"
    CLIENT = "Client"


def _configured_privileged_roles() -> FrozenSet[Role]:
    names = default_config().get("privileged_roles", ["Admin", "Staff", "Director"])
    return frozenset(Role(n) for n in names)


PRIVILEGED_ROLES: FrozenSet[Role] = _configured_privileged_roles()
EDIT_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.STAFF})
DELETE_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class AllPages:
    def covers(self, page_id: str) -> bool:
        return True


@dataclass(frozen=True)
class PageSet:
    page_ids: FrozenSet[str] = field(default_factory=frozenset)

    def covers(self, page_id: str) -> bool:
        return page_id in self.page_ids


ALL_PAGES = AllPages()
PageScope = Union[AllPages, PageSet]


def page_scope_from_list(pages: Iterable[str]) -> PageScope:
    pages = [str(p) for p in pages]
    if WILDCARD_PAGE in pages:
        return ALL_PAGES
    return PageSet(frozenset(pages))


@dataclass(frozen=True)
class UserProfile:
    name: str
    role: Role
    page_scope: PageScope = field(default_factory=PageSet)
    email: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "UserProfile":
        return cls(
            name=str(raw["name"]),
            role=Role(raw["role"]),
            page_scope=page_scope_from_list(raw.get("allowedPages", [])),
            email=str(raw.get("email", "")),
        )


def is_page_admin(profile: Optional[UserProfile], page_id: str = DEFAULT_PAGE_ID) -> bool:
    if profile is None:
        return False
    if isinstance(profile.page_scope, AllPages):
        return True
    return profile.page_scope.covers(page_id) and profile.role in PRIVILEGED_ROLES


def can_edit(role: Optional[Role]) -> bool:
    return role in EDIT_ROLES


def can_delete(role: Optional[Role]) -> bool:
    return role in DELETE_ROLES
