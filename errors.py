from __future__ import annotations

from typing import Dict, Optional


class PrioritizationError(Exception):
    """Base class for rejected prioritization actions.

    `user_message` is what the page shows in its denial notification.
    """

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ValidationError(PrioritizationError):
    """Malformed or incomplete input; nothing was mutated."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.field_errors: Dict[str, str] = dict(field_errors or {})


class AuthorizationError(PrioritizationError):
    pass


class RecordNotFoundError(PrioritizationError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record '{record_id}' not found.")
        self.record_id = record_id


class CatalogConfigError(ValueError):
    """The criteria catalog configuration is unusable. Raised at startup only."""
