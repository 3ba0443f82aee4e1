"""
Error taxonomy and exception types for the entity library.

Validation problems are reported with Django's ``ValidationError``; the
exceptions below cover mutation failures, option fetches, and programming
errors against the action and wizard state machines.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    UNKNOWN = "ENTITY_UNKNOWN"
    VALIDATION = "ENTITY_VALIDATION"
    MUTATION = "ENTITY_MUTATION"
    OPTION_FETCH = "ENTITY_OPTION_FETCH"
    INVALID_STATE = "ENTITY_INVALID_STATE"


class EntityLibraryError(Exception):
    """Base class for entity library errors."""

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error(self) -> dict[str, Any]:
        return to_error(self.code, self.message, details=self.details)


class ActionStateError(EntityLibraryError):
    """Illegal transition requested on the action state machine."""

    code = ErrorCode.INVALID_STATE


class ActionExecutionError(EntityLibraryError):
    """
    A table action failed while executing.

    ``row_id`` identifies the row whose mutation failed (for bulk actions) and
    ``completed_ids`` the rows already mutated before the failure; those are
    not rolled back.
    """

    code = ErrorCode.MUTATION

    def __init__(
        self,
        message: str,
        *,
        action_id: str,
        row_id: Any = None,
        completed_ids: Optional[list[Any]] = None,
    ):
        self.action_id = action_id
        self.row_id = row_id
        self.completed_ids = list(completed_ids or [])
        super().__init__(
            message,
            details={
                "actionId": action_id,
                "rowId": row_id,
                "completedIds": self.completed_ids,
            },
        )


class MutationError(EntityLibraryError):
    """A create/update submitted through a form page failed."""

    code = ErrorCode.MUTATION


class OptionFetchError(EntityLibraryError):
    """Raised by option fetchers; always caught by the dependent-field resolver."""

    code = ErrorCode.OPTION_FETCH


class WizardStateError(EntityLibraryError):
    """Submit or navigation requested in a state that does not allow it."""

    code = ErrorCode.INVALID_STATE


def to_error(
    code: ErrorCode,
    message: str,
    *,
    field: Optional[str] = None,
    retryable: bool = False,
    details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Map a domain error to the payload handed to notification sinks."""
    return {
        "field": field,
        "message": message,
        "code": str(code.value if hasattr(code, "value") else code),
        "severity": "error",
        "details": details or {},
        "retryable": retryable,
    }


def describe_exception(exc: BaseException, fallback: str = "Unexpected error") -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message or fallback
