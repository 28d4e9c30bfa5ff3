"""Domain errors raised by the allocation and submission services.

Routes never build HTTP errors for these themselves: ``app.main`` registers
exception handlers that translate each class to a status code.
"""

from enum import Enum
from typing import Any


class ValidationCode(str, Enum):
    """User-correctable validation failures."""

    MISSING_FIELD = "missing_field"
    DATE_OUT_OF_CYCLE = "date_out_of_cycle"
    EMPTY_SELECTION = "empty_selection"
    UNIT_ALREADY_ASSIGNED = "unit_already_assigned"
    NEGATIVE_INDEX = "negative_index"
    NON_MONOTONIC_INDEX = "non_monotonic_index"
    CYCLE_NOT_OPEN = "cycle_not_open"
    SERVICE_NOT_METERED = "service_not_metered"
    SERVICE_MISMATCH = "service_mismatch"
    ASSIGNMENT_CLOSED = "assignment_closed"
    ASSIGNMENT_HAS_READINGS = "assignment_has_readings"
    UNKNOWN_ROW = "unknown_row"


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    code: str = "service_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, "details": self.details}


class ValidationError(ServiceError):
    """A field or row failed validation."""

    def __init__(
        self,
        code: ValidationCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.code = code.value
        self.validation_code = code


class NotFoundError(ServiceError):
    """A referenced record does not exist."""

    code = "not_found"


class ConflictError(ServiceError):
    """A uniqueness guard rejected a concurrent allocation or meter creation."""

    code = "conflict"


class DependencyError(ServiceError):
    """Directory or storage could not be reached. Safe to retry."""

    code = "dependency_unavailable"
