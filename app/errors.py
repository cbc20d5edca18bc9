"""Structured error types for checklist API responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

_STATUS_BY_CODE = {
    "AUTH_REQUIRED": 401,
    "AUTH_FORBIDDEN": 403,
    "PERMISSION_DENIED": 403,
}


@dataclass(frozen=True)
class ErrorResponse:
    """Serializable error payload returned by API handlers."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ChecklistError(RuntimeError):
    """Exception carrying a structured error response."""

    def __init__(
        self, code: str, message: str, details: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.error = ErrorResponse(
            code=code, message=message, details=dict(details or {})
        )

    @classmethod
    def from_response(cls, error: ErrorResponse) -> "ChecklistError":
        return cls(error.code, error.message, error.details)


def status_code_for(error: ErrorResponse) -> int:
    """Map an error code onto the HTTP status used to report it."""
    if error.code in _STATUS_BY_CODE:
        return _STATUS_BY_CODE[error.code]
    if error.code.endswith("_NOT_FOUND"):
        return 404
    return 400


def success_response(payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap a successful response in the standard envelope."""
    return {"ok": True, "data": payload}


def error_response(error: ErrorResponse) -> dict[str, Any]:
    """Wrap an error response in the standard envelope."""
    return {"ok": False, "error": error.to_dict()}
