"""Payload validation helpers for API endpoints."""

from __future__ import annotations

from typing import Any

from app.errors import ChecklistError


def _ensure_payload_dict(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ChecklistError(
            "INVALID_TYPE",
            "Payload must be an object.",
            {"type": type(payload).__name__},
        )
    return payload


def _reject_unknown_fields(payload: dict[str, Any], allowed_fields: set[str]) -> None:
    unknown_fields = sorted(set(payload) - allowed_fields)
    if unknown_fields:
        raise ChecklistError(
            "UNKNOWN_FIELD",
            "Unknown fields are not allowed.",
            {"fields": unknown_fields},
        )


def _require_fields(payload: dict[str, Any], required: list[str]) -> None:
    missing = [name for name in required if name not in payload]
    if missing:
        raise ChecklistError(
            "MISSING_FIELDS",
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required.",
            {"fields": missing},
        )


def _require_string(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ChecklistError(
            "INVALID_TYPE",
            f"{key} must be a non-empty string.",
            {key: str(value)},
        )
    return value.strip()


def _optional_string(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ChecklistError(
            "INVALID_TYPE",
            f"{key} must be a string.",
            {key: str(value)},
        )
    return value.strip() or None


def _optional_bool(payload: dict[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ChecklistError(
            "INVALID_TYPE",
            f"{key} must be a boolean.",
            {key: str(value)},
        )
    return value
