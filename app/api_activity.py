"""Activity log endpoint."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Request

from app.activity import _read_activity_entries
from app.api_router import api_router
from app.errors import ChecklistError, success_response
from app.payload import _ensure_payload_dict, _reject_unknown_fields
from app.user_scope import get_request_repository, get_request_user


@api_router.post("/read_activity_log")
def read_activity_log(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Read activity entries; non-admin users only see their own."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"limit", "since"})

    limit = payload.get("limit", 50)
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise ChecklistError(
            "INVALID_TYPE",
            "limit must be a positive integer.",
            {"limit": str(limit)},
        )

    since_value = payload.get("since")
    since = None
    if since_value is not None:
        try:
            since = datetime.fromisoformat(str(since_value))
        except ValueError:
            raise ChecklistError(
                "INVALID_DATE",
                "since must be ISO date-time.",
                {"since": since_value},
            )
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

    repository = get_request_repository(request)
    user = get_request_user(request)
    entries = _read_activity_entries(
        repository.data_root,
        since,
        limit,
        user_id=None if user.is_admin else user.id,
    )
    return success_response({"entries": entries})
