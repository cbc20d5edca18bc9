"""Request-scoped user identity, role and repository helpers."""

from __future__ import annotations

import re
from pathlib import Path

from fastapi import Request

from app.checklist_model import User
from app.checklist_repository import ChecklistRepository
from app.errors import ChecklistError

USER_ID_HEADER = "X-Checklist-User-Id"
USER_EMAIL_HEADER = "X-Checklist-User-Email"
SERVICE_TOKEN_HEADER = "X-Checklist-Service-Token"
AUTH_EXEMPT_PATHS = {"/health"}

_VALID_USER_ID = re.compile(r"^[A-Za-z0-9_]{3,128}$")


def normalize_user_id(raw_user_id: str) -> str:
    """Normalize and validate a user id from request context."""
    if not isinstance(raw_user_id, str):
        raise ChecklistError(
            "INVALID_USER_ID",
            "User id must be a string.",
            {"type": type(raw_user_id).__name__},
        )

    normalized = raw_user_id.strip().replace("-", "")
    if not normalized:
        raise ChecklistError(
            "AUTH_REQUIRED",
            "Missing required user identity header.",
            {"header": USER_ID_HEADER},
        )

    if not _VALID_USER_ID.fullmatch(normalized):
        raise ChecklistError(
            "INVALID_USER_ID",
            "User id contains invalid characters.",
            {"user_id": raw_user_id},
        )
    return normalized


def get_request_user_id(request: Request) -> str:
    """Read and cache normalized user id from request state/headers."""
    cached = getattr(request.state, "user_id", None)
    if isinstance(cached, str) and cached.strip():
        normalized = normalize_user_id(cached)
        request.state.user_id = normalized
        return normalized

    raw_user_id = getattr(request, "headers", {}).get(USER_ID_HEADER)
    if raw_user_id is None:
        raise ChecklistError(
            "AUTH_REQUIRED",
            "Missing required user identity header.",
            {"header": USER_ID_HEADER},
        )

    normalized = normalize_user_id(raw_user_id)
    request.state.user_id = normalized
    return normalized


def get_request_repository(request: Request) -> ChecklistRepository:
    """Return the shared repository, building it from config when missing."""
    state = request.app.state
    repository = getattr(state, "repository", None)
    if repository is not None:
        return repository

    config = getattr(state, "config", None)
    if config is not None and hasattr(config, "data_path"):
        repository = ChecklistRepository(
            Path(config.data_path), getattr(config, "admin_user_ids", ())
        )
    else:
        repository = ChecklistRepository(Path(state.data_path))
    state.repository = repository
    return repository


def get_request_user(request: Request) -> User:
    """Resolve the requesting user and their role."""
    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    user_id = get_request_user_id(request)
    email = getattr(request, "headers", {}).get(USER_EMAIL_HEADER)
    email = email.strip() if isinstance(email, str) and email.strip() else None
    user = get_request_repository(request).ensure_user(user_id, email)
    request.state.user = user
    return user


def require_admin(request: Request, operation: str) -> User:
    user = get_request_user(request)
    if not user.is_admin:
        raise ChecklistError(
            "PERMISSION_DENIED",
            "Only admins can perform this operation.",
            {"operation": operation, "user_id": user.id},
        )
    return user
