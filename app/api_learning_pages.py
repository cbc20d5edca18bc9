"""Learning page endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import Request

from app.api_router import api_router
from app.checklist_model import LearningPage
from app.checklist_repository import ChecklistRepository
from app.errors import ChecklistError, success_response
from app.payload import (
    _ensure_payload_dict,
    _reject_unknown_fields,
    _require_fields,
    _require_string,
)
from app.task_links import render_task_links
from app.user_scope import get_request_repository, get_request_user, require_admin


def _page_payload(repository: ChecklistRepository, page: LearningPage) -> dict[str, Any]:
    return {
        **page.to_dict(),
        "rendered_body": render_task_links(page.body),
        "linked_task_ids": repository.tasks_for_learning_page(page.id),
    }


def _page_not_found(page_id: str) -> ChecklistError:
    return ChecklistError(
        "LEARNING_PAGE_NOT_FOUND",
        "Learning page ID not found.",
        {"page_id": page_id},
    )


def _optional_body(payload: dict[str, Any]) -> str | None:
    if "body" not in payload:
        return None
    body = payload["body"]
    if not isinstance(body, str):
        raise ChecklistError("INVALID_TYPE", "body must be a string.", {"body": str(body)})
    return body


@api_router.post("/list_learning_pages")
def list_learning_pages(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """List learning pages, newest first."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, set())
    get_request_user(request)
    repository = get_request_repository(request)
    pages = repository.list_learning_pages()
    return success_response(
        {"pages": [_page_payload(repository, page) for page in pages]}
    )


@api_router.post("/get_learning_page")
def get_learning_page(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"page_id"})
    _require_fields(payload, ["page_id"])
    page_id = _require_string(payload, "page_id")
    get_request_user(request)
    repository = get_request_repository(request)
    page = repository.get_learning_page(page_id)
    if page is None:
        raise _page_not_found(page_id)
    return success_response({"page": _page_payload(repository, page)})


@api_router.post("/create_learning_page")
def create_learning_page(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"title", "body"})
    _require_fields(payload, ["title"])
    title = _require_string(payload, "title")
    body = _optional_body(payload) or ""
    user = require_admin(request, "create_learning_page")
    repository = get_request_repository(request)
    page = repository.create_learning_page(title, body, user.id)
    return success_response({"page": _page_payload(repository, page)})


@api_router.post("/update_learning_page")
def update_learning_page(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"page_id", "title", "body"})
    _require_fields(payload, ["page_id"])
    page_id = _require_string(payload, "page_id")
    title = _require_string(payload, "title") if "title" in payload else None
    body = _optional_body(payload)
    user = require_admin(request, "update_learning_page")
    repository = get_request_repository(request)
    page = repository.update_learning_page(page_id, user.id, title=title, body=body)
    if page is None:
        raise _page_not_found(page_id)
    return success_response({"page": _page_payload(repository, page)})


@api_router.post("/delete_learning_page")
def delete_learning_page(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Delete a learning page and every task link pointing at it."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"page_id"})
    _require_fields(payload, ["page_id"])
    page_id = _require_string(payload, "page_id")
    user = require_admin(request, "delete_learning_page")
    if not get_request_repository(request).delete_learning_page(page_id, user.id):
        raise _page_not_found(page_id)
    return success_response({"page_id": page_id, "deleted": True})


@api_router.post("/link_learning_page")
def link_learning_page(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"task_id", "page_id"})
    _require_fields(payload, ["task_id", "page_id"])
    task_id = _require_string(payload, "task_id")
    page_id = _require_string(payload, "page_id")
    user = require_admin(request, "link_learning_page")
    if not get_request_repository(request).link_learning_page(task_id, page_id, user.id):
        raise ChecklistError(
            "LINK_TARGET_NOT_FOUND",
            "Task or learning page ID not found.",
            {"task_id": task_id, "page_id": page_id},
        )
    return success_response({"task_id": task_id, "page_id": page_id, "linked": True})


@api_router.post("/unlink_learning_page")
def unlink_learning_page(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"task_id", "page_id"})
    _require_fields(payload, ["task_id", "page_id"])
    task_id = _require_string(payload, "task_id")
    page_id = _require_string(payload, "page_id")
    user = require_admin(request, "unlink_learning_page")
    removed = get_request_repository(request).unlink_learning_page(
        task_id, page_id, user.id
    )
    return success_response(
        {"task_id": task_id, "page_id": page_id, "linked": False, "removed": removed}
    )
