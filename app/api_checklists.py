"""Checklist tree endpoints."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Iterator

from fastapi import Request

from app.api_router import api_router
from app.checklist_model import (
    DROPDOWN_KIND,
    ITEM_KINDS,
    Checklist,
    Dropdown,
    Task,
    TaskContent,
    completion_percentage,
)
from app.checklist_reorder import DraggableItem
from app.checklist_store import ChecklistStore
from app.checklist_tree import find_task
from app.config import DEFAULT_REMOTE_TIMEOUT_SECONDS
from app.errors import ChecklistError, success_response
from app.payload import (
    _ensure_payload_dict,
    _optional_bool,
    _optional_string,
    _reject_unknown_fields,
    _require_fields,
    _require_string,
)
from app.seed_data import default_checklist
from app.sync_adapter import RepositorySyncAdapter
from app.task_links import extract_task_links, render_task_links
from app.user_scope import get_request_repository, get_request_user


@contextmanager
def _open_store(request: Request) -> Iterator[ChecklistStore]:
    config = getattr(request.app.state, "config", None)
    timeout_seconds = getattr(
        config, "remote_timeout_seconds", DEFAULT_REMOTE_TIMEOUT_SECONDS
    )
    adapter = RepositorySyncAdapter(
        get_request_repository(request), get_request_user(request)
    )
    store = ChecklistStore(adapter, timeout_seconds=timeout_seconds)
    try:
        if not store.refresh():
            raise ChecklistError.from_response(store.last_error)
        yield store
    finally:
        store.close()


def _tree_payload(store: ChecklistStore) -> dict[str, Any]:
    return {
        "checklists": [checklist.to_dict() for checklist in store.checklists],
        "progress": {
            checklist.id: completion_percentage(checklist)
            for checklist in store.checklists
        },
    }


def _mutation_response(
    store: ChecklistStore, applied: bool, **extra: Any
) -> dict[str, Any]:
    # Unknown ids are a silent no-op; adapter failures are reported.
    if not applied and store.last_error is not None:
        raise ChecklistError.from_response(store.last_error)
    return success_response({"applied": bool(applied), **extra, **_tree_payload(store)})


def _content_from_payload(
    payload: dict[str, Any], existing: TaskContent | None = None
) -> TaskContent:
    existing = existing or TaskContent()
    subheader = payload.get("subheader", existing.subheader)
    body = payload.get("body", existing.body)
    for key, value in (("subheader", subheader), ("body", body)):
        if not isinstance(value, str):
            raise ChecklistError(
                "INVALID_TYPE", f"{key} must be a string.", {key: str(value)}
            )
    return TaskContent(subheader=subheader, body=body)


def _draft_task(data: Any, path: str) -> Task:
    data = _ensure_payload_dict(data)
    _reject_unknown_fields(data, {"title", "completed", "subheader", "body"})
    try:
        title = _require_string(data, "title")
    except ChecklistError as exc:
        raise ChecklistError(exc.error.code, exc.error.message, {"path": path}) from exc
    return Task(
        id="",
        title=title,
        completed=_optional_bool(data, "completed", False),
        content=_content_from_payload(data),
    )


def _draft_dropdown(data: Any, path: str) -> Dropdown:
    data = _ensure_payload_dict(data)
    _reject_unknown_fields(data, {"title", "expanded", "tasks", "dropdowns"})
    try:
        title = _require_string(data, "title")
    except ChecklistError as exc:
        raise ChecklistError(exc.error.code, exc.error.message, {"path": path}) from exc
    tasks = data.get("tasks") or []
    dropdowns = data.get("dropdowns") or []
    if not isinstance(tasks, list) or not isinstance(dropdowns, list):
        raise ChecklistError(
            "INVALID_TYPE",
            "tasks and dropdowns must be arrays.",
            {"path": path},
        )
    return Dropdown(
        id="",
        title=title,
        expanded=_optional_bool(data, "expanded", False),
        tasks=[
            _draft_task(item, f"{path}.tasks[{index}]")
            for index, item in enumerate(tasks)
        ],
        dropdowns=[
            _draft_dropdown(item, f"{path}.dropdowns[{index}]")
            for index, item in enumerate(dropdowns)
        ],
    )


@api_router.get("/me")
def current_user(request: Request) -> dict[str, Any]:
    """Return the requesting user and their role."""
    return success_response({"user": get_request_user(request).to_dict()})


@api_router.post("/fetch_tree")
def fetch_tree(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Return every checklist visible to the requesting user."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, set())
    with _open_store(request) as store:
        return success_response(_tree_payload(store))


@api_router.post("/create_checklist")
def create_checklist(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Create a checklist, optionally with nested sections and tasks."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"title", "dropdowns"})
    _require_fields(payload, ["title"])
    title = _require_string(payload, "title")
    sections = payload.get("dropdowns") or []
    if not isinstance(sections, list):
        raise ChecklistError(
            "INVALID_TYPE", "dropdowns must be an array.", {"dropdowns": str(sections)}
        )
    draft = Checklist(
        id="",
        title=title,
        dropdowns=[
            _draft_dropdown(item, f"dropdowns[{index}]")
            for index, item in enumerate(sections)
        ],
    )

    with _open_store(request) as store:
        if draft.dropdowns:
            created = store.create_checklist_with_sections(draft)
        else:
            created = store.add_checklist(title)
        if created is None:
            raise ChecklistError.from_response(store.last_error)
        return _mutation_response(store, True, checklist=created.to_dict())


@api_router.post("/update_checklist")
def update_checklist(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"checklist_id", "title"})
    _require_fields(payload, ["checklist_id", "title"])
    checklist_id = _require_string(payload, "checklist_id")
    title = _require_string(payload, "title")
    with _open_store(request) as store:
        applied = store.update_checklist(checklist_id, title)
        return _mutation_response(store, applied)


@api_router.post("/delete_checklist")
def delete_checklist(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"checklist_id"})
    _require_fields(payload, ["checklist_id"])
    checklist_id = _require_string(payload, "checklist_id")
    with _open_store(request) as store:
        applied = store.delete_checklist(checklist_id)
        return _mutation_response(store, applied)


@api_router.post("/create_dropdown")
def create_dropdown(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Add a section at the checklist root or under a parent section."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(
        payload, {"checklist_id", "title", "expanded", "parent_dropdown_id"}
    )
    _require_fields(payload, ["checklist_id", "title"])
    checklist_id = _require_string(payload, "checklist_id")
    title = _require_string(payload, "title")
    expanded = _optional_bool(payload, "expanded", False)
    parent_dropdown_id = _optional_string(payload, "parent_dropdown_id")
    with _open_store(request) as store:
        created = store.add_dropdown(checklist_id, title, expanded, parent_dropdown_id)
        return _mutation_response(
            store,
            created is not None,
            dropdown=created.to_dict() if created else None,
        )


@api_router.post("/update_dropdown")
def update_dropdown(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(
        payload,
        {"checklist_id", "dropdown_id", "title", "expanded", "parent_dropdown_id"},
    )
    _require_fields(payload, ["checklist_id", "dropdown_id"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    title = _require_string(payload, "title") if "title" in payload else None
    expanded = (
        _optional_bool(payload, "expanded", False) if "expanded" in payload else None
    )
    parent_dropdown_id = _optional_string(payload, "parent_dropdown_id")
    with _open_store(request) as store:
        updated = store.update_dropdown(
            checklist_id,
            dropdown_id,
            title=title,
            expanded=expanded,
            parent_dropdown_id=parent_dropdown_id,
        )
        return _mutation_response(
            store,
            updated is not None,
            dropdown=updated.to_dict() if updated else None,
        )


@api_router.post("/delete_dropdown")
def delete_dropdown(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Delete a section with everything nested under it."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"checklist_id", "dropdown_id", "parent_dropdown_id"})
    _require_fields(payload, ["checklist_id", "dropdown_id"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    parent_dropdown_id = _optional_string(payload, "parent_dropdown_id")
    with _open_store(request) as store:
        applied = store.delete_dropdown(checklist_id, dropdown_id, parent_dropdown_id)
        return _mutation_response(store, applied)


@api_router.post("/toggle_dropdown")
def toggle_dropdown(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"checklist_id", "dropdown_id"})
    _require_fields(payload, ["checklist_id", "dropdown_id"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    with _open_store(request) as store:
        applied = store.toggle_dropdown(checklist_id, dropdown_id)
        return _mutation_response(store, applied)


@api_router.post("/create_task")
def create_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(
        payload,
        {
            "checklist_id",
            "dropdown_id",
            "title",
            "completed",
            "subheader",
            "body",
            "parent_dropdown_id",
        },
    )
    _require_fields(payload, ["checklist_id", "dropdown_id", "title"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    title = _require_string(payload, "title")
    with _open_store(request) as store:
        created = store.add_task(
            checklist_id,
            dropdown_id,
            title,
            completed=_optional_bool(payload, "completed", False),
            content=_content_from_payload(payload),
            parent_dropdown_id=_optional_string(payload, "parent_dropdown_id"),
        )
        return _mutation_response(
            store,
            created is not None,
            task=created.to_dict() if created else None,
        )


@api_router.post("/update_task")
def update_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(
        payload,
        {
            "checklist_id",
            "dropdown_id",
            "task_id",
            "title",
            "completed",
            "subheader",
            "body",
            "parent_dropdown_id",
        },
    )
    _require_fields(payload, ["checklist_id", "dropdown_id", "task_id"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    task_id = _require_string(payload, "task_id")
    parent_dropdown_id = _optional_string(payload, "parent_dropdown_id")
    with _open_store(request) as store:
        location = find_task(store.checklists, task_id)
        if location is None:
            return _mutation_response(store, False, task=None)
        existing = location.task
        task = replace(
            existing,
            title=_require_string(payload, "title") if "title" in payload else existing.title,
            completed=_optional_bool(payload, "completed", existing.completed),
            content=_content_from_payload(payload, existing.content),
        )
        updated = store.update_task(checklist_id, dropdown_id, task, parent_dropdown_id)
        return _mutation_response(
            store,
            updated is not None,
            task=updated.to_dict() if updated else None,
        )


@api_router.post("/delete_task")
def delete_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(
        payload, {"checklist_id", "dropdown_id", "task_id", "parent_dropdown_id"}
    )
    _require_fields(payload, ["checklist_id", "dropdown_id", "task_id"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    task_id = _require_string(payload, "task_id")
    parent_dropdown_id = _optional_string(payload, "parent_dropdown_id")
    with _open_store(request) as store:
        applied = store.delete_task(checklist_id, dropdown_id, task_id, parent_dropdown_id)
        return _mutation_response(store, applied)


@api_router.post("/toggle_task_completion")
def toggle_task_completion(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Flip the requesting user's completion flag for a task."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"checklist_id", "dropdown_id", "task_id"})
    _require_fields(payload, ["checklist_id", "dropdown_id", "task_id"])
    checklist_id = _require_string(payload, "checklist_id")
    dropdown_id = _require_string(payload, "dropdown_id")
    task_id = _require_string(payload, "task_id")
    with _open_store(request) as store:
        applied = store.toggle_task_completion(checklist_id, dropdown_id, task_id)
        return _mutation_response(store, applied)


@api_router.post("/reorder")
def reorder(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Drop one item onto another; the dragged item lands right after the target."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"kind", "dragged_id", "target_id", "target_kind"})
    _require_fields(payload, ["kind", "dragged_id", "target_id"])
    kind = _require_string(payload, "kind")
    target_kind = _optional_string(payload, "target_kind") or kind
    for value in (kind, target_kind):
        if value not in ITEM_KINDS:
            raise ChecklistError(
                "INVALID_KIND",
                "kind must be 'dropdown' or 'task'.",
                {"kind": value},
            )
    dragged_id = _require_string(payload, "dragged_id")
    target_id = _require_string(payload, "target_id")

    def _draggable(tree: list[Checklist], item_kind: str, item_id: str):
        if item_kind == DROPDOWN_KIND:
            return DraggableItem.for_dropdown(tree, item_id)
        return DraggableItem.for_task(tree, item_id)

    with _open_store(request) as store:
        dragged = _draggable(store.checklists, kind, dragged_id)
        target = _draggable(store.checklists, target_kind, target_id)
        if dragged is None or target is None:
            return _mutation_response(store, False)
        store.start_drag(dragged)
        applied = store.drop(target)
        return _mutation_response(store, applied)


@api_router.post("/get_task_detail")
def get_task_detail(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Return a task with rendered body, linked pages and its referrer."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"task_id", "referrer_task_id"})
    _require_fields(payload, ["task_id"])
    task_id = _require_string(payload, "task_id")
    referrer_task_id = _optional_string(payload, "referrer_task_id")

    repository = get_request_repository(request)
    with _open_store(request) as store:
        if referrer_task_id is not None and store.open_task(referrer_task_id):
            task = store.follow_task_link(task_id)
        else:
            task = store.open_task(task_id)
        if task is None:
            raise ChecklistError(
                "TASK_NOT_FOUND",
                "Task ID not found.",
                {"task_id": task_id},
            )
        referrer = store.referrer_task
        return success_response(
            {
                "task": task.to_dict(),
                "rendered_body": render_task_links(task.content.body),
                "task_links": [
                    {"task_id": link.task_id, "label": link.label}
                    for link in extract_task_links(task.content.body)
                ],
                "learning_pages": [
                    page.to_dict() for page in repository.learning_pages_for_task(task.id)
                ],
                "referrer": referrer.to_dict() if referrer else None,
            }
        )


@api_router.post("/bootstrap_default_checklist")
def bootstrap_default_checklist(
    payload: dict[str, Any], request: Request
) -> dict[str, Any]:
    """Seed the starter bereavement checklist when no checklist exists yet."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, set())
    with _open_store(request) as store:
        if store.checklists:
            return _mutation_response(store, False, checklist=None)
        created = store.create_checklist_with_sections(default_checklist())
        if created is None:
            raise ChecklistError.from_response(store.last_error)
        return _mutation_response(store, True, checklist=created.to_dict())
