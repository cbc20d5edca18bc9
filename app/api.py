"""API handler registration."""

# ruff: noqa: F401

from __future__ import annotations

from fastapi import FastAPI

from app.api_router import api_router

# Import modules to register routes with the shared router.
from app import api_activity, api_checklists, api_learning_pages

# Re-export endpoints for tests and direct imports.
from app.api_activity import read_activity_log
from app.api_checklists import (
    bootstrap_default_checklist,
    create_checklist,
    create_dropdown,
    create_task,
    current_user,
    delete_checklist,
    delete_dropdown,
    delete_task,
    fetch_tree,
    get_task_detail,
    reorder,
    toggle_dropdown,
    toggle_task_completion,
    update_checklist,
    update_dropdown,
    update_task,
)
from app.api_learning_pages import (
    create_learning_page,
    delete_learning_page,
    get_learning_page,
    link_learning_page,
    list_learning_pages,
    unlink_learning_page,
    update_learning_page,
)
from app.versioning import _resolve_git_head


def register_api_handlers(app: FastAPI) -> None:
    """Attach API routes to the FastAPI application."""
    app.include_router(api_router)
