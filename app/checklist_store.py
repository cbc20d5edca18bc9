"""Checklist state shared by one client session.

The store owns the current tree, the open task, the drag session and the last
error. Callers change state only through its operations.

Writes follow a confirm-then-patch discipline: each mutation makes one call
to the sync adapter and applies the matching local tree edit only after the
adapter confirms, using the node the adapter returned. When the adapter
rejects a write, fails or times out, nothing is applied locally, the error
is kept in ``last_error`` and the tree is reloaded from the adapter. A call
that times out keeps running on its own worker, and the tree is reloaded
again when it finishes.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import replace
from typing import Any, Callable

from app.checklist_model import Checklist, Dropdown, Task, TaskContent
from app.checklist_reorder import DragSession, DraggableItem
from app.checklist_tree import (
    add_checklist,
    add_dropdown,
    add_task,
    apply_positions,
    delete_checklist,
    delete_dropdown,
    delete_task,
    find_checklist,
    find_dropdown,
    find_task,
    toggle_dropdown_expanded,
    toggle_task_completion,
    update_checklist,
    update_dropdown,
    update_task,
)
from app.config import DEFAULT_REMOTE_TIMEOUT_SECONDS
from app.errors import ChecklistError, ErrorResponse
from app.sync_adapter import RemoteSyncAdapter
from app.task_links import TaskDetailNavigator

logger = logging.getLogger(__name__)


class ChecklistStore:
    def __init__(
        self,
        adapter: RemoteSyncAdapter,
        *,
        timeout_seconds: float | None = DEFAULT_REMOTE_TIMEOUT_SECONDS,
    ) -> None:
        self.adapter = adapter
        self.timeout_seconds = timeout_seconds
        self.checklists: list[Checklist] = []
        self.last_error: ErrorResponse | None = None
        self.navigator = TaskDetailNavigator()
        self.drag_session = DragSession()
        self._executor: ThreadPoolExecutor | None = None

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def __enter__(self) -> "ChecklistStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Remote calls

    def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        if self.timeout_seconds is None:
            return func(*args)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="checklist-sync"
            )
        future = self._executor.submit(func, *args)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            # The late call keeps its worker; later calls get a fresh one.
            self._executor.shutdown(wait=False)
            self._executor = None
            future.add_done_callback(self._resync_after_late_call)
            raise

    def _resync_after_late_call(self, future: Future) -> None:
        """Reload the tree once a timed-out call has finished on its worker."""
        try:
            tree = self.adapter.fetch_tree()
        except ChecklistError as exc:
            logger.warning(
                "Resynchronizing after a late call failed: %s", exc.error.code
            )
            return
        if tree is not None:
            self.checklists = tree

    def _call_remote(
        self, operation: str, func: Callable[..., Any], *args: Any, resync: bool = True
    ) -> Any:
        """Run one adapter call and return its result, or ``None`` on failure."""
        try:
            result = self._run(func, *args)
        except FutureTimeoutError:
            error = ErrorResponse(
                "REMOTE_TIMEOUT",
                f"{operation} did not finish in time.",
                {"operation": operation, "timeout_seconds": self.timeout_seconds},
            )
            result = None
        except ChecklistError as exc:
            error = exc.error
            result = None
        else:
            if result is not None and result is not False:
                return result
            error = ErrorResponse(
                "REMOTE_FAILURE",
                f"{operation} was not applied.",
                {"operation": operation},
            )

        self.last_error = error
        logger.warning("%s failed: %s (%s)", operation, error.code, error.message)
        if resync:
            self._resync()
        return None

    def _resync(self) -> None:
        try:
            tree = self._run(self.adapter.fetch_tree)
        except FutureTimeoutError:
            logger.warning(
                "Resynchronizing the checklist tree timed out after %ss",
                self.timeout_seconds,
            )
            return
        except ChecklistError as exc:
            logger.warning(
                "Resynchronizing the checklist tree failed: %s (%s)",
                exc.error.code,
                exc.error.message,
            )
            return
        if tree is not None:
            self.checklists = tree

    def refresh(self) -> bool:
        self.last_error = None
        tree = self._call_remote("fetch_tree", self.adapter.fetch_tree, resync=False)
        if tree is None:
            return False
        self.checklists = tree
        return True

    # Lookups

    def _dropdown_in_context(
        self, checklist_id: str, dropdown_id: str, parent_dropdown_id: str | None
    ) -> Dropdown | None:
        siblings = self._sibling_dropdowns(checklist_id, parent_dropdown_id)
        if siblings is None:
            return None
        return next((item for item in siblings if item.id == dropdown_id), None)

    def _sibling_dropdowns(
        self, checklist_id: str, parent_dropdown_id: str | None
    ) -> list[Dropdown] | None:
        checklist = find_checklist(self.checklists, checklist_id)
        if checklist is None:
            return None
        if parent_dropdown_id is None:
            return checklist.dropdowns
        parent = find_dropdown(checklist.dropdowns, parent_dropdown_id)
        return parent.dropdowns if parent is not None else None

    def _task_owner(
        self, checklist_id: str, dropdown_id: str, parent_dropdown_id: str | None
    ) -> Dropdown | None:
        scope = self._sibling_dropdowns(checklist_id, parent_dropdown_id)
        if scope is None:
            return None
        return find_dropdown(scope, dropdown_id)

    def _task_in_context(
        self,
        checklist_id: str,
        dropdown_id: str,
        task_id: str,
        parent_dropdown_id: str | None,
    ) -> Task | None:
        owner = self._task_owner(checklist_id, dropdown_id, parent_dropdown_id)
        if owner is None:
            return None
        return next((task for task in owner.tasks if task.id == task_id), None)

    # Checklists

    def add_checklist(self, title: str) -> Checklist | None:
        self.last_error = None
        created = self._call_remote(
            "create_checklist", self.adapter.create_checklist, title
        )
        if created is not None:
            self.checklists = add_checklist(self.checklists, created)
        return created

    def create_checklist_with_sections(self, draft: Checklist) -> Checklist | None:
        """Create a checklist together with its sections and tasks.

        The writes are independent calls. If one fails part-way, the
        checklist is deleted again so no partial checklist is left behind,
        and ``last_error`` reports ``PARTIAL_CREATE``. The tree is reloaded
        afterwards either way.
        """
        self.last_error = None
        created = self._call_remote(
            "create_checklist", self.adapter.create_checklist, draft.title
        )
        if created is None:
            return None

        if not self._create_sections(created.id, draft.dropdowns, None):
            cause = self.last_error
            logger.warning(
                "Creating checklist %s failed part-way; removing it", created.id
            )
            removed = self._call_remote(
                "delete_checklist",
                self.adapter.delete_checklist,
                created.id,
                resync=False,
            )
            self.last_error = ErrorResponse(
                "PARTIAL_CREATE",
                "Checklist creation failed part-way.",
                {
                    "checklist_id": created.id,
                    "removed": bool(removed),
                    "cause": cause.to_dict() if cause else None,
                },
            )
            self._resync()
            return None

        self._resync()
        return find_checklist(self.checklists, created.id)

    def _create_sections(
        self,
        checklist_id: str,
        dropdowns: list[Dropdown],
        parent_dropdown_id: str | None,
    ) -> bool:
        for dropdown in dropdowns:
            created = self._call_remote(
                "create_dropdown",
                self.adapter.create_dropdown,
                checklist_id,
                dropdown.title,
                dropdown.expanded,
                parent_dropdown_id,
                resync=False,
            )
            if created is None:
                return False
            for task in dropdown.tasks:
                created_task = self._call_remote(
                    "create_task",
                    self.adapter.create_task,
                    created.id,
                    task.title,
                    task.completed,
                    task.content,
                    resync=False,
                )
                if created_task is None:
                    return False
            if not self._create_sections(checklist_id, dropdown.dropdowns, created.id):
                return False
        return True

    def update_checklist(self, checklist_id: str, title: str) -> bool:
        self.last_error = None
        if find_checklist(self.checklists, checklist_id) is None:
            return False
        updated = self._call_remote(
            "update_checklist", self.adapter.update_checklist, checklist_id, title
        )
        if updated is None:
            return False
        self.checklists = update_checklist(self.checklists, updated)
        return True

    def delete_checklist(self, checklist_id: str) -> bool:
        self.last_error = None
        if find_checklist(self.checklists, checklist_id) is None:
            return False
        if not self._call_remote(
            "delete_checklist", self.adapter.delete_checklist, checklist_id
        ):
            return False
        self.checklists = delete_checklist(self.checklists, checklist_id)
        return True

    # Dropdowns

    def toggle_dropdown(self, checklist_id: str, dropdown_id: str) -> bool:
        self.last_error = None
        checklist = find_checklist(self.checklists, checklist_id)
        dropdown = (
            find_dropdown(checklist.dropdowns, dropdown_id) if checklist else None
        )
        if dropdown is None:
            return False
        if not self._call_remote(
            "toggle_dropdown",
            self.adapter.toggle_expanded,
            dropdown_id,
            not dropdown.expanded,
        ):
            return False
        self.checklists = toggle_dropdown_expanded(
            self.checklists, checklist_id, dropdown_id
        )
        return True

    def add_dropdown(
        self,
        checklist_id: str,
        title: str,
        expanded: bool = False,
        parent_dropdown_id: str | None = None,
    ) -> Dropdown | None:
        self.last_error = None
        if self._sibling_dropdowns(checklist_id, parent_dropdown_id) is None:
            return None
        created = self._call_remote(
            "create_dropdown",
            self.adapter.create_dropdown,
            checklist_id,
            title,
            expanded,
            parent_dropdown_id,
        )
        if created is None:
            return None
        self.checklists = add_dropdown(
            self.checklists, checklist_id, created, parent_dropdown_id
        )
        return created

    def update_dropdown(
        self,
        checklist_id: str,
        dropdown_id: str,
        *,
        title: str | None = None,
        expanded: bool | None = None,
        parent_dropdown_id: str | None = None,
    ) -> Dropdown | None:
        self.last_error = None
        existing = self._dropdown_in_context(
            checklist_id, dropdown_id, parent_dropdown_id
        )
        if existing is None:
            return None
        updated = self._call_remote(
            "update_dropdown",
            self.adapter.update_dropdown,
            dropdown_id,
            existing.title if title is None else title,
            existing.expanded if expanded is None else expanded,
        )
        if updated is None:
            return None
        self.checklists = update_dropdown(
            self.checklists, checklist_id, updated, parent_dropdown_id
        )
        return updated

    def delete_dropdown(
        self,
        checklist_id: str,
        dropdown_id: str,
        parent_dropdown_id: str | None = None,
    ) -> bool:
        self.last_error = None
        if self._dropdown_in_context(checklist_id, dropdown_id, parent_dropdown_id) is None:
            return False
        if not self._call_remote(
            "delete_dropdown", self.adapter.delete_dropdown, dropdown_id
        ):
            return False
        self.checklists = delete_dropdown(
            self.checklists, checklist_id, dropdown_id, parent_dropdown_id
        )
        return True

    # Tasks

    def toggle_task_completion(
        self, checklist_id: str, dropdown_id: str, task_id: str
    ) -> bool:
        self.last_error = None
        task = self._task_in_context(checklist_id, dropdown_id, task_id, None)
        if task is None:
            return False
        if not self._call_remote(
            "toggle_task_completion",
            self.adapter.toggle_completion,
            task_id,
            not task.completed,
        ):
            return False
        self.checklists = toggle_task_completion(
            self.checklists, checklist_id, dropdown_id, task_id
        )
        return True

    def add_task(
        self,
        checklist_id: str,
        dropdown_id: str,
        title: str,
        *,
        completed: bool = False,
        content: TaskContent | None = None,
        parent_dropdown_id: str | None = None,
    ) -> Task | None:
        self.last_error = None
        if self._task_owner(checklist_id, dropdown_id, parent_dropdown_id) is None:
            return None
        created = self._call_remote(
            "create_task",
            self.adapter.create_task,
            dropdown_id,
            title,
            completed,
            content or TaskContent(),
        )
        if created is None:
            return None
        self.checklists = add_task(
            self.checklists, checklist_id, dropdown_id, created, parent_dropdown_id
        )
        return created

    def update_task(
        self,
        checklist_id: str,
        dropdown_id: str,
        task: Task,
        parent_dropdown_id: str | None = None,
    ) -> Task | None:
        self.last_error = None
        existing = self._task_in_context(
            checklist_id, dropdown_id, task.id, parent_dropdown_id
        )
        if existing is None:
            return None
        updated = self._call_remote(
            "update_task",
            self.adapter.update_task,
            replace(task, position=existing.position),
        )
        if updated is None:
            return None
        self.checklists = update_task(
            self.checklists, checklist_id, dropdown_id, updated, parent_dropdown_id
        )
        return updated

    def delete_task(
        self,
        checklist_id: str,
        dropdown_id: str,
        task_id: str,
        parent_dropdown_id: str | None = None,
    ) -> bool:
        self.last_error = None
        if (
            self._task_in_context(checklist_id, dropdown_id, task_id, parent_dropdown_id)
            is None
        ):
            return False
        if not self._call_remote("delete_task", self.adapter.delete_task, task_id):
            return False
        self.checklists = delete_task(
            self.checklists, checklist_id, dropdown_id, task_id, parent_dropdown_id
        )
        if self.navigator.current_task_id == task_id:
            self.navigator.close()
        return True

    # Drag and drop

    def start_drag(self, item: DraggableItem) -> None:
        self.drag_session.start(item)

    def cancel_drag(self) -> None:
        self.drag_session.cancel()

    def drop(self, target: DraggableItem) -> bool:
        """Drop the dragged item on ``target`` and persist the new order."""
        self.last_error = None
        plan = self.drag_session.drop(target, self.checklists)
        if plan is None:
            return False
        if not self._call_remote(
            "update_positions",
            self.adapter.update_positions,
            plan.kind,
            plan.position_updates(),
        ):
            return False
        self.checklists = apply_positions(self.checklists, plan.kind, plan.positions())
        return True

    # Task detail

    @property
    def selected_task(self) -> Task | None:
        task_id = self.navigator.current_task_id
        if task_id is None:
            return None
        location = find_task(self.checklists, task_id)
        return location.task if location is not None else None

    @property
    def referrer_task(self) -> Task | None:
        task_id = self.navigator.referrer_task_id
        if task_id is None:
            return None
        location = find_task(self.checklists, task_id)
        return location.task if location is not None else None

    def open_task(self, task_id: str) -> Task | None:
        if find_task(self.checklists, task_id) is None:
            return None
        self.navigator.open(task_id)
        return self.selected_task

    def follow_task_link(self, task_id: str) -> Task | None:
        if find_task(self.checklists, task_id) is None:
            return None
        self.navigator.follow_link(task_id)
        return self.selected_task

    def back_to_referrer(self) -> Task | None:
        if self.navigator.back() is None:
            return None
        return self.selected_task

    def close_task(self) -> None:
        self.navigator.close()
