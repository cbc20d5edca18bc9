"""Boundary between the checklist store and persistent storage."""

from __future__ import annotations

from typing import Protocol

from app.checklist_model import Checklist, Dropdown, Task, TaskContent, User
from app.checklist_reorder import PositionUpdate
from app.checklist_repository import ChecklistRepository
from app.checklist_tree import find_checklist, find_dropdown, find_task
from app.errors import ChecklistError


class RemoteSyncAdapter(Protocol):
    """Persistence operations the store relies on.

    Creates and updates return the stored node, or ``None`` when the write was
    not applied. Deletes, toggles and position updates return ``False`` in that
    case. Rejected writes raise ``ChecklistError``.
    """

    def fetch_tree(self) -> list[Checklist] | None: ...

    def create_checklist(self, title: str) -> Checklist | None: ...

    def update_checklist(self, checklist_id: str, title: str) -> Checklist | None: ...

    def delete_checklist(self, checklist_id: str) -> bool: ...

    def create_dropdown(
        self,
        checklist_id: str,
        title: str,
        expanded: bool,
        parent_dropdown_id: str | None = None,
    ) -> Dropdown | None: ...

    def update_dropdown(
        self, dropdown_id: str, title: str, expanded: bool
    ) -> Dropdown | None: ...

    def delete_dropdown(self, dropdown_id: str) -> bool: ...

    def create_task(
        self, dropdown_id: str, title: str, completed: bool, content: TaskContent
    ) -> Task | None: ...

    def update_task(self, task: Task) -> Task | None: ...

    def delete_task(self, task_id: str) -> bool: ...

    def toggle_completion(self, task_id: str, completed: bool) -> bool: ...

    def toggle_expanded(self, dropdown_id: str, expanded: bool) -> bool: ...

    def update_positions(self, kind: str, items: list[PositionUpdate]) -> bool: ...


class RepositorySyncAdapter:
    """Adapter over the table repository, acting for one user.

    Authoring operations require the admin role. Completion and expansion
    toggles are open to every user; completion is recorded per user.
    """

    def __init__(self, repository: ChecklistRepository, user: User) -> None:
        self.repository = repository
        self.user = user

    def _require_admin(self, operation: str) -> None:
        if not self.user.is_admin:
            raise ChecklistError(
                "PERMISSION_DENIED",
                "Only admins can change checklist content.",
                {"operation": operation, "user_id": self.user.id},
            )

    def fetch_tree(self) -> list[Checklist]:
        return self.repository.load_tree(self.user.id)

    def create_checklist(self, title: str) -> Checklist | None:
        self._require_admin("create_checklist")
        checklist_id = self.repository.create_checklist(
            title, owner_id=self.user.id, is_global=self.user.is_admin
        )
        return find_checklist(self.fetch_tree(), checklist_id)

    def update_checklist(self, checklist_id: str, title: str) -> Checklist | None:
        self._require_admin("update_checklist")
        if not self.repository.update_checklist(checklist_id, title, self.user.id):
            return None
        return find_checklist(self.fetch_tree(), checklist_id)

    def delete_checklist(self, checklist_id: str) -> bool:
        self._require_admin("delete_checklist")
        return self.repository.delete_checklist(checklist_id, self.user.id)

    def create_dropdown(
        self,
        checklist_id: str,
        title: str,
        expanded: bool,
        parent_dropdown_id: str | None = None,
    ) -> Dropdown | None:
        self._require_admin("create_dropdown")
        dropdown_id = self.repository.create_dropdown(
            checklist_id, title, expanded, parent_dropdown_id, self.user.id
        )
        if dropdown_id is None:
            return None
        return self._fetch_dropdown(dropdown_id)

    def update_dropdown(
        self, dropdown_id: str, title: str, expanded: bool
    ) -> Dropdown | None:
        self._require_admin("update_dropdown")
        if not self.repository.update_dropdown(
            dropdown_id, self.user.id, title=title, expanded=expanded
        ):
            return None
        return self._fetch_dropdown(dropdown_id)

    def delete_dropdown(self, dropdown_id: str) -> bool:
        self._require_admin("delete_dropdown")
        return self.repository.delete_dropdown(dropdown_id, self.user.id)

    def create_task(
        self, dropdown_id: str, title: str, completed: bool, content: TaskContent
    ) -> Task | None:
        self._require_admin("create_task")
        task_id = self.repository.create_task(
            dropdown_id, title, completed, content, self.user.id
        )
        if task_id is None:
            return None
        return self._fetch_task(task_id)

    def update_task(self, task: Task) -> Task | None:
        self._require_admin("update_task")
        if not self.repository.update_task(task, self.user.id):
            return None
        return self._fetch_task(task.id)

    def delete_task(self, task_id: str) -> bool:
        self._require_admin("delete_task")
        return self.repository.delete_task(task_id, self.user.id)

    def toggle_completion(self, task_id: str, completed: bool) -> bool:
        return self.repository.set_completion(self.user.id, task_id, completed)

    def toggle_expanded(self, dropdown_id: str, expanded: bool) -> bool:
        return self.repository.update_dropdown(
            dropdown_id,
            self.user.id,
            expanded=expanded,
            operation="toggle_dropdown",
        )

    def update_positions(self, kind: str, items: list[PositionUpdate]) -> bool:
        self._require_admin("update_positions")
        return self.repository.update_positions(
            kind, {item.id: item.position for item in items}, self.user.id
        )

    def _fetch_dropdown(self, dropdown_id: str) -> Dropdown | None:
        for checklist in self.fetch_tree():
            dropdown = find_dropdown(checklist.dropdowns, dropdown_id)
            if dropdown is not None:
                return dropdown
        return None

    def _fetch_task(self, task_id: str) -> Task | None:
        location = find_task(self.fetch_tree(), task_id)
        return location.task if location is not None else None
