"""Versioned table storage for checklists, users and learning pages.

Each table is a JSON array of rows in ``<data_root>/tables/<name>.json``. A
mutation rewrites the tables it touches and commits them to the git
repository in the data root; a failed commit restores the previous files.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from app.activity import _append_activity_log, _build_activity_entry
from app.checklist_model import (
    ADMIN_ROLE,
    DROPDOWN_KIND,
    TASK_KIND,
    USER_ROLE,
    Checklist,
    Dropdown,
    LearningPage,
    Task,
    TaskContent,
    User,
    sort_by_position,
)
from app.errors import ChecklistError
from app.storage_utils import _atomic_write, _dump_rows, _load_rows
from app.versioning import (
    _commit_table_changes,
    _ensure_git_repo,
    _read_head_state,
    _restore_git_head,
    _rollback_table_changes,
)

logger = logging.getLogger(__name__)

TABLES_DIRNAME = "tables"

Row = dict[str, Any]
Tables = dict[str, list[Row]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _next_position(rows: Iterable[Row], in_group: Callable[[Row], bool]) -> int:
    positions = [row.get("position") or 0 for row in rows if in_group(row)]
    return max(positions) + 1 if positions else 0


def _renumber(rows: list[Row], in_group: Callable[[Row], bool]) -> None:
    siblings = sorted(
        (row for row in rows if in_group(row)),
        key=lambda row: row.get("position") or 0,
    )
    for index, row in enumerate(siblings):
        row["position"] = index


def _dropdown_subtree_ids(dropdown_rows: list[Row], root_ids: set[str]) -> set[str]:
    collected = set(root_ids)
    pending = list(root_ids)
    while pending:
        parent_id = pending.pop()
        for row in dropdown_rows:
            if row.get("parent_dropdown_id") == parent_id and row["id"] not in collected:
                collected.add(row["id"])
                pending.append(row["id"])
    return collected


def _drop_tasks(tables: Tables, task_ids: set[str]) -> None:
    tables["tasks"] = [row for row in tables["tasks"] if row["id"] not in task_ids]
    tables["task_completions"] = [
        row for row in tables["task_completions"] if row["task_id"] not in task_ids
    ]
    tables["task_learning_pages"] = [
        row for row in tables["task_learning_pages"] if row["task_id"] not in task_ids
    ]


def _drop_dropdowns(tables: Tables, dropdown_ids: set[str]) -> None:
    tables["dropdowns"] = [
        row for row in tables["dropdowns"] if row["id"] not in dropdown_ids
    ]
    task_ids = {
        row["id"] for row in tables["tasks"] if row["dropdown_id"] in dropdown_ids
    }
    _drop_tasks(tables, task_ids)


def _find_row(rows: list[Row], row_id: str) -> Row | None:
    for row in rows:
        if row["id"] == row_id:
            return row
    return None


class ChecklistRepository:
    """Reads and writes the checklist tables under a data directory."""

    def __init__(
        self, data_root: Path, admin_user_ids: Iterable[str] = ()
    ) -> None:
        self.data_root = Path(data_root)
        self.admin_user_ids = frozenset(admin_user_ids)
        self._lock = threading.RLock()

    def _table_path(self, name: str) -> Path:
        return self.data_root / TABLES_DIRNAME / f"{name}.json"

    def read_tables(self, *names: str) -> Tables:
        with self._lock:
            return {name: _load_rows(self._table_path(name)) for name in names}

    def _write_tables(
        self, tables: Tables, operation: str, user_id: str | None, target: str
    ) -> str:
        (self.data_root / TABLES_DIRNAME).mkdir(parents=True, exist_ok=True)
        repo = _ensure_git_repo(self.data_root)
        head_ref_path, previous_head = _read_head_state(self.data_root)
        originals: dict[Path, str | None] = {}
        try:
            for name, rows in tables.items():
                table_path = self._table_path(name)
                relative_path = table_path.relative_to(self.data_root)
                originals[relative_path] = (
                    table_path.read_text(encoding="utf-8")
                    if table_path.exists()
                    else None
                )
                _atomic_write(table_path, _dump_rows(rows))
        except OSError as exc:
            _rollback_table_changes(None, self.data_root, originals)
            logger.error(
                "Writing tables for %s on %s failed: %s", operation, target, exc
            )
            raise ChecklistError(
                "FILESYSTEM_ERROR",
                "Writing table files failed; mutation rolled back.",
                {"operation": operation, "target": target},
            ) from exc
        try:
            commit_sha = _commit_table_changes(
                repo, list(originals), operation, target
            )
        except Exception as exc:
            _rollback_table_changes(repo, self.data_root, originals)
            logger.error("Commit for %s on %s failed: %s", operation, target, exc)
            raise ChecklistError(
                "GIT_ERROR",
                "Git commit failed; mutation rolled back.",
                {"operation": operation, "target": target},
            ) from exc
        try:
            _append_activity_log(
                self.data_root,
                _build_activity_entry(operation, user_id, target, commit_sha),
            )
        except Exception as exc:
            _rollback_table_changes(repo, self.data_root, originals)
            _restore_git_head(self.data_root, head_ref_path, previous_head)
            logger.error("Activity log for %s on %s failed: %s", operation, target, exc)
            raise ChecklistError(
                "LOG_ERROR",
                "Activity log write failed; mutation rolled back.",
                {"operation": operation, "target": target},
            ) from exc
        return commit_sha

    # Users

    def get_user(self, user_id: str) -> User | None:
        row = _find_row(self.read_tables("users")["users"], user_id)
        if row is None:
            return None
        return User(id=row["id"], email=row.get("email"), role=row["role"])

    def ensure_user(self, user_id: str, email: str | None = None) -> User:
        """Return the user row, creating it the first time the id is seen."""
        role = ADMIN_ROLE if user_id in self.admin_user_ids else USER_ROLE
        with self._lock:
            tables = self.read_tables("users")
            row = _find_row(tables["users"], user_id)
            if row is not None and row["role"] == role and (
                email is None or row.get("email") == email
            ):
                return User(id=row["id"], email=row.get("email"), role=row["role"])
            if row is None:
                row = {"id": user_id, "email": email, "role": role, "created_at": _now()}
                tables["users"].append(row)
                operation = "create_user"
            else:
                row["role"] = role
                if email is not None:
                    row["email"] = email
                operation = "update_user"
            self._write_tables(tables, operation, user_id, f"users/{user_id}")
            return User(id=row["id"], email=row.get("email"), role=row["role"])

    # Checklist tree

    def load_tree(self, user_id: str) -> list[Checklist]:
        """Build the checklist tree visible to a user.

        Global checklists and checklists the user owns are included. Task
        completion comes from the user's completion row and falls back to the
        task's default.
        """
        tables = self.read_tables("checklists", "dropdowns", "tasks", "task_completions")
        completions = {
            row["task_id"]: bool(row["completed"])
            for row in tables["task_completions"]
            if row["user_id"] == user_id
        }

        tasks_by_dropdown: dict[str, list[Task]] = {}
        for row in tables["tasks"]:
            task = Task(
                id=row["id"],
                title=row["title"],
                completed=completions.get(row["id"], bool(row.get("default_completed"))),
                content=TaskContent(
                    subheader=row.get("subheader") or "", body=row.get("body") or ""
                ),
                position=row.get("position"),
            )
            tasks_by_dropdown.setdefault(row["dropdown_id"], []).append(task)

        nodes: dict[str, Dropdown] = {}
        for row in tables["dropdowns"]:
            nodes[row["id"]] = Dropdown(
                id=row["id"],
                title=row["title"],
                expanded=bool(row.get("expanded")),
                tasks=sort_by_position(tasks_by_dropdown.get(row["id"], [])),
                position=row.get("position"),
            )

        roots: dict[str, list[Dropdown]] = {}
        for row in tables["dropdowns"]:
            node = nodes[row["id"]]
            parent_id = row.get("parent_dropdown_id")
            if parent_id is None:
                roots.setdefault(row["checklist_id"], []).append(node)
            elif parent_id in nodes:
                nodes[parent_id].dropdowns.append(node)
        for node in nodes.values():
            node.dropdowns = sort_by_position(node.dropdowns)

        return [
            Checklist(
                id=row["id"],
                title=row["title"],
                dropdowns=sort_by_position(roots.get(row["id"], [])),
            )
            for row in tables["checklists"]
            if row.get("is_global") or row.get("owner_id") == user_id
        ]

    def create_checklist(
        self, title: str, owner_id: str, is_global: bool
    ) -> str:
        with self._lock:
            tables = self.read_tables("checklists")
            checklist_id = _new_id()
            tables["checklists"].append(
                {
                    "id": checklist_id,
                    "title": title,
                    "owner_id": owner_id,
                    "is_global": is_global,
                    "created_at": _now(),
                }
            )
            self._write_tables(
                tables, "create_checklist", owner_id, f"checklists/{checklist_id}"
            )
            return checklist_id

    def update_checklist(self, checklist_id: str, title: str, user_id: str) -> bool:
        with self._lock:
            tables = self.read_tables("checklists")
            row = _find_row(tables["checklists"], checklist_id)
            if row is None:
                return False
            row["title"] = title
            self._write_tables(
                tables, "update_checklist", user_id, f"checklists/{checklist_id}"
            )
            return True

    def delete_checklist(self, checklist_id: str, user_id: str) -> bool:
        with self._lock:
            tables = self.read_tables(
                "checklists",
                "dropdowns",
                "tasks",
                "task_completions",
                "task_learning_pages",
            )
            if _find_row(tables["checklists"], checklist_id) is None:
                return False
            tables["checklists"] = [
                row for row in tables["checklists"] if row["id"] != checklist_id
            ]
            _drop_dropdowns(
                tables,
                {
                    row["id"]
                    for row in tables["dropdowns"]
                    if row["checklist_id"] == checklist_id
                },
            )
            self._write_tables(
                tables, "delete_checklist", user_id, f"checklists/{checklist_id}"
            )
            return True

    def create_dropdown(
        self,
        checklist_id: str,
        title: str,
        expanded: bool,
        parent_dropdown_id: str | None,
        user_id: str,
    ) -> str | None:
        with self._lock:
            tables = self.read_tables("checklists", "dropdowns")
            if _find_row(tables["checklists"], checklist_id) is None:
                return None
            if parent_dropdown_id is not None:
                parent = _find_row(tables["dropdowns"], parent_dropdown_id)
                if parent is None or parent["checklist_id"] != checklist_id:
                    return None

            def in_group(row: Row) -> bool:
                return (
                    row["checklist_id"] == checklist_id
                    and row.get("parent_dropdown_id") == parent_dropdown_id
                )

            dropdown_id = _new_id()
            tables["dropdowns"].append(
                {
                    "id": dropdown_id,
                    "title": title,
                    "checklist_id": checklist_id,
                    "parent_dropdown_id": parent_dropdown_id,
                    "expanded": expanded,
                    "position": _next_position(tables["dropdowns"], in_group),
                }
            )
            del tables["checklists"]
            self._write_tables(
                tables, "create_dropdown", user_id, f"dropdowns/{dropdown_id}"
            )
            return dropdown_id

    def update_dropdown(
        self,
        dropdown_id: str,
        user_id: str,
        *,
        title: str | None = None,
        expanded: bool | None = None,
        operation: str = "update_dropdown",
    ) -> bool:
        with self._lock:
            tables = self.read_tables("dropdowns")
            row = _find_row(tables["dropdowns"], dropdown_id)
            if row is None:
                return False
            if title is not None:
                row["title"] = title
            if expanded is not None:
                row["expanded"] = expanded
            self._write_tables(tables, operation, user_id, f"dropdowns/{dropdown_id}")
            return True

    def delete_dropdown(self, dropdown_id: str, user_id: str) -> bool:
        with self._lock:
            tables = self.read_tables(
                "dropdowns", "tasks", "task_completions", "task_learning_pages"
            )
            row = _find_row(tables["dropdowns"], dropdown_id)
            if row is None:
                return False
            _drop_dropdowns(
                tables, _dropdown_subtree_ids(tables["dropdowns"], {dropdown_id})
            )
            _renumber(
                tables["dropdowns"],
                lambda other: other["checklist_id"] == row["checklist_id"]
                and other.get("parent_dropdown_id") == row.get("parent_dropdown_id"),
            )
            self._write_tables(
                tables, "delete_dropdown", user_id, f"dropdowns/{dropdown_id}"
            )
            return True

    def create_task(
        self,
        dropdown_id: str,
        title: str,
        completed: bool,
        content: TaskContent,
        user_id: str,
    ) -> str | None:
        with self._lock:
            tables = self.read_tables("dropdowns", "tasks", "task_completions")
            if _find_row(tables["dropdowns"], dropdown_id) is None:
                return None
            task_id = _new_id()
            tables["tasks"].append(
                {
                    "id": task_id,
                    "title": title,
                    "default_completed": completed,
                    "subheader": content.subheader,
                    "body": content.body,
                    "dropdown_id": dropdown_id,
                    "position": _next_position(
                        tables["tasks"], lambda row: row["dropdown_id"] == dropdown_id
                    ),
                }
            )
            tables["task_completions"].append(
                {"user_id": user_id, "task_id": task_id, "completed": completed}
            )
            del tables["dropdowns"]
            self._write_tables(tables, "create_task", user_id, f"tasks/{task_id}")
            return task_id

    def update_task(self, task: Task, user_id: str) -> bool:
        """Update task content and the default and user completion state."""
        with self._lock:
            tables = self.read_tables("tasks", "task_completions")
            row = _find_row(tables["tasks"], task.id)
            if row is None:
                return False
            row["title"] = task.title
            row["default_completed"] = task.completed
            row["subheader"] = task.content.subheader
            row["body"] = task.content.body
            _set_completion_row(tables, user_id, task.id, task.completed)
            self._write_tables(tables, "update_task", user_id, f"tasks/{task.id}")
            return True

    def delete_task(self, task_id: str, user_id: str) -> bool:
        with self._lock:
            tables = self.read_tables("tasks", "task_completions", "task_learning_pages")
            row = _find_row(tables["tasks"], task_id)
            if row is None:
                return False
            _drop_tasks(tables, {task_id})
            _renumber(
                tables["tasks"],
                lambda other: other["dropdown_id"] == row["dropdown_id"],
            )
            self._write_tables(tables, "delete_task", user_id, f"tasks/{task_id}")
            return True

    def set_completion(self, user_id: str, task_id: str, completed: bool) -> bool:
        with self._lock:
            tables = self.read_tables("tasks", "task_completions")
            if _find_row(tables["tasks"], task_id) is None:
                return False
            _set_completion_row(tables, user_id, task_id, completed)
            del tables["tasks"]
            self._write_tables(
                tables, "toggle_task_completion", user_id, f"tasks/{task_id}"
            )
            return True

    def update_positions(
        self, kind: str, positions: dict[str, int], user_id: str
    ) -> bool:
        table_name = {DROPDOWN_KIND: "dropdowns", TASK_KIND: "tasks"}.get(kind)
        if table_name is None:
            raise ChecklistError(
                "INVALID_KIND",
                "kind must be 'dropdown' or 'task'.",
                {"kind": kind},
            )
        with self._lock:
            tables = self.read_tables(table_name)
            rows = {row["id"]: row for row in tables[table_name]}
            if not positions or any(item_id not in rows for item_id in positions):
                return False
            for item_id, position in positions.items():
                rows[item_id]["position"] = position
            self._write_tables(
                tables, "update_positions", user_id, f"{table_name}/{len(positions)}"
            )
            return True

    # Learning pages

    def list_learning_pages(self) -> list[LearningPage]:
        rows = self.read_tables("learning_pages")["learning_pages"]
        pages = [LearningPage.from_dict(row) for row in rows]
        return sorted(pages, key=lambda page: page.created_at, reverse=True)

    def get_learning_page(self, page_id: str) -> LearningPage | None:
        row = _find_row(self.read_tables("learning_pages")["learning_pages"], page_id)
        return LearningPage.from_dict(row) if row is not None else None

    def create_learning_page(self, title: str, body: str, author_id: str) -> LearningPage:
        with self._lock:
            tables = self.read_tables("learning_pages")
            timestamp = _now()
            row = {
                "id": _new_id(),
                "title": title,
                "body": body,
                "author_id": author_id,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
            tables["learning_pages"].append(row)
            self._write_tables(
                tables, "create_learning_page", author_id, f"learning_pages/{row['id']}"
            )
            return LearningPage.from_dict(row)

    def update_learning_page(
        self,
        page_id: str,
        user_id: str,
        *,
        title: str | None = None,
        body: str | None = None,
    ) -> LearningPage | None:
        with self._lock:
            tables = self.read_tables("learning_pages")
            row = _find_row(tables["learning_pages"], page_id)
            if row is None:
                return None
            if title is not None:
                row["title"] = title
            if body is not None:
                row["body"] = body
            row["updated_at"] = _now()
            self._write_tables(
                tables, "update_learning_page", user_id, f"learning_pages/{page_id}"
            )
            return LearningPage.from_dict(row)

    def delete_learning_page(self, page_id: str, user_id: str) -> bool:
        with self._lock:
            tables = self.read_tables("learning_pages", "task_learning_pages")
            if _find_row(tables["learning_pages"], page_id) is None:
                return False
            tables["learning_pages"] = [
                row for row in tables["learning_pages"] if row["id"] != page_id
            ]
            tables["task_learning_pages"] = [
                row
                for row in tables["task_learning_pages"]
                if row["learning_page_id"] != page_id
            ]
            self._write_tables(
                tables, "delete_learning_page", user_id, f"learning_pages/{page_id}"
            )
            return True

    def link_learning_page(self, task_id: str, page_id: str, user_id: str) -> bool:
        with self._lock:
            tables = self.read_tables("tasks", "learning_pages", "task_learning_pages")
            if _find_row(tables["tasks"], task_id) is None:
                return False
            if _find_row(tables["learning_pages"], page_id) is None:
                return False
            links = tables["task_learning_pages"]
            if not any(
                row["task_id"] == task_id and row["learning_page_id"] == page_id
                for row in links
            ):
                links.append({"task_id": task_id, "learning_page_id": page_id})
                self._write_tables(
                    {"task_learning_pages": links},
                    "link_learning_page",
                    user_id,
                    f"tasks/{task_id}",
                )
            return True

    def unlink_learning_page(self, task_id: str, page_id: str, user_id: str) -> bool:
        with self._lock:
            links = self.read_tables("task_learning_pages")["task_learning_pages"]
            remaining = [
                row
                for row in links
                if not (row["task_id"] == task_id and row["learning_page_id"] == page_id)
            ]
            if len(remaining) == len(links):
                return False
            self._write_tables(
                {"task_learning_pages": remaining},
                "unlink_learning_page",
                user_id,
                f"tasks/{task_id}",
            )
            return True

    def learning_pages_for_task(self, task_id: str) -> list[LearningPage]:
        tables = self.read_tables("learning_pages", "task_learning_pages")
        linked_ids = {
            row["learning_page_id"]
            for row in tables["task_learning_pages"]
            if row["task_id"] == task_id
        }
        return [
            LearningPage.from_dict(row)
            for row in tables["learning_pages"]
            if row["id"] in linked_ids
        ]

    def tasks_for_learning_page(self, page_id: str) -> list[str]:
        links = self.read_tables("task_learning_pages")["task_learning_pages"]
        return [row["task_id"] for row in links if row["learning_page_id"] == page_id]


def _set_completion_row(tables: Tables, user_id: str, task_id: str, completed: bool) -> None:
    for row in tables["task_completions"]:
        if row["user_id"] == user_id and row["task_id"] == task_id:
            row["completed"] = completed
            return
    tables["task_completions"].append(
        {"user_id": user_id, "task_id": task_id, "completed": completed}
    )
