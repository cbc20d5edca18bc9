"""Checklist tree types.

A checklist owns an ordered list of root sections ("dropdowns"). Each dropdown
owns its tasks and its nested dropdowns, so every node is reachable through
exactly one path. Parentage is implied by position in the tree; nodes carry no
back-references.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence, TypeVar

ADMIN_ROLE = "admin"
USER_ROLE = "user"
USER_ROLES = {ADMIN_ROLE, USER_ROLE}

DROPDOWN_KIND = "dropdown"
TASK_KIND = "task"
ITEM_KINDS = {DROPDOWN_KIND, TASK_KIND}

_Positioned = TypeVar("_Positioned", "Dropdown", "Task")


@dataclass
class TaskContent:
    subheader: str = ""
    body: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"subheader": self.subheader, "body": self.body}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TaskContent":
        data = data or {}
        return cls(
            subheader=str(data.get("subheader") or ""),
            body=str(data.get("body") or ""),
        )


@dataclass
class Task:
    id: str
    title: str
    completed: bool = False
    content: TaskContent = field(default_factory=TaskContent)
    position: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "content": self.content.to_dict(),
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            completed=bool(data.get("completed", False)),
            content=TaskContent.from_dict(data.get("content")),
            position=data.get("position"),
        )


@dataclass
class Dropdown:
    id: str
    title: str
    expanded: bool = False
    tasks: list[Task] = field(default_factory=list)
    dropdowns: list["Dropdown"] = field(default_factory=list)
    position: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "expanded": self.expanded,
            "position": self.position,
            "tasks": [task.to_dict() for task in self.tasks],
            "dropdowns": [dropdown.to_dict() for dropdown in self.dropdowns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Dropdown":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            expanded=bool(data.get("expanded", False)),
            tasks=[Task.from_dict(item) for item in data.get("tasks") or []],
            dropdowns=[
                Dropdown.from_dict(item) for item in data.get("dropdowns") or []
            ],
            position=data.get("position"),
        )


@dataclass
class Checklist:
    id: str
    title: str
    dropdowns: list[Dropdown] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "dropdowns": [dropdown.to_dict() for dropdown in self.dropdowns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checklist":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            dropdowns=[
                Dropdown.from_dict(item) for item in data.get("dropdowns") or []
            ],
        )


@dataclass
class LearningPage:
    id: str
    title: str
    body: str
    author_id: str | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "author_id": self.author_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LearningPage":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            author_id=data.get("author_id"),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
        )


@dataclass(frozen=True)
class User:
    id: str
    email: str | None
    role: str = USER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "role": self.role}


def sort_by_position(items: Sequence[_Positioned]) -> list[_Positioned]:
    """Order siblings by position when every sibling has one.

    Insertion order is kept otherwise; the sort is stable so equal positions
    keep their relative order.
    """
    if items and all(item.position is not None for item in items):
        return sorted(items, key=lambda item: item.position)
    return list(items)


def iter_dropdowns(dropdowns: Sequence[Dropdown]) -> Iterator[Dropdown]:
    """Yield every dropdown depth-first, parents before children."""
    for dropdown in dropdowns:
        yield dropdown
        yield from iter_dropdowns(dropdown.dropdowns)


def completion_counts(dropdown: Dropdown) -> tuple[int, int]:
    """Return (completed, total) task counts including nested dropdowns."""
    tasks = [task for node in iter_dropdowns([dropdown]) for task in node.tasks]
    return sum(1 for task in tasks if task.completed), len(tasks)


def completion_percentage(node: Checklist | Dropdown) -> int:
    dropdowns = node.dropdowns if isinstance(node, Checklist) else [node]
    tasks = [task for dropdown in iter_dropdowns(dropdowns) for task in dropdown.tasks]
    if not tasks:
        return 0
    completed = sum(1 for task in tasks if task.completed)
    return round(completed * 100 / len(tasks))
