"""Embedded task references in task and learning-page bodies.

Authors reference another task with ``[[task:<id>|<label>]]``. Rendering turns
each marker into an anchor carrying the task id so a click can open that task.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

TASK_LINK_PATTERN = re.compile(r"\[\[task:([a-zA-Z0-9-]+)\|([^\]]+)\]\]")
TASK_LINK_CLASS = "task-link"


@dataclass(frozen=True)
class TaskLink:
    task_id: str
    label: str


def render_task_links(text: str) -> str:
    """Replace every task marker with a clickable anchor."""
    return TASK_LINK_PATTERN.sub(
        lambda match: (
            f'<a href="#" data-task-id="{match.group(1)}" '
            f'class="{TASK_LINK_CLASS}">{match.group(2)}</a>'
        ),
        text,
    )


def extract_task_links(text: str) -> list[TaskLink]:
    return [
        TaskLink(task_id=match.group(1), label=match.group(2))
        for match in TASK_LINK_PATTERN.finditer(text)
    ]


class TaskDetailNavigator:
    """Open-task state with one level of back navigation.

    Following a link from a task remembers that task as the referrer. Only one
    referrer is kept: following a second link replaces it.
    """

    def __init__(self) -> None:
        self.current_task_id: str | None = None
        self.referrer_task_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.current_task_id is not None

    def open(self, task_id: str) -> None:
        self.current_task_id = task_id
        self.referrer_task_id = None

    def follow_link(self, task_id: str) -> None:
        if self.current_task_id == task_id:
            return
        if self.current_task_id is None:
            self.open(task_id)
            return
        self.referrer_task_id = self.current_task_id
        self.current_task_id = task_id

    def back(self) -> str | None:
        if self.referrer_task_id is None:
            return None
        self.current_task_id = self.referrer_task_id
        self.referrer_task_id = None
        return self.current_task_id

    def close(self) -> None:
        self.current_task_id = None
        self.referrer_task_id = None
