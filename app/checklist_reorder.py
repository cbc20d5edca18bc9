"""Drag-and-drop reordering of sibling dropdowns and tasks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Sequence, TypeVar

from app.checklist_model import DROPDOWN_KIND, TASK_KIND, Checklist, Dropdown, Task
from app.checklist_tree import find_checklist, find_dropdown, find_task, locate_dropdown

logger = logging.getLogger(__name__)

_Item = TypeVar("_Item", Dropdown, Task)


@dataclass(frozen=True)
class PositionUpdate:
    id: str
    position: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "position": self.position}


@dataclass(frozen=True)
class DraggableItem:
    """A dropdown or task together with the sibling group it belongs to.

    ``parent_id`` is the parent dropdown for a dropdown (``None`` at the
    checklist root) and the owning dropdown for a task.
    """

    kind: str
    item_id: str
    checklist_id: str
    parent_id: str | None

    @classmethod
    def for_dropdown(
        cls, tree: Sequence[Checklist], dropdown_id: str
    ) -> "DraggableItem | None":
        location = locate_dropdown(tree, dropdown_id)
        if location is None:
            return None
        return cls(
            DROPDOWN_KIND,
            dropdown_id,
            location.checklist_id,
            location.parent_dropdown_id,
        )

    @classmethod
    def for_task(cls, tree: Sequence[Checklist], task_id: str) -> "DraggableItem | None":
        location = find_task(tree, task_id)
        if location is None:
            return None
        return cls(TASK_KIND, task_id, location.checklist_id, location.dropdown_id)

    def is_same_item(self, other: "DraggableItem") -> bool:
        return self.kind == other.kind and self.item_id == other.item_id

    def shares_parent_with(self, other: "DraggableItem") -> bool:
        return (
            self.kind == other.kind
            and self.checklist_id == other.checklist_id
            and self.parent_id == other.parent_id
        )


@dataclass(frozen=True)
class ReorderPlan:
    kind: str
    checklist_id: str
    parent_id: str | None
    items: tuple

    def position_updates(self) -> list[PositionUpdate]:
        return [PositionUpdate(item.id, item.position) for item in self.items]

    def positions(self) -> dict[str, int]:
        return {item.id: item.position for item in self.items}


def reorder_siblings(
    siblings: Sequence[_Item], dragged_id: str, target_id: str
) -> list[_Item] | None:
    """Move the dragged sibling to just after the target and renumber from 0.

    Returns ``None`` when either id is not part of the sibling group. Dropping
    an item on itself keeps the current order.
    """
    dragged = next((item for item in siblings if item.id == dragged_id), None)
    if dragged is None or not any(item.id == target_id for item in siblings):
        return None

    if dragged_id == target_id:
        ordered = list(siblings)
    else:
        ordered = [item for item in siblings if item.id != dragged_id]
        target_index = next(
            index for index, item in enumerate(ordered) if item.id == target_id
        )
        ordered.insert(target_index + 1, dragged)

    return [replace(item, position=index) for index, item in enumerate(ordered)]


def sibling_items(tree: Sequence[Checklist], item: DraggableItem) -> list | None:
    """Return the current sibling group of a draggable item."""
    checklist = find_checklist(tree, item.checklist_id)
    if checklist is None:
        return None
    if item.kind == TASK_KIND:
        owner = find_dropdown(checklist.dropdowns, item.parent_id or "")
        return list(owner.tasks) if owner is not None else None
    if item.parent_id is None:
        return list(checklist.dropdowns)
    parent = find_dropdown(checklist.dropdowns, item.parent_id)
    return list(parent.dropdowns) if parent is not None else None


class DragSession:
    """Tracks the single item currently being dragged."""

    IDLE = "idle"
    DRAGGING = "dragging"

    def __init__(self) -> None:
        self.dragged: DraggableItem | None = None

    @property
    def state(self) -> str:
        return self.DRAGGING if self.dragged is not None else self.IDLE

    def start(self, item: DraggableItem) -> None:
        self.dragged = item

    def cancel(self) -> None:
        self.dragged = None

    def drop(
        self, target: DraggableItem, tree: Sequence[Checklist]
    ) -> ReorderPlan | None:
        """Finish the drag on ``target`` and compute the new sibling order.

        Only drops between items of the same kind that share a parent produce
        a plan; every other drop ends the session without a reorder.
        """
        dragged = self.dragged
        self.dragged = None
        if dragged is None or dragged.is_same_item(target):
            return None
        if not dragged.shares_parent_with(target):
            logger.debug(
                "Ignoring cross-parent drop of %s %s onto %s %s",
                dragged.kind,
                dragged.item_id,
                target.kind,
                target.item_id,
            )
            return None

        siblings = sibling_items(tree, dragged)
        if siblings is None:
            return None
        reordered = reorder_siblings(siblings, dragged.item_id, target.item_id)
        if reordered is None:
            return None
        return ReorderPlan(
            kind=dragged.kind,
            checklist_id=dragged.checklist_id,
            parent_id=dragged.parent_id,
            items=tuple(reordered),
        )
