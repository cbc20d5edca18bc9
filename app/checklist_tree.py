"""Pure mutation helpers for checklist trees.

Every function takes a tree (a list of checklists) and returns a new tree. The
input is never modified; subtrees that are not on the path to the edited node
are shared with the result. A referenced id that cannot be found makes the
operation a no-op, because the local tree may be stale relative to the store.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Mapping, Sequence

from app.checklist_model import (
    DROPDOWN_KIND,
    TASK_KIND,
    Checklist,
    Dropdown,
    Task,
    sort_by_position,
)

Tree = list[Checklist]
DropdownEdit = Callable[[Dropdown], "Dropdown | None"]
SiblingEdit = Callable[[list[Dropdown]], "list[Dropdown] | None"]
TaskEdit = Callable[[list[Task]], "list[Task] | None"]


@dataclass(frozen=True)
class DropdownLocation:
    checklist_id: str
    parent_dropdown_id: str | None
    dropdown: Dropdown


@dataclass(frozen=True)
class TaskLocation:
    checklist_id: str
    dropdown_id: str
    parent_dropdown_id: str | None
    task: Task


def find_checklist(tree: Sequence[Checklist], checklist_id: str) -> Checklist | None:
    for checklist in tree:
        if checklist.id == checklist_id:
            return checklist
    return None


def find_dropdown(dropdowns: Sequence[Dropdown], dropdown_id: str) -> Dropdown | None:
    """Depth-first search for a dropdown at any nesting level."""
    for dropdown in dropdowns:
        if dropdown.id == dropdown_id:
            return dropdown
        nested = find_dropdown(dropdown.dropdowns, dropdown_id)
        if nested is not None:
            return nested
    return None


def locate_dropdown(tree: Sequence[Checklist], dropdown_id: str) -> DropdownLocation | None:
    """Return the checklist and parent dropdown that own a dropdown."""

    def _search(
        checklist_id: str, dropdowns: Sequence[Dropdown], parent_id: str | None
    ) -> DropdownLocation | None:
        for dropdown in dropdowns:
            if dropdown.id == dropdown_id:
                return DropdownLocation(checklist_id, parent_id, dropdown)
            found = _search(checklist_id, dropdown.dropdowns, dropdown.id)
            if found is not None:
                return found
        return None

    for checklist in tree:
        location = _search(checklist.id, checklist.dropdowns, None)
        if location is not None:
            return location
    return None


def find_task(tree: Sequence[Checklist], task_id: str) -> TaskLocation | None:
    """Locate a task anywhere in the tree."""

    def _search(
        checklist_id: str, dropdowns: Sequence[Dropdown], parent_id: str | None
    ) -> TaskLocation | None:
        for dropdown in dropdowns:
            for task in dropdown.tasks:
                if task.id == task_id:
                    return TaskLocation(checklist_id, dropdown.id, parent_id, task)
            found = _search(checklist_id, dropdown.dropdowns, dropdown.id)
            if found is not None:
                return found
        return None

    for checklist in tree:
        location = _search(checklist.id, checklist.dropdowns, None)
        if location is not None:
            return location
    return None


def _replace_dropdown(
    dropdowns: list[Dropdown], dropdown_id: str, update: Callable[[Dropdown], Dropdown]
) -> tuple[list[Dropdown], bool]:
    result: list[Dropdown] = []
    found = False
    for dropdown in dropdowns:
        if found:
            result.append(dropdown)
        elif dropdown.id == dropdown_id:
            result.append(update(dropdown))
            found = True
        else:
            nested, found = _replace_dropdown(dropdown.dropdowns, dropdown_id, update)
            result.append(replace(dropdown, dropdowns=nested) if found else dropdown)
    return result, found


def _edit_node(
    dropdowns: list[Dropdown], dropdown_id: str, edit: DropdownEdit
) -> list[Dropdown] | None:
    applied = False

    def _apply(node: Dropdown) -> Dropdown:
        nonlocal applied
        edited = edit(node)
        if edited is None:
            return node
        applied = True
        return edited

    updated, found = _replace_dropdown(dropdowns, dropdown_id, _apply)
    if not (found and applied):
        return None
    return updated


def _edit_children(
    dropdowns: list[Dropdown], parent_dropdown_id: str | None, edit: SiblingEdit
) -> list[Dropdown] | None:
    # Root sections when there is no parent; otherwise the parent's children,
    # wherever that parent sits in the nesting.
    if parent_dropdown_id is None:
        return edit(dropdowns)

    def _edit_parent(parent: Dropdown) -> Dropdown | None:
        children = edit(parent.dropdowns)
        if children is None:
            return None
        return replace(parent, dropdowns=children)

    return _edit_node(dropdowns, parent_dropdown_id, _edit_parent)


def _edit_tasks(
    dropdowns: list[Dropdown],
    dropdown_id: str,
    parent_dropdown_id: str | None,
    edit: TaskEdit,
) -> list[Dropdown] | None:
    def _edit_owner(owner: Dropdown) -> Dropdown | None:
        tasks = edit(owner.tasks)
        if tasks is None:
            return None
        return replace(owner, tasks=tasks)

    return _edit_children(
        dropdowns,
        parent_dropdown_id,
        lambda scope: _edit_node(scope, dropdown_id, _edit_owner),
    )


def _edit_checklist(tree: Tree, checklist_id: str, edit: SiblingEdit) -> Tree:
    for index, checklist in enumerate(tree):
        if checklist.id != checklist_id:
            continue
        dropdowns = edit(checklist.dropdowns)
        if dropdowns is None:
            return tree
        updated = list(tree)
        updated[index] = replace(checklist, dropdowns=dropdowns)
        return updated
    return tree


def _replace_by_id(items: list, item) -> list | None:
    for index, existing in enumerate(items):
        if existing.id == item.id:
            updated = list(items)
            updated[index] = item
            return updated
    return None


def _remove_by_id(items: list, item_id: str) -> list | None:
    remaining = [item for item in items if item.id != item_id]
    if len(remaining) == len(items):
        return None
    return remaining


def add_checklist(tree: Tree, checklist: Checklist) -> Tree:
    return [*tree, checklist]


def update_checklist(tree: Tree, checklist: Checklist) -> Tree:
    """Rename a checklist; its sections are kept from the current tree."""
    existing = find_checklist(tree, checklist.id)
    if existing is None:
        return tree
    return _replace_by_id(tree, replace(existing, title=checklist.title))


def delete_checklist(tree: Tree, checklist_id: str) -> Tree:
    remaining = _remove_by_id(tree, checklist_id)
    return tree if remaining is None else remaining


def toggle_dropdown_expanded(tree: Tree, checklist_id: str, dropdown_id: str) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_node(
            dropdowns,
            dropdown_id,
            lambda dropdown: replace(dropdown, expanded=not dropdown.expanded),
        ),
    )


def toggle_task_completion(
    tree: Tree, checklist_id: str, dropdown_id: str, task_id: str
) -> Tree:
    def _toggle(tasks: list[Task]) -> list[Task] | None:
        for task in tasks:
            if task.id == task_id:
                return _replace_by_id(tasks, replace(task, completed=not task.completed))
        return None

    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_tasks(dropdowns, dropdown_id, None, _toggle),
    )


def add_dropdown(
    tree: Tree,
    checklist_id: str,
    dropdown: Dropdown,
    parent_dropdown_id: str | None = None,
) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_children(
            dropdowns, parent_dropdown_id, lambda siblings: [*siblings, dropdown]
        ),
    )


def update_dropdown(
    tree: Tree,
    checklist_id: str,
    dropdown: Dropdown,
    parent_dropdown_id: str | None = None,
) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_children(
            dropdowns,
            parent_dropdown_id,
            lambda siblings: _replace_by_id(siblings, dropdown),
        ),
    )


def delete_dropdown(
    tree: Tree,
    checklist_id: str,
    dropdown_id: str,
    parent_dropdown_id: str | None = None,
) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_children(
            dropdowns,
            parent_dropdown_id,
            lambda siblings: _remove_by_id(siblings, dropdown_id),
        ),
    )


def add_task(
    tree: Tree,
    checklist_id: str,
    dropdown_id: str,
    task: Task,
    parent_dropdown_id: str | None = None,
) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_tasks(
            dropdowns, dropdown_id, parent_dropdown_id, lambda tasks: [*tasks, task]
        ),
    )


def update_task(
    tree: Tree,
    checklist_id: str,
    dropdown_id: str,
    task: Task,
    parent_dropdown_id: str | None = None,
) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_tasks(
            dropdowns,
            dropdown_id,
            parent_dropdown_id,
            lambda tasks: _replace_by_id(tasks, task),
        ),
    )


def delete_task(
    tree: Tree,
    checklist_id: str,
    dropdown_id: str,
    task_id: str,
    parent_dropdown_id: str | None = None,
) -> Tree:
    return _edit_checklist(
        tree,
        checklist_id,
        lambda dropdowns: _edit_tasks(
            dropdowns,
            dropdown_id,
            parent_dropdown_id,
            lambda tasks: _remove_by_id(tasks, task_id),
        ),
    )


def apply_positions(tree: Tree, kind: str, positions: Mapping[str, int]) -> Tree:
    """Write new sibling positions and re-sort every affected sibling group."""
    if kind not in {DROPDOWN_KIND, TASK_KIND}:
        raise ValueError(f"Unknown item kind: {kind}")
    if not positions:
        return tree

    def _reposition(items: list) -> list | None:
        if not any(item.id in positions for item in items):
            return None
        updated = [
            replace(item, position=positions[item.id]) if item.id in positions else item
            for item in items
        ]
        return sort_by_position(updated)

    def _walk(dropdowns: list[Dropdown]) -> list[Dropdown] | None:
        changed = False
        current = dropdowns
        if kind == DROPDOWN_KIND:
            reordered = _reposition(dropdowns)
            if reordered is not None:
                current = reordered
                changed = True
        result: list[Dropdown] = []
        for dropdown in current:
            updated = dropdown
            if kind == TASK_KIND:
                tasks = _reposition(dropdown.tasks)
                if tasks is not None:
                    updated = replace(updated, tasks=tasks)
            children = _walk(dropdown.dropdowns)
            if children is not None:
                updated = replace(updated, dropdowns=children)
            if updated is not dropdown:
                changed = True
            result.append(updated)
        return result if changed else None

    updated_tree = list(tree)
    changed = False
    for index, checklist in enumerate(tree):
        dropdowns = _walk(checklist.dropdowns)
        if dropdowns is not None:
            updated_tree[index] = replace(checklist, dropdowns=dropdowns)
            changed = True
    return updated_tree if changed else tree
