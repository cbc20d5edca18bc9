from app.checklist_model import Checklist, Dropdown, Task
from app.checklist_reorder import (
    DragSession,
    DraggableItem,
    PositionUpdate,
    reorder_siblings,
    sibling_items,
)


def _tasks(*ids):
    return [Task(task_id, task_id.upper(), position=index) for index, task_id in enumerate(ids)]


def _tree():
    return [
        Checklist(
            id="c1",
            title="Checklist",
            dropdowns=[
                Dropdown("d1", "One", position=0, tasks=_tasks("a", "b", "c", "d")),
                Dropdown(
                    "d2",
                    "Two",
                    position=1,
                    tasks=_tasks("e"),
                    dropdowns=[
                        Dropdown("d3", "Three", position=0),
                        Dropdown("d4", "Four", position=1),
                    ],
                ),
            ],
        )
    ]


def test_reorder_moves_dragged_after_target():
    reordered = reorder_siblings(_tasks("a", "b", "c", "d"), "a", "c")

    assert [(task.id, task.position) for task in reordered] == [
        ("b", 0),
        ("c", 1),
        ("a", 2),
        ("d", 3),
    ]


def test_reorder_moving_upwards():
    reordered = reorder_siblings(_tasks("a", "b", "c", "d"), "d", "a")

    assert [task.id for task in reordered] == ["a", "d", "b", "c"]


def test_reorder_on_itself_keeps_order():
    reordered = reorder_siblings(_tasks("a", "b"), "b", "b")

    assert [task.id for task in reordered] == ["a", "b"]


def test_reorder_with_unknown_ids_returns_none():
    assert reorder_siblings(_tasks("a", "b"), "a", "z") is None
    assert reorder_siblings(_tasks("a", "b"), "z", "a") is None


def test_draggable_items_know_their_sibling_group():
    tree = _tree()

    nested = DraggableItem.for_dropdown(tree, "d3")
    task = DraggableItem.for_task(tree, "b")

    assert nested == DraggableItem("dropdown", "d3", "c1", "d2")
    assert task == DraggableItem("task", "b", "c1", "d1")
    assert [item.id for item in sibling_items(tree, nested)] == ["d3", "d4"]
    assert [item.id for item in sibling_items(tree, task)] == ["a", "b", "c", "d"]
    assert DraggableItem.for_task(tree, "missing") is None


def test_drag_session_builds_plan_for_same_parent():
    tree = _tree()
    session = DragSession()

    session.start(DraggableItem.for_task(tree, "a"))
    assert session.state == DragSession.DRAGGING
    plan = session.drop(DraggableItem.for_task(tree, "c"), tree)

    assert session.state == DragSession.IDLE
    assert plan.kind == "task"
    assert plan.parent_id == "d1"
    assert plan.position_updates() == [
        PositionUpdate("b", 0),
        PositionUpdate("c", 1),
        PositionUpdate("a", 2),
        PositionUpdate("d", 3),
    ]
    assert plan.positions() == {"b": 0, "c": 1, "a": 2, "d": 3}


def test_drag_session_ignores_cross_parent_and_cross_kind_drops():
    tree = _tree()
    session = DragSession()

    session.start(DraggableItem.for_task(tree, "a"))
    assert session.drop(DraggableItem.for_task(tree, "e"), tree) is None
    assert session.state == DragSession.IDLE

    session.start(DraggableItem.for_dropdown(tree, "d1"))
    assert session.drop(DraggableItem.for_dropdown(tree, "d3"), tree) is None

    session.start(DraggableItem.for_dropdown(tree, "d1"))
    assert session.drop(DraggableItem.for_task(tree, "a"), tree) is None


def test_drag_session_drop_on_itself_or_without_drag():
    tree = _tree()
    session = DragSession()
    item = DraggableItem.for_task(tree, "a")

    assert session.drop(item, tree) is None

    session.start(item)
    assert session.drop(item, tree) is None
    assert session.dragged is None


def test_drag_session_cancel():
    session = DragSession()
    session.start(DraggableItem("task", "a", "c1", "d1"))

    session.cancel()

    assert session.state == DragSession.IDLE


def test_position_update_serializes():
    assert PositionUpdate("a", 3).to_dict() == {"id": "a", "position": 3}
