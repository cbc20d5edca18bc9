import time

from app.checklist_model import Checklist, Dropdown, Task, TaskContent, User
from app.checklist_reorder import DraggableItem
from app.checklist_repository import ChecklistRepository
from app.checklist_store import ChecklistStore
from app.checklist_tree import find_dropdown, find_task
from app.errors import ChecklistError
from app.sync_adapter import RepositorySyncAdapter

ADMIN = User("admin123", "admin@example.com", "admin")
MEMBER = User("member123", None, "user")


class FlakyAdapter:
    """Wraps a real adapter and overrides chosen calls."""

    def __init__(self, inner):
        self.inner = inner
        self.overrides = {}
        self.calls = []

    def __getattr__(self, name):
        target = getattr(self.inner, name)

        def _call(*args):
            self.calls.append(name)
            if name not in self.overrides:
                return target(*args)
            outcome = self.overrides[name]
            if isinstance(outcome, Exception):
                raise outcome
            if callable(outcome):
                return outcome(*args)
            return outcome

        return _call


def _seed(repository):
    checklist_id = repository.create_checklist("Bereavement", ADMIN.id, is_global=True)
    steps = repository.create_dropdown(checklist_id, "Immediate Steps", False, None, ADMIN.id)
    docs = repository.create_dropdown(checklist_id, "Documentation", False, None, ADMIN.id)
    legal = repository.create_dropdown(checklist_id, "Legal Documents", False, docs, ADMIN.id)
    notify = repository.create_task(steps, "Notify family", False, TaskContent(), ADMIN.id)
    funeral = repository.create_task(
        steps,
        "Contact funeral home",
        False,
        TaskContent("Selecting", f"Then [[task:{notify}|tell family]]."),
        ADMIN.id,
    )
    will = repository.create_task(legal, "Find the will", False, TaskContent(), ADMIN.id)
    return {
        "checklist": checklist_id,
        "steps": steps,
        "docs": docs,
        "legal": legal,
        "notify": notify,
        "funeral": funeral,
        "will": will,
    }


def _store(tmp_path, user=ADMIN, timeout_seconds=None):
    repository = ChecklistRepository(tmp_path)
    ids = _seed(repository)
    adapter = FlakyAdapter(RepositorySyncAdapter(repository, user))
    store = ChecklistStore(adapter, timeout_seconds=timeout_seconds)
    assert store.refresh() is True
    return store, adapter, repository, ids


def test_refresh_loads_tree(tmp_path):
    store, _adapter, _repository, ids = _store(tmp_path)

    assert [checklist.id for checklist in store.checklists] == [ids["checklist"]]
    assert store.last_error is None


def test_refresh_failure_keeps_error(tmp_path):
    store, adapter, _repository, _ids = _store(tmp_path)
    adapter.overrides["fetch_tree"] = None

    assert store.refresh() is False
    assert store.last_error.code == "REMOTE_FAILURE"
    assert store.checklists


def test_toggle_task_completion_confirms_then_patches(tmp_path):
    store, _adapter, repository, ids = _store(tmp_path, user=MEMBER)

    applied = store.toggle_task_completion(ids["checklist"], ids["legal"], ids["will"])

    assert applied is True
    assert find_task(store.checklists, ids["will"]).task.completed is True
    assert find_task(repository.load_tree(MEMBER.id), ids["will"]).task.completed is True


def test_unknown_ids_skip_adapter(tmp_path):
    store, adapter, _repository, ids = _store(tmp_path)
    adapter.calls.clear()

    assert store.toggle_task_completion(ids["checklist"], ids["steps"], "missing") is False
    assert store.toggle_dropdown("missing", ids["steps"]) is False
    assert store.add_task(ids["checklist"], "missing", "Title") is None
    assert store.delete_dropdown(ids["checklist"], ids["legal"]) is False
    assert adapter.calls == []
    assert store.last_error is None


def test_rejected_write_records_error_and_resyncs(tmp_path):
    store, adapter, repository, ids = _store(tmp_path)
    before = store.checklists
    adapter.overrides["toggle_completion"] = False
    adapter.calls.clear()

    applied = store.toggle_task_completion(ids["checklist"], ids["steps"], ids["notify"])

    assert applied is False
    assert store.last_error.code == "REMOTE_FAILURE"
    assert adapter.calls == ["toggle_completion", "fetch_tree"]
    assert store.checklists == before
    assert find_task(repository.load_tree(ADMIN.id), ids["notify"]).task.completed is False


def test_permission_denied_for_member_authoring(tmp_path):
    store, _adapter, repository, ids = _store(tmp_path, user=MEMBER)

    created = store.add_dropdown(ids["checklist"], "Finances")

    assert created is None
    assert store.last_error.code == "PERMISSION_DENIED"
    assert len(store.checklists[0].dropdowns) == 2
    assert len(repository.load_tree(ADMIN.id)[0].dropdowns) == 2


def test_adapter_error_is_kept(tmp_path):
    store, adapter, _repository, ids = _store(tmp_path)
    adapter.overrides["delete_task"] = ChecklistError("GIT_ERROR", "Git commit failed")

    assert store.delete_task(ids["checklist"], ids["steps"], ids["notify"]) is False
    assert store.last_error.code == "GIT_ERROR"
    assert find_task(store.checklists, ids["notify"]) is not None


def test_slow_adapter_times_out(tmp_path):
    store, adapter, _repository, ids = _store(tmp_path, timeout_seconds=0.2)

    def _slow(*_args):
        time.sleep(1.0)
        return True

    adapter.overrides["toggle_expanded"] = _slow
    try:
        applied = store.toggle_dropdown(ids["checklist"], ids["steps"])
    finally:
        store.close()

    assert applied is False
    assert store.last_error.code == "REMOTE_TIMEOUT"
    assert store.last_error.details["operation"] == "toggle_dropdown"
    assert store.checklists[0].dropdowns[0].expanded is False


def test_late_write_after_timeout_resyncs_tree(tmp_path):
    store, adapter, repository, ids = _store(tmp_path, timeout_seconds=0.2)
    real_toggle = adapter.inner.toggle_expanded

    def _late(*args):
        time.sleep(0.6)
        return real_toggle(*args)

    adapter.overrides["toggle_expanded"] = _late
    try:
        applied = store.toggle_dropdown(ids["checklist"], ids["steps"])
        assert applied is False
        assert store.last_error.code == "REMOTE_TIMEOUT"
        # The resync after the timeout ran on a fresh worker.
        assert adapter.calls.count("fetch_tree") >= 2
        time.sleep(1.0)
    finally:
        store.close()

    stored = repository.load_tree(ADMIN.id)
    assert find_dropdown(stored[0].dropdowns, ids["steps"]).expanded is True
    local = find_dropdown(store.checklists[0].dropdowns, ids["steps"])
    assert local.expanded is True


def test_add_and_update_dropdown_use_returned_nodes(tmp_path):
    store, _adapter, repository, ids = _store(tmp_path)

    created = store.add_dropdown(ids["checklist"], "Wills", True, ids["legal"])
    assert created.id
    legal = find_dropdown(store.checklists[0].dropdowns, ids["legal"])
    assert [child.id for child in legal.dropdowns] == [created.id]

    updated = store.update_dropdown(
        ids["checklist"], created.id, title="Wills and trusts", parent_dropdown_id=ids["legal"]
    )
    assert updated.title == "Wills and trusts"
    assert updated.expanded is True
    assert store.checklists == repository.load_tree(ADMIN.id)


def test_add_update_and_delete_task(tmp_path):
    store, _adapter, repository, ids = _store(tmp_path)

    created = store.add_task(
        ids["checklist"],
        ids["legal"],
        "Check safe deposit box",
        content=TaskContent("Banks", "Ask the bank."),
        parent_dropdown_id=ids["docs"],
    )
    assert created.position == 1

    edited = store.update_task(
        ids["checklist"],
        ids["legal"],
        Task(created.id, "Check bank box", False, TaskContent("Banks", "Call first.")),
        ids["docs"],
    )
    assert edited.content.body == "Call first."
    assert find_task(store.checklists, created.id).task.title == "Check bank box"

    store.open_task(created.id)
    assert store.delete_task(ids["checklist"], ids["legal"], created.id, ids["docs"]) is True
    assert store.selected_task is None
    assert store.navigator.is_open is False
    assert store.checklists == repository.load_tree(ADMIN.id)


def test_checklist_lifecycle(tmp_path):
    store, _adapter, _repository, ids = _store(tmp_path)

    created = store.add_checklist("Estate")
    assert [checklist.id for checklist in store.checklists][-1] == created.id
    assert store.update_checklist(created.id, "Estate matters") is True
    assert store.checklists[-1].title == "Estate matters"
    assert store.delete_checklist(created.id) is True
    assert [checklist.id for checklist in store.checklists] == [ids["checklist"]]


def test_create_checklist_with_sections(tmp_path):
    store, _adapter, _repository, _ids = _store(tmp_path)
    draft = Checklist(
        id="",
        title="Estate",
        dropdowns=[
            Dropdown(
                id="",
                title="Accounts",
                tasks=[Task("", "Close bank accounts"), Task("", "Cancel cards")],
                dropdowns=[Dropdown(id="", title="Pensions", tasks=[Task("", "Call provider")])],
            )
        ],
    )

    created = store.create_checklist_with_sections(draft)

    assert created.title == "Estate"
    accounts = created.dropdowns[0]
    assert [task.title for task in accounts.tasks] == ["Close bank accounts", "Cancel cards"]
    assert accounts.dropdowns[0].tasks[0].title == "Call provider"
    assert store.last_error is None


def test_create_checklist_with_sections_compensates_partial_failure(tmp_path):
    store, adapter, repository, ids = _store(tmp_path)
    adapter.overrides["create_task"] = None
    draft = Checklist(
        id="",
        title="Estate",
        dropdowns=[Dropdown(id="", title="Accounts", tasks=[Task("", "Close accounts")])],
    )

    assert store.create_checklist_with_sections(draft) is None

    error = store.last_error
    assert error.code == "PARTIAL_CREATE"
    assert error.details["removed"] is True
    assert error.details["cause"]["code"] == "REMOTE_FAILURE"
    assert [checklist.id for checklist in store.checklists] == [ids["checklist"]]
    assert [checklist.id for checklist in repository.load_tree(ADMIN.id)] == [ids["checklist"]]


def test_drop_reorders_and_persists(tmp_path):
    store, _adapter, repository, ids = _store(tmp_path)

    store.start_drag(DraggableItem.for_task(store.checklists, ids["notify"]))
    applied = store.drop(DraggableItem.for_task(store.checklists, ids["funeral"]))

    assert applied is True
    local = [task.id for task in store.checklists[0].dropdowns[0].tasks]
    stored = [task.id for task in repository.load_tree(ADMIN.id)[0].dropdowns[0].tasks]
    assert local == stored == [ids["funeral"], ids["notify"]]
    assert store.drag_session.state == "idle"


def test_drop_across_parents_is_ignored(tmp_path):
    store, adapter, _repository, ids = _store(tmp_path)
    adapter.calls.clear()

    store.start_drag(DraggableItem.for_task(store.checklists, ids["notify"]))
    applied = store.drop(DraggableItem.for_task(store.checklists, ids["will"]))

    assert applied is False
    assert adapter.calls == []
    assert store.last_error is None


def test_member_reorder_is_rejected(tmp_path):
    store, _adapter, _repository, ids = _store(tmp_path, user=MEMBER)

    store.start_drag(DraggableItem.for_dropdown(store.checklists, ids["steps"]))
    applied = store.drop(DraggableItem.for_dropdown(store.checklists, ids["docs"]))

    assert applied is False
    assert store.last_error.code == "PERMISSION_DENIED"
    assert [dropdown.id for dropdown in store.checklists[0].dropdowns] == [
        ids["steps"],
        ids["docs"],
    ]


def test_task_link_navigation(tmp_path):
    store, _adapter, _repository, ids = _store(tmp_path)

    assert store.open_task(ids["funeral"]).title == "Contact funeral home"
    assert store.follow_task_link(ids["notify"]).title == "Notify family"
    assert store.referrer_task.id == ids["funeral"]
    assert store.back_to_referrer().id == ids["funeral"]
    assert store.referrer_task is None
    assert store.follow_task_link("missing") is None
    store.close_task()
    assert store.selected_task is None
