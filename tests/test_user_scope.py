from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.checklist_repository import ChecklistRepository
from app.errors import ChecklistError
from app.main import create_app
from app.user_scope import (
    SERVICE_TOKEN_HEADER,
    USER_EMAIL_HEADER,
    USER_ID_HEADER,
    get_request_repository,
    get_request_user,
    normalize_user_id,
    require_admin,
)


def _build_request(data_root, user_id="test-user-123", admins=(), headers=None):
    config = SimpleNamespace(data_path=data_root, admin_user_ids=frozenset(admins))
    return SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(config=config)),
        state=SimpleNamespace(user_id=user_id),
        headers=headers or {},
    )


def _configure(monkeypatch, tmp_path, *, token=None, admins=None):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("CHECKLIST_REQUIRE_USER_HEADER", "true")
    if token is None:
        monkeypatch.delenv("CHECKLIST_SERVICE_TOKEN", raising=False)
    else:
        monkeypatch.setenv("CHECKLIST_SERVICE_TOKEN", token)
    if admins is None:
        monkeypatch.delenv("CHECKLIST_ADMIN_USERS", raising=False)
    else:
        monkeypatch.setenv("CHECKLIST_ADMIN_USERS", admins)


def test_normalize_user_id_removes_dashes():
    assert normalize_user_id("abc-def-123") == "abcdef123"


def test_normalize_user_id_rejects_empty():
    with pytest.raises(ChecklistError) as excinfo:
        normalize_user_id("   ")
    assert excinfo.value.error.code == "AUTH_REQUIRED"


def test_normalize_user_id_rejects_invalid_characters():
    with pytest.raises(ChecklistError) as excinfo:
        normalize_user_id("../etc")
    assert excinfo.value.error.code == "INVALID_USER_ID"


def test_get_request_repository_is_cached(tmp_path):
    request = _build_request(tmp_path)

    repository = get_request_repository(request)

    assert isinstance(repository, ChecklistRepository)
    assert repository.data_root == tmp_path
    assert get_request_repository(request) is repository


def test_get_request_user_assigns_role_from_admin_list(tmp_path):
    admin = get_request_user(
        _build_request(
            tmp_path,
            user_id="admin-123",
            admins={"admin123"},
            headers={USER_EMAIL_HEADER: "admin@example.com"},
        )
    )
    member = get_request_user(_build_request(tmp_path, admins={"admin123"}))

    assert admin.is_admin is True
    assert admin.email == "admin@example.com"
    assert member.is_admin is False
    assert member.id == "testuser123"


def test_require_admin_rejects_regular_user(tmp_path):
    with pytest.raises(ChecklistError) as excinfo:
        require_admin(_build_request(tmp_path), "create_learning_page")

    assert excinfo.value.error.code == "PERMISSION_DENIED"
    assert excinfo.value.error.details["operation"] == "create_learning_page"


def test_middleware_allows_health_without_identity(monkeypatch, tmp_path):
    _configure(monkeypatch, tmp_path)

    app = create_app()
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200


def test_middleware_requires_user_header(monkeypatch, tmp_path):
    _configure(monkeypatch, tmp_path)

    app = create_app()
    with TestClient(app) as client:
        response = client.post("/api/fetch_tree", json={})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_REQUIRED"


def test_middleware_requires_service_token_when_configured(monkeypatch, tmp_path):
    _configure(monkeypatch, tmp_path, token="expected-token")

    app = create_app()
    with TestClient(app) as client:
        response = client.post(
            "/api/fetch_tree",
            headers={USER_ID_HEADER: "test-user-123"},
            json={},
        )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


def test_middleware_allows_identity_and_service_token(monkeypatch, tmp_path):
    _configure(monkeypatch, tmp_path, token="expected-token")

    app = create_app()
    with TestClient(app) as client:
        response = client.get(
            "/api/me",
            headers={
                USER_ID_HEADER: "test-user-123",
                SERVICE_TOKEN_HEADER: "expected-token",
            },
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["data"]["user"] == {
        "id": "testuser123",
        "email": None,
        "role": "user",
    }


def test_owned_checklists_are_isolated_between_users(tmp_path):
    repository = ChecklistRepository(tmp_path)
    repository.create_checklist("Mine", owner_id="usera123", is_global=False)
    repository.create_checklist("Shared", owner_id="admin123", is_global=True)

    titles_a = [checklist.title for checklist in repository.load_tree("usera123")]
    titles_b = [checklist.title for checklist in repository.load_tree("userb123")]

    assert titles_a == ["Mine", "Shared"]
    assert titles_b == ["Shared"]
