import pytest

from app.config import DEFAULT_REMOTE_TIMEOUT_SECONDS, ConfigError, load_config


@pytest.fixture(autouse=True)
def _clear_checklist_env(monkeypatch):
    for key in (
        "CHECKLIST_DATA_PATH",
        "CHECKLIST_REQUIRE_USER_HEADER",
        "CHECKLIST_SERVICE_TOKEN",
        "CHECKLIST_ADMIN_USERS",
        "CHECKLIST_REMOTE_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)


def test_load_config_requires_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigError) as excinfo:
        load_config()

    assert "CHECKLIST_DATA_PATH" in str(excinfo.value)


def test_load_config_reads_env(monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))

    config = load_config()

    assert config.data_path == tmp_path.resolve()
    assert config.require_user_header is True
    assert config.service_token is None
    assert config.admin_user_ids == frozenset()
    assert config.remote_timeout_seconds == DEFAULT_REMOTE_TIMEOUT_SECONDS


def test_load_config_reads_dotenv(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    data_root = tmp_path / "data"
    data_root.mkdir()
    (tmp_path / ".env").write_text(
        f'CHECKLIST_DATA_PATH="{data_root}"\n', encoding="utf-8"
    )

    config = load_config()

    assert config.data_path == data_root.resolve()


def test_load_config_reads_dotenv_relative_path(monkeypatch, tmp_path):
    service_root = tmp_path / "service"
    service_root.mkdir()
    (service_root / ".env").write_text(
        "# checklist service\nexport CHECKLIST_DATA_PATH='./data'\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(service_root)

    config = load_config()

    assert config.data_path == (service_root / "data").resolve()


def test_load_config_prefers_env_over_dotenv(monkeypatch, tmp_path):
    env_root = tmp_path / "env"
    env_root.mkdir()
    dotenv_root = tmp_path / "dotenv"
    dotenv_root.mkdir()
    (tmp_path / ".env").write_text(
        f"CHECKLIST_DATA_PATH={dotenv_root}\n", encoding="utf-8"
    )
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(env_root))
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config.data_path == env_root.resolve()


def test_load_config_reads_auth_flags(monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("CHECKLIST_REQUIRE_USER_HEADER", "false")
    monkeypatch.setenv("CHECKLIST_SERVICE_TOKEN", "test-token")

    config = load_config()

    assert config.require_user_header is False
    assert config.service_token == "test-token"


def test_load_config_rejects_invalid_bool(monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("CHECKLIST_REQUIRE_USER_HEADER", "not-a-bool")

    with pytest.raises(ConfigError) as excinfo:
        load_config()

    assert "CHECKLIST_REQUIRE_USER_HEADER" in str(excinfo.value)


def test_load_config_normalizes_admin_users(monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("CHECKLIST_ADMIN_USERS", "admin-user-1, second_admin\nthird")

    config = load_config()

    assert config.admin_user_ids == frozenset({"adminuser1", "second_admin", "third"})


def test_load_config_reads_remote_timeout(monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("CHECKLIST_REMOTE_TIMEOUT_SECONDS", "2.5")

    assert load_config().remote_timeout_seconds == 2.5


@pytest.mark.parametrize("value", ["soon", "0", "-1"])
def test_load_config_rejects_invalid_timeout(monkeypatch, tmp_path, value):
    monkeypatch.setenv("CHECKLIST_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("CHECKLIST_REMOTE_TIMEOUT_SECONDS", value)

    with pytest.raises(ConfigError) as excinfo:
        load_config()

    assert "CHECKLIST_REMOTE_TIMEOUT_SECONDS" in str(excinfo.value)
