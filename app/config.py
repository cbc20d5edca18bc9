"""Configuration loading for the checklist service."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_REMOTE_TIMEOUT_SECONDS = 10.0


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class AppConfig:
    data_path: Path
    require_user_header: bool
    service_token: str | None
    admin_user_ids: frozenset[str] = field(default_factory=frozenset)
    remote_timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT_SECONDS


def _read_dotenv_value(dotenv_path: Path, key: str) -> str | None:
    """Read a single key from a .env file without mutating the environment."""
    if not dotenv_path.is_file():
        return None
    try:
        content = dotenv_path.read_text(encoding="utf-8")
    except OSError:
        return None

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export ") :].strip()
        if "=" not in stripped:
            continue
        name, value = stripped.split("=", 1)
        name = name.strip()
        if name != key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        return value or None
    return None


def _read_setting(dotenv_path: Path, key: str) -> str | None:
    raw_value = os.environ.get(key)
    if raw_value is None:
        raw_value = _read_dotenv_value(dotenv_path, key)
    return raw_value


def _read_bool(raw_value: str | None, *, default: bool, key: str) -> bool:
    if raw_value is None:
        return default
    normalized = raw_value.strip().lower()
    if not normalized:
        return default
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"{key} must be a boolean value.")


def _read_positive_float(raw_value: str | None, *, default: float, key: str) -> float:
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = float(raw_value.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number of seconds.") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be greater than zero.")
    return value


def _read_user_list(raw_value: str | None) -> frozenset[str]:
    if not raw_value:
        return frozenset()
    user_ids = set()
    for item in re.split(r"[,\s]+", raw_value):
        normalized = item.strip().replace("-", "")
        if normalized:
            user_ids.add(normalized)
    return frozenset(user_ids)


def load_config() -> AppConfig:
    """Load required configuration from the environment."""
    dotenv_path = Path.cwd() / ".env"

    env_key = "CHECKLIST_DATA_PATH"
    raw_path = (_read_setting(dotenv_path, env_key) or "").strip()
    if not raw_path:
        raise ConfigError(
            "CHECKLIST_DATA_PATH is required; set it to the data directory."
        )

    require_user_key = "CHECKLIST_REQUIRE_USER_HEADER"
    require_user_header = _read_bool(
        _read_setting(dotenv_path, require_user_key),
        default=True,
        key=require_user_key,
    )

    service_token = _read_setting(dotenv_path, "CHECKLIST_SERVICE_TOKEN")
    service_token = service_token.strip() if isinstance(service_token, str) else None
    if not service_token:
        service_token = None

    timeout_key = "CHECKLIST_REMOTE_TIMEOUT_SECONDS"
    remote_timeout_seconds = _read_positive_float(
        _read_setting(dotenv_path, timeout_key),
        default=DEFAULT_REMOTE_TIMEOUT_SECONDS,
        key=timeout_key,
    )

    return AppConfig(
        data_path=Path(raw_path).resolve(),
        require_user_header=require_user_header,
        service_token=service_token,
        admin_user_ids=_read_user_list(
            _read_setting(dotenv_path, "CHECKLIST_ADMIN_USERS")
        ),
        remote_timeout_seconds=remote_timeout_seconds,
    )
