"""Activity log helpers."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

ACTIVITY_LOG_FILENAME = "activity.log"


def _activity_log_path(data_root: Path) -> Path:
    return data_root / ACTIVITY_LOG_FILENAME


def _append_activity_log(data_root: Path, entry: dict[str, str | None]) -> None:
    log_path = _activity_log_path(data_root)
    payload = json.dumps(entry, sort_keys=True, separators=(",", ":"))
    with log_path.open("a", encoding="utf-8") as log_file:
        log_file.write(payload + "\n")
        log_file.flush()
        os.fsync(log_file.fileno())


def _build_activity_entry(
    operation: str,
    user_id: str | None,
    target: str,
    commit_sha: str,
) -> dict[str, str | None]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operation": operation,
        "userId": user_id,
        "target": target,
        "commitSha": commit_sha,
    }


def _read_activity_entries(
    data_root: Path, since: datetime | None, limit: int, user_id: str | None = None
) -> list[dict[str, Any]]:
    log_path = _activity_log_path(data_root)
    if not log_path.exists():
        return []
    entries: list[dict[str, Any]] = []
    for line in log_path.read_text(encoding="utf-8").splitlines():
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if user_id is not None and entry.get("userId") != user_id:
            continue
        if since:
            timestamp = entry.get("timestamp")
            try:
                entry_time = datetime.fromisoformat(timestamp)
            except (TypeError, ValueError):
                entry_time = None
            if entry_time and entry_time < since:
                continue
        entries.append(entry)
    return entries[-limit:]
