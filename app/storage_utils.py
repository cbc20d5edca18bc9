"""Shared filesystem helpers for the table store."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def _atomic_write(target_path: Path, content: str) -> None:
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=target_path.parent, delete=False
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.replace(temp_path, target_path)
    finally:
        if temp_path is not None and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass


def _dump_rows(rows: list[dict[str, Any]]) -> str:
    return json.dumps(rows, indent=2, sort_keys=True) + "\n"


def _load_rows(table_path: Path) -> list[dict[str, Any]]:
    if not table_path.exists():
        return []
    content = table_path.read_text(encoding="utf-8")
    if not content.strip():
        return []
    rows = json.loads(content)
    if not isinstance(rows, list):
        raise ValueError(f"{table_path.name} must hold a JSON array of rows.")
    return rows
