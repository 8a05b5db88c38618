from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def read_text(path: Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def write_text(path: Path, content: str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def read_input(value: str) -> str:
    """Return the contents of `value` when it names a file, else `value` itself."""
    candidate = Path(value)
    try:
        is_file = candidate.is_file()
    except (OSError, ValueError):
        is_file = False
    if is_file:
        return read_text(candidate)
    return value
