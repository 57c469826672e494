from __future__ import annotations

import json
from pathlib import Path


def load_json(path: Path) -> dict:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} does not contain a JSON object")
    return data


def list_json_files(directory: Path) -> list[Path]:
    """Analysis files in name order; a missing directory has none."""
    if not directory.exists():
        return []
    return sorted(directory.glob("*.json"))
