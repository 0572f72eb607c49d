"""JSON document writer for scan snapshots."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def export_json_document(path: str | Path, payload: dict[str, Any]) -> Path:
    """Write a formatted JSON document and return the destination path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return target
