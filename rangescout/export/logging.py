"""Persistent JSON-lines logging of probe results."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import json
from pathlib import Path
import threading
from typing import Any, Iterator

from rangescout.scanner.prober import ProbeResult

_APPEND_LOCK = threading.Lock()


@contextmanager
def _advisory_file_lock(path: Path) -> Iterator[None]:
    """Apply a best-effort cross-platform advisory lock for a file path."""
    lock_path = path.with_suffix(path.suffix + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        import fcntl  # type: ignore
    except ModuleNotFoundError:
        fcntl = None

    with lock_path.open("a+", encoding="utf-8") as lock_file:
        if fcntl is not None:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            return

        try:
            import msvcrt  # type: ignore
        except ModuleNotFoundError:
            # Fallback: process-level lock only.
            yield
            return

        msvcrt.locking(lock_file.fileno(), msvcrt.LK_LOCK, 1)
        try:
            yield
        finally:
            msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)


def _with_timestamp(record: dict[str, Any]) -> dict[str, Any]:
    payload = dict(record)
    payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return payload


def append_scan_result(
    result: ProbeResult | dict[str, Any],
    path: str | Path = "rangescout_scan_log.jsonl",
    *,
    scan_id: str | None = None,
) -> Path:
    """Append one probe result as a timestamped JSON line."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    record = result.to_dict() if isinstance(result, ProbeResult) else dict(result)
    if scan_id:
        record.setdefault("scan_id", scan_id)
    payload = _with_timestamp(record)

    with _APPEND_LOCK, _advisory_file_lock(target):
        with target.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    return target
