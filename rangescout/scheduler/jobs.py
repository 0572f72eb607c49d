"""Background catalog refresh and optimal IP ranking jobs."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from threading import Lock
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.background import BackgroundScheduler

if TYPE_CHECKING:
    from rangescout.scanner.optimizer import OptimalIPBoard
    from rangescout.sources.ranges import RangeCatalog

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "catalog-refresh"

_JOB_EVENTS: list[dict[str, Any]] = []
_JOB_EVENTS_LOCK = Lock()
_MAX_EVENTS = 500


def build_scheduler() -> BackgroundScheduler:
    """Create and return a background scheduler instance."""
    return BackgroundScheduler()


def log_schedule_event(
    *,
    action: str,
    job_id: str,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Record a scheduler event; only the most recent events are kept."""
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "job_id": job_id,
        "metadata": dict(metadata or {}),
    }
    with _JOB_EVENTS_LOCK:
        _JOB_EVENTS.append(event)
        del _JOB_EVENTS[:-_MAX_EVENTS]
    return event


def get_schedule_events(*, job_id: str | None = None) -> list[dict[str, Any]]:
    """Return a snapshot of recorded scheduler events."""
    with _JOB_EVENTS_LOCK:
        items = list(_JOB_EVENTS)
    if job_id:
        return [event for event in items if str(event.get("job_id")) == job_id]
    return items


def refresh_catalog(catalog: "RangeCatalog", board: "OptimalIPBoard | None" = None) -> bool:
    """Refresh ``catalog`` and then re-rank ``board``; never raises."""
    if not catalog.refresh():
        log_schedule_event(action="refresh_failed", job_id=REFRESH_JOB_ID)
        return False

    status = catalog.status()
    log_schedule_event(
        action="refreshed",
        job_id=REFRESH_JOB_ID,
        metadata={"providers_count": status["providers_count"]},
    )
    if board is None:
        return True

    try:
        entries = board.optimize()
    except Exception as exc:  # noqa: BLE001
        logger.error("Optimal IP ranking failed: %s", exc)
        log_schedule_event(action="optimize_failed", job_id=REFRESH_JOB_ID, metadata={"error": str(exc)})
        return True

    log_schedule_event(action="optimized", job_id=REFRESH_JOB_ID, metadata={"optimal_ips": len(entries)})
    return True


def schedule_catalog_refresh(
    scheduler: BackgroundScheduler,
    catalog: "RangeCatalog",
    board: "OptimalIPBoard | None" = None,
    *,
    interval_seconds: float | None = None,
    run_now: bool = True,
) -> None:
    """Register the recurring refresh job, optionally firing it immediately."""
    interval = float(interval_seconds or catalog.refresh_seconds)
    job_kwargs: dict[str, Any] = {}
    if run_now:
        job_kwargs["next_run_time"] = datetime.now(timezone.utc)

    scheduler.add_job(
        refresh_catalog,
        "interval",
        seconds=interval,
        args=(catalog, board),
        id=REFRESH_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        **job_kwargs,
    )
    log_schedule_event(action="scheduled", job_id=REFRESH_JOB_ID, metadata={"interval_seconds": interval})
    logger.info("Catalog refresh scheduled every %.0f second(s)", interval)
