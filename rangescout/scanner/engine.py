"""Batched scan orchestration with cooperative cancellation."""

from __future__ import annotations

import bisect
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import islice
import logging
import queue
import threading
from typing import Any, Callable, Iterable, Iterator

from .prober import OFFLINE, ProbeResult
from .sampler import plan_sample, iter_plan
from .settings import DEFAULT_BATCH_SIZE, ScanSettings

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
STOPPED = "stopped"
COMPLETED = "completed"

ProbeFn = Callable[[str], ProbeResult]


class ScanSession:
    """Latency-ordered results accumulated for one orchestrated run.

    Online results are kept sorted by ascending latency after every insert.
    Offline results follow the online prefix in arrival order when
    ``include_offline`` is set, otherwise only their count is kept.
    """

    def __init__(self, *, include_offline: bool = True, total: int | None = None) -> None:
        self.include_offline = include_offline
        self.total = total
        self.state = IDLE
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._lock = threading.Lock()
        self._online: list[ProbeResult] = []
        self._online_keys: list[int] = []
        self._offline: list[ProbeResult] = []
        self._offline_count = 0

    def add(self, result: ProbeResult) -> None:
        with self._lock:
            if result.is_online:
                key = int(result.latency_ms or 0)
                position = bisect.bisect_right(self._online_keys, key)
                self._online_keys.insert(position, key)
                self._online.insert(position, result)
                return
            self._offline_count += 1
            if self.include_offline:
                self._offline.append(result)

    @property
    def online(self) -> list[ProbeResult]:
        with self._lock:
            return list(self._online)

    @property
    def offline_count(self) -> int:
        with self._lock:
            return self._offline_count

    @property
    def probed(self) -> int:
        with self._lock:
            return len(self._online) + self._offline_count

    @property
    def finished(self) -> bool:
        return self.state in (STOPPED, COMPLETED)

    def results(self) -> list[ProbeResult]:
        with self._lock:
            return list(self._online) + list(self._offline)

    def mark_running(self) -> None:
        self.state = RUNNING
        self.started_at = datetime.now(timezone.utc)

    def mark_finished(self, *, stopped: bool) -> None:
        self.state = STOPPED if stopped else COMPLETED
        self.finished_at = datetime.now(timezone.utc)

    def snapshot(self, *, limit: int | None = None) -> dict[str, Any]:
        with self._lock:
            online = list(self._online)
            offline = list(self._offline)
            offline_count = self._offline_count
        results = online + offline
        if limit is not None:
            results = results[: max(0, limit)]
        return {
            "state": self.state,
            "total": self.total,
            "probed": len(online) + offline_count,
            "online_count": len(online),
            "offline_count": offline_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [result.to_dict() for result in results],
        }


def _batched(addresses: Iterable[str], size: int) -> Iterator[list[str]]:
    iterator = iter(addresses)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


def _guarded_probe(probe: ProbeFn, address: str, cancel_event: threading.Event) -> ProbeResult | None:
    if cancel_event.is_set():
        return None
    try:
        return probe(address)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Probe for %s failed unexpectedly: %s", address, exc)
        return ProbeResult(address=address, status=OFFLINE)


def run_scan(
    addresses: Iterable[str],
    probe: ProbeFn,
    *,
    session: ScanSession | None = None,
    cancel_event: threading.Event | None = None,
    on_result: Callable[[ProbeResult], None] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> ScanSession:
    """Probe ``addresses`` in sequential batches of concurrent probes.

    ``cancel_event`` is checked before each batch and before each queued
    probe starts; probes already connecting finish through their own timeout.
    Every address is probed at most once.
    """
    session = session or ScanSession()
    cancel_event = cancel_event or threading.Event()
    batch_size = max(1, int(batch_size))
    interrupted = False

    session.mark_running()
    logger.info("Scan started (total=%s, batch_size=%d)", session.total, batch_size)
    with ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="scan-probe") as pool:
        for batch in _batched(addresses, batch_size):
            if cancel_event.is_set():
                interrupted = True
                break

            futures = [pool.submit(_guarded_probe, probe, address, cancel_event) for address in batch]
            for future in as_completed(futures):
                result = future.result()
                if result is None:
                    interrupted = True
                    continue
                session.add(result)
                if on_result:
                    on_result(result)

    session.mark_finished(stopped=interrupted)
    logger.info(
        "Scan %s: probed=%d online=%d",
        session.state,
        session.probed,
        len(session.online),
    )
    return session


@dataclass(slots=True)
class ScanJob:
    """Async scan handle returned by :func:`start_scan`."""

    session: ScanSession
    _worker: threading.Thread
    _callback_worker: threading.Thread
    _cancel_event: threading.Event

    def cancel(self) -> None:
        """Ask the scan to stop before the next batch."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def running(self) -> bool:
        return self._worker.is_alive() or self._callback_worker.is_alive()

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for workers to finish; returns ``True`` when both are done."""
        self._worker.join(timeout)
        self._callback_worker.join(timeout)
        return not self.running


def _callback_consumer(
    result_queue: queue.Queue[ProbeResult | None],
    on_result: Callable[[ProbeResult], None] | None,
    on_complete: Callable[[ScanSession], None] | None,
    session: ScanSession,
) -> None:
    """Consume queue entries and run callbacks outside scanner threads."""
    while True:
        result = result_queue.get()
        if result is None:
            result_queue.task_done()
            if on_complete:
                on_complete(session)
            break

        try:
            if on_result:
                on_result(result)
        except Exception:  # noqa: BLE001
            logger.exception("Result callback failed for %s", result.address)
        finally:
            result_queue.task_done()


def start_scan(
    addresses: Iterable[str],
    probe: ProbeFn,
    *,
    on_result: Callable[[ProbeResult], None] | None = None,
    on_complete: Callable[[ScanSession], None] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    include_offline: bool = True,
    total: int | None = None,
    cancel_event: threading.Event | None = None,
) -> ScanJob:
    """Run :func:`run_scan` on a background worker and stream results via callback."""
    result_queue: queue.Queue[ProbeResult | None] = queue.Queue()
    cancel_event = cancel_event or threading.Event()
    session = ScanSession(include_offline=include_offline, total=total)

    callback_worker = threading.Thread(
        target=_callback_consumer,
        args=(result_queue, on_result, on_complete, session),
        daemon=True,
        name="scan-callback-consumer",
    )

    def worker() -> None:
        try:
            run_scan(
                addresses,
                probe,
                session=session,
                cancel_event=cancel_event,
                on_result=result_queue.put,
                batch_size=batch_size,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Scan worker crashed")
            session.mark_finished(stopped=True)
        finally:
            result_queue.put(None)

    scan_worker = threading.Thread(target=worker, daemon=True, name="scan-submit-worker")
    callback_worker.start()
    scan_worker.start()

    return ScanJob(
        session=session,
        _worker=scan_worker,
        _callback_worker=callback_worker,
        _cancel_event=cancel_event,
    )


def scan_cidrs(
    cidrs: str | Iterable[str] | None,
    settings: ScanSettings | None = None,
    *,
    on_result: Callable[[ProbeResult], None] | None = None,
    on_complete: Callable[[ScanSession], None] | None = None,
    probe: ProbeFn | None = None,
) -> ScanJob:
    """Sample ``cidrs`` and scan the candidates with ``settings``.

    Empty or fully malformed input yields a scan with nothing to probe.
    """
    settings = settings or ScanSettings()
    plan = plan_sample(cidrs, **settings.sampling_kwargs())
    logger.info(
        "Sampling %d block(s), space=%d, sampled=%s, cap=%s",
        len(plan.blocks),
        plan.total_space,
        plan.sampled,
        plan.per_block_cap,
    )
    return start_scan(
        iter_plan(plan),
        probe or settings.probe_fn(),
        on_result=on_result,
        on_complete=on_complete,
        batch_size=settings.batch_size,
        include_offline=settings.include_offline,
        total=plan.estimated_count,
    )
