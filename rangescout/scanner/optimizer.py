"""Periodic fastest-address ranking across cloud providers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
from typing import TYPE_CHECKING, Any, Iterable

from .engine import ProbeFn, run_scan
from .ip_utils import parse_cidrs, step_address
from .settings import ScanSettings

if TYPE_CHECKING:
    from rangescout.sources.ranges import RangeCatalog

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_LIMIT = 10
DEFAULT_BLOCKS_PER_PROVIDER = 5
DEFAULT_ADDRESSES_PER_BLOCK = 2
DEFAULT_KEEP = 20


@dataclass(slots=True, frozen=True)
class OptimalIP:
    address: str
    latency_ms: int
    provider: str

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "latency_ms": self.latency_ms, "provider": self.provider}


def representative_addresses(
    cidrs: Iterable[str],
    *,
    blocks: int = DEFAULT_BLOCKS_PER_PROVIDER,
    per_block: int = DEFAULT_ADDRESSES_PER_BLOCK,
) -> list[str]:
    """First ``per_block`` hosts after the base of the first ``blocks`` ranges."""
    addresses: list[str] = []
    for block in parse_cidrs(cidrs)[: max(0, blocks)]:
        for offset in range(1, per_block + 1):
            addresses.append(step_address(block.base, offset))
    return addresses


class OptimalIPBoard:
    """Holds the latest fastest-address ranking."""

    def __init__(
        self,
        catalog: "RangeCatalog",
        *,
        settings: ScanSettings | None = None,
        probe: ProbeFn | None = None,
        provider_limit: int = DEFAULT_PROVIDER_LIMIT,
        blocks_per_provider: int = DEFAULT_BLOCKS_PER_PROVIDER,
        addresses_per_block: int = DEFAULT_ADDRESSES_PER_BLOCK,
        keep: int = DEFAULT_KEEP,
    ) -> None:
        self.catalog = catalog
        self.settings = settings or ScanSettings()
        self._probe = probe or self.settings.probe_fn()
        self.provider_limit = provider_limit
        self.blocks_per_provider = blocks_per_provider
        self.addresses_per_block = addresses_per_block
        self.keep = keep
        self._lock = threading.Lock()
        self._entries: list[OptimalIP] = []
        self._last_run: datetime | None = None

    @property
    def entries(self) -> list[OptimalIP]:
        with self._lock:
            return list(self._entries)

    def optimize(self) -> list[OptimalIP]:
        """Probe sample addresses of the leading providers and keep the fastest."""
        found: list[OptimalIP] = []
        for provider in self.catalog.providers()[: self.provider_limit]:
            try:
                cidrs = self.catalog.provider_cidrs(provider)
            except Exception as exc:  # noqa: BLE001
                logger.info("Skipping provider %s: %s", provider, exc)
                continue

            addresses = representative_addresses(
                cidrs,
                blocks=self.blocks_per_provider,
                per_block=self.addresses_per_block,
            )
            session = run_scan(addresses, self._probe, batch_size=self.settings.batch_size)
            found.extend(
                OptimalIP(address=result.address, latency_ms=int(result.latency_ms or 0), provider=provider)
                for result in session.online
            )

        found.sort(key=lambda entry: entry.latency_ms)
        with self._lock:
            self._entries = found[: self.keep]
            self._last_run = datetime.now(timezone.utc)
        logger.info("Optimal IP ranking updated: %d online address(es)", len(self._entries))
        return self.entries

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            entries = [entry.to_dict() for entry in self._entries]
            last_run = self._last_run
        return {
            "optimal_ips": entries,
            "last_optimization": last_run.isoformat() if last_run else "never",
            "total_count": len(entries),
        }
