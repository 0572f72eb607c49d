"""TCP reachability probing for a single address."""

from __future__ import annotations

from dataclasses import dataclass
import socket
import time
from typing import Any, Callable, Iterable, Sequence

ONLINE = "online"
OFFLINE = "offline"

DEFAULT_TIMEOUT_SECONDS = 1.5

PORT_PROFILES: dict[str, tuple[int, ...]] = {
    "default": (80, 443, 22, 445),
    "cdn": (80, 8080, 8880, 2052, 2082, 2086, 2095, 443, 2053, 2083, 2087, 2096, 8443),
}
DEFAULT_PROBE_PORTS = PORT_PROFILES["default"]

ConnectFn = Callable[[str, int, float], "int | None"]


class ProbeInputError(ValueError):
    """Raised for structurally invalid probe input (no address, bad port)."""


@dataclass(slots=True, frozen=True)
class ProbeResult:
    """Outcome of probing one address."""

    address: str
    status: str
    latency_ms: int | None = None
    port: int | None = None

    def __post_init__(self) -> None:
        if self.status == ONLINE and self.latency_ms is None:
            raise ValueError("online results require a latency")
        if self.status == OFFLINE and self.latency_ms is not None:
            raise ValueError("offline results cannot carry a latency")
        if self.status not in (ONLINE, OFFLINE):
            raise ValueError(f"unknown probe status: {self.status!r}")

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "status": self.status,
            "latency_ms": self.latency_ms,
            "port": self.port,
        }


def normalize_port(value: object) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ProbeInputError(f"invalid port: {value!r}") from None
    if port < 1 or port > 65535:
        raise ProbeInputError(f"port out of range: {port}")
    return port


def normalize_ports(ports: Iterable[object]) -> tuple[int, ...]:
    """Validate ``ports`` keeping their order and dropping duplicates."""
    ordered: list[int] = []
    for value in ports:
        port = normalize_port(value)
        if port not in ordered:
            ordered.append(port)
    if not ordered:
        raise ProbeInputError("at least one port is required")
    return tuple(ordered)


def parse_port_spec(spec: str) -> tuple[int, ...]:
    """Parse ``"80,443,8000-8002"`` style specs, keeping the written order."""
    ports: list[int] = []
    for part in (spec or "").split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_s, end_s = part.split("-", 1)
            start, end = normalize_port(start_s), normalize_port(end_s)
            if start > end:
                raise ProbeInputError(f"invalid port range: {part}")
            ports.extend(range(start, end + 1))
        else:
            ports.append(normalize_port(part))
    return normalize_ports(ports)


def connect_latency(address: str, port: int, timeout: float) -> int | None:
    """Open and immediately close a TCP connection; latency in ms or ``None``."""
    start = time.perf_counter()
    try:
        with socket.create_connection((address, port), timeout=timeout):
            elapsed = time.perf_counter() - start
    except (OSError, UnicodeError):
        return None
    return max(0, round(elapsed * 1000))


def _require_address(address: str | None) -> str:
    address = (address or "").strip()
    if not address:
        raise ProbeInputError("address is required")
    return address


def probe_address(
    address: str,
    ports: Sequence[int] = DEFAULT_PROBE_PORTS,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    connect: ConnectFn = connect_latency,
) -> ProbeResult:
    """Try ``ports`` in order and stop at the first one that accepts."""
    address = _require_address(address)
    for port in ports:
        latency = connect(address, int(port), timeout)
        if latency is not None:
            return ProbeResult(address=address, status=ONLINE, latency_ms=latency, port=int(port))
    return ProbeResult(address=address, status=OFFLINE)


def probe_fastest(
    address: str,
    ports: Sequence[int] = DEFAULT_PROBE_PORTS,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    connect: ConnectFn = connect_latency,
) -> ProbeResult:
    """Try every port in sequence and keep the lowest latency."""
    address = _require_address(address)
    best_latency: int | None = None
    best_port: int | None = None
    for port in ports:
        latency = connect(address, int(port), timeout)
        if latency is None:
            continue
        if best_latency is None or latency < best_latency:
            best_latency, best_port = latency, int(port)

    if best_latency is None:
        return ProbeResult(address=address, status=OFFLINE)
    return ProbeResult(address=address, status=ONLINE, latency_ms=best_latency, port=best_port)
