"""Scan configuration resolved from environment, saved preferences and defaults."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import os
from typing import Any, Callable, Mapping

from rangescout.storage import get_preference, set_preference

from .prober import (
    DEFAULT_PROBE_PORTS,
    DEFAULT_TIMEOUT_SECONDS,
    PORT_PROFILES,
    ProbeInputError,
    ProbeResult,
    normalize_port,
    normalize_ports,
    parse_port_spec,
    probe_address,
    probe_fastest,
)
from .sampler import DEFAULT_ADDRESS_BUDGET, DEFAULT_MIN_PER_BLOCK, DEFAULT_SAMPLING_THRESHOLD

DEFAULT_BATCH_SIZE = 50
MEASURE_MODES = ("first", "fastest")

PREFERENCE_PREFIX = "scan."
ENV_PREFIX = "RANGESCOUT_"

_TRUTHY = {"1", "true", "yes", "on"}


class SettingsError(ValueError):
    """Raised when a configured value cannot be used."""


@dataclass(slots=True, frozen=True)
class ScanSettings:
    ports: tuple[int, ...] = DEFAULT_PROBE_PORTS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    batch_size: int = DEFAULT_BATCH_SIZE
    sampling_threshold: int = DEFAULT_SAMPLING_THRESHOLD
    address_budget: int = DEFAULT_ADDRESS_BUDGET
    min_per_block: int = DEFAULT_MIN_PER_BLOCK
    include_offline: bool = True
    measure: str = "first"

    def __post_init__(self) -> None:
        try:
            normalize_ports(self.ports)
        except ProbeInputError as exc:
            raise SettingsError(str(exc)) from exc
        if self.timeout_seconds <= 0:
            raise SettingsError("timeout_seconds must be positive")
        if self.batch_size < 1:
            raise SettingsError("batch_size must be >= 1")
        if self.address_budget < 0 or self.sampling_threshold < 0 or self.min_per_block < 1:
            raise SettingsError("sampling limits must be non-negative (min_per_block >= 1)")
        if self.measure not in MEASURE_MODES:
            raise SettingsError(f"measure must be one of {', '.join(MEASURE_MODES)}")

    def with_port(self, port: object) -> "ScanSettings":
        """Single-port override: only ``port`` is tried."""
        return replace(self, ports=(normalize_port(port),))

    def probe_fn(self) -> Callable[[str], ProbeResult]:
        probe = probe_fastest if self.measure == "fastest" else probe_address
        ports, timeout = self.ports, self.timeout_seconds

        def _probe(address: str) -> ProbeResult:
            return probe(address, ports, timeout=timeout)

        return _probe

    def sampling_kwargs(self) -> dict[str, int]:
        return {
            "threshold": self.sampling_threshold,
            "budget": self.address_budget,
            "min_per_block": self.min_per_block,
        }

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["ports"] = list(self.ports)
        return payload


def _coerce_ports(value: Any) -> tuple[int, ...]:
    if isinstance(value, str):
        return parse_port_spec(value)
    return normalize_ports(value)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


_FIELDS: dict[str, Callable[[Any], Any]] = {
    "ports": _coerce_ports,
    "timeout_seconds": float,
    "batch_size": int,
    "sampling_threshold": int,
    "address_budget": int,
    "min_per_block": int,
    "include_offline": _coerce_bool,
    "measure": lambda value: str(value).strip().lower(),
}

_ENV_NAMES = {
    "ports": "PORTS",
    "timeout_seconds": "TIMEOUT",
    "batch_size": "BATCH_SIZE",
    "sampling_threshold": "SAMPLE_THRESHOLD",
    "address_budget": "ADDRESS_BUDGET",
    "min_per_block": "MIN_PER_BLOCK",
    "include_offline": "INCLUDE_OFFLINE",
    "measure": "MEASURE",
}


def load_settings(
    *,
    env: Mapping[str, str] | None = None,
    use_preferences: bool = True,
    **overrides: Any,
) -> ScanSettings:
    """Resolve settings: explicit overrides, then env, then preferences, then defaults."""
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    profile = env.get(f"{ENV_PREFIX}PORT_PROFILE", "").strip().lower()
    if profile:
        if profile not in PORT_PROFILES:
            raise SettingsError(f"unknown port profile: {profile}")
        values["ports"] = PORT_PROFILES[profile]

    for name, coerce in _FIELDS.items():
        raw: Any = overrides.get(name)
        if raw is None:
            raw = env.get(f"{ENV_PREFIX}{_ENV_NAMES[name]}") or None
        if raw is None and name not in values and use_preferences:
            raw = get_preference(f"{PREFERENCE_PREFIX}{name}")
        if raw is None:
            continue
        try:
            values[name] = coerce(raw)
        except (TypeError, ValueError) as exc:
            raise SettingsError(f"invalid value for {name}: {raw!r}") from exc

    return ScanSettings(**values)


def save_settings(settings: ScanSettings) -> None:
    """Persist ``settings`` as ``scan.*`` preferences."""
    for name, value in settings.to_dict().items():
        set_preference(f"{PREFERENCE_PREFIX}{name}", value)
