"""Scanner package: CIDR sampling, TCP liveness probing and scan orchestration."""

from .engine import COMPLETED, IDLE, RUNNING, STOPPED, ScanJob, ScanSession, run_scan, scan_cidrs, start_scan
from .ip_utils import CidrBlock, parse_cidr, parse_cidrs, split_cidr_text, step_address
from .optimizer import OptimalIP, OptimalIPBoard
from .prober import (
    OFFLINE,
    ONLINE,
    PORT_PROFILES,
    ProbeInputError,
    ProbeResult,
    parse_port_spec,
    probe_address,
    probe_fastest,
)
from .sampler import plan_sample, sample_addresses
from .settings import ScanSettings, SettingsError, load_settings, save_settings

__all__ = [
    "COMPLETED",
    "IDLE",
    "RUNNING",
    "STOPPED",
    "OFFLINE",
    "ONLINE",
    "PORT_PROFILES",
    "CidrBlock",
    "OptimalIP",
    "OptimalIPBoard",
    "ProbeInputError",
    "ProbeResult",
    "ScanJob",
    "ScanSession",
    "ScanSettings",
    "SettingsError",
    "load_settings",
    "parse_cidr",
    "parse_cidrs",
    "parse_port_spec",
    "plan_sample",
    "probe_address",
    "probe_fastest",
    "run_scan",
    "sample_addresses",
    "save_settings",
    "scan_cidrs",
    "split_cidr_text",
    "start_scan",
    "step_address",
]
