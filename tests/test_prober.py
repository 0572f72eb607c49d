import time

import pytest

from rangescout.scanner.prober import (
    OFFLINE,
    ONLINE,
    PORT_PROFILES,
    ProbeInputError,
    ProbeResult,
    connect_latency,
    normalize_ports,
    parse_port_spec,
    probe_address,
    probe_fastest,
)


def test_probe_open_port_is_online(listening_port):
    result = probe_address("127.0.0.1", [listening_port], timeout=1.0)
    assert result.status == ONLINE
    assert result.latency_ms is not None and result.latency_ms >= 0
    assert result.port == listening_port


def test_probe_closed_port_is_offline(closed_port):
    result = probe_address("127.0.0.1", [closed_port], timeout=0.5)
    assert result == ProbeResult(address="127.0.0.1", status=OFFLINE)
    assert result.to_dict() == {"address": "127.0.0.1", "status": "offline", "latency_ms": None, "port": None}


def test_probe_skips_closed_ports_until_first_success(closed_port, listening_port):
    result = probe_address("127.0.0.1", [closed_port, listening_port], timeout=1.0)
    assert result.is_online
    assert result.port == listening_port


def test_first_success_short_circuits():
    attempts = []

    def fake_connect(address, port, timeout):
        attempts.append(port)
        return 12 if port == 443 else None

    result = probe_address("203.0.113.7", [80, 443, 22, 445], connect=fake_connect)
    assert attempts == [80, 443]
    assert result.latency_ms == 12
    assert result.port == 443


def test_ports_are_tried_sequentially():
    active = []
    overlap = []

    def fake_connect(address, port, timeout):
        active.append(port)
        if len(active) > 1:
            overlap.append(port)
        time.sleep(0.01)
        active.remove(port)
        return None

    probe_address("203.0.113.7", [1, 2, 3], connect=fake_connect)
    assert overlap == []


def test_fastest_mode_keeps_lowest_latency():
    latencies = {80: 40, 8080: None, 443: 15, 8443: 30}

    def fake_connect(address, port, timeout):
        return latencies[port]

    result = probe_fastest("203.0.113.7", [80, 8080, 443, 8443], connect=fake_connect)
    assert result.latency_ms == 15
    assert result.port == 443


def test_fastest_mode_offline_when_nothing_answers():
    result = probe_fastest("203.0.113.7", [80, 443], connect=lambda *_: None)
    assert result.status == OFFLINE


def test_missing_address_is_rejected():
    with pytest.raises(ProbeInputError):
        probe_address("", [80])
    with pytest.raises(ProbeInputError):
        probe_address("   ", [80])


def test_offline_probe_is_bounded_by_timeout(closed_port):
    start = time.perf_counter()
    result = probe_address("127.0.0.1", [closed_port, closed_port], timeout=0.3)
    assert result.status == OFFLINE
    assert time.perf_counter() - start < 0.3 * 2 + 0.5


def test_connect_latency_returns_none_for_refused(closed_port):
    assert connect_latency("127.0.0.1", closed_port, 0.3) is None


def test_unencodable_hostname_is_offline():
    hostname = "a" * 300
    assert connect_latency(hostname, 80, 0.3) is None
    assert probe_address(hostname, [80], timeout=0.3).status == OFFLINE


def test_probe_result_invariants():
    with pytest.raises(ValueError):
        ProbeResult(address="1.1.1.1", status=ONLINE)
    with pytest.raises(ValueError):
        ProbeResult(address="1.1.1.1", status=OFFLINE, latency_ms=5)
    with pytest.raises(ValueError):
        ProbeResult(address="1.1.1.1", status="maybe")


def test_port_spec_parsing_keeps_order():
    assert parse_port_spec("443,80,8000-8002,80") == (443, 80, 8000, 8001, 8002)
    assert normalize_ports(["22", 22, 80]) == (22, 80)
    assert PORT_PROFILES["default"] == (80, 443, 22, 445)


@pytest.mark.parametrize("spec", ["", "0", "65536", "http", "90-80"])
def test_port_spec_rejects_invalid(spec):
    with pytest.raises(ProbeInputError):
        parse_port_spec(spec)
