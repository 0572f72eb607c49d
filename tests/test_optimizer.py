from rangescout.scanner.optimizer import OptimalIPBoard, representative_addresses
from rangescout.scanner.prober import OFFLINE, ONLINE, ProbeResult
from rangescout.sources.ranges import ProviderNotFoundError


class StubCatalog:
    def __init__(self, ranges):
        self.ranges = ranges

    def providers(self):
        return list(self.ranges)

    def provider_cidrs(self, provider):
        if self.ranges[provider] is None:
            raise ProviderNotFoundError(provider)
        return self.ranges[provider]


def test_representative_addresses_use_carry():
    cidrs = ["10.0.0.0/24", "bad", "10.0.0.255/32", "10.1.0.0/16"]
    assert representative_addresses(cidrs, blocks=2, per_block=2) == [
        "10.0.0.1",
        "10.0.0.2",
        "10.0.1.0",
        "10.0.1.1",
    ]


def test_optimize_keeps_fastest_per_provider():
    latencies = {"1.0.0.1": 40, "1.0.0.2": None, "2.0.0.1": 5, "2.0.0.2": 90}

    def probe(address):
        latency = latencies.get(address)
        if latency is None:
            return ProbeResult(address=address, status=OFFLINE)
        return ProbeResult(address=address, status=ONLINE, latency_ms=latency, port=443)

    catalog = StubCatalog({"alpha": ["1.0.0.0/24"], "broken": None, "beta": ["2.0.0.0/24"]})
    board = OptimalIPBoard(catalog, probe=probe, keep=2)
    entries = board.optimize()

    assert [(entry.address, entry.provider) for entry in entries] == [("2.0.0.1", "beta"), ("1.0.0.1", "alpha")]
    snapshot = board.snapshot()
    assert snapshot["total_count"] == 2
    assert snapshot["optimal_ips"][0] == {"address": "2.0.0.1", "latency_ms": 5, "provider": "beta"}
    assert snapshot["last_optimization"] != "never"


def test_provider_limit_applies():
    probed = []

    def probe(address):
        probed.append(address)
        return ProbeResult(address=address, status=OFFLINE)

    catalog = StubCatalog({f"p{index}": [f"10.{index}.0.0/24"] for index in range(15)})
    OptimalIPBoard(catalog, probe=probe, provider_limit=3, addresses_per_block=1).optimize()
    assert sorted(probed) == ["10.0.0.1", "10.1.0.1", "10.2.0.1"]
