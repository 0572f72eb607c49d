import time

import pytest

from rangescout.api.app import ScanRegistry, create_app
from rangescout.scanner.optimizer import OptimalIPBoard
from rangescout.scanner.settings import ScanSettings
from rangescout.sources.ranges import ProviderNotFoundError, RangeSourceError


class StubCatalog:
    refresh_seconds = 1800

    def __init__(self, ranges=None, available=True):
        self.ranges = ranges or {"aws": "127.0.0.1/32\n"}
        self.available = available

    def providers(self):
        if not self.available:
            raise RangeSourceError("Failed to fetch providers")
        return list(self.ranges)

    def provider_ranges(self, provider):
        if provider not in self.ranges:
            raise ProviderNotFoundError(provider)
        return self.ranges[provider]

    def provider_cidrs(self, provider):
        return self.provider_ranges(provider).split()

    def combined_ranges(self):
        return "".join(self.ranges.values())

    def status(self):
        return {"providers_count": len(self.ranges), "last_update": "never", "next_update": "pending", "stale": True}


@pytest.fixture
def catalog():
    return StubCatalog()


@pytest.fixture
def client(catalog, closed_port):
    settings = ScanSettings(ports=(closed_port,), timeout_seconds=0.3, batch_size=4)
    board = OptimalIPBoard(catalog, settings=settings)
    app = create_app(catalog=catalog, settings=settings, board=board, registry=ScanRegistry())
    app.config["TESTING"] = True
    return app.test_client()


def _wait_finished(client, scan_id):
    deadline = time.time() + 10
    while time.time() < deadline:
        body = client.get(f"/api/scans/{scan_id}").get_json()
        if body["state"] in ("completed", "stopped"):
            return body
        time.sleep(0.05)
    raise AssertionError("scan did not finish")


def test_status(client):
    response = client.get("/api/status")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "online"
    assert body["providers_count"] == 1
    assert body["optimal_ips_count"] == 0
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_providers_and_ranges(client):
    assert client.get("/api/providers").get_json() == ["aws"]
    response = client.get("/api/providers/aws")
    assert response.status_code == 200
    assert response.mimetype == "text/plain"
    assert response.get_data(as_text=True) == "127.0.0.1/32\n"
    missing = client.get("/api/providers/azure")
    assert missing.status_code == 404
    assert missing.get_json() == {"error": "Provider not found"}


def test_providers_unavailable_is_server_error(closed_port):
    catalog = StubCatalog(available=False)
    app = create_app(catalog=catalog, settings=ScanSettings(ports=(closed_port,)))
    response = app.test_client().get("/api/providers")
    assert response.status_code == 500
    assert "error" in response.get_json()


def test_check_ip_returns_combined_ranges(client):
    body = client.get("/api/check-ip").get_json()
    assert body["data"] == "127.0.0.1/32\n"


def test_scan_ip_requires_address(client):
    response = client.get("/api/scan-ip")
    assert response.status_code == 400
    assert response.get_json() == {"error": "IP is required"}


def test_scan_ip_offline(client):
    body = client.get("/api/scan-ip?ip=127.0.0.1").get_json()
    assert body == {"address": "127.0.0.1", "status": "offline", "latency_ms": None, "port": None}


def test_scan_ip_single_port_override(client, listening_port):
    body = client.get(f"/api/scan-ip?ip=127.0.0.1&port={listening_port}").get_json()
    assert body["status"] == "online"
    assert body["port"] == listening_port
    assert isinstance(body["latency_ms"], int)


def test_scan_ip_rejects_bad_port(client):
    assert client.get("/api/scan-ip?ip=127.0.0.1&port=99999").status_code == 400


def test_scan_lifecycle(client, listening_port):
    response = client.post("/api/scans", json={"cidrs": "127.0.0.1/32 127.0.0.2/32", "port": listening_port})
    assert response.status_code == 202
    scan_id = response.get_json()["scan_id"]
    assert response.get_json()["total"] == 2

    body = _wait_finished(client, scan_id)
    assert body["state"] == "completed"
    assert body["probed"] == 2
    assert body["results"][0]["address"] == "127.0.0.1"
    assert body["results"][0]["status"] == "online"


def test_scan_from_provider(client):
    response = client.post("/api/scans", json={"provider": "aws"})
    assert response.status_code == 202
    body = _wait_finished(client, response.get_json()["scan_id"])
    assert body["probed"] == 1


def test_scan_requires_input(client):
    assert client.post("/api/scans", json={}).status_code == 400


def test_scan_with_malformed_cidrs_finishes_empty(client):
    response = client.post("/api/scans", json={"cidrs": ["nope", "1.2.3.4/99"]})
    body = _wait_finished(client, response.get_json()["scan_id"])
    assert body["total"] == 0
    assert body["results"] == []


def test_stop_scan(client):
    response = client.post("/api/scans", json={"cidrs": "127.0.0.0/28"})
    scan_id = response.get_json()["scan_id"]
    stopped = client.post(f"/api/scans/{scan_id}/stop")
    assert stopped.status_code == 200
    assert stopped.get_json()["cancelled"] is True
    body = _wait_finished(client, scan_id)
    assert body["state"] in ("stopped", "completed")
    assert client.post("/api/scans/unknown/stop").status_code == 404
    assert client.get("/api/scans/unknown").status_code == 404


def test_optimal_ips_empty(client):
    body = client.get("/api/optimal-ips").get_json()
    assert body == {"optimal_ips": [], "last_optimization": "never", "total_count": 0}


def test_check_interface_requires_url(client):
    assert client.get("/api/check-interface").status_code == 400


def test_check_interface_uses_checker(client, monkeypatch):
    import rangescout.api.app as api_app

    monkeypatch.setattr(api_app, "check_interface", lambda url: {"status": "online", "url": url})
    body = client.get("/api/check-interface?url=http://example.invalid/cfg").get_json()
    assert body == {"status": "online", "url": "http://example.invalid/cfg"}


def test_aggregate_save_and_fetch(client):
    assert client.post("/api/aggregate/save", json={}).status_code == 400
    saved = client.post("/api/aggregate/save", json={"content": {"sites": [{"key": "a"}]}})
    aggregate_id = saved.get_json()["id"]
    response = client.get(f"/api/config/{aggregate_id}")
    assert response.status_code == 200
    assert response.get_json() == {"sites": [{"key": "a"}]}
    assert client.get("/api/config/ffffffff").status_code == 404


def test_scan_ip_unencodable_hostname_is_offline(client):
    response = client.get("/api/scan-ip?ip=" + "a" * 300)
    assert response.status_code == 200
    assert response.get_json()["status"] == "offline"


def test_scan_rejects_non_object_body(client):
    response = client.post("/api/scans", json=["127.0.0.1/32"])
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_scan_rejects_zero_port(client):
    response = client.post("/api/scans", json={"cidrs": "127.0.0.1", "port": 0})
    assert response.status_code == 400


def test_scan_malformed_prefix_is_skipped(client):
    response = client.post("/api/scans", json={"cidrs": ["10.0.0.0/²"]})
    assert response.status_code == 202
    assert response.get_json()["total"] == 0


def test_aggregate_merges_sources(client, monkeypatch):
    import rangescout.api.app as api_app

    seen = []

    def fake_aggregate(urls):
        seen.extend(urls)
        return {"sites": [{"key": "a"}], "wallpaper": "w"}

    monkeypatch.setattr(api_app, "aggregate_interfaces", fake_aggregate)
    response = client.post("/api/aggregate", json={"urls": ["http://one.invalid/cfg", "http://two.invalid/cfg"]})
    assert response.status_code == 200
    assert response.get_json() == {"sites": [{"key": "a"}], "wallpaper": "w"}
    assert seen == ["http://one.invalid/cfg", "http://two.invalid/cfg"]


def test_aggregate_requires_urls(client):
    assert client.post("/api/aggregate", json={}).status_code == 400
    assert client.post("/api/aggregate", json={"urls": ["  "]}).status_code == 400
    assert client.post("/api/aggregate", json=["http://one.invalid/cfg"]).status_code == 400
    assert client.post("/api/aggregate/save", json=["x"]).status_code == 400
