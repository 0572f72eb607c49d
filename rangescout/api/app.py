"""Flask HTTP API over the scanner, range catalog and aggregate store."""

from __future__ import annotations

from collections import OrderedDict
import logging
import secrets
import threading
from typing import Any

from flask import Flask, Response, jsonify, request

from rangescout.scanner.engine import ScanJob, scan_cidrs
from rangescout.scanner.optimizer import OptimalIPBoard
from rangescout.scanner.prober import ProbeInputError
from rangescout.scanner.settings import ScanSettings
from rangescout.sources.interfaces import aggregate_interfaces, check_interface
from rangescout.sources.ranges import ProviderNotFoundError, RangeCatalog, RangeSourceError
from rangescout.storage import load_aggregate, save_aggregate

logger = logging.getLogger(__name__)

MAX_RETAINED_SCANS = 32


class ScanRegistry:
    """Background scans addressable by short id; oldest finished ones are evicted."""

    def __init__(self, max_retained: int = MAX_RETAINED_SCANS) -> None:
        self.max_retained = max_retained
        self._jobs: OrderedDict[str, ScanJob] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, job: ScanJob) -> str:
        scan_id = secrets.token_hex(4)
        with self._lock:
            self._jobs[scan_id] = job
            self._evict()
        return scan_id

    def get(self, scan_id: str) -> ScanJob | None:
        with self._lock:
            return self._jobs.get(scan_id)

    def _evict(self) -> None:
        finished = [key for key, job in self._jobs.items() if job.session.finished]
        while len(self._jobs) > self.max_retained and finished:
            self._jobs.pop(finished.pop(0), None)

    def cancel_all(self) -> None:
        with self._lock:
            jobs = list(self._jobs.values())
        for job in jobs:
            job.cancel()


def _error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"error": message}), status


def _cidrs_from_payload(payload: dict[str, Any], catalog: RangeCatalog) -> list[str] | None:
    cidrs = payload.get("cidrs")
    provider = str(payload.get("provider") or "").strip()
    if cidrs is None and not provider:
        return None

    entries: list[str] = []
    if isinstance(cidrs, str):
        entries.append(cidrs)
    elif isinstance(cidrs, list):
        entries.extend(str(item) for item in cidrs)
    if provider:
        entries.extend(catalog.provider_cidrs(provider))
    return entries


def create_app(
    *,
    catalog: RangeCatalog | None = None,
    settings: ScanSettings | None = None,
    board: OptimalIPBoard | None = None,
    registry: ScanRegistry | None = None,
) -> Flask:
    """Build the API application around explicitly owned collaborators."""
    catalog = catalog or RangeCatalog()
    settings = settings or ScanSettings()
    board = board or OptimalIPBoard(catalog, settings=settings)
    registry = registry or ScanRegistry()

    app = Flask(__name__)
    app.extensions["rangescout"] = {
        "catalog": catalog,
        "settings": settings,
        "board": board,
        "registry": registry,
    }

    @app.after_request
    def allow_any_origin(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    @app.errorhandler(ProbeInputError)
    def handle_bad_probe(exc: ProbeInputError):
        return _error(str(exc), 400)

    @app.errorhandler(ProviderNotFoundError)
    def handle_missing_provider(exc: ProviderNotFoundError):
        return _error("Provider not found", 404)

    @app.errorhandler(RangeSourceError)
    def handle_range_source(exc: RangeSourceError):
        logger.warning("Range source unavailable: %s", exc)
        return _error(str(exc), 500)

    @app.get("/api/status")
    def status():
        catalog_status = catalog.status()
        optimal = board.snapshot()
        return jsonify(
            {
                "status": "online",
                "providers_count": catalog_status["providers_count"],
                "last_update": catalog_status["last_update"],
                "next_update": catalog_status["next_update"],
                "last_optimization": optimal["last_optimization"],
                "optimal_ips_count": optimal["total_count"],
            }
        )

    @app.get("/api/providers")
    def providers():
        return jsonify(catalog.providers())

    @app.get("/api/providers/<provider_id>")
    def provider_ranges(provider_id: str):
        return Response(catalog.provider_ranges(provider_id), mimetype="text/plain")

    @app.get("/api/check-ip")
    def check_ip():
        data = catalog.combined_ranges()
        return jsonify({"data": data, "last_update": catalog.status()["last_update"]})

    @app.get("/api/scan-ip")
    def scan_ip():
        address = (request.args.get("ip") or "").strip()
        if not address:
            return _error("IP is required", 400)

        probe_settings = settings
        port = request.args.get("port")
        if port:
            probe_settings = settings.with_port(port)

        result = probe_settings.probe_fn()(address)
        return jsonify(result.to_dict())

    @app.get("/api/optimal-ips")
    def optimal_ips():
        return jsonify(board.snapshot())

    @app.post("/api/scans")
    def start_scan():
        payload = request.get_json(silent=True) or {}
        if not isinstance(payload, dict):
            return _error("JSON object body is required", 400)
        cidrs = _cidrs_from_payload(payload, catalog)
        if cidrs is None:
            return _error("cidrs or provider is required", 400)

        scan_settings = settings.with_port(payload["port"]) if payload.get("port") is not None else settings
        job = scan_cidrs(cidrs, scan_settings)
        scan_id = registry.add(job)
        logger.info("Scan %s started with %s candidate(s)", scan_id, job.session.total)
        return jsonify({"scan_id": scan_id, "total": job.session.total}), 202

    @app.get("/api/scans/<scan_id>")
    def scan_detail(scan_id: str):
        job = registry.get(scan_id)
        if job is None:
            return _error("Scan not found", 404)
        limit = request.args.get("limit", type=int)
        return jsonify({"scan_id": scan_id, **job.session.snapshot(limit=limit)})

    @app.post("/api/scans/<scan_id>/stop")
    def scan_stop(scan_id: str):
        job = registry.get(scan_id)
        if job is None:
            return _error("Scan not found", 404)
        job.cancel()
        logger.info("Stop requested for scan %s", scan_id)
        return jsonify({"scan_id": scan_id, "cancelled": True, **job.session.snapshot()})

    @app.get("/api/check-interface")
    def check_interface_route():
        url = (request.args.get("url") or "").strip()
        if not url:
            return _error("URL is required", 400)
        return jsonify(check_interface(url))

    @app.post("/api/aggregate")
    def aggregate():
        payload = request.get_json(silent=True) or {}
        urls = payload.get("urls") if isinstance(payload, dict) else None
        if isinstance(urls, str):
            urls = urls.split()
        if not isinstance(urls, list) or not any(str(url).strip() for url in urls):
            return _error("urls is required", 400)
        return jsonify(aggregate_interfaces(str(url) for url in urls))

    @app.post("/api/aggregate/save")
    def aggregate_save():
        payload = request.get_json(silent=True) or {}
        content = payload.get("content") if isinstance(payload, dict) else None
        if not content:
            return _error("Content is required", 400)
        return jsonify({"id": save_aggregate(content)})

    @app.get("/api/config/<aggregate_id>")
    def aggregate_config(aggregate_id: str):
        content = load_aggregate(aggregate_id)
        if content is None:
            return Response("Config not found", status=404, mimetype="text/plain")
        return Response(content, mimetype="application/json")

    return app
