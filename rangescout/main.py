"""Command line entrypoint for rangescout."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
import sys
from typing import Sequence

from rangescout.export import append_scan_result, export_json_document, export_session_to_xlsx
from rangescout.scanner.engine import scan_cidrs
from rangescout.scanner.prober import PORT_PROFILES, ProbeInputError, ProbeResult, parse_port_spec
from rangescout.scanner.settings import ScanSettings, SettingsError, load_settings
from rangescout.sources.ranges import DEFAULT_REFRESH_SECONDS, RangeCatalog, RangeSourceError

logger = logging.getLogger("rangescout")


def _add_probe_options(parser: argparse.ArgumentParser) -> None:
    ports = parser.add_mutually_exclusive_group()
    ports.add_argument("--port", help="Try only this port")
    ports.add_argument("--ports", help="Port spec in probe order, e.g. 80,443,8000-8002")
    ports.add_argument("--profile", choices=sorted(PORT_PROFILES), help="Named port list")
    parser.add_argument("--timeout", type=float, help="Per-port connect timeout in seconds")
    parser.add_argument("--fastest", action="store_true", help="Try every port and keep the lowest latency")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rangescout", description="Find live hosts in cloud provider IP ranges")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (repeatable)")
    commands = parser.add_subparsers(dest="command", required=True)

    probe = commands.add_parser("probe", help="Probe a single address")
    probe.add_argument("address")
    _add_probe_options(probe)

    scan = commands.add_parser("scan", help="Scan CIDR blocks")
    scan.add_argument("cidrs", nargs="*", help="CIDR blocks or addresses")
    scan.add_argument("--file", type=Path, help="Read CIDR blocks from a text file")
    scan.add_argument("--provider", help="Scan the published ranges of a provider")
    _add_probe_options(scan)
    scan.add_argument("--batch-size", type=int, help="Concurrent probes per batch")
    scan.add_argument("--budget", type=int, help="Maximum number of candidate addresses")
    scan.add_argument("--threshold", type=int, help="Address space size above which blocks are sampled")
    scan.add_argument("--top", type=int, help="Print only the N fastest results")
    scan.add_argument("--online-only", action="store_true", help="Do not list offline addresses")
    scan.add_argument("--log", type=Path, help="Append each result to a JSON-lines log")
    scan.add_argument("--json-out", type=Path, help="Write the final snapshot as JSON")
    scan.add_argument("--xlsx-out", type=Path, help="Write the results to an XLSX workbook")

    commands.add_parser("providers", help="List known cloud providers")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=os.getenv("RANGESCOUT_HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.getenv("RANGESCOUT_HTTP_PORT", "3000")))
    serve.add_argument("--no-refresh", action="store_true", help="Do not schedule catalog refreshes")
    return parser


def _configure_logging(verbosity: int) -> None:
    level_name = os.getenv("RANGESCOUT_LOG_LEVEL", "")
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, level_name.upper(), logging.WARNING) if level_name else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _settings_from_args(args: argparse.Namespace) -> ScanSettings:
    overrides: dict[str, object] = {}
    if args.port:
        overrides["ports"] = parse_port_spec(str(args.port))
    elif args.ports:
        overrides["ports"] = parse_port_spec(args.ports)
    elif args.profile:
        overrides["ports"] = PORT_PROFILES[args.profile]
    if args.timeout is not None:
        overrides["timeout_seconds"] = args.timeout
    if args.fastest:
        overrides["measure"] = "fastest"
    for name, attr in (("batch_size", "batch_size"), ("address_budget", "budget"), ("sampling_threshold", "threshold")):
        value = getattr(args, attr, None)
        if value is not None:
            overrides[name] = value
    if getattr(args, "online_only", False):
        overrides["include_offline"] = False
    return load_settings(**overrides)


def _format_result(result: ProbeResult) -> str:
    if result.is_online:
        return f"{result.address:<15}  online   {result.latency_ms:>5} ms  port {result.port}"
    return f"{result.address:<15}  offline"


def _run_probe(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    result = settings.probe_fn()(args.address)
    print(json.dumps(result.to_dict()))
    return 0 if result.is_online else 1


def _collect_cidrs(args: argparse.Namespace, catalog: RangeCatalog) -> list[str]:
    entries = list(args.cidrs)
    if args.file:
        entries.append(args.file.read_text(encoding="utf-8"))
    if args.provider:
        entries.extend(catalog.provider_cidrs(args.provider))
    return entries


def _run_scan(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    cidrs = _collect_cidrs(args, RangeCatalog())
    if not cidrs:
        print("Nothing to scan: pass CIDR blocks, --file or --provider", file=sys.stderr)
        return 2

    def on_result(result: ProbeResult) -> None:
        if args.log:
            append_scan_result(result, args.log)
        if result.is_online:
            logger.info("online %s %s ms (port %s)", result.address, result.latency_ms, result.port)

    job = scan_cidrs(cidrs, settings, on_result=on_result)
    print(f"[*] Candidates: {job.session.total} | Ports: {','.join(map(str, settings.ports))}", file=sys.stderr)
    try:
        while not job.wait(0.5):
            session = job.session
            print(
                f"\r[*] Probed {session.probed}/{session.total} | online={len(session.online)}",
                end="",
                file=sys.stderr,
                flush=True,
            )
    except KeyboardInterrupt:
        print("\n[*] Stopping after the current batch...", file=sys.stderr)
        job.cancel()
        job.wait()
    print(file=sys.stderr)

    session = job.session
    results = session.results()
    if args.top is not None:
        results = results[: max(0, args.top)]
    for result in results:
        print(_format_result(result))
    print(
        f"[*] Scan {session.state}: {len(session.online)} online, {session.offline_count} offline",
        file=sys.stderr,
    )

    if args.json_out:
        export_json_document(args.json_out, {"settings": settings.to_dict(), **session.snapshot()})
    if args.xlsx_out:
        summary = {key: value for key, value in session.snapshot().items() if key != "results"}
        export_session_to_xlsx(session.results(), args.xlsx_out, summary=summary)
    return 0


def _run_providers(args: argparse.Namespace) -> int:
    for name in RangeCatalog().providers():
        print(name)
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    from rangescout.api.app import create_app
    from rangescout.scanner.optimizer import OptimalIPBoard
    from rangescout.scheduler.jobs import build_scheduler, schedule_catalog_refresh

    settings = load_settings()
    refresh_minutes = os.getenv("RANGESCOUT_REFRESH_MINUTES", "")
    refresh_seconds = float(refresh_minutes) * 60 if refresh_minutes else DEFAULT_REFRESH_SECONDS
    catalog = RangeCatalog(refresh_seconds=refresh_seconds)
    board = OptimalIPBoard(catalog, settings=settings)
    app = create_app(catalog=catalog, settings=settings, board=board)

    scheduler = build_scheduler()
    if not args.no_refresh:
        schedule_catalog_refresh(scheduler, catalog, board)
        scheduler.start()
    try:
        app.run(host=args.host, port=args.port, threaded=True)
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        app.extensions["rangescout"]["registry"].cancel_all()
    return 0


COMMANDS = {
    "probe": _run_probe,
    "scan": _run_scan,
    "providers": _run_providers,
    "serve": _run_serve,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Application entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return COMMANDS[args.command](args)
    except (ProbeInputError, SettingsError) as exc:
        parser.error(str(exc))
    except RangeSourceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
