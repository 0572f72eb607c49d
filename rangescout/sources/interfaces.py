"""Streaming interface config checks and site aggregation."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import json
from typing import Any, Iterable

import requests

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_WALLPAPER = "https://picsum.photos/1920/1080?blur=2"
MAX_WORKERS = 8

InterfaceCheck = dict[str, Any]


def check_interface(
    url: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
) -> InterfaceCheck:
    """Fetch an interface URL and describe what it serves.

    Network failures are reported as ``status: offline``, never raised.
    """
    url = (url or "").strip()
    if not url:
        raise ValueError("URL is required")

    getter = session.get if session is not None else requests.get
    try:
        response = getter(url, timeout=timeout_seconds)
        response.raise_for_status()
    except requests.RequestException as exc:
        return {"status": "offline", "error": str(exc)}

    try:
        content: Any = response.json()
    except ValueError:
        content = None

    is_json = isinstance(content, (dict, list))
    body = content if is_json else response.text
    return {
        "status": "online",
        "status_code": response.status_code,
        "is_json": is_json,
        "has_sites": isinstance(content, dict) and isinstance(content.get("sites"), list),
        "content": content if is_json else None,
        "size": len(json.dumps(body, ensure_ascii=False)),
    }


def merge_sites(configs: Iterable[Any]) -> list[dict[str, Any]]:
    """Merge ``sites`` lists, keeping the first site per ``key`` (or ``name``)."""
    merged: list[dict[str, Any]] = []
    seen: set[str] = set()
    for config in configs:
        if not isinstance(config, dict) or not isinstance(config.get("sites"), list):
            continue
        for site in config["sites"]:
            if not isinstance(site, dict):
                continue
            identifier = site.get("key") or site.get("name")
            if not identifier or str(identifier) in seen:
                continue
            seen.add(str(identifier))
            merged.append(site)
    return merged


def aggregate_interfaces(
    urls: Iterable[str],
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
    wallpaper: str = DEFAULT_WALLPAPER,
) -> dict[str, Any]:
    """Check ``urls`` in parallel and merge their sites into one config."""
    targets = [url for url in urls if url and url.strip()]
    if not targets:
        return {"sites": [], "wallpaper": wallpaper}

    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(targets)), thread_name_prefix="interface") as executor:
        checks = list(
            executor.map(
                lambda url: check_interface(url, timeout_seconds=timeout_seconds, session=session),
                targets,
            )
        )

    return {
        "sites": merge_sites(check.get("content") for check in checks),
        "wallpaper": wallpaper,
    }
