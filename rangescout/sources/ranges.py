"""Cloud provider IP range catalog with an owned, periodically refreshed cache."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
import threading
import time
from typing import Any, Callable

import requests

from rangescout.scanner.ip_utils import split_cidr_text

logger = logging.getLogger(__name__)

PROVIDERS_URL = "https://api.github.com/repos/disposable/cloud-ip-ranges/contents/txt"
COMBINED_RANGES_URL = "https://raw.githubusercontent.com/disposable/cloud-ip-ranges/master/cloud-ip-ranges.txt"
PROVIDER_RANGES_URL = "https://raw.githubusercontent.com/disposable/cloud-ip-ranges/master/txt/{provider}.txt"

DEFAULT_REFRESH_SECONDS = 30 * 60
DEFAULT_TIMEOUT_SECONDS = 10.0
USER_AGENT = "rangescout"

_PROVIDER_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class RangeSourceError(RuntimeError):
    """Raised when upstream range data is unavailable and nothing is cached."""


class ProviderNotFoundError(RangeSourceError):
    """Raised when a provider has no range file upstream."""


def _iso(stamp: float | None) -> str | None:
    if not stamp:
        return None
    return datetime.fromtimestamp(stamp, tz=timezone.utc).isoformat()


class RangeCatalog:
    """Provider list and CIDR text cache.

    Data older than ``refresh_seconds`` is stale. Reads of stale data try a
    refresh first and fall back to the cached copy when the upstream fetch
    fails; an error is raised only when nothing was ever fetched.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        refresh_seconds: float = DEFAULT_REFRESH_SECONDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session or requests.Session()
        self.refresh_seconds = refresh_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._providers: list[str] = []
        self._combined = ""
        self._last_update: float | None = None
        self._provider_texts: dict[str, tuple[str, float]] = {}

    def _get(self, url: str) -> requests.Response:
        response = self._session.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response

    def _fetch_providers(self) -> list[str]:
        listing = self._get(PROVIDERS_URL).json()
        names = [
            str(entry.get("name", ""))[: -len(".txt")]
            for entry in listing
            if isinstance(entry, dict) and str(entry.get("name", "")).endswith(".txt")
        ]
        return [name for name in names if name]

    @property
    def last_update(self) -> float | None:
        return self._last_update

    def is_stale(self) -> bool:
        with self._lock:
            if self._last_update is None:
                return True
            return self._clock() - self._last_update >= self.refresh_seconds

    def refresh(self) -> bool:
        """Fetch the provider list and combined ranges; ``False`` on failure."""
        try:
            providers = self._fetch_providers()
            combined = self._get(COMBINED_RANGES_URL).text
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Range catalog refresh failed: %s", exc)
            return False

        with self._lock:
            self._providers = providers
            self._combined = combined
            self._last_update = self._clock()
            self._provider_texts.clear()
        logger.info("Range catalog refreshed: %d provider(s)", len(providers))
        return True

    def _ensure_fresh(self) -> None:
        if self.is_stale():
            self.refresh()

    def providers(self) -> list[str]:
        self._ensure_fresh()
        with self._lock:
            if self._last_update is None:
                raise RangeSourceError("Failed to fetch providers")
            return list(self._providers)

    def combined_ranges(self) -> str:
        self._ensure_fresh()
        with self._lock:
            if self._last_update is None:
                raise RangeSourceError("Failed to fetch IP ranges")
            return self._combined

    def provider_ranges(self, provider: str) -> str:
        """Return the CIDR text for ``provider``."""
        provider = (provider or "").strip()
        if not _PROVIDER_NAME.match(provider):
            raise ProviderNotFoundError(f"Provider not found: {provider!r}")

        now = self._clock()
        with self._lock:
            cached = self._provider_texts.get(provider)
        if cached and now - cached[1] < self.refresh_seconds:
            return cached[0]

        try:
            text = self._get(PROVIDER_RANGES_URL.format(provider=provider)).text
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status == 404:
                raise ProviderNotFoundError(f"Provider not found: {provider}") from exc
            if cached:
                logger.warning("Serving stale ranges for %s: %s", provider, exc)
                return cached[0]
            raise RangeSourceError(f"Failed to fetch ranges for {provider}") from exc
        except requests.RequestException as exc:
            if cached:
                logger.warning("Serving stale ranges for %s: %s", provider, exc)
                return cached[0]
            raise RangeSourceError(f"Failed to fetch ranges for {provider}") from exc

        with self._lock:
            self._provider_texts[provider] = (text, now)
        return text

    def provider_cidrs(self, provider: str) -> list[str]:
        return split_cidr_text(self.provider_ranges(provider))

    def status(self) -> dict[str, Any]:
        with self._lock:
            last_update = self._last_update
            count = len(self._providers)
        return {
            "providers_count": count,
            "last_update": _iso(last_update) or "never",
            "next_update": _iso(last_update + self.refresh_seconds) if last_update else "pending",
            "stale": self.is_stale(),
        }
