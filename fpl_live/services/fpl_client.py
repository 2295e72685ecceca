"""FPL API client with rate limiting and retries for live polling."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from fpl_live.services.live_cache import BootstrapCache

logger = logging.getLogger(__name__)

FPL_BASE_URL = "https://fantasy.premierleague.com/api"

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def is_retryable_error(exception: BaseException) -> bool:
    """Check if an error should trigger a retry."""
    if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRYABLE_STATUS_CODES
    return False


@dataclass
class BootstrapData:
    """Core bootstrap data from FPL API."""

    players: list[dict[str, Any]]
    teams: list[dict[str, Any]]
    events: list[dict[str, Any]]
    current_gameweek: int | None


class FplApiClient:
    """
    FPL API client with rate limiting.

    The FPL API doesn't officially document rate limits, but empirically:
    - ~60 requests/minute is safe
    - 503s happen if you go too fast
    - event/{gw}/live is cheap enough to poll every ~15 seconds
    """

    def __init__(
        self,
        base_url: str = FPL_BASE_URL,
        requests_per_second: float = 1.0,
        max_concurrent: int = 5,
        bootstrap_cache: BootstrapCache | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: FPL API root without trailing slash
            requests_per_second: Target rate (1.0 = 1 request/sec)
            max_concurrent: Maximum concurrent requests
            bootstrap_cache: Cache for bootstrap-static; a private one is
                created if omitted
        """
        self.base_url = base_url.rstrip("/")
        self.delay = 1.0 / requests_per_second
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.bootstrap_cache = bootstrap_cache or BootstrapCache(
            f"{self.base_url}/bootstrap-static/"
        )
        self._last_request_time = 0.0
        self._lock = asyncio.Lock()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy initialization, coroutine-safe)."""
        if self._client is None:
            async with self._lock:
                if self._client is None:  # Double-check after acquiring lock
                    self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources (coroutine-safe)."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self) -> "FplApiClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context manager and close client."""
        await self.close()

    async def _rate_limit(self) -> None:
        """Apply rate limiting between requests."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self.delay:
                await asyncio.sleep(self.delay - elapsed)
            self._last_request_time = time.monotonic()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    async def _get(self, url: str) -> Any:
        """Make a rate-limited GET request with retries."""
        async with self.semaphore:
            await self._rate_limit()

            client = await self._get_client()
            response = await client.get(url)
            response.raise_for_status()
            return response.json()

    async def get_bootstrap_static(self) -> dict[str, Any]:
        """Fetch raw bootstrap-static data through the bootstrap cache."""
        return await self.bootstrap_cache.get(self._get)

    async def get_bootstrap(self) -> BootstrapData:
        """Fetch bootstrap-static data (players, teams, gameweeks)."""
        data = await self.get_bootstrap_static()

        current_gw = None
        for event in data.get("events", []):
            if event.get("is_current"):
                current_gw = event["id"]
                break

        return BootstrapData(
            players=data.get("elements", []),
            teams=data.get("teams", []),
            events=data.get("events", []),
            current_gameweek=current_gw,
        )

    async def get_current_gameweek(self) -> int:
        """
        Get current gameweek.

        Fallback chain: cached bootstrap → fetch → first unfinished → GW 1
        """
        cached_gw = self.bootstrap_cache.current_gameweek()
        if cached_gw is not None:
            return cached_gw

        bootstrap = await self.get_bootstrap()
        if bootstrap.current_gameweek is not None:
            return bootstrap.current_gameweek

        for event in bootstrap.events:
            if not event.get("finished"):
                return event["id"]

        return 1

    async def get_fixtures(self, gameweek: int) -> list[dict[str, Any]]:
        """Fetch fixtures for a gameweek, including live stats and flags."""
        return await self._get(f"{self.base_url}/fixtures/?event={gameweek}")

    async def get_live_event(self, gameweek: int) -> dict[str, Any]:
        """
        Fetch live player data for a gameweek.

        Each element has gameweek-wide `stats` (total_points, bonus, bps, ...)
        and an `explain` list with per-fixture stat values.
        """
        return await self._get(f"{self.base_url}/event/{gameweek}/live/")

    async def get_event_status(self) -> dict[str, Any]:
        """Fetch event status (bonus_added flags per gameweek day)."""
        return await self._get(f"{self.base_url}/event-status/")

    async def get_manager_picks(self, manager_id: int, gameweek: int) -> dict[str, Any]:
        """
        Fetch a manager's picks for a gameweek.

        Returns:
            Dict with picks list, active_chip and entry_history
        """
        return await self._get(
            f"{self.base_url}/entry/{manager_id}/event/{gameweek}/picks/"
        )


def bonus_added_for(event_status: dict[str, Any], gameweek: int) -> bool:
    """Read the bonus_added flag for a gameweek from an event-status payload.

    event-status has one row per match day; bonus counts as added only when
    every row for the gameweek says so.
    """
    rows = [s for s in event_status.get("status", []) if s.get("event") == gameweek]
    return bool(rows) and all(s.get("bonus_added") for s in rows)
