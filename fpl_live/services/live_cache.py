"""TTL cache for FPL bootstrap-static data.

The bootstrap payload (~1.8MB: players, teams, gameweeks) rarely changes
during a gameweek but every poll needs it to map players to teams and
positions. BootstrapCache keeps one parsed copy per instance:

1. Explicit object owned by the snapshot provider, no process-wide state
2. Injected clock so TTL expiry is testable without sleeping
3. asyncio.Lock so concurrent misses trigger a single fetch
4. invalidate() to force a refetch (e.g. when the gameweek rolls over)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from cachetools import TTLCache

logger = logging.getLogger(__name__)

BOOTSTRAP_CACHE_TTL = 300  # 5 minutes
BOOTSTRAP_CACHE_KEY = "bootstrap"

Fetcher = Callable[[str], Awaitable[dict[str, Any]]]


class BootstrapCache:
    """Single-entry TTL cache for bootstrap-static with thundering herd protection."""

    def __init__(
        self,
        url: str,
        ttl: float = BOOTSTRAP_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            url: bootstrap-static URL passed to the fetcher
            ttl: Seconds before a cached payload expires
            clock: Monotonic time source (inject a fake one in tests)
        """
        self.url = url
        self.ttl = ttl
        self._clock = clock
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(
            maxsize=1, ttl=ttl, timer=clock
        )
        self._lock = asyncio.Lock()
        self._last_fetch_time: float | None = None

    async def get(self, fetcher: Fetcher) -> dict[str, Any]:
        """Get bootstrap data from cache or fetch if expired/missing.

        Args:
            fetcher: Async function that takes a URL and returns parsed JSON

        Returns:
            Bootstrap-static dict with elements, events, teams arrays

        Raises:
            httpx.HTTPError: If the fetch fails (nothing is cached)
        """
        cached = self._cache.get(BOOTSTRAP_CACHE_KEY)
        if cached is not None:
            logger.debug("Bootstrap cache hit")
            return cached

        async with self._lock:
            # Another coroutine may have populated it while we waited
            cached = self._cache.get(BOOTSTRAP_CACHE_KEY)
            if cached is not None:
                logger.debug("Bootstrap cache hit (after lock)")
                return cached

            logger.info("Fetching bootstrap-static (cache miss)")
            start = time.monotonic()
            try:
                data = await fetcher(self.url)
            except Exception as e:
                logger.error(
                    f"Failed to fetch bootstrap-static: {type(e).__name__}: {e}. "
                    "Next request will retry."
                )
                raise

            if not data.get("elements"):
                logger.error(
                    "Bootstrap response missing 'elements' key. "
                    f"Response keys: {list(data.keys())}. "
                    "API may be under maintenance or rate-limiting."
                )
                return data  # Return but don't cache invalid response

            self._cache[BOOTSTRAP_CACHE_KEY] = data
            self._last_fetch_time = self._clock()
            logger.info(
                f"Cached bootstrap-static: {len(data['elements'])} players, "
                f"fetched in {time.monotonic() - start:.2f}s"
            )
            return data

    def peek(self) -> dict[str, Any] | None:
        """Return the cached payload without fetching, or None if missing/expired."""
        return self._cache.get(BOOTSTRAP_CACHE_KEY)

    def current_gameweek(self) -> int | None:
        """Current gameweek from the cached payload, if any."""
        cached = self.peek()
        if cached is None:
            return None

        for event in cached.get("events", []):
            if event.get("is_current"):
                event_id = event.get("id")
                if event_id is not None:
                    return event_id
                logger.warning(f"Event marked is_current but has no id: {event}")
        return None

    def invalidate(self) -> None:
        """Drop the cached payload so the next get() refetches."""
        self._cache.clear()

    def stats(self) -> dict[str, Any]:
        """Cache statistics for monitoring."""
        return {
            "cached": BOOTSTRAP_CACHE_KEY in self._cache,
            "last_fetch": self._last_fetch_time,
            "ttl_seconds": self.ttl,
        }
