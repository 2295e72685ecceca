#!/usr/bin/env python
"""
Run the live polling coordinator without the API server.

Useful on match days when results only need to land in the database, or to
check a single snapshot by hand.

Usage:
    python -m scripts.run_live_poller                         # Current GW, poll until Ctrl+C
    python -m scripts.run_live_poller --gameweek 12 --once    # One poll, print summary
    python -m scripts.run_live_poller --manager 91928 --manager 12345
"""

import argparse
import asyncio
import logging

from dotenv import load_dotenv
from tenacity import wait_exponential

# Load environment
load_dotenv(".env.local")
load_dotenv(".env")

from fpl_live.config import get_settings  # noqa: E402
from fpl_live.db import close_pool, init_pool  # noqa: E402
from fpl_live.services.fpl_client import FplApiClient  # noqa: E402
from fpl_live.services.live_cache import BootstrapCache  # noqa: E402
from fpl_live.services.polling import LivePollingCoordinator  # noqa: E402
from fpl_live.services.ranking import bonus_candidates, team_bps_totals  # noqa: E402
from fpl_live.services.result_store import (  # noqa: E402
    InMemoryResultStore,
    PostgresResultStore,
    ResultStore,
)
from fpl_live.services.snapshots import FplSnapshotProvider  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def print_results(store: ResultStore, gameweek: int, managers: list[int]) -> None:
    """Print predicted bonus per fixture and totals per manager."""
    for result in await store.list_match_results(gameweek):
        home_bps, away_bps = team_bps_totals(result)
        bonus = [
            f"{p.web_name or p.player_id} {p.predicted_bonus} ({p.total_bps})"
            for p in bonus_candidates(result)
        ]
        print(
            f"Fixture {result.fixture_id} (BPS {home_bps}-{away_bps}): "
            f"{', '.join(bonus) or 'no bonus yet'}"
        )

    for manager_id in managers:
        totals = await store.get_team_totals(manager_id, gameweek)
        if totals is None:
            print(f"Manager {manager_id}: no totals")
            continue
        print(
            f"Manager {manager_id}: {totals.active_points_final} pts "
            f"({totals.predicted_bonus} predicted bonus, "
            f"{totals.players_not_started} yet to play)"
        )


async def run(gameweek: int | None, managers: list[int], interval: float, once: bool) -> None:
    settings = get_settings()
    base_url = settings.fpl_api_base_url.rstrip("/")

    store: ResultStore
    if settings.database_url:
        store = PostgresResultStore(await init_pool())
    else:
        logger.warning("DATABASE_URL not set, results are only kept in memory")
        store = InMemoryResultStore()

    async with FplApiClient(
        base_url=base_url,
        requests_per_second=settings.requests_per_second,
        max_concurrent=settings.max_concurrent_requests,
        bootstrap_cache=BootstrapCache(
            f"{base_url}/bootstrap-static/", ttl=settings.cache_ttl_bootstrap
        ),
    ) as client:
        if gameweek is None:
            gameweek = await client.get_current_gameweek()
            logger.info(f"Using current gameweek: GW{gameweek}")

        coordinator = LivePollingCoordinator(
            FplSnapshotProvider(client),
            store,
            interval_seconds=interval,
            max_attempts=settings.poll_max_attempts,
            retry_wait=wait_exponential(
                multiplier=1, min=1, max=settings.poll_backoff_max_seconds
            ),
            check_bps=settings.poll_check_bps,
        )
        for manager_id in managers:
            await coordinator.track_manager(manager_id)

        try:
            if once:
                await coordinator.poll_once(gameweek)
                await print_results(store, gameweek, managers)
                return

            await coordinator.start(gameweek)
            while coordinator.is_running:
                await asyncio.sleep(interval)
                summary = coordinator.summary()
                logger.info(
                    f"GW{gameweek}: {summary.active_fixtures} active, "
                    f"{summary.finished_fixtures}/{summary.total_fixtures} finished, "
                    f"{summary.event_count} events, bonus_added={summary.bonus_added}"
                )
        finally:
            await coordinator.stop()
            await close_pool()


async def main() -> None:
    """Main entry point with argument parsing."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Live BPS and team totals poller")
    parser.add_argument("--gameweek", type=int, help="Gameweek to poll (default: current)")
    parser.add_argument(
        "--manager",
        type=int,
        action="append",
        default=[],
        help="Manager ID to track (repeatable)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.poll_interval_seconds,
        help="Seconds between polls",
    )
    parser.add_argument(
        "--once", action="store_true", help="Poll a single snapshot and print results"
    )
    args = parser.parse_args()

    await run(args.gameweek, args.manager, args.interval, args.once)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted, live polling stopped")
