"""Live polling coordinator.

Polls the snapshot provider on a fixed interval while live mode is on and
re-derives results only when something upstream changed:

    provider -> detect_events -> should_refresh? -> derive_results -> store

Change detection diffs each poll against the previous one (fixture stat
values plus per-player points and minutes). Every changed value is a
LiveEvent and bumps a monotonic event counter; a refresh runs only when the
counter has advanced since the last refresh.

Cancellation is cooperative. stop() bumps a generation number and cancels
the loop task; a fetch that completes after stop() sees a stale generation
and is discarded instead of applied.

Upstream failures are retried with exponential backoff. If every attempt
fails, or the store rejects a refresh, the previous results stay in place
(stale but available) and the next poll tries again.
"""

import asyncio
import logging
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from fpl_live.services.bps import StatSnapshot
from fpl_live.services.live_totals import (
    PlayerGameweekPoints,
    PlayerLivePoints,
    TeamTotals,
    aggregate_team,
    build_live_points,
)
from fpl_live.services.ranking import (
    MatchBpsResult,
    find_bps_mismatches,
    predicted_bonus_by_player,
    rank_match,
)
from fpl_live.services.result_store import ResultStore
from fpl_live.services.snapshots import FixtureInfo, LiveSnapshot, SquadSnapshot

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 15.0
EVENT_HISTORY_SIZE = 200

# Per-player values tracked outside fixture stats
POINT_FIELDS = ("total_points", "minutes")

# (fixture_id, event_type, player_id, side) -> value
EventKey = tuple[int | None, str, int, str | None]


class SnapshotProvider(Protocol):
    """Source of live snapshots and manager squads."""

    async def fetch_snapshot(self, gameweek: int) -> LiveSnapshot: ...

    async def fetch_squad(self, manager_id: int, gameweek: int) -> SquadSnapshot: ...


class PollingAlreadyActiveError(Exception):
    """Raised when live mode is started for a gameweek while another is running."""


@dataclass(frozen=True, slots=True)
class LiveEvent:
    """A single observed change between two polls.

    fixture_id and side are None for per-player point changes, and
    event_type is "bonus_added" when the gameweek bonus flag flips.
    """

    gameweek: int
    event_type: str
    player_id: int
    delta: int
    fixture_id: int | None = None
    side: str | None = None


@dataclass(frozen=True, slots=True)
class DerivedResults:
    """Output of one refresh: ranked fixtures, player points and team totals."""

    match_results: tuple[MatchBpsResult, ...]
    live_points: Mapping[int, PlayerLivePoints]
    team_totals: Mapping[int, TeamTotals] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GameweekSummary:
    """Coordinator status for monitoring and the status endpoint."""

    gameweek: int | None
    is_running: bool
    total_fixtures: int
    active_fixtures: int
    finished_fixtures: int
    bonus_added: bool
    event_count: int
    tracked_managers: int
    last_refreshed: datetime | None
    last_error: str | None
    consecutive_failures: int


# =============================================================================
# Pure Functions
# =============================================================================


def should_refresh(last_seen_event_count: int | None, current_event_count: int) -> bool:
    """Re-derive only when the event counter advanced past what was last processed."""
    if last_seen_event_count is None:
        return True
    return current_event_count > last_seen_event_count


def observe_values(
    fixtures: Iterable[FixtureInfo],
    points: Mapping[int, PlayerGameweekPoints],
) -> dict[EventKey, int]:
    """Flatten one poll into comparable values keyed by EventKey."""
    values: dict[EventKey, int] = {}
    for fixture in fixtures:
        for stat in fixture.stat_values:
            key = (fixture.fixture_id, stat.identifier, stat.player_id, stat.side)
            values[key] = stat.value
    for player_id, player_points in points.items():
        for name in POINT_FIELDS:
            values[(None, name, player_id, None)] = getattr(player_points, name)
    return values


def detect_events(
    gameweek: int,
    current: Mapping[EventKey, int],
    previous: Mapping[EventKey, int],
) -> list[LiveEvent]:
    """Diff two observations and return one event per changed value.

    Values that disappear (e.g. a goal overturned and dropped from the
    stats block) count as a change back to zero.
    """
    events = []
    for key in [*current, *(k for k in previous if k not in current)]:
        delta = current.get(key, 0) - previous.get(key, 0)
        if delta == 0:
            continue
        fixture_id, event_type, player_id, side = key
        events.append(
            LiveEvent(
                gameweek=gameweek,
                event_type=event_type,
                player_id=player_id,
                delta=delta,
                fixture_id=fixture_id,
                side=side,
            )
        )
    return events


def rank_snapshot(snapshot: LiveSnapshot) -> tuple[MatchBpsResult, ...]:
    """Rank every fixture that has player stats in the snapshot."""
    fixtures = {f.fixture_id: f for f in snapshot.fixtures}
    stats_by_fixture: dict[int, list[StatSnapshot]] = defaultdict(list)
    for stat in snapshot.stats:
        stats_by_fixture[stat.fixture_id].append(stat)

    results = []
    for fixture_id in sorted(stats_by_fixture):
        fixture = fixtures.get(fixture_id)
        if fixture is None:
            logger.warning(
                f"Skipping {len(stats_by_fixture[fixture_id])} player stats for "
                f"unknown fixture {fixture_id} in GW{snapshot.gameweek}"
            )
            continue
        results.append(
            rank_match(
                fixture_id,
                fixture.home_team_id,
                fixture.away_team_id,
                stats_by_fixture[fixture_id],
                last_updated=snapshot.fetched_at,
            )
        )
    return tuple(results)


def finished_team_ids(fixtures: Iterable[FixtureInfo]) -> set[int]:
    """Teams with at least one finished fixture."""
    return {
        team_id
        for f in fixtures
        if f.finished
        for team_id in (f.home_team_id, f.away_team_id)
    }


def derive_results(
    snapshot: LiveSnapshot,
    squads: Iterable[SquadSnapshot] = (),
) -> DerivedResults:
    """Derive everything the coordinator persists from one snapshot.

    Deterministic: the same snapshot and squads always give equal output.
    Provisional bonus is only folded into points while the upstream hasn't
    added bonus for the gameweek.

    Players yet to play (no minutes, team's fixture not finished) are left
    out of live_points so team totals count them as not started.
    """
    match_results = rank_snapshot(snapshot)
    predicted = {} if snapshot.bonus_added else predicted_bonus_by_player(match_results)
    live_points = build_live_points(
        snapshot.points,
        predicted,
        snapshot.bonus_added,
        finished_team_ids=finished_team_ids(snapshot.fixtures),
    )

    team_totals = {
        squad.manager_id: aggregate_team(squad.picks, live_points, squad.active_chip)
        for squad in squads
    }
    return DerivedResults(
        match_results=match_results,
        live_points=live_points,
        team_totals=team_totals,
    )


# =============================================================================
# Coordinator
# =============================================================================


class LivePollingCoordinator:
    """Keeps live BPS and team totals fresh for one gameweek at a time."""

    def __init__(
        self,
        provider: SnapshotProvider,
        store: ResultStore,
        interval_seconds: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = 3,
        retry_wait: wait_base | None = None,
        check_bps: bool = False,
    ):
        """
        Args:
            provider: Snapshot source (FplSnapshotProvider in production)
            store: Where derived results are upserted
            interval_seconds: Delay between polls in live mode
            max_attempts: Fetch attempts per poll before giving up
            retry_wait: tenacity wait strategy between attempts
                (exponential backoff by default)
            check_bps: Log calculated vs upstream BPS mismatches on refresh
        """
        self.provider = provider
        self.store = store
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=30)
        self.check_bps = check_bps

        self._gameweek: int | None = None
        self._generation = 0
        self._task: asyncio.Task[None] | None = None

        self._observed: dict[EventKey, int] = {}
        self._bonus_added: bool | None = None
        self._event_count = 0
        self._last_seen_event_count: int | None = None
        self._events: deque[LiveEvent] = deque(maxlen=EVENT_HISTORY_SIZE)

        self._managers: set[int] = set()
        self._squads: dict[tuple[int, int], SquadSnapshot] = {}
        self._snapshot: LiveSnapshot | None = None
        self._live_points: Mapping[int, PlayerLivePoints] = {}
        self._last_refreshed: datetime | None = None
        self._last_error: str | None = None
        self._consecutive_failures = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def gameweek(self) -> int | None:
        return self._gameweek

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def event_count(self) -> int:
        return self._event_count

    async def start(self, gameweek: int) -> None:
        """Start live mode for a gameweek. Starting the running gameweek again is a no-op.

        Raises:
            PollingAlreadyActiveError: If live mode is running for another gameweek
        """
        if self.is_running:
            if gameweek == self._gameweek:
                return
            raise PollingAlreadyActiveError(
                f"Live polling already active for GW{self._gameweek}"
            )

        self._select_gameweek(gameweek)
        self._generation += 1
        self._task = asyncio.create_task(
            self._run(gameweek, self._generation), name=f"live-poll-gw{gameweek}"
        )
        logger.info(
            f"Started live polling for GW{gameweek} every {self.interval_seconds}s"
        )

    async def stop(self) -> None:
        """Stop live mode. No fetch is issued or applied after this returns."""
        self._generation += 1
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(
                f"Live polling task for GW{self._gameweek} had crashed: {type(e).__name__}: {e}"
            )
        logger.info(f"Stopped live polling for GW{self._gameweek}")

    async def _run(self, gameweek: int, generation: int) -> None:
        while generation == self._generation:
            await self._poll(gameweek, generation)
            await asyncio.sleep(self.interval_seconds)

    def _select_gameweek(self, gameweek: int) -> None:
        if gameweek == self._gameweek:
            return
        if self._gameweek is not None:
            logger.info(f"Switching live gameweek GW{self._gameweek} -> GW{gameweek}")
        self._gameweek = gameweek
        self._observed = {}
        self._bonus_added = None
        self._last_seen_event_count = None
        self._snapshot = None
        self._live_points = {}
        self._squads.clear()

    # -------------------------------------------------------------------------
    # Managers
    # -------------------------------------------------------------------------

    @property
    def tracked_managers(self) -> frozenset[int]:
        return frozenset(self._managers)

    async def track_manager(self, manager_id: int) -> TeamTotals | None:
        """Include a manager in every refresh.

        If live data is already loaded the manager's totals are computed
        right away instead of waiting for the next upstream change.

        Returns:
            The manager's fresh TeamTotals, or None if nothing is loaded yet
        """
        self._managers.add(manager_id)
        if self._snapshot is None or self._gameweek is None:
            return None

        generation = self._generation
        squads = await self._load_squads([manager_id], self._gameweek)
        if generation != self._generation or not squads:
            return None

        squad = squads[0]
        totals = aggregate_team(squad.picks, self._live_points, squad.active_chip)
        await self.store.upsert_team_totals(manager_id, self._gameweek, totals)
        return totals

    def untrack_manager(self, manager_id: int) -> None:
        self._managers.discard(manager_id)
        for key in [k for k in self._squads if k[0] == manager_id]:
            del self._squads[key]

    async def _load_squads(
        self, manager_ids: Iterable[int], gameweek: int
    ) -> list[SquadSnapshot]:
        """Squads for managers, fetched once per gameweek. Failed fetches are skipped."""
        squads = []
        for manager_id in sorted(manager_ids):
            key = (manager_id, gameweek)
            if key not in self._squads:
                try:
                    self._squads[key] = await self.provider.fetch_squad(manager_id, gameweek)
                except Exception as e:
                    logger.error(
                        f"Failed to fetch squad for manager {manager_id} GW{gameweek}: "
                        f"{type(e).__name__}: {e}. Keeping previous totals."
                    )
                    continue
            squads.append(self._squads[key])
        return squads

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def poll_once(self, gameweek: int | None = None) -> bool:
        """Run a single poll outside the live loop.

        Args:
            gameweek: Gameweek to poll; defaults to the selected one

        Returns:
            True if derived results were refreshed

        Raises:
            ValueError: If no gameweek is given or selected
        """
        if gameweek is not None:
            self._select_gameweek(gameweek)
        if self._gameweek is None:
            raise ValueError("No gameweek selected for polling")
        return await self._poll(self._gameweek, self._generation)

    async def _fetch_with_retry(self, gameweek: int) -> LiveSnapshot:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(self.provider.fetch_snapshot, gameweek)

    async def _poll(self, gameweek: int, generation: int) -> bool:
        try:
            snapshot = await self._fetch_with_retry(gameweek)
        except Exception as e:
            if generation != self._generation:
                return False
            self._record_failure(
                f"Live poll for GW{gameweek} failed after {self.max_attempts} attempts", e
            )
            return False

        if generation != self._generation:
            logger.info(f"Discarding GW{gameweek} snapshot that arrived after stop")
            return False

        self._consecutive_failures = 0
        self._last_error = None
        self._record_events(snapshot)
        self._snapshot = snapshot

        if not should_refresh(self._last_seen_event_count, self._event_count):
            logger.debug(f"GW{gameweek}: no new events, skipping refresh")
            return False

        try:
            return await self._refresh(snapshot, generation)
        except Exception as e:
            if generation != self._generation:
                return False
            self._record_failure(f"Live refresh for GW{gameweek} failed", e)
            return False

    def _record_failure(self, message: str, error: Exception) -> None:
        self._consecutive_failures += 1
        self._last_error = f"{type(error).__name__}: {error}"
        logger.error(
            f"{message} ({self._consecutive_failures} in a row): {self._last_error}. "
            "Keeping last known results."
        )

    def _record_events(self, snapshot: LiveSnapshot) -> None:
        observed = observe_values(snapshot.fixtures, snapshot.points)
        events = detect_events(snapshot.gameweek, observed, self._observed)

        if self._bonus_added is not None and snapshot.bonus_added != self._bonus_added:
            events.append(
                LiveEvent(
                    gameweek=snapshot.gameweek,
                    event_type="bonus_added",
                    player_id=0,
                    delta=1 if snapshot.bonus_added else -1,
                )
            )

        self._observed = observed
        self._bonus_added = snapshot.bonus_added
        self._event_count += len(events)
        self._events.extend(events)
        if events:
            logger.info(f"GW{snapshot.gameweek}: {len(events)} new events")

    async def _refresh(self, snapshot: LiveSnapshot, generation: int) -> bool:
        squads = await self._load_squads(self._managers, snapshot.gameweek)
        if generation != self._generation:
            logger.info(f"Discarding GW{snapshot.gameweek} refresh that finished after stop")
            return False

        derived = derive_results(snapshot, squads)

        if self.check_bps:
            upstream_bps = {pid: p.bps for pid, p in snapshot.points.items()}
            for result in derived.match_results:
                find_bps_mismatches(result, upstream_bps)

        for result in derived.match_results:
            await self.store.upsert_match_result(snapshot.gameweek, result)
        for manager_id, totals in derived.team_totals.items():
            await self.store.upsert_team_totals(manager_id, snapshot.gameweek, totals)

        self._live_points = derived.live_points
        self._last_seen_event_count = self._event_count
        self._last_refreshed = snapshot.fetched_at
        logger.info(
            f"Refreshed GW{snapshot.gameweek}: {len(derived.match_results)} fixtures, "
            f"{len(derived.team_totals)} managers"
        )
        return True

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def recent_events(self, limit: int = 10) -> list[LiveEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._events))[:limit]

    def summary(self) -> GameweekSummary:
        fixtures = self._snapshot.fixtures if self._snapshot else ()
        return GameweekSummary(
            gameweek=self._gameweek,
            is_running=self.is_running,
            total_fixtures=len(fixtures),
            active_fixtures=sum(1 for f in fixtures if f.is_active),
            finished_fixtures=sum(1 for f in fixtures if f.finished),
            bonus_added=bool(self._bonus_added),
            event_count=self._event_count,
            tracked_managers=len(self._managers),
            last_refreshed=self._last_refreshed,
            last_error=self._last_error,
            consecutive_failures=self._consecutive_failures,
        )

    def check_consistency(self) -> list[str]:
        """Sanity checks on the last snapshot. Returns a list of issues (empty if fine)."""
        if self._snapshot is None:
            return []

        issues = []
        started = [f for f in self._snapshot.fixtures if f.started]
        played = [p for p in self._snapshot.points.values() if p.minutes > 0]
        if not started and played:
            issues.append("Live player data exists but no started fixtures found")
        if any(f.is_active for f in started) and not played:
            issues.append("Active fixtures exist but no players with minutes played")
        return issues
