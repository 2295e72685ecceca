"""Shared pytest fixtures for backend tests."""

from collections.abc import Iterable
from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from tenacity import wait_none

from fpl_live.main import app
from fpl_live.services.bps import Position, StatSnapshot
from fpl_live.services.live_totals import PlayerGameweekPoints, SquadPick
from fpl_live.services.polling import LivePollingCoordinator
from fpl_live.services.result_store import InMemoryResultStore
from fpl_live.services.snapshots import (
    FixtureInfo,
    FixtureStatValue,
    LiveSnapshot,
    SquadSnapshot,
)

FETCHED_AT = datetime(2025, 1, 4, 15, 30, tzinfo=UTC)


def make_stat(player_id: int, fixture_id: int = 1, team_id: int = 1, **kwargs) -> StatSnapshot:
    """StatSnapshot with sensible defaults for tests."""
    kwargs.setdefault("position", Position.MID)
    return StatSnapshot(player_id=player_id, fixture_id=fixture_id, team_id=team_id, **kwargs)


def make_fixture(
    fixture_id: int = 1,
    home: int = 1,
    away: int = 2,
    goals: Iterable[tuple[int, int]] = (),
    **kwargs,
) -> FixtureInfo:
    """FixtureInfo with home goals_scored stat values given as (player_id, value)."""
    kwargs.setdefault("gameweek", 20)
    kwargs.setdefault("started", True)
    return FixtureInfo(
        fixture_id=fixture_id,
        home_team_id=home,
        away_team_id=away,
        stat_values=tuple(
            FixtureStatValue("goals_scored", "H", player_id, value)
            for player_id, value in goals
        ),
        **kwargs,
    )


def make_squad(manager_id: int = 91928, gameweek: int = 20, captain: int = 101) -> SquadSnapshot:
    """15 picks for players 101-115, captain doubled."""
    picks = tuple(
        SquadPick(
            player_id=100 + slot,
            position=slot,
            multiplier=(2 if 100 + slot == captain else 1) if slot <= 11 else 0,
            is_captain=100 + slot == captain,
            is_vice_captain=slot == 2,
        )
        for slot in range(1, 16)
    )
    return SquadSnapshot(manager_id=manager_id, gameweek=gameweek, picks=picks)


class FakeSnapshotProvider:
    """Snapshot provider returning queued snapshots (or raising queued errors)."""

    def __init__(self, snapshots: Iterable[LiveSnapshot | Exception] = ()):
        self.snapshots = list(snapshots)
        self.squads: dict[int, SquadSnapshot] = {}
        self.fetch_calls = 0
        self.squad_calls = 0
        self._last: LiveSnapshot | None = None

    async def fetch_snapshot(self, gameweek: int) -> LiveSnapshot:
        self.fetch_calls += 1
        if self.snapshots:
            item = self.snapshots.pop(0)
            if isinstance(item, Exception):
                raise item
            self._last = item
        if self._last is None:
            raise RuntimeError("no snapshot queued")
        return self._last

    async def fetch_squad(self, manager_id: int, gameweek: int) -> SquadSnapshot:
        self.squad_calls += 1
        if manager_id not in self.squads:
            raise LookupError(f"unknown manager {manager_id}")
        return self.squads[manager_id]


def make_snapshot(
    gameweek: int = 20,
    goals: int = 0,
    bonus_added: bool = False,
    fetched_at: datetime = FETCHED_AT,
) -> LiveSnapshot:
    """One fixture between teams 1 and 2. Player 101 scores `goals` for team 1."""
    stats = (
        make_stat(101, minutes=90, goals_scored=goals),
        make_stat(102, minutes=90, assists=1),
        make_stat(201, team_id=2, minutes=90, saves=3, position=Position.GK),
    )
    points = {
        101: PlayerGameweekPoints(101, total_points=2 + 5 * goals, minutes=90, goals_scored=goals),
        102: PlayerGameweekPoints(102, total_points=5, minutes=90, assists=1),
        201: PlayerGameweekPoints(201, total_points=3, minutes=90, saves=3),
    }
    return LiveSnapshot(
        gameweek=gameweek,
        fixtures=(make_fixture(goals=[(101, goals)] if goals else ()),),
        stats=stats,
        points=points,
        bonus_added=bonus_added,
        fetched_at=fetched_at,
    )


@pytest.fixture
def fake_provider() -> FakeSnapshotProvider:
    """Provider with no snapshots queued."""
    return FakeSnapshotProvider()


@pytest.fixture
def store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture
def coordinator(fake_provider: FakeSnapshotProvider, store: InMemoryResultStore):
    """Coordinator with a tiny interval and no retry waits."""
    return LivePollingCoordinator(
        fake_provider,
        store,
        interval_seconds=0.01,
        max_attempts=2,
        retry_wait=wait_none(),
    )


@pytest.fixture
async def async_client():
    """Async HTTP client for testing the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
