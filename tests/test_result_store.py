"""Tests for live result stores (in-memory and PostgreSQL with mocked pool)."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from fpl_live.services.live_totals import CaptainSummary, TeamTotals
from fpl_live.services.ranking import rank_match
from fpl_live.services.result_store import InMemoryResultStore, PostgresResultStore
from tests.conftest import FETCHED_AT, make_stat


@pytest.fixture
def match_result():
    stats = [make_stat(5, minutes=90, goals_scored=1, web_name="Palmer"), make_stat(6, saves=2)]
    return rank_match(101, 1, 2, stats, last_updated=FETCHED_AT)


@pytest.fixture
def team_totals() -> TeamTotals:
    return TeamTotals(
        goals=1,
        active_points_final=52,
        active_points_no_bonus=49,
        predicted_bonus=3,
        captain=CaptainSummary(player_id=5, multiplier=2, points=12, multiplied_points=24, bonus=3),
        players_not_started=2,
        not_started_player_ids=(14, 15),
        active_chip="3xc",
    )


@pytest.fixture
def mock_conn() -> MagicMock:
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock()
    conn.fetchrow = AsyncMock()
    conn.fetchval = AsyncMock()
    return conn


@pytest.fixture
def pg_store(mock_conn: MagicMock) -> PostgresResultStore:
    """PostgresResultStore over a mocked asyncpg pool."""
    mock_acquire = MagicMock()
    mock_acquire.__aenter__ = AsyncMock(return_value=mock_conn)
    mock_acquire.__aexit__ = AsyncMock(return_value=None)

    mock_pool = MagicMock()
    mock_pool.acquire.return_value = mock_acquire
    return PostgresResultStore(mock_pool)


class TestInMemoryResultStore:
    """Tests for InMemoryResultStore."""

    async def test_match_result_roundtrip(self, match_result):
        store = InMemoryResultStore()

        await store.upsert_match_result(20, match_result)

        assert await store.get_match_result(101) == match_result
        assert await store.get_match_result(999) is None

    async def test_upsert_replaces(self, match_result):
        """A newer result for the same fixture replaces the old one wholesale."""
        store = InMemoryResultStore()
        newer = rank_match(101, 1, 2, [make_stat(9, saves=5)], last_updated=FETCHED_AT)

        await store.upsert_match_result(20, match_result)
        await store.upsert_match_result(20, newer)

        assert await store.get_match_result(101) == newer
        assert await store.list_match_results(20) == [newer]

    async def test_list_filters_by_gameweek(self, match_result):
        """Only fixtures stored for the requested gameweek are listed, by fixture id."""
        store = InMemoryResultStore()
        other = rank_match(50, 3, 4, [], last_updated=FETCHED_AT)
        later = rank_match(300, 5, 6, [], last_updated=FETCHED_AT)

        await store.upsert_match_result(20, match_result)
        await store.upsert_match_result(20, other)
        await store.upsert_match_result(21, later)

        assert [r.fixture_id for r in await store.list_match_results(20)] == [50, 101]
        assert await store.list_match_results(22) == []

    async def test_team_totals_keyed_by_manager_and_gameweek(self, team_totals):
        store = InMemoryResultStore()

        await store.upsert_team_totals(91928, 20, team_totals)

        assert await store.get_team_totals(91928, 20) == team_totals
        assert await store.get_team_totals(91928, 21) is None
        assert await store.get_team_totals(1, 20) is None


class TestPostgresResultStore:
    """Tests for PostgresResultStore SQL and JSON conversion."""

    async def test_upsert_match_result(self, pg_store, mock_conn, match_result):
        """Upsert should write players as a JSON string keyed by fixture."""
        await pg_store.upsert_match_result(20, match_result)

        mock_conn.execute.assert_awaited_once()
        sql, *params = mock_conn.execute.call_args.args
        assert "ON CONFLICT (fixture_id) DO UPDATE" in sql
        assert params[:4] == [101, 20, 1, 2]
        players = json.loads(params[4])
        assert players[0]["player_id"] == 5
        assert players[0]["breakdown"]["attacking"] == 24
        assert params[5] == FETCHED_AT

    async def test_get_match_result_rebuilds_dataclasses(
        self, pg_store, mock_conn, match_result
    ):
        """Rows read back should equal the result that was written."""
        await pg_store.upsert_match_result(20, match_result)
        players_json = mock_conn.execute.call_args.args[5]
        mock_conn.fetchrow.return_value = {
            "fixture_id": 101,
            "home_team_id": 1,
            "away_team_id": 2,
            "players": players_json,
            "last_updated": FETCHED_AT,
        }

        result = await pg_store.get_match_result(101)

        assert result == match_result

    async def test_get_match_result_missing(self, pg_store, mock_conn):
        mock_conn.fetchrow.return_value = None

        assert await pg_store.get_match_result(101) is None

    async def test_list_match_results(self, pg_store, mock_conn):
        mock_conn.fetch.return_value = [
            {
                "fixture_id": 7,
                "home_team_id": 1,
                "away_team_id": 2,
                "players": "[]",
                "last_updated": FETCHED_AT,
            }
        ]

        results = await pg_store.list_match_results(20)

        assert [r.fixture_id for r in results] == [7]
        assert results[0].players == ()
        assert mock_conn.fetch.call_args.args[1] == 20

    async def test_team_totals_roundtrip(self, pg_store, mock_conn, team_totals):
        """Totals should be stored as JSON and rebuilt with nested captain."""
        await pg_store.upsert_team_totals(91928, 20, team_totals)
        sql, manager_id, gameweek, raw = mock_conn.execute.call_args.args
        assert "ON CONFLICT (manager_id, gameweek) DO UPDATE" in sql
        assert (manager_id, gameweek) == (91928, 20)

        mock_conn.fetchval.return_value = raw
        result = await pg_store.get_team_totals(91928, 20)

        assert result == team_totals
        assert isinstance(result.captain, CaptainSummary)

    async def test_team_totals_missing(self, pg_store, mock_conn):
        mock_conn.fetchval.return_value = None

        assert await pg_store.get_team_totals(91928, 20) is None
