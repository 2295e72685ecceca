"""Storage for derived live results.

MatchBpsResult is keyed by fixture and TeamTotals by (manager, gameweek).
Both stores upsert: a newer result replaces the old one wholesale, and the
last write wins since every write is derived from a complete snapshot.
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Protocol

import asyncpg

from fpl_live.services.bps import BpsBreakdown, ScoredPlayer
from fpl_live.services.live_totals import CaptainSummary, TeamTotals
from fpl_live.services.ranking import MatchBpsResult

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    """Where the coordinator puts derived results and the API reads them."""

    async def upsert_match_result(self, gameweek: int, result: MatchBpsResult) -> None: ...

    async def upsert_team_totals(
        self, manager_id: int, gameweek: int, totals: TeamTotals
    ) -> None: ...

    async def get_match_result(self, fixture_id: int) -> MatchBpsResult | None: ...

    async def list_match_results(self, gameweek: int) -> list[MatchBpsResult]: ...

    async def get_team_totals(self, manager_id: int, gameweek: int) -> TeamTotals | None: ...


class InMemoryResultStore:
    """Dict-backed store, used when no database is configured and in tests."""

    def __init__(self) -> None:
        self._matches: dict[int, tuple[int, MatchBpsResult]] = {}
        self._totals: dict[tuple[int, int], TeamTotals] = {}

    async def upsert_match_result(self, gameweek: int, result: MatchBpsResult) -> None:
        self._matches[result.fixture_id] = (gameweek, result)

    async def upsert_team_totals(
        self, manager_id: int, gameweek: int, totals: TeamTotals
    ) -> None:
        self._totals[(manager_id, gameweek)] = totals

    async def get_match_result(self, fixture_id: int) -> MatchBpsResult | None:
        entry = self._matches.get(fixture_id)
        return entry[1] if entry else None

    async def list_match_results(self, gameweek: int) -> list[MatchBpsResult]:
        return sorted(
            (result for gw, result in self._matches.values() if gw == gameweek),
            key=lambda r: r.fixture_id,
        )

    async def get_team_totals(self, manager_id: int, gameweek: int) -> TeamTotals | None:
        return self._totals.get((manager_id, gameweek))


# =============================================================================
# PostgreSQL
# =============================================================================


def _players_to_json(result: MatchBpsResult) -> str:
    return json.dumps([asdict(p) for p in result.players])


def _players_from_json(raw: Any) -> tuple[ScoredPlayer, ...]:
    # asyncpg returns JSONB as str unless a codec is registered
    rows = json.loads(raw) if isinstance(raw, str) else raw
    return tuple(
        ScoredPlayer(**{**row, "breakdown": BpsBreakdown(**row["breakdown"])})
        for row in rows
    )


def _totals_to_json(totals: TeamTotals) -> str:
    return json.dumps(asdict(totals))


def _totals_from_json(raw: Any) -> TeamTotals:
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    for key in ("captain", "vice_captain"):
        if data.get(key) is not None:
            data[key] = CaptainSummary(**data[key])
    data["not_started_player_ids"] = tuple(data.get("not_started_player_ids") or ())
    return TeamTotals(**data)


def _match_from_row(row: Any) -> MatchBpsResult:
    last_updated = row["last_updated"]
    if isinstance(last_updated, str):
        last_updated = datetime.fromisoformat(last_updated)
    return MatchBpsResult(
        fixture_id=row["fixture_id"],
        home_team_id=row["home_team_id"],
        away_team_id=row["away_team_id"],
        players=_players_from_json(row["players"]),
        last_updated=last_updated,
    )


class PostgresResultStore:
    """asyncpg-backed store using INSERT ... ON CONFLICT upserts.

    Tables are created by migrations/001_live_results.sql.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def upsert_match_result(self, gameweek: int, result: MatchBpsResult) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO live_match_bps (
                    fixture_id, gameweek, home_team_id, away_team_id, players, last_updated
                )
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (fixture_id) DO UPDATE SET
                    gameweek = EXCLUDED.gameweek,
                    home_team_id = EXCLUDED.home_team_id,
                    away_team_id = EXCLUDED.away_team_id,
                    players = EXCLUDED.players,
                    last_updated = EXCLUDED.last_updated,
                    updated_at = NOW()
                """,
                result.fixture_id,
                gameweek,
                result.home_team_id,
                result.away_team_id,
                _players_to_json(result),  # JSONB requires JSON string
                result.last_updated,
            )

    async def upsert_team_totals(
        self, manager_id: int, gameweek: int, totals: TeamTotals
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO live_team_totals (manager_id, gameweek, totals)
                VALUES ($1, $2, $3)
                ON CONFLICT (manager_id, gameweek) DO UPDATE SET
                    totals = EXCLUDED.totals,
                    updated_at = NOW()
                """,
                manager_id,
                gameweek,
                _totals_to_json(totals),
            )

    async def get_match_result(self, fixture_id: int) -> MatchBpsResult | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT fixture_id, home_team_id, away_team_id, players, last_updated
                FROM live_match_bps
                WHERE fixture_id = $1
                """,
                fixture_id,
            )
        return _match_from_row(row) if row else None

    async def list_match_results(self, gameweek: int) -> list[MatchBpsResult]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT fixture_id, home_team_id, away_team_id, players, last_updated
                FROM live_match_bps
                WHERE gameweek = $1
                ORDER BY fixture_id
                """,
                gameweek,
            )
        return [_match_from_row(row) for row in rows]

    async def get_team_totals(self, manager_id: int, gameweek: int) -> TeamTotals | None:
        async with self.pool.acquire() as conn:
            raw = await conn.fetchval(
                "SELECT totals FROM live_team_totals WHERE manager_id = $1 AND gameweek = $2",
                manager_id,
                gameweek,
            )
        if raw is None:
            return None
        return _totals_from_json(raw)
