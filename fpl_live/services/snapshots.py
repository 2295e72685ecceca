"""Snapshot provider: turns FPL API payloads into live engine inputs.

One poll reads four endpoints (bootstrap-static via its cache, fixtures,
event live, event-status) and produces a LiveSnapshot. Manager squads come
from the picks endpoint and are fetched separately, once per gameweek.

Per-fixture StatSnapshots are built from the live `explain` entries, which
carry stat values per fixture (double gameweeks have several). Detailed
BPS stats the public API doesn't publish (key passes, recoveries, ...) are
left at zero.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import Any

from fpl_live.services.bps import Position, StatSnapshot
from fpl_live.services.fpl_client import FplApiClient, bonus_added_for
from fpl_live.services.live_totals import PlayerGameweekPoints, SquadPick

logger = logging.getLogger(__name__)

# StatSnapshot fields that can be filled straight from an FPL stat identifier
_IDENTITY_FIELDS = {"player_id", "fixture_id", "team_id", "position", "web_name"}
SNAPSHOT_STAT_FIELDS = frozenset(
    f.name for f in fields(StatSnapshot) if f.name not in _IDENTITY_FIELDS
)


def _safe_int(val: Any, default: int = 0) -> int:
    """Safely convert API value to int, handling None and empty strings."""
    if val is None or val == "":
        return default
    try:
        return int(val)
    except (ValueError, TypeError):
        return default


# =============================================================================
# Data types
# =============================================================================


@dataclass(frozen=True, slots=True)
class FixtureStatValue:
    """One entry of a fixture's stats block, e.g. goals_scored by player 5 (home)."""

    identifier: str
    side: str  # "H" or "A"
    player_id: int
    value: int


@dataclass(frozen=True, slots=True)
class FixtureInfo:
    """Fixture identity and status flags for a gameweek."""

    fixture_id: int
    gameweek: int | None
    home_team_id: int
    away_team_id: int
    started: bool = False
    finished: bool = False
    finished_provisional: bool = False
    stat_values: tuple[FixtureStatValue, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.started and not self.finished


@dataclass(frozen=True, slots=True)
class SquadSnapshot:
    """A manager's 15 picks for a gameweek plus the (opaque) active chip."""

    manager_id: int
    gameweek: int
    picks: tuple[SquadPick, ...]
    active_chip: str | None = None


@dataclass(frozen=True, slots=True)
class LiveSnapshot:
    """Everything one poll of the upstream provides for a gameweek."""

    gameweek: int
    fixtures: tuple[FixtureInfo, ...]
    stats: tuple[StatSnapshot, ...]
    points: Mapping[int, PlayerGameweekPoints] = field(default_factory=dict)
    bonus_added: bool = False
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# =============================================================================
# Parsers
# =============================================================================


def parse_fixtures(fixtures: list[dict[str, Any]]) -> tuple[FixtureInfo, ...]:
    """Parse the fixtures endpoint into FixtureInfo records."""
    parsed = []
    for f in fixtures:
        stat_values = []
        for stat in f.get("stats") or []:
            identifier = stat.get("identifier", "")
            for side, key in (("H", "h"), ("A", "a")):
                for entry in stat.get(key) or []:
                    stat_values.append(
                        FixtureStatValue(
                            identifier=identifier,
                            side=side,
                            player_id=_safe_int(entry.get("element")),
                            value=_safe_int(entry.get("value")),
                        )
                    )

        parsed.append(
            FixtureInfo(
                fixture_id=f["id"],
                gameweek=f.get("event"),  # NULL if postponed
                home_team_id=f["team_h"],
                away_team_id=f["team_a"],
                started=bool(f.get("started")),
                finished=bool(f.get("finished")),
                finished_provisional=bool(f.get("finished_provisional")),
                stat_values=tuple(stat_values),
            )
        )
    return tuple(parsed)


def parse_stat_snapshots(
    live: dict[str, Any],
    players: Mapping[int, dict[str, Any]],
) -> tuple[StatSnapshot, ...]:
    """Build one StatSnapshot per (player, fixture) from live explain entries.

    Players missing from bootstrap, and explain entries with every value at
    zero, are skipped.

    Args:
        live: event/{gw}/live payload
        players: Dict mapping player_id -> bootstrap element

    Returns:
        Snapshots in upstream element order
    """
    snapshots = []
    for element in live.get("elements", []):
        player_id = _safe_int(element.get("id"))
        player = players.get(player_id)
        if player is None:
            logger.debug(f"Skipping live element {player_id}: not in bootstrap")
            continue

        for explain in element.get("explain") or []:
            values = {
                s.get("identifier"): _safe_int(s.get("value"))
                for s in explain.get("stats") or []
                if s.get("identifier") in SNAPSHOT_STAT_FIELDS
            }
            if not any(values.values()):
                continue

            snapshots.append(
                StatSnapshot(
                    player_id=player_id,
                    fixture_id=_safe_int(explain.get("fixture")),
                    team_id=_safe_int(player.get("team")),
                    position=Position.from_element_type(_safe_int(player.get("element_type"))),
                    web_name=player.get("web_name", ""),
                    **values,
                )
            )
    return tuple(snapshots)


def parse_gameweek_points(
    live: dict[str, Any],
    players: Mapping[int, dict[str, Any]] | None = None,
) -> dict[int, PlayerGameweekPoints]:
    """Parse gameweek-wide live points per player from the live payload.

    The live payload has no team ids; they come from bootstrap elements
    in `players` when given.
    """
    players = players or {}
    points = {}
    for element in live.get("elements", []):
        player_id = _safe_int(element.get("id"))
        stats = element.get("stats") or {}
        player = players.get(player_id)
        points[player_id] = PlayerGameweekPoints(
            player_id=player_id,
            total_points=_safe_int(stats.get("total_points")),
            bonus=_safe_int(stats.get("bonus")),
            bps=_safe_int(stats.get("bps")),
            minutes=_safe_int(stats.get("minutes")),
            goals_scored=_safe_int(stats.get("goals_scored")),
            assists=_safe_int(stats.get("assists")),
            clean_sheets=_safe_int(stats.get("clean_sheets")),
            yellow_cards=_safe_int(stats.get("yellow_cards")),
            red_cards=_safe_int(stats.get("red_cards")),
            saves=_safe_int(stats.get("saves")),
            team_id=_safe_int(player.get("team")) if player else None,
        )
    return points


def parse_squad(manager_id: int, gameweek: int, data: dict[str, Any]) -> SquadSnapshot:
    """Parse the picks endpoint into a SquadSnapshot."""
    picks = tuple(
        SquadPick(
            player_id=_safe_int(p.get("element")),
            position=_safe_int(p.get("position")),
            multiplier=_safe_int(p.get("multiplier"), default=1),
            is_captain=bool(p.get("is_captain")),
            is_vice_captain=bool(p.get("is_vice_captain")),
        )
        for p in data.get("picks", [])
    )
    return SquadSnapshot(
        manager_id=manager_id,
        gameweek=gameweek,
        picks=picks,
        active_chip=data.get("active_chip"),
    )


# =============================================================================
# Provider
# =============================================================================


class FplSnapshotProvider:
    """Reads live gameweek snapshots and squads from the FPL API."""

    def __init__(
        self,
        client: FplApiClient,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.client = client
        self._clock = clock

    async def fetch_snapshot(self, gameweek: int) -> LiveSnapshot:
        """Fetch and parse everything needed for one live poll.

        Raises:
            httpx.HTTPError: If any upstream request fails after retries
        """
        bootstrap, fixtures, live, event_status = await asyncio.gather(
            self.client.get_bootstrap_static(),
            self.client.get_fixtures(gameweek),
            self.client.get_live_event(gameweek),
            self.client.get_event_status(),
        )

        players = {p["id"]: p for p in bootstrap.get("elements", []) if "id" in p}
        snapshot = LiveSnapshot(
            gameweek=gameweek,
            fixtures=parse_fixtures(fixtures),
            stats=parse_stat_snapshots(live, players),
            points=parse_gameweek_points(live, players),
            bonus_added=bonus_added_for(event_status, gameweek),
            fetched_at=self._clock(),
        )
        logger.debug(
            f"Fetched GW{gameweek} snapshot: {len(snapshot.fixtures)} fixtures, "
            f"{len(snapshot.stats)} player stats, bonus_added={snapshot.bonus_added}"
        )
        return snapshot

    async def fetch_squad(self, manager_id: int, gameweek: int) -> SquadSnapshot:
        """Fetch a manager's picks for a gameweek."""
        data = await self.client.get_manager_picks(manager_id, gameweek)
        return parse_squad(manager_id, gameweek, data)
