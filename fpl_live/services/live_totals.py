"""Live team totals for a manager's 15-player squad.

Pure functions: given the squad picks and the current per-player points,
compute active (slots 1-11) and bench (slots 12-15) totals with and without
bonus, the captain breakdown and box-score sums. Nothing is cached or
patched incrementally; every call recomputes from its inputs.

Multipliers (from the picks endpoint):
    0 = unused bench slot, 1 = playing, 2 = captain, 3 = triple captain
Captaincy multipliers only ever apply to active slots.
"""

import logging
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ACTIVE_SLOTS = 11
SQUAD_SIZE = 15


# =============================================================================
# Data types
# =============================================================================


@dataclass(frozen=True, slots=True)
class SquadPick:
    """One of a manager's 15 selections for a gameweek."""

    player_id: int
    position: int  # Squad slot 1-15, not the playing position
    multiplier: int = 1
    is_captain: bool = False
    is_vice_captain: bool = False

    @property
    def is_active(self) -> bool:
        return self.position <= ACTIVE_SLOTS


@dataclass(frozen=True, slots=True)
class PlayerGameweekPoints:
    """Upstream live points and box score for a player across the gameweek."""

    player_id: int
    total_points: int = 0
    bonus: int = 0
    bps: int = 0
    minutes: int = 0
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    saves: int = 0
    team_id: int | None = None


@dataclass(frozen=True, slots=True)
class PlayerLivePoints:
    """Aggregator input: a player's points with bonus already folded in.

    bonus is the part of total_points that came from bonus, and
    bonus_provisional says whether it's a live prediction or confirmed.
    """

    player_id: int
    total_points: int
    bonus: int = 0
    bonus_provisional: bool = False
    minutes: int = 0
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    saves: int = 0

    @property
    def points_no_bonus(self) -> int:
        return self.total_points - self.bonus


@dataclass(frozen=True, slots=True)
class CaptainSummary:
    """Captain (or vice-captain) points before and after the multiplier.

    Lets consumers show "Captain: 10 pts (x2 = 20)".
    """

    player_id: int
    multiplier: int
    points: int
    multiplied_points: int
    bonus: int = 0


@dataclass(frozen=True, slots=True)
class TeamTotals:
    """Derived live totals for one manager and gameweek."""

    # Box score across all 15 picks
    goals: int = 0
    assists: int = 0
    clean_sheets: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    saves: int = 0

    # Points
    active_points_no_bonus: int = 0
    active_points_final: int = 0
    bench_points_no_bonus: int = 0
    bench_points_final: int = 0

    # Bonus on active picks, multiplier applied
    predicted_bonus: int = 0
    final_bonus: int = 0

    captain: CaptainSummary | None = None
    vice_captain: CaptainSummary | None = None

    # Picks with no points yet (not started or data not arrived)
    players_not_started: int = 0
    not_started_player_ids: tuple[int, ...] = ()

    active_chip: str | None = None


# =============================================================================
# Pure Functions
# =============================================================================


def effective_multiplier(pick: SquadPick) -> int:
    """Multiplier applied to a pick's points: its own on active slots, 1 on the bench."""
    return pick.multiplier if pick.is_active else 1


def _captain_summary(
    pick: SquadPick | None,
    points_by_player: Mapping[int, PlayerLivePoints],
) -> CaptainSummary | None:
    if pick is None:
        return None

    points = points_by_player.get(pick.player_id)
    raw = points.total_points if points else 0
    multiplier = effective_multiplier(pick)
    return CaptainSummary(
        player_id=pick.player_id,
        multiplier=multiplier,
        points=raw,
        multiplied_points=raw * multiplier,
        bonus=points.bonus if points else 0,
    )


def aggregate_team(
    picks: Iterable[SquadPick],
    points_by_player: Mapping[int, PlayerLivePoints],
    active_chip: str | None = None,
) -> TeamTotals:
    """Compute live team totals from squad picks and current player points.

    Rules:
    - Active picks (slot <= 11) contribute points x multiplier
    - Bench picks (slot 12-15) contribute raw points, never multiplied
    - *_no_bonus totals use total_points - bonus as the base
    - Box-score sums cover all picks regardless of slot or multiplier
    - Picks missing from points_by_player contribute 0 and are reported
      in players_not_started

    Args:
        picks: The manager's squad picks
        points_by_player: Dict mapping player_id -> PlayerLivePoints
        active_chip: Chip name passed through untouched

    Returns:
        TeamTotals recomputed from scratch
    """
    picks = sorted(picks, key=lambda p: p.position)
    if len(picks) != SQUAD_SIZE:
        logger.warning(f"Aggregating squad with {len(picks)} picks, expected {SQUAD_SIZE}")

    goals = assists = clean_sheets = yellow_cards = red_cards = saves = 0
    active_final = active_no_bonus = bench_final = bench_no_bonus = 0
    predicted_bonus = final_bonus = 0
    not_started: list[int] = []

    for pick in picks:
        points = points_by_player.get(pick.player_id)
        if points is None:
            not_started.append(pick.player_id)
            continue

        goals += points.goals_scored
        assists += points.assists
        clean_sheets += points.clean_sheets
        yellow_cards += points.yellow_cards
        red_cards += points.red_cards
        saves += points.saves

        if not pick.is_active:
            bench_final += points.total_points
            bench_no_bonus += points.points_no_bonus
            continue

        multiplier = pick.multiplier
        active_final += points.total_points * multiplier
        active_no_bonus += points.points_no_bonus * multiplier

        if points.bonus_provisional:
            predicted_bonus += points.bonus * multiplier
        else:
            final_bonus += points.bonus * multiplier

    captain = next((p for p in picks if p.is_captain), None)
    vice_captain = next((p for p in picks if p.is_vice_captain), None)

    return TeamTotals(
        goals=goals,
        assists=assists,
        clean_sheets=clean_sheets,
        yellow_cards=yellow_cards,
        red_cards=red_cards,
        saves=saves,
        active_points_no_bonus=active_no_bonus,
        active_points_final=active_final,
        bench_points_no_bonus=bench_no_bonus,
        bench_points_final=bench_final,
        predicted_bonus=predicted_bonus,
        final_bonus=final_bonus,
        captain=_captain_summary(captain, points_by_player),
        vice_captain=_captain_summary(vice_captain, points_by_player),
        players_not_started=len(not_started),
        not_started_player_ids=tuple(not_started),
        active_chip=active_chip,
    )


def build_live_points(
    upstream: Mapping[int, PlayerGameweekPoints],
    predicted_bonus: Mapping[int, int],
    bonus_added: bool,
    finished_team_ids: Collection[int] | None = None,
) -> dict[int, PlayerLivePoints]:
    """Build the aggregator's per-player input from upstream live points.

    When bonus_added is True the upstream points are final and used as-is.
    Otherwise any bonus the upstream already reports is swapped for the
    provisional prediction, so bonus is never counted twice.

    The live payload lists every player, played or not. When
    finished_team_ids is given, players with no minutes whose team has no
    finished fixture are left out, so aggregate_team reports them in
    players_not_started.

    Args:
        upstream: Dict mapping player_id -> live gameweek points
        predicted_bonus: Dict mapping player_id -> provisional bonus (0-3 per fixture)
        bonus_added: Whether the upstream has finalised bonus for the gameweek
        finished_team_ids: Teams with at least one finished fixture this gameweek

    Returns:
        Dict mapping player_id -> PlayerLivePoints
    """
    result: dict[int, PlayerLivePoints] = {}

    for player_id, stats in upstream.items():
        if (
            finished_team_ids is not None
            and stats.minutes == 0
            and stats.team_id not in finished_team_ids
        ):
            continue

        if bonus_added:
            total_points = stats.total_points
            bonus = stats.bonus
        else:
            bonus = predicted_bonus.get(player_id, 0)
            total_points = stats.total_points - stats.bonus + bonus

        result[player_id] = PlayerLivePoints(
            player_id=player_id,
            total_points=total_points,
            bonus=bonus,
            bonus_provisional=not bonus_added,
            minutes=stats.minutes,
            goals_scored=stats.goals_scored,
            assists=stats.assists,
            clean_sheets=stats.clean_sheets,
            yellow_cards=stats.yellow_cards,
            red_cards=stats.red_cards,
            saves=stats.saves,
        )

    return result
