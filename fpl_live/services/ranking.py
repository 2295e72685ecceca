"""Match ranking and provisional bonus prediction.

Bonus points go to distinct BPS *scores*, not to rank positions: every
player sharing the top score gets 3, every player sharing the next distinct
score gets 2, and so on. Taking "the top three by rank" breaks ties wrongly.

    BPS [50, 50, 30]      -> bonus [3, 3, 2]
    BPS [40, 35, 35, 20]  -> bonus [3, 2, 2, 1]
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from fpl_live.services.bps import ScoredPlayer, StatSnapshot, compute_bps

logger = logging.getLogger(__name__)

BONUS_TIERS = (3, 2, 1)


@dataclass(frozen=True, slots=True)
class MatchBpsResult:
    """Ranked BPS for one fixture. Replaced wholesale on every update."""

    fixture_id: int
    home_team_id: int
    away_team_id: int
    players: tuple[ScoredPlayer, ...]
    last_updated: datetime


def _ordering_key(player: ScoredPlayer) -> tuple[int, int, int, int, int]:
    # BPS desc, goals desc, assists desc, minutes desc, player_id asc
    return (
        -player.total_bps,
        -player.goals_scored,
        -player.assists,
        -player.minutes,
        player.player_id,
    )


def assign_bonus_tiers(players: Iterable[ScoredPlayer]) -> dict[int, int]:
    """Map each distinct eligible BPS score to its bonus tier.

    Only scores above zero are eligible. The top three distinct scores get
    3, 2 and 1; fewer distinct scores simply leave the lower tiers unused.

    Returns:
        Dict mapping total_bps -> bonus points
    """
    distinct = sorted({p.total_bps for p in players if p.total_bps > 0}, reverse=True)
    return dict(zip(distinct, BONUS_TIERS))


def rank_match(
    fixture_id: int,
    home_team_id: int,
    away_team_id: int,
    stats: Iterable[StatSnapshot],
    last_updated: datetime | None = None,
) -> MatchBpsResult:
    """Score, order and assign provisional bonus for every player in a fixture.

    Ordering is total BPS descending, then goals, assists and minutes
    (all descending), then player_id so the result never depends on input
    order. Duplicate player IDs are the caller's problem and are kept as-is.

    Args:
        fixture_id: Fixture being ranked
        home_team_id: Home team ID
        away_team_id: Away team ID
        stats: Snapshots for every involved player (may be empty)
        last_updated: Timestamp to stamp on the result. Pass the snapshot's
            fetch time to make reruns reproducible; defaults to now (UTC).

    Returns:
        MatchBpsResult with players in rank order
    """
    scored = sorted((compute_bps(stat) for stat in stats), key=_ordering_key)
    tiers = assign_bonus_tiers(scored)

    players = tuple(
        replace(
            player,
            live_rank=index,
            predicted_bonus=tiers.get(player.total_bps, 0),
        )
        for index, player in enumerate(scored, start=1)
    )

    return MatchBpsResult(
        fixture_id=fixture_id,
        home_team_id=home_team_id,
        away_team_id=away_team_id,
        players=players,
        last_updated=last_updated or datetime.now(UTC),
    )


# =============================================================================
# Result helpers
# =============================================================================


def bps_leaders(result: MatchBpsResult, limit: int = 10) -> list[ScoredPlayer]:
    """Players with positive BPS in rank order, capped at limit."""
    return [p for p in result.players if p.total_bps > 0][:limit]


def bonus_candidates(result: MatchBpsResult) -> list[ScoredPlayer]:
    """Players currently in line for bonus points."""
    return [p for p in result.players if p.predicted_bonus > 0]


def team_bps_totals(result: MatchBpsResult) -> tuple[int, int]:
    """Sum BPS per side.

    Returns:
        (home_team_bps, away_team_bps). Players from neither team are ignored.
    """
    home = sum(p.total_bps for p in result.players if p.team_id == result.home_team_id)
    away = sum(p.total_bps for p in result.players if p.team_id == result.away_team_id)
    return home, away


def predicted_bonus_by_player(results: Iterable[MatchBpsResult]) -> dict[int, int]:
    """Flatten match results to player_id -> predicted bonus.

    A player appearing in two fixtures (double gameweek) has both bonuses summed.
    """
    bonus: dict[int, int] = {}
    for result in results:
        for player in result.players:
            bonus[player.player_id] = bonus.get(player.player_id, 0) + player.predicted_bonus
    return bonus


def find_bps_mismatches(
    result: MatchBpsResult,
    upstream_bps: Mapping[int, int],
    tolerance: int = 1,
) -> list[int]:
    """Compare calculated BPS with what the upstream provider reports.

    Players missing from upstream_bps are skipped.

    Args:
        result: Ranked fixture
        upstream_bps: Dict mapping player_id -> upstream BPS value
        tolerance: Largest difference still considered consistent

    Returns:
        Player IDs whose difference exceeds tolerance, in rank order
    """
    mismatched = []
    for player in result.players:
        reported = upstream_bps.get(player.player_id)
        if reported is None:
            continue
        if abs(player.total_bps - reported) > tolerance:
            logger.warning(
                f"BPS mismatch for player {player.player_id} in fixture "
                f"{result.fixture_id}: calculated={player.total_bps}, upstream={reported}"
            )
            mismatched.append(player.player_id)
    return mismatched
