"""Bonus Points System (BPS) calculator.

Pure functions with no I/O or shared state. A StatSnapshot goes in, a
ScoredPlayer (unranked, no bonus yet) comes out. Ranking and bonus
assignment live in ranking.py.

BPS weights (additive):
| Category  | Stat                              | Weight        |
|-----------|-----------------------------------|---------------|
| Attacking | goal / assist                     | 24 / 18       |
|           | big chance created                | 3             |
|           | key pass / successful dribble     | 1 / 1         |
|           | winning goal                      | 6             |
| Defending | clean sheet GK+DEF / MID / FWD   | 12 / 6 / 0    |
|           | save / penalty save               | 2 / 15        |
|           | recovery / tackle / CBI           | 1 / 2 / 1     |
| General   | 60+ minutes                       | 6             |
|           | pass completion 70 / 80 / 90%+    | 2 / 4 / 6     |
| Negative  | yellow / red card                 | -3 / -9       |
|           | own goal / penalty miss           | -6 / -6       |
|           | big chance missed                 | -3            |
|           | error leading to goal / attempt   | -6 / -3       |
"""

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType


class Position(StrEnum):
    """Player position as used by the BPS clean sheet rule."""

    GK = "GK"
    DEF = "DEF"
    MID = "MID"
    FWD = "FWD"

    @classmethod
    def from_element_type(cls, element_type: int) -> "Position":
        """Map FPL element_type (1-4) to a Position. Unknown types map to FWD."""
        return _ELEMENT_TYPES.get(element_type, cls.FWD)


_ELEMENT_TYPES = {1: Position.GK, 2: Position.DEF, 3: Position.MID, 4: Position.FWD}


# =============================================================================
# Constants
# =============================================================================

BPS_WEIGHTS = MappingProxyType(
    {
        # Attacking
        "goals_scored": 24,
        "assists": 18,
        "big_chances_created": 3,
        "key_passes": 1,
        "successful_dribbles": 1,
        "winning_goals": 6,
        # Defending
        "saves": 2,
        "penalties_saved": 15,
        "recoveries": 1,
        "tackles": 2,
        "clearances_blocks_interceptions": 1,
        # Negative
        "yellow_cards": -3,
        "red_cards": -9,
        "own_goals": -6,
        "penalties_missed": -6,
        "big_chances_missed": -3,
        "errors_leading_to_goal": -6,
        "errors_leading_to_goal_attempt": -3,
    }
)

CLEAN_SHEET_BPS = MappingProxyType(
    {Position.GK: 12, Position.DEF: 12, Position.MID: 6, Position.FWD: 0}
)

ATTACKING_STATS = (
    "goals_scored",
    "assists",
    "big_chances_created",
    "key_passes",
    "successful_dribbles",
    "winning_goals",
)
DEFENDING_STATS = (
    "saves",
    "penalties_saved",
    "recoveries",
    "tackles",
    "clearances_blocks_interceptions",
)
NEGATIVE_STATS = (
    "yellow_cards",
    "red_cards",
    "own_goals",
    "penalties_missed",
    "big_chances_missed",
    "errors_leading_to_goal",
    "errors_leading_to_goal_attempt",
)

MINUTES_THRESHOLD = 60
MINUTES_BPS = 6

# Passes must exceed this before completion rate counts
MIN_ATTEMPTED_PASSES = 10
# (completion %, bps) highest tier first
PASS_COMPLETION_TIERS = ((90, 6), (80, 4), (70, 2))


# =============================================================================
# Data types
# =============================================================================


@dataclass(frozen=True, slots=True)
class StatSnapshot:
    """One player's cumulative statistics for one fixture at a point in time.

    A newer snapshot for the same (player, fixture) supersedes this one;
    snapshots are never mutated.
    """

    player_id: int
    fixture_id: int
    team_id: int
    position: Position
    web_name: str = ""
    minutes: int = 0

    # Attacking
    goals_scored: int = 0
    assists: int = 0
    big_chances_created: int = 0
    key_passes: int = 0
    successful_dribbles: int = 0
    winning_goals: int = 0

    # Defending
    clean_sheets: int = 0
    saves: int = 0
    penalties_saved: int = 0
    recoveries: int = 0
    tackles: int = 0
    clearances_blocks_interceptions: int = 0

    # Negative
    yellow_cards: int = 0
    red_cards: int = 0
    own_goals: int = 0
    penalties_missed: int = 0
    big_chances_missed: int = 0
    errors_leading_to_goal: int = 0
    errors_leading_to_goal_attempt: int = 0

    # Passing
    attempted_passes: int = 0
    completed_passes: int = 0


@dataclass(frozen=True, slots=True)
class BpsBreakdown:
    """BPS subtotals by category. `negative` is zero or below."""

    attacking: int = 0
    defending: int = 0
    general: int = 0
    negative: int = 0

    @property
    def total(self) -> int:
        return self.attacking + self.defending + self.general + self.negative


@dataclass(frozen=True, slots=True)
class ScoredPlayer:
    """BPS result for one player in one fixture.

    live_rank and predicted_bonus are 0 until the Ranker assigns them.
    goals_scored, assists and minutes are carried for ordering tie-breaks.
    """

    player_id: int
    team_id: int
    total_bps: int
    breakdown: BpsBreakdown = field(default_factory=BpsBreakdown)
    web_name: str = ""
    goals_scored: int = 0
    assists: int = 0
    minutes: int = 0
    live_rank: int = 0
    predicted_bonus: int = 0


# =============================================================================
# Pure Functions
# =============================================================================


def _weighted_sum(stat: StatSnapshot, names: tuple[str, ...]) -> int:
    return sum(getattr(stat, name) * BPS_WEIGHTS[name] for name in names)


def pass_completion_bps(attempted: int, completed: int) -> int:
    """BPS for pass completion, only awarded above MIN_ATTEMPTED_PASSES attempts.

    Only the highest matching tier applies.
    """
    if attempted <= MIN_ATTEMPTED_PASSES:
        return 0

    completion = completed / attempted * 100
    for threshold, bps in PASS_COMPLETION_TIERS:
        if completion >= threshold:
            return bps
    return 0


def clean_sheet_bps(stat: StatSnapshot) -> int:
    """Clean sheet BPS by position.

    Credited whenever clean_sheets > 0. Minutes are not checked here; the
    upstream count is expected to be zero when the clean sheet doesn't apply.
    """
    if stat.clean_sheets <= 0:
        return 0
    return CLEAN_SHEET_BPS[stat.position]


def calculate_breakdown(stat: StatSnapshot) -> BpsBreakdown:
    """Calculate the four BPS category subtotals for a snapshot."""
    general = MINUTES_BPS if stat.minutes >= MINUTES_THRESHOLD else 0
    general += pass_completion_bps(stat.attempted_passes, stat.completed_passes)

    return BpsBreakdown(
        attacking=_weighted_sum(stat, ATTACKING_STATS),
        defending=clean_sheet_bps(stat) + _weighted_sum(stat, DEFENDING_STATS),
        general=general,
        negative=_weighted_sum(stat, NEGATIVE_STATS),
    )


def compute_bps(stat: StatSnapshot) -> ScoredPlayer:
    """Score a single player's snapshot.

    The total is the plain sum of all four categories and may be negative.

    Args:
        stat: Player's cumulative stats for one fixture

    Returns:
        ScoredPlayer with live_rank=0 and predicted_bonus=0
    """
    breakdown = calculate_breakdown(stat)
    return ScoredPlayer(
        player_id=stat.player_id,
        team_id=stat.team_id,
        total_bps=breakdown.total,
        breakdown=breakdown,
        web_name=stat.web_name,
        goals_scored=stat.goals_scored,
        assists=stat.assists,
        minutes=stat.minutes,
    )
