"""Tests for the BPS calculator."""

import pytest

from fpl_live.services.bps import (
    BpsBreakdown,
    Position,
    calculate_breakdown,
    clean_sheet_bps,
    compute_bps,
    pass_completion_bps,
)
from tests.conftest import make_stat


class TestPosition:
    """Tests for Position.from_element_type."""

    @pytest.mark.parametrize(
        ("element_type", "expected"),
        [(1, Position.GK), (2, Position.DEF), (3, Position.MID), (4, Position.FWD)],
    )
    def test_maps_fpl_element_types(self, element_type: int, expected: Position):
        """FPL element_type 1-4 should map to GK, DEF, MID, FWD."""
        assert Position.from_element_type(element_type) == expected

    def test_unknown_type_falls_back_to_forward(self):
        """Unknown element types (e.g. managers) should score as forwards."""
        assert Position.from_element_type(5) == Position.FWD


class TestPassCompletion:
    """Tests for pass_completion_bps."""

    def test_requires_more_than_ten_attempts(self):
        """Exactly 10 attempted passes should not qualify, even at 100%."""
        assert pass_completion_bps(10, 10) == 0
        assert pass_completion_bps(11, 11) == 6

    @pytest.mark.parametrize(
        ("completed", "expected"),
        [(20, 6), (18, 6), (17, 4), (16, 4), (15, 2), (14, 2), (13, 0)],
    )
    def test_tiers_out_of_twenty(self, completed: int, expected: int):
        """Only the highest matching tier should apply."""
        assert pass_completion_bps(20, completed) == expected


class TestCleanSheet:
    """Tests for clean_sheet_bps."""

    @pytest.mark.parametrize(
        ("position", "expected"),
        [(Position.GK, 12), (Position.DEF, 12), (Position.MID, 6), (Position.FWD, 0)],
    )
    def test_value_by_position(self, position: Position, expected: int):
        """Clean sheet BPS should depend on position."""
        stat = make_stat(1, position=position, minutes=90, clean_sheets=1)

        assert clean_sheet_bps(stat) == expected

    def test_no_clean_sheet(self):
        """A zero clean_sheets count should give nothing."""
        stat = make_stat(1, position=Position.DEF, minutes=90)

        assert clean_sheet_bps(stat) == 0

    def test_credited_without_minutes_check(self):
        """The count is trusted as-is, even for a short cameo."""
        stat = make_stat(1, position=Position.GK, minutes=20, clean_sheets=1)

        assert clean_sheet_bps(stat) == 12


class TestCalculateBreakdown:
    """Tests for category subtotals."""

    def test_all_zero_stats(self):
        """A player with no contributions should score zero everywhere."""
        breakdown = calculate_breakdown(make_stat(1))

        assert breakdown == BpsBreakdown(0, 0, 0, 0)
        assert breakdown.total == 0

    def test_minutes_threshold(self):
        """The minutes bonus should start at exactly 60 minutes."""
        assert calculate_breakdown(make_stat(1, minutes=59)).general == 0
        assert calculate_breakdown(make_stat(1, minutes=60)).general == 6

    def test_attacking_weights(self):
        """Goal 24, assist 18, big chance 3, key pass 1, dribble 1, winner 6."""
        stat = make_stat(
            1,
            goals_scored=1,
            assists=1,
            big_chances_created=1,
            key_passes=2,
            successful_dribbles=3,
            winning_goals=1,
        )

        assert calculate_breakdown(stat).attacking == 24 + 18 + 3 + 2 + 3 + 6

    def test_defending_weights(self):
        """Saves, penalty saves, recoveries, tackles and CBI plus clean sheet."""
        stat = make_stat(
            1,
            position=Position.GK,
            clean_sheets=1,
            saves=4,
            penalties_saved=1,
            recoveries=5,
            tackles=2,
            clearances_blocks_interceptions=3,
        )

        assert calculate_breakdown(stat).defending == 12 + 8 + 15 + 5 + 4 + 3

    def test_negative_weights(self):
        """Every negative stat should subtract its weight."""
        stat = make_stat(
            1,
            yellow_cards=1,
            red_cards=1,
            own_goals=1,
            penalties_missed=1,
            big_chances_missed=2,
            errors_leading_to_goal=1,
            errors_leading_to_goal_attempt=1,
        )

        assert calculate_breakdown(stat).negative == -3 - 9 - 6 - 6 - 6 - 6 - 3

    def test_general_combines_minutes_and_passing(self):
        """General should add the minutes bonus and the pass completion tier."""
        stat = make_stat(1, minutes=90, attempted_passes=40, completed_passes=37)

        assert calculate_breakdown(stat).general == 6 + 6


class TestComputeBps:
    """Tests for compute_bps."""

    def test_total_is_sum_of_categories(self):
        """Total BPS should equal the breakdown sum, carried on the result."""
        stat = make_stat(
            7,
            team_id=3,
            web_name="Saka",
            minutes=90,
            goals_scored=1,
            assists=1,
            yellow_cards=1,
        )

        player = compute_bps(stat)

        assert player.player_id == 7
        assert player.team_id == 3
        assert player.web_name == "Saka"
        assert player.total_bps == player.breakdown.total == 24 + 18 + 6 - 3
        assert player.goals_scored == 1
        assert player.assists == 1
        assert player.minutes == 90

    def test_total_can_be_negative(self):
        """A red card with nothing else should leave a negative total."""
        player = compute_bps(make_stat(1, minutes=30, red_cards=1))

        assert player.total_bps == -9

    def test_unranked_and_no_bonus(self):
        """Freshly scored players have no rank or bonus yet."""
        player = compute_bps(make_stat(1, minutes=90, goals_scored=3))

        assert player.live_rank == 0
        assert player.predicted_bonus == 0

    def test_deterministic(self):
        """Equal snapshots should produce equal results."""
        stat = make_stat(1, minutes=75, tackles=3, key_passes=2)

        assert compute_bps(stat) == compute_bps(stat)
