"""Live engine API response schemas.

These Pydantic models are used for API serialization. They are populated
directly from the service dataclasses using model_validate(obj, from_attributes=True).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BpsBreakdownResponse(BaseModel):
    """BPS subtotals by category."""

    model_config = ConfigDict(from_attributes=True)

    attacking: int
    defending: int
    general: int
    negative: int


class ScoredPlayerResponse(BaseModel):
    """A player's BPS, rank and predicted bonus within a fixture."""

    model_config = ConfigDict(from_attributes=True)

    player_id: int
    web_name: str
    team_id: int
    total_bps: int
    breakdown: BpsBreakdownResponse
    live_rank: int
    predicted_bonus: int = Field(ge=0, le=3)


class MatchBpsResponse(BaseModel):
    """Ranked BPS for one fixture."""

    model_config = ConfigDict(from_attributes=True)

    fixture_id: int
    home_team_id: int
    away_team_id: int
    players: list[ScoredPlayerResponse]
    last_updated: datetime


class BpsLeadersResponse(BaseModel):
    """Top of a fixture's BPS table with per-side totals."""

    fixture_id: int
    home_team_id: int
    away_team_id: int
    home_bps: int
    away_bps: int
    leaders: list[ScoredPlayerResponse]
    bonus_candidates: list[ScoredPlayerResponse]


class MatchBpsListResponse(BaseModel):
    """All ranked fixtures for a gameweek."""

    gameweek: int
    fixtures: list[MatchBpsResponse]
    total: int


class CaptainResponse(BaseModel):
    """Captain points before and after the multiplier."""

    model_config = ConfigDict(from_attributes=True)

    player_id: int
    multiplier: int
    points: int
    multiplied_points: int
    bonus: int


class TeamTotalsResponse(BaseModel):
    """Live team totals for a manager."""

    model_config = ConfigDict(from_attributes=True)

    goals: int
    assists: int
    clean_sheets: int
    yellow_cards: int
    red_cards: int
    saves: int
    active_points_no_bonus: int
    active_points_final: int
    bench_points_no_bonus: int
    bench_points_final: int
    predicted_bonus: int
    final_bonus: int
    captain: CaptainResponse | None
    vice_captain: CaptainResponse | None
    players_not_started: int
    not_started_player_ids: list[int]
    active_chip: str | None


class ManagerLiveResponse(BaseModel):
    """Response for a manager's live totals."""

    manager_id: int
    gameweek: int
    totals: TeamTotalsResponse


class LiveEventResponse(BaseModel):
    """An observed change between two polls."""

    model_config = ConfigDict(from_attributes=True)

    gameweek: int
    event_type: str
    player_id: int
    delta: int
    fixture_id: int | None
    side: str | None


class LiveStatusResponse(BaseModel):
    """Coordinator status."""

    model_config = ConfigDict(from_attributes=True)

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
    issues: list[str] = []
