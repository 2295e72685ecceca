"""Live API routes - BPS rankings, team totals and live mode control."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from fpl_live.dependencies import get_coordinator, get_result_store
from fpl_live.schemas.live import (
    BpsLeadersResponse,
    LiveEventResponse,
    LiveStatusResponse,
    ManagerLiveResponse,
    MatchBpsListResponse,
    MatchBpsResponse,
    ScoredPlayerResponse,
    TeamTotalsResponse,
)
from fpl_live.services.polling import LivePollingCoordinator, PollingAlreadyActiveError
from fpl_live.services.ranking import bonus_candidates, bps_leaders, team_bps_totals
from fpl_live.services.result_store import ResultStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/live", tags=["live"])


def _resolve_gameweek(gameweek: int | None, coordinator: LivePollingCoordinator) -> int:
    resolved = gameweek if gameweek is not None else coordinator.gameweek
    if resolved is None:
        raise HTTPException(status_code=404, detail="No live gameweek selected")
    return resolved


def _status(coordinator: LivePollingCoordinator) -> LiveStatusResponse:
    summary = LiveStatusResponse.model_validate(coordinator.summary())
    summary.issues = coordinator.check_consistency()
    return summary


# =============================================================================
# Live mode control
# =============================================================================


@router.get("/status", response_model=LiveStatusResponse)
async def get_status(
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> LiveStatusResponse:
    """Get live polling status for the selected gameweek."""
    return _status(coordinator)


@router.post("/start", response_model=LiveStatusResponse)
async def start_live(
    gameweek: int = Query(ge=1, le=38, description="Gameweek to follow"),
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> LiveStatusResponse:
    """Start live polling for a gameweek."""
    try:
        await coordinator.start(gameweek)
    except PollingAlreadyActiveError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _status(coordinator)


@router.post("/stop", response_model=LiveStatusResponse)
async def stop_live(
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> LiveStatusResponse:
    """Stop live polling. Last results stay available."""
    await coordinator.stop()
    return _status(coordinator)


@router.get("/events", response_model=list[LiveEventResponse])
async def get_events(
    limit: int = Query(default=10, ge=1, le=200, description="Max events to return"),
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> list[LiveEventResponse]:
    """Get the most recent live events, newest first."""
    return [
        LiveEventResponse.model_validate(event)
        for event in coordinator.recent_events(limit)
    ]


# =============================================================================
# BPS
# =============================================================================


@router.get("/fixtures", response_model=MatchBpsListResponse)
async def get_fixtures_bps(
    gameweek: int | None = Query(default=None, ge=1, le=38, description="Gameweek"),
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
    store: ResultStore = Depends(get_result_store),
) -> MatchBpsListResponse:
    """Get ranked BPS and predicted bonus for every fixture in a gameweek."""
    resolved = _resolve_gameweek(gameweek, coordinator)
    results = await store.list_match_results(resolved)
    return MatchBpsListResponse(
        gameweek=resolved,
        fixtures=[MatchBpsResponse.model_validate(r) for r in results],
        total=len(results),
    )


@router.get("/fixtures/{fixture_id}", response_model=MatchBpsResponse)
async def get_fixture_bps(
    fixture_id: int = Path(ge=1, description="Fixture ID"),
    store: ResultStore = Depends(get_result_store),
) -> MatchBpsResponse:
    """Get ranked BPS and predicted bonus for one fixture."""
    result = await store.get_match_result(fixture_id)
    if result is None:
        raise HTTPException(status_code=404, detail="No live BPS for fixture")
    return MatchBpsResponse.model_validate(result)


@router.get("/fixtures/{fixture_id}/leaders", response_model=BpsLeadersResponse)
async def get_fixture_leaders(
    fixture_id: int = Path(ge=1, description="Fixture ID"),
    limit: int = Query(default=10, ge=1, le=30, description="Max leaders to return"),
    store: ResultStore = Depends(get_result_store),
) -> BpsLeadersResponse:
    """Get the BPS leaders, bonus candidates and BPS per side for one fixture."""
    result = await store.get_match_result(fixture_id)
    if result is None:
        raise HTTPException(status_code=404, detail="No live BPS for fixture")

    home_bps, away_bps = team_bps_totals(result)
    return BpsLeadersResponse(
        fixture_id=result.fixture_id,
        home_team_id=result.home_team_id,
        away_team_id=result.away_team_id,
        home_bps=home_bps,
        away_bps=away_bps,
        leaders=[ScoredPlayerResponse.model_validate(p) for p in bps_leaders(result, limit)],
        bonus_candidates=[
            ScoredPlayerResponse.model_validate(p) for p in bonus_candidates(result)
        ],
    )


# =============================================================================
# Managers
# =============================================================================


@router.post("/managers/{manager_id}", response_model=ManagerLiveResponse | None)
async def track_manager(
    manager_id: int = Path(ge=1, description="FPL manager ID"),
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> ManagerLiveResponse | None:
    """Track a manager. Returns current totals if live data is already loaded."""
    totals = await coordinator.track_manager(manager_id)
    if totals is None or coordinator.gameweek is None:
        return None
    return ManagerLiveResponse(
        manager_id=manager_id,
        gameweek=coordinator.gameweek,
        totals=TeamTotalsResponse.model_validate(totals),
    )


@router.delete("/managers/{manager_id}", status_code=204)
async def untrack_manager(
    manager_id: int = Path(ge=1, description="FPL manager ID"),
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> None:
    """Stop tracking a manager."""
    coordinator.untrack_manager(manager_id)


@router.get("/managers/{manager_id}/totals", response_model=ManagerLiveResponse)
async def get_manager_totals(
    manager_id: int = Path(ge=1, description="FPL manager ID"),
    gameweek: int | None = Query(default=None, ge=1, le=38, description="Gameweek"),
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
    store: ResultStore = Depends(get_result_store),
) -> ManagerLiveResponse:
    """Get a manager's live team totals."""
    resolved = _resolve_gameweek(gameweek, coordinator)
    totals = await store.get_team_totals(manager_id, resolved)
    if totals is None:
        raise HTTPException(status_code=404, detail="No live totals for manager")
    return ManagerLiveResponse(
        manager_id=manager_id,
        gameweek=resolved,
        totals=TeamTotalsResponse.model_validate(totals),
    )
