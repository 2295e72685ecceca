"""Shared FastAPI dependencies for API routes."""

from fastapi import Depends, HTTPException, Request

from fpl_live.services.polling import LivePollingCoordinator
from fpl_live.services.result_store import ResultStore


def get_coordinator(request: Request) -> LivePollingCoordinator:
    """FastAPI dependency returning the app's live polling coordinator.

    Raises HTTPException 503 if the coordinator wasn't created at startup.

    Usage:
        @router.get("/endpoint")
        async def endpoint(coordinator: LivePollingCoordinator = Depends(get_coordinator)):
            ...
    """
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=503,
            detail="Live engine not available. The coordinator has not been started.",
        )
    return coordinator


def get_result_store(
    coordinator: LivePollingCoordinator = Depends(get_coordinator),
) -> ResultStore:
    """FastAPI dependency returning the store the coordinator writes to."""
    return coordinator.store
