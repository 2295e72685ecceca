"""API response schemas."""

from fpl_live.schemas.live import (
    BpsLeadersResponse,
    LiveEventResponse,
    LiveStatusResponse,
    ManagerLiveResponse,
    MatchBpsListResponse,
    MatchBpsResponse,
    TeamTotalsResponse,
)

__all__ = [
    "BpsLeadersResponse",
    "LiveEventResponse",
    "LiveStatusResponse",
    "ManagerLiveResponse",
    "MatchBpsListResponse",
    "MatchBpsResponse",
    "TeamTotalsResponse",
]
