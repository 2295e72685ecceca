"""Service layer for the live scoring engine."""

from fpl_live.services.fpl_client import FplApiClient
from fpl_live.services.polling import LivePollingCoordinator
from fpl_live.services.snapshots import FplSnapshotProvider

__all__ = ["FplApiClient", "FplSnapshotProvider", "LivePollingCoordinator"]
