# src/status_sync/sync/offline.py

from __future__ import annotations

import logging

from ..core.ports import SyncOutcome

logger = logging.getLogger(__name__)


class OfflineSyncService:
    """
    Offline deterministic sync service used for demos when no platform is configured.

    Behavior:
    - every target id counts as successfully synced
    - no network calls; each batch is remembered in `calls` for inspection
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def perform_sync(self, target_ids: list[str]) -> SyncOutcome:
        self.calls.append(list(target_ids))
        logger.debug("Offline sync of %d application(s)", len(target_ids))
        return SyncOutcome(successful=len(target_ids), failed=0)
