# src/status_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the scheduler core.

The scheduler depends on a Protocol instead of a concrete platform client.
This keeps the data-platform transport swappable and makes testing easier.
"""

from dataclasses import dataclass
from typing import Awaitable, Protocol


@dataclass(slots=True, frozen=True)
class SyncOutcome:
    """Counts reported by one sync call."""

    successful: int = 0
    failed: int = 0


class SyncService(Protocol):
    """
    Pushes application status for the given ids to the external platform.

    Should resolve to a SyncOutcome; a plain {"successful": n, "failed": m} mapping
    is accepted too. May raise; the scheduler treats any exception (or a timeout)
    as a failed attempt and applies its retry policy.
    """

    def perform_sync(self, target_ids: list[str]) -> Awaitable[SyncOutcome]: ...
