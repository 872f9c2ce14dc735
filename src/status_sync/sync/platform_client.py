# src/status_sync/sync/platform_client.py

"""
Data-platform sync service over HTTP (httpx).

POST {base_url}/applications/sync  {"applicationIds": [...]}

The platform wraps responses in an envelope:
    {"success": true, "data": {"successful": n, "failed": m, "details": [...]}}
    {"success": false, "error": {"message": "..."}}

Every failure is raised as PlatformSyncError so the scheduler can retry it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.ports import SyncOutcome

logger = logging.getLogger(__name__)

SYNC_PATH = "/applications/sync"


class PlatformSyncError(RuntimeError):
    """Raised when the platform rejects or cannot complete a sync call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DataPlatformSyncService:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["X-API-Key"] = self._api_key
        return headers

    async def perform_sync(self, target_ids: list[str]) -> SyncOutcome:
        try:
            resp = await self._client.post(
                SYNC_PATH,
                json={"applicationIds": list(target_ids)},
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise PlatformSyncError(f"Platform request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise PlatformSyncError(
                f"Platform returned HTTP {resp.status_code}: {_error_message(_safe_json(resp))}",
                status_code=resp.status_code,
            )

        body = _safe_json(resp)
        data = body.get("data")
        if not body.get("success") or not isinstance(data, dict):
            raise PlatformSyncError(_error_message(body), status_code=resp.status_code)

        outcome = SyncOutcome(
            successful=int(data.get("successful") or 0),
            failed=int(data.get("failed") or 0),
        )
        logger.debug(
            "Platform sync ok: %d application(s), successful=%d failed=%d",
            len(target_ids),
            outcome.successful,
            outcome.failed,
        )
        return outcome

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _safe_json(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(body: dict[str, Any]) -> str:
    err = body.get("error")
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return "Status sync failed"
