"""HTTP client for the remote activity collector."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import aiohttp
from pydantic import BaseModel

from code_ledger.storage.buffer import StoredRecord

logger = logging.getLogger(__name__)


class CollectorError(Exception):
    """The collector rejected a request or could not be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class MissingTokenError(CollectorError):
    """No API token is configured."""

    def __init__(self) -> None:
        super().__init__("API token is not set. Configure it with 'code-ledger set-token'.")


class ActivityPayload(BaseModel):
    """Single-record body for ``POST /api/activity``."""

    language: str
    lines: int
    time: int
    date: str | None = None
    hour: int | None = None


class SyncResult(BaseModel):
    """Response of the bulk sync endpoint."""

    saved: int | None = None
    grouped: int | None = None
    message: str | None = None


class CollectorClient:
    """Authenticated client for the collector's ingest and sync endpoints."""

    def __init__(self, base_url: str, api_token: str | None = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token or ""
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def update_config(self, base_url: str, api_token: str | None) -> None:
        """Swap endpoint and credential at runtime."""
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token or ""

    @property
    def has_token(self) -> bool:
        return bool(self.api_token)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_token}",
        }

    async def _post(self, session: aiohttp.ClientSession, path: str, payload: Any) -> Any:
        """POST JSON and return the decoded body, raising on non-2xx."""
        url = f"{self.base_url}{path}"
        try:
            async with session.post(url, json=payload, headers=self._headers()) as resp:
                if resp.status >= 300:
                    text = await resp.text()
                    raise CollectorError(f"HTTP {resp.status} from {path}: {text}", status=resp.status)
                if resp.content_type == "application/json":
                    return await resp.json()
                return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CollectorError(f"Network error calling {path}: {e}") from e

    async def send_activity(self, payload: ActivityPayload) -> None:
        """Write one aggregated bucket."""
        if not self.has_token:
            raise MissingTokenError()

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            await self._post(session, "/api/activity", payload.model_dump(exclude_none=True))

    async def send_activities(self, payloads: Sequence[ActivityPayload]) -> int:
        """Write several buckets concurrently; any failure is raised."""
        if not self.has_token:
            raise MissingTokenError()
        if not payloads:
            return 0

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            await asyncio.gather(
                *(
                    self._post(session, "/api/activity", p.model_dump(exclude_none=True))
                    for p in payloads
                )
            )
        return len(payloads)

    async def sync_activities(self, records: Sequence[StoredRecord]) -> SyncResult:
        """Send stored records in a single bulk request."""
        if not self.has_token:
            raise MissingTokenError()
        if not records:
            return SyncResult()

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            body = await self._post(
                session,
                "/api/activity/sync",
                {"activities": [r.to_payload() for r in records]},
            )

        result = SyncResult.model_validate(body) if isinstance(body, dict) else SyncResult()
        logger.info(
            f"Synced {result.saved or len(records)} activities "
            f"(grouped into {result.grouped or 0} records)"
        )
        return result

    async def validate_token(self) -> bool:
        """Round-trip a zero payload; 200 or 400 proves the token is known."""
        if not self.has_token:
            return False

        probe = {"language": "test", "lines": 0, "time": 0}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    f"{self.base_url}/api/activity",
                    json=probe,
                    headers=self._headers(),
                ) as resp:
                    return resp.status in (200, 400)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Token validation failed: {e}")
            return False
