"""Batching sync between the local store and the collector."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from datetime import datetime
from typing import Any

from code_ledger.storage.buffer import PersistentBuffer, StoredRecord
from code_ledger.sync.api_client import ActivityPayload, CollectorClient, SyncResult
from code_ledger.trackers.activity import SessionSnapshot

logger = logging.getLogger(__name__)

BucketKey = tuple[str, str, int]  # (language, date, hour)


def group_snapshot(snapshot: SessionSnapshot) -> dict[BucketKey, ActivityPayload]:
    """Sum whole seconds and net lines per (language, date, hour).

    Documents with less than one whole second are skipped.
    """
    buckets: dict[BucketKey, ActivityPayload] = {}

    for activity in snapshot.files.values():
        seconds = int(activity.time_spent)
        if seconds <= 0:
            continue

        language = activity.language or "unknown"
        midpoint = datetime.fromtimestamp((activity.first_active + activity.last_active) / 2)
        key = (language, midpoint.date().isoformat(), midpoint.hour)

        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = ActivityPayload(
                language=language, lines=0, time=0, date=key[1], hour=key[2]
            )
        bucket.lines += activity.net_lines
        bucket.time += seconds

    return buckets


class SyncCoordinator:
    """Moves unsynced records to the collector and reconciles sync state.

    A batch is reconciled by the exact set of record keys that was sent,
    captured before the request starts, so records ingested while the
    request is in flight stay unsynced for the next round.
    """

    DEFAULT_INTERVAL = 5 * 60  # seconds

    def __init__(
        self,
        buffer: PersistentBuffer,
        client: CollectorClient,
        interval_seconds: float = DEFAULT_INTERVAL,
    ):
        self.buffer = buffer
        self.client = client
        self.interval_seconds = interval_seconds

        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._last_sync: datetime | None = None
        self._last_error: str | None = None

    @property
    def has_token(self) -> bool:
        return self.client.has_token

    async def send_immediate(self, snapshot: SessionSnapshot) -> int:
        """Write a snapshot straight to the collector, one request per bucket.

        Bypasses the local store. Returns the number of buckets sent; a
        missing token makes this a no-op.
        """
        if not self.has_token:
            logger.debug("No API token, skipping immediate send")
            return 0

        buckets = group_snapshot(snapshot)
        if not buckets:
            logger.debug("No activity to send")
            return 0

        sent = await self.client.send_activities(list(buckets.values()))
        logger.info(f"Statistics sent to collector ({sent} records)")
        return sent

    async def sync_batch(self, records: Sequence[StoredRecord]) -> SyncResult | None:
        """Send ``records`` in one request and mark exactly those as synced.

        Failures leave the records unsynced and are raised to the caller.
        """
        return await self._detached(self._locked_send(records))

    async def _locked_send(self, records: Sequence[StoredRecord] | None = None) -> SyncResult | None:
        async with self._lock:
            if records is None:
                records = self.buffer.unsynced_records()
            return await self._send_batch(records)

    async def _detached(self, coro: Coroutine[Any, Any, SyncResult | None]) -> SyncResult | None:
        """Run a batch in its own task; cancelling the caller leaves it running."""
        task = asyncio.create_task(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await asyncio.shield(task)

    async def _send_batch(self, records: Sequence[StoredRecord]) -> SyncResult | None:
        if not records:
            return None

        keys = frozenset(r.timestamp for r in records)
        logger.info(f"Synchronizing {len(keys)} records...")
        try:
            result = await self.client.sync_activities(records)
        except Exception as e:
            self._last_error = str(e)
            raise

        marked = self.buffer.mark_synced(keys)
        self._last_sync = datetime.now()
        self._last_error = None
        logger.info(f"Synchronization completed ({marked} records marked)")
        return result

    async def sync(self) -> SyncResult | None:
        """Sync everything currently unsynced; no-op without a token."""
        if not self.has_token:
            logger.debug("No API token, skipping sync")
            return None

        return await self._detached(self._locked_send())

    async def start(self) -> None:
        """Start the periodic sync loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._sync_loop())
        logger.info(f"Sync loop started (every {self.interval_seconds:.0f}s)")

    async def stop(self) -> None:
        """Stop the periodic sync loop and wait for batches already sent."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._in_flight:
            logger.info(f"Waiting for {len(self._in_flight)} in-flight synchronization(s)")
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("Sync loop stopped")

    async def _sync_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                if self._running:
                    await self.sync()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Synchronization error: {e}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def status(self) -> dict[str, Any]:
        """Get sync status."""
        return {
            "has_token": self.has_token,
            "api_url": self.client.base_url,
            "unsynced": self.buffer.unsynced_count(),
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "last_error": self._last_error,
            "running": self._running,
        }
