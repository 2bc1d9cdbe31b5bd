"""Process-scoped service coordinating accrual, storage and sync."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Callable

from code_ledger.core.config import Config, get_config
from code_ledger.core.status import StatusReport
from code_ledger.storage.buffer import PersistentBuffer, StoredRecord
from code_ledger.sync.api_client import CollectorClient, MissingTokenError, SyncResult
from code_ledger.sync.coordinator import SyncCoordinator
from code_ledger.trackers.activity import ActivityAccumulator
from code_ledger.trackers.events import handle_line

logger = logging.getLogger(__name__)


class Orchestrator:
    """Owns every component and timer of a running tracker.

    Timers (tick, flush, sync, cleanup) run as tasks on one event loop, so
    editor events and timer bodies never overlap. :meth:`stop` cancels all
    timers before the final flush and best-effort sync.
    """

    def __init__(
        self,
        config: Config | None = None,
        clock: Callable[[], float] = time.time,
        client: CollectorClient | None = None,
    ):
        self.config = config or get_config()
        self._clock = clock
        self._running = False
        self._stopping = False
        self._stop_event = asyncio.Event()

        tracking = self.config.tracking
        self.accumulator = ActivityAccumulator(
            idle_threshold=tracking.idle_threshold_seconds,
            max_time_per_tick=tracking.max_seconds_per_tick,
            max_time_per_flush=tracking.max_seconds_per_flush,
            clock=clock,
        )
        self.buffer = PersistentBuffer(
            self.config.store_path,
            retention_days=self.config.storage.retention_days,
            clock_ms=lambda: int(clock() * 1000),
        )
        self.client = client or CollectorClient(
            self.config.sync.api_url,
            self.config.sync.api_token,
            timeout=self.config.sync.timeout_seconds,
        )
        self.coordinator = SyncCoordinator(
            self.buffer,
            self.client,
            interval_seconds=self.config.sync.interval_minutes * 60,
        )

        # Presentation hook, called after every tick
        self.on_status: Callable[[StatusReport], None] | None = None

        self._tasks: list[asyncio.Task] = []
        self._pid_file = self.config.pid_file

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start all timers."""
        if self._running:
            logger.warning("Orchestrator already running")
            return

        logger.info("Starting Code Ledger service...")

        self.config.ensure_directories()
        self._write_pid_file()

        self._running = True
        self._stop_event.clear()

        self._setup_signal_handlers()

        self._tasks.append(asyncio.create_task(self._tick_loop()))
        self._tasks.append(asyncio.create_task(self._flush_loop()))
        self._tasks.append(asyncio.create_task(self._cleanup_loop()))
        self._tasks.append(asyncio.create_task(self._check_token()))
        await self.coordinator.start()

        logger.info(
            f"Code Ledger service started ({self.buffer.unsynced_count()} unsynced records, "
            f"store: {self.buffer.path})"
        )

    async def stop(self) -> None:
        """Stop timers, flush the session and try one last sync.

        Errors from the final flush or sync are logged and never raised.
        """
        if not self._running or self._stopping:
            return

        self._stopping = True
        logger.info("Stopping Code Ledger service...")

        # No tick may run once teardown has begun. Batches already sent by a
        # cancelled timer keep running inside the coordinator until it stops.
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        await self.coordinator.stop()
        self._running = False

        try:
            self.flush()
        except Exception as e:
            logger.error(f"Final flush failed: {e}")

        if self.coordinator.has_token and self.buffer.unsynced_count():
            try:
                logger.info(f"Final synchronization: {self.buffer.unsynced_count()} records")
                await self.coordinator.sync()
            except Exception as e:
                logger.error(f"Final synchronization error: {e}")

        self._remove_pid_file()
        self._stop_event.set()
        self._stopping = False
        logger.info("Code Ledger service stopped")

    def request_stop(self) -> None:
        """Ask the service loop to shut down."""
        self._stop_event.set()

    async def wait_stopped(self) -> None:
        await self._stop_event.wait()

    # Operations

    def flush(self) -> list[StoredRecord]:
        """Move the current session into the store and reset the accumulator."""
        snapshot = self.accumulator.snapshot()
        if not snapshot.files or not snapshot.has_activity:
            return []

        logger.info(
            f"Saving: {int(snapshot.total_time_spent)} sec, "
            f"{snapshot.total_keystrokes} keystrokes"
        )
        records = self.buffer.ingest(snapshot)
        self.accumulator.reset()
        return records

    async def force_sync(self) -> SyncResult | None:
        """Flush, then sync all unsynced records.

        Raises:
            MissingTokenError: No API token is configured
            CollectorError: The collector rejected the batch or was unreachable
        """
        if not self.coordinator.has_token:
            raise MissingTokenError()

        self.flush()
        if not self.buffer.unsynced_count():
            logger.info("No data for synchronization")
            return None
        return await self.coordinator.sync()

    def status(self) -> StatusReport:
        return StatusReport(
            stored_seconds=self.buffer.total_time(),
            session_seconds=int(self.accumulator.session_time),
            unsynced_count=self.buffer.unsynced_count(),
        )

    def reload_credentials(self) -> None:
        """Re-read the API token and URL from configuration."""
        get_config.cache_clear()
        fresh = Config.load(self.config.config_file)
        self.config.sync.api_url = fresh.sync.api_url
        self.config.sync.api_token = fresh.sync.api_token
        self.client.update_config(fresh.sync.api_url, fresh.sync.api_token)
        logger.info(f"Credentials reloaded (token {'set' if self.client.has_token else 'missing'})")

    async def consume_events(self, queue: asyncio.Queue[str | None]) -> None:
        """Dispatch editor events until the stream ends or the service stops."""
        while self._running:
            line = await queue.get()
            if line is None:
                logger.info("Editor event stream closed")
                break
            handle_line(self.accumulator, line)

    # Timers

    async def _tick_loop(self) -> None:
        interval = self.config.tracking.tick_interval_seconds
        while self._running:
            try:
                await asyncio.sleep(interval)
                self.accumulator.tick()
                if self.on_status:
                    self.on_status(self.status())
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in tick: {e}")

    async def _flush_loop(self) -> None:
        interval = self.config.tracking.flush_interval_seconds
        while self._running:
            try:
                await asyncio.sleep(interval)
                if not self._running:
                    break
                self.flush()
                if self.config.sync.sync_on_flush:
                    await self.coordinator.sync()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in periodic flush: {e}")

    async def _cleanup_loop(self) -> None:
        interval = self.config.storage.cleanup_interval_hours * 3600
        while self._running:
            try:
                await asyncio.sleep(interval)
                if self._running:
                    self.buffer.cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in record cleanup: {e}")

    async def _check_token(self) -> None:
        if not self.client.has_token:
            logger.warning("No API token configured; run 'code-ledger set-token' to enable sync")
            return

        if await self.client.validate_token():
            logger.info("API token is valid")
        else:
            logger.warning("API token is invalid; update it with 'code-ledger set-token'")

    async def _sync_from_signal(self) -> None:
        try:
            await self.force_sync()
        except Exception as e:
            logger.error(f"Requested synchronization failed: {e}")

    # Process plumbing

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        handlers = {
            signal.SIGTERM: self._handle_signal,
            signal.SIGINT: self._handle_signal,
        }
        if hasattr(signal, "SIGUSR1"):
            handlers[signal.SIGUSR1] = self._handle_sync_signal
        if hasattr(signal, "SIGHUP"):
            handlers[signal.SIGHUP] = self._handle_reload_signal

        for sig, handler in handlers.items():
            try:
                loop.add_signal_handler(sig, handler, sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal handlers unavailable for {sig!r}")

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        self.request_stop()

    def _handle_sync_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, synchronizing...")
        self._tasks.append(asyncio.create_task(self._sync_from_signal()))

    def _handle_reload_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, reloading credentials...")
        try:
            self.reload_credentials()
        except Exception as e:
            logger.error(f"Failed to reload credentials: {e}")

    def _write_pid_file(self) -> None:
        self._pid_file.parent.mkdir(parents=True, exist_ok=True)
        self._pid_file.write_text(str(os.getpid()))
        logger.debug(f"PID file written: {self._pid_file}")

    def _remove_pid_file(self) -> None:
        if self._pid_file.exists():
            self._pid_file.unlink()
            logger.debug("PID file removed")

    @classmethod
    def get_service_pid(cls, config: Config | None = None) -> int | None:
        """Get the PID of a running service from its PID file."""
        config = config or get_config()
        pid_file = config.pid_file

        if not pid_file.exists():
            return None

        try:
            pid = int(pid_file.read_text().strip())
            os.kill(pid, 0)
            return pid
        except (ValueError, OSError):
            pid_file.unlink(missing_ok=True)
            return None


def _start_stdin_reader(queue: asyncio.Queue[str | None], loop: asyncio.AbstractEventLoop) -> None:
    """Feed stdin lines into ``queue`` from a daemon thread; ``None`` marks EOF."""

    def _read() -> None:
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(queue.put_nowait, line)
            loop.call_soon_threadsafe(queue.put_nowait, None)
        except RuntimeError:
            # Loop already closed during shutdown
            return

    threading.Thread(target=_read, name="editor-events", daemon=True).start()


async def run_service(config: Config | None = None, read_stdin: bool = True) -> None:
    """Run the service until a signal arrives or the event stream ends."""
    orchestrator = Orchestrator(config)

    try:
        await orchestrator.start()

        waiters = [asyncio.create_task(orchestrator.wait_stopped())]
        if read_stdin:
            queue: asyncio.Queue[str | None] = asyncio.Queue()
            _start_stdin_reader(queue, asyncio.get_running_loop())
            waiters.append(asyncio.create_task(orchestrator.consume_events(queue)))

        _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()

    finally:
        await orchestrator.stop()
