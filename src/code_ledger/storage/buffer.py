"""Durable JSON store of finalized activity records."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from code_ledger.trackers.activity import SessionSnapshot

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class StoredRecord(BaseModel):
    """One flushed (language, hour) slice of work.

    ``timestamp`` is the creation time in epoch milliseconds and the only
    key used to reconcile sync state. Records are frozen; the synced flag is
    changed by replacing the record.
    """

    model_config = ConfigDict(frozen=True)

    language: str
    lines: int = Field(ge=0)
    time: int = Field(ge=0, description="Whole seconds")
    date: str
    hour: int = Field(ge=0, le=23)
    synced: bool = False
    timestamp: int

    def to_payload(self) -> dict[str, str | int]:
        """Wire form expected by the collector."""
        return {
            "language": self.language,
            "lines": self.lines,
            "time": self.time,
            "date": self.date,
            "hour": self.hour,
        }


_records_adapter = TypeAdapter(list[StoredRecord])


def _now_ms() -> int:
    return int(time.time() * 1000)


class PersistentBuffer:
    """Append-oriented record set persisted as a flat JSON list.

    Every mutating call rewrites the whole file before returning. A write
    failure is logged and the in-memory set is kept, so the next mutation
    retries the full write.
    """

    RETENTION_DAYS = 30

    def __init__(
        self,
        path: Path,
        retention_days: int = RETENTION_DAYS,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.path = Path(path)
        self.retention_days = retention_days
        self._clock_ms = clock_ms
        self._records: list[StoredRecord] = []
        self._last_key = 0
        self.load()

    # Persistence

    def load(self) -> None:
        """Reload the record set from disk, or start empty."""
        self._records = []

        if self.path.exists():
            try:
                self._records = _records_adapter.validate_json(self.path.read_bytes())
            except (OSError, ValidationError) as e:
                logger.error(f"Local store at {self.path} is unreadable, starting empty: {e}")
                self._backup_corrupt()

        self._last_key = max((r.timestamp for r in self._records), default=0)
        logger.debug(f"Loaded {len(self._records)} records from {self.path}")

    def _backup_corrupt(self) -> None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            shutil.copy2(self.path, backup_path)
            logger.warning(f"Corrupt store copied to: {backup_path}")
        except OSError as e:
            logger.error(f"Could not back up corrupt store: {e}")

    def save(self) -> bool:
        """Write the full record set atomically. Returns False on failure."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(_records_adapter.dump_json(self._records, indent=2))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to save local store {self.path}: {e}")
            return False
        return True

    # Mutations

    def _next_key(self) -> int:
        key = max(self._clock_ms(), self._last_key + 1)
        self._last_key = key
        return key

    def ingest(self, snapshot: SessionSnapshot) -> list[StoredRecord]:
        """Append one unsynced record per document with observable work.

        Documents with no whole second of time and no line delta are
        dropped. Nothing is merged; aggregation happens at sync time.
        """
        created: list[StoredRecord] = []

        for activity in snapshot.files.values():
            seconds = int(activity.time_spent)
            line_delta = activity.lines_added - activity.lines_deleted
            if seconds <= 0 and line_delta == 0:
                continue

            midpoint = datetime.fromtimestamp((activity.first_active + activity.last_active) / 2)
            created.append(
                StoredRecord(
                    language=activity.language or "unknown",
                    lines=max(0, line_delta),
                    time=seconds,
                    date=midpoint.date().isoformat(),
                    hour=midpoint.hour,
                    timestamp=self._next_key(),
                )
            )

        if created:
            self._records.extend(created)
            self.save()
            logger.debug(f"Stored {len(created)} records ({sum(r.time for r in created)}s)")

        return created

    def mark_synced(self, keys: Iterable[int]) -> int:
        """Flag exactly the records whose key is in ``keys``.

        Records outside the set are untouched, including any appended after
        the set was captured. Returns the number of records flipped.
        """
        keys = frozenset(keys)
        changed = 0
        updated: list[StoredRecord] = []

        for record in self._records:
            if not record.synced and record.timestamp in keys:
                record = record.model_copy(update={"synced": True})
                changed += 1
            updated.append(record)

        if changed:
            self._records = updated
            self.save()
        return changed

    def cleanup(self) -> int:
        """Drop synced records older than the retention window.

        Unsynced records are kept regardless of age.
        """
        cutoff = self._clock_ms() - self.retention_days * DAY_MS
        kept = [r for r in self._records if not r.synced or r.timestamp >= cutoff]
        removed = len(self._records) - len(kept)

        self._records = kept
        self.save()

        if removed:
            logger.info(f"Removed {removed} synced records older than {self.retention_days} days")
        return removed

    # Queries

    @property
    def records(self) -> list[StoredRecord]:
        return list(self._records)

    def unsynced_records(self) -> list[StoredRecord]:
        return [r for r in self._records if not r.synced]

    def unsynced_count(self) -> int:
        return sum(1 for r in self._records if not r.synced)

    def total_time(self) -> int:
        """Seconds across all records regardless of sync state."""
        return sum(r.time for r in self._records)

    def __len__(self) -> int:
        return len(self._records)
