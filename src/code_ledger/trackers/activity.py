"""Tick-based active time accumulator for open documents."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from code_ledger.trackers.idle_detector import IdleDetector, IdleStatus

logger = logging.getLogger(__name__)


@dataclass
class FileActivity:
    """Live ledger entry for one document."""

    file_path: str
    language: str
    keystrokes: int = 0
    lines_added: int = 0
    lines_deleted: int = 0
    time_spent: float = 0.0  # seconds
    first_active: float = 0.0  # epoch seconds
    last_active: float = 0.0

    @property
    def net_lines(self) -> int:
        return max(0, self.lines_added - self.lines_deleted)


@dataclass(frozen=True)
class EditRange:
    """A single content change reported by the editor."""

    start_line: int
    end_line: int
    text: str = ""
    range_length: int = 0


@dataclass(frozen=True)
class EditDelta:
    """Counters derived from a batch of edit ranges."""

    lines_added: int = 0
    lines_deleted: int = 0
    keystrokes: int = 0


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable copy of the accumulator state.

    ``snapshot_time`` is informational and excluded from equality, so two
    snapshots of unchanged state compare equal.
    """

    session_start: float
    snapshot_time: float = field(compare=False)
    files: Mapping[str, FileActivity] = field(default_factory=dict)
    total_keystrokes: int = 0
    total_time_spent: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", MappingProxyType(dict(self.files)))

    @property
    def has_activity(self) -> bool:
        return self.total_time_spent > 0 or self.total_keystrokes > 0


def measure_edits(changes: Iterable[EditRange]) -> EditDelta:
    """Turn raw edit ranges into line and keystroke counters.

    A multi-line replacement is charged only for the difference between
    removed and inserted lines. Keystrokes are approximated as the larger of
    the inserted text and the replaced range.
    """
    lines_added = 0
    lines_deleted = 0
    keystrokes = 0

    for change in changes:
        deleted = max(0, change.end_line - change.start_line)
        added = change.text.count("\n")

        if deleted and added:
            overlap = min(deleted, added)
            deleted -= overlap
            added -= overlap

        lines_deleted += deleted
        lines_added += added
        keystrokes += max(len(change.text), change.range_length)

    return EditDelta(lines_added=lines_added, lines_deleted=lines_deleted, keystrokes=keystrokes)


class ActivityAccumulator:
    """Per-document ledger of active time, edits and keystrokes.

    Time only advances inside :meth:`tick`, which the owner calls on a fixed
    period. A tick accrues nothing when the host window is unfocused, no
    document is focused, or the user has been idle past the threshold.
    Elapsed time is capped per tick (sleep/suspend, late timers) and per
    flush interval (runaway accrual between two flushes).

    All handlers are expected to run on a single event loop; there is no
    internal locking.
    """

    IDLE_THRESHOLD = 120.0
    MAX_TIME_PER_TICK = 2.0
    MAX_TIME_PER_FLUSH = 35.0

    def __init__(
        self,
        idle_threshold: float = IDLE_THRESHOLD,
        max_time_per_tick: float = MAX_TIME_PER_TICK,
        max_time_per_flush: float = MAX_TIME_PER_FLUSH,
        clock: Callable[[], float] = time.time,
    ):
        self._clock = clock
        self.max_time_per_tick = max_time_per_tick
        self.max_time_per_flush = max_time_per_flush

        now = clock()
        self.idle_detector = IdleDetector(idle_threshold=idle_threshold, now=now)

        self._files: dict[str, FileActivity] = {}
        self._current_file: str | None = None
        self._session_start = now
        self._last_tick = now
        self._total_keystrokes = 0
        self._interval_time = 0.0
        self._is_active = False

    # Event handlers

    def on_resource_opened(self, file_path: str, language: str) -> FileActivity:
        """Register a document; re-opening keeps existing counters."""
        now = self._clock()
        activity = self._files.get(file_path)
        if activity is None:
            activity = FileActivity(
                file_path=file_path,
                language=language,
                first_active=now,
                last_active=now,
            )
            self._files[file_path] = activity
            logger.debug(f"Tracking {file_path} ({language})")

        self.idle_detector.mark_activity(now)
        return activity

    def on_resource_edited(
        self,
        file_path: str,
        changes: Iterable[EditRange],
        language: str = "unknown",
    ) -> EditDelta:
        """Account for a batch of content changes in one document."""
        now = self._clock()
        activity = self._files.get(file_path) or self.on_resource_opened(file_path, language)

        activity.last_active = now
        self.idle_detector.mark_activity(now)

        delta = measure_edits(changes)
        activity.keystrokes += delta.keystrokes
        activity.lines_added += delta.lines_added
        activity.lines_deleted += delta.lines_deleted
        self._total_keystrokes += delta.keystrokes
        return delta

    def on_resource_closed(self, file_path: str) -> None:
        """Drop focus from a closed document but keep its history."""
        activity = self._files.get(file_path)
        if activity is not None:
            activity.last_active = self._clock()

        if self._current_file == file_path:
            self._current_file = None

    def on_focus_changed(self, file_path: str | None, language: str = "unknown") -> None:
        """Switch the focused document; ``None`` suspends accrual."""
        if file_path is None:
            self._current_file = None
            return

        now = self._clock()
        self._current_file = file_path
        activity = self._files.get(file_path) or self.on_resource_opened(file_path, language)
        activity.last_active = now
        self.idle_detector.mark_activity(now)

    def on_host_focus_changed(self, focused: bool) -> None:
        """Regaining host focus restarts the idle clock and the tick baseline."""
        now = self._clock()
        self.idle_detector.set_host_focus(focused, now)
        if focused:
            self._last_tick = now

    def on_selection_changed(self, file_path: str | None = None) -> None:
        """Cursor movement is activity, nothing else."""
        self.mark_activity()

    def on_visible_editors_changed(self) -> None:
        self.mark_activity()

    def mark_activity(self) -> None:
        self.idle_detector.mark_activity(self._clock())

    # Time accounting

    def tick(self) -> float:
        """Advance accounting by the time since the previous tick.

        Returns:
            Seconds accrued to the focused document (0.0 when skipped)
        """
        now = self._clock()
        elapsed = max(0.0, now - self._last_tick)
        self._last_tick = now

        state = self.idle_detector.get_idle_state(now, has_resource=self._current_file is not None)
        if state.status is not IdleStatus.ACTIVE:
            self._is_active = False
            return 0.0

        activity = self._files.get(self._current_file)
        if activity is None:
            return 0.0

        # Never exceed the wall-clock window the document has been tracked for
        headroom = max(0.0, now - activity.first_active - activity.time_spent)
        time_to_add = min(elapsed, self.max_time_per_tick, headroom)

        if self._interval_time + time_to_add > self.max_time_per_flush:
            logger.warning(
                f"Time limit reached for interval: {self._interval_time:.1f}s "
                f"(cap {self.max_time_per_flush:.0f}s)"
            )
            return 0.0

        activity.time_spent += time_to_add
        activity.last_active = now
        self._interval_time += time_to_add
        self._is_active = True
        return time_to_add

    def snapshot(self) -> SessionSnapshot:
        """Copy the current state without mutating it."""
        files = {path: replace(activity) for path, activity in self._files.items()}
        return SessionSnapshot(
            session_start=self._session_start,
            snapshot_time=self._clock(),
            files=files,
            total_keystrokes=self._total_keystrokes,
            total_time_spent=sum(a.time_spent for a in files.values()),
        )

    def reset(self) -> None:
        """Zero all counters but keep the known documents."""
        now = self._clock()

        for activity in self._files.values():
            activity.time_spent = 0.0
            activity.keystrokes = 0
            activity.lines_added = 0
            activity.lines_deleted = 0
            activity.first_active = now
            activity.last_active = now

        self._session_start = now
        self._total_keystrokes = 0
        self._interval_time = 0.0
        self._last_tick = now

    # Read-only views

    @property
    def session_time(self) -> float:
        """Seconds accrued across all documents since the last reset."""
        return sum(a.time_spent for a in self._files.values())

    @property
    def is_active(self) -> bool:
        """Whether the most recent tick accrued time."""
        return self._is_active

    @property
    def current_file(self) -> str | None:
        return self._current_file

    @property
    def interval_time(self) -> float:
        return self._interval_time

    @property
    def tracked_files(self) -> list[str]:
        return list(self._files)
