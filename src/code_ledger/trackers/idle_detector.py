"""Idle detection driven by editor activity events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class IdleStatus(str, Enum):
    """Why a tick may or may not accrue time."""

    ACTIVE = "ACTIVE"
    UNFOCUSED = "UNFOCUSED"  # Host window lost focus
    NO_RESOURCE = "NO_RESOURCE"  # No document focused
    IDLE = "IDLE"  # No activity for longer than the threshold


@dataclass
class IdleState:
    """Idle state at a given instant."""

    seconds_since_activity: float
    host_focused: bool
    status: IdleStatus


class IdleDetector:
    """Tracks the last user activity and the host window focus.

    Unlike a system-wide detector this one never polls: every editor event
    calls :meth:`mark_activity`, and the tick asks :meth:`get_idle_state`
    whether time between ticks counts as genuine work.
    """

    IDLE_THRESHOLD = 120  # Seconds

    def __init__(self, idle_threshold: float = IDLE_THRESHOLD, now: float = 0.0):
        self.idle_threshold = idle_threshold
        self.host_focused = True
        self._last_activity = now

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def mark_activity(self, now: float) -> None:
        """Record a user action at ``now``."""
        self._last_activity = now

    def set_host_focus(self, focused: bool, now: float) -> None:
        """Update host focus; regaining focus counts as fresh activity."""
        self.host_focused = focused
        if focused:
            self._last_activity = now
        logger.debug(f"Host focus changed: {'focused' if focused else 'blurred'}")

    def seconds_since_activity(self, now: float) -> float:
        return now - self._last_activity

    def get_idle_state(self, now: float, has_resource: bool) -> IdleState:
        """Classify the current instant.

        Args:
            now: Current epoch time in seconds
            has_resource: Whether a document currently holds focus

        Returns:
            IdleState with timing and status classification
        """
        since = self.seconds_since_activity(now)

        if not self.host_focused:
            status = IdleStatus.UNFOCUSED
        elif not has_resource:
            status = IdleStatus.NO_RESOURCE
        elif since > self.idle_threshold:
            status = IdleStatus.IDLE
        else:
            status = IdleStatus.ACTIVE

        return IdleState(
            seconds_since_activity=since,
            host_focused=self.host_focused,
            status=status,
        )

    def is_idle(self, now: float) -> bool:
        """Simple check if the user is idle."""
        return self.seconds_since_activity(now) > self.idle_threshold
