"""Read-only status snapshot for presentation layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StatusReport:
    """Totals shown in a status line or tooltip."""

    stored_seconds: int
    session_seconds: int
    unsynced_count: int

    @property
    def total_seconds(self) -> int:
        return self.stored_seconds + self.session_seconds

    @property
    def all_synced(self) -> bool:
        return self.unsynced_count == 0

    def summary(self) -> str:
        """Short one-line form, e.g. ``1 h 5 min (3 pending)``."""
        text = format_time_string(self.total_seconds)
        if self.unsynced_count:
            text += f" ({self.unsynced_count} pending)"
        return text


def format_time_string(total_seconds: int) -> str:
    """Compact duration for a status line."""
    if total_seconds < 60:
        return f"{total_seconds} sec"

    hours, remainder = divmod(total_seconds, 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours} h {minutes} min"
    return f"{minutes} min"


def format_detailed_time(total_seconds: int) -> str:
    """Duration with one level more detail than :func:`format_time_string`."""
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours > 0:
        return f"{hours} h {minutes} min"
    if minutes > 0:
        return f"{minutes} min {seconds} sec"
    return f"{seconds} sec"
