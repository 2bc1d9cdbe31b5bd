"""Activity tracking components."""

from code_ledger.trackers.activity import (
    ActivityAccumulator,
    EditRange,
    FileActivity,
    SessionSnapshot,
)
from code_ledger.trackers.idle_detector import IdleDetector, IdleStatus

__all__ = [
    "ActivityAccumulator",
    "EditRange",
    "FileActivity",
    "SessionSnapshot",
    "IdleDetector",
    "IdleStatus",
]
