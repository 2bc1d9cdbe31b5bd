"""Collector client and sync coordination."""

from code_ledger.sync.api_client import (
    CollectorClient,
    CollectorError,
    MissingTokenError,
    SyncResult,
)
from code_ledger.sync.coordinator import SyncCoordinator

__all__ = [
    "CollectorClient",
    "CollectorError",
    "MissingTokenError",
    "SyncResult",
    "SyncCoordinator",
]
