"""Local persistence for flushed activity records."""

from code_ledger.storage.buffer import PersistentBuffer, StoredRecord

__all__ = ["PersistentBuffer", "StoredRecord"]
