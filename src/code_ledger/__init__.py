"""Code Ledger - per-file coding time accounting with durable sync."""

__version__ = "0.1.0"
