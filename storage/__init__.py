"""Storage - SQLite persistence for receivables."""

from storage.db import DEFAULT_DB_PATH, ReceivablesStore

__all__ = [
    "DEFAULT_DB_PATH",
    "ReceivablesStore",
]
