"""Ledger stores for transactions and obligations."""

from .base import ObligationStore, TransactionStore
from .memory import InMemoryObligationStore, InMemoryTransactionStore
from .sqlite import SqliteObligationStore, SqliteTransactionStore, init_db

__all__ = [
    "ObligationStore",
    "TransactionStore",
    "InMemoryObligationStore",
    "InMemoryTransactionStore",
    "SqliteObligationStore",
    "SqliteTransactionStore",
    "init_db",
]
