"""
State layer for AstroForge ledgers

Provides:
- StateStore: one sequential, all-or-nothing state log per deployment
- StateTable: journaled mappings the ledgers keep their state in
- EventJournal: the hash-chained log of committed facts
"""

from .store import (
    StateStore,
    StateTable,
    TransactionContext,
    EventJournal,
    ChainHead,
    StoreError,
    ChainIntegrityError,
)

__all__ = [
    "StateStore",
    "StateTable",
    "TransactionContext",
    "EventJournal",
    "ChainHead",
    "StoreError",
    "ChainIntegrityError",
]
