"""
Ledger Commit Package

This module provides:
- Account and ledger entry models
- The account/ledger collaborator interface with in-memory and SQL stores
- Atomic commit of "create entry + increment balance"
- Sign resolution at commit time (expenses negative, income/transfers positive)
"""

from .models import (
    Account,
    EntryDraft,
    EntrySource,
    LedgerEntry,
)
from .service import (
    AccountNotFoundError,
    InMemoryLedgerStore,
    LedgerCommitError,
    LedgerCommitter,
    LedgerServiceError,
    LedgerStore,
)

__all__ = [
    "Account",
    "EntryDraft",
    "EntrySource",
    "LedgerEntry",
    "AccountNotFoundError",
    "InMemoryLedgerStore",
    "LedgerCommitError",
    "LedgerCommitter",
    "LedgerServiceError",
    "LedgerStore",
]
