"""
Transaction Inbox

Reviewable queue between free-text bank alerts and the ledger:
- Manual and remote ingestion through one extraction + dedup path
- Content fingerprints blocking re-ingestion across every status
- Bounded, newest-first whole-document store
- pending -> approved / rejected -> reopen review state machine
- Atomic ledger commit on approval
"""

from .errors import (
    InboxError,
    InboxValidationError,
    InvalidStateTransitionError,
    ItemNotFoundError,
    NoTransactionsFoundError,
    PersistenceError,
    RemoteSourceError,
    SourceNotConfiguredError,
)
from .fingerprint import FingerprintIndex, build_fingerprint
from .models import (
    InboxItem,
    InboxMeta,
    InboxSource,
    InboxState,
    InboxStatus,
    ReviewAction,
    ReviewRequest,
)
from .service import InboxService, build_service
from .sources import MessageSource, RemoteMessage, StaticMessageSource
from .store import InboxRepository, InMemoryInboxRepository, JsonFileInboxRepository

__all__ = [
    "InboxError",
    "InboxValidationError",
    "InvalidStateTransitionError",
    "ItemNotFoundError",
    "NoTransactionsFoundError",
    "PersistenceError",
    "RemoteSourceError",
    "SourceNotConfiguredError",
    "FingerprintIndex",
    "build_fingerprint",
    "InboxItem",
    "InboxMeta",
    "InboxSource",
    "InboxState",
    "InboxStatus",
    "ReviewAction",
    "ReviewRequest",
    "InboxService",
    "build_service",
    "MessageSource",
    "RemoteMessage",
    "StaticMessageSource",
    "InboxRepository",
    "InMemoryInboxRepository",
    "JsonFileInboxRepository",
]
