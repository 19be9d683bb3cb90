import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from extraction import TransactionExtractor
from ledger import Account, InMemoryLedgerStore, LedgerCommitter, LedgerStore
from ledger.db import create_session_factory
from ledger.sql_store import SqlLedgerStore

from .config import InboxSettings
from .ingestion import InboxIngestor
from .models import (
    FetchResult,
    IngestResult,
    InboxCounts,
    InboxItem,
    InboxOverview,
    InboxStatus,
    RemoteSourceStatus,
    ReviewRequest,
)
from .review import ReviewStateMachine
from .sources import MessageSource
from .sql_store import SqlSettingsInboxRepository
from .store import InboxRepository, InMemoryInboxRepository, JsonFileInboxRepository

logger = logging.getLogger(__name__)


class InboxService:
    """Entry point for every inbox operation; each call loads fresh state."""

    def __init__(
        self,
        repository: Optional[InboxRepository] = None,
        extractor: Optional[TransactionExtractor] = None,
        ledger_store: Optional[LedgerStore] = None,
        message_source: Optional[MessageSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.repository = repository or InMemoryInboxRepository()
        self.extractor = extractor or TransactionExtractor(clock=self.clock)
        self.committer = LedgerCommitter(ledger_store)
        self.ingestor = InboxIngestor(self.repository, self.extractor, message_source, self.clock)
        self.reviewer = ReviewStateMachine(self.repository, self.committer, self.clock)

    @property
    def message_source(self) -> Optional[MessageSource]:
        return self.ingestor.message_source

    def list_items(self) -> InboxOverview:
        state = self.repository.load_state()
        counts = InboxCounts(
            pending=sum(1 for item in state.items if item.status == InboxStatus.PENDING),
            approved=sum(1 for item in state.items if item.status == InboxStatus.APPROVED),
            rejected=sum(1 for item in state.items if item.status == InboxStatus.REJECTED),
            total=len(state.items),
        )
        return InboxOverview(
            items=state.items,
            meta=state.meta,
            counts=counts,
            remote=RemoteSourceStatus(configured=self.message_source is not None),
        )

    def ingest_manual(
        self,
        raw_text: str,
        sender: Optional[str] = None,
        subject: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> IngestResult:
        return self.ingestor.ingest_manual(raw_text, sender=sender, subject=subject, account_id=account_id)

    def fetch_remote(
        self,
        query: Optional[str] = None,
        max_messages: Optional[int] = None,
        account_id: Optional[str] = None,
    ) -> FetchResult:
        return self.ingestor.fetch_remote(query=query, max_messages=max_messages, account_id=account_id)

    def review(self, request: ReviewRequest) -> InboxItem:
        return self.reviewer.review(request)

    def approve(
        self,
        item_id: str,
        account_id: Optional[str] = None,
        edits: Optional[dict[str, Any]] = None,
        review_notes: Optional[str] = None,
    ) -> InboxItem:
        return self.reviewer.approve(item_id, account_id, edits, review_notes)

    def reject(
        self,
        item_id: str,
        edits: Optional[dict[str, Any]] = None,
        review_notes: Optional[str] = None,
    ) -> InboxItem:
        return self.reviewer.reject(item_id, edits, review_notes)

    def reopen(self, item_id: str, edits: Optional[dict[str, Any]] = None) -> InboxItem:
        return self.reviewer.reopen(item_id, edits)

    def get_account(self, account_id: str) -> Account:
        return self.committer.get_account(account_id)


def build_service(settings: InboxSettings, message_source: Optional[MessageSource] = None) -> InboxService:
    """Wire stores and the extractor from settings.

    A database URL puts both the ledger and the inbox document in the database;
    otherwise the inbox goes to ``state_path`` (or memory) and the ledger is in-memory.
    Accounts listed in ``settings.accounts`` are created when missing; without them
    (or accounts already in the database) every approval is a 404.

    No mailbox client ships with this package, so remote fetch answers 400 unless
    the caller passes a ``message_source``.
    """
    extractor = TransactionExtractor(
        api_key=settings.groq_api_key,
        model=settings.extraction_model,
        timeout_seconds=settings.extraction_timeout_seconds,
        max_tokens=settings.extraction_max_tokens,
        temperature=settings.extraction_temperature,
        default_currency=settings.default_currency,
    )

    repository: InboxRepository
    ledger_store: LedgerStore
    if settings.database_url:
        session_factory = create_session_factory(settings.database_url)
        repository = SqlSettingsInboxRepository(session_factory, max_items=settings.max_items)
        ledger_store = SqlLedgerStore(session_factory)
    else:
        if settings.state_path:
            repository = JsonFileInboxRepository(settings.state_path, max_items=settings.max_items)
        else:
            repository = InMemoryInboxRepository(max_items=settings.max_items)
        ledger_store = InMemoryLedgerStore()
    seed_accounts(ledger_store, settings.accounts, settings.default_currency)

    logger.info(
        "Inbox service ready (llm=%s, storage=%s)",
        extractor.is_available,
        type(repository).__name__,
    )
    return InboxService(
        repository=repository,
        extractor=extractor,
        ledger_store=ledger_store,
        message_source=message_source,
    )


def seed_accounts(
    ledger_store: LedgerStore,
    accounts: Iterable[tuple[str, str]],
    currency: str,
) -> None:
    for account_id, name in accounts:
        if ledger_store.account_exists(account_id):
            continue
        ledger_store.add_account(Account(id=account_id, name=name, currency=currency))
        logger.info("Created ledger account %s", account_id)
