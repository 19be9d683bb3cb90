from datetime import datetime, timezone
from decimal import Decimal

import pytest

from extraction import TransactionExtractor
from inbox.service import InboxService
from inbox.store import InMemoryInboxRepository
from ledger import Account, InMemoryLedgerStore

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
ACCOUNT_ID = "acct-main"


@pytest.fixture(autouse=True)
def _no_groq_key(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore([
        Account(id=ACCOUNT_ID, name="Cuenta de ahorros", balance=Decimal("500000.00")),
    ])


@pytest.fixture
def repository() -> InMemoryInboxRepository:
    return InMemoryInboxRepository()


@pytest.fixture
def service(repository, ledger_store) -> InboxService:
    return InboxService(
        repository=repository,
        extractor=TransactionExtractor(clock=lambda: NOW),
        ledger_store=ledger_store,
        clock=lambda: NOW,
    )
