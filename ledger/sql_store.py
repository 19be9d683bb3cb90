from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from .db import AccountRow, LedgerEntryRow, session_scope
from .models import Account, EntryDraft, LedgerEntry
from .service import AccountNotFoundError


class _SqlUnitOfWork:
    def __init__(self, session: Session):
        self.session = session

    def create_entry(self, account_id: str, signed_amount: Decimal, draft: EntryDraft) -> LedgerEntry:
        if self.session.get(AccountRow, account_id) is None:
            raise AccountNotFoundError(f"Account {account_id} not found")

        row = LedgerEntryRow(
            id=str(uuid4()),
            account_id=account_id,
            amount=signed_amount,
            transacted_at=draft.transacted_at,
            currency=draft.currency,
            description=draft.description,
            category=draft.category,
            subcategory=draft.subcategory,
            type=draft.type,
            merchant=draft.merchant,
            reference=draft.reference,
            source=draft.source.value,
            notes=draft.notes,
            inbox_item_id=draft.inbox_item_id,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(row)
        self.session.flush()
        return LedgerEntry.model_validate(row)

    def increment_balance(self, account_id: str, signed_amount: Decimal) -> None:
        # Incremented in SQL, never from a previously read balance.
        result = self.session.execute(
            update(AccountRow)
            .where(AccountRow.id == account_id)
            .values(
                balance=AccountRow.balance + signed_amount,
                last_synced_at=datetime.now(timezone.utc),
            )
        )
        if result.rowcount != 1:
            raise AccountNotFoundError(f"Account {account_id} not found")


class SqlLedgerStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def add_account(self, account: Account) -> Account:
        with session_scope(self.session_factory) as session:
            session.add(AccountRow(**account.model_dump()))
        return account

    def account_exists(self, account_id: str) -> bool:
        with session_scope(self.session_factory) as session:
            return session.get(AccountRow, account_id) is not None

    def get_account(self, account_id: str) -> Optional[Account]:
        with session_scope(self.session_factory) as session:
            row = session.get(AccountRow, account_id)
            return Account.model_validate(row) if row else None

    def list_entries(self, account_id: Optional[str] = None) -> list[LedgerEntry]:
        stmt = select(LedgerEntryRow).order_by(LedgerEntryRow.created_at.desc())
        if account_id is not None:
            stmt = stmt.where(LedgerEntryRow.account_id == account_id)
        with session_scope(self.session_factory) as session:
            return [LedgerEntry.model_validate(row) for row in session.scalars(stmt)]

    def entries_for_item(self, inbox_item_id: str) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntryRow)
            .where(LedgerEntryRow.inbox_item_id == inbox_item_id)
            .order_by(LedgerEntryRow.created_at)
        )
        with session_scope(self.session_factory) as session:
            return [LedgerEntry.model_validate(row) for row in session.scalars(stmt)]

    @contextmanager
    def atomic(self) -> Iterator[_SqlUnitOfWork]:
        with session_scope(self.session_factory) as session:
            yield _SqlUnitOfWork(session)
