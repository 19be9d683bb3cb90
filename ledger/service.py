import copy
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import ContextManager, Iterator, Optional, Protocol
from uuid import uuid4

from .models import Account, EntryDraft, LedgerEntry

logger = logging.getLogger(__name__)

EXPENSE_TYPE = "expense"


class LedgerServiceError(Exception):
    pass


class AccountNotFoundError(LedgerServiceError):
    pass


class LedgerCommitError(LedgerServiceError):
    pass


class LedgerUnitOfWork(Protocol):
    def create_entry(self, account_id: str, signed_amount: Decimal, draft: EntryDraft) -> LedgerEntry: ...

    def increment_balance(self, account_id: str, signed_amount: Decimal) -> None: ...


class LedgerStore(Protocol):
    """The account/ledger collaborator. Entry and balance writes only happen inside ``atomic()``."""

    def account_exists(self, account_id: str) -> bool: ...

    def add_account(self, account: Account) -> Account: ...

    def get_account(self, account_id: str) -> Optional[Account]: ...

    def entries_for_item(self, inbox_item_id: str) -> list[LedgerEntry]: ...

    def atomic(self) -> ContextManager[LedgerUnitOfWork]: ...


class _InMemoryUnitOfWork:
    def __init__(self, store: "InMemoryLedgerStore"):
        self.store = store

    def create_entry(self, account_id: str, signed_amount: Decimal, draft: EntryDraft) -> LedgerEntry:
        if account_id not in self.store.accounts:
            raise AccountNotFoundError(f"Account {account_id} not found")

        entry_data = {
            "id": str(uuid4()),
            "account_id": account_id,
            "amount": signed_amount,
            "created_at": datetime.now(timezone.utc),
            **draft.model_dump(),
        }
        self.store.entries[entry_data["id"]] = entry_data
        return LedgerEntry(**entry_data)

    def increment_balance(self, account_id: str, signed_amount: Decimal) -> None:
        account_data = self.store.accounts.get(account_id)
        if not account_data:
            raise AccountNotFoundError(f"Account {account_id} not found")
        account_data["balance"] = account_data["balance"] + signed_amount
        account_data["last_synced_at"] = datetime.now(timezone.utc)


class InMemoryLedgerStore:
    def __init__(self, accounts: Optional[list[Account]] = None):
        self.accounts: dict[str, dict] = {}
        self.entries: dict[str, dict] = {}
        self._lock = threading.RLock()
        for account in accounts or []:
            self.add_account(account)

    def add_account(self, account: Account) -> Account:
        self.accounts[account.id] = account.model_dump()
        return account

    def account_exists(self, account_id: str) -> bool:
        return account_id in self.accounts

    def get_account(self, account_id: str) -> Optional[Account]:
        account_data = self.accounts.get(account_id)
        return Account(**account_data) if account_data else None

    def list_entries(self, account_id: Optional[str] = None) -> list[LedgerEntry]:
        entries = [
            LedgerEntry(**e) for e in self.entries.values()
            if account_id is None or e["account_id"] == account_id
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    def entries_for_item(self, inbox_item_id: str) -> list[LedgerEntry]:
        return [LedgerEntry(**e) for e in self.entries.values() if e.get("inbox_item_id") == inbox_item_id]

    @contextmanager
    def atomic(self) -> Iterator[_InMemoryUnitOfWork]:
        with self._lock:
            accounts_snapshot = copy.deepcopy(self.accounts)
            entries_snapshot = dict(self.entries)
            try:
                yield _InMemoryUnitOfWork(self)
            except Exception:
                self.accounts = accounts_snapshot
                self.entries = entries_snapshot
                raise


class LedgerCommitter:
    def __init__(self, store: Optional[LedgerStore] = None):
        self.store = store if store is not None else InMemoryLedgerStore()

    @staticmethod
    def signed_amount(amount: Decimal, transaction_type: str) -> Decimal:
        magnitude = abs(amount)
        return -magnitude if transaction_type == EXPENSE_TYPE else magnitude

    def account_exists(self, account_id: str) -> bool:
        return self.store.account_exists(account_id)

    def get_account(self, account_id: str) -> Account:
        account = self.store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def entries_for_item(self, inbox_item_id: str) -> list[LedgerEntry]:
        return self.store.entries_for_item(inbox_item_id)

    def commit(self, account_id: str, amount: Decimal, draft: EntryDraft) -> LedgerEntry:
        """Create the ledger entry and move the account balance by the same signed amount.

        Both writes happen in one ``atomic()`` block: if either fails, neither is kept.
        """
        if not self.store.account_exists(account_id):
            raise AccountNotFoundError(f"Account {account_id} not found")

        signed_amount = self.signed_amount(amount, draft.type)
        try:
            with self.store.atomic() as unit:
                entry = unit.create_entry(account_id, signed_amount, draft)
                unit.increment_balance(account_id, signed_amount)
        except LedgerServiceError:
            raise
        except Exception as e:
            raise LedgerCommitError(f"Failed to commit ledger entry for account {account_id}: {e}") from e

        logger.info("Committed ledger entry %s (%s) to account %s", entry.id, signed_amount, account_id)
        return entry
