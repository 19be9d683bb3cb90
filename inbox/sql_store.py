from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from ledger.db import SettingsRow, session_scope

from .config import DEFAULT_MAX_ITEMS
from .store import DocumentInboxRepository

SETTINGS_KEY = "finance_inbox"


class SqlSettingsInboxRepository(DocumentInboxRepository):
    """Stores the inbox document under one key of a per-scope settings row.

    Other keys in the row are left untouched on save.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        scope: str = "default",
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        super().__init__(max_items)
        self.session_factory = session_factory
        self.scope = scope

    def _read_document(self) -> Any:
        with session_scope(self.session_factory) as session:
            row = session.get(SettingsRow, self.scope)
            data = row.data if row and isinstance(row.data, dict) else {}
            return data.get(SETTINGS_KEY, {})

    def _write_document(self, document: dict) -> None:
        with session_scope(self.session_factory) as session:
            row = session.get(SettingsRow, self.scope)
            if row is None:
                session.add(SettingsRow(id=self.scope, data={SETTINGS_KEY: document}))
            else:
                # Reassign so the JSON column is flagged as changed.
                row.data = {**(row.data or {}), SETTINGS_KEY: document}
