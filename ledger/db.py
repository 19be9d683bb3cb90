"""SQLAlchemy engine/session helpers and ORM models for the ledger database.

Usage
-----
from ledger.db import create_session_factory, session_scope

factory = create_session_factory("sqlite:///inbox.db")
with session_scope(factory) as s:
    s.execute(...)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, Text, create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker


class Base(DeclarativeBase):
    pass


class AccountRow(Base):
    __tablename__ = "ledger_accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default=text("'COP'"))
    balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LedgerEntryRow(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("ledger_accounts.id"), nullable=False, index=True
    )
    # Signed: expenses are stored negative.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    transacted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    inbox_item_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SettingsRow(Base):
    """One JSON settings document per scope; the inbox lives under one key of it."""

    __tablename__ = "user_settings"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


def _prepare_sqlite_path(database_url: str) -> dict[str, Any]:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return {}
    database = url.database
    if database and database != ":memory:":
        Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    return {"check_same_thread": False}


def create_db_engine(database_url: str) -> Engine:
    connect_args = _prepare_sqlite_path(database_url)
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def create_session_factory(database_url: str, *, create_schema: bool = True) -> sessionmaker[Session]:
    """Return a session factory bound to a new engine, creating tables when asked."""

    engine = create_db_engine(database_url)
    if create_schema:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "AccountRow",
    "LedgerEntryRow",
    "SettingsRow",
    "create_db_engine",
    "create_session_factory",
    "session_scope",
]
