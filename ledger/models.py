from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class EntrySource(str, Enum):
    EMAIL = "email"
    MANUAL = "manual"


class Account(BaseModel):
    id: str
    name: str
    currency: str = "COP"
    balance: Decimal = Decimal("0.00")
    last_synced_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EntryDraft(BaseModel):
    """Everything about a ledger entry except the account and the signed amount."""

    transacted_at: datetime
    currency: str = "COP"
    description: str
    category: str
    subcategory: Optional[str] = None
    type: str
    merchant: Optional[str] = None
    reference: Optional[str] = None
    source: EntrySource = EntrySource.MANUAL
    notes: Optional[str] = None
    inbox_item_id: Optional[str] = None


class LedgerEntry(BaseModel):
    id: str
    account_id: str
    amount: Decimal = Field(..., description="Signed: negative for expenses")
    transacted_at: datetime
    currency: str = "COP"
    description: str
    category: str
    subcategory: Optional[str] = None
    type: str
    merchant: Optional[str] = None
    reference: Optional[str] = None
    source: EntrySource = EntrySource.MANUAL
    notes: Optional[str] = None
    inbox_item_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
