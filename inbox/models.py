from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict

from extraction import CandidateTransaction

RAW_SNIPPET_MAX_LENGTH = 5000
REVIEW_NOTES_MAX_LENGTH = 500


class InboxStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InboxSource(str, Enum):
    REMOTE = "remote"
    MANUAL = "manual"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REOPEN = "reopen"


# The only legal transitions; anything else is rejected before mutation.
TRANSITIONS: dict[ReviewAction, tuple[frozenset[InboxStatus], InboxStatus]] = {
    ReviewAction.APPROVE: (frozenset({InboxStatus.PENDING}), InboxStatus.APPROVED),
    ReviewAction.REJECT: (frozenset({InboxStatus.PENDING}), InboxStatus.REJECTED),
    ReviewAction.REOPEN: (frozenset({InboxStatus.APPROVED, InboxStatus.REJECTED}), InboxStatus.PENDING),
}


class InboxItem(BaseModel):
    id: str
    status: InboxStatus = InboxStatus.PENDING
    source: InboxSource = InboxSource.MANUAL
    source_message_id: Optional[str] = None
    sender: Optional[str] = None
    subject: Optional[str] = None
    received_at: Optional[datetime] = None
    account_id: Optional[str] = None
    raw_snippet: str = Field(default="", max_length=RAW_SNIPPET_MAX_LENGTH)
    fingerprint: str
    parsed: CandidateTransaction
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    linked_ledger_entry_id: Optional[str] = None
    # Entries left behind by reopening an approved item.
    superseded_ledger_entry_ids: list[str] = Field(default_factory=list)

    def can_apply(self, action: ReviewAction) -> bool:
        allowed_from, _ = TRANSITIONS[action]
        return self.status in allowed_from


class InboxMeta(BaseModel):
    last_fetched_at: Optional[datetime] = None
    last_fetch_count: Optional[int] = None
    last_fetch_query: Optional[str] = None


class InboxState(BaseModel):
    items: list[InboxItem] = Field(default_factory=list)
    meta: InboxMeta = Field(default_factory=InboxMeta)

    def find_index(self, item_id: str) -> int:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        return -1


class InboxCounts(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0


class RemoteSourceStatus(BaseModel):
    configured: bool


class InboxOverview(BaseModel):
    items: list[InboxItem]
    meta: InboxMeta
    counts: InboxCounts
    remote: RemoteSourceStatus


class ManualIngestRequest(BaseModel):
    raw_text: str = ""
    sender: Optional[str] = None
    subject: Optional[str] = None
    account_id: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "raw_text": "Bancolombia le informa Compra por $45.000 en RAPPI 05/03/2024",
            "sender": "alertas@bancolombia.com.co",
            "subject": "Alertas y Notificaciones",
        }
    })


class FetchRequest(BaseModel):
    query: Optional[str] = None
    max_messages: Optional[int] = None
    account_id: Optional[str] = None


class ReviewRequest(BaseModel):
    # Plain strings: missing or unknown values become InboxValidationError, not 422.
    id: str = ""
    action: str = ""
    account_id: Optional[str] = None
    edits: Optional[dict[str, Any]] = None
    review_notes: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "3f1c9c1e-5d0e-4c8e-a9f4-1c2b3d4e5f60",
            "action": "approve",
            "account_id": "acct-main",
            "edits": {"category": "food", "amount": 45000},
            "review_notes": "Weekly groceries",
        }
    })


class IngestResult(BaseModel):
    added: int
    skipped_duplicates: int
    items: list[InboxItem] = Field(default_factory=list)


class FetchResult(BaseModel):
    fetched_messages: int = 0
    parsed_candidates: int = 0
    queued: int = 0
    skipped_duplicates: int = 0
    failed_messages: int = 0
    query: str


class ReviewResponse(BaseModel):
    success: bool = True
    item: InboxItem
