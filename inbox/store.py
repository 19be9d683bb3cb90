"""
Whole-document persistence for the inbox.

The inbox is stored as one JSON document, ``{"queue": [...], "meta": {...}}``,
read and written as a unit: load everything, mutate, write everything back.
There is no version token, so the read-modify-write cycle is only safe with a
single writer.

Documents are read leniently. Every field is optional; malformed items are
dropped rather than failing the whole load.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from extraction import CandidateTransaction
from extraction.categories import is_valid_category, normalize_type, TransactionType
from extraction.validation import (
    clean_description,
    normalize_confidence,
    normalize_currency,
    normalize_date,
    optional_text,
    to_amount,
)

from .config import DEFAULT_MAX_ITEMS
from .errors import PersistenceError
from .fingerprint import build_fingerprint
from .models import (
    RAW_SNIPPET_MAX_LENGTH,
    InboxItem,
    InboxMeta,
    InboxSource,
    InboxState,
    InboxStatus,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_parsed(value: Any, now: datetime) -> Optional[CandidateTransaction]:
    if not isinstance(value, dict):
        return None

    description = clean_description(str(value.get("description") or ""))
    amount = to_amount(value.get("amount"))
    if not description or amount is None or amount <= 0:
        return None

    category = optional_text(value.get("category"), lower=True)
    try:
        return CandidateTransaction(
            transacted_at=normalize_date(value.get("transacted_at"), now),
            amount=amount,
            currency=normalize_currency(value.get("currency")),
            description=description,
            category=category if is_valid_category(category) else "other",
            subcategory=optional_text(value.get("subcategory"), lower=True),
            type=normalize_type(value.get("type"), TransactionType.EXPENSE),
            merchant=optional_text(value.get("merchant")),
            reference=optional_text(value.get("reference")),
            confidence=normalize_confidence(value.get("confidence")),
        )
    except ValidationError:
        return None


def _optional_date(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    return normalize_date(value, fallback=None)


def _text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [text for text in (optional_text(v) for v in value) if text]


def normalize_item(value: Any, now: datetime) -> Optional[InboxItem]:
    if not isinstance(value, dict):
        return None

    item_id = optional_text(value.get("id"))
    parsed = normalize_parsed(value.get("parsed"), now)
    if not item_id or parsed is None:
        return None

    status = value.get("status")
    source = value.get("source")
    fingerprint = optional_text(value.get("fingerprint")) or build_fingerprint(
        source=source if source in {s.value for s in InboxSource} else InboxSource.MANUAL,
        transacted_at=parsed.transacted_at,
        amount=parsed.amount,
        description=parsed.description,
    )

    raw_snippet = value.get("raw_snippet")
    return InboxItem(
        id=item_id,
        status=status if status in {s.value for s in InboxStatus} else InboxStatus.PENDING,
        source=source if source in {s.value for s in InboxSource} else InboxSource.MANUAL,
        source_message_id=optional_text(value.get("source_message_id")),
        sender=optional_text(value.get("sender")),
        subject=optional_text(value.get("subject")),
        received_at=_optional_date(value.get("received_at")),
        account_id=optional_text(value.get("account_id")),
        raw_snippet=raw_snippet[:RAW_SNIPPET_MAX_LENGTH] if isinstance(raw_snippet, str) else "",
        fingerprint=fingerprint,
        parsed=parsed,
        created_at=normalize_date(value.get("created_at"), now),
        reviewed_at=_optional_date(value.get("reviewed_at")),
        review_notes=optional_text(value.get("review_notes")),
        linked_ledger_entry_id=optional_text(value.get("linked_ledger_entry_id")),
        superseded_ledger_entry_ids=_text_list(value.get("superseded_ledger_entry_ids")),
    )


def normalize_meta(value: Any) -> InboxMeta:
    if not isinstance(value, dict):
        return InboxMeta()

    count = value.get("last_fetch_count")
    return InboxMeta(
        last_fetched_at=_optional_date(value.get("last_fetched_at")),
        last_fetch_count=count if isinstance(count, int) and not isinstance(count, bool) else None,
        last_fetch_query=optional_text(value.get("last_fetch_query")),
    )


def sort_and_trim(items: list[InboxItem], max_items: int = DEFAULT_MAX_ITEMS) -> list[InboxItem]:
    ordered = sorted(items, key=lambda item: item.created_at, reverse=True)
    if len(ordered) > max_items:
        logger.debug("Evicting %d oldest inbox items beyond cap %d", len(ordered) - max_items, max_items)
    return ordered[:max_items]


def normalize_document(document: Any, max_items: int = DEFAULT_MAX_ITEMS, now: Optional[datetime] = None) -> InboxState:
    now = now or _utcnow()
    if not isinstance(document, dict):
        return InboxState()

    queue = document.get("queue")
    items: list[InboxItem] = []
    seen: set[str] = set()
    for raw in queue if isinstance(queue, list) else []:
        item = normalize_item(raw, now)
        if item is None or item.fingerprint in seen:
            continue
        seen.add(item.fingerprint)
        items.append(item)

    return InboxState(items=sort_and_trim(items, max_items), meta=normalize_meta(document.get("meta")))


def serialize_state(state: InboxState, max_items: int = DEFAULT_MAX_ITEMS) -> dict:
    return {
        "queue": [item.model_dump(mode="json") for item in sort_and_trim(state.items, max_items)],
        "meta": state.meta.model_dump(mode="json"),
    }


class InboxRepository(Protocol):
    def load_state(self) -> InboxState: ...

    def save_state(self, state: InboxState) -> None: ...


class DocumentInboxRepository:
    """Shared load/save logic; subclasses only move the raw document around."""

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        self.max_items = max_items
        self._lock = threading.RLock()

    def _read_document(self) -> Any:
        raise NotImplementedError

    def _write_document(self, document: dict) -> None:
        raise NotImplementedError

    def load_state(self) -> InboxState:
        with self._lock:
            try:
                document = self._read_document()
            except PersistenceError:
                raise
            except Exception as e:
                logger.exception("Failed to read inbox document")
                raise PersistenceError(f"Failed to read inbox state: {e}") from e
        return normalize_document(document, self.max_items)

    def save_state(self, state: InboxState) -> None:
        document = serialize_state(state, self.max_items)
        with self._lock:
            try:
                self._write_document(document)
            except PersistenceError:
                raise
            except Exception as e:
                logger.exception("Failed to write inbox document")
                raise PersistenceError(f"Failed to save inbox state: {e}") from e
        # Keep the caller's view consistent with what was written.
        state.items = sort_and_trim(state.items, self.max_items)


class InMemoryInboxRepository(DocumentInboxRepository):
    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS, document: Optional[dict] = None):
        super().__init__(max_items)
        self._document = json.dumps(document or {})

    def _read_document(self) -> Any:
        return json.loads(self._document)

    def _write_document(self, document: dict) -> None:
        self._document = json.dumps(document)


class JsonFileInboxRepository(DocumentInboxRepository):
    def __init__(self, path: str | os.PathLike, max_items: int = DEFAULT_MAX_ITEMS):
        super().__init__(max_items)
        self.path = Path(path)

    def _read_document(self) -> Any:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write_document(self, document: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
