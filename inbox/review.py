"""
Review state machine for inbox items.

    pending --approve--> approved
    pending --reject---> rejected
    approved/rejected --reopen--> pending

Approval is the only transition with a side effect outside the inbox: it
commits a ledger entry and moves the account balance. Reopening an approved
item does not undo that commit. Entries carry the inbox item id, so retrying an
approval whose inbox save failed links the entry already committed instead of
posting a second one.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from extraction import CandidateTransaction
from extraction.categories import is_valid_category, normalize_type
from extraction.validation import (
    CENT,
    clean_description,
    normalize_confidence,
    normalize_date,
    optional_text,
    to_amount,
)
from extraction.models import REFERENCE_MAX_LENGTH
from ledger import AccountNotFoundError, EntryDraft, EntrySource, LedgerCommitter, LedgerEntry

from .errors import (
    InboxValidationError,
    InvalidStateTransitionError,
    ItemNotFoundError,
    PersistenceError,
)
from .models import (
    REVIEW_NOTES_MAX_LENGTH,
    InboxItem,
    InboxSource,
    InboxState,
    InboxStatus,
    ReviewAction,
    ReviewRequest,
)
from .store import InboxRepository

logger = logging.getLogger(__name__)

MINIMUM_AMOUNT = CENT


def _edited_amount(value: Any, previous):
    amount = to_amount(value)
    if amount is None:
        return previous
    return max(MINIMUM_AMOUNT, amount)


def apply_edits(parsed: CandidateTransaction, edits: Optional[dict[str, Any]]) -> CandidateTransaction:
    """Apply reviewer edits with the same rules extraction uses.

    Invalid values never replace valid ones: an unknown category or type keeps
    the previous value, an unparsable amount or date keeps the previous value,
    and amounts are stored as a magnitude of at least 0.01.
    """
    if not edits:
        return parsed

    category = parsed.category
    if isinstance(edits.get("category"), str):
        candidate = edits["category"].strip().lower()
        if is_valid_category(candidate):
            category = candidate

    update: dict[str, Any] = {
        "category": category,
        "type": normalize_type(edits.get("type"), parsed.type),
    }
    if "amount" in edits:
        update["amount"] = _edited_amount(edits["amount"], parsed.amount)
    if "transacted_at" in edits:
        update["transacted_at"] = normalize_date(edits["transacted_at"], parsed.transacted_at)
    if "subcategory" in edits:
        update["subcategory"] = optional_text(edits["subcategory"], lower=True)

    currency = optional_text(edits.get("currency"))
    if currency:
        update["currency"] = currency.upper()
    description = clean_description(edits["description"]) if isinstance(edits.get("description"), str) else ""
    if description:
        update["description"] = description
    for field in ("merchant", "reference"):
        value = optional_text(edits.get(field), max_length=REFERENCE_MAX_LENGTH)
        if value:
            update[field] = value
    confidence = normalize_confidence(edits.get("confidence"))
    if confidence is not None:
        update["confidence"] = confidence

    return parsed.model_copy(update=update)


def _clean_notes(review_notes: Optional[str]) -> Optional[str]:
    return optional_text(review_notes, max_length=REVIEW_NOTES_MAX_LENGTH)


class ReviewStateMachine:
    def __init__(
        self,
        repository: InboxRepository,
        committer: LedgerCommitter,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.committer = committer
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def review(self, request: ReviewRequest) -> InboxItem:
        item_id = request.id.strip()
        if not item_id:
            raise InboxValidationError("id is required")
        try:
            action = ReviewAction(request.action.strip().lower())
        except ValueError:
            raise InboxValidationError("action must be one of: approve, reject, reopen") from None

        if action == ReviewAction.APPROVE:
            return self.approve(item_id, request.account_id, request.edits, request.review_notes)
        if action == ReviewAction.REJECT:
            return self.reject(item_id, request.edits, request.review_notes, request.account_id)
        return self.reopen(item_id, request.edits, request.account_id)

    def approve(
        self,
        item_id: str,
        account_id: Optional[str] = None,
        edits: Optional[dict[str, Any]] = None,
        review_notes: Optional[str] = None,
    ) -> InboxItem:
        state = self.repository.load_state()
        index, item = self._find(state, item_id)
        self._ensure_transition(item, ReviewAction.APPROVE)

        effective_account_id = optional_text(account_id) or item.account_id
        if not effective_account_id:
            raise InboxValidationError("account_id is required to approve a transaction")
        if not self.committer.account_exists(effective_account_id):
            raise AccountNotFoundError(f"Account {effective_account_id} not found")

        parsed = apply_edits(item.parsed, edits)
        notes = _clean_notes(review_notes)
        entry = self._unsaved_entry(item)
        if entry is not None:
            logger.warning(
                "Inbox item %s already has ledger entry %s from an approval that was not saved; linking it",
                item_id, entry.id,
            )
        else:
            entry = self.committer.commit(
                effective_account_id,
                parsed.amount,
                EntryDraft(
                    transacted_at=parsed.transacted_at,
                    currency=parsed.currency,
                    description=parsed.description,
                    category=parsed.category,
                    subcategory=parsed.subcategory,
                    type=parsed.type.value,
                    merchant=parsed.merchant,
                    reference=parsed.reference,
                    source=EntrySource.EMAIL if item.source == InboxSource.REMOTE else EntrySource.MANUAL,
                    notes=notes,
                    inbox_item_id=item.id,
                ),
            )

        updated = item.model_copy(update={
            "status": InboxStatus.APPROVED,
            "account_id": entry.account_id,
            "parsed": parsed,
            "reviewed_at": self.clock(),
            "review_notes": notes,
            "linked_ledger_entry_id": entry.id,
        })
        state.items[index] = updated
        try:
            self.repository.save_state(state)
        except PersistenceError:
            logger.error(
                "Ledger entry %s was committed but inbox item %s could not be marked approved",
                entry.id, item_id,
            )
            raise

        logger.info("Approved inbox item %s as ledger entry %s", item_id, entry.id)
        return updated

    def reject(
        self,
        item_id: str,
        edits: Optional[dict[str, Any]] = None,
        review_notes: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> InboxItem:
        state = self.repository.load_state()
        index, item = self._find(state, item_id)
        self._ensure_transition(item, ReviewAction.REJECT)

        updated = item.model_copy(update={
            "status": InboxStatus.REJECTED,
            "account_id": optional_text(account_id) or item.account_id,
            "parsed": apply_edits(item.parsed, edits),
            "reviewed_at": self.clock(),
            "review_notes": _clean_notes(review_notes),
        })
        state.items[index] = updated
        self.repository.save_state(state)
        logger.info("Rejected inbox item %s", item_id)
        return updated

    def reopen(
        self,
        item_id: str,
        edits: Optional[dict[str, Any]] = None,
        account_id: Optional[str] = None,
    ) -> InboxItem:
        state = self.repository.load_state()
        index, item = self._find(state, item_id)
        self._ensure_transition(item, ReviewAction.REOPEN)

        if item.status == InboxStatus.APPROVED and item.linked_ledger_entry_id:
            # TODO: decide whether reopening should post a reversing ledger entry.
            logger.warning(
                "Reopening approved item %s; ledger entry %s and its balance change are kept",
                item_id, item.linked_ledger_entry_id,
            )

        superseded = list(item.superseded_ledger_entry_ids)
        if item.linked_ledger_entry_id:
            superseded.append(item.linked_ledger_entry_id)

        updated = item.model_copy(update={
            "status": InboxStatus.PENDING,
            "account_id": optional_text(account_id) or item.account_id,
            "parsed": apply_edits(item.parsed, edits),
            "reviewed_at": None,
            "review_notes": None,
            "linked_ledger_entry_id": None,
            "superseded_ledger_entry_ids": superseded,
        })
        state.items[index] = updated
        self.repository.save_state(state)
        return updated

    def _find(self, state: InboxState, item_id: str) -> tuple[int, InboxItem]:
        index = state.find_index(item_id)
        if index < 0:
            raise ItemNotFoundError(f"Inbox item {item_id} not found")
        return index, state.items[index]

    def _unsaved_entry(self, item: InboxItem) -> Optional[LedgerEntry]:
        """Return an entry committed for ``item`` whose approval never reached the inbox store."""
        for entry in self.committer.entries_for_item(item.id):
            if entry.id not in item.superseded_ledger_entry_ids:
                return entry
        return None

    def _ensure_transition(self, item: InboxItem, action: ReviewAction) -> None:
        if not item.can_apply(action):
            raise InvalidStateTransitionError(
                f"Cannot {action.value} item in {item.status.value} state"
            )
