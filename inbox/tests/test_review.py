"""
Unit Tests for the Review State Machine

Tests cover:
1. Legal and illegal transitions
2. Approval validation (no mutation on failure)
3. Reviewer edits
4. Reopen keeping ledger effects
5. End-to-end: bank alert to ledger entry
"""

import logging
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from extraction import CandidateTransaction, TransactionExtractor, TransactionType
from inbox.errors import (
    InboxValidationError,
    InvalidStateTransitionError,
    ItemNotFoundError,
    PersistenceError,
)
from inbox.models import InboxItem, InboxStatus, ReviewRequest
from inbox.review import apply_edits
from inbox.service import InboxService
from inbox.store import InMemoryInboxRepository
from ledger import AccountNotFoundError, EntrySource


# Test constants
ACCOUNT_ID = "acct-main"
NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
RAPPI_ALERT = "Compra por $45.000 en Rappi"


def _ingest(service, text: str = RAPPI_ALERT, **kwargs) -> InboxItem:
    return service.ingest_manual(text, **kwargs).items[0]


def _stored(service, item_id: str) -> InboxItem:
    return next(item for item in service.list_items().items if item.id == item_id)


class TestEndToEnd:
    """The canonical flow from pasted alert to ledger entry."""

    def test_rappi_alert_approved_into_ledger(self, service, ledger_store):
        """Test fallback extraction, approval, signed entry and balance change."""
        item = _ingest(service)

        # Verify candidate
        assert item.status == InboxStatus.PENDING
        assert item.parsed.amount == Decimal("45000.00")
        assert item.parsed.type == TransactionType.EXPENSE
        assert item.parsed.category == "food"

        approved = service.approve(item.id, account_id=ACCOUNT_ID)

        # Verify ledger
        entries = ledger_store.list_entries(ACCOUNT_ID)
        assert len(entries) == 1
        assert entries[0].amount == Decimal("-45000.00")
        assert entries[0].source == EntrySource.MANUAL
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("455000.00")

        # Verify item
        assert approved.status == InboxStatus.APPROVED
        assert approved.linked_ledger_entry_id == entries[0].id
        assert approved.reviewed_at == NOW
        assert _stored(service, item.id).linked_ledger_entry_id == entries[0].id


class TestTransitions:
    """Tests for the pending/approved/rejected transition table."""

    def test_reject_pending(self, service, ledger_store):
        item = _ingest(service)

        rejected = service.reject(item.id, review_notes="  Not mine  ")

        assert rejected.status == InboxStatus.REJECTED
        assert rejected.review_notes == "Not mine"
        assert rejected.reviewed_at == NOW
        assert ledger_store.list_entries() == []

    def test_approve_twice_is_rejected(self, service, ledger_store):
        """Test that an approved item cannot be approved again."""
        item = _ingest(service)
        service.approve(item.id, account_id=ACCOUNT_ID)

        with pytest.raises(InvalidStateTransitionError):
            service.approve(item.id, account_id=ACCOUNT_ID)

        assert len(ledger_store.list_entries()) == 1
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("455000.00")

    @pytest.mark.parametrize("first,second", [
        ("approve", "reject"),
        ("reject", "approve"),
        ("reject", "reject"),
    ])
    def test_terminal_states_need_reopen(self, service, first, second):
        """Test that reviewed items only accept reopen."""
        item = _ingest(service)
        service.review(ReviewRequest(id=item.id, action=first, account_id=ACCOUNT_ID))

        with pytest.raises(InvalidStateTransitionError):
            service.review(ReviewRequest(id=item.id, action=second, account_id=ACCOUNT_ID))

        expected = InboxStatus.APPROVED if first == "approve" else InboxStatus.REJECTED
        assert _stored(service, item.id).status == expected

    def test_reopen_pending_is_rejected(self, service):
        item = _ingest(service)

        with pytest.raises(InvalidStateTransitionError):
            service.reopen(item.id)

    def test_reopen_rejected(self, service):
        """Test that reopening clears review metadata."""
        item = _ingest(service)
        service.reject(item.id, review_notes="duplicate alert")

        reopened = service.reopen(item.id)

        assert reopened.status == InboxStatus.PENDING
        assert reopened.reviewed_at is None
        assert reopened.review_notes is None

    def test_unknown_item(self, service):
        with pytest.raises(ItemNotFoundError):
            service.approve("missing", account_id=ACCOUNT_ID)


class TestReopenApproved:
    """Reopen does not reverse what approval committed."""

    def test_reopen_keeps_ledger_entry(self, service, ledger_store, caplog):
        """Test that reopening an approved item leaves the entry and balance in place."""
        item = _ingest(service)
        approved = service.approve(item.id, account_id=ACCOUNT_ID)

        with caplog.at_level(logging.WARNING, logger="inbox"):
            reopened = service.reopen(item.id)

        assert reopened.status == InboxStatus.PENDING
        assert reopened.linked_ledger_entry_id is None
        assert [e.id for e in ledger_store.list_entries()] == [approved.linked_ledger_entry_id]
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("455000.00")
        assert "kept" in caplog.text

    def test_reapprove_after_reopen_commits_again(self, service, ledger_store):
        item = _ingest(service)
        first = service.approve(item.id, account_id=ACCOUNT_ID)
        reopened = service.reopen(item.id)

        second = service.approve(item.id, account_id=ACCOUNT_ID)

        assert reopened.superseded_ledger_entry_ids == [first.linked_ledger_entry_id]
        assert second.linked_ledger_entry_id != first.linked_ledger_entry_id
        assert len(ledger_store.list_entries()) == 2
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("410000.00")


class TestApprovalValidation:
    """Failed approvals leave both the item and the ledger untouched."""

    def test_missing_account(self, service, ledger_store):
        """Test that approving without any account id is a validation error."""
        item = _ingest(service)

        with pytest.raises(InboxValidationError):
            service.approve(item.id)

        assert _stored(service, item.id).status == InboxStatus.PENDING
        assert ledger_store.list_entries() == []

    def test_unknown_account(self, service, ledger_store):
        """Test that approving against a missing account changes nothing."""
        item = _ingest(service)

        with pytest.raises(AccountNotFoundError):
            service.approve(item.id, account_id="nope", edits={"amount": 1})

        stored = _stored(service, item.id)
        assert stored.status == InboxStatus.PENDING
        assert stored.parsed.amount == Decimal("45000.00")
        assert ledger_store.list_entries() == []
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("500000.00")

    def test_account_taken_from_item(self, service, ledger_store):
        item = _ingest(service, account_id=ACCOUNT_ID)

        approved = service.approve(item.id)

        assert approved.account_id == ACCOUNT_ID
        assert len(ledger_store.list_entries(ACCOUNT_ID)) == 1

    @pytest.mark.parametrize("request_data", [
        {"id": "", "action": "approve"},
        {"id": "   ", "action": "reject"},
        {"id": "x", "action": "archive"},
        {"id": "x"},
    ])
    def test_malformed_review_request(self, service, request_data):
        with pytest.raises(InboxValidationError):
            service.review(ReviewRequest(**request_data))

    def test_action_is_case_insensitive(self, service):
        item = _ingest(service)

        result = service.review(ReviewRequest(id=item.id, action=" Reject "))

        assert result.status == InboxStatus.REJECTED

    def test_save_failure_after_commit_is_reported(self, ledger_store, caplog):
        """Test that a failed save after a ledger commit raises and logs the entry id."""
        class FailingSaveRepository(InMemoryInboxRepository):
            fail = False

            def _write_document(self, document):
                if self.fail:
                    raise OSError("disk full")
                super()._write_document(document)

        repository = FailingSaveRepository()
        service = InboxService(
            repository=repository,
            extractor=TransactionExtractor(clock=lambda: NOW),
            ledger_store=ledger_store,
            clock=lambda: NOW,
        )
        item = _ingest(service)
        repository.fail = True

        with caplog.at_level(logging.ERROR, logger="inbox"):
            with pytest.raises(PersistenceError):
                service.approve(item.id, account_id=ACCOUNT_ID)

        entries = ledger_store.list_entries()
        assert len(entries) == 1
        assert entries[0].id in caplog.text

    def test_retry_after_save_failure_commits_once(self, ledger_store):
        """Test that approving again after a failed save links the first entry."""
        class FailingSaveRepository(InMemoryInboxRepository):
            fail = False

            def _write_document(self, document):
                if self.fail:
                    raise OSError("disk full")
                super()._write_document(document)

        repository = FailingSaveRepository()
        service = InboxService(
            repository=repository,
            extractor=TransactionExtractor(clock=lambda: NOW),
            ledger_store=ledger_store,
            clock=lambda: NOW,
        )
        item = _ingest(service)
        repository.fail = True
        with pytest.raises(PersistenceError):
            service.approve(item.id, account_id=ACCOUNT_ID)
        repository.fail = False

        approved = service.approve(item.id, account_id=ACCOUNT_ID)

        # Verify one entry, one balance change
        entries = ledger_store.list_entries()
        assert len(entries) == 1
        assert entries[0].inbox_item_id == item.id
        assert approved.status == InboxStatus.APPROVED
        assert approved.linked_ledger_entry_id == entries[0].id
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("455000.00")


class TestEdits:
    """Tests for reviewer edits applied on approval."""

    def test_edits_reach_ledger(self, service, ledger_store):
        """Test that edited fields are what gets committed."""
        item = _ingest(service)

        approved = service.approve(
            item.id,
            account_id=ACCOUNT_ID,
            edits={"amount": "52.000", "category": "Shopping", "description": "Regalo", "type": "expense"},
            review_notes="birthday",
        )

        entry = ledger_store.list_entries()[0]
        assert entry.amount == Decimal("-52000.00")
        assert entry.category == "shopping"
        assert entry.description == "Regalo"
        assert entry.notes == "birthday"
        assert approved.parsed.amount == Decimal("52000.00")

    def test_income_edit_flips_sign(self, service, ledger_store):
        item = _ingest(service)

        service.approve(item.id, account_id=ACCOUNT_ID, edits={"type": "income", "category": "income"})

        assert ledger_store.list_entries()[0].amount == Decimal("45000.00")
        assert ledger_store.get_account(ACCOUNT_ID).balance == Decimal("545000.00")

    def test_oversized_amount_edit_keeps_previous(self, service, ledger_store):
        """Test that an amount too large to store is ignored rather than raised."""
        item = _ingest(service)

        approved = service.approve(item.id, account_id=ACCOUNT_ID, edits={"amount": "9" * 30})

        assert approved.parsed.amount == Decimal("45000.00")
        assert ledger_store.list_entries()[0].amount == Decimal("-45000.00")

    def test_out_of_range_date_edit_keeps_previous(self, service):
        item = _ingest(service)

        rejected = service.reject(item.id, edits={"transacted_at": "0001-01-01T00:00:00+05:00"})

        assert rejected.status == InboxStatus.REJECTED
        assert rejected.parsed.transacted_at == item.parsed.transacted_at


class TestApplyEdits:
    """Tests for the edit rules themselves."""

    @pytest.fixture
    def parsed(self) -> CandidateTransaction:
        return CandidateTransaction(
            transacted_at=NOW,
            amount=Decimal("45000.00"),
            description="Compra por $45.000 en Rappi",
            category="food",
            subcategory="delivery",
            type=TransactionType.EXPENSE,
        )

    def test_no_edits(self, parsed):
        assert apply_edits(parsed, None) == parsed
        assert apply_edits(parsed, {}) == parsed

    def test_invalid_category_keeps_previous(self, parsed):
        assert apply_edits(parsed, {"category": "gadgets"}).category == "food"
        assert apply_edits(parsed, {"category": 12}).category == "food"

    def test_invalid_type_keeps_previous(self, parsed):
        assert apply_edits(parsed, {"type": "refund"}).type == TransactionType.EXPENSE

    @pytest.mark.parametrize("value,expected", [
        (0, Decimal("0.01")),
        ("0", Decimal("0.01")),
        (0.001, Decimal("0.01")),
        (-20, Decimal("20.00")),
        ("abc", Decimal("45000.00")),
        (None, Decimal("45000.00")),
        ("9" * 30, Decimal("45000.00")),
    ])
    def test_amount_floor(self, parsed, value, expected):
        """Test that edited amounts are a magnitude of at least 0.01."""
        assert apply_edits(parsed, {"amount": value}).amount == expected

    def test_subcategory_cleared_only_when_present(self, parsed):
        assert apply_edits(parsed, {"subcategory": None}).subcategory is None
        assert apply_edits(parsed, {"subcategory": " Groceries "}).subcategory == "groceries"
        assert apply_edits(parsed, {"category": "shopping"}).subcategory == "delivery"

    def test_blank_text_edits_ignored(self, parsed):
        edited = apply_edits(parsed, {"description": "   ", "merchant": "", "currency": " usd "})

        assert edited.description == parsed.description
        assert edited.merchant is None
        assert edited.currency == "USD"

    def test_date_edit(self, parsed):
        edited = apply_edits(parsed, {"transacted_at": "2024-03-01T10:00:00-05:00"})

        assert edited.transacted_at == datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc)
        assert apply_edits(parsed, {"transacted_at": "yesterday"}).transacted_at == NOW
        assert apply_edits(parsed, {"transacted_at": "0001-01-01T00:00:00+05:00"}).transacted_at == NOW


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
