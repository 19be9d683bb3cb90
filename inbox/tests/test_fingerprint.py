"""
Tests for content fingerprints and the fingerprint index.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from extraction import CandidateTransaction
from inbox.fingerprint import FingerprintIndex, build_fingerprint, fingerprint_candidate
from inbox.models import InboxItem, InboxSource, InboxStatus


TRANSACTED_AT = datetime(2024, 3, 5, 14, 12, tzinfo=timezone.utc)


class TestBuildFingerprint:
    """Tests for fingerprint normalization."""

    def test_parts_are_normalized_and_joined(self):
        """Test case folding, whitespace collapsing and amount formatting."""
        fingerprint = build_fingerprint(
            source=InboxSource.MANUAL,
            sender="  Alertas@Bank.CO ",
            subject="Compra   Aprobada",
            transacted_at=TRANSACTED_AT,
            amount=Decimal("45000"),
            description="Compra por $45.000\n en RAPPI",
        )

        assert fingerprint == (
            "manual||alertas@bank.co|compra aprobada|"
            "2024-03-05T14:12:00+00:00|45000.00|compra por $45.000 en rappi"
        )

    def test_timestamps_compared_in_utc(self):
        """Test that the same instant in another offset yields the same fingerprint."""
        bogota = timezone(timedelta(hours=-5))
        local = datetime(2024, 3, 5, 9, 12, tzinfo=bogota)

        assert build_fingerprint("manual", transacted_at=local) == build_fingerprint(
            "manual", transacted_at=TRANSACTED_AT
        )

    def test_naive_timestamp_taken_as_utc(self):
        naive = datetime(2024, 3, 5, 14, 12)

        assert build_fingerprint("manual", transacted_at=naive) == build_fingerprint(
            "manual", transacted_at=TRANSACTED_AT
        )

    def test_message_id_distinguishes(self):
        """Test that the same content from two remote messages is two transactions."""
        first = build_fingerprint(InboxSource.REMOTE, "msg-1", amount=Decimal("10"))
        second = build_fingerprint(InboxSource.REMOTE, "msg-2", amount=Decimal("10"))

        assert first != second

    def test_candidate_fingerprint(self):
        candidate = CandidateTransaction(
            transacted_at=TRANSACTED_AT,
            amount=Decimal("45000.00"),
            description="Compra por $45.000 en Rappi",
        )

        assert fingerprint_candidate(candidate, InboxSource.MANUAL) == build_fingerprint(
            InboxSource.MANUAL,
            transacted_at=TRANSACTED_AT,
            amount=Decimal("45000"),
            description="compra por $45.000 en rappi",
        )


class TestFingerprintIndex:
    """Tests for the index used while admitting candidates."""

    def _item(self, status: InboxStatus, fingerprint: str) -> InboxItem:
        return InboxItem(
            id=fingerprint,
            status=status,
            fingerprint=fingerprint,
            parsed=CandidateTransaction(
                transacted_at=TRANSACTED_AT, amount=Decimal("1.00"), description="x"
            ),
            created_at=TRANSACTED_AT,
        )

    def test_index_covers_every_status(self):
        """Test that approved and rejected items still block re-ingestion."""
        index = FingerprintIndex([
            self._item(InboxStatus.PENDING, "a"),
            self._item(InboxStatus.APPROVED, "b"),
            self._item(InboxStatus.REJECTED, "c"),
        ])

        assert len(index) == 3
        assert not index.admit("b")
        assert not index.admit("c")

    def test_admit_records_within_batch(self):
        """Test that a second identical candidate in the same batch is refused."""
        index = FingerprintIndex()

        assert index.admit("new")
        assert "new" in index
        assert not index.admit("new")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
