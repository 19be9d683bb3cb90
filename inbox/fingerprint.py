"""
Content fingerprints for duplicate detection.

A fingerprint is a plain normalized string (not a hash) built from the fields
that identify a transaction and where it came from. Two candidates with the same
fingerprint are the same transaction; the inbox never holds two items with the
same fingerprint, whatever their status.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Union

from extraction import CandidateTransaction

from .models import InboxItem, InboxSource

SEPARATOR = "|"


def _normalize(value: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (value or "").lower()).strip()


def _format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _format_amount(value: Optional[Decimal]) -> str:
    if value is None or not value.is_finite():
        return ""
    return f"{value:.2f}"


def build_fingerprint(
    source: Union[InboxSource, str],
    source_message_id: Optional[str] = None,
    sender: Optional[str] = None,
    subject: Optional[str] = None,
    transacted_at: Optional[datetime] = None,
    amount: Optional[Decimal] = None,
    description: Optional[str] = None,
) -> str:
    source_value = source.value if isinstance(source, InboxSource) else source
    parts = [
        _normalize(source_value),
        _normalize(source_message_id),
        _normalize(sender),
        _normalize(subject),
        _format_timestamp(transacted_at),
        _format_amount(amount),
        _normalize(description),
    ]
    return SEPARATOR.join(parts)


def fingerprint_candidate(
    candidate: CandidateTransaction,
    source: InboxSource,
    source_message_id: Optional[str] = None,
    sender: Optional[str] = None,
    subject: Optional[str] = None,
) -> str:
    return build_fingerprint(
        source=source,
        source_message_id=source_message_id,
        sender=sender,
        subject=subject,
        transacted_at=candidate.transacted_at,
        amount=candidate.amount,
        description=candidate.description,
    )


class FingerprintIndex:
    """Fingerprints of every stored item, pending, approved and rejected alike."""

    def __init__(self, items: Iterable[InboxItem] = ()):
        self._seen: set[str] = {item.fingerprint for item in items}

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def admit(self, fingerprint: str) -> bool:
        """Record ``fingerprint`` and return True, or return False if already seen."""
        if fingerprint in self._seen:
            return False
        self._seen.add(fingerprint)
        return True
