import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional

from .categories import guess_category, guess_type
from .models import DEFAULT_CURRENCY, CandidateTransaction, EmailInput
from .validation import clean_description, optional_text, parse_amount_token, quantize_amount

FALLBACK_CONFIDENCE = 0.35

# Tried in order; the first positive match is the one kept.
AMOUNT_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?:cop|usd|\$)\s*([0-9][0-9.,]*)", re.IGNORECASE),
    re.compile(r"\b([0-9]{1,3}(?:[.,][0-9]{3})+(?:[.,][0-9]{1,2})?)\b"),
    re.compile(r"\b([0-9]{4,})\b"),
)

ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
DAY_FIRST_DATE_PATTERN = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")


def iter_amount_candidates(text: str) -> Iterator[Decimal]:
    for pattern in AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            amount = parse_amount_token(match.group(1))
            if amount is None:
                continue
            # Unstorable tokens (account numbers, references) are skipped.
            amount = quantize_amount(amount)
            if amount is not None and amount > 0:
                yield amount


def extract_date(text: str) -> Optional[datetime]:
    candidates = [
        (int(m.group(1)), int(m.group(2)), int(m.group(3))) for m in ISO_DATE_PATTERN.finditer(text)
    ] + [
        (int(m.group(3)), int(m.group(2)), int(m.group(1))) for m in DAY_FIRST_DATE_PATTERN.finditer(text)
    ]
    for year, month, day in candidates:
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def fallback_parse(
    message: EmailInput,
    now: datetime,
    default_currency: str = DEFAULT_CURRENCY,
) -> list[CandidateTransaction]:
    combined = message.combined_text
    # dates would otherwise be picked up as bare integers
    without_dates = DAY_FIRST_DATE_PATTERN.sub(" ", ISO_DATE_PATTERN.sub(" ", combined))
    amount = next(iter_amount_candidates(without_dates), None)
    if amount is None:
        return []

    description = clean_description(message.subject or message.compact_body or "Email transaction")
    if not description:
        return []

    category, subcategory = guess_category(combined)
    return [
        CandidateTransaction(
            transacted_at=extract_date(combined) or now,
            amount=amount,
            currency=default_currency,
            description=description,
            category=category,
            subcategory=subcategory,
            type=guess_type(combined),
            merchant=optional_text(message.sender),
            reference=None,
            confidence=FALLBACK_CONFIDENCE,
        )
    ]
