"""
Validation gate for extracted transactions.

Whatever produced the payload (the language model or the regex fallback), it is
treated as untrusted: every candidate is re-checked field by field and either
normalized or dropped.
"""

import math
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from .categories import guess_category, guess_type, is_valid_category, normalize_type
from .models import (
    DEFAULT_CURRENCY,
    DESCRIPTION_MAX_LENGTH,
    REFERENCE_MAX_LENGTH,
    CandidateTransaction,
    Parsed,
    ParseResult,
    Rejected,
)

CENT = Decimal("0.01")

# Ledger amounts are stored as Numeric(18, 2).
MAX_INTEGER_DIGITS = 16


def quantize_amount(value: Decimal) -> Optional[Decimal]:
    """Round to cents, or None when the value is not finite or too large to store."""
    if not value.is_finite() or value.adjusted() >= MAX_INTEGER_DIGITS:
        return None
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def parse_amount_token(token: str) -> Optional[Decimal]:
    """Parse a numeric token that may use `.` or `,` as thousands or decimal separators.

    When both separators appear, the last one is the decimal separator. A single
    separator kind followed only by three-digit groups is a thousands separator
    ("45.000" -> 45000); otherwise it marks decimals ("12.50" -> 12.50).
    """
    token = token.replace("-", "").strip().rstrip(".,")
    if not token:
        return None

    if "," in token and "." in token:
        if token.rfind(",") > token.rfind("."):
            normalized = token.replace(".", "").replace(",", ".")
        else:
            normalized = token.replace(",", "")
    elif "," in token or "." in token:
        separator = "," if "," in token else "."
        head, *groups = token.split(separator)
        is_grouped = (
            head not in ("", "0")
            and len(head) <= 3
            and all(len(group) == 3 for group in groups)
        )
        if is_grouped:
            normalized = token.replace(separator, "")
        elif len(groups) == 1:
            normalized = f"{head or '0'}.{groups[0]}"
        else:
            return None
    else:
        normalized = token

    try:
        return Decimal(normalized)
    except InvalidOperation:
        return None


def to_amount(value: Any) -> Optional[Decimal]:
    """Return the positive magnitude of ``value`` quantized to cents, or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return None
    elif isinstance(value, str):
        amount = parse_amount_token(re.sub(r"[^0-9.,-]", "", value))
    else:
        return None

    if amount is None or not amount.is_finite():
        return None
    return quantize_amount(abs(amount))


def normalize_date(value: Any, fallback: datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return fallback
    else:
        return fallback

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # Offsets that push the instant outside datetime's range.
        return fallback


def normalize_currency(value: Any, default: str = DEFAULT_CURRENCY) -> str:
    if not isinstance(value, str):
        return default
    trimmed = value.strip().upper()
    return trimmed or default


def clean_description(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()[:DESCRIPTION_MAX_LENGTH]


def optional_text(value: Any, max_length: Optional[int] = None, lower: bool = False) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if lower:
        trimmed = trimmed.lower()
    return trimmed[:max_length] if max_length else trimmed


def normalize_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def parse_candidates(
    payload: Any,
    fallback_text: str,
    now: datetime,
    default_currency: str = DEFAULT_CURRENCY,
) -> ParseResult:
    if not isinstance(payload, list):
        return Rejected("transactions payload is not a list")

    fallback_type = guess_type(fallback_text)
    candidates: list[CandidateTransaction] = []

    for raw in payload:
        if not isinstance(raw, dict):
            continue

        amount = to_amount(raw.get("amount"))
        description = clean_description(str(raw.get("description") or ""))
        if amount is None or amount <= 0 or not description:
            continue

        subcategory = optional_text(raw.get("subcategory"), lower=True)
        category = str(raw.get("category") or "").strip().lower()
        if not is_valid_category(category):
            category, guessed_subcategory = guess_category(description)
            subcategory = subcategory or guessed_subcategory

        candidates.append(CandidateTransaction(
            transacted_at=normalize_date(raw.get("transacted_at", raw.get("transactedAt")), now),
            amount=amount,
            currency=normalize_currency(raw.get("currency"), default_currency),
            description=description,
            category=category,
            subcategory=subcategory,
            type=normalize_type(raw.get("type"), fallback_type),
            merchant=optional_text(raw.get("merchant"), max_length=REFERENCE_MAX_LENGTH),
            reference=optional_text(raw.get("reference"), max_length=REFERENCE_MAX_LENGTH),
            confidence=normalize_confidence(raw.get("confidence")),
        ))

    if not candidates:
        return Rejected("no candidate passed validation")
    return Parsed(candidates)
