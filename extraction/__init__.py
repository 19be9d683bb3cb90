"""
Transaction Extraction Package

Turns free-text bank alerts and pasted snippets into candidate transactions:
- LLM-backed extraction with a strict JSON contract
- Independent validation gate for every candidate
- Deterministic regex/keyword fallback when the model is unavailable or fails
"""

from .categories import (
    CATEGORY_OPTIONS,
    TransactionType,
    guess_category,
    guess_type,
)
from .fallback import fallback_parse
from .llm_parser import ExtractionFailedError, TransactionExtractor
from .models import CandidateTransaction, EmailInput, Parsed, ParseResult, Rejected
from .validation import parse_candidates

__all__ = [
    "CATEGORY_OPTIONS",
    "TransactionType",
    "guess_category",
    "guess_type",
    "fallback_parse",
    "ExtractionFailedError",
    "TransactionExtractor",
    "CandidateTransaction",
    "EmailInput",
    "Parsed",
    "ParseResult",
    "Rejected",
    "parse_candidates",
]
