"""
Environment-driven settings for the transaction inbox.

Everything the service needs at startup (LLM credentials and tuning, queue
bound, storage locations and seed accounts) is read here once so the rest of
the code receives plain values instead of reaching into ``os.environ``.
"""

import os
from dataclasses import dataclass
from typing import Optional

from extraction.llm_parser import DEFAULT_MODEL
from extraction.models import DEFAULT_CURRENCY

DEFAULT_MAX_ITEMS = 600


class SettingsError(RuntimeError):
    """Raised when settings cannot be constructed from the environment."""


@dataclass(frozen=True, slots=True)
class InboxSettings:
    groq_api_key: Optional[str] = None
    extraction_model: str = DEFAULT_MODEL
    extraction_timeout_seconds: float = 20.0
    extraction_max_tokens: int = 2500
    extraction_temperature: float = 0.1
    default_currency: str = DEFAULT_CURRENCY
    max_items: int = DEFAULT_MAX_ITEMS
    state_path: Optional[str] = None
    database_url: Optional[str] = None
    log_level: str = "INFO"
    # (id, name) pairs created in the ledger at startup when missing.
    accounts: tuple[tuple[str, str], ...] = ()


def load_settings() -> InboxSettings:
    max_items = _parse_int(os.getenv("INBOX_MAX_ITEMS"), DEFAULT_MAX_ITEMS, "INBOX_MAX_ITEMS")
    if max_items < 1:
        raise SettingsError(f"INBOX_MAX_ITEMS must be positive (received {max_items})")

    return InboxSettings(
        groq_api_key=_optional(os.getenv("GROQ_API_KEY")),
        extraction_model=_optional(os.getenv("INBOX_EXTRACTION_MODEL")) or DEFAULT_MODEL,
        extraction_timeout_seconds=_parse_float(
            os.getenv("INBOX_EXTRACTION_TIMEOUT"), 20.0, "INBOX_EXTRACTION_TIMEOUT"
        ),
        extraction_max_tokens=_parse_int(
            os.getenv("INBOX_EXTRACTION_MAX_TOKENS"), 2500, "INBOX_EXTRACTION_MAX_TOKENS"
        ),
        extraction_temperature=_parse_float(
            os.getenv("INBOX_EXTRACTION_TEMPERATURE"), 0.1, "INBOX_EXTRACTION_TEMPERATURE"
        ),
        default_currency=(_optional(os.getenv("INBOX_DEFAULT_CURRENCY")) or DEFAULT_CURRENCY).upper(),
        max_items=max_items,
        state_path=_optional(os.getenv("INBOX_STATE_PATH")),
        database_url=_optional(os.getenv("INBOX_DATABASE_URL")),
        log_level=_optional(os.getenv("INBOX_LOG_LEVEL")) or "INFO",
        accounts=_parse_accounts(os.getenv("INBOX_ACCOUNTS")),
    )


def _optional(raw_value: Optional[str]) -> Optional[str]:
    if raw_value is None or raw_value.strip() == "":
        return None
    return raw_value.strip()


def _parse_float(raw_value: Optional[str], default: float, env_key: str) -> float:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return float(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{env_key} must be numeric (received '{raw_value}')") from exc


def _parse_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc


def _parse_accounts(raw_value: Optional[str]) -> tuple[tuple[str, str], ...]:
    """Parse ``id[:name]`` pairs separated by commas, e.g. ``acct-main:Main,acct-card``."""
    if raw_value is None or raw_value.strip() == "":
        return ()

    accounts = []
    for part in raw_value.split(","):
        account_id, _, name = part.partition(":")
        account_id = account_id.strip()
        if not account_id:
            raise SettingsError(f"INBOX_ACCOUNTS has an entry without an id (received '{raw_value}')")
        accounts.append((account_id, name.strip() or account_id))
    return tuple(accounts)
