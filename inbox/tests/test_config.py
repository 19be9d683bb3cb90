"""
Tests for environment settings, logging setup and service wiring.
"""

import logging
import pytest
from decimal import Decimal

from inbox.config import DEFAULT_MAX_ITEMS, InboxSettings, SettingsError, load_settings
from inbox.logging_setup import _parse_level
from inbox.service import build_service
from inbox.sql_store import SqlSettingsInboxRepository
from inbox.store import InMemoryInboxRepository, JsonFileInboxRepository
from ledger import InMemoryLedgerStore
from ledger.sql_store import SqlLedgerStore


ENV_KEYS = (
    "INBOX_EXTRACTION_MODEL",
    "INBOX_EXTRACTION_TIMEOUT",
    "INBOX_EXTRACTION_MAX_TOKENS",
    "INBOX_EXTRACTION_TEMPERATURE",
    "INBOX_DEFAULT_CURRENCY",
    "INBOX_MAX_ITEMS",
    "INBOX_STATE_PATH",
    "INBOX_DATABASE_URL",
    "INBOX_LOG_LEVEL",
    "INBOX_ACCOUNTS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestLoadSettings:
    """Tests for reading settings from the environment."""

    def test_defaults(self):
        settings = load_settings()

        assert settings == InboxSettings()
        assert settings.max_items == DEFAULT_MAX_ITEMS
        assert settings.default_currency == "COP"
        assert settings.groq_api_key is None

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", " gsk_test ")
        monkeypatch.setenv("INBOX_MAX_ITEMS", "50")
        monkeypatch.setenv("INBOX_DEFAULT_CURRENCY", "usd")
        monkeypatch.setenv("INBOX_EXTRACTION_TIMEOUT", "5.5")
        monkeypatch.setenv("INBOX_STATE_PATH", "/tmp/inbox.json")

        settings = load_settings()

        assert settings.groq_api_key == "gsk_test"
        assert settings.max_items == 50
        assert settings.default_currency == "USD"
        assert settings.extraction_timeout_seconds == 5.5
        assert settings.state_path == "/tmp/inbox.json"

    def test_accounts(self, monkeypatch):
        monkeypatch.setenv("INBOX_ACCOUNTS", " acct-main:Cuenta de ahorros , acct-card ")

        settings = load_settings()

        assert settings.accounts == (("acct-main", "Cuenta de ahorros"), ("acct-card", "acct-card"))

    @pytest.mark.parametrize("key,value", [
        ("INBOX_MAX_ITEMS", "0"),
        ("INBOX_MAX_ITEMS", "many"),
        ("INBOX_EXTRACTION_TIMEOUT", "soon"),
        ("INBOX_ACCOUNTS", "acct-main,:Nameless"),
    ])
    def test_invalid_values(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)

        with pytest.raises(SettingsError):
            load_settings()


class TestLogLevel:
    @pytest.mark.parametrize("value,expected", [
        ("debug", logging.DEBUG),
        (" WARNING ", logging.WARNING),
        ("10", 10),
        (logging.ERROR, logging.ERROR),
    ])
    def test_parse_level(self, value, expected):
        assert _parse_level(value) == expected

    def test_unknown_level_uses_env_then_info(self, monkeypatch):
        assert _parse_level("chatty") == logging.INFO

        monkeypatch.setenv("INBOX_LOG_LEVEL", "error")
        assert _parse_level("chatty") == logging.ERROR

        monkeypatch.setenv("INBOX_LOG_LEVEL", "also-chatty")
        assert _parse_level(None) == logging.INFO


class TestBuildService:
    """Tests for wiring stores from settings."""

    def test_in_memory(self):
        service = build_service(InboxSettings())

        assert isinstance(service.repository, InMemoryInboxRepository)
        assert isinstance(service.committer.store, InMemoryLedgerStore)
        assert not service.extractor.is_available

    def test_json_file(self, tmp_path):
        service = build_service(InboxSettings(state_path=str(tmp_path / "inbox.json"), max_items=5))

        assert isinstance(service.repository, JsonFileInboxRepository)
        assert service.repository.max_items == 5

    def test_database(self, tmp_path):
        service = build_service(InboxSettings(database_url=f"sqlite:///{tmp_path / 'inbox.db'}"))

        assert isinstance(service.repository, SqlSettingsInboxRepository)
        assert isinstance(service.committer.store, SqlLedgerStore)
        assert service.list_items().counts.total == 0

    def test_seed_accounts_allow_approval(self):
        """Test that accounts from settings exist in a fresh in-memory ledger."""
        service = build_service(InboxSettings(accounts=(("acct-main", "Ahorros"),), default_currency="USD"))

        account = service.get_account("acct-main")
        assert account.name == "Ahorros"
        assert account.currency == "USD"
        assert account.balance == Decimal("0.00")

        item = service.ingest_manual("Compra por $45.000 en Rappi").items[0]
        approved = service.approve(item.id, account_id="acct-main")

        assert approved.linked_ledger_entry_id
        assert service.get_account("acct-main").balance == Decimal("-45000.00")

    def test_seed_accounts_keep_existing_rows(self, tmp_path):
        """Test that seeding a database twice leaves the first account untouched."""
        settings = InboxSettings(
            database_url=f"sqlite:///{tmp_path / 'inbox.db'}",
            accounts=(("acct-main", "Ahorros"),),
        )
        service = build_service(settings)
        item = service.ingest_manual("Compra por $45.000 en Rappi").items[0]
        service.approve(item.id, account_id="acct-main")

        reloaded = build_service(settings)

        assert reloaded.get_account("acct-main").balance == Decimal("-45000.00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
