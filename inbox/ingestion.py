import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from extraction import CandidateTransaction, TransactionExtractor
from extraction.validation import optional_text

from .errors import (
    InboxValidationError,
    NoTransactionsFoundError,
    RemoteSourceError,
    SourceNotConfiguredError,
)
from .fingerprint import FingerprintIndex, fingerprint_candidate
from .models import (
    RAW_SNIPPET_MAX_LENGTH,
    FetchResult,
    IngestResult,
    InboxItem,
    InboxMeta,
    InboxSource,
    InboxStatus,
)
from .sources import MessageSource
from .store import InboxRepository

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "newer_than:14d (bancolombia OR compra OR pago OR transaccion OR debito OR credito)"
DEFAULT_MAX_MESSAGES = 10
MAX_MESSAGES_LIMIT = 25


def clamp_max_messages(value: Optional[int]) -> int:
    if value is None or isinstance(value, bool):
        return DEFAULT_MAX_MESSAGES
    return max(1, min(MAX_MESSAGES_LIMIT, int(value)))


class InboxIngestor:
    def __init__(
        self,
        repository: InboxRepository,
        extractor: TransactionExtractor,
        message_source: Optional[MessageSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.extractor = extractor
        self.message_source = message_source
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def ingest_manual(
        self,
        raw_text: str,
        sender: Optional[str] = None,
        subject: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> IngestResult:
        text = (raw_text or "").strip()
        if not text:
            raise InboxValidationError("raw_text is required")
        sender = optional_text(sender)
        subject = optional_text(subject)

        candidates = self.extractor.extract(text, sender=sender, subject=subject)
        if not candidates:
            raise NoTransactionsFoundError(
                "No transaction candidates found in this text. Try a bank alert or statement snippet."
            )

        state = self.repository.load_state()
        now = self.clock()
        created = self._admit(
            candidates,
            FingerprintIndex(state.items),
            source=InboxSource.MANUAL,
            source_message_id=None,
            sender=sender,
            subject=subject,
            raw_text=text,
            account_id=optional_text(account_id),
            received_at=now,
            now=now,
        )
        skipped = len(candidates) - len(created)
        if not created:
            logger.info("Manual ingest skipped %d duplicate candidate(s)", skipped)
            return IngestResult(added=0, skipped_duplicates=skipped)

        state.items = created + state.items
        self.repository.save_state(state)
        logger.info("Manual ingest added %d item(s), skipped %d duplicate(s)", len(created), skipped)
        return IngestResult(added=len(created), skipped_duplicates=skipped, items=created)

    def fetch_remote(
        self,
        query: Optional[str] = None,
        max_messages: Optional[int] = None,
        account_id: Optional[str] = None,
    ) -> FetchResult:
        if self.message_source is None:
            raise SourceNotConfiguredError("No remote message source is configured")

        query = optional_text(query) or DEFAULT_QUERY
        account_id = optional_text(account_id)
        try:
            messages = self.message_source.fetch(query, clamp_max_messages(max_messages))
        except Exception as e:
            logger.exception("Remote message source failed for query %r", query)
            raise RemoteSourceError(f"Failed to fetch remote messages: {e}") from e

        state = self.repository.load_state()
        index = FingerprintIndex(state.items)
        known_message_ids = {item.source_message_id for item in state.items if item.source_message_id}
        now = self.clock()

        created: list[InboxItem] = []
        parsed_candidates = 0
        failed_messages = 0
        for message in messages:
            if not message.message_id or message.message_id in known_message_ids:
                continue
            text = message.body_text.strip()
            if not text:
                continue
            known_message_ids.add(message.message_id)

            try:
                candidates = self.extractor.extract(text, sender=message.sender, subject=message.subject)
                parsed_candidates += len(candidates)
                created.extend(self._admit(
                    candidates,
                    index,
                    source=InboxSource.REMOTE,
                    source_message_id=message.message_id,
                    sender=optional_text(message.sender),
                    subject=optional_text(message.subject),
                    raw_text=text,
                    account_id=account_id,
                    received_at=message.received_at or now,
                    now=now,
                ))
            except Exception:
                failed_messages += 1
                logger.exception("Failed to process remote message %s", message.message_id)

        state.items = created + state.items
        state.meta = InboxMeta(
            last_fetched_at=now,
            last_fetch_count=len(created),
            last_fetch_query=query,
        )
        self.repository.save_state(state)

        logger.info(
            "Remote fetch: %d message(s), %d candidate(s), %d queued, %d failed",
            len(messages), parsed_candidates, len(created), failed_messages,
        )
        return FetchResult(
            fetched_messages=len(messages),
            parsed_candidates=parsed_candidates,
            queued=len(created),
            skipped_duplicates=parsed_candidates - len(created),
            failed_messages=failed_messages,
            query=query,
        )

    def _admit(
        self,
        candidates: list[CandidateTransaction],
        index: FingerprintIndex,
        *,
        source: InboxSource,
        source_message_id: Optional[str],
        sender: Optional[str],
        subject: Optional[str],
        raw_text: str,
        account_id: Optional[str],
        received_at: datetime,
        now: datetime,
    ) -> list[InboxItem]:
        created: list[InboxItem] = []
        for candidate in candidates:
            fingerprint = fingerprint_candidate(
                candidate,
                source=source,
                source_message_id=source_message_id,
                sender=sender,
                subject=subject,
            )
            if not index.admit(fingerprint):
                continue

            created.append(InboxItem(
                id=str(uuid4()),
                status=InboxStatus.PENDING,
                source=source,
                source_message_id=source_message_id,
                sender=sender,
                subject=subject,
                received_at=received_at,
                account_id=account_id,
                raw_snippet=raw_text[:RAW_SNIPPET_MAX_LENGTH],
                fingerprint=fingerprint,
                parsed=candidate,
                created_at=now,
            ))
        return created
