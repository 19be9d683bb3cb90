import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from groq import Groq

from .categories import CATEGORY_OPTIONS
from .fallback import fallback_parse
from .models import DEFAULT_CURRENCY, CandidateTransaction, EmailInput, Rejected
from .validation import parse_candidates

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"

SYSTEM_PROMPT = f"""You extract financial transactions from transactional emails and bank alerts.
Return JSON only, in the shape {{"transactions": [...]}}.

Each transaction must include:
- transacted_at: ISO 8601 timestamp
- amount: positive number
- currency: ISO currency code
- description: short description
- category: one of {", ".join(CATEGORY_OPTIONS)}
- type: income, expense or transfer

Optional: subcategory, merchant, reference, confidence (0-1).

Do not fabricate uncertain transactions. If none exist return {{"transactions": []}}."""


class ExtractionFailedError(Exception):
    pass


class TransactionExtractor:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = 20.0,
        max_tokens: int = 2500,
        temperature: float = 0.1,
        default_currency: str = DEFAULT_CURRENCY,
        client: Any = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.api_key = api_key or os.getenv("GROQ_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.default_currency = default_currency
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.client = client

        if self.client is None and self.api_key:
            self.client = Groq(api_key=self.api_key, timeout=timeout_seconds, max_retries=1)

    @property
    def is_available(self) -> bool:
        return self.client is not None

    def extract(
        self,
        body_text: str,
        sender: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> list[CandidateTransaction]:
        message = EmailInput(sender=sender, subject=subject, body_text=body_text)
        now = self.clock()

        if self.client is None:
            return fallback_parse(message, now, self.default_currency)

        try:
            return self._extract_with_groq(message, now)
        except Exception as e:
            logger.warning("LLM extraction failed, using fallback parser: %s", e)
            return fallback_parse(message, now, self.default_currency)

    def _extract_with_groq(self, message: EmailInput, now: datetime) -> list[CandidateTransaction]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self._user_prompt(message)},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        payload = self._extract_json(response.choices[0].message.content or "")
        result = parse_candidates(
            payload.get("transactions"),
            fallback_text=message.combined_text,
            now=now,
            default_currency=self.default_currency,
        )
        if isinstance(result, Rejected):
            raise ExtractionFailedError(result.reason)
        return result.candidates

    def _user_prompt(self, message: EmailInput) -> str:
        return (
            f"Sender: {message.sender or 'unknown'}\n"
            f"Subject: {message.subject or 'no subject'}\n\n"
            f"Email content:\n{message.compact_body}"
        )

    def _extract_json(self, text: str) -> dict:
        json_match = re.search(r"\{[\s\S]*\}", text)
        if not json_match:
            raise ExtractionFailedError("response contained no JSON object")
        try:
            payload = json.loads(json_match.group())
        except json.JSONDecodeError as e:
            raise ExtractionFailedError(f"response JSON could not be decoded: {e}") from e
        if not isinstance(payload, dict):
            raise ExtractionFailedError("response JSON is not an object")
        return payload


if __name__ == "__main__":
    import sys

    extractor = TransactionExtractor()
    print(f"Groq available: {extractor.is_available}")

    text = " ".join(sys.argv[1:]) or "Compra por $45.000 en Rappi"
    for candidate in extractor.extract(text):
        print(candidate.model_dump_json(indent=2))
