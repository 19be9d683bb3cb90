from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .categories import TransactionType

DESCRIPTION_MAX_LENGTH = 180
REFERENCE_MAX_LENGTH = 120
BODY_MAX_LENGTH = 8000
DEFAULT_CURRENCY = "COP"


class CandidateTransaction(BaseModel):
    transacted_at: datetime
    amount: Decimal = Field(..., gt=0, description="Positive magnitude; sign is applied at commit time")
    currency: str = DEFAULT_CURRENCY
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    category: str = "other"
    subcategory: Optional[str] = None
    type: TransactionType = TransactionType.EXPENSE
    merchant: Optional[str] = None
    reference: Optional[str] = None
    confidence: Optional[float] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "transacted_at": "2024-03-05T14:12:00Z",
            "amount": "45000.00",
            "currency": "COP",
            "description": "Compra por $45.000 en Rappi",
            "category": "food",
            "subcategory": "delivery",
            "type": "expense",
            "merchant": "Rappi",
            "confidence": 0.35,
        }
    })


class EmailInput(BaseModel):
    sender: Optional[str] = None
    subject: Optional[str] = None
    body_text: str

    @property
    def compact_body(self) -> str:
        return self.body_text[:BODY_MAX_LENGTH]

    @property
    def combined_text(self) -> str:
        return f"{self.subject or ''}\n{self.compact_body}".strip()


@dataclass(frozen=True)
class Parsed:
    candidates: list[CandidateTransaction]


@dataclass(frozen=True)
class Rejected:
    reason: str


ParseResult = Union[Parsed, Rejected]
