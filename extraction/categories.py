import re
from enum import Enum
from typing import Optional


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


CATEGORY_OPTIONS: tuple[str, ...] = (
    "food",
    "transport",
    "housing",
    "entertainment",
    "health",
    "education",
    "shopping",
    "personal",
    "insurance",
    "debt_payment",
    "savings",
    "income",
    "transfer",
    "other",
)

DEFAULT_CATEGORY = "other"

# keyword -> (category, subcategory)
CATEGORY_KEYWORDS: dict[str, tuple[str, Optional[str]]] = {
    # Food
    "rappi": ("food", "delivery"),
    "ifood": ("food", "delivery"),
    "exito": ("food", "groceries"),
    "carulla": ("food", "groceries"),
    "jumbo": ("food", "groceries"),
    "restaurante": ("food", "restaurants"),
    # Transport
    "uber": ("transport", "rideshare"),
    "didi": ("transport", "rideshare"),
    "cabify": ("transport", "rideshare"),
    "gasolina": ("transport", "fuel"),
    "terpel": ("transport", "fuel"),
    "peaje": ("transport", "tolls"),
    # Housing
    "arriendo": ("housing", "rent"),
    "epm": ("housing", "utilities"),
    "energia": ("housing", "utilities"),
    "claro": ("housing", "internet"),
    # Entertainment
    "netflix": ("entertainment", "streaming"),
    "spotify": ("entertainment", "streaming"),
    "cine": ("entertainment", "movies"),
    # Health
    "farmacia": ("health", "pharmacy"),
    "drogueria": ("health", "pharmacy"),
    # Shopping
    "amazon": ("shopping", "online"),
    "falabella": ("shopping", "retail"),
    # Insurance
    "seguro": ("insurance", None),
    # Debt
    "tarjeta de credito": ("debt_payment", "credit_card"),
    "cuota": ("debt_payment", "loan"),
    # Income
    "nomina": ("income", "salary"),
    "salario": ("income", "salary"),
    "abono": ("income", "deposit"),
    "deposito": ("income", "deposit"),
}

INCOME_SIGNALS: tuple[str, ...] = (
    "abono",
    "deposito",
    "deposit",
    "nomina",
    "salary",
    "recibiste",
    "received",
    "consignacion",
)

TRANSFER_SIGNALS: tuple[str, ...] = (
    "transferencia",
    "transfer",
    "pse",
    "nequi",
    "daviplata",
)


def _contains_word(text: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword), text) is not None


def is_valid_category(value: Optional[str]) -> bool:
    return value in CATEGORY_OPTIONS


def normalize_type(value: object, fallback: TransactionType) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    if isinstance(value, str):
        try:
            return TransactionType(value.strip().lower())
        except ValueError:
            return fallback
    return fallback


def guess_type(text: str) -> TransactionType:
    lower = text.lower()
    if any(_contains_word(lower, signal) for signal in INCOME_SIGNALS):
        return TransactionType.INCOME
    if any(_contains_word(lower, signal) for signal in TRANSFER_SIGNALS):
        return TransactionType.TRANSFER
    return TransactionType.EXPENSE


def guess_category(text: str) -> tuple[str, Optional[str]]:
    lower = text.lower()
    for keyword, (category, subcategory) in CATEGORY_KEYWORDS.items():
        if _contains_word(lower, keyword):
            return category, subcategory
    return DEFAULT_CATEGORY, None
