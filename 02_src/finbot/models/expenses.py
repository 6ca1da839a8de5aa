"""Expense record models and amount coercion."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ReportPeriod(str, Enum):
    """Date windows understood by the record store."""

    MONTH = "month"
    TODAY = "today"
    YESTERDAY = "yesterday"
    ALL = "all"
    LAST_MONTH = "last_month"


@dataclass
class Expense:
    """A persisted expense record."""

    id: int
    conversation_id: str
    expense_date: str  # YYYY-MM-DD
    category: str
    value: float
    establishment: str
    payment_method: str
    item: str
    notes: str | None
    created_at: datetime
    has_attachment: bool = False


@dataclass
class ExpenseCandidate:
    """Summary of a matched expense offered during receipt disambiguation."""

    id: int
    item: str
    value: float
    expense_date: str
    created_at: datetime


@dataclass
class CategoryTotal:
    """Aggregated spend for one category."""

    category: str
    total: float


@dataclass
class ReceiptCriteria:
    """Search criteria for locating a stored expense."""

    item: str | None = None
    value: float | None = None
    date: str | None = None
    establishment: str | None = None
    category: str | None = None

    def is_empty(self) -> bool:
        return not any(
            (self.item, self.value, self.date, self.establishment, self.category)
        )


def parse_amount(raw: Any) -> float | None:
    """Coerce a user or classifier supplied amount to a positive float.

    Accepts numbers and strings such as "25,50", "R$ 25.50" or "1.234,56".
    Returns None for anything non-numeric, non-finite or not above zero.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        text = "".join(raw.split())
        if text.upper().startswith("R$"):
            text = text[2:]
        if "," in text and "." in text:
            text = text.replace(".", "")
        text = text.replace(",", ".", 1)
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number) or number <= 0:
        return None
    return number
