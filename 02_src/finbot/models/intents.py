"""Classifier output models.

The classifier returns loosely structured JSON. ``parse_classification``
turns it into one dataclass per intent, keeping only fields that pass a
type check; anything unrecognizable decodes to ``Unknown``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from .expenses import ReceiptCriteria, parse_amount


class Intent(str, Enum):
    """Top-level intents produced by the classifier."""

    REGISTER_EXPENSE = "register_expense"
    REQUEST_REPORT = "request_report"
    REQUEST_ADVICE = "request_advice"
    REQUEST_RESEARCH = "request_research"
    REQUEST_RECEIPT = "request_receipt"
    PROVIDE_INFO = "provide_info"
    CONFIRM_ACTION = "confirm_action"
    CANCEL_ACTION = "cancel_action"
    GREETING = "greeting"
    CHIT_CHAT = "chit_chat"
    UNKNOWN = "unknown"


@dataclass
class Classification:
    """Base class for a decoded classification."""

    intent: ClassVar[Intent] = Intent.UNKNOWN


@dataclass
class RegisterExpense(Classification):
    intent: ClassVar[Intent] = Intent.REGISTER_EXPENSE

    value: Any = None  # raw; coerced when the draft is seeded
    item: str | None = None
    payment_method: str | None = None
    category: str | None = None
    establishment: str | None = None
    notes: str | None = None
    date: str | None = None


@dataclass
class RequestReport(Classification):
    intent: ClassVar[Intent] = Intent.REQUEST_REPORT

    period: str | None = None


@dataclass
class RequestAdvice(Classification):
    intent: ClassVar[Intent] = Intent.REQUEST_ADVICE

    topic: str | None = None


@dataclass
class RequestResearch(Classification):
    intent: ClassVar[Intent] = Intent.REQUEST_RESEARCH

    query: str | None = None


@dataclass
class RequestReceipt(Classification):
    intent: ClassVar[Intent] = Intent.REQUEST_RECEIPT

    criteria: ReceiptCriteria = field(default_factory=ReceiptCriteria)


@dataclass
class ProvideInfo(Classification):
    intent: ClassVar[Intent] = Intent.PROVIDE_INFO

    field: str | None = None
    value: Any = None


@dataclass
class ConfirmAction(Classification):
    intent: ClassVar[Intent] = Intent.CONFIRM_ACTION


@dataclass
class CancelAction(Classification):
    intent: ClassVar[Intent] = Intent.CANCEL_ACTION


@dataclass
class Greeting(Classification):
    intent: ClassVar[Intent] = Intent.GREETING


@dataclass
class ChitChat(Classification):
    intent: ClassVar[Intent] = Intent.CHIT_CHAT


@dataclass
class Unknown(Classification):
    intent: ClassVar[Intent] = Intent.UNKNOWN

    error: str | None = None


# Classifier field aliases (camelCase leaks from prompts)
_FIELD_ALIASES = {
    "paymentMethod": "payment_method",
    "payment": "payment_method",
    "amount": "value",
}


def _text(data: dict, key: str) -> str | None:
    raw = data.get(key)
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        raw = str(raw)
    if not isinstance(raw, str):
        return None
    raw = raw.strip()
    return raw or None


def _scalar(data: dict, key: str) -> Any:
    raw = data.get(key)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw
    if isinstance(raw, str):
        return raw.strip() or None
    return None


def _criteria(data: dict) -> ReceiptCriteria:
    raw = data.get("search_criteria")
    if not isinstance(raw, dict):
        return ReceiptCriteria()
    return ReceiptCriteria(
        item=_text(raw, "item"),
        value=parse_amount(raw.get("value")),
        date=_text(raw, "date"),
        establishment=_text(raw, "establishment"),
        category=_text(raw, "category"),
    )


def _provide_info(data: dict) -> ProvideInfo:
    name = _text(data, "provided_field")
    if name:
        name = _FIELD_ALIASES.get(name, name).lower()
    return ProvideInfo(field=name, value=_scalar(data, "provided_value"))


def parse_classification(raw: Any) -> Classification:
    """Decode raw classifier output into a typed classification.

    Accepts both ``{"intent": ..., "entities": {...}}`` and the flat form
    where entities sit next to ``intent``.
    """
    if not isinstance(raw, dict):
        return Unknown(error="classifier output is not an object")

    error = raw.get("error")
    if error:
        return Unknown(error=str(error))

    try:
        intent = Intent(raw.get("intent"))
    except ValueError:
        return Unknown()

    entities = raw.get("entities")
    data = entities if isinstance(entities, dict) else raw

    if intent == Intent.REGISTER_EXPENSE:
        return RegisterExpense(
            value=_scalar(data, "value"),
            item=_text(data, "item"),
            payment_method=_text(data, "payment_method"),
            category=_text(data, "category"),
            establishment=_text(data, "establishment"),
            notes=_text(data, "notes"),
            date=_text(data, "date"),
        )
    if intent == Intent.REQUEST_REPORT:
        return RequestReport(period=_text(data, "report_period"))
    if intent == Intent.REQUEST_ADVICE:
        return RequestAdvice(topic=_text(data, "advice_topic"))
    if intent == Intent.REQUEST_RESEARCH:
        return RequestResearch(query=_text(data, "research_query"))
    if intent == Intent.REQUEST_RECEIPT:
        return RequestReceipt(criteria=_criteria(data))
    if intent == Intent.PROVIDE_INFO:
        return _provide_info(data)
    if intent == Intent.CONFIRM_ACTION:
        return ConfirmAction()
    if intent == Intent.CANCEL_ACTION:
        return CancelAction()
    if intent == Intent.GREETING:
        return Greeting()
    if intent == Intent.CHIT_CHAT:
        return ChitChat()
    return Unknown()
