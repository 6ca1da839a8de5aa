"""Core data models for the finance bot."""

from .expenses import (
    CategoryTotal,
    Expense,
    ExpenseCandidate,
    ReceiptCriteria,
    ReportPeriod,
    parse_amount,
)
from .intents import (
    CancelAction,
    ChitChat,
    Classification,
    ConfirmAction,
    Greeting,
    Intent,
    ProvideInfo,
    RegisterExpense,
    RequestAdvice,
    RequestReceipt,
    RequestReport,
    RequestResearch,
    Unknown,
    parse_classification,
)
from .replies import ImageDirective, Reply, reply_text
from .state import (
    SLOT_FIELDS,
    AdviceData,
    ConversationState,
    DisambiguationData,
    ExpenseDraft,
    RegistrationData,
    TempData,
    WaitingFor,
)
from .tracing import TraceEvent

__all__ = [
    # Expenses
    "CategoryTotal",
    "Expense",
    "ExpenseCandidate",
    "ReceiptCriteria",
    "ReportPeriod",
    "parse_amount",
    # Intents
    "Intent",
    "Classification",
    "RegisterExpense",
    "RequestReport",
    "RequestAdvice",
    "RequestResearch",
    "RequestReceipt",
    "ProvideInfo",
    "ConfirmAction",
    "CancelAction",
    "Greeting",
    "ChitChat",
    "Unknown",
    "parse_classification",
    # Replies
    "ImageDirective",
    "Reply",
    "reply_text",
    # State
    "WaitingFor",
    "SLOT_FIELDS",
    "ExpenseDraft",
    "RegistrationData",
    "DisambiguationData",
    "AdviceData",
    "TempData",
    "ConversationState",
    # Tracing
    "TraceEvent",
]
