"""Conversation state models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from ..errors import InternalStateError
from .expenses import ExpenseCandidate


class WaitingFor(str, Enum):
    """Which slot or confirmation a conversation is blocked on."""

    VALUE = "value"
    ITEM = "item"
    PAYMENT_METHOD = "payment_method"
    ESTABLISHMENT = "establishment"
    NOTES = "notes"
    NOTES_CONFIRMATION = "notes_confirmation"
    ADVICE_CONFIRMATION = "advice_confirmation"
    RECEIPT_DISAMBIGUATION = "receipt_disambiguation"
    NONE = "none"


# Slots filled through provide_info with a matching field name
SLOT_FIELDS = (
    WaitingFor.VALUE,
    WaitingFor.ITEM,
    WaitingFor.PAYMENT_METHOD,
    WaitingFor.ESTABLISHMENT,
)


@dataclass
class ExpenseDraft:
    """Fields collected so far for an expense being registered."""

    value: float | None = None
    item: str | None = None
    payment_method: str | None = None
    category: str | None = None
    establishment: str | None = None
    notes: str | None = None
    date: str = "today"  # ISO date or "today"
    attachment_refs: list[str] = field(default_factory=list)


@dataclass
class RegistrationData:
    """Temp data while an expense registration is in progress."""

    draft: ExpenseDraft


@dataclass
class DisambiguationData:
    """Temp data while the user picks one of several matching expenses."""

    candidates: list[ExpenseCandidate]  # oldest first


@dataclass
class AdviceData:
    """Temp data while the bot waits for the user to accept an advice offer."""

    user_context: str | None = None


TempData = Union[RegistrationData, DisambiguationData, AdviceData]

_ARM_FOR_WAITING: dict[WaitingFor, type] = {
    WaitingFor.VALUE: RegistrationData,
    WaitingFor.ITEM: RegistrationData,
    WaitingFor.PAYMENT_METHOD: RegistrationData,
    WaitingFor.ESTABLISHMENT: RegistrationData,
    WaitingFor.NOTES: RegistrationData,
    WaitingFor.NOTES_CONFIRMATION: RegistrationData,
    WaitingFor.ADVICE_CONFIRMATION: AdviceData,
    WaitingFor.RECEIPT_DISAMBIGUATION: DisambiguationData,
}


@dataclass
class ConversationState:
    """Per-conversation dialogue state."""

    waiting_for: WaitingFor = WaitingFor.NONE
    temp_data: TempData | None = None
    last_research_topic: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.waiting_for != WaitingFor.NONE

    def temp(self, kind: type) -> TempData:
        """Return temp data of the arm required by ``waiting_for``.

        Raises InternalStateError when the stored arm does not match.
        """
        expected = _ARM_FOR_WAITING.get(self.waiting_for)
        if expected is not kind or not isinstance(self.temp_data, kind):
            raise InternalStateError(
                f"waiting_for={self.waiting_for.value} holds "
                f"{type(self.temp_data).__name__}, expected {kind.__name__}"
            )
        return self.temp_data
