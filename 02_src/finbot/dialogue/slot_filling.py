"""Expense registration slot filling.

The controller decides which field to ask for next and persists the draft
once every required field is present. Slots are asked in a fixed order:
value, item, payment method, establishment, then the notes offer.
"""

import math
from dataclasses import dataclass

from ..config import DEFAULT_CATEGORY, NOT_APPLICABLE, PAYMENT_METHODS_EXAMPLES
from ..errors import PersistenceError, SlotValidationError
from ..logging_config import conversation_logger, get_logger
from ..models import ExpenseDraft, RegistrationData, WaitingFor
from ..state import IStateStore
from ..storage import IStorage
from .formatting import format_expense_summary, format_money
from .parsing import normalize_establishment

logger = get_logger(__name__)

INTERNAL_ERROR_PROMPT = "Ocorreu um erro interno. Por favor, tente novamente."


@dataclass
class SlotStep:
    """The next pending slot and the prompt asking for it."""

    waiting_for: WaitingFor
    prompt: str


def _valid_value(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


class SlotFillingController:
    """Drives an ExpenseDraft from partial to complete."""

    def __init__(self, state_store: IStateStore, storage: IStorage):
        self._states = state_store
        self._storage = storage

    def next_step(self, draft: ExpenseDraft) -> SlotStep:
        """Pick the first missing slot.

        Fills defaults as a side effect: category falls back to the default
        category and a literal 'n/a' establishment is normalized.
        """
        if not _valid_value(draft.value):
            return SlotStep(WaitingFor.VALUE, "Qual foi o *valor* da despesa?")

        money = format_money(draft.value)

        if not draft.item:
            return SlotStep(
                WaitingFor.ITEM,
                f"Ok, R$ {money}. Qual foi o *item principal* ou serviço comprado?",
            )

        if not draft.payment_method:
            return SlotStep(
                WaitingFor.PAYMENT_METHOD,
                f'Certo: R$ {money} para "{draft.item}". *Como você pagou*? '
                f"(Ex: {PAYMENT_METHODS_EXAMPLES})",
            )

        if not draft.category:
            draft.category = DEFAULT_CATEGORY

        if not draft.establishment:
            return SlotStep(
                WaitingFor.ESTABLISHMENT,
                f"Entendido: R$ {money} ({draft.item}, pago com "
                f"{draft.payment_method}). *Onde* foi a compra? "
                f"(Nome do local ou '{NOT_APPLICABLE}')",
            )
        draft.establishment = normalize_establishment(draft.establishment)

        summary = format_expense_summary(draft, include_notes=False)
        return SlotStep(
            WaitingFor.NOTES_CONFIRMATION,
            f"👍 Quase lá! Confira os dados:\n\n{summary}\n\n"
            'Quer adicionar alguma *observação*? (Digite a nota ou responda "não")',
        )

    def advance(self, conversation_id: str, draft: ExpenseDraft | None) -> str:
        """Store the draft with its next pending slot and return the prompt.

        Any fault clears the conversation and returns the internal error
        prompt instead.
        """
        log = conversation_logger(logger, conversation_id)
        try:
            if draft is None:
                raise ValueError("no draft to advance")
            step = self.next_step(draft)
            self._states.merge(
                conversation_id,
                waiting_for=step.waiting_for,
                temp_data=RegistrationData(draft=draft),
            )
        except Exception as e:
            log.error("Slot filling failed: %s", e, exc_info=True)
            self._states.set(conversation_id, None)
            return INTERNAL_ERROR_PROMPT

        log.info("Next step: %s", step.waiting_for.value)
        return step.prompt

    async def finalize(self, conversation_id: str, draft: ExpenseDraft) -> int:
        """Re-validate a completed draft and persist it.

        Returns the new expense id. Raises SlotValidationError when a
        required field is missing and PersistenceError when the write fails.
        """
        if not _valid_value(draft.value):
            raise SlotValidationError("value", "Qual foi o *valor* da despesa?")
        for name in ("item", "payment_method", "category"):
            if not getattr(draft, name):
                raise SlotValidationError(name, INTERNAL_ERROR_PROMPT)

        try:
            expense_id = await self._storage.create_expense(
                conversation_id, draft, draft.attachment_refs
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not save expense: {e}") from e

        conversation_logger(logger, conversation_id).info(
            "Expense %s registered (R$ %s, %s)",
            expense_id,
            format_money(draft.value),
            draft.item,
        )
        return expense_id
