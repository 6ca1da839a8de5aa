"""Routes a classified message to the behavior for the conversation's state.

A conversation is either blocked on a pending question (``waiting_for``
set) or idle. Pending conversations resolve the pending question first;
idle ones dispatch on the classified intent.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..errors import (
    DisambiguationMismatch,
    InternalStateError,
    PersistenceError,
    SlotValidationError,
)
from ..logging_config import ConversationLogger, conversation_logger, get_logger
from ..llm import IResponder
from ..models import (
    SLOT_FIELDS,
    AdviceData,
    CancelAction,
    CategoryTotal,
    Classification,
    ConfirmAction,
    ConversationState,
    DisambiguationData,
    ExpenseCandidate,
    ExpenseDraft,
    ImageDirective,
    Intent,
    ProvideInfo,
    RegisterExpense,
    RegistrationData,
    ReportPeriod,
    RequestReceipt,
    RequestReport,
    RequestResearch,
    Reply,
    WaitingFor,
    parse_amount,
)
from ..state import IStateStore
from ..storage import IStorage
from ..tracker import ITracker
from .formatting import format_candidates, format_expense_summary, format_report
from .parsing import (
    choose_candidate,
    clean_text,
    is_affirmative,
    is_research_followup,
    normalize_establishment,
    offers_help,
    validate_slot,
)
from .slot_filling import SlotFillingController

logger = get_logger(__name__)

INTERNAL_STATE_REPLY = (
    "Ops, me perdi no meio da conversa. 😅 Vamos recomeçar: o que você precisa?"
)
REGISTRATION_FAILED_REPLY = (
    "😥 Não consegui salvar a despesa. Por favor, tente registrar novamente."
)
NOTES_PROMPT = "Ok, pode digitar as observações agora:"
RESEARCH_TOPIC_PROMPT = "Claro! Sobre qual tópico financeiro você gostaria de saber mais?"
RECEIPT_DETAILS_PROMPT = (
    "Por favor, me dê mais detalhes da despesa para eu encontrar o comprovante "
    "(item, valor, data, local...). 😉"
)
RECEIPT_NOT_FOUND_REPLY = (
    "🙁 Não encontrei nenhuma despesa com esses detalhes para buscar o comprovante."
)
DISAMBIGUATION_LOST_REPLY = (
    "Ocorreu um erro ao processar sua escolha. "
    "Por favor, tente pedir o comprovante novamente."
)

_IDLE_REPORT_PERIODS = (
    ReportPeriod.MONTH,
    ReportPeriod.TODAY,
    ReportPeriod.YESTERDAY,
    ReportPeriod.ALL,
)


@dataclass
class Turn:
    """One inbound message after classification."""

    conversation_id: str
    text: str
    classification: Classification
    attachment_refs: list[str] = field(default_factory=list)
    is_new_conversation: bool = False

    @property
    def log(self) -> ConversationLogger:
        return conversation_logger(logger, self.conversation_id)


def resolve_report_period(raw: str | None) -> ReportPeriod:
    """Map a classifier period to a report period; unknown values mean month."""
    if not raw:
        return ReportPeriod.MONTH
    try:
        period = ReportPeriod(raw.strip().lower())
    except ValueError:
        period = None
    if period not in _IDLE_REPORT_PERIODS:
        logger.warning("Unrecognized report period %r, using month", raw)
        return ReportPeriod.MONTH
    return period


def not_understood_reply(waiting_for: WaitingFor) -> str:
    return (
        f'Hum... Acho que não entendi sua resposta para "{waiting_for.value}". '
        'Poderia tentar de novo, ou digitar "cancela"?'
    )


class IntentDispatcher:
    """Applies pending-question rules and idle intent handlers."""

    def __init__(
        self,
        state_store: IStateStore,
        storage: IStorage,
        slot_filler: SlotFillingController,
        responder: IResponder,
        tracker: ITracker,
    ):
        self._states = state_store
        self._storage = storage
        self._slots = slot_filler
        self._responder = responder
        self._tracker = tracker

        self._idle_handlers: dict[Intent, Callable[[Turn], Awaitable[Reply]]] = {
            Intent.REGISTER_EXPENSE: self._register_expense,
            Intent.REQUEST_REPORT: self._request_report,
            Intent.REQUEST_ADVICE: self._request_advice,
            Intent.REQUEST_RESEARCH: self._request_research,
            Intent.REQUEST_RECEIPT: self._request_receipt,
            Intent.GREETING: self._greeting,
            Intent.CHIT_CHAT: self._chit_chat,
            Intent.CONFIRM_ACTION: self._out_of_context,
            Intent.PROVIDE_INFO: self._out_of_context,
            Intent.CANCEL_ACTION: self._out_of_context,
        }

    async def dispatch(self, turn: Turn) -> Reply:
        state = self._states.get(turn.conversation_id)
        if state is not None and state.is_pending:
            try:
                return await self._dispatch_pending(turn, state)
            except InternalStateError as e:
                turn.log.error("Inconsistent state: %s", e)
                self._states.set(turn.conversation_id, None)
                return INTERNAL_STATE_REPLY
        return await self._dispatch_idle(turn)

    def reset_idle(self, conversation_id: str) -> None:
        """Drop pending data but keep the research topic."""
        self._states.merge(
            conversation_id, waiting_for=WaitingFor.NONE, temp_data=None
        )

    # Pending question

    async def _dispatch_pending(self, turn: Turn, state: ConversationState) -> Reply:
        waiting = state.waiting_for
        classification = turn.classification
        turn.log.info(
            "Resolving pending '%s' with intent %s",
            waiting.value,
            classification.intent.value,
        )

        if waiting == WaitingFor.NOTES_CONFIRMATION:
            return await self._on_notes_confirmation(turn, state)

        if isinstance(classification, CancelAction):
            return await self._cancel_flow(turn, waiting)

        if waiting == WaitingFor.NOTES:
            draft = state.temp(RegistrationData).draft
            draft.notes = turn.text
            return await self._complete_registration(turn, draft, include_notes=True)

        if waiting == WaitingFor.ADVICE_CONFIRMATION:
            return await self._on_advice_confirmation(turn, state)

        if (
            waiting in SLOT_FIELDS
            and isinstance(classification, ProvideInfo)
            and classification.field == waiting.value
        ):
            return self._on_slot_reply(turn, state, classification)

        if waiting == WaitingFor.RECEIPT_DISAMBIGUATION:
            return await self._on_receipt_choice(turn, state)

        turn.log.info(
            "Unexpected %s while waiting for '%s'",
            classification.intent.value,
            waiting.value,
        )
        return not_understood_reply(waiting)

    async def _on_notes_confirmation(
        self, turn: Turn, state: ConversationState
    ) -> Reply:
        draft = state.temp(RegistrationData).draft
        classification = turn.classification

        if isinstance(classification, CancelAction):
            return await self._complete_registration(turn, draft, include_notes=False)

        wants_notes = (
            isinstance(classification, ConfirmAction)
            or is_affirmative(turn.text)
            or (
                isinstance(classification, ProvideInfo)
                and is_affirmative(classification.value)
            )
        )
        if wants_notes:
            self._states.merge(turn.conversation_id, waiting_for=WaitingFor.NOTES)
            return NOTES_PROMPT

        if (
            isinstance(classification, ProvideInfo)
            and classification.field == "notes"
            and classification.value is not None
        ):
            draft.notes = str(classification.value)
            return await self._complete_registration(turn, draft, include_notes=True)

        return await self._complete_registration(turn, draft, include_notes=False)

    async def _on_advice_confirmation(
        self, turn: Turn, state: ConversationState
    ) -> Reply:
        user_context = state.temp(AdviceData).user_context
        if isinstance(turn.classification, ConfirmAction):
            spending = await self._recent_spending(turn.conversation_id)
            reply = await self._responder.spending_advice(spending, user_context)
        else:
            reply = await self._responder.conversational(
                "Não, obrigado", Intent.CANCEL_ACTION
            )
        self._states.set(turn.conversation_id, None)
        return reply

    def _on_slot_reply(
        self, turn: Turn, state: ConversationState, info: ProvideInfo
    ) -> Reply:
        draft = state.temp(RegistrationData).draft
        slot = state.waiting_for
        try:
            value = validate_slot(slot, info.value)
        except SlotValidationError as e:
            turn.log.warning("Invalid %s: %r", slot.value, info.value)
            return e.prompt

        setattr(draft, slot.value, value)
        return self._slots.advance(turn.conversation_id, draft)

    async def _on_receipt_choice(self, turn: Turn, state: ConversationState) -> Reply:
        candidates = state.temp(DisambiguationData).candidates
        if not candidates:
            turn.log.error("Receipt disambiguation without candidates")
            self._states.set(turn.conversation_id, None)
            return DISAMBIGUATION_LOST_REPLY

        try:
            selected = choose_candidate(turn.text, candidates)
        except DisambiguationMismatch as e:
            return e.prompt

        reply = await self._receipt_reply(selected, show_id=True)
        self._states.set(turn.conversation_id, None)
        return reply

    async def _cancel_flow(self, turn: Turn, waiting: WaitingFor) -> Reply:
        reply = await self._responder.conversational(turn.text, Intent.CANCEL_ACTION)
        self._states.set(turn.conversation_id, None)
        await self._tracker.track(
            event_type="flow_cancelled",
            actor="dialogue_agent",
            data={"conversation_id": turn.conversation_id, "waiting_for": waiting.value},
        )
        return reply

    async def _complete_registration(
        self, turn: Turn, draft: ExpenseDraft, include_notes: bool
    ) -> Reply:
        try:
            expense_id = await self._slots.finalize(turn.conversation_id, draft)
        except (SlotValidationError, PersistenceError) as e:
            turn.log.error("Registration failed: %s", e)
            self._states.set(turn.conversation_id, None)
            return REGISTRATION_FAILED_REPLY

        self._states.set(turn.conversation_id, None)
        await self._tracker.track(
            event_type="expense_registered",
            actor="dialogue_agent",
            data={
                "conversation_id": turn.conversation_id,
                "expense_id": expense_id,
                "value": draft.value,
                "category": draft.category,
                "attachments": len(draft.attachment_refs),
            },
        )
        summary = format_expense_summary(draft, include_notes=include_notes)
        return f"✅ Despesa registrada com sucesso!\n\n{summary}"

    # Idle intents

    async def _dispatch_idle(self, turn: Turn) -> Reply:
        self.reset_idle(turn.conversation_id)
        turn.log.info("Handling intent %s", turn.classification.intent.value)
        handler = self._idle_handlers.get(turn.classification.intent, self._unknown)
        return await handler(turn)

    def _clear_topic(self, conversation_id: str) -> None:
        self._states.clear_field(conversation_id, "last_research_topic")

    def _last_topic(self, conversation_id: str) -> str | None:
        state = self._states.get(conversation_id)
        return state.last_research_topic if state else None

    async def _register_expense(self, turn: Turn) -> Reply:
        extracted: RegisterExpense = turn.classification
        draft = ExpenseDraft(
            value=parse_amount(extracted.value),
            item=clean_text(extracted.item),
            payment_method=clean_text(extracted.payment_method),
            category=clean_text(extracted.category),
            establishment=normalize_establishment(clean_text(extracted.establishment)),
            notes=extracted.notes,
            date=extracted.date or "today",
            attachment_refs=list(turn.attachment_refs),
        )
        turn.log.info(
            "Starting registration with %s attachment(s)", len(draft.attachment_refs)
        )
        self._clear_topic(turn.conversation_id)
        return self._slots.advance(turn.conversation_id, draft)

    async def _request_report(self, turn: Turn) -> Reply:
        request: RequestReport = turn.classification
        period = resolve_report_period(request.period)
        expenses = await self._storage.query_expenses(turn.conversation_id, period)
        self._clear_topic(turn.conversation_id)
        return format_report(expenses, period)

    async def _request_advice(self, turn: Turn) -> Reply:
        spending = await self._recent_spending(turn.conversation_id)
        reply = await self._responder.spending_advice(spending, turn.text)
        self._clear_topic(turn.conversation_id)
        return reply

    async def _request_research(self, turn: Turn) -> Reply:
        request: RequestResearch = turn.classification
        if request.query:
            reply = await self._responder.research(request.query)
            self._states.merge(turn.conversation_id, last_research_topic=request.query)
            return reply

        topic = self._last_topic(turn.conversation_id)
        if topic:
            return await self._responder.research(topic, turn.text)
        return RESEARCH_TOPIC_PROMPT

    async def _request_receipt(self, turn: Turn) -> Reply:
        request: RequestReceipt = turn.classification
        if request.criteria.is_empty():
            return RECEIPT_DETAILS_PROMPT

        candidates = await self._storage.find_expenses(
            turn.conversation_id, request.criteria
        )
        if not candidates:
            return RECEIPT_NOT_FOUND_REPLY

        if len(candidates) > 1:
            turn.log.info("%s receipt candidates, asking to choose", len(candidates))
            self._states.merge(
                turn.conversation_id,
                waiting_for=WaitingFor.RECEIPT_DISAMBIGUATION,
                temp_data=DisambiguationData(candidates=candidates),
            )
            return format_candidates(candidates)

        reply = await self._receipt_reply(candidates[0], show_id=False)
        self._states.set(turn.conversation_id, None)
        return reply

    async def _greeting(self, turn: Turn) -> Reply:
        reply = await self._responder.conversational(
            turn.text, Intent.GREETING, turn.is_new_conversation
        )
        self._clear_topic(turn.conversation_id)
        return reply

    async def _chit_chat(self, turn: Turn) -> Reply:
        topic = self._last_topic(turn.conversation_id)
        if topic and is_research_followup(turn.text):
            turn.log.info("Small talk read as follow-up on '%s'", topic)
            return await self._responder.research(topic, turn.text)

        reply = await self._responder.conversational(turn.text, Intent.CHIT_CHAT)
        if offers_help(reply):
            turn.log.info("Help offered, waiting for advice confirmation")
            self._states.merge(
                turn.conversation_id,
                waiting_for=WaitingFor.ADVICE_CONFIRMATION,
                temp_data=AdviceData(user_context=turn.text),
            )
        else:
            self._clear_topic(turn.conversation_id)
        return reply

    async def _out_of_context(self, turn: Turn) -> Reply:
        reply = await self._responder.conversational(
            turn.text, Intent.UNKNOWN, turn.is_new_conversation
        )
        self._clear_topic(turn.conversation_id)
        return reply

    async def _unknown(self, turn: Turn) -> Reply:
        topic = self._last_topic(turn.conversation_id)
        if topic:
            return await self._responder.research(topic, turn.text)
        return await self._responder.conversational(
            turn.text, Intent.UNKNOWN, turn.is_new_conversation
        )

    # Helpers

    async def _recent_spending(self, conversation_id: str) -> list[CategoryTotal]:
        """Last month's spend per category, or all-time when last month is empty."""
        spending = await self._storage.query_aggregate_by_category(
            conversation_id, ReportPeriod.LAST_MONTH
        )
        if not spending:
            spending = await self._storage.query_aggregate_by_category(
                conversation_id, ReportPeriod.ALL
            )
        return spending

    async def _receipt_reply(self, expense: ExpenseCandidate, show_id: bool) -> Reply:
        refs = await self._storage.get_attachments(expense.id)
        label = f"'{expense.item}' (ID {expense.id})" if show_id else f"'{expense.item}'"
        if not refs:
            return f"✅ Encontrei a despesa {label}, mas não há comprovante anexado a ela."
        return [
            f"🧾 Aqui está o comprovante para a despesa {label}:",
            *(ImageDirective(ref=ref) for ref in refs),
        ]
