"""Tests for IntentDispatcher."""

from unittest.mock import AsyncMock

import pytest

from finbot.dialogue import Turn
from finbot.dialogue.dispatcher import (
    INTERNAL_STATE_REPLY,
    NOTES_PROMPT,
    RECEIPT_DETAILS_PROMPT,
    RECEIPT_NOT_FOUND_REPLY,
    REGISTRATION_FAILED_REPLY,
    RESEARCH_TOPIC_PROMPT,
    resolve_report_period,
)
from finbot.errors import PersistenceError
from finbot.models import (
    AdviceData,
    CancelAction,
    ChitChat,
    ConfirmAction,
    ConversationState,
    ExpenseDraft,
    Greeting,
    ImageDirective,
    Intent,
    ProvideInfo,
    ReceiptCriteria,
    RegisterExpense,
    RegistrationData,
    ReportPeriod,
    RequestAdvice,
    RequestReceipt,
    RequestReport,
    RequestResearch,
    Unknown,
    WaitingFor,
)

CHAT = "5511999990000"


@pytest.fixture
def send(dispatcher):
    """Dispatch one classified message for the test conversation."""

    async def _send(text, classification, attachment_refs=None, is_new=False):
        return await dispatcher.dispatch(
            Turn(
                conversation_id=CHAT,
                text=text,
                classification=classification,
                attachment_refs=attachment_refs or [],
                is_new_conversation=is_new,
            )
        )

    return _send


def _pending(state_store, waiting_for, draft):
    state_store.merge(
        CHAT, waiting_for=waiting_for, temp_data=RegistrationData(draft=draft)
    )


async def _expenses(storage):
    return await storage.query_expenses(CHAT, ReportPeriod.ALL)


class TestRegistrationFlow:
    """Slot filling through the dispatcher."""

    async def test_full_flow_declining_notes(self, send, storage, state_store):
        reply = await send(
            "Café 25,50 no pix",
            RegisterExpense(value=25.5, item="Café", payment_method="Pix"),
        )
        assert state_store.get(CHAT).waiting_for == WaitingFor.ESTABLISHMENT
        assert "*Onde* foi a compra?" in reply

        reply = await send(
            "Padaria do Zé",
            ProvideInfo(field="establishment", value="Padaria do Zé"),
        )
        assert state_store.get(CHAT).waiting_for == WaitingFor.NOTES_CONFIRMATION
        assert "Quer adicionar alguma *observação*?" in reply

        reply = await send("não", CancelAction())
        assert reply.startswith("✅ Despesa registrada com sucesso!")
        assert state_store.get(CHAT) is None

        expenses = await _expenses(storage)
        assert len(expenses) == 1
        assert expenses[0].item == "Café"
        assert expenses[0].establishment == "Padaria do Zé"
        assert expenses[0].category == "Outros"
        assert expenses[0].notes is None

    async def test_slot_order(self, send, state_store):
        await send("gastei com algo", RegisterExpense())
        assert state_store.get(CHAT).waiting_for == WaitingFor.VALUE

        await send("30", ProvideInfo(field="value", value="30"))
        assert state_store.get(CHAT).waiting_for == WaitingFor.ITEM

        await send("Cigarro", ProvideInfo(field="item", value="Cigarro"))
        assert state_store.get(CHAT).waiting_for == WaitingFor.PAYMENT_METHOD

        await send("Débito", ProvideInfo(field="payment_method", value="Débito"))
        assert state_store.get(CHAT).waiting_for == WaitingFor.ESTABLISHMENT

        draft = state_store.get(CHAT).temp_data.draft
        assert (draft.value, draft.item, draft.payment_method) == (30.0, "Cigarro", "Débito")

    @pytest.mark.parametrize("raw", ["-5", "abc", 0])
    async def test_invalid_value_at_seed_is_missing(self, send, state_store, raw):
        reply = await send("gastei", RegisterExpense(value=raw, item="Pão"))

        assert reply == "Qual foi o *valor* da despesa?"
        assert state_store.get(CHAT).temp_data.draft.value is None

    @pytest.mark.parametrize("raw", ["-5", "abc"])
    async def test_invalid_value_reply_reprompts(self, send, state_store, raw):
        _pending(state_store, WaitingFor.VALUE, ExpenseDraft(item="Pão"))

        reply = await send(raw, ProvideInfo(field="value", value=raw))

        assert reply.startswith(f'Hum, o valor "{raw}" não parece válido.')
        state = state_store.get(CHAT)
        assert state.waiting_for == WaitingFor.VALUE
        assert state.temp_data.draft.value is None

    async def test_value_reply_with_decimal_comma(self, send, state_store):
        _pending(state_store, WaitingFor.VALUE, ExpenseDraft(item="Pão"))

        await send("25,50", ProvideInfo(field="value", value="25,50"))

        assert state_store.get(CHAT).temp_data.draft.value == 25.5

    async def test_seed_keeps_attachments_and_clears_topic(self, send, state_store):
        state_store.set(CHAT, ConversationState(last_research_topic="CDI"))

        await send("recibo", RegisterExpense(value=10), attachment_refs=["/tmp/r.jpg"])

        state = state_store.get(CHAT)
        assert state.temp_data.draft.attachment_refs == ["/tmp/r.jpg"]
        assert state.last_research_topic is None

    async def test_seed_normalizes_not_applicable_establishment(self, send, state_store, storage):
        await send(
            "25 no pix, café",
            RegisterExpense(value=25, item="Café", payment_method="Pix", establishment="n/a"),
        )
        state = state_store.get(CHAT)
        assert state.waiting_for == WaitingFor.NOTES_CONFIRMATION
        assert state.temp_data.draft.establishment == "N/A"

    async def test_unexpected_reply_keeps_state(self, send, state_store):
        _pending(state_store, WaitingFor.ITEM, ExpenseDraft(value=10))

        reply = await send("qual o saldo?", RequestReport())

        assert reply == (
            'Hum... Acho que não entendi sua resposta para "item". '
            'Poderia tentar de novo, ou digitar "cancela"?'
        )
        assert state_store.get(CHAT).waiting_for == WaitingFor.ITEM

    async def test_provide_info_for_other_field_not_accepted(self, send, state_store):
        _pending(state_store, WaitingFor.ITEM, ExpenseDraft(value=10))

        reply = await send("Pix", ProvideInfo(field="payment_method", value="Pix"))

        assert "não entendi sua resposta" in reply
        assert state_store.get(CHAT).temp_data.draft.payment_method is None


class TestCancel:
    """Cancel aborts every pending flow except the notes offer."""

    async def test_cancel_while_waiting_for_value(self, send, state_store, storage, responder):
        storage.create_expense = AsyncMock()
        _pending(state_store, WaitingFor.VALUE, ExpenseDraft(item="Pão"))

        reply = await send("cancela", CancelAction())

        assert reply == "Resposta conversacional"
        responder.conversational.assert_awaited_once_with("cancela", Intent.CANCEL_ACTION)
        assert state_store.get(CHAT) is None
        storage.create_expense.assert_not_called()

    async def test_cancel_while_waiting_for_notes(self, send, state_store, storage, make_draft):
        _pending(state_store, WaitingFor.NOTES, make_draft())

        await send("cancela", CancelAction())

        assert state_store.get(CHAT) is None
        assert await _expenses(storage) == []

    async def test_cancel_is_tracked(self, send, state_store, storage):
        _pending(state_store, WaitingFor.ITEM, ExpenseDraft(value=1))

        await send("cancela", CancelAction())

        events = await storage.get_trace_events(event_types=["flow_cancelled"])
        assert events[0].data["waiting_for"] == "item"


class TestNotes:
    """The notes offer and notes entry."""

    async def test_confirm_then_free_text_note(self, send, state_store, storage, make_draft):
        _pending(state_store, WaitingFor.NOTES_CONFIRMATION, make_draft())

        reply = await send("sim", ConfirmAction())
        assert reply == NOTES_PROMPT
        assert state_store.get(CHAT).waiting_for == WaitingFor.NOTES

        reply = await send("Pago com desconto de funcionário", Unknown())
        assert "*- Observações:* Pago com desconto de funcionário" in reply
        assert (await _expenses(storage))[0].notes == "Pago com desconto de funcionário"

    async def test_affirmative_provide_info_asks_for_notes(self, send, state_store, make_draft):
        _pending(state_store, WaitingFor.NOTES_CONFIRMATION, make_draft())

        reply = await send("quero", ProvideInfo(field="notes", value="quero"))

        assert reply == NOTES_PROMPT

    async def test_note_given_directly(self, send, state_store, storage, make_draft):
        _pending(state_store, WaitingFor.NOTES_CONFIRMATION, make_draft())

        reply = await send("Era aniversário", ProvideInfo(field="notes", value="Era aniversário"))

        assert reply.startswith("✅ Despesa registrada com sucesso!")
        assert (await _expenses(storage))[0].notes == "Era aniversário"

    async def test_anything_else_finalizes_without_notes(self, send, state_store, storage, make_draft):
        _pending(state_store, WaitingFor.NOTES_CONFIRMATION, make_draft())

        await send("tanto faz", ChitChat())

        assert (await _expenses(storage))[0].notes is None
        assert state_store.get(CHAT) is None

    async def test_registration_is_tracked(self, send, state_store, storage, make_draft):
        _pending(state_store, WaitingFor.NOTES_CONFIRMATION, make_draft())

        await send("não", CancelAction())

        events = await storage.get_trace_events(event_types=["expense_registered"])
        assert events[0].data["value"] == 25.5

    async def test_persistence_failure_clears_state(self, send, state_store, storage, make_draft):
        storage.create_expense = AsyncMock(side_effect=PersistenceError("disk"))
        _pending(state_store, WaitingFor.NOTES_CONFIRMATION, make_draft())

        reply = await send("não", CancelAction())

        assert reply == REGISTRATION_FAILED_REPLY
        assert state_store.get(CHAT) is None


class TestAdviceConfirmation:
    """Advice offered during small talk."""

    async def test_offer_enters_advice_confirmation(self, send, state_store, responder):
        responder.conversational.return_value = "Entendo. Quer algumas dicas para organizar?"

        await send("ganho pouco", ChitChat())

        state = state_store.get(CHAT)
        assert state.waiting_for == WaitingFor.ADVICE_CONFIRMATION
        assert state.temp_data == AdviceData(user_context="ganho pouco")

    async def test_accept_uses_last_month_then_all(self, send, state_store, storage, responder, make_draft):
        await storage.create_expense(CHAT, make_draft(date="2001-01-15"))
        state_store.merge(
            CHAT,
            waiting_for=WaitingFor.ADVICE_CONFIRMATION,
            temp_data=AdviceData(user_context="ganho pouco"),
        )

        reply = await send("sim", ConfirmAction())

        assert reply == "Dicas de economia"
        spending, context = responder.spending_advice.await_args.args
        assert [row.category for row in spending] == ["Alimentação"]
        assert context == "ganho pouco"
        assert state_store.get(CHAT) is None

    async def test_decline(self, send, state_store, responder):
        state_store.merge(
            CHAT, waiting_for=WaitingFor.ADVICE_CONFIRMATION, temp_data=AdviceData()
        )

        await send("deixa pra lá", Unknown())

        responder.conversational.assert_awaited_once_with("Não, obrigado", Intent.CANCEL_ACTION)
        responder.spending_advice.assert_not_called()
        assert state_store.get(CHAT) is None


class TestReceipts:
    """Receipt lookup and disambiguation."""

    async def _three_candidates(self, storage, make_draft):
        ids = []
        for item in ("Doces", "Doces finos", "Doce de leite"):
            ids.append(await storage.create_expense(CHAT, make_draft(item=item), [f"/tmp/{item}.jpg"]))
        return ids

    async def test_no_criteria(self, send):
        assert await send("o recibo", RequestReceipt()) == RECEIPT_DETAILS_PROMPT

    async def test_not_found(self, send):
        reply = await send("recibo", RequestReceipt(criteria=ReceiptCriteria(item="sapato")))
        assert reply == RECEIPT_NOT_FOUND_REPLY

    async def test_single_match_with_image(self, send, storage, make_draft, state_store):
        await storage.create_expense(CHAT, make_draft(item="Tênis"), ["/tmp/tenis.jpg"])

        reply = await send("recibo do tênis", RequestReceipt(criteria=ReceiptCriteria(item="tênis")))

        assert reply == [
            "🧾 Aqui está o comprovante para a despesa 'Tênis':",
            ImageDirective(ref="/tmp/tenis.jpg"),
        ]
        assert state_store.get(CHAT) is None

    async def test_single_match_without_image(self, send, storage, make_draft):
        await storage.create_expense(CHAT, make_draft(item="Tênis"))

        reply = await send("recibo", RequestReceipt(criteria=ReceiptCriteria(item="tênis")))

        assert reply == "✅ Encontrei a despesa 'Tênis', mas não há comprovante anexado a ela."

    async def test_disambiguation_most_recent(self, send, storage, state_store, make_draft):
        ids = await self._three_candidates(storage, make_draft)

        reply = await send("recibo dos doces", RequestReceipt(criteria=ReceiptCriteria(item="doce")))
        assert reply.startswith("Encontrei estas despesas.")
        state = state_store.get(CHAT)
        assert state.waiting_for == WaitingFor.RECEIPT_DISAMBIGUATION
        assert [c.id for c in state.temp_data.candidates] == ids

        reply = await send("o mais recente", Unknown())
        assert reply[0] == f"🧾 Aqui está o comprovante para a despesa 'Doce de leite' (ID {ids[-1]}):"
        assert reply[1] == ImageDirective(ref="/tmp/Doce de leite.jpg")
        assert state_store.get(CHAT) is None

    async def test_disambiguation_unknown_id_keeps_state(self, send, storage, state_store, make_draft):
        ids = await self._three_candidates(storage, make_draft)
        missing = max(ids) + 100
        await send("recibo", RequestReceipt(criteria=ReceiptCriteria(item="doce")))

        reply = await send(f"id {missing}", ProvideInfo(field="id", value=str(missing)))

        assert reply == f"ID {missing} não está na lista de opções. Tente novamente."
        assert state_store.get(CHAT).waiting_for == WaitingFor.RECEIPT_DISAMBIGUATION

    async def test_disambiguation_by_id(self, send, storage, state_store, make_draft):
        ids = await self._three_candidates(storage, make_draft)
        await send("recibo", RequestReceipt(criteria=ReceiptCriteria(item="doce")))

        reply = await send(f"id {ids[1]}", Unknown())

        assert f"(ID {ids[1]})" in reply[0]


class TestResearch:
    """Research topics and follow-ups."""

    async def test_new_topic_then_followup(self, send, state_store, responder):
        await send("o que é inflação?", RequestResearch(query="inflação"))
        assert state_store.get(CHAT).last_research_topic == "inflação"
        responder.research.assert_awaited_with("inflação")

        reply = await send("explique melhor", ChitChat())

        assert reply == "Explicação do tópico"
        responder.research.assert_awaited_with("inflação", "explique melhor")
        responder.conversational.assert_not_called()
        assert state_store.get(CHAT).last_research_topic == "inflação"

    async def test_followup_without_query(self, send, state_store, responder):
        state_store.set(CHAT, ConversationState(last_research_topic="CDI"))

        await send("mais técnico", RequestResearch())

        responder.research.assert_awaited_once_with("CDI", "mais técnico")

    async def test_no_topic_asks(self, send):
        assert await send("pesquisa", RequestResearch()) == RESEARCH_TOPIC_PROMPT

    async def test_plain_chit_chat_clears_topic(self, send, state_store):
        state_store.set(CHAT, ConversationState(last_research_topic="CDI"))

        await send("valeu!", ChitChat())

        assert state_store.get(CHAT).last_research_topic is None

    async def test_unknown_with_topic_is_followup(self, send, state_store, responder):
        state_store.set(CHAT, ConversationState(last_research_topic="CDI"))

        await send("e no longo prazo?", Unknown())

        responder.research.assert_awaited_once_with("CDI", "e no longo prazo?")

    async def test_unknown_without_topic(self, send, responder):
        await send("asdf", Unknown(), is_new=True)

        responder.conversational.assert_awaited_once_with("asdf", Intent.UNKNOWN, True)


class TestIdleIntents:
    """Other idle-state intents."""

    async def test_report_defaults_to_month(self, send, storage, make_draft):
        await storage.create_expense(CHAT, make_draft())

        reply = await send("relatório", RequestReport())

        assert "Relatório de Despesas (Mês Atual)" in reply

    async def test_report_today_empty(self, send):
        reply = await send("gastos de hoje", RequestReport(period="today"))
        assert reply == "Nenhuma despesa encontrada para o período: *Hoje*."

    async def test_advice_passes_message_as_context(self, send, responder, state_store):
        state_store.set(CHAT, ConversationState(last_research_topic="CDI"))

        await send("como economizar?", RequestAdvice())

        responder.spending_advice.assert_awaited_once_with([], "como economizar?")
        assert state_store.get(CHAT).last_research_topic is None

    async def test_greeting(self, send, responder):
        await send("oi", Greeting(), is_new=True)
        responder.conversational.assert_awaited_once_with("oi", Intent.GREETING, True)

    @pytest.mark.parametrize(
        "classification", [ConfirmAction(), CancelAction(), ProvideInfo(field="item", value="x")]
    )
    async def test_out_of_context_answers_as_unknown(self, send, responder, classification):
        await send("sim", classification)
        responder.conversational.assert_awaited_once_with("sim", Intent.UNKNOWN, False)


class TestIdleReset:
    """Idle reset keeps the research topic."""

    def test_reset_twice_keeps_topic(self, dispatcher, state_store):
        state_store.set(
            CHAT,
            ConversationState(
                waiting_for=WaitingFor.ITEM,
                temp_data=RegistrationData(ExpenseDraft()),
                last_research_topic="CDI",
            ),
        )

        dispatcher.reset_idle(CHAT)
        dispatcher.reset_idle(CHAT)

        state = state_store.get(CHAT)
        assert state == ConversationState(last_research_topic="CDI")


class TestInternalState:
    """Mismatched temp data is recovered, not propagated."""

    async def test_mismatched_arm_clears_state(self, send, state_store):
        state_store.merge(CHAT, waiting_for=WaitingFor.NOTES, temp_data=AdviceData())

        reply = await send("uma nota", Unknown())

        assert reply == INTERNAL_STATE_REPLY
        assert state_store.get(CHAT) is None


class TestResolveReportPeriod:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, ReportPeriod.MONTH),
            ("today", ReportPeriod.TODAY),
            ("ALL", ReportPeriod.ALL),
            ("yesterday", ReportPeriod.YESTERDAY),
            ("week", ReportPeriod.MONTH),
            ("last_month", ReportPeriod.MONTH),
        ],
    )
    def test_resolve(self, raw, expected):
        assert resolve_report_period(raw) == expected
