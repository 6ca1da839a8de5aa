"""Intent classifier backed by the LLM provider."""

import dataclasses
import json
import re
from typing import Protocol

from ..errors import ClassificationError
from ..logging_config import get_logger
from ..models import Classification, ConversationState, Unknown, parse_classification
from .llm_provider import ILLMProvider

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

SYSTEM_PROMPT = (
    "Você é FinanceBot, um assistente financeiro pessoal para WhatsApp, amigável "
    "e prestativo. Você ajuda o usuário a registrar gastos, ver relatórios, "
    "receber dicas de economia e pesquisar informações financeiras."
)

CLASSIFICATION_PROMPT = """\
**Contexto da conversa anterior:**
{context}

**Intenções possíveis:**
register_expense, request_report, request_advice, request_research,
request_receipt, provide_info, confirm_action, cancel_action, greeting,
chit_chat (inclui desabafos e perguntas vagas), unknown

**Entidades a extrair:**
- value, category, establishment, payment_method, item, notes, date (para register_expense)
- report_period ('month', 'today', 'yesterday', 'all'; padrão 'month')
- advice_topic (para request_advice)
- research_query (para request_research, SOMENTE se for um NOVO tópico)
- search_criteria: objeto {{item?, value?, date?, establishment?, category?}} (para request_receipt)
- provided_field (para provide_info, em snake_case, ex: payment_method)
- provided_value (para provide_info)

**Instruções:**
1. Se houver 'waitingFor', priorize FORTEMENTE provide_info, confirm_action ou cancel_action. Se 'waitingFor' for um campo (value, item, establishment, payment_method), a intenção provável é provide_info com provided_field igual ao campo esperado, a menos que a mensagem seja claramente "sim"/"não"/"cancela".
2. Se 'waitingFor' = notes_confirmation, "sim" e variações são confirm_action; "não" e variações são cancel_action. Qualquer outro texto direto é provide_info com provided_field='notes'.
3. Se 'waitingFor' = notes, a intenção é SEMPRE provide_info com provided_field='notes' e provided_value=mensagem completa, a menos que seja um cancelamento claro.
4. Se NÃO houver 'waitingFor' mas houver 'lastResearchTopic' e a mensagem pedir refinamento ("explique melhor", "mais técnico", "e os cálculos?"), a intenção é request_research com research_query null.
5. Para register_expense extraia value, item e payment_method (null quando ausentes) e tente category, establishment, date e notes.
6. Para request_receipt extraia o máximo de detalhes em search_criteria.
7. Para greeting e chit_chat retorne APENAS a intenção.
8. Responda APENAS com um objeto JSON válido, sem markdown.

**Exemplos:**
Contexto: {{"waitingFor": null, "lastResearchTopic": "Inflação"}}
Mensagem: "me dá uma explicação mais técnica"
JSON: {{"intent": "request_research", "research_query": null}}

Contexto: {{"waitingFor": "item"}}
Mensagem: "Cigarro"
JSON: {{"intent": "provide_info", "provided_field": "item", "provided_value": "Cigarro"}}

Contexto: Nenhum
Mensagem: "Quero o recibo do item 'doces' de 640 reais"
JSON: {{"intent": "request_receipt", "search_criteria": {{"item": "doces", "value": 640}}}}

**Mensagem do usuário:** "{message}"
**JSON:**"""


class IIntentClassifier(Protocol):
    """Converts a message and its conversation context into a classification."""

    async def classify(
        self, text: str, context_state: ConversationState | None
    ) -> Classification:
        """Classify a message. Never raises; failures decode to Unknown(error=...)."""
        ...


def describe_context(state: ConversationState | None) -> str:
    """Render the conversation state for the classification prompt."""
    if state is None or (not state.is_pending and not state.last_research_topic):
        return "Nenhum contexto específico."

    temp_data = dataclasses.asdict(state.temp_data) if state.temp_data else None
    return json.dumps(
        {
            "waitingFor": state.waiting_for.value if state.is_pending else None,
            "tempData": temp_data,
            "lastResearchTopic": state.last_research_topic,
        },
        ensure_ascii=False,
        default=str,
    )


def _load_json(text: str) -> object:
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    match = _OBJECT_RE.search(cleaned)
    if not match:
        raise ClassificationError("classifier returned no JSON object")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassificationError("classifier returned invalid JSON") from e


def decode_response(text: str) -> Classification:
    """Strip markdown fences and decode the classifier's JSON answer."""
    try:
        raw = _load_json(text)
    except ClassificationError as e:
        return Unknown(error=str(e))
    return parse_classification(raw)


class IntentClassifier:
    """LLM-backed intent and entity extraction."""

    def __init__(self, llm_provider: ILLMProvider):
        self._llm = llm_provider

    async def classify(
        self, text: str, context_state: ConversationState | None
    ) -> Classification:
        prompt = CLASSIFICATION_PROMPT.format(
            context=describe_context(context_state),
            message=text,
        )

        try:
            response_text = await self._llm.complete(
                messages=[{"role": "user", "content": prompt}],
                system=SYSTEM_PROMPT,
                max_tokens=512,
            )
        except Exception as e:
            logger.error("Classifier LLM call failed: %s", e, exc_info=True)
            return Unknown(error=f"LLM call failed: {e}")

        classification = decode_response(response_text)
        if isinstance(classification, Unknown) and classification.error:
            logger.warning(
                "Unusable classifier output (%s): %s",
                classification.error,
                (response_text or "")[:200],
            )
        return classification
