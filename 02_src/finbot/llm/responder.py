"""Free-text generation for conversational, advice and research replies."""

from typing import Protocol

from ..logging_config import get_logger
from ..models import CategoryTotal, Intent
from .classifier import SYSTEM_PROMPT
from .llm_provider import ILLMProvider

logger = get_logger(__name__)

_STYLE = (
    "Responda de forma curta e natural, usando formatação WhatsApp "
    "(*negrito*, _itálico_) quando apropriado."
)

_CONVERSATION_INSTRUCTIONS = {
    Intent.GREETING: (
        "O usuário iniciou a conversa ou enviou uma saudação. Cumprimente de forma "
        "CURTA e AMIGÁVEL e pergunte como pode ajudar com as finanças dele HOJE. "
        "Use um emoji apropriado (ex: 👋, 💰). EVITE perguntar 'tudo bem?'."
    ),
    Intent.CHIT_CHAT: (
        'O usuário enviou uma mensagem de conversa geral: "{message}". Responda com '
        "EMPATIA. Se parecer um desabafo financeiro (ex: \"ganho pouco\", \"gasto muito "
        'com X"), valide o sentimento e PERGUNTE DELICADAMENTE se ele quer dicas '
        '(ex: "Quer conversar um pouco sobre estratégias para lidar com isso?" ou '
        '"Gostaria de algumas dicas sobre organização financeira?"). Se for uma '
        "pergunta sobre suas capacidades, explique brevemente o que você faz "
        "(registrar gastos, relatórios, dicas, pesquisas). Se for um agradecimento, "
        'responda com um simples "De nada! 😊".'
    ),
    Intent.CANCEL_ACTION: (
        "O usuário cancelou a ação atual. Responda de forma CURTA e compreensiva "
        '(ex: "Ok, cancelado! 👍").'
    ),
    Intent.UNKNOWN: (
        'O usuário enviou algo que você não entendeu: "{message}". Peça desculpas '
        "CURTAMENTE, sugira reformular e lembre que pode ajudar a registrar gastos, "
        "ver relatórios ou dar dicas financeiras."
    ),
}

_ADVICE_NO_DATA = """\
O usuário pediu conselhos financeiros {context}, mas ainda não possui gastos registrados.
1. Valide a preocupação expressa (se houver contexto).
2. Explique que dicas personalizadas dependem dos gastos reais e incentive o registro de despesas.
3. Ofereça 1 ou 2 conselhos GERAIS, PRÁTICOS e SEGUROS.
4. Se o contexto mencionar comportamentos de risco (apostas, dívidas excessivas), aconselhe FORTEMENTE CONTRA, explique os riscos e sugira AJUDA PROFISSIONAL.
5. Finalize perguntando se ele quer registrar um gasto agora."""

_ADVICE_WITH_DATA = """\
O usuário pediu conselhos financeiros {context}.

Gastos recentes por categoria:
{spending}

1. Identifique as 2-3 categorias com maiores gastos ou relevantes para o pedido.
2. Dê 2 ou 3 dicas PRÁTICAS, ACIONÁVEIS e REALISTAS.
3. Seja positivo e encorajador, não julgador.
4. Se houver comportamentos de risco (apostas, dívidas altas), NÃO dê dicas para "melhorar" o comportamento; explique os riscos e sugira AJUDA PROFISSIONAL.
5. Finalize perguntando se as dicas fazem sentido."""

_RESEARCH_FIRST = """\
O usuário pediu para explicar o tópico financeiro "{topic}".
Forneça uma explicação clara, concisa e precisa. Se for um conceito, defina-o; se for um produto, explique como funciona, vantagens e desvantagens.
Se envolver dados voláteis (cotações, taxas atuais), explique o conceito e sugira consultar fontes atualizadas."""

_RESEARCH_REFINEMENT = """\
O usuário pediu um refinamento sobre o tópico financeiro "{topic}": "{refinement}".
Elabore uma nova resposta focada no pedido (mais técnica? mais simples? exemplos? cálculos? prós e contras?)."""


class IResponder(Protocol):
    """Generates reply text. Each method returns a fallback instead of raising."""

    async def conversational(
        self, message: str, intent: Intent, is_new_conversation: bool = False
    ) -> str:
        ...

    async def spending_advice(
        self, spending: list[CategoryTotal], user_context: str | None = None
    ) -> str:
        ...

    async def research(self, topic: str, refinement: str | None = None) -> str:
        ...


def format_spending(spending: list[CategoryTotal]) -> str:
    lines = []
    for row in spending:
        amount = f"{row.total:.2f}".replace(".", ",")
        lines.append(f"- {row.category}: R$ {amount}")
    return "\n".join(lines)


class Responder:
    """LLM-backed reply generation."""

    def __init__(self, llm_provider: ILLMProvider):
        self._llm = llm_provider

    async def _generate(self, instruction: str, fallback: str, max_tokens: int = 1024) -> str:
        try:
            text = await self._llm.complete(
                messages=[{"role": "user", "content": f"{instruction}\n\n{_STYLE}"}],
                system=SYSTEM_PROMPT,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.error("Reply generation failed: %s", e, exc_info=True)
            return fallback
        return text.strip() or fallback

    async def conversational(
        self, message: str, intent: Intent, is_new_conversation: bool = False
    ) -> str:
        """Greeting, small talk, cancellation acknowledgement or fallback reply."""
        if is_new_conversation or intent == Intent.GREETING:
            template = _CONVERSATION_INSTRUCTIONS[Intent.GREETING]
        elif intent in _CONVERSATION_INSTRUCTIONS:
            template = _CONVERSATION_INSTRUCTIONS[intent]
        else:
            template = (
                'Responda de forma CURTA e AMIGÁVEL à mensagem "{message}", '
                f"considerando a intenção {intent.value}."
            )

        return await self._generate(
            template.format(message=message),
            fallback="Opa! Algo deu errado aqui. 😅 Tente novamente em um instante.",
            max_tokens=400,
        )

    async def spending_advice(
        self, spending: list[CategoryTotal], user_context: str | None = None
    ) -> str:
        """Advice from aggregated spend, or general advice when there is none."""
        context = f'(contexto: "{user_context}")' if user_context else "(pedido geral)"

        if not spending:
            return await self._generate(
                _ADVICE_NO_DATA.format(context=context),
                fallback=(
                    "Para te ajudar de forma eficaz, preciso conhecer um pouco dos seus "
                    "hábitos de gastos. Comece a registrar suas despesas comigo!"
                ),
            )

        return await self._generate(
            _ADVICE_WITH_DATA.format(context=context, spending=format_spending(spending)),
            fallback="Tive um problema ao analisar seus dados para gerar conselhos. 😥",
        )

    async def research(self, topic: str, refinement: str | None = None) -> str:
        """First explanation of a topic, or a refinement of a previous one."""
        if refinement:
            instruction = _RESEARCH_REFINEMENT.format(topic=topic, refinement=refinement)
        else:
            instruction = _RESEARCH_FIRST.format(topic=topic)

        return await self._generate(
            instruction,
            fallback=(
                f'Ocorreu um erro ao pesquisar sobre "{topic}". '
                "Por favor, tente novamente mais tarde."
            ),
        )
