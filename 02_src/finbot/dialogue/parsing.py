"""Slot validation and free-text heuristics used by the dispatcher."""

import re
from typing import Any

from ..config import NOT_APPLICABLE
from ..errors import DisambiguationMismatch, SlotValidationError
from ..models import ExpenseCandidate, WaitingFor, parse_amount

AFFIRMATIVE_REPLIES = frozenset({"sim", "s", "yes", "y", "ok", "pode", "quero"})

# Substrings that turn small talk into a follow-up on the last research topic
REFINEMENT_MARKERS = (
    "explique",
    "mais",
    "detalhe",
    "como assim",
    "técnico",
    "simples",
    "exemplo",
    "cálculo",
)

HELP_OFFER_MARKERS = ("dica", "ajuda", "organizar", "conversar sobre")

OLDEST_CHOICES = frozenset({"o mais antigo", "o primeiro"})
NEWEST_CHOICES = frozenset({"o mais recente", "o último"})

_ID_CHOICE_RE = re.compile(r"^id\s+(\d+)$", re.IGNORECASE)
_QUOTES = "\"'“”‘’"

_SLOT_PROMPTS = {
    WaitingFor.ITEM: "Por favor, informe o item ou serviço principal.",
    WaitingFor.PAYMENT_METHOD: "Como você pagou? (Pix, Débito, Crédito, etc.)",
    WaitingFor.ESTABLISHMENT: (
        "Preciso que informe o nome do local ou digite 'N/A' se não aplicável."
    ),
}


def clean_text(raw: Any) -> str | None:
    """Strip whitespace and wrapping quotes; empty results become None."""
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip().strip(_QUOTES).strip()
    return text or None


def normalize_establishment(text: str | None) -> str | None:
    if text and text.lower() == NOT_APPLICABLE.lower():
        return NOT_APPLICABLE
    return text


def validate_slot(slot: WaitingFor, raw: Any) -> Any:
    """Validate and normalize a reply for one of the draft slots.

    Raises SlotValidationError carrying the re-prompt for the user.
    """
    if slot == WaitingFor.VALUE:
        value = parse_amount(raw)
        if value is None:
            raise SlotValidationError(
                slot.value,
                f'Hum, o valor "{raw}" não parece válido. '
                "Por favor, digite um número positivo (ex: 25,50).",
            )
        return value

    if slot not in _SLOT_PROMPTS:
        raise ValueError(f"{slot.value} is not a draft slot")

    text = clean_text(raw)
    if not text:
        raise SlotValidationError(slot.value, _SLOT_PROMPTS[slot])
    if slot == WaitingFor.ESTABLISHMENT:
        return normalize_establishment(text)
    return text


def is_affirmative(raw: Any) -> bool:
    if raw is None or isinstance(raw, bool):
        return False
    return str(raw).strip().lower().rstrip("!.") in AFFIRMATIVE_REPLIES


def is_research_followup(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in REFINEMENT_MARKERS)


def offers_help(reply: str) -> bool:
    """True when a generated small-talk reply offers tips or help."""
    lowered = reply.lower()
    return "quer" in lowered and any(marker in lowered for marker in HELP_OFFER_MARKERS)


def choose_candidate(
    message: str, candidates: list[ExpenseCandidate]
) -> ExpenseCandidate:
    """Resolve a disambiguation reply against candidates ordered oldest first."""
    choice = message.strip().lower().rstrip("!.?")

    if choice in OLDEST_CHOICES:
        return candidates[0]
    if choice in NEWEST_CHOICES:
        return candidates[-1]

    match = _ID_CHOICE_RE.match(choice)
    if not match:
        raise DisambiguationMismatch(
            "Não entendi sua escolha. Por favor, responda com o *ID*, "
            "*'o mais antigo'* ou *'o mais recente'*."
        )

    requested = int(match.group(1))
    for candidate in candidates:
        if candidate.id == requested:
            return candidate
    raise DisambiguationMismatch(
        f"ID {requested} não está na lista de opções. Tente novamente."
    )
