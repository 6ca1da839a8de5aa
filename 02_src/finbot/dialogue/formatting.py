"""Text renderers for summaries, reports and candidate lists."""

from datetime import date
from zoneinfo import ZoneInfo

from ..config import DISPLAY_TIMEZONE, NOT_APPLICABLE
from ..models import Expense, ExpenseCandidate, ExpenseDraft, ReportPeriod

PERIOD_LABELS = {
    ReportPeriod.MONTH: "Mês Atual",
    ReportPeriod.TODAY: "Hoje",
    ReportPeriod.YESTERDAY: "Ontem",
    ReportPeriod.ALL: "Geral",
    ReportPeriod.LAST_MONTH: "Mês Passado",
}


def format_money(value: float | None) -> str:
    """25.5 -> '25,50'."""
    return f"{value or 0:.2f}".replace(".", ",")


def format_date(iso_date: str) -> str:
    """'2024-03-09' -> '09/03/2024'; unparseable input is returned unchanged."""
    try:
        return date.fromisoformat(iso_date).strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        return iso_date


def format_expense_summary(
    draft: ExpenseDraft, include_notes: bool = False
) -> str:
    lines = [
        f"*- Valor:* R$ {format_money(draft.value)}",
        f"*- Categoria:* {draft.category or NOT_APPLICABLE}",
        f"*- Item:* {draft.item or NOT_APPLICABLE}",
        f"*- Local:* {draft.establishment or NOT_APPLICABLE}",
        f"*- Pagamento:* {draft.payment_method or NOT_APPLICABLE}",
    ]

    if draft.date == "today":
        lines.append("*- Data:* Hoje")
    elif draft.date:
        lines.append(f"*- Data:* {format_date(draft.date)}")

    if include_notes and draft.notes:
        lines.append(f"*- Observações:* {draft.notes}")
    if draft.attachment_refs:
        lines.append("*- Comprovante:* [Imagem anexada]")
    return "\n".join(lines)


def format_report(expenses: list[Expense], period: ReportPeriod) -> str:
    label = PERIOD_LABELS.get(period, period.value)
    if not expenses:
        return f"Nenhuma despesa encontrada para o período: *{label}*."

    parts = [f"🧾 *Relatório de Despesas ({label})* 🧾\n"]
    total = 0.0
    for expense in expenses:
        entry = [
            f"*- Data:* {format_date(expense.expense_date)}",
            f"  *- Categoria:* {expense.category}",
            f"  *- Item:* {expense.item}",
            f"  *- Local:* {expense.establishment or NOT_APPLICABLE}",
            f"  *- Pagamento:* {expense.payment_method}",
        ]
        if expense.notes:
            entry.append(f"  *- Observações:* {expense.notes}")
        if expense.has_attachment:
            entry.append("  *- Comprovante:* [Imagem anexada]")
        entry.append(f"  *- Valor:* R$ {format_money(expense.value)}\n")
        parts.append("\n".join(entry))
        total += expense.value

    parts.append(f"--------------------\n*Total ({label}):* R$ {format_money(total)}")
    return "\n".join(parts)


def format_candidates(candidates: list[ExpenseCandidate]) -> str:
    tz = ZoneInfo(DISPLAY_TIMEZONE)
    lines = [
        "Encontrei estas despesas. Qual comprovante você deseja?",
        "_(Responda com o ID, 'o mais antigo' ou 'o mais recente')_",
        "",
    ]
    for candidate in candidates:
        time_text = candidate.created_at.astimezone(tz).strftime("%H:%M")
        lines.append(
            f"- *ID {candidate.id}:* {candidate.item} "
            f"(R$ {format_money(candidate.value)}) em "
            f"{format_date(candidate.expense_date)} às {time_text}"
        )
    return "\n".join(lines)
