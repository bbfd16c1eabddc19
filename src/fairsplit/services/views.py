from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from fairsplit.db.models import Expense, Payment, Request, RequestState, User


STATE_LABELS = {
    RequestState.OPEN: "ожидает оплаты",
    RequestState.FULFILLED: "оплачен",
}


def format_money(amount: float) -> str:
    return f"{amount:.2f}"


def display_name(user: Optional[User]) -> str:
    if user is None:
        return "?"
    return f"@{user.username}" if user.username else (user.full_name or f"#{user.id}")


@dataclass(slots=True)
class RequestCardData:
    request_id: int
    amount: float
    state: RequestState
    debtor: str
    debtee: str
    expense_name: Optional[str] = None


def build_request_cards(
    requests: Iterable[Request],
    users: Mapping[int, User],
    expenses: Mapping[int, Expense],
) -> list[RequestCardData]:
    cards: list[RequestCardData] = []
    for request in requests:
        expense = expenses.get(request.expense_id) if request.expense_id is not None else None
        cards.append(
            RequestCardData(
                request_id=request.id,
                amount=request.amount,
                state=request.state,
                debtor=display_name(users.get(request.debtor_id)),
                debtee=display_name(users.get(request.debtee_id)),
                expense_name=expense.name if expense else None,
            )
        )
    return cards


def format_request_card(card: RequestCardData) -> str:
    lines = [f"#{card.request_id} {card.debtor} → {card.debtee}: {format_money(card.amount)}"]
    if card.expense_name:
        lines.append(f"Расход: {card.expense_name}")
    lines.append(f"Статус: {humanize_state(card.state)}")
    return "\n".join(lines)


def format_payment_line(payment: Payment, users: Mapping[int, User]) -> str:
    line = (
        f"#{payment.id} {display_name(users.get(payment.debtor_id))} → "
        f"{display_name(users.get(payment.debtee_id))}: {format_money(payment.amount)} ({payment.name})"
    )
    if payment.request_id is not None:
        line += f" · запрос #{payment.request_id}"
    return line


def format_expense_summary(expense: Expense, requests: Iterable[Request], users: Mapping[int, User]) -> str:
    lines = [
        f"Расход #{expense.id}: {expense.name} · {format_money(expense.amount)} ({expense.category})",
        f"Оплатил: {display_name(users.get(expense.payer_id))}",
    ]
    for request in requests:
        lines.append(f"  {display_name(users.get(request.debtor_id))} должен {format_money(request.amount)}")
    return "\n".join(lines)


def format_balance(user: User) -> str:
    if user.balance > 0:
        return f"Баланс: {format_money(user.balance)} (вам должны)"
    if user.balance < 0:
        return f"Баланс: {format_money(user.balance)} (вы должны)"
    return "Баланс: 0.00"


def humanize_state(state: RequestState) -> str:
    return STATE_LABELS.get(state, state.value)
