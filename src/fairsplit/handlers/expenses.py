from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from fairsplit.handlers.common import NOT_REGISTERED, current_user, error_text, users_by_id
from fairsplit.ledger import get_global_ledger
from fairsplit.services.errors import LedgerError
from fairsplit.services.split import DEFAULT_CATEGORY
from fairsplit.services.views import format_expense_summary, format_money
from fairsplit.utils.parse import command_args, parse_amount, parse_id, parse_usernames, split_pipe_args

expenses_router = Router()

USAGE = "Использование: /addexpense <group_id> | <название> | <сумма> | <категория> | @u1 @u2"


@expenses_router.message(Command("addexpense"))
async def cmd_addexpense(message: Message) -> None:
    ledger = get_global_ledger()
    if not message.text:
        return
    parts = split_pipe_args(message.text)
    if len(parts) < 3:
        await message.answer(USAGE)
        return

    group_id = parse_id(parts[0])
    if group_id is None:
        await message.answer("Некорректный group_id")
        return

    try:
        amount = parse_amount(parts[2])
    except ValueError as exc:
        await message.answer(f"❌ {exc}")
        return

    category = parts[3] if len(parts) > 3 and parts[3] else DEFAULT_CATEGORY

    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return

    assigned: list[int] = []
    if len(parts) > 4:
        for username in parse_usernames(parts[4]):
            user = await ledger.users.get_by_username(username)
            if user is None:
                await message.answer(f"@{username} не зарегистрирован")
                return
            assigned.append(user.id)

    try:
        expense, requests = await ledger.create_expense(
            name=parts[1],
            amount=amount,
            payer_id=me.id,
            group_id=group_id,
            category=category,
            assigned_user_ids=assigned,
        )
    except LedgerError as exc:
        await message.answer(error_text(exc))
        return

    users = await users_by_id(ledger, {expense.payer_id, *(r.debtor_id for r in requests)})
    await message.answer("✅ " + format_expense_summary(expense, requests, users))


@expenses_router.message(Command("expenses"))
async def cmd_expenses(message: Message) -> None:
    ledger = get_global_ledger()
    group_id = parse_id(command_args(message.text or ""))
    if group_id is None:
        await message.answer("Использование: /expenses <group_id>")
        return
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    if not await ledger.groups.is_member(group_id, me.id):
        await message.answer("Вы не участник этой группы")
        return

    expenses = await ledger.expenses.list_for_group(group_id)
    if not expenses:
        await message.answer("В группе пока нет расходов")
        return
    lines = [
        f"#{e.id} {e.name} · {format_money(e.amount)} ({e.category}){' ✅' if e.paid else ''}"
        for e in expenses
    ]
    await message.answer("\n".join(lines))


@expenses_router.message(Command("delexpense"))
async def cmd_delexpense(message: Message) -> None:
    ledger = get_global_ledger()
    expense_id = parse_id(command_args(message.text or ""))
    if expense_id is None:
        await message.answer("Использование: /delexpense <id>")
        return
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return

    expense = await ledger.expenses.get(expense_id)
    if expense is None:
        await message.answer("Расход не найден")
        return
    if expense.payer_id != me.id:
        await message.answer("Удалить расход может только тот, кто его оплатил")
        return

    try:
        deleted = await ledger.delete_expense(expense_id)
    except LedgerError as exc:
        await message.answer(error_text(exc))
        return
    await message.answer("🗑 Расход удалён" if deleted else "Расход не найден")
