from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from fairsplit.handlers.common import NOT_REGISTERED, current_user, error_text, users_by_id
from fairsplit.keyboards import parse_callback, payment_keyboard, request_keyboard
from fairsplit.ledger import Ledger, get_global_ledger
from fairsplit.services.errors import LedgerError
from fairsplit.services.views import build_request_cards, format_balance, format_money, format_request_card
from fairsplit.utils.parse import command_args, parse_id

requests_router = Router()


@requests_router.message(Command("requests"))
async def cmd_requests(message: Message) -> None:
    ledger = get_global_ledger()
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return

    requests = await ledger.open_requests_for(me.id)
    if not requests:
        await message.answer("🎉 Неоплаченных запросов нет")
        return

    user_ids = {r.debtor_id for r in requests} | {r.debtee_id for r in requests}
    users = await users_by_id(ledger, user_ids)
    expenses = {}
    for request in requests:
        if request.expense_id is not None and request.expense_id not in expenses:
            expense = await ledger.expenses.get(request.expense_id)
            if expense is not None:
                expenses[expense.id] = expense

    for card in build_request_cards(requests, users, expenses):
        await message.answer(format_request_card(card), reply_markup=request_keyboard(card.request_id))


async def _accept(ledger: Ledger, request_id: int, user_id: int) -> str:
    request = await ledger.store.get_request(request_id)
    if request is None:
        return "Запрос не найден"
    if request.debtor_id != user_id:
        return "Оплатить запрос может только должник"
    try:
        accepted = await ledger.accept_request(request_id)
    except LedgerError as exc:
        return error_text(exc)
    if accepted is None:
        return "Запрос не найден"
    me = await ledger.users.get(user_id)
    text = f"✅ Оплачено {format_money(accepted.payment.amount)} (платёж #{accepted.payment.id})"
    if me is not None:
        text += f"\n{format_balance(me)}"
    return text


async def _delete(ledger: Ledger, request_id: int, user_id: int) -> str:
    request = await ledger.store.get_request(request_id)
    if request is None:
        return "Запрос не найден"
    if user_id not in (request.debtor_id, request.debtee_id):
        return "Это не ваш запрос"
    try:
        deleted = await ledger.delete_request(request_id)
    except LedgerError as exc:
        return error_text(exc)
    return "🗑 Запрос удалён" if deleted else "Запрос не найден"


@requests_router.message(Command("accept"))
async def cmd_accept(message: Message) -> None:
    ledger = get_global_ledger()
    request_id = parse_id(command_args(message.text or ""))
    if request_id is None:
        await message.answer("Использование: /accept <request_id>")
        return
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    await message.answer(await _accept(ledger, request_id, me.id))


@requests_router.message(Command("delrequest"))
async def cmd_delrequest(message: Message) -> None:
    ledger = get_global_ledger()
    request_id = parse_id(command_args(message.text or ""))
    if request_id is None:
        await message.answer("Использование: /delrequest <request_id>")
        return
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    await message.answer(await _delete(ledger, request_id, me.id))


@requests_router.callback_query(lambda c: parse_callback(c.data, "req_accept") is not None)
async def cb_accept(callback: CallbackQuery) -> None:
    ledger = get_global_ledger()
    request_id = parse_callback(callback.data, "req_accept")
    me = await current_user(ledger, callback.from_user)
    if me is None or request_id is None:
        await callback.answer(NOT_REGISTERED)
        return
    text = await _accept(ledger, request_id, me.id)
    if callback.message and text.startswith("✅"):
        payment = await ledger.payment_for_request(request_id)
        await callback.message.edit_text(
            text,
            reply_markup=payment_keyboard(payment.id) if payment else None,
        )
    await callback.answer(text[:200])


@requests_router.callback_query(lambda c: parse_callback(c.data, "req_delete") is not None)
async def cb_delete(callback: CallbackQuery) -> None:
    ledger = get_global_ledger()
    request_id = parse_callback(callback.data, "req_delete")
    me = await current_user(ledger, callback.from_user)
    if me is None or request_id is None:
        await callback.answer(NOT_REGISTERED)
        return
    text = await _delete(ledger, request_id, me.id)
    if callback.message and text.startswith("🗑"):
        await callback.message.edit_text(text)
    await callback.answer(text[:200])
