from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from fairsplit.handlers.common import NOT_REGISTERED, current_user, error_text, users_by_id
from fairsplit.keyboards import parse_callback, payment_keyboard
from fairsplit.ledger import Ledger, get_global_ledger
from fairsplit.services.errors import LedgerError
from fairsplit.services.views import format_balance, format_payment_line
from fairsplit.utils.parse import command_args, parse_amount, parse_id, parse_usernames, split_pipe_args

payments_router = Router()


@payments_router.message(Command("pay"))
async def cmd_pay(message: Message) -> None:
    ledger = get_global_ledger()
    parts = split_pipe_args(message.text or "")
    usernames = parse_usernames(parts[0]) if parts else []
    if len(parts) < 2 or len(usernames) != 1:
        await message.answer("Использование: /pay @user | <сумма> | <назначение>")
        return
    try:
        amount = parse_amount(parts[1])
    except ValueError as exc:
        await message.answer(f"❌ {exc}")
        return

    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    debtee = await ledger.users.get_by_username(usernames[0])
    if debtee is None:
        await message.answer(f"@{usernames[0]} не зарегистрирован")
        return

    name = parts[2] if len(parts) > 2 and parts[2] else f"Платёж для @{debtee.username}"
    try:
        payment = await ledger.create_payment(name=name, amount=amount, debtor_id=me.id, debtee_id=debtee.id)
    except LedgerError as exc:
        await message.answer(error_text(exc))
        return

    users = {me.id: me, debtee.id: debtee}
    await message.answer("✅ " + format_payment_line(payment, users), reply_markup=payment_keyboard(payment.id))


@payments_router.message(Command("payments"))
async def cmd_payments(message: Message) -> None:
    ledger = get_global_ledger()
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    payments = await ledger.payments_for(me.id)
    if not payments:
        await message.answer("Платежей пока нет")
        return
    users = await users_by_id(ledger, {p.debtor_id for p in payments} | {p.debtee_id for p in payments})
    await message.answer("\n".join(format_payment_line(p, users) for p in payments))


async def _undo(ledger: Ledger, payment_id: int, user_id: int) -> str:
    payment = await ledger.store.get_payment(payment_id)
    if payment is None:
        return "Платёж не найден"
    if user_id not in (payment.debtor_id, payment.debtee_id):
        return "Это не ваш платёж"
    try:
        deleted = await ledger.delete_payment(payment_id)
    except LedgerError as exc:
        return error_text(exc)
    if not deleted:
        return "Платёж не найден"
    me = await ledger.users.get(user_id)
    return "↩️ Платёж отменён" + (f"\n{format_balance(me)}" if me else "")


@payments_router.message(Command("unpay"))
async def cmd_unpay(message: Message) -> None:
    ledger = get_global_ledger()
    payment_id = parse_id(command_args(message.text or ""))
    if payment_id is None:
        await message.answer("Использование: /unpay <payment_id>")
        return
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    await message.answer(await _undo(ledger, payment_id, me.id))


@payments_router.callback_query(lambda c: parse_callback(c.data, "pay_undo") is not None)
async def cb_undo(callback: CallbackQuery) -> None:
    ledger = get_global_ledger()
    payment_id = parse_callback(callback.data, "pay_undo")
    me = await current_user(ledger, callback.from_user)
    if me is None or payment_id is None:
        await callback.answer(NOT_REGISTERED)
        return
    text = await _undo(ledger, payment_id, me.id)
    if callback.message and text.startswith("↩️"):
        await callback.message.edit_text(text)
    await callback.answer(text[:200])
