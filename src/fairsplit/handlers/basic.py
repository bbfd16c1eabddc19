from __future__ import annotations

import secrets

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from fairsplit.handlers.common import NOT_REGISTERED, current_user, error_text
from fairsplit.ledger import get_global_ledger
from fairsplit.logging import get_logger
from fairsplit.services.errors import LedgerError
from fairsplit.services.views import format_balance
from fairsplit.utils.parse import command_args, parse_amount, parse_id, parse_usernames

basic_router = Router()
log = get_logger(__name__)

HELP_TEXT = (
    "<b>📖 Справка по командам</b>\n\n"
    "<b>Профиль:</b>\n"
    "/register - зарегистрироваться\n"
    "/balance - текущий баланс\n"
    "/addbalance [сумма] - пополнить баланс\n"
    "/setbalance [сумма] - установить баланс\n\n"
    "<b>Группы:</b>\n"
    "/newgroup [название] - создать группу\n"
    "/addmember [group_id] @user - добавить участника\n\n"
    "<b>Расходы:</b>\n"
    "/addexpense [group_id] | [название] | [сумма] | [категория] | @u1 @u2\n"
    "/expenses [group_id] - расходы группы\n"
    "/delexpense [id] - удалить расход\n\n"
    "<b>Запросы и платежи:</b>\n"
    "/requests - мои неоплаченные запросы\n"
    "/accept [id] - оплатить запрос\n"
    "/delrequest [id] - удалить запрос\n"
    "/pay @user | [сумма] | [назначение] - отдельный платёж\n"
    "/payments - мои платежи\n"
    "/unpay [id] - отменить платёж"
)


@basic_router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    user = message.from_user
    name = user.first_name if user else "друг"
    await message.answer(
        f"👋 Привет, {name}!\n\n"
        "Я <b>FairSplit</b> — делю общие расходы в группе и слежу, кто кому должен.\n\n"
        "Начни с /register, список команд — /help"
    )


@basic_router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)


@basic_router.message(Command("register"))
async def cmd_register(message: Message) -> None:
    ledger = get_global_ledger()
    user = message.from_user
    if not user or not user.username:
        await message.answer("Для регистрации нужен username в Telegram")
        return
    try:
        # пароль бот не использует, храним случайный токен
        registered = await ledger.users.register(user.username, secrets.token_urlsafe(16), user.full_name)
    except LedgerError as exc:
        await message.answer(error_text(exc))
        return
    await message.answer(f"✅ Готово, @{registered.username}! {format_balance(registered)}")


@basic_router.message(Command("balance"))
async def cmd_balance(message: Message) -> None:
    ledger = get_global_ledger()
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    await message.answer(format_balance(me))


async def _change_balance(message: Message, *, absolute: bool) -> None:
    ledger = get_global_ledger()
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    try:
        amount = parse_amount(command_args(message.text or ""), allow_negative=True, allow_zero=absolute)
    except ValueError as exc:
        await message.answer(f"❌ {exc}")
        return
    try:
        if absolute:
            updated = await ledger.set_balance(me.id, amount)
        else:
            updated = await ledger.add_balance(me.id, amount)
    except LedgerError as exc:
        await message.answer(error_text(exc))
        return
    if updated is None:
        await message.answer(NOT_REGISTERED)
        return
    await message.answer(f"✅ {format_balance(updated)}")


@basic_router.message(Command("addbalance"))
async def cmd_addbalance(message: Message) -> None:
    await _change_balance(message, absolute=False)


@basic_router.message(Command("setbalance"))
async def cmd_setbalance(message: Message) -> None:
    await _change_balance(message, absolute=True)


@basic_router.message(Command("newgroup"))
async def cmd_newgroup(message: Message) -> None:
    ledger = get_global_ledger()
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return
    name = command_args(message.text or "")
    try:
        group = await ledger.groups.create(name, member_ids=(me.id,))
    except LedgerError as exc:
        await message.answer(error_text(exc))
        return
    await message.answer(f"👥 Группа #{group.id} «{group.name}» создана")


@basic_router.message(Command("addmember"))
async def cmd_addmember(message: Message) -> None:
    ledger = get_global_ledger()
    me = await current_user(ledger, message.from_user)
    if me is None:
        await message.answer(NOT_REGISTERED)
        return

    parts = command_args(message.text or "").split(maxsplit=1)
    group_id = parse_id(parts[0]) if parts else None
    usernames = parse_usernames(parts[1]) if len(parts) > 1 else []
    if group_id is None or not usernames:
        await message.answer("Использование: /addmember <group_id> @user1 @user2")
        return
    if not await ledger.groups.is_member(group_id, me.id):
        await message.answer("Добавлять участников могут только члены группы")
        return

    added = []
    for username in usernames:
        member = await ledger.users.get_by_username(username)
        if member is None:
            await message.answer(f"@{username} ещё не зарегистрирован")
            continue
        try:
            await ledger.groups.add_member(group_id, member.id)
        except LedgerError as exc:
            await message.answer(error_text(exc))
            continue
        added.append(f"@{username}")

    if added:
        log.info("bot.members_added", group_id=group_id, count=len(added))
        await message.answer(f"✅ В группу #{group_id} добавлены: {', '.join(added)}")
