from __future__ import annotations

from typing import Optional

from aiogram.types import User as TelegramUser

from fairsplit.db.models import User
from fairsplit.ledger import Ledger
from fairsplit.services.errors import ConflictError, LedgerError, NotFoundError, PersistenceError, ValidationError

NOT_REGISTERED = "Сначала зарегистрируйтесь: /register"


async def current_user(ledger: Ledger, tg_user: Optional[TelegramUser]) -> Optional[User]:
    if tg_user is None or not tg_user.username:
        return None
    return await ledger.users.get_by_username(tg_user.username)


async def users_by_id(ledger: Ledger, user_ids: set[int]) -> dict[int, User]:
    users: dict[int, User] = {}
    for user_id in user_ids:
        user = await ledger.users.get(user_id)
        if user is not None:
            users[user_id] = user
    return users


def error_text(exc: LedgerError) -> str:
    if isinstance(exc, ValidationError):
        return f"❌ Некорректные данные: {exc}"
    if isinstance(exc, NotFoundError):
        return f"❌ Не найдено: {exc}"
    if isinstance(exc, ConflictError):
        return f"⚠️ Операция невозможна: {exc}"
    if isinstance(exc, PersistenceError):
        return "💥 Ошибка хранилища, попробуйте позже"
    return f"❌ {exc}"
