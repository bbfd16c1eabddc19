from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup


def request_keyboard(request_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="Оплатить", callback_data=f"req_accept:{request_id}"),
                InlineKeyboardButton(text="Удалить", callback_data=f"req_delete:{request_id}"),
            ]
        ]
    )


def payment_keyboard(payment_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="Отменить платёж", callback_data=f"pay_undo:{payment_id}")],
        ]
    )


def parse_callback(data: str | None, prefix: str) -> int | None:
    if not data or not data.startswith(f"{prefix}:"):
        return None
    tail = data.split(":", 1)[1]
    return int(tail) if tail.isdigit() else None
