from __future__ import annotations

import math
import re
from typing import Optional

_AMOUNT_RE = re.compile(r"^[+-]?\d+(?:[.,]\d{1,2})?$")
_USERNAME_RE = re.compile(r"@?([A-Za-z0-9_]{3,32})")


def parse_amount(text: str, *, allow_negative: bool = False, allow_zero: bool = False) -> float:
    """
    Парсинг суммы из сообщения.

    Поддерживаемые форматы: 30, 30.5, 30,50, -12 (если allow_negative).
    """
    value = text.strip().replace(" ", "")
    if not _AMOUNT_RE.match(value):
        raise ValueError("Некорректная сумма")

    amount = float(value.replace(",", "."))
    if not math.isfinite(amount):
        raise ValueError("Некорректная сумма")
    if amount < 0 and not allow_negative:
        raise ValueError("Сумма должна быть положительной")
    if amount == 0 and not allow_zero:
        raise ValueError("Сумма должна быть больше нуля")
    return amount


def parse_id(text: str) -> Optional[int]:
    value = text.strip().lstrip("#")
    if not value.isdigit():
        return None
    return int(value)


def command_args(text: str) -> str:
    # первое слово - сама команда, в том числе вида /cmd@botname
    parts = text.strip().split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def split_pipe_args(text: str) -> list[str]:
    body = command_args(text)
    if not body:
        return []
    return [part.strip() for part in body.split("|")]


def parse_usernames(text: str) -> list[str]:
    names: list[str] = []
    for token in text.split():
        match = _USERNAME_RE.fullmatch(token)
        if match and match.group(1) not in names:
            names.append(match.group(1))
    return names
