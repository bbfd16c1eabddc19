"""Balance arithmetic.

These helpers are the only code that computes a new ``User.balance``. They
never touch the store: callers persist the returned users inside their own
transaction. There is no floor, so balances may go negative.
"""

from __future__ import annotations

from dataclasses import replace

from fairsplit.db.models import User


def transfer(debtor: User, debtee: User, amount: float) -> tuple[User, User]:
    if debtor.id == debtee.id:
        return debtor, debtee
    return (
        replace(debtor, balance=debtor.balance - amount),
        replace(debtee, balance=debtee.balance + amount),
    )


def reverse(debtor: User, debtee: User, amount: float) -> tuple[User, User]:
    if debtor.id == debtee.id:
        return debtor, debtee
    return (
        replace(debtor, balance=debtor.balance + amount),
        replace(debtee, balance=debtee.balance - amount),
    )


def add(user: User, delta: float) -> User:
    return replace(user, balance=user.balance + delta)


def set_to(user: User, value: float) -> User:
    return replace(user, balance=value)


def can_cover(user: User, amount: float) -> bool:
    return user.balance >= amount
