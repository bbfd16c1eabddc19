from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import replace
from datetime import datetime, timezone
from itertools import count
from typing import AsyncIterator, Optional, Sequence, TypeVar

from fairsplit.db.models import Expense, Group, Payment, Request, User
from fairsplit.logging import get_logger

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _copy(row: Optional[T]) -> Optional[T]:
    return copy.deepcopy(row) if row is not None else None


class MemoryLedgerStore:
    """Arena-style store: rows live in per-entity dicts keyed by id.

    Rows are copied on the way in and on the way out, so a caller mutating a
    returned dataclass changes nothing until it calls ``save_*``.
    Transactions snapshot every table on the outermost ``transaction()`` and
    restore the snapshot if the block raises. The snapshot covers the whole
    store, so this store is meant for a single writer at a time (tests,
    local runs); use the PostgreSQL store for concurrent workloads.
    """

    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._groups: dict[int, Group] = {}
        self._members: dict[int, list[int]] = {}
        self._expenses: dict[int, Expense] = {}
        self._requests: dict[int, Request] = {}
        self._payments: dict[int, Payment] = {}
        self._ids = {name: count(1) for name in ("users", "groups", "expenses", "requests", "payments")}
        self._in_tx: ContextVar[bool] = ContextVar(f"memory_tx_{id(self)}", default=False)
        self._log = get_logger(__name__)

    def _state(self) -> dict:
        return {
            "users": self._users,
            "groups": self._groups,
            "members": self._members,
            "expenses": self._expenses,
            "requests": self._requests,
            "payments": self._payments,
        }

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._in_tx.get():
            yield
            return

        snapshot = copy.deepcopy(self._state())
        token = self._in_tx.set(True)
        try:
            yield
        except BaseException:
            self._users = snapshot["users"]
            self._groups = snapshot["groups"]
            self._members = snapshot["members"]
            self._expenses = snapshot["expenses"]
            self._requests = snapshot["requests"]
            self._payments = snapshot["payments"]
            self._log.info("memory.tx.rollback")
            raise
        finally:
            self._in_tx.reset(token)

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    # users

    async def get_user(self, user_id: int) -> Optional[User]:
        return _copy(self._users.get(user_id))

    async def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username == username:
                return _copy(user)
        return None

    async def username_exists(self, username: str) -> bool:
        return any(user.username == username for user in self._users.values())

    async def create_user(
        self,
        username: str,
        password: str,
        full_name: Optional[str],
        balance: float = 0.0,
    ) -> User:
        now = _now()
        user = User(
            id=self._next_id("users"),
            username=username,
            password=password,
            full_name=full_name,
            balance=balance,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        return _copy(user)

    async def save_user(self, user: User) -> User:
        stored = replace(user, updated_at=_now())
        self._users[user.id] = _copy(stored)
        return stored

    async def delete_user(self, user_id: int) -> None:
        self._users.pop(user_id, None)
        for members in self._members.values():
            if user_id in members:
                members.remove(user_id)

    async def list_users(self, group_id: Optional[int] = None) -> list[User]:
        if group_id is None:
            return [_copy(user) for user in self._users.values()]
        return [_copy(self._users[uid]) for uid in self._members.get(group_id, []) if uid in self._users]

    # groups

    async def get_group(self, group_id: int) -> Optional[Group]:
        group = self._groups.get(group_id)
        if group is None:
            return None
        return replace(group, member_ids=list(self._members.get(group_id, [])))

    async def create_group(self, name: str) -> Group:
        group = Group(id=self._next_id("groups"), name=name, is_active=True)
        self._groups[group.id] = group
        self._members[group.id] = []
        return replace(group, member_ids=[])

    async def save_group(self, group: Group) -> Group:
        # membership is written through add_member/remove_member only
        self._groups[group.id] = replace(group, member_ids=[])
        return await self.get_group(group.id)  # type: ignore[return-value]

    async def delete_group(self, group_id: int) -> None:
        self._groups.pop(group_id, None)
        self._members.pop(group_id, None)

    async def list_groups(self, is_active: Optional[bool] = None) -> list[Group]:
        result = []
        for group_id, group in self._groups.items():
            if is_active is not None and group.is_active != is_active:
                continue
            result.append(replace(group, member_ids=list(self._members.get(group_id, []))))
        return result

    async def group_member_ids(self, group_id: int) -> list[int]:
        return list(self._members.get(group_id, []))

    async def is_member(self, group_id: int, user_id: int) -> bool:
        return user_id in self._members.get(group_id, [])

    async def add_member(self, group_id: int, user_id: int) -> None:
        members = self._members.setdefault(group_id, [])
        if user_id not in members:
            members.append(user_id)

    async def remove_member(self, group_id: int, user_id: int) -> None:
        members = self._members.get(group_id, [])
        if user_id in members:
            members.remove(user_id)

    # expenses

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        return _copy(self._expenses.get(expense_id))

    async def create_expense(
        self,
        group_id: int,
        payer_id: int,
        name: str,
        amount: float,
        category: str,
        assigned_user_ids: Sequence[int],
    ) -> Expense:
        now = _now()
        expense = Expense(
            id=self._next_id("expenses"),
            group_id=group_id,
            payer_id=payer_id,
            name=name,
            amount=amount,
            category=category,
            paid=False,
            created_at=now,
            updated_at=now,
            assigned_user_ids=list(assigned_user_ids),
        )
        self._expenses[expense.id] = expense
        return _copy(expense)

    async def save_expense(self, expense: Expense) -> Expense:
        stored = replace(expense, updated_at=_now())
        self._expenses[expense.id] = _copy(stored)
        return stored

    async def delete_expense(self, expense_id: int) -> None:
        self._expenses.pop(expense_id, None)
        for request_id in [r.id for r in self._requests.values() if r.expense_id == expense_id]:
            del self._requests[request_id]

    async def list_expenses(
        self,
        group_id: Optional[int] = None,
        payer_id: Optional[int] = None,
        assigned_user_id: Optional[int] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> list[Expense]:
        result = []
        for expense in self._expenses.values():
            if group_id is not None and expense.group_id != group_id:
                continue
            if payer_id is not None and expense.payer_id != payer_id:
                continue
            if assigned_user_id is not None and assigned_user_id not in expense.assigned_user_ids:
                continue
            if created_from is not None and expense.created_at < created_from:
                continue
            if created_to is not None and expense.created_at > created_to:
                continue
            result.append(_copy(expense))
        return sorted(result, key=lambda e: (e.created_at, e.id))

    # requests

    async def get_request(self, request_id: int) -> Optional[Request]:
        return _copy(self._requests.get(request_id))

    async def create_request(
        self,
        amount: float,
        expense_id: Optional[int],
        debtor_id: int,
        debtee_id: int,
        group_id: Optional[int],
    ) -> Request:
        now = _now()
        request = Request(
            id=self._next_id("requests"),
            amount=amount,
            is_fulfilled=False,
            expense_id=expense_id,
            debtor_id=debtor_id,
            debtee_id=debtee_id,
            group_id=group_id,
            created_at=now,
            updated_at=now,
        )
        self._requests[request.id] = request
        return _copy(request)

    async def save_request(self, request: Request) -> Request:
        stored = replace(request, updated_at=_now())
        self._requests[request.id] = _copy(stored)
        return stored

    async def delete_request(self, request_id: int) -> None:
        self._requests.pop(request_id, None)

    async def list_requests(
        self,
        expense_id: Optional[int] = None,
        debtor_id: Optional[int] = None,
        debtee_id: Optional[int] = None,
        group_id: Optional[int] = None,
        is_fulfilled: Optional[bool] = None,
    ) -> list[Request]:
        result = []
        for request in self._requests.values():
            if expense_id is not None and request.expense_id != expense_id:
                continue
            if debtor_id is not None and request.debtor_id != debtor_id:
                continue
            if debtee_id is not None and request.debtee_id != debtee_id:
                continue
            if group_id is not None and request.group_id != group_id:
                continue
            if is_fulfilled is not None and request.is_fulfilled != is_fulfilled:
                continue
            result.append(_copy(request))
        return result

    # payments

    async def get_payment(self, payment_id: int) -> Optional[Payment]:
        return _copy(self._payments.get(payment_id))

    async def get_payment_by_request(self, request_id: int) -> Optional[Payment]:
        for payment in self._payments.values():
            if payment.request_id == request_id:
                return _copy(payment)
        return None

    async def create_payment(
        self,
        name: str,
        amount: float,
        debtor_id: int,
        debtee_id: int,
        group_id: Optional[int],
        request_id: Optional[int],
    ) -> Payment:
        now = _now()
        payment = Payment(
            id=self._next_id("payments"),
            name=name,
            amount=amount,
            debtor_id=debtor_id,
            debtee_id=debtee_id,
            group_id=group_id,
            request_id=request_id,
            created_at=now,
            updated_at=now,
        )
        self._payments[payment.id] = payment
        return _copy(payment)

    async def delete_payment(self, payment_id: int) -> None:
        self._payments.pop(payment_id, None)

    async def list_payments(
        self,
        debtor_id: Optional[int] = None,
        debtee_id: Optional[int] = None,
        group_id: Optional[int] = None,
    ) -> list[Payment]:
        result = []
        for payment in self._payments.values():
            if debtor_id is not None and payment.debtor_id != debtor_id:
                continue
            if debtee_id is not None and payment.debtee_id != debtee_id:
                continue
            if group_id is not None and payment.group_id != group_id:
                continue
            result.append(_copy(payment))
        return result
