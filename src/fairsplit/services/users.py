from __future__ import annotations

import math
from typing import Optional

from fairsplit.db.models import User
from fairsplit.logging import get_logger
from fairsplit.services import balance
from fairsplit.services.errors import ConflictError, ValidationError
from fairsplit.services.locks import UserLocks
from fairsplit.services.store import LedgerStore


def _finite(value: object, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"{what} must be a finite number")
    return float(value)


class UserService:
    def __init__(self, store: LedgerStore, locks: UserLocks | None = None) -> None:
        self.store = store
        self.locks = locks or UserLocks()
        self._log = get_logger(__name__)

    async def register(
        self,
        username: str,
        password: str,
        full_name: Optional[str] = None,
        initial_balance: float = 0.0,
    ) -> User:
        if not username or not username.strip():
            raise ValidationError("username cannot be empty")
        if not password:
            raise ValidationError("password cannot be empty")
        username = username.strip()
        if await self.store.username_exists(username):
            raise ConflictError(f"username {username!r} already exists")

        user = await self.store.create_user(
            username=username,
            password=password,
            full_name=full_name,
            balance=_finite(initial_balance, "balance"),
        )
        self._log.info("user.registered", user_id=user.id, username=user.username)
        return user

    async def get(self, user_id: int) -> Optional[User]:
        return await self.store.get_user(user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        return await self.store.get_user_by_username(username)

    async def list(self, group_id: Optional[int] = None) -> list[User]:
        return await self.store.list_users(group_id)

    async def update(
        self,
        user_id: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> Optional[User]:
        """Profile update. Fields left as ``None`` or blank are kept as they are.
        The balance is not a profile field, see :meth:`set_balance`."""
        user = await self.store.get_user(user_id)
        if user is None:
            return None

        if username is not None and username.strip() and username.strip() != user.username:
            if await self.store.username_exists(username.strip()):
                raise ConflictError(f"username {username.strip()!r} already exists")
            user.username = username.strip()
        if password:
            user.password = password
        if full_name is not None and full_name.strip():
            user.full_name = full_name.strip()

        saved = await self.store.save_user(user)
        self._log.info("user.updated", user_id=saved.id)
        return saved

    async def add_balance(self, user_id: int, delta: float) -> Optional[User]:
        delta = _finite(delta, "balance delta")
        async with self.locks.hold([user_id]):
            async with self.store.transaction():
                user = await self.store.get_user(user_id)
                if user is None:
                    return None
                saved = await self.store.save_user(balance.add(user, delta))
        self._log.info("balance.added", user_id=user_id, delta=delta, balance=saved.balance)
        return saved

    async def set_balance(self, user_id: int, value: float) -> Optional[User]:
        value = _finite(value, "balance")
        async with self.locks.hold([user_id]):
            async with self.store.transaction():
                user = await self.store.get_user(user_id)
                if user is None:
                    return None
                saved = await self.store.save_user(balance.set_to(user, value))
        self._log.info("balance.set", user_id=user_id, balance=saved.balance)
        return saved

    async def delete(self, user_id: int) -> bool:
        async with self.store.transaction():
            user = await self.store.get_user(user_id)
            if user is None:
                return False
            if user.balance != 0:
                raise ConflictError(f"user {user_id} still holds a balance of {user.balance}")
            requests = await self.store.list_requests(debtor_id=user_id)
            requests += await self.store.list_requests(debtee_id=user_id)
            if requests:
                raise ConflictError(f"user {user_id} is still party to {len(requests)} requests")
            payments = await self.store.list_payments(debtor_id=user_id)
            payments += await self.store.list_payments(debtee_id=user_id)
            if payments:
                raise ConflictError(f"user {user_id} is still party to {len(payments)} payments")
            if await self.store.list_expenses(payer_id=user_id) or await self.store.list_expenses(
                assigned_user_id=user_id
            ):
                raise ConflictError(f"user {user_id} is still referenced by expenses")
            await self.store.delete_user(user_id)

        self._log.info("user.deleted", user_id=user_id)
        return True
