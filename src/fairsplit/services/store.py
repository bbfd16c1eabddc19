from __future__ import annotations

from datetime import datetime
from typing import AsyncContextManager, Optional, Protocol, Sequence

from fairsplit.db.models import Expense, Group, Payment, Request, User


class LedgerStore(Protocol):
    """Persistence collaborator the ledger services are written against.

    ``get_*`` return ``None`` for unknown ids. ``save_*`` persist every
    mutable column of the given row and refresh ``updated_at``. Whatever runs
    inside ``transaction()`` is committed or rolled back as a whole.
    """

    def transaction(self) -> AsyncContextManager[None]: ...

    # users
    async def get_user(self, user_id: int) -> Optional[User]: ...

    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    async def username_exists(self, username: str) -> bool: ...

    async def create_user(
        self,
        username: str,
        password: str,
        full_name: Optional[str],
        balance: float = 0.0,
    ) -> User: ...

    async def save_user(self, user: User) -> User: ...

    async def delete_user(self, user_id: int) -> None: ...

    async def list_users(self, group_id: Optional[int] = None) -> list[User]: ...

    # groups
    async def get_group(self, group_id: int) -> Optional[Group]: ...

    async def create_group(self, name: str) -> Group: ...

    async def save_group(self, group: Group) -> Group: ...

    async def delete_group(self, group_id: int) -> None: ...

    async def list_groups(self, is_active: Optional[bool] = None) -> list[Group]: ...

    async def group_member_ids(self, group_id: int) -> list[int]: ...

    async def is_member(self, group_id: int, user_id: int) -> bool: ...

    async def add_member(self, group_id: int, user_id: int) -> None: ...

    async def remove_member(self, group_id: int, user_id: int) -> None: ...

    # expenses
    async def get_expense(self, expense_id: int) -> Optional[Expense]: ...

    async def create_expense(
        self,
        group_id: int,
        payer_id: int,
        name: str,
        amount: float,
        category: str,
        assigned_user_ids: Sequence[int],
    ) -> Expense: ...

    async def save_expense(self, expense: Expense) -> Expense: ...

    async def delete_expense(self, expense_id: int) -> None: ...

    async def list_expenses(
        self,
        group_id: Optional[int] = None,
        payer_id: Optional[int] = None,
        assigned_user_id: Optional[int] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> list[Expense]: ...

    # requests
    async def get_request(self, request_id: int) -> Optional[Request]: ...

    async def create_request(
        self,
        amount: float,
        expense_id: Optional[int],
        debtor_id: int,
        debtee_id: int,
        group_id: Optional[int],
    ) -> Request: ...

    async def save_request(self, request: Request) -> Request: ...

    async def delete_request(self, request_id: int) -> None: ...

    async def list_requests(
        self,
        expense_id: Optional[int] = None,
        debtor_id: Optional[int] = None,
        debtee_id: Optional[int] = None,
        group_id: Optional[int] = None,
        is_fulfilled: Optional[bool] = None,
    ) -> list[Request]: ...

    # payments
    async def get_payment(self, payment_id: int) -> Optional[Payment]: ...

    async def get_payment_by_request(self, request_id: int) -> Optional[Payment]: ...

    async def create_payment(
        self,
        name: str,
        amount: float,
        debtor_id: int,
        debtee_id: int,
        group_id: Optional[int],
        request_id: Optional[int],
    ) -> Payment: ...

    async def delete_payment(self, payment_id: int) -> None: ...

    async def list_payments(
        self,
        debtor_id: Optional[int] = None,
        debtee_id: Optional[int] = None,
        group_id: Optional[int] = None,
    ) -> list[Payment]: ...
