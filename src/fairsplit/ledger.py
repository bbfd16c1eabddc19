from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from fairsplit.config import Settings
from fairsplit.db.memory import MemoryLedgerStore
from fairsplit.db.models import Expense, Payment, Request, User
from fairsplit.db.repo import Database, PostgresLedgerStore
from fairsplit.logging import get_logger
from fairsplit.services.expenses import ExpenseService
from fairsplit.services.groups import GroupService
from fairsplit.services.locks import UserLocks
from fairsplit.services.requests import AcceptedRequest, RequestDraft, RequestLifecycle
from fairsplit.services.settlement import PaymentDraft, SettlementCoordinator
from fairsplit.services.split import DEFAULT_CATEGORY, ExpenseDraft, ExpenseSplitter
from fairsplit.services.store import LedgerStore
from fairsplit.services.users import UserService


class Ledger:
    """One entry point per ledger action.

    Transports call these and translate :mod:`fairsplit.services.errors`
    into their own responses. Operations on a target id that does not exist
    return ``None`` or ``False``.
    """

    def __init__(self, store: LedgerStore, serialize_balances: bool = False) -> None:
        self.store = store
        self.locks = UserLocks(enabled=serialize_balances)
        self.users = UserService(store, self.locks)
        self.groups = GroupService(store)
        self.settlement = SettlementCoordinator(store, self.locks)
        self.requests = RequestLifecycle(store, self.settlement)
        self.expenses = ExpenseService(store, ExpenseSplitter(store))

    # expenses

    async def create_expense(
        self,
        name: str,
        amount: float,
        payer_id: Optional[int],
        group_id: Optional[int],
        category: str = DEFAULT_CATEGORY,
        assigned_user_ids: Sequence[int] = (),
    ) -> tuple[Expense, list[Request]]:
        draft = ExpenseDraft(
            name=name,
            amount=amount,
            payer_id=payer_id,
            group_id=group_id,
            category=category,
            assigned_user_ids=list(assigned_user_ids),
        )
        return await self.expenses.create(draft)

    async def update_expense(
        self,
        expense_id: int,
        name: Optional[str] = None,
        category: Optional[str] = None,
        paid: Optional[bool] = None,
    ) -> Optional[Expense]:
        return await self.expenses.update(expense_id, name=name, category=category, paid=paid)

    async def delete_expense(self, expense_id: int) -> bool:
        return await self.expenses.delete(expense_id)

    async def filter_expenses(
        self,
        group_id: int,
        user_id: Optional[int] = None,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Expense]:
        return await self.expenses.filter(group_id, user_id=user_id, category=category, start=start, end=end)

    # requests

    async def create_request(
        self,
        amount: float,
        debtor_id: Optional[int],
        debtee_id: Optional[int],
        group_id: Optional[int] = None,
        expense_id: Optional[int] = None,
    ) -> Request:
        return await self.requests.create(
            RequestDraft(
                amount=amount,
                debtor_id=debtor_id,
                debtee_id=debtee_id,
                group_id=group_id,
                expense_id=expense_id,
            )
        )

    async def update_request(self, request_id: int, amount: object = None) -> Optional[Request]:
        return await self.requests.update(request_id, amount)

    async def accept_request(self, request_id: int) -> Optional[AcceptedRequest]:
        return await self.requests.accept(request_id)

    async def delete_request(self, request_id: int) -> bool:
        return await self.requests.delete(request_id)

    async def open_requests_for(self, user_id: int) -> list[Request]:
        return await self.requests.open_for_debtor(user_id)

    async def requests_owed_to(self, user_id: int) -> list[Request]:
        return await self.store.list_requests(debtee_id=user_id, is_fulfilled=False)

    # payments

    async def create_payment(
        self,
        name: str,
        amount: float,
        debtor_id: Optional[int],
        debtee_id: Optional[int],
        group_id: Optional[int] = None,
        request_id: Optional[int] = None,
    ) -> Payment:
        return await self.settlement.create_payment(
            PaymentDraft(
                name=name,
                amount=amount,
                debtor_id=debtor_id,
                debtee_id=debtee_id,
                group_id=group_id,
                request_id=request_id,
            )
        )

    async def delete_payment(self, payment_id: int) -> bool:
        return await self.settlement.delete_payment(payment_id)

    async def payments_for(self, user_id: int) -> list[Payment]:
        sent = await self.store.list_payments(debtor_id=user_id)
        received = await self.store.list_payments(debtee_id=user_id)
        by_id = {p.id: p for p in sent + received}
        return [by_id[key] for key in sorted(by_id)]

    async def payments_between(self, debtor_id: int, debtee_id: int) -> list[Payment]:
        return await self.store.list_payments(debtor_id=debtor_id, debtee_id=debtee_id)

    async def payment_for_request(self, request_id: int) -> Optional[Payment]:
        return await self.store.get_payment_by_request(request_id)

    # balances

    async def add_balance(self, user_id: int, delta: float) -> Optional[User]:
        return await self.users.add_balance(user_id, delta)

    async def set_balance(self, user_id: int, value: float) -> Optional[User]:
        return await self.users.set_balance(user_id, value)


async def open_ledger(settings: Settings) -> tuple[Ledger, Database | None]:
    log = get_logger(__name__)
    if settings.uses_memory_store:
        log.info("ledger.store", kind="memory")
        return Ledger(MemoryLedgerStore(), settings.serialize_balances), None

    db = Database(settings.database_url)
    await db.connect()
    log.info("ledger.store", kind="postgres")
    return Ledger(PostgresLedgerStore(db), settings.serialize_balances), db


_global_ledger: Ledger | None = None


def set_global_ledger(ledger: Ledger) -> None:
    global _global_ledger
    _global_ledger = ledger


def get_global_ledger() -> Ledger:
    if _global_ledger is None:
        raise RuntimeError("Леджер не инициализирован")
    return _global_ledger
