from __future__ import annotations

from datetime import datetime
from typing import Optional

from fairsplit.db.models import Expense, Request
from fairsplit.logging import get_logger
from fairsplit.services.errors import ConflictError
from fairsplit.services.split import ExpenseDraft, ExpenseSplitter
from fairsplit.services.store import LedgerStore


class ExpenseService:
    def __init__(self, store: LedgerStore, splitter: ExpenseSplitter | None = None) -> None:
        self.store = store
        self.splitter = splitter or ExpenseSplitter(store)
        self._log = get_logger(__name__)

    async def create(self, draft: ExpenseDraft) -> tuple[Expense, list[Request]]:
        return await self.splitter.split(draft)

    async def get(self, expense_id: int) -> Optional[Expense]:
        return await self.store.get_expense(expense_id)

    async def list_for_group(self, group_id: int) -> list[Expense]:
        return await self.store.list_expenses(group_id=group_id)

    async def filter(
        self,
        group_id: int,
        user_id: Optional[int] = None,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Expense]:
        """Expenses of a group narrowed by participant, category and creation window.

        ``user_id`` matches both the payer and the assigned users. Both ends of
        the window are inclusive.
        """
        expenses = await self.store.list_expenses(group_id=group_id, created_from=start, created_to=end)
        if user_id is not None:
            expenses = [e for e in expenses if e.payer_id == user_id or user_id in e.assigned_user_ids]
        if category:
            expenses = [e for e in expenses if e.category == category]
        return expenses

    async def update(
        self,
        expense_id: int,
        name: Optional[str] = None,
        category: Optional[str] = None,
        paid: Optional[bool] = None,
    ) -> Optional[Expense]:
        expense = await self.store.get_expense(expense_id)
        if expense is None:
            return None

        # the amount is fixed once requests were generated from it
        if name is not None and name.strip():
            expense.name = name.strip()
        if category is not None and category.strip():
            expense.category = category.strip()
        if paid is not None:
            expense.paid = paid

        saved = await self.store.save_expense(expense)
        self._log.info("expense.updated", expense_id=saved.id, paid=saved.paid)
        return saved

    async def delete(self, expense_id: int) -> bool:
        async with self.store.transaction():
            expense = await self.store.get_expense(expense_id)
            if expense is None:
                return False

            requests = await self.store.list_requests(expense_id=expense_id)
            settled = [r.id for r in requests if r.is_fulfilled]
            if settled:
                raise ConflictError(
                    f"expense {expense_id} has fulfilled requests {settled}; delete their payments first"
                )

            for request in requests:
                await self.store.delete_request(request.id)
            await self.store.delete_expense(expense_id)

        self._log.info("expense.deleted", expense_id=expense_id, requests=len(requests))
        return True
