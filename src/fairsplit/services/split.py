from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from fairsplit.db.models import Expense, Request
from fairsplit.logging import get_logger
from fairsplit.services.authz import is_group_member
from fairsplit.services.errors import ValidationError
from fairsplit.services.store import LedgerStore

DEFAULT_CATEGORY = "other"


@dataclass(slots=True)
class ExpenseDraft:
    name: str
    amount: float
    payer_id: Optional[int]
    group_id: Optional[int]
    category: str = DEFAULT_CATEGORY
    assigned_user_ids: Sequence[int] = field(default_factory=list)


@dataclass(slots=True)
class RequestShare:
    debtor_id: int
    debtee_id: int
    amount: float


def split_amount(amount: float, consumers: Sequence[int]) -> dict[int, float]:
    """Equal float split. The remainder is not redistributed, so for amounts
    that do not divide evenly the shares can miss ``amount`` by a rounding
    error in the last place."""
    if amount <= 0:
        raise ValueError("amount must be positive")
    if not consumers:
        raise ValueError("consumers must not be empty")

    per_user = amount / len(consumers)
    return {consumer: per_user for consumer in consumers}


def plan_requests(amount: float, payer_id: int, assigned_user_ids: Sequence[int]) -> list[RequestShare]:
    shares = split_amount(amount, assigned_user_ids)
    return [
        RequestShare(debtor_id=user_id, debtee_id=payer_id, amount=share)
        for user_id, share in shares.items()
        if user_id != payer_id
    ]


def validate_amount(amount: object, what: str) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError(f"{what} amount must be a number")
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError(f"{what} amount must be positive")
    return float(amount)


def _require_parties(draft: ExpenseDraft) -> tuple[int, int]:
    if draft.payer_id is None or draft.group_id is None:
        raise ValidationError("expense must have a payer and a group")
    return draft.payer_id, draft.group_id


def _unique(ids: Sequence[int]) -> list[int]:
    seen: set[int] = set()
    result = []
    for user_id in ids:
        if user_id not in seen:
            seen.add(user_id)
            result.append(user_id)
    return result


class ExpenseSplitter:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store
        self._log = get_logger(__name__)

    async def validate(self, draft: ExpenseDraft) -> list[int]:
        """Check the draft against the store and return the resolved assignment."""
        if not draft.name or not draft.name.strip():
            raise ValidationError("expense name cannot be empty")
        validate_amount(draft.amount, "expense")
        payer_id, group_id = _require_parties(draft)

        if await self.store.get_user(payer_id) is None:
            raise ValidationError(f"payer {payer_id} not found")
        if await self.store.get_group(group_id) is None:
            raise ValidationError(f"group {group_id} not found")
        if not await is_group_member(self.store, group_id, payer_id):
            raise ValidationError("payer does not belong to the group")

        if not draft.assigned_user_ids:
            # snapshot of the membership right now, not a live reference
            assigned = await self.store.group_member_ids(group_id)
            if not assigned:
                raise ValidationError("group has no members to assign")
            return assigned

        assigned = _unique(draft.assigned_user_ids)
        for user_id in assigned:
            if await self.store.get_user(user_id) is None:
                raise ValidationError(f"assigned user {user_id} not found")
            if not await is_group_member(self.store, group_id, user_id):
                raise ValidationError(f"assigned user {user_id} does not belong to the group")
        return assigned

    async def split(self, draft: ExpenseDraft) -> tuple[Expense, list[Request]]:
        assigned = await self.validate(draft)
        payer_id, group_id = _require_parties(draft)
        plan = plan_requests(float(draft.amount), payer_id, assigned)

        async with self.store.transaction():
            expense = await self.store.create_expense(
                group_id=group_id,
                payer_id=payer_id,
                name=draft.name.strip(),
                amount=float(draft.amount),
                category=(draft.category or DEFAULT_CATEGORY).strip() or DEFAULT_CATEGORY,
                assigned_user_ids=assigned,
            )
            requests = []
            for share in plan:
                requests.append(
                    await self.store.create_request(
                        amount=share.amount,
                        expense_id=expense.id,
                        debtor_id=share.debtor_id,
                        debtee_id=share.debtee_id,
                        group_id=expense.group_id,
                    )
                )

        self._log.info(
            "expense.created",
            expense_id=expense.id,
            group_id=expense.group_id,
            payer_id=expense.payer_id,
            amount=expense.amount,
            assigned=len(assigned),
            requests=len(requests),
        )
        return expense, requests
