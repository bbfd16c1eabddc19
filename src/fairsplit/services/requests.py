from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from fairsplit.db.models import Payment, Request
from fairsplit.logging import get_logger
from fairsplit.services import balance
from fairsplit.services.authz import assert_group_members
from fairsplit.services.errors import ConflictError, NotFoundError, ValidationError
from fairsplit.services.settlement import PaymentDraft, SettlementCoordinator
from fairsplit.services.split import validate_amount
from fairsplit.services.store import LedgerStore


@dataclass(slots=True)
class RequestDraft:
    amount: float
    debtor_id: Optional[int]
    debtee_id: Optional[int]
    group_id: Optional[int] = None
    expense_id: Optional[int] = None


@dataclass(slots=True)
class AcceptedRequest:
    request: Request
    payment: Payment


def _is_valid_amount(amount: object) -> bool:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False
    return math.isfinite(amount) and amount > 0


class RequestLifecycle:
    """Open -> fulfilled state machine for requests.

    The way back from fulfilled to open is deleting the payment, which lives
    in :class:`SettlementCoordinator`.
    """

    def __init__(self, store: LedgerStore, coordinator: SettlementCoordinator) -> None:
        self.store = store
        self.coordinator = coordinator
        self._log = get_logger(__name__)

    async def create(self, draft: RequestDraft) -> Request:
        amount = validate_amount(draft.amount, "request")
        if draft.debtor_id is None or draft.debtee_id is None:
            raise ValidationError("request must have a debtor and a debtee")

        for user_id in (draft.debtor_id, draft.debtee_id):
            if await self.store.get_user(user_id) is None:
                raise NotFoundError(f"user {user_id} not found")

        group_id = draft.group_id
        if draft.expense_id is not None:
            expense = await self.store.get_expense(draft.expense_id)
            if expense is None:
                raise NotFoundError(f"expense {draft.expense_id} not found")
            if group_id is None:
                group_id = expense.group_id
            elif group_id != expense.group_id:
                raise ValidationError("request group must match the expense group")

        if group_id is not None:
            if await self.store.get_group(group_id) is None:
                raise NotFoundError(f"group {group_id} not found")
            await assert_group_members(self.store, group_id, (draft.debtor_id, draft.debtee_id))

        request = await self.store.create_request(
            amount=amount,
            expense_id=draft.expense_id,
            debtor_id=draft.debtor_id,
            debtee_id=draft.debtee_id,
            group_id=group_id,
        )
        self._log.info(
            "request.created",
            request_id=request.id,
            expense_id=request.expense_id,
            debtor_id=request.debtor_id,
            debtee_id=request.debtee_id,
            amount=request.amount,
        )
        return request

    async def update(self, request_id: int, amount: object = None) -> Optional[Request]:
        request = await self.store.get_request(request_id)
        if request is None:
            return None

        # invalid amounts and fulfilled requests only get their timestamp bumped
        if not request.is_fulfilled and _is_valid_amount(amount):
            request.amount = float(amount)  # type: ignore[arg-type]
            self._log.info("request.amount_updated", request_id=request.id, amount=request.amount)
        else:
            self._log.info("request.update_ignored", request_id=request.id, fulfilled=request.is_fulfilled)
        return await self.store.save_request(request)

    async def accept(self, request_id: int) -> Optional[AcceptedRequest]:
        request = await self.store.get_request(request_id)
        if request is None:
            return None

        async with self.coordinator.locks.hold([request.debtor_id, request.debtee_id]):
            async with self.store.transaction():
                request = await self.store.get_request(request_id)
                if request is None:
                    return None
                if request.is_fulfilled:
                    self._log.warning("request.accept_rejected", request_id=request.id, reason="fulfilled")
                    raise ConflictError(f"request {request.id} has already been fulfilled")

                debtor = await self.store.get_user(request.debtor_id)
                if debtor is None:
                    raise NotFoundError(f"debtor {request.debtor_id} not found")
                if not balance.can_cover(debtor, request.amount):
                    self._log.warning(
                        "request.accept_rejected",
                        request_id=request.id,
                        reason="insufficient_balance",
                        balance=debtor.balance,
                        amount=request.amount,
                    )
                    raise ConflictError("debtor does not have enough balance to fulfill this request")

                payment = await self.coordinator.record_payment(
                    PaymentDraft(
                        name=await self._payment_name(request),
                        amount=request.amount,
                        debtor_id=request.debtor_id,
                        debtee_id=request.debtee_id,
                        group_id=request.group_id,
                        request_id=request.id,
                    )
                )
                request = await self.store.get_request(request_id)
                assert request is not None and request.is_fulfilled

        self._log.info("request.accepted", request_id=request.id, payment_id=payment.id, amount=payment.amount)
        return AcceptedRequest(request=request, payment=payment)

    async def delete(self, request_id: int) -> bool:
        request = await self.store.get_request(request_id)
        if request is None:
            return False
        if request.is_fulfilled:
            raise ConflictError("cannot delete a fulfilled request, delete its payment first")

        await self.store.delete_request(request.id)
        self._log.info("request.deleted", request_id=request.id, expense_id=request.expense_id)
        return True

    async def open_for_debtor(self, user_id: int) -> list[Request]:
        return await self.store.list_requests(debtor_id=user_id, is_fulfilled=False)

    async def open_for_group(self, group_id: int) -> list[Request]:
        return await self.store.list_requests(group_id=group_id, is_fulfilled=False)

    async def _payment_name(self, request: Request) -> str:
        if request.expense_id is not None:
            expense = await self.store.get_expense(request.expense_id)
            if expense is not None:
                return f"Payment for {expense.name}"
        return f"Payment for request #{request.id}"
