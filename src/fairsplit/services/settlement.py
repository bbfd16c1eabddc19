"""Payment creation and reversal.

Every balance transfer between two users goes through this module. A payment
moves ``amount`` from the debtor to the debtee; deleting it moves the same
amount back and reopens the request it settled. Each operation runs as one
store transaction, so a failure part-way leaves balances, request flags and
payments exactly as they were.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fairsplit.db.models import Payment, User
from fairsplit.logging import get_logger
from fairsplit.services import balance
from fairsplit.services.errors import ConflictError, NotFoundError, ValidationError
from fairsplit.services.locks import UserLocks
from fairsplit.services.split import validate_amount
from fairsplit.services.store import LedgerStore


@dataclass(slots=True)
class PaymentDraft:
    name: str
    amount: float
    debtor_id: Optional[int]
    debtee_id: Optional[int]
    group_id: Optional[int] = None
    request_id: Optional[int] = None


def validate_draft(draft: PaymentDraft) -> tuple[int, int]:
    if not draft.name or not draft.name.strip():
        raise ValidationError("payment name cannot be empty")
    validate_amount(draft.amount, "payment")
    if draft.debtor_id is None or draft.debtee_id is None:
        raise ValidationError("payment must have a debtor and a debtee")
    return draft.debtor_id, draft.debtee_id


class SettlementCoordinator:
    def __init__(self, store: LedgerStore, locks: UserLocks | None = None) -> None:
        self.store = store
        self.locks = locks or UserLocks()
        self._log = get_logger(__name__)

    async def create_payment(self, draft: PaymentDraft) -> Payment:
        debtor_id, debtee_id = validate_draft(draft)
        async with self.locks.hold([debtor_id, debtee_id]):
            return await self.record_payment(draft)

    async def record_payment(self, draft: PaymentDraft) -> Payment:
        """Create the payment without taking user locks.

        Callers that already hold the locks for both parties (request
        acceptance) use this directly.
        """
        debtor_id, debtee_id = validate_draft(draft)
        amount = float(draft.amount)

        async with self.store.transaction():
            debtor = await self._require_user(debtor_id, "debtor")
            debtee = await self._require_user(debtee_id, "debtee")
            if draft.group_id is not None and await self.store.get_group(draft.group_id) is None:
                raise NotFoundError(f"group {draft.group_id} not found")

            request = None
            if draft.request_id is not None:
                request = await self.store.get_request(draft.request_id)
                if request is None:
                    raise NotFoundError(f"request {draft.request_id} not found")
                if request.is_fulfilled:
                    raise ConflictError(f"request {request.id} has already been fulfilled")
                if amount != request.amount:
                    raise ValidationError("payment amount must match request amount")
                if (request.debtor_id, request.debtee_id) != (debtor.id, debtee.id):
                    raise ValidationError("payment parties must match the request parties")

            if request is not None:
                request.is_fulfilled = True
                await self.store.save_request(request)

            debtor, debtee = balance.transfer(debtor, debtee, amount)
            await self.store.save_user(debtor)
            await self.store.save_user(debtee)

            payment = await self.store.create_payment(
                name=draft.name.strip(),
                amount=amount,
                debtor_id=debtor.id,
                debtee_id=debtee.id,
                group_id=draft.group_id,
                request_id=draft.request_id,
            )

        self._log.info(
            "payment.created",
            payment_id=payment.id,
            request_id=payment.request_id,
            debtor_id=payment.debtor_id,
            debtee_id=payment.debtee_id,
            amount=payment.amount,
        )
        return payment

    async def delete_payment(self, payment_id: int) -> bool:
        payment = await self.store.get_payment(payment_id)
        if payment is None:
            return False

        async with self.locks.hold([payment.debtor_id, payment.debtee_id]):
            async with self.store.transaction():
                # re-read under the locks, a concurrent delete may have won
                payment = await self.store.get_payment(payment_id)
                if payment is None:
                    return False

                if payment.request_id is not None:
                    request = await self.store.get_request(payment.request_id)
                    if request is not None:
                        request.is_fulfilled = False
                        await self.store.save_request(request)

                debtor = await self._require_user(payment.debtor_id, "debtor")
                debtee = await self._require_user(payment.debtee_id, "debtee")
                debtor, debtee = balance.reverse(debtor, debtee, payment.amount)
                await self.store.save_user(debtor)
                await self.store.save_user(debtee)

                await self.store.delete_payment(payment.id)

        self._log.info(
            "payment.deleted",
            payment_id=payment.id,
            request_id=payment.request_id,
            debtor_id=payment.debtor_id,
            debtee_id=payment.debtee_id,
            amount=payment.amount,
        )
        return True

    async def _require_user(self, user_id: int, role: str) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"{role} {user_id} not found")
        return user
