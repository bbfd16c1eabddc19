import asyncio

import pytest

from fairsplit.db.memory import MemoryLedgerStore
from fairsplit.ledger import Ledger
from fairsplit.services.errors import ConflictError
from fairsplit.services.locks import UserLocks


class YieldingStore(MemoryLedgerStore):
    """Gives other tasks a chance to run on every user read."""

    async def get_user(self, user_id):
        await asyncio.sleep(0)
        return await super().get_user(user_id)


async def _two_requests_for_one_debtor(ledger):
    a = await ledger.users.register("a", "pw")
    b = await ledger.users.register("b", "pw", initial_balance=30)
    c = await ledger.users.register("c", "pw")
    group = await ledger.groups.create("Trio", member_ids=(a.id, b.id, c.id))
    first = await ledger.create_request(30, debtor_id=b.id, debtee_id=a.id, group_id=group.id)
    second = await ledger.create_request(30, debtor_id=b.id, debtee_id=c.id, group_id=group.id)
    return b, first, second


@pytest.mark.asyncio
async def test_concurrent_accepts_race_without_serialization():
    ledger = Ledger(YieldingStore(), serialize_balances=False)
    _, first, second = await _two_requests_for_one_debtor(ledger)

    results = await asyncio.gather(
        ledger.accept_request(first.id),
        ledger.accept_request(second.id),
        return_exceptions=True,
    )

    # both pass the solvency check against the same starting balance
    assert all(not isinstance(result, Exception) for result in results)
    assert len(await ledger.store.list_payments()) == 2


@pytest.mark.asyncio
async def test_serialized_accepts_respect_solvency():
    ledger = Ledger(YieldingStore(), serialize_balances=True)
    b, first, second = await _two_requests_for_one_debtor(ledger)

    results = await asyncio.gather(
        ledger.accept_request(first.id),
        ledger.accept_request(second.id),
        return_exceptions=True,
    )

    assert sum(isinstance(result, ConflictError) for result in results) == 1
    assert (await ledger.users.get(b.id)).balance == 0
    assert len(await ledger.store.list_payments()) == 1


@pytest.mark.asyncio
async def test_user_locks_disabled_is_noop():
    locks = UserLocks(enabled=False)
    async with locks.hold([1, 2]):
        async with locks.hold([2, 1]):
            pass


@pytest.mark.asyncio
async def test_user_locks_release_after_error():
    locks = UserLocks(enabled=True)
    with pytest.raises(RuntimeError):
        async with locks.hold([3, 1, 3]):
            raise RuntimeError("boom")

    async with locks.hold([1, 3]):
        pass
