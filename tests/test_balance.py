from datetime import datetime, timezone

import pytest

from fairsplit.db.models import User
from fairsplit.services import balance
from fairsplit.services.errors import ValidationError


def _user(user_id: int, amount: float) -> User:
    return User(
        id=user_id,
        username=f"user{user_id}",
        password="pw",
        full_name=None,
        balance=amount,
        is_active=True,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def test_transfer_is_symmetric():
    debtor, debtee = balance.transfer(_user(1, 50), _user(2, 10), 30)
    assert (debtor.balance, debtee.balance) == (20, 40)


def test_transfer_allows_negative_balance():
    debtor, _ = balance.transfer(_user(1, 0), _user(2, 0), 15)
    assert debtor.balance == -15


def test_transfer_does_not_mutate_inputs():
    original = _user(1, 50)
    balance.transfer(original, _user(2, 0), 30)
    assert original.balance == 50


def test_reverse_undoes_transfer():
    debtor, debtee = balance.transfer(_user(1, 50), _user(2, 10), 12.75)
    debtor, debtee = balance.reverse(debtor, debtee, 12.75)
    assert (debtor.balance, debtee.balance) == (50, 10)


def test_can_cover_is_inclusive():
    assert balance.can_cover(_user(1, 30), 30)
    assert not balance.can_cover(_user(1, 29), 30)


def test_add_and_set():
    assert balance.add(_user(1, 5), -8).balance == -3
    assert balance.set_to(_user(1, 5), 100).balance == 100


@pytest.mark.asyncio
async def test_add_balance_accepts_any_delta(ledger):
    user = await ledger.users.register("alice", "pw")

    await ledger.add_balance(user.id, 25)
    updated = await ledger.add_balance(user.id, -40)

    assert updated.balance == -15


@pytest.mark.asyncio
async def test_set_balance_overwrites(ledger):
    user = await ledger.users.register("alice", "pw", initial_balance=10)

    updated = await ledger.set_balance(user.id, -5)

    assert updated.balance == -5
    assert (await ledger.users.get(user.id)).balance == -5


@pytest.mark.asyncio
async def test_balance_ops_on_missing_user_return_none(ledger):
    assert await ledger.add_balance(77, 10) is None
    assert await ledger.set_balance(77, 10) is None


@pytest.mark.asyncio
async def test_balance_ops_reject_non_numbers(ledger):
    user = await ledger.users.register("alice", "pw")
    with pytest.raises(ValidationError):
        await ledger.add_balance(user.id, float("nan"))
    with pytest.raises(ValidationError):
        await ledger.set_balance(user.id, "100")
