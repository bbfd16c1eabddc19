import pytest

from fairsplit.db.models import RequestState
from fairsplit.services.errors import ConflictError, NotFoundError, ValidationError


async def _expense_request(ledger, make_group, a=0, b=50):
    group, users = await make_group(a=a, b=b)
    _, requests = await ledger.create_expense(
        name="Dinner", amount=60, payer_id=users["a"].id, group_id=group.id
    )
    return users, requests[0]


@pytest.mark.asyncio
async def test_accept_creates_payment_and_fulfills(ledger, make_group):
    users, request = await _expense_request(ledger, make_group, a=0, b=50)
    assert request.amount == 30

    accepted = await ledger.accept_request(request.id)

    assert accepted.payment.amount == 30
    assert accepted.payment.name == "Payment for Dinner"
    assert accepted.payment.request_id == request.id
    assert accepted.request.is_fulfilled
    assert accepted.request.state is RequestState.FULFILLED
    assert (await ledger.users.get(users["b"].id)).balance == 20
    assert (await ledger.users.get(users["a"].id)).balance == 30


@pytest.mark.asyncio
async def test_delete_payment_after_accept_reopens(ledger, make_group):
    users, request = await _expense_request(ledger, make_group, a=0, b=50)
    accepted = await ledger.accept_request(request.id)

    await ledger.delete_payment(accepted.payment.id)

    assert (await ledger.users.get(users["b"].id)).balance == 50
    assert (await ledger.users.get(users["a"].id)).balance == 0
    reopened = await ledger.store.get_request(request.id)
    assert reopened.state is RequestState.OPEN

    again = await ledger.accept_request(request.id)
    assert again.request.is_fulfilled


@pytest.mark.asyncio
async def test_accept_with_exact_balance_succeeds(ledger, make_group):
    users, request = await _expense_request(ledger, make_group, b=30)

    accepted = await ledger.accept_request(request.id)

    assert accepted is not None
    assert (await ledger.users.get(users["b"].id)).balance == 0


@pytest.mark.asyncio
async def test_accept_one_unit_short_conflicts(ledger, make_group):
    users, request = await _expense_request(ledger, make_group, b=29)

    with pytest.raises(ConflictError):
        await ledger.accept_request(request.id)

    assert (await ledger.users.get(users["b"].id)).balance == 29
    assert not (await ledger.store.get_request(request.id)).is_fulfilled
    assert await ledger.store.list_payments() == []


@pytest.mark.asyncio
async def test_accept_twice_conflicts(ledger, make_group):
    users, request = await _expense_request(ledger, make_group, b=100)
    await ledger.accept_request(request.id)

    with pytest.raises(ConflictError):
        await ledger.accept_request(request.id)

    assert (await ledger.users.get(users["b"].id)).balance == 70
    assert len(await ledger.store.list_payments()) == 1


@pytest.mark.asyncio
async def test_accept_missing_request_returns_none(ledger):
    assert await ledger.accept_request(404) is None


@pytest.mark.asyncio
async def test_update_amount_while_open(ledger, make_group):
    _, request = await _expense_request(ledger, make_group)

    updated = await ledger.update_request(request.id, 12.5)

    assert updated.amount == 12.5
    assert updated.updated_at >= request.updated_at


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -3, None, "ten", float("inf")])
async def test_invalid_amount_update_is_ignored(ledger, make_group, amount):
    _, request = await _expense_request(ledger, make_group)

    updated = await ledger.update_request(request.id, amount)

    assert updated.amount == 30


@pytest.mark.asyncio
async def test_fulfilled_request_amount_is_frozen(ledger, make_group):
    _, request = await _expense_request(ledger, make_group, b=100)
    await ledger.accept_request(request.id)

    updated = await ledger.update_request(request.id, 1)

    assert updated.amount == 30
    assert updated.is_fulfilled


@pytest.mark.asyncio
async def test_update_missing_request_returns_none(ledger):
    assert await ledger.update_request(404, 5) is None


@pytest.mark.asyncio
async def test_delete_open_request(ledger, make_group):
    _, request = await _expense_request(ledger, make_group)

    assert await ledger.delete_request(request.id) is True
    assert await ledger.store.get_request(request.id) is None
    assert await ledger.delete_request(request.id) is False


@pytest.mark.asyncio
async def test_delete_fulfilled_request_conflicts(ledger, make_group):
    _, request = await _expense_request(ledger, make_group, b=100)
    await ledger.accept_request(request.id)

    with pytest.raises(ConflictError):
        await ledger.delete_request(request.id)

    assert await ledger.store.get_request(request.id) is not None


@pytest.mark.asyncio
async def test_standalone_request(ledger, make_group):
    group, users = await make_group(a=0, b=10)

    request = await ledger.create_request(10, debtor_id=users["b"].id, debtee_id=users["a"].id, group_id=group.id)
    accepted = await ledger.accept_request(request.id)

    assert request.expense_id is None
    assert accepted.payment.name == f"Payment for request #{request.id}"


@pytest.mark.asyncio
async def test_request_for_expense_inherits_group(ledger, make_group):
    users, generated = await _expense_request(ledger, make_group)

    extra = await ledger.create_request(
        5, debtor_id=users["b"].id, debtee_id=users["a"].id, expense_id=generated.expense_id
    )

    assert extra.group_id == generated.group_id


@pytest.mark.asyncio
async def test_create_request_validation(ledger, make_group):
    group, users = await make_group(a=0, b=0)
    outsider = await ledger.users.register("outsider", "pw")

    with pytest.raises(ValidationError):
        await ledger.create_request(0, debtor_id=users["b"].id, debtee_id=users["a"].id)
    with pytest.raises(ValidationError):
        await ledger.create_request(5, debtor_id=None, debtee_id=users["a"].id)
    with pytest.raises(NotFoundError):
        await ledger.create_request(5, debtor_id=999, debtee_id=users["a"].id)
    with pytest.raises(NotFoundError):
        await ledger.create_request(5, debtor_id=users["b"].id, debtee_id=users["a"].id, expense_id=999)
    with pytest.raises(ValidationError):
        await ledger.create_request(5, debtor_id=outsider.id, debtee_id=users["a"].id, group_id=group.id)


@pytest.mark.asyncio
async def test_open_request_listings(ledger, make_group):
    group, users = await make_group(a=0, b=100, c=100)
    _, requests = await ledger.create_expense(name="Boat", amount=90, payer_id=users["a"].id, group_id=group.id)
    await ledger.accept_request(requests[0].id)

    assert [r.id for r in await ledger.open_requests_for(users["c"].id)] == [requests[1].id]
    assert await ledger.open_requests_for(users["b"].id) == []
    assert [r.id for r in await ledger.requests.open_for_group(group.id)] == [requests[1].id]
    assert [r.id for r in await ledger.requests_owed_to(users["a"].id)] == [requests[1].id]
