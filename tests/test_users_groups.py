import pytest

from fairsplit.services.errors import ConflictError, NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_register_defaults(ledger):
    user = await ledger.users.register("alice", "pw", "Alice A.")

    assert user.balance == 0
    assert user.is_active
    assert await ledger.users.get_by_username("alice") == user


@pytest.mark.asyncio
async def test_duplicate_username_conflicts(ledger):
    await ledger.users.register("alice", "pw")

    with pytest.raises(ConflictError):
        await ledger.users.register("alice", "other")


@pytest.mark.asyncio
@pytest.mark.parametrize("username, password", [("", "pw"), ("  ", "pw"), ("bob", "")])
async def test_register_requires_credentials(ledger, username, password):
    with pytest.raises(ValidationError):
        await ledger.users.register(username, password)


@pytest.mark.asyncio
async def test_update_ignores_missing_fields(ledger):
    user = await ledger.users.register("alice", "pw", "Alice")

    updated = await ledger.users.update(user.id, username=None, password="", full_name="  ")

    assert (updated.username, updated.password, updated.full_name) == ("alice", "pw", "Alice")


@pytest.mark.asyncio
async def test_update_username_checks_duplicates(ledger):
    alice = await ledger.users.register("alice", "pw")
    await ledger.users.register("bob", "pw")

    with pytest.raises(ConflictError):
        await ledger.users.update(alice.id, username="bob")

    renamed = await ledger.users.update(alice.id, username="alicia")
    assert renamed.username == "alicia"
    assert await ledger.users.update(999, username="x") is None


@pytest.mark.asyncio
async def test_delete_user_with_balance_conflicts(ledger):
    user = await ledger.users.register("alice", "pw", initial_balance=5)

    with pytest.raises(ConflictError):
        await ledger.users.delete(user.id)

    await ledger.set_balance(user.id, 0)
    assert await ledger.users.delete(user.id) is True
    assert await ledger.users.get(user.id) is None
    assert await ledger.users.delete(user.id) is False


@pytest.mark.asyncio
async def test_delete_user_with_open_requests_conflicts(ledger, make_group):
    group, users = await make_group(a=0, b=0)
    await ledger.create_expense(name="Tea", amount=4, payer_id=users["a"].id, group_id=group.id)

    with pytest.raises(ConflictError):
        await ledger.users.delete(users["a"].id)
    with pytest.raises(ConflictError):
        await ledger.users.delete(users["b"].id)


@pytest.mark.asyncio
async def test_group_membership(ledger, make_group):
    group, users = await make_group(a=0, b=0)
    carol = await ledger.users.register("carol", "pw")

    assert await ledger.groups.is_member(group.id, users["a"].id)
    assert not await ledger.groups.is_member(group.id, carol.id)

    group = await ledger.groups.add_member(group.id, carol.id)
    assert group.member_ids == [users["a"].id, users["b"].id, carol.id]
    assert [u.username for u in await ledger.users.list(group.id)] == ["a", "b", "carol"]

    with pytest.raises(ConflictError):
        await ledger.groups.add_member(group.id, carol.id)

    group = await ledger.groups.remove_member(group.id, carol.id)
    assert carol.id not in group.member_ids
    with pytest.raises(ConflictError):
        await ledger.groups.remove_member(group.id, carol.id)


@pytest.mark.asyncio
async def test_membership_requires_existing_entities(ledger, make_group):
    group, _ = await make_group(a=0)

    with pytest.raises(NotFoundError):
        await ledger.groups.add_member(group.id, 999)
    with pytest.raises(NotFoundError):
        await ledger.groups.add_member(999, 1)


@pytest.mark.asyncio
async def test_group_update_and_listing(ledger):
    group = await ledger.groups.create("Flat")

    updated = await ledger.groups.update(group.id, name="", is_active=False)

    assert updated.name == "Flat"
    assert not updated.is_active
    assert await ledger.groups.list(is_active=True) == []
    assert [g.id for g in await ledger.groups.list(is_active=False)] == [group.id]
    assert await ledger.groups.update(999, name="x") is None


@pytest.mark.asyncio
async def test_group_with_expenses_cannot_be_deleted(ledger, make_group):
    group, users = await make_group(a=0, b=0)
    await ledger.create_expense(name="Tea", amount=4, payer_id=users["a"].id, group_id=group.id)

    with pytest.raises(ConflictError):
        await ledger.groups.delete(group.id)

    empty = await ledger.groups.create("Empty")
    assert await ledger.groups.delete(empty.id) is True
    assert await ledger.groups.delete(empty.id) is False


@pytest.mark.asyncio
async def test_group_name_required(ledger):
    with pytest.raises(ValidationError):
        await ledger.groups.create(" ")


@pytest.mark.asyncio
async def test_delete_user_with_unreversed_payment_conflicts(ledger, make_group):
    group, users = await make_group(a=0, b=30)
    a, b = users["a"], users["b"]
    request = await ledger.create_request(30, debtor_id=b.id, debtee_id=a.id, group_id=group.id)
    accepted = await ledger.accept_request(request.id)
    assert (await ledger.users.get(b.id)).balance == 0

    with pytest.raises(ConflictError):
        await ledger.users.delete(b.id)

    assert await ledger.delete_payment(accepted.payment.id) is True
    assert (await ledger.users.get(b.id)).balance == 30
    assert not (await ledger.store.get_request(request.id)).is_fulfilled


@pytest.mark.asyncio
async def test_delete_user_with_standalone_payment_conflicts(ledger):
    carol = await ledger.users.register("carol", "pw", initial_balance=10)
    dave = await ledger.users.register("dave", "pw")
    payment = await ledger.create_payment(name="Coffee", amount=10, debtor_id=carol.id, debtee_id=dave.id)

    with pytest.raises(ConflictError):
        await ledger.users.delete(carol.id)

    await ledger.delete_payment(payment.id)
    await ledger.set_balance(carol.id, 0)
    assert await ledger.users.delete(carol.id) is True


@pytest.mark.asyncio
async def test_delete_user_referenced_by_expense_conflicts(ledger, make_group):
    group, users = await make_group(a=0, b=0)
    await ledger.create_expense(
        name="Tea", amount=4, payer_id=users["a"].id, group_id=group.id, assigned_user_ids=[users["a"].id]
    )

    with pytest.raises(ConflictError):
        await ledger.users.delete(users["a"].id)
    assert await ledger.users.delete(users["b"].id) is True


@pytest.mark.asyncio
async def test_group_with_requests_cannot_be_deleted(ledger, make_group):
    group, users = await make_group(a=0, b=10)
    request = await ledger.create_request(10, debtor_id=users["b"].id, debtee_id=users["a"].id, group_id=group.id)

    with pytest.raises(ConflictError):
        await ledger.groups.delete(group.id)

    accepted = await ledger.accept_request(request.id)
    assert accepted.payment.group_id == group.id

    await ledger.delete_payment(accepted.payment.id)
    await ledger.delete_request(request.id)
    assert await ledger.groups.delete(group.id) is True
