from __future__ import annotations

from typing import Awaitable, Callable

import pytest

from fairsplit.db.memory import MemoryLedgerStore
from fairsplit.db.models import Group, User
from fairsplit.ledger import Ledger

MakeGroup = Callable[..., Awaitable[tuple[Group, dict[str, User]]]]


@pytest.fixture
def store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
def ledger(store: MemoryLedgerStore) -> Ledger:
    return Ledger(store)


@pytest.fixture
def make_group(ledger: Ledger) -> MakeGroup:
    """Registers one user per keyword (name=balance) and puts them all in a fresh group."""

    async def _make(name: str = "Flat", **balances: float) -> tuple[Group, dict[str, User]]:
        users = {}
        for username, amount in balances.items():
            users[username] = await ledger.users.register(username, "secret", username.upper(), amount)
        group = await ledger.groups.create(name, member_ids=tuple(u.id for u in users.values()))
        return group, users

    return _make
