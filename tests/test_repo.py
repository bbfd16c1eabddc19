from datetime import datetime, timezone

import pytest

from fairsplit.db.repo import PostgresLedgerStore, _where


class DummyDB:
    def __init__(self) -> None:
        self.requests = {}
        self.queries = []

    async def fetchrow(self, query: str, *args):
        self.queries.append((query, args))
        if "FROM requests" in query:
            return self.requests.get(args[0])
        return None

    async def fetch(self, query: str, *args):
        self.queries.append((query, args))
        return list(self.requests.values())

    async def execute(self, query: str, *args):
        self.queries.append((query, args))
        return "OK"


def _request_row(request_id: int, **overrides):
    row = {
        "id": request_id,
        "amount": 30,
        "is_fulfilled": False,
        "expense_id": 7,
        "debtor_id": 2,
        "debtee_id": 1,
        "group_id": 3,
        "created_at": datetime(2024, 5, 10, 18, 0, tzinfo=timezone.utc),
        "updated_at": None,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_get_request_maps_row():
    db = DummyDB()
    store = PostgresLedgerStore(db)  # type: ignore[arg-type]
    db.requests[5] = _request_row(5)

    request = await store.get_request(5)

    assert request is not None
    assert request.amount == 30.0
    assert isinstance(request.amount, float)
    assert (request.debtor_id, request.debtee_id, request.group_id) == (2, 1, 3)
    assert await store.get_request(6) is None


@pytest.mark.asyncio
async def test_list_requests_builds_filters():
    db = DummyDB()
    store = PostgresLedgerStore(db)  # type: ignore[arg-type]
    db.requests[5] = _request_row(5)

    await store.list_requests(debtor_id=2, is_fulfilled=False)

    query, args = db.queries[-1]
    assert "WHERE debtor_id = $1 AND is_fulfilled = $2" in query
    assert args == (2, False)


def test_where_skips_missing_filters():
    assert _where({"a =": None, "b =": None}) == ("", [])
    assert _where({"a =": 1, "b =": None, "c >=": 5}, start=3) == ("WHERE a = $3 AND c >= $4", [1, 5])
