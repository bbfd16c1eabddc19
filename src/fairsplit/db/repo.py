from __future__ import annotations

from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

import asyncpg

from fairsplit.db.models import Expense, Group, Payment, Request, User
from fairsplit.logging import get_logger, sql_logger
from fairsplit.services.errors import PersistenceError

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._conn: ContextVar[asyncpg.Connection | None] = ContextVar(f"db_conn_{id(self)}", default=None)
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg ожидает схему postgresql/postgres, без "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            try:
                self._pool = await asyncpg.create_pool(dsn)
            except _DB_ERRORS as exc:
                raise PersistenceError(f"cannot connect to database: {exc}") from exc
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        current = self._conn.get()
        if current is not None:
            yield current
            return

        await self._ensure_pool()
        assert self._pool
        try:
            async with self._pool.acquire() as conn:
                token = self._conn.set(conn)
                try:
                    async with conn.transaction():
                        sql_logger.info("sql.begin")
                        yield conn
                finally:
                    self._conn.reset(token)
        except _DB_ERRORS as exc:
            raise PersistenceError(str(exc)) from exc

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._run("fetch", query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._run("fetchrow", query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        sql_logger.info("sql.fetchval", query=query, args=args)
        return await self._run("fetchval", query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._run("execute", query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        sql_logger.info("sql.executemany", query=command)
        await self._run("executemany", command, args)

    async def _run(self, method: str, query: str, *args: Any) -> Any:
        executor: Any = self._conn.get()
        if executor is None:
            await self._ensure_pool()
            assert self._pool
            executor = self._pool
        try:
            return await getattr(executor, method)(query, *args)
        except _DB_ERRORS as exc:
            raise PersistenceError(str(exc)) from exc

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def _user(row: asyncpg.Record) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        password=row["password"],
        full_name=row["full_name"],
        balance=float(row["balance"]),
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _group(row: asyncpg.Record, member_ids: Sequence[int]) -> Group:
    return Group(id=row["id"], name=row["name"], is_active=row["is_active"], member_ids=list(member_ids))


def _expense(row: asyncpg.Record) -> Expense:
    return Expense(
        id=row["id"],
        group_id=row["group_id"],
        payer_id=row["payer_id"],
        name=row["name"],
        amount=float(row["amount"]),
        category=row["category"],
        paid=row["paid"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        assigned_user_ids=list(row["assigned_user_ids"] or []),
    )


def _request(row: asyncpg.Record) -> Request:
    return Request(
        id=row["id"],
        amount=float(row["amount"]),
        is_fulfilled=row["is_fulfilled"],
        expense_id=row["expense_id"],
        debtor_id=row["debtor_id"],
        debtee_id=row["debtee_id"],
        group_id=row["group_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _payment(row: asyncpg.Record) -> Payment:
    return Payment(
        id=row["id"],
        name=row["name"],
        amount=float(row["amount"]),
        debtor_id=row["debtor_id"],
        debtee_id=row["debtee_id"],
        group_id=row["group_id"],
        request_id=row["request_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _where(filters: dict[str, Any], start: int = 1) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    args: list[Any] = []
    for column, value in filters.items():
        if value is None:
            continue
        args.append(value)
        clauses.append(f"{column} ${start + len(args) - 1}")
    if not clauses:
        return "", args
    return "WHERE " + " AND ".join(clauses), args


_EXPENSE_SELECT = """
    SELECT e.*,
           COALESCE(
               array_agg(eau.user_id ORDER BY eau.position) FILTER (WHERE eau.user_id IS NOT NULL),
               '{}'
           ) AS assigned_user_ids
    FROM expenses e
    LEFT JOIN expense_assigned_users eau ON eau.expense_id = e.id
"""


class PostgresLedgerStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def transaction(self):
        return self.db.transaction()

    # users

    async def get_user(self, user_id: int) -> Optional[User]:
        row = await self.db.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return _user(row) if row else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        row = await self.db.fetchrow("SELECT * FROM users WHERE username = $1", username)
        return _user(row) if row else None

    async def username_exists(self, username: str) -> bool:
        return bool(await self.db.fetchval("SELECT EXISTS(SELECT 1 FROM users WHERE username = $1)", username))

    async def create_user(
        self,
        username: str,
        password: str,
        full_name: Optional[str],
        balance: float = 0.0,
    ) -> User:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (username, password, full_name, balance)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            username,
            password,
            full_name,
            balance,
        )
        assert row is not None
        return _user(row)

    async def save_user(self, user: User) -> User:
        row = await self.db.fetchrow(
            """
            UPDATE users
               SET username = $2,
                   password = $3,
                   full_name = $4,
                   balance = $5,
                   is_active = $6,
                   updated_at = now()
             WHERE id = $1
            RETURNING *
            """,
            user.id,
            user.username,
            user.password,
            user.full_name,
            user.balance,
            user.is_active,
        )
        if row is None:
            raise PersistenceError(f"user {user.id} vanished during update")
        return _user(row)

    async def delete_user(self, user_id: int) -> None:
        await self.db.execute("DELETE FROM users WHERE id = $1", user_id)

    async def list_users(self, group_id: Optional[int] = None) -> list[User]:
        if group_id is None:
            rows = await self.db.fetch("SELECT * FROM users ORDER BY id")
        else:
            rows = await self.db.fetch(
                """
                SELECT u.*
                FROM users u
                JOIN group_members gm ON gm.user_id = u.id
                WHERE gm.group_id = $1
                ORDER BY gm.joined_at, u.id
                """,
                group_id,
            )
        return [_user(row) for row in rows]

    # groups

    async def get_group(self, group_id: int) -> Optional[Group]:
        row = await self.db.fetchrow("SELECT * FROM groups WHERE id = $1", group_id)
        if row is None:
            return None
        return _group(row, await self.group_member_ids(group_id))

    async def create_group(self, name: str) -> Group:
        row = await self.db.fetchrow("INSERT INTO groups (name) VALUES ($1) RETURNING *", name)
        assert row is not None
        return _group(row, [])

    async def save_group(self, group: Group) -> Group:
        row = await self.db.fetchrow(
            "UPDATE groups SET name = $2, is_active = $3 WHERE id = $1 RETURNING *",
            group.id,
            group.name,
            group.is_active,
        )
        if row is None:
            raise PersistenceError(f"group {group.id} vanished during update")
        return _group(row, await self.group_member_ids(group.id))

    async def delete_group(self, group_id: int) -> None:
        await self.db.execute("DELETE FROM groups WHERE id = $1", group_id)

    async def list_groups(self, is_active: Optional[bool] = None) -> list[Group]:
        where, args = _where({"is_active =": is_active})
        rows = await self.db.fetch(f"SELECT * FROM groups {where} ORDER BY id", *args)
        return [_group(row, await self.group_member_ids(row["id"])) for row in rows]

    async def group_member_ids(self, group_id: int) -> list[int]:
        rows = await self.db.fetch(
            "SELECT user_id FROM group_members WHERE group_id = $1 ORDER BY joined_at, user_id",
            group_id,
        )
        return [row["user_id"] for row in rows]

    async def is_member(self, group_id: int, user_id: int) -> bool:
        member = await self.db.fetchval(
            "SELECT user_id FROM group_members WHERE group_id = $1 AND user_id = $2",
            group_id,
            user_id,
        )
        return member is not None

    async def add_member(self, group_id: int, user_id: int) -> None:
        await self.db.execute(
            """
            INSERT INTO group_members (group_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            group_id,
            user_id,
        )

    async def remove_member(self, group_id: int, user_id: int) -> None:
        await self.db.execute(
            "DELETE FROM group_members WHERE group_id = $1 AND user_id = $2",
            group_id,
            user_id,
        )

    # expenses

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        row = await self.db.fetchrow(f"{_EXPENSE_SELECT} WHERE e.id = $1 GROUP BY e.id", expense_id)
        return _expense(row) if row else None

    async def create_expense(
        self,
        group_id: int,
        payer_id: int,
        name: str,
        amount: float,
        category: str,
        assigned_user_ids: Sequence[int],
    ) -> Expense:
        async with self.db.transaction():
            row = await self.db.fetchrow(
                """
                INSERT INTO expenses (group_id, payer_id, name, amount, category)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
                """,
                group_id,
                payer_id,
                name,
                amount,
                category,
            )
            assert row is not None
            await self.db.executemany(
                """
                INSERT INTO expense_assigned_users (expense_id, user_id, position)
                VALUES ($1, $2, $3)
                """,
                [(row["id"], user_id, position) for position, user_id in enumerate(assigned_user_ids)],
            )
            expense = await self.get_expense(row["id"])
        assert expense is not None
        return expense

    async def save_expense(self, expense: Expense) -> Expense:
        await self.db.execute(
            """
            UPDATE expenses
               SET name = $2,
                   category = $3,
                   paid = $4,
                   updated_at = now()
             WHERE id = $1
            """,
            expense.id,
            expense.name,
            expense.category,
            expense.paid,
        )
        saved = await self.get_expense(expense.id)
        if saved is None:
            raise PersistenceError(f"expense {expense.id} vanished during update")
        return saved

    async def delete_expense(self, expense_id: int) -> None:
        # requests and assignments go with it (ON DELETE CASCADE)
        await self.db.execute("DELETE FROM expenses WHERE id = $1", expense_id)

    async def list_expenses(
        self,
        group_id: Optional[int] = None,
        payer_id: Optional[int] = None,
        assigned_user_id: Optional[int] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> list[Expense]:
        where, args = _where(
            {
                "e.group_id =": group_id,
                "e.payer_id =": payer_id,
                "e.created_at >=": created_from,
                "e.created_at <=": created_to,
            }
        )
        having = ""
        if assigned_user_id is not None:
            args.append(assigned_user_id)
            having = f"HAVING ${len(args)} = ANY(array_agg(eau.user_id))"
        rows = await self.db.fetch(
            f"{_EXPENSE_SELECT} {where} GROUP BY e.id {having} ORDER BY e.created_at, e.id",
            *args,
        )
        return [_expense(row) for row in rows]

    # requests

    async def get_request(self, request_id: int) -> Optional[Request]:
        row = await self.db.fetchrow("SELECT * FROM requests WHERE id = $1", request_id)
        return _request(row) if row else None

    async def create_request(
        self,
        amount: float,
        expense_id: Optional[int],
        debtor_id: int,
        debtee_id: int,
        group_id: Optional[int],
    ) -> Request:
        row = await self.db.fetchrow(
            """
            INSERT INTO requests (amount, expense_id, debtor_id, debtee_id, group_id)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            amount,
            expense_id,
            debtor_id,
            debtee_id,
            group_id,
        )
        assert row is not None
        return _request(row)

    async def save_request(self, request: Request) -> Request:
        row = await self.db.fetchrow(
            """
            UPDATE requests
               SET amount = $2,
                   is_fulfilled = $3,
                   updated_at = now()
             WHERE id = $1
            RETURNING *
            """,
            request.id,
            request.amount,
            request.is_fulfilled,
        )
        if row is None:
            raise PersistenceError(f"request {request.id} vanished during update")
        return _request(row)

    async def delete_request(self, request_id: int) -> None:
        await self.db.execute("DELETE FROM requests WHERE id = $1", request_id)

    async def list_requests(
        self,
        expense_id: Optional[int] = None,
        debtor_id: Optional[int] = None,
        debtee_id: Optional[int] = None,
        group_id: Optional[int] = None,
        is_fulfilled: Optional[bool] = None,
    ) -> list[Request]:
        where, args = _where(
            {
                "expense_id =": expense_id,
                "debtor_id =": debtor_id,
                "debtee_id =": debtee_id,
                "group_id =": group_id,
                "is_fulfilled =": is_fulfilled,
            }
        )
        rows = await self.db.fetch(f"SELECT * FROM requests {where} ORDER BY id", *args)
        return [_request(row) for row in rows]

    # payments

    async def get_payment(self, payment_id: int) -> Optional[Payment]:
        row = await self.db.fetchrow("SELECT * FROM payments WHERE id = $1", payment_id)
        return _payment(row) if row else None

    async def get_payment_by_request(self, request_id: int) -> Optional[Payment]:
        row = await self.db.fetchrow("SELECT * FROM payments WHERE request_id = $1", request_id)
        return _payment(row) if row else None

    async def create_payment(
        self,
        name: str,
        amount: float,
        debtor_id: int,
        debtee_id: int,
        group_id: Optional[int],
        request_id: Optional[int],
    ) -> Payment:
        row = await self.db.fetchrow(
            """
            INSERT INTO payments (name, amount, debtor_id, debtee_id, group_id, request_id)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            name,
            amount,
            debtor_id,
            debtee_id,
            group_id,
            request_id,
        )
        assert row is not None
        return _payment(row)

    async def delete_payment(self, payment_id: int) -> None:
        await self.db.execute("DELETE FROM payments WHERE id = $1", payment_id)

    async def list_payments(
        self,
        debtor_id: Optional[int] = None,
        debtee_id: Optional[int] = None,
        group_id: Optional[int] = None,
    ) -> list[Payment]:
        where, args = _where(
            {
                "debtor_id =": debtor_id,
                "debtee_id =": debtee_id,
                "group_id =": group_id,
            }
        )
        rows = await self.db.fetch(f"SELECT * FROM payments {where} ORDER BY id", *args)
        return [_payment(row) for row in rows]
