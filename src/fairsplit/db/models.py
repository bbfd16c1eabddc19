from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class RequestState(str, Enum):
    OPEN = "open"
    FULFILLED = "fulfilled"


@dataclass(slots=True)
class User:
    id: int
    username: str
    password: str
    full_name: Optional[str]
    balance: float
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(slots=True)
class Group:
    id: int
    name: str
    is_active: bool
    member_ids: list[int] = field(default_factory=list)


@dataclass(slots=True)
class Expense:
    id: int
    group_id: int
    payer_id: int
    name: str
    amount: float
    category: str
    paid: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    assigned_user_ids: list[int] = field(default_factory=list)


@dataclass(slots=True)
class Request:
    id: int
    amount: float
    is_fulfilled: bool
    expense_id: Optional[int]
    debtor_id: int
    debtee_id: int
    group_id: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def state(self) -> RequestState:
        return RequestState.FULFILLED if self.is_fulfilled else RequestState.OPEN


@dataclass(slots=True)
class Payment:
    id: int
    name: str
    amount: float
    debtor_id: int
    debtee_id: int
    group_id: Optional[int]
    request_id: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime] = None
