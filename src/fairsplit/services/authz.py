from __future__ import annotations

from typing import Iterable, Protocol

from fairsplit.services.errors import ValidationError


class MembershipSource(Protocol):
    async def is_member(self, group_id: int, user_id: int) -> bool: ...


async def is_group_member(store: MembershipSource, group_id: int, user_id: int) -> bool:
    return await store.is_member(group_id, user_id)


async def assert_group_member(store: MembershipSource, group_id: int, user_id: int) -> None:
    if not await is_group_member(store, group_id, user_id):
        raise ValidationError(f"user {user_id} is not a member of group {group_id}")


async def assert_group_members(store: MembershipSource, group_id: int, user_ids: Iterable[int]) -> None:
    for user_id in user_ids:
        await assert_group_member(store, group_id, user_id)
