from __future__ import annotations

from typing import Optional

from fairsplit.db.models import Group
from fairsplit.logging import get_logger
from fairsplit.services.authz import is_group_member
from fairsplit.services.errors import ConflictError, NotFoundError, ValidationError
from fairsplit.services.store import LedgerStore


class GroupService:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store
        self._log = get_logger(__name__)

    async def create(self, name: str, member_ids: tuple[int, ...] = ()) -> Group:
        if not name or not name.strip():
            raise ValidationError("group name cannot be empty")
        async with self.store.transaction():
            group = await self.store.create_group(name.strip())
            for user_id in member_ids:
                await self._add(group.id, user_id)
            group = await self.store.get_group(group.id)
        assert group is not None
        self._log.info("group.created", group_id=group.id, members=len(group.member_ids))
        return group

    async def get(self, group_id: int) -> Optional[Group]:
        return await self.store.get_group(group_id)

    async def list(self, is_active: Optional[bool] = None) -> list[Group]:
        return await self.store.list_groups(is_active)

    async def update(self, group_id: int, name: Optional[str] = None, is_active: Optional[bool] = None) -> Optional[Group]:
        group = await self.store.get_group(group_id)
        if group is None:
            return None
        if name is not None and name.strip():
            group.name = name.strip()
        if is_active is not None:
            group.is_active = is_active
        return await self.store.save_group(group)

    async def delete(self, group_id: int) -> bool:
        async with self.store.transaction():
            if await self.store.get_group(group_id) is None:
                return False
            if (
                await self.store.list_expenses(group_id=group_id)
                or await self.store.list_requests(group_id=group_id)
                or await self.store.list_payments(group_id=group_id)
            ):
                raise ConflictError(f"group {group_id} still has expenses, requests or payments")
            await self.store.delete_group(group_id)
        self._log.info("group.deleted", group_id=group_id)
        return True

    async def is_member(self, group_id: int, user_id: int) -> bool:
        return await is_group_member(self.store, group_id, user_id)

    async def add_member(self, group_id: int, user_id: int) -> Group:
        async with self.store.transaction():
            await self._add(group_id, user_id)
            group = await self.store.get_group(group_id)
        assert group is not None
        self._log.info("group.member_added", group_id=group_id, user_id=user_id)
        return group

    async def remove_member(self, group_id: int, user_id: int) -> Group:
        async with self.store.transaction():
            await self._require(group_id, user_id)
            if not await self.store.is_member(group_id, user_id):
                raise ConflictError(f"user {user_id} is not a member of group {group_id}")
            await self.store.remove_member(group_id, user_id)
            group = await self.store.get_group(group_id)
        assert group is not None
        self._log.info("group.member_removed", group_id=group_id, user_id=user_id)
        return group

    async def _add(self, group_id: int, user_id: int) -> None:
        await self._require(group_id, user_id)
        if await self.store.is_member(group_id, user_id):
            raise ConflictError(f"user {user_id} is already a member of group {group_id}")
        await self.store.add_member(group_id, user_id)

    async def _require(self, group_id: int, user_id: int) -> None:
        if await self.store.get_group(group_id) is None:
            raise NotFoundError(f"group {group_id} not found")
        if await self.store.get_user(user_id) is None:
            raise NotFoundError(f"user {user_id} not found")
