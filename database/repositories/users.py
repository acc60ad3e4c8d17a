import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select, func, or_

from database.models import (
    User, Group, GroupUser, MutedUser, IgnoredUser,
    UserApiKey, DoNotDisturbTiming, utc_now,
)
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """Users, groups and the per-user relations the alert engine filters on."""

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_users(self, user_ids: Iterable[int]) -> List[User]:
        ids = list(set(user_ids))
        if not ids:
            return []
        stmt = select(User).where(User.id.in_(ids)).order_by(User.id)
        return list(self.db.execute(stmt).scalars().all())

    def get_users_ordered(self, user_ids: Iterable[int]) -> List[User]:
        """Like get_users, but in the order of `user_ids`."""
        ids = list(user_ids)
        by_id = {u.id: u for u in self.get_users(ids)}
        return [by_id[i] for i in ids if i in by_id]

    def find_users_by_usernames(self, usernames: Iterable[str]) -> Dict[str, User]:
        """Case-insensitive lookup keyed by lower-cased username."""
        names = {n.lower() for n in usernames if n}
        if not names:
            return {}
        stmt = select(User).where(func.lower(User.username).in_(names))
        return {u.username.lower(): u for u in self.db.execute(stmt).scalars().all()}

    def find_groups_by_names(self, names: Iterable[str]) -> Dict[str, Group]:
        names = {n.lower() for n in names if n}
        if not names:
            return {}
        stmt = select(Group).where(func.lower(Group.name).in_(names))
        return {g.name.lower(): g for g in self.db.execute(stmt).scalars().all()}

    def get_group(self, group_id: int) -> Optional[Group]:
        return self.db.get(Group, group_id)

    def group_member_ids(self, group_ids: Iterable[int]) -> Set[int]:
        ids = list(set(group_ids))
        if not ids:
            return set()
        stmt = select(GroupUser.user_id).where(GroupUser.group_id.in_(ids))
        return set(self.db.execute(stmt).scalars().all())

    def group_members(self, group_id: int) -> List[User]:
        stmt = (
            select(User)
            .join(GroupUser, GroupUser.user_id == User.id)
            .where(GroupUser.group_id == group_id)
            .order_by(GroupUser.created_at, GroupUser.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def group_membership(self, group_id: int, user_id: int) -> Optional[GroupUser]:
        stmt = select(GroupUser).where(GroupUser.group_id == group_id, GroupUser.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def group_ids_for_user(self, user_id: int) -> Set[int]:
        stmt = select(GroupUser.group_id).where(GroupUser.user_id == user_id)
        return set(self.db.execute(stmt).scalars().all())

    def silencing_user_ids(self, author_id: int, user_ids: Iterable[int], now: Optional[datetime] = None) -> Set[int]:
        """Users among `user_ids` who muted or ignored `author_id`."""
        ids = list(set(user_ids))
        if not ids or author_id is None:
            return set()
        now = now or utc_now()

        muted = select(MutedUser.user_id).where(
            MutedUser.muted_user_id == author_id,
            MutedUser.user_id.in_(ids),
        )
        ignored = select(IgnoredUser.user_id).where(
            IgnoredUser.ignored_user_id == author_id,
            IgnoredUser.user_id.in_(ids),
            or_(IgnoredUser.expiring_at.is_(None), IgnoredUser.expiring_at > now),
        )
        result = set(self.db.execute(muted).scalars().all())
        result.update(self.db.execute(ignored).scalars().all())
        return result

    def push_clients(self, user_id: int) -> List[UserApiKey]:
        stmt = (
            select(UserApiKey)
            .where(
                UserApiKey.user_id == user_id,
                UserApiKey.revoked_at.is_(None),
                UserApiKey.push_url.is_not(None),
            )
            .order_by(UserApiKey.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def in_do_not_disturb(self, user_id: int, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        stmt = select(DoNotDisturbTiming).where(DoNotDisturbTiming.user_id == user_id)
        return any(t.covers(now) for t in self.db.execute(stmt).scalars().all())
