from typing import Dict, Iterable, Optional, Set

from sqlalchemy import select

from database.models import TopicUser, CategoryUser, TagUser, GroupUser
from database.repositories.base import BaseRepository


def _max_by_user(rows) -> Dict[int, int]:
    levels: Dict[int, int] = {}
    for user_id, level in rows:
        if level is None:
            continue
        if user_id not in levels or level > levels[user_id]:
            levels[user_id] = level
    return levels


class LevelRepository(BaseRepository):
    """Notification levels per scope, keyed by user id."""

    def topic_levels(self, topic_id: int, user_ids: Optional[Iterable[int]] = None) -> Dict[int, int]:
        """Explicit topic levels; users who never chose one are absent."""
        stmt = select(TopicUser.user_id, TopicUser.notification_level).where(
            TopicUser.topic_id == topic_id,
            TopicUser.notification_level.is_not(None),
        )
        if user_ids is not None:
            stmt = stmt.where(TopicUser.user_id.in_(list(user_ids)))
        return _max_by_user(self.db.execute(stmt).all())

    def category_levels(self, category_id: Optional[int], user_ids: Optional[Iterable[int]] = None) -> Dict[int, int]:
        if category_id is None:
            return {}
        stmt = select(CategoryUser.user_id, CategoryUser.notification_level).where(
            CategoryUser.category_id == category_id
        )
        if user_ids is not None:
            stmt = stmt.where(CategoryUser.user_id.in_(list(user_ids)))
        return _max_by_user(self.db.execute(stmt).all())

    def tag_levels(self, tag_ids: Iterable[int], user_ids: Optional[Iterable[int]] = None) -> Dict[int, int]:
        tag_ids = list(tag_ids)
        if not tag_ids:
            return {}
        stmt = select(TagUser.user_id, TagUser.notification_level).where(TagUser.tag_id.in_(tag_ids))
        if user_ids is not None:
            stmt = stmt.where(TagUser.user_id.in_(list(user_ids)))
        return _max_by_user(self.db.execute(stmt).all())

    def group_levels(self, group_ids: Iterable[int], user_ids: Optional[Iterable[int]] = None) -> Dict[int, int]:
        group_ids = list(group_ids)
        if not group_ids:
            return {}
        stmt = select(GroupUser.user_id, GroupUser.notification_level).where(GroupUser.group_id.in_(group_ids))
        if user_ids is not None:
            stmt = stmt.where(GroupUser.user_id.in_(list(user_ids)))
        return _max_by_user(self.db.execute(stmt).all())

    def last_read_post_number(self, user_id: int, topic_id: int) -> Optional[int]:
        stmt = select(TopicUser.last_read_post_number).where(
            TopicUser.user_id == user_id,
            TopicUser.topic_id == topic_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def readers_of(self, topic_id: int, post_number: int) -> Set[int]:
        """Users whose read position is at or past `post_number`."""
        stmt = select(TopicUser.user_id).where(
            TopicUser.topic_id == topic_id,
            TopicUser.last_read_post_number >= post_number,
        )
        return set(self.db.execute(stmt).scalars().all())
