import logging
from typing import List, Optional, Set

from sqlalchemy import select, update

from database.models import Topic, Post, PostType, TopicAllowedUser, TopicAllowedGroup, GroupUser, IncomingEmail
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class TopicRepository(BaseRepository):
    """Topics, posts and private message ACLs."""

    def get_topic(self, topic_id: int) -> Optional[Topic]:
        return self.db.get(Topic, topic_id)

    def get_post(self, post_id: int) -> Optional[Post]:
        return self.db.get(Post, post_id)

    def get_post_by_number(self, topic_id: int, post_number: int) -> Optional[Post]:
        stmt = select(Post).where(Post.topic_id == topic_id, Post.post_number == post_number)
        return self.db.execute(stmt).scalar_one_or_none()

    def first_post(self, topic_id: int) -> Optional[Post]:
        stmt = (
            select(Post)
            .where(Post.topic_id == topic_id)
            .order_by(Post.post_number)
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def first_unread_post(self, topic_id: int, last_read_post_number: Optional[int], include_whispers: bool) -> Optional[Post]:
        """Oldest live post after `last_read_post_number` the reader can see."""
        stmt = select(Post).where(
            Post.topic_id == topic_id,
            Post.post_number > (last_read_post_number or 0),
            Post.deleted_at.is_(None),
        )
        if not include_whispers:
            stmt = stmt.where(Post.post_type != int(PostType.WHISPER))
        stmt = stmt.order_by(Post.post_number).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def allowed_user_ids(self, topic_id: int) -> List[int]:
        """Direct participants, oldest first."""
        stmt = (
            select(TopicAllowedUser.user_id)
            .where(TopicAllowedUser.topic_id == topic_id)
            .order_by(TopicAllowedUser.created_at, TopicAllowedUser.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def allowed_group_ids(self, topic_id: int) -> List[int]:
        stmt = (
            select(TopicAllowedGroup.group_id)
            .where(TopicAllowedGroup.topic_id == topic_id)
            .order_by(TopicAllowedGroup.created_at, TopicAllowedGroup.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def participant_ids(self, topic_id: int) -> Set[int]:
        """Direct participants plus members of every allowed group."""
        ids = set(self.allowed_user_ids(topic_id))
        group_ids = self.allowed_group_ids(topic_id)
        if group_ids:
            stmt = select(GroupUser.user_id).where(GroupUser.group_id.in_(group_ids))
            ids.update(self.db.execute(stmt).scalars().all())
        return ids

    def incoming_email_for_post(self, post_id: int) -> Optional[IncomingEmail]:
        stmt = select(IncomingEmail).where(IncomingEmail.post_id == post_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def bump_group_email_generation(self, topic_id: int) -> int:
        """Increment the topic's group email generation and return the new value."""
        self.db.execute(
            update(Topic)
            .where(Topic.id == topic_id)
            .values(group_email_generation=Topic.group_email_generation + 1)
        )
        generation = self.group_email_generation(topic_id)
        logger.info(f"Topic {topic_id} group email generation is now {generation}")
        return generation

    def group_email_generation(self, topic_id: int) -> int:
        stmt = select(Topic.group_email_generation).where(Topic.id == topic_id)
        return self.db.execute(stmt).scalar_one_or_none() or 0
