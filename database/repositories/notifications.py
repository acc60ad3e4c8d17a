import logging
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from database.models import Notification
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class NotificationRepository(BaseRepository):
    """Reads and writes of in-app notification rows."""

    def get(self, notification_id: int) -> Optional[Notification]:
        return self.db.get(Notification, notification_id)

    def find_unread_by_collapse_key(self, user_id: int, collapse_key: str, for_update: bool = False) -> Optional[Notification]:
        stmt = select(Notification).where(
            Notification.user_id == user_id,
            Notification.collapse_key == collapse_key,
            Notification.read.is_(False),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def for_post(self, user_id: int, topic_id: int, post_number: int, types: Optional[Iterable[int]] = None) -> List[Notification]:
        """Every row, read or not, that points the user at this post."""
        stmt = select(Notification).where(
            Notification.user_id == user_id,
            Notification.topic_id == topic_id,
            Notification.post_number == post_number,
        )
        if types is not None:
            stmt = stmt.where(Notification.notification_type.in_(list(types)))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        return list(self.db.execute(stmt).scalars().all())

    def for_user(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at, Notification.id)
        return list(self.db.execute(stmt).scalars().all())

    def try_insert(self, notification: Notification) -> bool:
        """
        Insert inside a savepoint.

        Returns False when the unread collapse key is already taken by a
        concurrent writer; the outer transaction stays usable.
        """
        try:
            with self.db.begin_nested():
                self.db.add(notification)
                self.db.flush()
        except IntegrityError:
            logger.info(
                f"Collapse key {notification.collapse_key} for user {notification.user_id} taken concurrently"
            )
            return False
        return True

    def mark_read(self, notification_id: int) -> Optional[Notification]:
        notification = self.get(notification_id)
        if notification is not None:
            notification.mark_read()
            self.db.flush()
        return notification
