import logging

from sqlalchemy.orm import Session

from database.repositories import UserRepository, TopicRepository, LevelRepository, NotificationRepository

logger = logging.getLogger(__name__)


class AlertRepository:
    """Single entry point to the store for one post event.

    All sub-repositories share the same Session, so everything the alert
    engine reads and writes lands in one transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.topics = TopicRepository(db)
        self.levels = LevelRepository(db)
        self.notifications = NotificationRepository(db)

    def flush(self) -> None:
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
