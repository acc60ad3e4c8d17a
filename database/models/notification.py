from sqlalchemy import Column, Text, TIMESTAMP, ForeignKey, Boolean, Integer, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from .base import Base, utc_now


class Notification(Base):
    """
    In-app notification row.

    Rows of a collapsing class carry a `collapse_key` while unread; the unique
    constraint on (user_id, collapse_key) guarantees at most one unread row
    per class even with concurrent writers. Reading a row clears its key.
    """
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Who and what
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    notification_type = Column(Integer, nullable=False)
    topic_id = Column(Integer, ForeignKey('topics.id', ondelete='CASCADE'), nullable=True)
    post_number = Column(Integer, nullable=True)

    # Payload, validated against the per-type model on read
    data = Column(JSON, nullable=False, default=dict)

    read = Column(Boolean, nullable=False, default=False)
    collapse_key = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    # Relationships
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('user_id', 'collapse_key', name='uq_notifications_unread_collapse'),
        # Granted-cause lookups
        Index('idx_notifications_user_post', 'user_id', 'topic_id', 'post_number'),
        Index('idx_notifications_user_read', 'user_id', 'read'),
    )

    def mark_read(self) -> None:
        self.read = True
        self.collapse_key = None

    def __repr__(self):
        return f"<Notification {self.id} user={self.user_id} type={self.notification_type}>"
