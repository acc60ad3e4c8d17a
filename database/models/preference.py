from sqlalchemy import Column, Integer, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utc_now


class TopicUser(Base):
    """
    Explicit per-topic state of a user. `notification_level` is NULL when the
    user never chose one, in which case derived levels apply.
    """
    __tablename__ = 'topic_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    topic_id = Column(Integer, ForeignKey('topics.id', ondelete='CASCADE'), nullable=False)
    notification_level = Column(Integer, nullable=True)
    last_read_post_number = Column(Integer)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('user_id', 'topic_id', name='uq_topic_users'),
    )


class CategoryUser(Base):
    __tablename__ = 'category_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    category_id = Column(Integer, ForeignKey('categories.id', ondelete='CASCADE'), nullable=False)
    notification_level = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'category_id', name='uq_category_users'),
    )


class TagUser(Base):
    __tablename__ = 'tag_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    tag_id = Column(Integer, ForeignKey('tags.id', ondelete='CASCADE'), nullable=False)
    notification_level = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'tag_id', name='uq_tag_users'),
    )
