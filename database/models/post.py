from sqlalchemy import Column, Text, Boolean, Integer, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utc_now
from .enums import PostType


class Post(Base):
    """
    A post within a topic. `cooked` and `excerpt` are produced by the
    rendering pipeline; the alert engine only reads them.
    """
    __tablename__ = 'posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic_id = Column(Integer, ForeignKey('topics.id', ondelete='CASCADE'), nullable=False)
    post_number = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    last_editor_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    post_type = Column(Integer, nullable=False, default=int(PostType.REGULAR))
    action_code = Column(Text)

    raw = Column(Text, nullable=False, default='')
    cooked = Column(Text)
    excerpt = Column(Text)

    reply_to_post_number = Column(Integer)
    via_email = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    deleted_at = Column(TIMESTAMP(timezone=True))

    # Relationships
    topic = relationship("Topic")
    user = relationship("User", foreign_keys=[user_id])
    last_editor = relationship("User", foreign_keys=[last_editor_id])
    incoming_email = relationship("IncomingEmail", back_populates="post", uselist=False)

    __table_args__ = (
        UniqueConstraint('topic_id', 'post_number', name='uq_posts_topic_post_number'),
    )

    @property
    def whisper(self) -> bool:
        return self.post_type == PostType.WHISPER

    @property
    def is_first_post(self) -> bool:
        return self.post_number == 1

    @property
    def editor(self):
        return self.last_editor or self.user

    @property
    def url(self) -> str:
        """Site-relative permalink."""
        return f"/t/{self.topic_id}/{self.post_number}"

    def __repr__(self):
        return f"<Post {self.id} topic={self.topic_id} #{self.post_number}>"
