from sqlalchemy import Column, Text, Boolean, Integer, TIMESTAMP, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from .base import Base, utc_now, as_utc
from .enums import EmailLevel


class User(Base):
    """
    Forum account as seen by the alert engine.

    Staged users are created from inbound email addresses and cannot log in;
    they are reachable by email only.
    """
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, nullable=False, unique=True)
    email = Column(Text, nullable=False, unique=True)
    name = Column(Text)

    admin = Column(Boolean, nullable=False, default=False)
    moderator = Column(Boolean, nullable=False, default=False)
    staged = Column(Boolean, nullable=False, default=False)
    is_bot = Column(Boolean, nullable=False, default=False)
    suspended_till = Column(TIMESTAMP(timezone=True))

    # Email preferences
    email_level = Column(Text, nullable=False, default=EmailLevel.ALWAYS)
    email_messages_level = Column(Text, nullable=False, default=EmailLevel.ALWAYS)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    # Relationships
    group_users = relationship("GroupUser", back_populates="user", cascade="all, delete-orphan")
    api_keys = relationship("UserApiKey", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_users_email', 'email'),
    )

    @property
    def staff(self) -> bool:
        return bool(self.admin or self.moderator)

    def is_suspended(self, now=None) -> bool:
        if self.suspended_till is None:
            return False
        return as_utc(self.suspended_till) > (now or utc_now())

    def __repr__(self):
        return f"<User {self.id} {self.username}>"


class MutedUser(Base):
    """`user` no longer wants to hear from `muted_user`."""
    __tablename__ = 'muted_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    muted_user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint('user_id', 'muted_user_id', name='uq_muted_users'),
    )


class IgnoredUser(Base):
    """Like muting, but also hides the ignored user's posts; may expire."""
    __tablename__ = 'ignored_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ignored_user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    expiring_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint('user_id', 'ignored_user_id', name='uq_ignored_users'),
    )
