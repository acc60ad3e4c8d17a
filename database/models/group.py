from sqlalchemy import Column, Text, Boolean, Integer, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utc_now
from .enums import MentionableLevel, NotificationLevel


class Group(Base):
    """
    User group. Groups can be @-mentioned, can own a private message inbox
    and can send email as their own mailbox when SMTP is configured.
    """
    __tablename__ = 'groups'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)
    mentionable_level = Column(Integer, nullable=False, default=int(MentionableLevel.NOBODY))

    # Group mailbox
    smtp_enabled = Column(Boolean, nullable=False, default=False)
    smtp_server = Column(Text)
    smtp_port = Column(Integer)
    smtp_ssl = Column(Boolean, nullable=False, default=True)
    email_username = Column(Text)  # Sending address
    email_password = Column(Text)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    group_users = relationship("GroupUser", back_populates="group", cascade="all, delete-orphan")

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_enabled and self.smtp_server and self.email_username)

    def __repr__(self):
        return f"<Group {self.id} {self.name}>"


class GroupUser(Base):
    __tablename__ = 'group_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    owner = Column(Boolean, nullable=False, default=False)
    notification_level = Column(Integer, nullable=False, default=int(NotificationLevel.WATCHING))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    group = relationship("Group", back_populates="group_users")
    user = relationship("User", back_populates="group_users")

    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='uq_group_users'),
    )
