from sqlalchemy import Column, Text, Integer, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import Base, utc_now, as_utc


class UserApiKey(Base):
    """A registered client application; clients with a push URL receive pushes."""
    __tablename__ = 'user_api_keys'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    client_id = Column(Text, nullable=False)
    application_name = Column(Text)
    push_url = Column(Text)
    revoked_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    user = relationship("User", back_populates="api_keys")

    __table_args__ = (
        Index('idx_user_api_keys_user', 'user_id'),
    )


class DoNotDisturbTiming(Base):
    __tablename__ = 'do_not_disturb_timings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    starts_at = Column(TIMESTAMP(timezone=True), nullable=False)
    ends_at = Column(TIMESTAMP(timezone=True), nullable=False)

    def covers(self, moment) -> bool:
        return as_utc(self.starts_at) <= moment < as_utc(self.ends_at)
