from typing import List

from sqlalchemy import Column, Text, Integer, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship

from .base import Base, utc_now


def split_addresses(value) -> List[str]:
    """Split a `;`-separated address list into lower-cased addresses."""
    if not value:
        return []
    return [a.strip().lower() for a in value.split(';') if a.strip()]


class IncomingEmail(Base):
    """
    Inbound email that created a post. The original To/Cc lists are kept so
    outbound email can avoid re-sending to people who already received it.
    """
    __tablename__ = 'incoming_emails'

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey('posts.id', ondelete='CASCADE'), nullable=False, unique=True)
    topic_id = Column(Integer, ForeignKey('topics.id', ondelete='CASCADE'), nullable=True)
    message_id = Column(Text)
    from_address = Column(Text)
    to_addresses = Column(Text)
    cc_addresses = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    post = relationship("Post", back_populates="incoming_email")

    @property
    def to_addresses_split(self) -> List[str]:
        return split_addresses(self.to_addresses)

    @property
    def cc_addresses_split(self) -> List[str]:
        return split_addresses(self.cc_addresses)

    def contains_address(self, address: str) -> bool:
        if not address:
            return False
        address = address.lower()
        return address in self.to_addresses_split or address in self.cc_addresses_split
