from sqlalchemy import Column, Text, Boolean, Integer, TIMESTAMP, ForeignKey, UniqueConstraint, Index, Table
from sqlalchemy.orm import relationship

from .base import Base, utc_now
from .enums import Archetype


topic_tags = Table(
    'topic_tags',
    Base.metadata,
    Column('topic_id', Integer, ForeignKey('topics.id', ondelete='CASCADE'), primary_key=True),
    Column('tag_id', Integer, ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
)


class Category(Base):
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)

    # Restricted categories are readable by staff and members of their groups
    read_restricted = Column(Boolean, nullable=False, default=False)
    # Staged users never get notifications from a mirrored mailing list
    mailinglist_mirror = Column(Boolean, nullable=False, default=False)

    category_groups = relationship("CategoryGroup", cascade="all, delete-orphan")

    @property
    def group_ids(self):
        return [cg.group_id for cg in self.category_groups]


class CategoryGroup(Base):
    __tablename__ = 'category_groups'

    id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey('categories.id', ondelete='CASCADE'), nullable=False)
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), nullable=False)

    __table_args__ = (
        UniqueConstraint('category_id', 'group_id', name='uq_category_groups'),
    )


class Tag(Base):
    __tablename__ = 'tags'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True)


class Topic(Base):
    """
    Ordered sequence of posts. Private messages carry an ACL of allowed users
    and allowed groups.
    """
    __tablename__ = 'topics'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    # Title before the first revision; private message notifications keep it
    original_title = Column(Text)
    archetype = Column(Text, nullable=False, default=Archetype.REGULAR)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    category_id = Column(Integer, ForeignKey('categories.id'), nullable=True)
    visible = Column(Boolean, nullable=False, default=True)

    # Bumped for every scheduled group SMTP send; only the newest one fires
    group_email_generation = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    # Relationships
    user = relationship("User")
    category = relationship("Category")
    tags = relationship("Tag", secondary=topic_tags)
    topic_allowed_users = relationship(
        "TopicAllowedUser",
        order_by=lambda: [TopicAllowedUser.created_at, TopicAllowedUser.id],
        cascade="all, delete-orphan",
    )
    topic_allowed_groups = relationship(
        "TopicAllowedGroup",
        order_by=lambda: [TopicAllowedGroup.created_at, TopicAllowedGroup.id],
        cascade="all, delete-orphan",
    )

    @property
    def private_message(self) -> bool:
        return self.archetype == Archetype.PRIVATE_MESSAGE

    @property
    def allowed_users(self):
        return [tau.user for tau in self.topic_allowed_users]

    @property
    def allowed_groups(self):
        return [tag.group for tag in self.topic_allowed_groups]

    def __repr__(self):
        return f"<Topic {self.id} {self.title!r}>"


class TopicAllowedUser(Base):
    __tablename__ = 'topic_allowed_users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic_id = Column(Integer, ForeignKey('topics.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('topic_id', 'user_id', name='uq_topic_allowed_users'),
    )


class TopicAllowedGroup(Base):
    __tablename__ = 'topic_allowed_groups'

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic_id = Column(Integer, ForeignKey('topics.id', ondelete='CASCADE'), nullable=False)
    group_id = Column(Integer, ForeignKey('groups.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    group = relationship("Group")

    __table_args__ = (
        UniqueConstraint('topic_id', 'group_id', name='uq_topic_allowed_groups'),
        Index('idx_topic_allowed_groups_group', 'group_id'),
    )
