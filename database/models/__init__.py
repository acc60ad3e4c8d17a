from .base import Base, utc_now, as_utc
from .enums import PostType, Archetype, NotificationLevel, MentionableLevel, EmailLevel
from .user import User, MutedUser, IgnoredUser
from .group import Group, GroupUser
from .topic import Category, CategoryGroup, Tag, Topic, TopicAllowedUser, TopicAllowedGroup, topic_tags
from .post import Post
from .preference import TopicUser, CategoryUser, TagUser
from .notification import Notification
from .email import IncomingEmail, split_addresses
from .push import UserApiKey, DoNotDisturbTiming

__all__ = [
    'Base',
    'utc_now',
    'as_utc',
    'PostType',
    'Archetype',
    'NotificationLevel',
    'MentionableLevel',
    'EmailLevel',
    'User',
    'MutedUser',
    'IgnoredUser',
    'Group',
    'GroupUser',
    'Category',
    'CategoryGroup',
    'Tag',
    'Topic',
    'TopicAllowedUser',
    'TopicAllowedGroup',
    'topic_tags',
    'Post',
    'TopicUser',
    'CategoryUser',
    'TagUser',
    'Notification',
    'IncomingEmail',
    'split_addresses',
    'UserApiKey',
    'DoNotDisturbTiming',
]
