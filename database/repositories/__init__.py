from database.repositories.base import BaseRepository
from database.repositories.users import UserRepository
from database.repositories.topics import TopicRepository
from database.repositories.levels import LevelRepository
from database.repositories.notifications import NotificationRepository

__all__ = [
    'BaseRepository',
    'UserRepository',
    'TopicRepository',
    'LevelRepository',
    'NotificationRepository',
]
