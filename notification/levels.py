"""
Notification level lookup chain.

A user's effective level on a topic is decided by the first link of the
chain that has an opinion:

1. the explicit per-topic level (TopicUser), which always wins when set;
2. the highest derived level from the topic's category, its tags and the
   user's memberships in the topic's allowed groups;
3. the default: watching for direct participants of a private message,
   regular for everyone else.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from database.models import NotificationLevel, Topic
from database.repository import AlertRepository

logger = logging.getLogger(__name__)


@dataclass
class TopicLevelSnapshot:
    """Every level relevant to one topic, loaded once per post event."""
    topic_levels: Dict[int, int] = field(default_factory=dict)
    category_levels: Dict[int, int] = field(default_factory=dict)
    tag_levels: Dict[int, int] = field(default_factory=dict)
    group_levels: Dict[int, int] = field(default_factory=dict)
    direct_participants: Set[int] = field(default_factory=set)

    def derived(self, user_id: int) -> Optional[int]:
        levels = [
            scope[user_id]
            for scope in (self.category_levels, self.tag_levels, self.group_levels)
            if user_id in scope
        ]
        return max(levels) if levels else None

    def candidate_user_ids(self) -> Set[int]:
        ids = set(self.topic_levels)
        ids.update(self.category_levels)
        ids.update(self.tag_levels)
        ids.update(self.group_levels)
        ids.update(self.direct_participants)
        return ids


class NotificationLevelChain:
    def __init__(self, repo: AlertRepository, pm_participants_watch_by_default: bool = True):
        self.repo = repo
        self.pm_participants_watch_by_default = pm_participants_watch_by_default

    def snapshot(self, topic: Topic, user_ids: Optional[Iterable[int]] = None) -> TopicLevelSnapshot:
        user_ids = list(user_ids) if user_ids is not None else None
        group_ids = self.repo.topics.allowed_group_ids(topic.id)
        direct = set(self.repo.topics.allowed_user_ids(topic.id)) if topic.private_message else set()
        if user_ids is not None:
            direct &= set(user_ids)
        return TopicLevelSnapshot(
            topic_levels=self.repo.levels.topic_levels(topic.id, user_ids),
            category_levels=self.repo.levels.category_levels(topic.category_id, user_ids),
            tag_levels=self.repo.levels.tag_levels([t.id for t in topic.tags], user_ids),
            group_levels=self.repo.levels.group_levels(group_ids, user_ids),
            direct_participants=direct,
        )

    def level_from(self, snapshot: TopicLevelSnapshot, user_id: int) -> int:
        if user_id in snapshot.topic_levels:
            return snapshot.topic_levels[user_id]

        derived = snapshot.derived(user_id)
        if derived is not None:
            return derived

        if user_id in snapshot.direct_participants and self.pm_participants_watch_by_default:
            return NotificationLevel.WATCHING
        return NotificationLevel.REGULAR

    def resolve(self, user_id: int, topic: Topic) -> int:
        """Effective level of one user on one topic."""
        return self.level_from(self.snapshot(topic, [user_id]), user_id)

    def first_post_watchers(self, topic: Topic) -> List[int]:
        """Users watching first posts through the category, a tag or an allowed group."""
        snapshot = self.snapshot(topic)
        wanted = NotificationLevel.WATCHING_FIRST_POST
        ids = {
            uid
            for scope in (snapshot.category_levels, snapshot.tag_levels, snapshot.group_levels)
            for uid, level in scope.items()
            if level == wanted
        }
        return sorted(ids)
