#!/usr/bin/env python3
"""
Notification Tracker - Creation and Deduplication

Persists in-app notification rows for resolved candidates:
- Collapsing types update the single unread row of their class
- Other types are granted at most once per cause (user, post, type)
- Edit notifications are throttled per post and editor

Usage:
    from notification.tracker import NotificationTrackerService

    tracker = NotificationTrackerService(repo, hooks)
    result = tracker.create_notification(
        NotificationRequest(user, NotificationType.POSTED, post, notifier=author)
    )
    if result and result.created:
        dispatcher.create_notification_alert(...)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from database.models import Group, Notification, Post, User, as_utc, utc_now
from database.repository import AlertRepository
from notification.exceptions import AlertException
from notification.hooks import BeforeCreateNotification, HookRegistry
from notification.message_builder import NotificationMessageBuilder
from notification.payloads import (
    TopicReplyData,
    build_notification_data,
    dump_notification_data,
    parse_notification_data,
)
from notification.types import (
    MENTION_TYPES,
    NotificationType,
    REPLY_SHADOWED_TYPES,
    TOPIC_REPLY_TYPES,
    collapse_key,
    collapses,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationRequest:
    """One (user, type) the creator is asked to grant for a post."""
    user: User
    notification_type: NotificationType
    post: Post
    notifier: User
    group: Optional[Group] = None
    excerpt: Optional[str] = None
    opts: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreationResult:
    notification: Notification
    created: bool  # False when an unread row was collapsed into


class DeduplicationStrategy(ABC):
    """
    Abstract strategy deciding whether a cause may be granted again.

    Strategies see every earlier row pointing the user at the same post.
    """

    @abstractmethod
    def should_allow_notification(self, existing: List[Notification], request: NotificationRequest) -> bool:
        pass


class GrantedCauseStrategy(DeduplicationStrategy):
    """
    A cause is granted once: a revision that keeps the same mentions,
    quotes and links does not notify again. Users already told about the
    post as a reply are not also told it mentions, quotes or links them.
    """

    def should_allow_notification(self, existing: List[Notification], request: NotificationRequest) -> bool:
        types = {n.notification_type for n in existing}
        if request.notification_type in types:
            return False
        if request.notification_type in MENTION_TYPES and types & MENTION_TYPES:
            return False
        if request.notification_type in REPLY_SHADOWED_TYPES and NotificationType.REPLIED in types:
            return False
        return True


class EditThrottleStrategy(DeduplicationStrategy):
    """One `edited` per post and editor inside the window."""

    def __init__(self, window_hours: int = 24):
        self.window = timedelta(hours=window_hours)

    def should_allow_notification(self, existing: List[Notification], request: NotificationRequest) -> bool:
        previous = [n for n in existing if n.notification_type == NotificationType.EDITED]
        if not previous:
            return True

        last = previous[0]
        if (last.data or {}).get('editor_id') != request.notifier.id:
            return True

        age = utc_now() - as_utc(last.created_at)
        if age < self.window:
            logger.info(f"Edit notification for user {request.user.id} on post {request.post.id} throttled")
            return False
        return True


class NotificationTrackerService:
    """
    Creates or collapses notification rows.

    Must run inside the post's unit of work; the unique (user_id,
    collapse_key) constraint resolves concurrent creators.
    """

    def __init__(
        self,
        repo: AlertRepository,
        hooks: Optional[HookRegistry] = None,
        excerpt_length: int = 400,
        edit_notification_window_hours: int = 24,
        cause_strategy: Optional[DeduplicationStrategy] = None,
        edit_strategy: Optional[DeduplicationStrategy] = None,
    ):
        self.repo = repo
        self.hooks = hooks or HookRegistry()
        self.excerpt_length = excerpt_length
        self.cause_strategy = cause_strategy or GrantedCauseStrategy()
        self.edit_strategy = edit_strategy or EditThrottleStrategy(edit_notification_window_hours)

    def should_create(self, request: NotificationRequest) -> bool:
        # Collapsing types are bounded by their single unread row
        if collapses(request.notification_type):
            return True

        post = request.post
        existing = self.repo.notifications.for_post(request.user.id, post.topic_id, post.post_number)
        if request.notification_type == NotificationType.EDITED:
            return self.edit_strategy.should_allow_notification(existing, request)
        return self.cause_strategy.should_allow_notification(existing, request)

    def create_notification(self, request: NotificationRequest) -> Optional[CreationResult]:
        if not self.should_create(request):
            logger.info(
                f"Suppressing duplicate {request.notification_type.name.lower()} for user {request.user.id} "
                f"on post {request.post.id}"
            )
            return None

        key = self._collapse_key(request)
        if key is not None:
            existing = self.repo.notifications.find_unread_by_collapse_key(request.user.id, key, for_update=True)
            if existing is not None:
                return CreationResult(self._collapse_into(existing, request), created=False)

        self.hooks.emit(BeforeCreateNotification(
            user=request.user,
            notification_type=int(request.notification_type),
            post=request.post,
            opts=dict(request.opts),
        ))

        # Group summaries are about an inbox, not a post
        summary = request.notification_type == NotificationType.GROUP_MESSAGE_SUMMARY
        notification = Notification(
            user_id=request.user.id,
            notification_type=int(request.notification_type),
            topic_id=None if summary else request.post.topic_id,
            post_number=None if summary else request.post.post_number,
            data=dump_notification_data(self._build_data(request)),
            collapse_key=key,
            read=False,
        )

        if key is None:
            self.repo.db.add(notification)
            self.repo.db.flush()
        elif not self.repo.notifications.try_insert(notification):
            # Lost the race for the unread row: collapse into the winner's
            existing = self.repo.notifications.find_unread_by_collapse_key(request.user.id, key, for_update=True)
            if existing is None:
                raise AlertException(f"Collapse key {key} conflicted but no unread row exists")
            return CreationResult(self._collapse_into(existing, request), created=False)

        logger.info(
            f"Created {request.notification_type.name.lower()} notification {notification.id} "
            f"for user {request.user.id}"
        )
        return CreationResult(notification, created=True)

    def _collapse_key(self, request: NotificationRequest) -> Optional[str]:
        group_id = request.group.id if request.group is not None else None
        return collapse_key(request.notification_type, request.post.topic_id, group_id)

    def _topic_title(self, post: Post) -> str:
        topic = post.topic
        if topic.private_message and topic.original_title:
            return topic.original_title
        return topic.title

    def _build_data(self, request: NotificationRequest):
        post = request.post
        notification_type = request.notification_type

        if notification_type == NotificationType.GROUP_MESSAGE_SUMMARY:
            return build_notification_data(
                notification_type,
                group_id=request.group.id,
                group_name=request.group.name,
                inbox_count=1,
                username=request.user.username,
            )

        fields = dict(
            topic_title=self._topic_title(post),
            display_username=request.notifier.username,
            original_post_id=post.id,
            original_post_type=post.post_type,
            original_username=request.notifier.username,
            excerpt=request.excerpt or NotificationMessageBuilder.build_excerpt(post, self.excerpt_length),
        )
        if notification_type == NotificationType.GROUP_MENTIONED:
            fields.update(group_id=request.group.id, group_name=request.group.name)
        elif notification_type == NotificationType.EDITED:
            fields.update(editor_id=request.notifier.id)
        elif notification_type in TOPIC_REPLY_TYPES:
            fields.update(latest_post_number=post.post_number, replies_count=1)
        return build_notification_data(notification_type, **fields)

    def _collapse_into(self, notification: Notification, request: NotificationRequest) -> Notification:
        current = parse_notification_data(notification.data)

        if request.notification_type == NotificationType.GROUP_MESSAGE_SUMMARY:
            current.inbox_count += 1
            notification.data = dump_notification_data(current)
            notification.updated_at = utc_now()
            self.repo.db.flush()
            logger.info(f"Collapsed group summary for user {request.user.id} (inbox count {current.inbox_count})")
            return notification

        post = request.post
        replies_count = (current.replies_count if isinstance(current, TopicReplyData) else 1) + 1
        data = self._build_data(request)
        data.replies_count = replies_count
        data.latest_post_number = post.post_number
        if replies_count > 1:
            data.display_username = f"{replies_count} replies"

        notification.notification_type = int(request.notification_type)
        notification.data = dump_notification_data(data)
        notification.post_number = self._first_unread_post_number(request.user, post, notification.post_number)
        notification.updated_at = utc_now()
        self.repo.db.flush()

        logger.info(
            f"Collapsed {request.notification_type.name.lower()} into notification {notification.id} "
            f"for user {request.user.id} ({replies_count} replies)"
        )
        return notification

    def _first_unread_post_number(self, user: User, post: Post, fallback: Optional[int]) -> Optional[int]:
        last_read = self.repo.levels.last_read_post_number(user.id, post.topic_id)
        first_unread = self.repo.topics.first_unread_post(post.topic_id, last_read, include_whispers=user.staff)
        if first_unread is not None:
            return first_unread.post_number
        return fallback if fallback is not None else post.post_number
