#!/usr/bin/env python3
"""
Post Alert Service

Main service that turns a saved post into notifications:
- RecipientResolver works out who hears about the post and as what
- NotificationTrackerService creates or collapses the rows
- ChannelDispatcher queues push and email through the task queue

Usage:
    from notification.service import PostAlerter

    with alert_uow() as repo:
        alerter = PostAlerter(repo, config=config, queue=queue)
        post = repo.topics.get_post(post_id)
        alerter.post_created(post, is_new_topic=True)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.config_loader import AppConfig
from database.models import Group, Notification, Post, User
from database.repository import AlertRepository
from notification.dispatcher import ChannelDispatcher, GroupEmailPlan
from notification.hooks import BeforeCreateNotificationsForUsers, HookRegistry, PushFilterChain
from notification.levels import NotificationLevelChain
from notification.locks import build_post_lock
from notification.message_builder import NotificationMessageBuilder
from notification.queue import InlineTaskQueue, TaskQueue
from notification.resolvers import PostEvent, RecipientResolver, group_by_type, merge_candidates
from notification.tracker import CreationResult, NotificationRequest, NotificationTrackerService
from notification.types import NotificationType, priority

logger = logging.getLogger(__name__)


@dataclass
class AlertResult:
    """What one post event produced."""
    created: List[Notification] = field(default_factory=list)
    collapsed: List[Notification] = field(default_factory=list)
    group_email: Optional[GroupEmailPlan] = None

    def for_user(self, user_id: int) -> List[Notification]:
        return [n for n in self.created + self.collapsed if n.user_id == user_id]


class PostAlerter:
    """
    Notification fan-out for saved posts.

    One instance serves one unit of work; hooks and push filters can be
    shared between instances.
    """

    def __init__(
        self,
        repo: AlertRepository,
        config: AppConfig,
        queue: Optional[TaskQueue] = None,
        hooks: Optional[HookRegistry] = None,
        push_filters: Optional[PushFilterChain] = None,
        post_lock=None,
    ):
        self.repo = repo
        self.config = config
        self.queue = queue if queue is not None else InlineTaskQueue()
        self.hooks = hooks or HookRegistry()
        self.push_filters = push_filters or PushFilterChain()
        self.post_lock = post_lock or build_post_lock(config.queue)

        alerts = self.config.alerts
        self.level_chain = NotificationLevelChain(repo, alerts.pm_participants_watch_by_default)
        self.resolver = RecipientResolver(repo, self.level_chain, self.config.site.base_url)
        self.tracker = NotificationTrackerService(
            repo,
            self.hooks,
            excerpt_length=alerts.excerpt_length,
            edit_notification_window_hours=alerts.edit_notification_window_hours,
        )
        self.dispatcher = ChannelDispatcher(repo, self.queue, self.config, self.hooks, self.push_filters)

    def post_created(self, post: Post, is_new_topic: bool = False) -> AlertResult:
        return self.after_save_post(post, new_record=True, is_new_topic=is_new_topic)

    def post_edited(self, post: Post) -> AlertResult:
        return self.after_save_post(post, new_record=False)

    def after_save_post(self, post: Post, new_record: bool = False, is_new_topic: bool = False) -> AlertResult:
        """
        Resolve, create and dispatch notifications for a saved post.

        Args:
            post: The post that was created or revised
            new_record: True for a new post, False for a revision
            is_new_topic: True when the post opened its topic

        Returns:
            AlertResult with created and collapsed rows
        """
        if post.deleted_at is not None:
            logger.info(f"Post {post.id} is deleted; no alerts")
            return AlertResult()

        with self.post_lock.hold(post.id):
            return self._process(PostEvent(post=post, new_record=new_record, is_new_topic=is_new_topic))

    def _process(self, event: PostEvent) -> AlertResult:
        post = event.post
        ctx = self.resolver.build_context(event)
        candidates = merge_candidates(self.resolver.resolve(ctx))

        batches = group_by_type(candidates)
        for notification_type in sorted(batches, key=priority):
            self.hooks.emit(BeforeCreateNotificationsForUsers(
                notification_type=int(notification_type),
                users=[c.user for c in batches[notification_type]],
                post=post,
            ))

        excerpt = NotificationMessageBuilder.build_excerpt(post, self.config.alerts.excerpt_length)
        result = AlertResult()
        users: Dict[int, User] = {}
        for candidate in candidates:
            outcome = self.create_notification(
                candidate.user,
                candidate.notification_type,
                post,
                notifier=ctx.notifier,
                group=candidate.group,
                excerpt=excerpt,
            )
            if outcome is None:
                continue
            users[candidate.user.id] = candidate.user
            if outcome.created:
                result.created.append(outcome.notification)
            else:
                result.collapsed.append(outcome.notification)

        covered = set()
        if event.new_record:
            result.group_email = self.dispatcher.dispatch_group_email(post)
            if result.group_email is not None:
                covered = result.group_email.addresses | {result.group_email.group.email_username.lower()}

        self.dispatcher.dispatch_user_emails(post, result.created, users, covered)
        self.dispatcher.flush_push()

        logger.info(
            f"Post {post.id}: {len(result.created)} notifications created, {len(result.collapsed)} collapsed"
        )
        return result

    def create_notification(
        self,
        user: User,
        notification_type: int,
        post: Post,
        notifier: Optional[User] = None,
        group: Optional[Group] = None,
        excerpt: Optional[str] = None,
        **opts: Any,
    ) -> Optional[CreationResult]:
        """
        Create (or collapse) one notification and alert the user about it.

        Returns None when the notification is suppressed.
        """
        notifier = notifier or post.user
        if user.is_bot:
            return None
        if self.repo.users.silencing_user_ids(notifier.id, [user.id]):
            logger.info(f"User {user.id} muted or ignored {notifier.id}; no notification")
            return None

        request = NotificationRequest(
            user=user,
            notification_type=NotificationType(notification_type),
            post=post,
            notifier=notifier,
            group=group,
            excerpt=excerpt,
            opts=opts,
        )
        outcome = self.tracker.create_notification(request)
        if (
            outcome is not None
            and outcome.created
            and request.notification_type != NotificationType.GROUP_MESSAGE_SUMMARY
        ):
            self.create_notification_alert(
                user,
                post,
                notification_type,
                excerpt=outcome.notification.data.get('excerpt', ''),
                username=notifier.username,
                topic_title=outcome.notification.data.get('topic_title'),
            )
        return outcome

    def create_notification_alert(
        self,
        user: User,
        post: Post,
        notification_type: int,
        excerpt: Optional[str] = None,
        username: Optional[str] = None,
        topic_title: Optional[str] = None,
    ):
        """Fire `pre_notification_alert` and queue push for one user."""
        return self.dispatcher.create_notification_alert(
            user,
            post,
            notification_type,
            excerpt=excerpt if excerpt is not None else NotificationMessageBuilder.build_excerpt(post),
            username=username or post.user.username,
            topic_title=topic_title,
        )

    def flush(self) -> int:
        """Enqueue push batches built by direct `create_notification_alert` calls."""
        return self.dispatcher.flush_push()
