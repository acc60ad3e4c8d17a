"""
Channel dispatcher.

Runs after rows are persisted and decides what leaves the engine:
- push: alert payload, push filter chain, one batched task per push URL
- group SMTP: a single delayed email sent as the topic's group mailbox
- user email: per-recipient notification email for everyone else

Nothing here waits for delivery; transports run in `notification.tasks`.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from core.config_loader import AppConfig
from database.models import EmailLevel, Group, Notification, Post, PostType, User
from database.repository import AlertRepository
from notification.hooks import HookRegistry, PreNotificationAlert, PushFilterChain
from notification.message_builder import NotificationMessageBuilder
from notification.payloads import AlertPayload, GroupSmtpEmailTask, PushNotificationItem, UserEmailTask
from notification.queue import (
    TASK_GROUP_SMTP_EMAIL,
    TASK_PUSH_NOTIFICATION,
    TASK_USER_EMAIL,
    TaskQueue,
)
from notification.types import NotificationType

logger = logging.getLogger(__name__)

PRIVATE_MESSAGE_EMAIL_TYPES = {
    NotificationType.PRIVATE_MESSAGE,
    NotificationType.GROUP_MESSAGE_SUMMARY,
}

NON_EMAILED_TYPES = {
    NotificationType.EDITED,
    NotificationType.CUSTOM,
}


@dataclass
class GroupEmailPlan:
    group: Group
    to_address: str
    cc_addresses: List[str] = field(default_factory=list)

    @property
    def addresses(self) -> Set[str]:
        return {self.to_address, *self.cc_addresses}


class ChannelDispatcher:
    def __init__(
        self,
        repo: AlertRepository,
        queue: TaskQueue,
        config: AppConfig,
        hooks: Optional[HookRegistry] = None,
        push_filters: Optional[PushFilterChain] = None,
    ):
        self.repo = repo
        self.queue = queue
        self.config = config
        self.hooks = hooks or HookRegistry()
        self.push_filters = push_filters or PushFilterChain()
        self._pending_push: Dict[str, List[PushNotificationItem]] = OrderedDict()

    # Push

    def create_notification_alert(
        self,
        user: User,
        post: Post,
        notification_type: int,
        excerpt: str,
        username: str,
        topic_title: Optional[str] = None,
    ) -> Optional[AlertPayload]:
        """
        Alert a user about a new row: fire `pre_notification_alert` and
        queue push items. Suspended users are not alerted at all.
        """
        if user.is_suspended():
            logger.info(f"User {user.id} is suspended; no alert")
            return None

        payload = NotificationMessageBuilder.build_alert_payload(
            notification_type,
            post,
            topic_title or post.topic.title,
            username,
            excerpt,
        )
        self.hooks.emit(PreNotificationAlert(user=user, payload=payload))

        if not self.config.push.enabled:
            return payload
        if self.repo.users.in_do_not_disturb(user.id):
            logger.info(f"User {user.id} is in do not disturb; skipping push")
            return payload
        if not self.push_filters.allows(user, payload):
            return payload

        allowed = set(self.config.push.allowed_push_urls)
        for client in self.repo.users.push_clients(user.id):
            if client.push_url not in allowed:
                logger.info(f"Push URL of client {client.client_id} is not allowed; skipping")
                continue
            item = NotificationMessageBuilder.build_push_item(payload, client.client_id, self.config.site.base_url)
            self._pending_push.setdefault(client.push_url, []).append(item)
        return payload

    def flush_push(self) -> int:
        """Enqueue one push task per URL for everything batched so far."""
        count = 0
        for push_url, items in self._pending_push.items():
            batch = NotificationMessageBuilder.build_push_batch(
                items,
                secret_key=self.config.push.api_secret_key,
                base_url=self.config.site.base_url,
                site_title=self.config.site.title,
                site_description=self.config.site.description,
            )
            self.queue.enqueue(TASK_PUSH_NOTIFICATION, {
                'push_url': push_url,
                'payload': batch.model_dump(mode='json'),
            })
            count += 1
        self._pending_push.clear()
        return count

    # Group SMTP

    def smtp_group_for(self, post: Post) -> Optional[Group]:
        """Oldest allowed group of the topic that can send email."""
        topic = post.topic
        if not topic.private_message or not self.config.email.enable_smtp:
            return None
        if post.post_type != PostType.REGULAR:
            return None
        for group_id in self.repo.topics.allowed_group_ids(topic.id):
            group = self.repo.users.get_group(group_id)
            if group is not None and group.smtp_configured:
                return group
        return None

    def plan_group_email(self, post: Post) -> Optional[GroupEmailPlan]:
        group = self.smtp_group_for(post)
        if group is None:
            return None

        topic = post.topic
        author = post.user
        excluded = {author.email.lower(), group.email_username.lower()}
        incoming = self.repo.topics.incoming_email_for_post(post.id)
        if incoming is not None:
            # Already on the email that created this post
            excluded.update(incoming.to_addresses_split)
            excluded.update(incoming.cc_addresses_split)

        recipients: List[str] = []
        for user in self.repo.users.get_users_ordered(self.repo.topics.allowed_user_ids(topic.id)):
            address = user.email.lower()
            if user.is_bot or user.id == author.id or address in excluded or address in recipients:
                continue
            recipients.append(address)

        first_post = self.repo.topics.first_post(topic.id)
        original = self.repo.topics.incoming_email_for_post(first_post.id) if first_post else None
        if original is not None:
            for address in original.cc_addresses_split:
                if address not in excluded and address not in recipients:
                    recipients.append(address)

        if not recipients:
            logger.info(f"No group email recipients left for post {post.id}")
            return None
        return GroupEmailPlan(group=group, to_address=recipients[0], cc_addresses=recipients[1:])

    def dispatch_group_email(self, post: Post) -> Optional[GroupEmailPlan]:
        plan = self.plan_group_email(post)
        if plan is None:
            return None

        generation = self.repo.topics.bump_group_email_generation(post.topic_id)
        task = GroupSmtpEmailTask(
            group_id=plan.group.id,
            post_id=post.id,
            topic_id=post.topic_id,
            email=plan.to_address,
            cc_emails=plan.cc_addresses,
            generation=generation,
        )
        self.queue.enqueue(
            TASK_GROUP_SMTP_EMAIL,
            task.model_dump(mode='json'),
            delay=self.config.email.personal_email_time_window_seconds,
        )
        logger.info(f"Scheduled group email from {plan.group.name} for post {post.id} (generation {generation})")
        return plan

    # Per-user email

    def wants_email(self, user: User, notification_type: int) -> bool:
        if notification_type in NON_EMAILED_TYPES:
            return False
        if notification_type in PRIVATE_MESSAGE_EMAIL_TYPES:
            return user.email_messages_level != EmailLevel.NEVER
        return user.email_level != EmailLevel.NEVER

    def dispatch_user_emails(
        self,
        post: Post,
        notifications: List[Notification],
        users: Dict[int, User],
        covered_addresses: Set[str],
    ) -> int:
        incoming = self.repo.topics.incoming_email_for_post(post.id)
        count = 0
        for notification in notifications:
            user = users[notification.user_id]
            address = user.email.lower()
            if address in covered_addresses:
                continue
            if incoming is not None and incoming.contains_address(address):
                continue
            if not self.wants_email(user, notification.notification_type):
                continue
            if user.is_suspended() or self.repo.users.in_do_not_disturb(user.id):
                continue

            task = UserEmailTask(
                user_id=user.id,
                notification_id=notification.id,
                notification_type=notification.notification_type,
                post_id=post.id,
            )
            self.queue.enqueue(
                TASK_USER_EMAIL,
                task.model_dump(mode='json'),
                delay=self.config.email.personal_email_time_window_seconds,
            )
            count += 1
        return count
