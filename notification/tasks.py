"""
Task functions executed by the RQ worker (or inline in sync mode).

They must be at module level for RQ. Each task is idempotent enough for
at-least-once delivery: stale group emails are skipped by generation and
emails for notifications already read are skipped. Transport failures
raise DeliveryError so the queue's retry policy applies.
"""

import logging
from typing import Any, Dict, Optional

from core.config_loader import AppConfig, load_config
from database.database import SessionScope, db_session_scope
from database.repository import AlertRepository
from notification.channels import EmailChannel, GroupSmtpEmailChannel, NotificationChannelFactory
from notification.exceptions import PostNotFoundException
from notification.locks import HeldPostLock, build_post_lock
from notification.message_builder import NotificationMessageBuilder
from notification.payloads import GroupSmtpEmailTask, PushBatchPayload, UserEmailTask
from notification.queue import (
    TASK_GROUP_SMTP_EMAIL,
    TASK_POST_ALERT,
    TASK_PUSH_NOTIFICATION,
    TASK_USER_EMAIL,
    InlineTaskQueue,
    build_task_queue,
)

logger = logging.getLogger(__name__)

_config: Optional[AppConfig] = None


def _get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def process_push_task(task_data: Dict[str, Any], config: Optional[AppConfig] = None, **_) -> int:
    """POST one batched payload to one push endpoint. Returns the item count."""
    config = config or _get_config()
    push_url = task_data['push_url']
    payload = PushBatchPayload(**task_data['payload'])

    channel = NotificationChannelFactory.get_channel('push', timeout=config.push.request_timeout_seconds)
    channel.send(push_url, payload)
    return len(payload.notifications)


def process_group_smtp_task(
    task_data: Dict[str, Any],
    config: Optional[AppConfig] = None,
    session_scope: SessionScope = db_session_scope,
) -> bool:
    """
    Send the group email for a post unless a newer one was scheduled for
    the same topic since. Returns True when an email was sent.
    """
    task = GroupSmtpEmailTask(**task_data)
    config = config or _get_config()

    with session_scope() as session:
        repo = AlertRepository(session)
        current = repo.topics.group_email_generation(task.topic_id)
        if current != task.generation:
            logger.info(
                f"Skipping group email for post {task.post_id}: generation {task.generation} "
                f"superseded by {current}"
            )
            return False

        group = repo.users.get_group(task.group_id)
        post = repo.topics.get_post(task.post_id)
        if group is None or post is None or post.deleted_at is not None:
            logger.info(f"Skipping group email for post {task.post_id}: post or group is gone")
            return False

        message = NotificationMessageBuilder.build_group_email(
            group,
            post.topic,
            post,
            to_address=task.email,
            cc_addresses=task.cc_emails,
            base_url=config.site.base_url,
        )
        channel = GroupSmtpEmailChannel(group)

    channel.send(message)
    return True


def process_user_email_task(
    task_data: Dict[str, Any],
    config: Optional[AppConfig] = None,
    session_scope: SessionScope = db_session_scope,
) -> bool:
    """Email one user about one notification, unless they already read it."""
    task = UserEmailTask(**task_data)
    config = config or _get_config()

    with session_scope() as session:
        repo = AlertRepository(session)
        notification = repo.notifications.get(task.notification_id)
        user = repo.users.get_user(task.user_id)
        post = repo.topics.get_post(task.post_id)
        if notification is None or user is None or post is None:
            logger.info(f"Skipping email for notification {task.notification_id}: record is gone")
            return False
        if notification.read:
            logger.info(f"Skipping email for notification {task.notification_id}: already read")
            return False

        message = NotificationMessageBuilder.build_user_email(
            user,
            task.notification_type,
            post,
            site_title=config.site.title,
            from_address=config.site.notification_email,
            base_url=config.site.base_url,
            excerpt_length=config.alerts.excerpt_length,
        )

    channel = EmailChannel(
        smtp_server=config.email.smtp_server,
        smtp_port=config.email.smtp_port,
        smtp_username=config.email.smtp_username,
        smtp_password=config.email.smtp_password,
    )
    channel.send(message)
    return True


def process_post_alert_task(
    task_data: Dict[str, Any],
    config: Optional[AppConfig] = None,
    session_scope: SessionScope = db_session_scope,
) -> int:
    """
    Entry point for a saved post: {'post_id', 'new_record', 'is_new_topic'}.

    Returns the number of notifications created. The post lock is held
    until the transaction has committed, so a redelivered task sees every
    row the first one granted. In sync mode the delivery tasks run after
    the commit.
    """
    from notification.service import PostAlerter

    config = config or _get_config()
    queue = build_task_queue(config.queue)
    post_id = task_data['post_id']

    with build_post_lock(config.queue).hold(post_id):
        with session_scope() as session:
            repo = AlertRepository(session)
            post = repo.topics.get_post(post_id)
            if post is None:
                raise PostNotFoundException(f"Post {post_id} not found")

            alerter = PostAlerter(repo, config=config, queue=queue, post_lock=HeldPostLock())
            result = alerter.after_save_post(
                post,
                new_record=task_data.get('new_record', True),
                is_new_topic=task_data.get('is_new_topic', False),
            )
            created = len(result.created)

    if isinstance(queue, InlineTaskQueue):
        queue.handler_kwargs = {'config': config, 'session_scope': session_scope}
        queue.drain()
    return created


TASK_HANDLERS = {
    TASK_PUSH_NOTIFICATION: process_push_task,
    TASK_GROUP_SMTP_EMAIL: process_group_smtp_task,
    TASK_USER_EMAIL: process_user_email_task,
    TASK_POST_ALERT: process_post_alert_task,
}
