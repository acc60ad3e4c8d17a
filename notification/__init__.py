"""
Notification Module

Post alert engine: works out who hears about a saved post, creates or
collapses their in-app notifications and queues push and email delivery.

Usage:
    from notification import PostAlerter, PushFilterChain

    push_filters = PushFilterChain()
    push_filters.register(lambda user, payload: payload.notification_type != 9)

    alerter = PostAlerter(repo, config=config, push_filters=push_filters)
    alerter.post_created(post, is_new_topic=False)
"""

from notification.types import (
    NotificationType,
    PRIORITY_ORDER,
    collapse_key,
)

from notification.hooks import (
    HookRegistry,
    PushFilterChain,
    BeforeCreateNotificationsForUsers,
    BeforeCreateNotification,
    PreNotificationAlert,
)

from notification.channels import (
    NotificationChannel,
    PushChannel,
    EmailChannel,
    GroupSmtpEmailChannel,
    NotificationChannelFactory,
)

from notification.tracker import (
    NotificationTrackerService,
    NotificationRequest,
    GrantedCauseStrategy,
    EditThrottleStrategy,
)

from notification.queue import (
    TaskQueue,
    RQTaskQueue,
    InlineTaskQueue,
    build_task_queue,
)

from notification.service import (
    PostAlerter,
    AlertResult,
)

from notification.exceptions import (
    AlertException,
    DeliveryError,
)

__all__ = [
    # Types
    'NotificationType',
    'PRIORITY_ORDER',
    'collapse_key',
    # Hooks
    'HookRegistry',
    'PushFilterChain',
    'BeforeCreateNotificationsForUsers',
    'BeforeCreateNotification',
    'PreNotificationAlert',
    # Channels
    'NotificationChannel',
    'PushChannel',
    'EmailChannel',
    'GroupSmtpEmailChannel',
    'NotificationChannelFactory',
    # Tracker
    'NotificationTrackerService',
    'NotificationRequest',
    'GrantedCauseStrategy',
    'EditThrottleStrategy',
    # Queue
    'TaskQueue',
    'RQTaskQueue',
    'InlineTaskQueue',
    'build_task_queue',
    # Service
    'PostAlerter',
    'AlertResult',
    # Errors
    'AlertException',
    'DeliveryError',
]
