"""
Typed observer interface for the alert pipeline.

Each hook is a small event dataclass. Listeners subscribe per event class
and are called synchronously in registration order; one failing listener is
logged and never stops the others or the notification being created.

Push filters are separate: they answer yes/no for one recipient, and the
first "no" (or a filter that raises) suppresses that recipient's push.

Usage:
    hooks = HookRegistry()
    hooks.subscribe(PreNotificationAlert, lambda event: audit(event.payload))

    push_filters = PushFilterChain()
    push_filters.register(lambda user, payload: not user.is_bot)
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Type

from database.models import Post, User
from notification.payloads import AlertPayload

logger = logging.getLogger(__name__)


@dataclass
class BeforeCreateNotificationsForUsers:
    """Fired once per type batch, before any row of the batch is persisted."""
    notification_type: int
    users: List[User]
    post: Post


@dataclass
class BeforeCreateNotification:
    user: User
    notification_type: int
    post: Post
    opts: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PreNotificationAlert:
    """Fired after a new row is persisted, before any push is considered."""
    user: User
    payload: AlertPayload


HookEvent = Any
Listener = Callable[[HookEvent], None]
PushFilter = Callable[[User, AlertPayload], bool]


class HookRegistry:
    def __init__(self):
        self._listeners: Dict[Type, List[Listener]] = defaultdict(list)

    def subscribe(self, event_type: Type, listener: Listener) -> None:
        self._listeners[event_type].append(listener)

    def unsubscribe(self, event_type: Type, listener: Listener) -> None:
        if listener in self._listeners.get(event_type, []):
            self._listeners[event_type].remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, event: HookEvent) -> None:
        for listener in list(self._listeners.get(type(event), [])):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Hook listener {getattr(listener, '__name__', listener)} failed for {type(event).__name__}")


class PushFilterChain:
    def __init__(self):
        self._filters: List[PushFilter] = []

    def register(self, push_filter: PushFilter) -> None:
        self._filters.append(push_filter)

    def unregister(self, push_filter: PushFilter) -> None:
        if push_filter in self._filters:
            self._filters.remove(push_filter)

    def clear(self) -> None:
        self._filters.clear()

    def allows(self, user: User, payload: AlertPayload) -> bool:
        for push_filter in self._filters:
            try:
                allowed = push_filter(user, payload)
            except Exception:
                logger.exception(f"Push filter {getattr(push_filter, '__name__', push_filter)} failed; suppressing push for user {user.id}")
                return False
            if not allowed:
                logger.info(f"Push for user {user.id} suppressed by filter {getattr(push_filter, '__name__', push_filter)}")
                return False
        return True
