"""
Closed vocabulary of the alert engine: notification types, how they rank
against each other, and which of them collapse into a single unread row.
"""

from enum import IntEnum
from typing import Optional


class NotificationType(IntEnum):
    MENTIONED = 1
    REPLIED = 2
    QUOTED = 3
    EDITED = 4
    PRIVATE_MESSAGE = 6
    POSTED = 9
    LINKED = 11
    CUSTOM = 14
    GROUP_MENTIONED = 15
    GROUP_MESSAGE_SUMMARY = 16
    WATCHING_FIRST_POST = 17


# Highest priority first. A user gets at most one row per post event, of the
# first type in this list they qualify for.
PRIORITY_ORDER = (
    NotificationType.PRIVATE_MESSAGE,
    NotificationType.MENTIONED,
    NotificationType.GROUP_MENTIONED,
    NotificationType.REPLIED,
    NotificationType.QUOTED,
    NotificationType.LINKED,
    NotificationType.POSTED,
    NotificationType.EDITED,
    NotificationType.WATCHING_FIRST_POST,
    NotificationType.GROUP_MESSAGE_SUMMARY,
    NotificationType.CUSTOM,
)

PRIORITY = {t: i for i, t in enumerate(PRIORITY_ORDER)}

# Replies to a topic pile up in one unread row per user
TOPIC_REPLY_TYPES = frozenset({
    NotificationType.REPLIED,
    NotificationType.POSTED,
    NotificationType.PRIVATE_MESSAGE,
})

MENTION_TYPES = frozenset({
    NotificationType.MENTIONED,
    NotificationType.GROUP_MENTIONED,
})

# Suppressed when the user was already told about the post as a reply
REPLY_SHADOWED_TYPES = frozenset({
    NotificationType.MENTIONED,
    NotificationType.GROUP_MENTIONED,
    NotificationType.QUOTED,
    NotificationType.LINKED,
})


def collapse_key(notification_type: int, topic_id: Optional[int], group_id: Optional[int] = None) -> Optional[str]:
    """Key of the collapse class, or None for types that never collapse."""
    if notification_type in TOPIC_REPLY_TYPES and topic_id is not None:
        return f"topic:{topic_id}:replies"
    if notification_type == NotificationType.GROUP_MESSAGE_SUMMARY and group_id is not None:
        return f"group:{group_id}:inbox"
    return None


def collapses(notification_type: int) -> bool:
    return notification_type in TOPIC_REPLY_TYPES or notification_type == NotificationType.GROUP_MESSAGE_SUMMARY


def priority(notification_type: int) -> int:
    return PRIORITY.get(NotificationType(notification_type), len(PRIORITY_ORDER))
