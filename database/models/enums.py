from enum import IntEnum


class PostType(IntEnum):
    REGULAR = 1
    MODERATOR_ACTION = 2
    SMALL_ACTION = 3
    WHISPER = 4


class Archetype:
    REGULAR = 'regular'
    PRIVATE_MESSAGE = 'private_message'


class NotificationLevel(IntEnum):
    """Per-scope sensitivity, ordered so that the highest level wins."""
    MUTED = 0
    REGULAR = 1
    TRACKING = 2
    WATCHING = 3
    WATCHING_FIRST_POST = 4


class MentionableLevel(IntEnum):
    """Who may notify a group's members by @-mentioning it."""
    NOBODY = 0
    ONLY_ADMINS = 1
    MODS_AND_ADMINS = 2
    MEMBERS_MODS_AND_ADMINS = 3
    OWNERS_MODS_AND_ADMINS = 4
    EVERYONE = 99


class EmailLevel:
    ALWAYS = 'always'
    NEVER = 'never'
