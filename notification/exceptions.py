#!/usr/bin/env python3
"""
Exceptions raised by the alert engine and its delivery tasks.
"""


class AlertException(Exception):
    """Base exception for alert engine errors."""
    pass


class PostNotFoundException(AlertException):
    """Raised when a task refers to a post that no longer exists."""
    pass


class PostLockedException(AlertException):
    """Raised when another worker holds the lock for the same post."""
    pass


class DeliveryError(AlertException):
    """
    Raised when a transport (push endpoint, SMTP server) fails.

    Tasks let it propagate so the queue's retry policy decides what happens.
    """

    def __init__(self, channel_type: str, message: str):
        super().__init__(f"{channel_type}: {message}")
        self.channel_type = channel_type


class ChannelNotConfiguredException(DeliveryError):
    """Raised when a channel is used without its transport settings."""
    pass
