#!/usr/bin/env python3
"""
Notification Channels

Transport implementations behind the delivery tasks:
- PushChannel: POSTs a batched push payload to a push endpoint
- EmailChannel: sends per-user notification email through the site SMTP
- GroupSmtpEmailChannel: sends as a group mailbox through the group's SMTP

Channels raise DeliveryError on transport failure and never retry inline;
the task queue's retry policy owns that.

Usage:
    from notification.channels import NotificationChannelFactory

    channel = NotificationChannelFactory.get_channel('push', timeout=30)
    channel.send(push_url, payload)
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging
import os
import smtplib
import urllib.parse
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid

import requests

from database.models import Group
from notification.exceptions import ChannelNotConfiguredException, DeliveryError
from notification.message_builder import EmailMessage
from notification.payloads import PushBatchPayload

logger = logging.getLogger(__name__)


def _is_dry_run_mode() -> bool:
    """Check if notification channels should run in dry-run (log-only) mode."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


def _mask_email(email: str) -> str:
    """
    Mask email address for safe logging (PII protection).

    Shows only domain, e.g., "***@example.com"
    """
    if '@' not in email:
        return "***"
    local, domain = email.rsplit('@', 1)
    return f"***@{domain}"


def _safe_url(url: str) -> str:
    parsed = urllib.parse.urlparse(url)
    return f"{parsed.scheme}://{parsed.hostname}{parsed.path}"


def _build_mime(message: EmailMessage) -> MIMEMultipart:
    msg = MIMEMultipart()
    msg['From'] = message.from_address
    msg['To'] = message.to_address
    if message.cc_addresses:
        msg['Cc'] = ", ".join(message.cc_addresses)
    if message.reply_to:
        msg['Reply-To'] = message.reply_to
    msg['Subject'] = message.subject
    msg['Message-ID'] = make_msgid()
    msg.attach(MIMEText(message.body, 'plain', 'utf-8'))
    return msg


class NotificationChannel(ABC):
    """
    Abstract base class for all notification channels.
    """

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return the channel type identifier."""
        pass

    def validate_config(self) -> bool:
        """
        Validate that the channel is properly configured.

        Returns:
            True if configured correctly, False otherwise
        """
        return True


class PushChannel(NotificationChannel):
    """HTTP push to a registered push endpoint."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    @property
    def channel_type(self) -> str:
        return 'push'

    def send(self, push_url: str, payload: PushBatchPayload) -> None:
        if _is_dry_run_mode():
            logger.info(f"[DRY RUN] Push of {len(payload.notifications)} notifications to {_safe_url(push_url)}")
            return

        headers = {
            'Content-Type': 'application/json',
            'User-Agent': 'PostAlert-Push/1.0'
        }
        try:
            response = requests.post(
                push_url,
                json=payload.model_dump(mode='json'),
                headers=headers,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to push to {_safe_url(push_url)}: {e}")
            raise DeliveryError(self.channel_type, str(e)) from e

        logger.info(f"Pushed {len(payload.notifications)} notifications to {_safe_url(push_url)}")


class SmtpChannel(NotificationChannel):
    """Shared SMTP send; subclasses supply the server settings."""

    server: Optional[str] = None
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    use_ssl: bool = False
    use_starttls: bool = True

    def validate_config(self) -> bool:
        return bool(self.server)

    def send(self, message: EmailMessage) -> None:
        if not self.validate_config():
            logger.error(f"{self.channel_type} not configured - SMTP server not set")
            raise ChannelNotConfiguredException(self.channel_type, "SMTP server not set")

        msg = _build_mime(message)
        recipients = [message.to_address] + list(message.cc_addresses)

        if _is_dry_run_mode():
            logger.info(f"[DRY RUN] Email '{message.subject}' to {', '.join(_mask_email(r) for r in recipients)}")
            return

        try:
            smtp_class = smtplib.SMTP_SSL if self.use_ssl else smtplib.SMTP
            with smtp_class(self.server, self.port) as server:
                if self.use_starttls and not self.use_ssl:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password or '')
                server.send_message(msg, from_addr=message.from_address, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {_mask_email(message.to_address)}: {e}")
            raise DeliveryError(self.channel_type, str(e)) from e

        logger.info(f"Email sent to {_mask_email(message.to_address)} (cc: {len(message.cc_addresses)})")


class EmailChannel(SmtpChannel):
    """Per-user notification email via the site SMTP server."""

    def __init__(
        self,
        smtp_server: Optional[str] = None,
        smtp_port: int = 587,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None
    ):
        self.server = smtp_server
        self.port = smtp_port
        self.username = smtp_username
        self.password = smtp_password

    @property
    def channel_type(self) -> str:
        return 'email'


class GroupSmtpEmailChannel(SmtpChannel):
    """Email sent as a group mailbox through the group's own SMTP settings."""

    def __init__(self, group: Group):
        # Read everything up front; the group may be detached by send time
        self.configured = group.smtp_configured
        self.server = group.smtp_server
        self.port = group.smtp_port or 587
        self.username = group.email_username
        self.password = group.email_password
        # Implicit TLS on 465; STARTTLS elsewhere when SSL is requested
        self.use_ssl = bool(group.smtp_ssl and self.port == 465)
        self.use_starttls = bool(group.smtp_ssl)

    @property
    def channel_type(self) -> str:
        return 'group_smtp'

    def validate_config(self) -> bool:
        return self.configured


class NotificationChannelFactory:
    """
    Factory for creating notification channels.

    Channels are registered by type; tests and deployments may register
    replacements.
    """

    _channels: Dict[str, type] = {
        'push': PushChannel,
        'email': EmailChannel,
        'group_smtp': GroupSmtpEmailChannel,
    }

    @classmethod
    def get_channel(cls, channel_type: str, **kwargs) -> NotificationChannel:
        """
        Get a notification channel instance by type.

        Raises:
            ValueError: If channel type is not supported
        """
        channel_class = cls._channels.get(channel_type.lower())
        if not channel_class:
            available = ', '.join(cls._channels.keys())
            raise ValueError(f"Unknown channel type: {channel_type}. Available: {available}")
        return channel_class(**kwargs)

    @classmethod
    def register_channel(cls, channel_type: str, channel_class: type):
        """Register a channel class under a type name."""
        if not issubclass(channel_class, NotificationChannel):
            raise ValueError("Channel class must extend NotificationChannel")
        cls._channels[channel_type.lower()] = channel_class
        logger.info(f"Registered notification channel: {channel_type}")

    @classmethod
    def list_channels(cls) -> list:
        return list(cls._channels.keys())
