import html
import re
from typing import List, Optional

from pydantic import BaseModel, Field

from database.models import Group, Post, Topic, User
from notification.payloads import AlertPayload, PushBatchPayload, PushNotificationItem
from notification.types import NotificationType

TAG_RE = re.compile(r'<[^>]+>')
WHITESPACE_RE = re.compile(r'\s+')

NOTIFICATION_VERBS = {
    NotificationType.MENTIONED: "mentioned you in",
    NotificationType.GROUP_MENTIONED: "mentioned your group in",
    NotificationType.REPLIED: "replied to you in",
    NotificationType.QUOTED: "quoted you in",
    NotificationType.EDITED: "edited a post in",
    NotificationType.PRIVATE_MESSAGE: "sent you a message in",
    NotificationType.POSTED: "posted in",
    NotificationType.LINKED: "linked to your post in",
    NotificationType.WATCHING_FIRST_POST: "started a new topic",
}


class EmailMessage(BaseModel):
    from_address: str
    to_address: str
    cc_addresses: List[str] = Field(default_factory=list)
    subject: str
    body: str
    reply_to: Optional[str] = None


class NotificationMessageBuilder:
    @staticmethod
    def build_excerpt(post: Post, length: int = 400) -> str:
        """Plain-text excerpt; the stored excerpt wins when present."""
        if post.excerpt:
            return post.excerpt
        text = TAG_RE.sub(' ', post.cooked or post.raw or '')
        text = WHITESPACE_RE.sub(' ', html.unescape(text)).strip()
        if len(text) <= length:
            return text
        return text[:length].rstrip() + "…"

    @staticmethod
    def absolute_url(base_url: str, path: str) -> str:
        return f"{base_url.rstrip('/')}{path}"

    @staticmethod
    def build_alert_payload(
        notification_type: int,
        post: Post,
        topic_title: str,
        username: str,
        excerpt: str
    ) -> AlertPayload:
        return AlertPayload(
            notification_type=int(notification_type),
            post_number=post.post_number,
            topic_title=topic_title,
            topic_id=post.topic_id,
            excerpt=excerpt or "",
            username=username,
            post_url=post.url,
        )

    @staticmethod
    def build_push_item(alert: AlertPayload, client_id: str, base_url: str) -> PushNotificationItem:
        return PushNotificationItem(
            notification_type=alert.notification_type,
            post_number=alert.post_number,
            topic_title=alert.topic_title,
            topic_id=alert.topic_id,
            excerpt=alert.excerpt,
            username=alert.username,
            url=NotificationMessageBuilder.absolute_url(base_url, alert.post_url),
            client_id=client_id,
        )

    @staticmethod
    def build_push_batch(
        items: List[PushNotificationItem],
        secret_key: str,
        base_url: str,
        site_title: str,
        site_description: str
    ) -> PushBatchPayload:
        """Wire body for one push endpoint; `url` is the site, not the endpoint."""
        return PushBatchPayload(
            secret_key=secret_key,
            url=base_url,
            title=site_title,
            description=site_description,
            notifications=items,
        )

    @staticmethod
    def group_email_subject(topic: Topic) -> str:
        return f"Re: {topic.title}"

    @staticmethod
    def build_group_email(
        group: Group,
        topic: Topic,
        post: Post,
        to_address: str,
        cc_addresses: List[str],
        base_url: str
    ) -> EmailMessage:
        """Reply sent as the group mailbox to everyone on the conversation."""
        author = post.user
        lines = [
            post.raw or NotificationMessageBuilder.build_excerpt(post),
            "",
            "---",
            f"{author.name or author.username} via {group.name}",
            f"View the conversation: {NotificationMessageBuilder.absolute_url(base_url, post.url)}",
        ]
        return EmailMessage(
            from_address=group.email_username,
            to_address=to_address,
            cc_addresses=list(cc_addresses),
            subject=NotificationMessageBuilder.group_email_subject(topic),
            body="\n".join(lines),
        )

    @staticmethod
    def user_email_subject(site_title: str, topic: Topic) -> str:
        if topic.private_message:
            return f"[{site_title}] [PM] {topic.title}"
        return f"[{site_title}] {topic.title}"

    @staticmethod
    def build_user_email(
        user: User,
        notification_type: int,
        post: Post,
        site_title: str,
        from_address: str,
        base_url: str,
        excerpt_length: int = 400
    ) -> EmailMessage:
        topic = post.topic
        author = post.user
        verb = NOTIFICATION_VERBS.get(NotificationType(notification_type), "posted in")
        lines = [
            f"{author.username} {verb} \"{topic.title}\"",
            "",
            NotificationMessageBuilder.build_excerpt(post, excerpt_length),
            "",
            f"Visit the topic to respond: {NotificationMessageBuilder.absolute_url(base_url, post.url)}",
            "",
            "---",
            f"{site_title}",
        ]
        return EmailMessage(
            from_address=from_address,
            to_address=user.email,
            subject=NotificationMessageBuilder.user_email_subject(site_title, topic),
            body="\n".join(lines),
        )
