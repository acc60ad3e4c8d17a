"""
Payload models.

Notification rows store one variant of `NotificationData` in their JSON
column; the `notification_type` field tags the variant. The remaining models
describe what leaves the engine: the normalized alert handed to hooks and
push filters, the push wire format and the task arguments.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from notification.types import NotificationType


class BaseNotificationData(BaseModel):
    topic_title: str
    display_username: str
    original_post_id: Optional[int] = None
    original_post_type: Optional[int] = None
    original_username: Optional[str] = None
    excerpt: Optional[str] = None


class MentionedData(BaseNotificationData):
    notification_type: Literal[NotificationType.MENTIONED] = NotificationType.MENTIONED


class GroupMentionedData(BaseNotificationData):
    notification_type: Literal[NotificationType.GROUP_MENTIONED] = NotificationType.GROUP_MENTIONED
    group_id: int
    group_name: str


class TopicReplyData(BaseNotificationData):
    """Shared shape of the collapsing reply class."""
    latest_post_number: Optional[int] = None
    replies_count: int = 1


class RepliedData(TopicReplyData):
    notification_type: Literal[NotificationType.REPLIED] = NotificationType.REPLIED


class PostedData(TopicReplyData):
    notification_type: Literal[NotificationType.POSTED] = NotificationType.POSTED


class PrivateMessageData(TopicReplyData):
    notification_type: Literal[NotificationType.PRIVATE_MESSAGE] = NotificationType.PRIVATE_MESSAGE


class QuotedData(BaseNotificationData):
    notification_type: Literal[NotificationType.QUOTED] = NotificationType.QUOTED


class LinkedData(BaseNotificationData):
    notification_type: Literal[NotificationType.LINKED] = NotificationType.LINKED


class EditedData(BaseNotificationData):
    notification_type: Literal[NotificationType.EDITED] = NotificationType.EDITED
    editor_id: Optional[int] = None


class WatchingFirstPostData(BaseNotificationData):
    notification_type: Literal[NotificationType.WATCHING_FIRST_POST] = NotificationType.WATCHING_FIRST_POST


class GroupMessageSummaryData(BaseModel):
    notification_type: Literal[NotificationType.GROUP_MESSAGE_SUMMARY] = NotificationType.GROUP_MESSAGE_SUMMARY
    group_id: int
    group_name: str
    inbox_count: int = 1
    username: str


class CustomData(BaseModel):
    notification_type: Literal[NotificationType.CUSTOM] = NotificationType.CUSTOM
    message: str
    display_username: Optional[str] = None
    topic_title: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


NotificationData = Annotated[
    Union[
        MentionedData,
        GroupMentionedData,
        RepliedData,
        PostedData,
        PrivateMessageData,
        QuotedData,
        LinkedData,
        EditedData,
        WatchingFirstPostData,
        GroupMessageSummaryData,
        CustomData,
    ],
    Field(discriminator='notification_type'),
]

_notification_data_adapter = TypeAdapter(NotificationData)

DATA_MODELS = {
    NotificationType.MENTIONED: MentionedData,
    NotificationType.GROUP_MENTIONED: GroupMentionedData,
    NotificationType.REPLIED: RepliedData,
    NotificationType.POSTED: PostedData,
    NotificationType.PRIVATE_MESSAGE: PrivateMessageData,
    NotificationType.QUOTED: QuotedData,
    NotificationType.LINKED: LinkedData,
    NotificationType.EDITED: EditedData,
    NotificationType.WATCHING_FIRST_POST: WatchingFirstPostData,
    NotificationType.GROUP_MESSAGE_SUMMARY: GroupMessageSummaryData,
    NotificationType.CUSTOM: CustomData,
}


def parse_notification_data(data: Dict[str, Any]):
    """
    Validate a stored JSON payload into its typed variant.

    Raises ValueError (pydantic's ValidationError included) for unknown
    types or payloads missing required fields.
    """
    data = dict(data)
    data['notification_type'] = NotificationType(data.get('notification_type'))
    return _notification_data_adapter.validate_python(data)


def build_notification_data(notification_type: int, **fields):
    """Build the variant for `notification_type` from keyword fields."""
    model = DATA_MODELS[NotificationType(notification_type)]
    return model(**fields)


def dump_notification_data(data: BaseModel) -> Dict[str, Any]:
    return data.model_dump(mode='json', exclude_none=True)


class AlertPayload(BaseModel):
    """Normalized alert passed to `pre_notification_alert` listeners and push filters."""
    notification_type: int
    post_number: int
    topic_title: str
    topic_id: int
    excerpt: str
    username: str
    post_url: str


class PushNotificationItem(BaseModel):
    notification_type: int
    post_number: int
    topic_title: str
    topic_id: int
    excerpt: str
    username: str
    url: str
    client_id: str


class PushBatchPayload(BaseModel):
    """Wire body POSTed to one push endpoint."""
    secret_key: str
    url: str
    title: str
    description: str
    notifications: List[PushNotificationItem]


class GroupSmtpEmailTask(BaseModel):
    group_id: int
    post_id: int
    topic_id: int
    email: str
    cc_emails: List[str] = Field(default_factory=list)
    generation: int


class UserEmailTask(BaseModel):
    user_id: int
    notification_id: int
    notification_type: int
    post_id: int
