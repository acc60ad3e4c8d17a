"""
Recipient resolvers.

Each resolver maps a post event to the candidate users for one notification
type. `RecipientResolver.resolve` runs them all, drops candidates that must
never hear about the post, and `merge_candidates` keeps the most specific
type per user.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from database.models import Group, NotificationLevel, Post, PostType, Topic, User
from database.repository import AlertRepository
from notification.extractors import (
    LinkExtractor,
    MentionExtractor,
    ParsedPost,
    QuoteExtractor,
    parse_post,
)
from notification.levels import NotificationLevelChain, TopicLevelSnapshot
from notification.types import NotificationType, priority

logger = logging.getLogger(__name__)

REPLYABLE_POST_TYPES = {int(PostType.REGULAR), int(PostType.WHISPER)}


@dataclass
class PostEvent:
    """
    Input of one alert run.

    `is_new_topic` is passed explicitly by the caller rather than inferred
    from the post number.
    """
    post: Post
    new_record: bool = True
    is_new_topic: bool = False


@dataclass
class Candidate:
    user: User
    notification_type: NotificationType
    group: Optional[Group] = None


@dataclass
class AlertContext:
    post: Post
    topic: Topic
    notifier: User
    new_record: bool
    is_new_topic: bool
    parsed: ParsedPost
    participants: Optional[Set[int]] = None
    levels: Optional[TopicLevelSnapshot] = None
    mentioned_user_ids: Set[int] = field(default_factory=set)

    @property
    def author(self) -> User:
        return self.post.user


def merge_candidates(batches: Dict[NotificationType, List[Candidate]]) -> List[Candidate]:
    """Flatten per-type batches in priority order; first type per user wins."""
    merged: List[Candidate] = []
    seen: Set[int] = set()
    for notification_type in sorted(batches, key=priority):
        for candidate in batches[notification_type]:
            if candidate.user.id in seen:
                continue
            seen.add(candidate.user.id)
            merged.append(candidate)
    return merged


def group_by_type(candidates: Iterable[Candidate]) -> Dict[NotificationType, List[Candidate]]:
    batches: Dict[NotificationType, List[Candidate]] = {}
    for candidate in candidates:
        batches.setdefault(candidate.notification_type, []).append(candidate)
    return batches


class RecipientResolver:
    def __init__(self, repo: AlertRepository, level_chain: NotificationLevelChain, base_url: str):
        self.repo = repo
        self.level_chain = level_chain
        self.mentions = MentionExtractor(repo)
        self.quotes = QuoteExtractor(repo)
        self.links = LinkExtractor(repo, base_url)

    def build_context(self, event: PostEvent) -> AlertContext:
        post = event.post
        topic = post.topic
        # On revisions the person who changed the post is the one notifying
        notifier = post.user if event.new_record else post.editor
        participants = self.repo.topics.participant_ids(topic.id) if topic.private_message else None
        return AlertContext(
            post=post,
            topic=topic,
            notifier=notifier,
            new_record=event.new_record,
            is_new_topic=event.is_new_topic,
            parsed=parse_post(post.cooked, post.raw),
            participants=participants,
            levels=self.level_chain.snapshot(topic),
        )

    def resolve(self, ctx: AlertContext) -> Dict[NotificationType, List[Candidate]]:
        batches: Dict[NotificationType, List[Candidate]] = {}

        user_mentions, group_mentions = self.resolve_mentions(ctx)
        batches[NotificationType.MENTIONED] = user_mentions
        batches[NotificationType.GROUP_MENTIONED] = group_mentions
        ctx.mentioned_user_ids = {c.user.id for c in user_mentions + group_mentions}

        private_messages, summaries = self.resolve_private_message(ctx)
        batches[NotificationType.PRIVATE_MESSAGE] = private_messages
        batches[NotificationType.GROUP_MESSAGE_SUMMARY] = summaries
        batches[NotificationType.REPLIED] = self.resolve_replied(ctx)
        batches[NotificationType.QUOTED] = self.resolve_quoted(ctx)
        batches[NotificationType.LINKED] = self.resolve_linked(ctx)

        posted, edited = self.resolve_watchers(ctx)
        batches[NotificationType.POSTED] = posted
        batches[NotificationType.EDITED] = edited
        batches[NotificationType.WATCHING_FIRST_POST] = self.resolve_watching_first_post(ctx)

        return {t: self._allowed(ctx, c) for t, c in batches.items() if c}

    # Individual resolvers

    def resolve_mentions(self, ctx: AlertContext):
        users: List[Candidate] = []
        groups: List[Candidate] = []
        for mention in self.mentions.extract(ctx.post, ctx.notifier, ctx.parsed):
            if not mention.is_group:
                if not self._topic_muted(ctx, mention.user.id):
                    users.append(Candidate(mention.user, NotificationType.MENTIONED))
                continue

            group = mention.group
            group_levels = self.repo.levels.group_levels([group.id])
            for member in self.repo.users.group_members(group.id):
                if group_levels.get(member.id) == NotificationLevel.MUTED:
                    continue
                if self._topic_muted(ctx, member.id):
                    continue
                if ctx.participants is not None and member.id not in ctx.participants:
                    continue
                groups.append(Candidate(member, NotificationType.GROUP_MENTIONED, group=group))
        return users, groups

    def resolve_replied(self, ctx: AlertContext) -> List[Candidate]:
        post = ctx.post
        if not ctx.new_record or not post.reply_to_post_number:
            return []
        # Automated action posts never count as replies
        if post.action_code is not None or post.post_type not in REPLYABLE_POST_TYPES:
            return []

        replied_to = self.repo.topics.get_post_by_number(post.topic_id, post.reply_to_post_number)
        if replied_to is None or replied_to.user is None:
            return []
        recipient = replied_to.user
        if not self.can_see(ctx, recipient, replied_to):
            return []
        return [Candidate(recipient, NotificationType.REPLIED)]

    def resolve_quoted(self, ctx: AlertContext) -> List[Candidate]:
        return [
            Candidate(user, NotificationType.QUOTED)
            for user in self.quotes.extract(ctx.post, ctx.notifier, ctx.parsed)
        ]

    def resolve_linked(self, ctx: AlertContext) -> List[Candidate]:
        users = self.links.extract(ctx.post, ctx.notifier, ctx.mentioned_user_ids, ctx.parsed)
        return [Candidate(user, NotificationType.LINKED) for user in users]

    def resolve_private_message(self, ctx: AlertContext):
        topic = ctx.topic
        if not topic.private_message or not ctx.new_record:
            return [], []

        reply_to_user_id = None
        if ctx.post.reply_to_post_number:
            replied_to = self.repo.topics.get_post_by_number(topic.id, ctx.post.reply_to_post_number)
            reply_to_user_id = replied_to.user_id if replied_to else None

        direct_ids = self.repo.topics.allowed_user_ids(topic.id)
        messages: List[Candidate] = []
        for user in self.repo.users.get_users(direct_ids):
            level = self.level_chain.level_from(ctx.levels, user.id)
            if user.id == reply_to_user_id or level == NotificationLevel.WATCHING or user.staged:
                messages.append(Candidate(user, NotificationType.PRIVATE_MESSAGE))

        summaries: List[Candidate] = []
        seen = set(direct_ids)
        for group_id in self.repo.topics.allowed_group_ids(topic.id):
            group = self.repo.users.get_group(group_id)
            group_levels = self.repo.levels.group_levels([group_id])
            for member in self.repo.users.group_members(group_id):
                if member.id in seen:
                    continue
                seen.add(member.id)
                level = self.level_chain.level_from(ctx.levels, member.id)
                if level == NotificationLevel.WATCHING:
                    messages.append(Candidate(member, NotificationType.PRIVATE_MESSAGE))
                elif level == NotificationLevel.TRACKING and group_levels.get(member.id) == NotificationLevel.TRACKING:
                    summaries.append(Candidate(member, NotificationType.GROUP_MESSAGE_SUMMARY, group=group))
        return messages, summaries

    def resolve_watchers(self, ctx: AlertContext):
        """`posted` for watchers of a new post; `edited` for watchers who already read a revised one."""
        watcher_ids = [
            uid for uid in ctx.levels.candidate_user_ids()
            if self.level_chain.level_from(ctx.levels, uid) == NotificationLevel.WATCHING
        ]
        if not watcher_ids:
            return [], []

        if ctx.new_record:
            users = self.repo.users.get_users(watcher_ids)
            return [Candidate(u, NotificationType.POSTED) for u in users], []

        readers = self.repo.levels.readers_of(ctx.topic.id, ctx.post.post_number)
        users = self.repo.users.get_users(uid for uid in watcher_ids if uid in readers)
        return [], [Candidate(u, NotificationType.EDITED) for u in users]

    def resolve_watching_first_post(self, ctx: AlertContext) -> List[Candidate]:
        if not (ctx.new_record and ctx.is_new_topic and ctx.topic.visible):
            return []
        ids = self.level_chain.first_post_watchers(ctx.topic)
        return [Candidate(u, NotificationType.WATCHING_FIRST_POST) for u in self.repo.users.get_users(ids)]

    # Filters shared by every type

    def can_see(self, ctx: AlertContext, user: User, post: Optional[Post] = None) -> bool:
        """Whether `user` may see the event's post (and `post`, when given)."""
        for target in (ctx.post, post):
            if target is None:
                continue
            if target.deleted_at is not None:
                return False
            if target.whisper and not user.staff:
                return False

        if ctx.participants is not None and user.id not in ctx.participants:
            return False

        category = ctx.topic.category
        if category is not None and category.read_restricted and not user.staff:
            if not set(category.group_ids) & self.repo.users.group_ids_for_user(user.id):
                return False
        return True

    def _topic_muted(self, ctx: AlertContext, user_id: int) -> bool:
        return ctx.levels.topic_levels.get(user_id) == NotificationLevel.MUTED

    def _allowed(self, ctx: AlertContext, candidates: List[Candidate]) -> List[Candidate]:
        excluded = {ctx.notifier.id, ctx.post.user_id}
        if ctx.post.last_editor_id:
            excluded.add(ctx.post.last_editor_id)
        silencing = self.repo.users.silencing_user_ids(ctx.notifier.id, [c.user.id for c in candidates])
        if ctx.post.user_id != ctx.notifier.id:
            silencing |= self.repo.users.silencing_user_ids(ctx.post.user_id, [c.user.id for c in candidates])
        mirror = ctx.topic.category is not None and ctx.topic.category.mailinglist_mirror

        allowed = []
        for candidate in candidates:
            user = candidate.user
            if user.id in excluded or user.id in silencing or user.is_bot:
                continue
            if mirror and user.staged:
                continue
            if not self.can_see(ctx, user):
                continue
            allowed.append(candidate)
        return allowed
