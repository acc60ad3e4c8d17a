"""
Extractors: turn a post body into the people it points at.

Parsing is pure (`parse_post`); the extractor classes resolve the parsed
names and links against the store and apply mention/visibility rules.
"""

import logging
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import List, Optional, Set, Tuple
from urllib.parse import urlparse

from database.models import Group, MentionableLevel, Post, Topic, User
from database.repository import AlertRepository

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r'(?<![\w@/`])@(\w[\w.-]*)')
RAW_QUOTE_BLOCK_RE = re.compile(r'\[quote(?:=[^\]]*)?\].*?\[/quote\]', re.IGNORECASE | re.DOTALL)
RAW_QUOTE_AUTHOR_RE = re.compile(r'\[quote="([^,"]+)', re.IGNORECASE)
BARE_URL_RE = re.compile(r'https?://[^\s<>"\']+')

# /t/{slug}/{topic_id}[/{post_number}]; a slug always has a non-digit
SLUG_TOPIC_PATH_RE = re.compile(r'^/t/[^/]*[^\d/][^/]*/(\d+)(?:/(\d+))?/?$')
TOPIC_PATH_RE = re.compile(r'^/t/(\d+)(?:/(\d+))?/?$')
POST_PATH_RE = re.compile(r'^/p/(\d+)/?$')

SKIPPED_TAGS = {'blockquote', 'code', 'pre'}


@dataclass
class ParsedPost:
    mentions: List[str] = field(default_factory=list)
    quoted_usernames: List[str] = field(default_factory=list)
    hrefs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LinkTarget:
    topic_id: Optional[int] = None
    post_number: Optional[int] = None
    post_id: Optional[int] = None


@dataclass
class Mention:
    user: Optional[User] = None
    group: Optional[Group] = None

    @property
    def is_group(self) -> bool:
        return self.group is not None


def _append_unique(items: List[str], value: str) -> None:
    if value.lower() not in (i.lower() for i in items):
        items.append(value)


class _PostHTMLParser(HTMLParser):
    """Collects mentions, quote authors and hrefs outside quotes and code."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.result = ParsedPost()
        self._skip: List[str] = []

    def _is_skipped(self, tag, attrs) -> bool:
        if tag in SKIPPED_TAGS:
            return True
        if tag == 'aside':
            classes = (dict(attrs).get('class') or '').split()
            return 'quote' in classes
        return False

    def handle_starttag(self, tag, attrs):
        if tag == 'aside':
            username = dict(attrs).get('data-username')
            if username and 'quote' in (dict(attrs).get('class') or '').split():
                _append_unique(self.result.quoted_usernames, username)

        if self._skip:
            if tag == self._skip[-1]:
                self._skip.append(tag)
            return
        if self._is_skipped(tag, attrs):
            self._skip.append(tag)
            return

        if tag == 'a':
            href = dict(attrs).get('href')
            if href:
                self.result.hrefs.append(href)

    def handle_endtag(self, tag):
        if self._skip and tag == self._skip[-1]:
            self._skip.pop()

    def handle_data(self, data):
        if self._skip:
            return
        for match in MENTION_RE.finditer(data):
            name = match.group(1).rstrip('.-')
            if name:
                _append_unique(self.result.mentions, name)
        for url in BARE_URL_RE.findall(data):
            self.result.hrefs.append(url.rstrip('.,;:!?)'))


def parse_post(cooked: Optional[str], raw: Optional[str] = None) -> ParsedPost:
    """
    Parse the rendered body, falling back to the raw body.

    Raw `[quote]` blocks are removed before parsing so quoted text never
    counts as a new mention; their authors are still collected.
    """
    raw = raw or ''
    source = cooked if cooked else raw
    source = RAW_QUOTE_BLOCK_RE.sub(' ', source)

    parser = _PostHTMLParser()
    parser.feed(source)
    parser.close()
    parsed = parser.result

    for username in RAW_QUOTE_AUTHOR_RE.findall(raw):
        _append_unique(parsed.quoted_usernames, username.strip())

    hrefs = []
    for href in parsed.hrefs:
        if href not in hrefs:
            hrefs.append(href)
    parsed.hrefs = hrefs
    return parsed


def parse_link(href: str, base_url: str) -> Optional[LinkTarget]:
    """Map a same-site href to the post it addresses, or None."""
    base = urlparse(base_url)
    url = urlparse(href)

    if url.scheme and url.scheme not in ('http', 'https'):
        return None
    if url.netloc and url.netloc.lower() != base.netloc.lower():
        return None
    if not url.netloc and not url.path.startswith('/'):
        return None

    path = url.path
    base_path = base.path.rstrip('/')
    if base_path:
        if not (path == base_path or path.startswith(base_path + '/')):
            return None
        path = path[len(base_path):]

    match = POST_PATH_RE.match(path)
    if match:
        return LinkTarget(post_id=int(match.group(1)))

    match = SLUG_TOPIC_PATH_RE.match(path) or TOPIC_PATH_RE.match(path)
    if match:
        post_number = int(match.group(2)) if match.group(2) else None
        return LinkTarget(topic_id=int(match.group(1)), post_number=post_number)
    return None


def can_mention_group(group: Group, user: User, is_member: bool, is_owner: bool) -> bool:
    level = group.mentionable_level
    if level == MentionableLevel.EVERYONE:
        return True
    if level == MentionableLevel.MEMBERS_MODS_AND_ADMINS:
        return user.staff or is_member
    if level == MentionableLevel.OWNERS_MODS_AND_ADMINS:
        return user.staff or is_owner
    if level == MentionableLevel.MODS_AND_ADMINS:
        return user.staff
    if level == MentionableLevel.ONLY_ADMINS:
        return bool(user.admin)
    return False


class MentionExtractor:
    """Resolves @-mentions of a post to honored users and groups."""

    def __init__(self, repo: AlertRepository):
        self.repo = repo

    def extract(self, post: Post, author: User, parsed: Optional[ParsedPost] = None) -> List[Mention]:
        parsed = parsed or parse_post(post.cooked, post.raw)
        if not parsed.mentions:
            return []

        users = self.repo.users.find_users_by_usernames(parsed.mentions)
        unmatched = [n for n in parsed.mentions if n.lower() not in users]
        groups = self.repo.users.find_groups_by_names(unmatched)

        topic = post.topic
        allowed_group_ids = set(self.repo.topics.allowed_group_ids(topic.id)) if topic.private_message else set()
        participants = self.repo.topics.participant_ids(topic.id) if topic.private_message else None

        mentions: List[Mention] = []
        for name in parsed.mentions:
            key = name.lower()
            user = users.get(key)
            if user is not None:
                if user.id == author.id:
                    continue
                if participants is not None and user.id not in participants:
                    logger.info(f"Dropping mention of @{user.username}: not a participant of topic {topic.id}")
                    continue
                mentions.append(Mention(user=user))
                continue

            group = groups.get(key)
            if group is None:
                continue
            if group.id in allowed_group_ids or self._group_mentionable(group, author):
                mentions.append(Mention(group=group))
            else:
                logger.info(f"@{author.username} may not mention group {group.name}")
        return mentions

    def _group_mentionable(self, group: Group, author: User) -> bool:
        membership = self.repo.users.group_membership(group.id, author.id)
        return can_mention_group(
            group,
            author,
            is_member=membership is not None,
            is_owner=bool(membership and membership.owner),
        )


class QuoteExtractor:
    def __init__(self, repo: AlertRepository):
        self.repo = repo

    def extract(self, post: Post, author: User, parsed: Optional[ParsedPost] = None) -> List[User]:
        parsed = parsed or parse_post(post.cooked, post.raw)
        if not parsed.quoted_usernames:
            return []
        found = self.repo.users.find_users_by_usernames(parsed.quoted_usernames)
        users = []
        for name in parsed.quoted_usernames:
            user = found.get(name.lower())
            if user is not None and user.id != author.id and user not in users:
                users.append(user)
        return users


class LinkExtractor:
    """Authors of same-site posts linked from a post."""

    def __init__(self, repo: AlertRepository, base_url: str):
        self.repo = repo
        self.base_url = base_url

    def linked_posts(self, post: Post, parsed: Optional[ParsedPost] = None) -> List[Post]:
        parsed = parsed or parse_post(post.cooked, post.raw)
        posts: List[Post] = []
        seen: Set[Tuple[int, int]] = set()
        for href in parsed.hrefs:
            target = parse_link(href, self.base_url)
            if target is None:
                continue
            linked = self._resolve(target)
            if linked is None:
                continue
            key = (linked.topic_id, linked.post_number)
            # A link back to the post itself is a reflection
            if linked.id == post.id or key in seen:
                continue
            seen.add(key)
            posts.append(linked)
        return posts

    def extract(self, post: Post, author: User, exclude_user_ids: Set[int] = frozenset(),
                parsed: Optional[ParsedPost] = None) -> List[User]:
        users: List[User] = []
        for linked in self.linked_posts(post, parsed):
            target = linked.user
            if target is None or target.id == author.id or target.id in exclude_user_ids:
                continue
            if target not in users:
                users.append(target)
        return users

    def _resolve(self, target: LinkTarget) -> Optional[Post]:
        if target.post_id is not None:
            linked = self.repo.topics.get_post(target.post_id)
        elif target.post_number is not None:
            linked = self.repo.topics.get_post_by_number(target.topic_id, target.post_number)
        else:
            linked = None

        if linked is not None and linked.deleted_at is None:
            return linked

        topic_id = linked.topic_id if linked is not None else target.topic_id
        if topic_id is None or self.repo.topics.get_topic(topic_id) is None:
            return None
        return self.repo.topics.first_post(topic_id)
