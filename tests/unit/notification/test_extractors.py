#!/usr/bin/env python3
"""
Tests for post body parsing and the mention, quote and link extractors.
"""

import unittest

from database.models import MentionableLevel, utc_now
from notification.extractors import (
    LinkExtractor,
    LinkTarget,
    MentionExtractor,
    QuoteExtractor,
    can_mention_group,
    parse_link,
    parse_post,
)
from tests.fixtures.forum_fixtures import BASE_URL, ForumTestCase


class TestParsePost(unittest.TestCase):

    def test_mentions_in_order_without_duplicates(self):
        parsed = parse_post("<p>Hey @alice and @Bob, also @alice again</p>")
        self.assertEqual(parsed.mentions, ["alice", "Bob"])

    def test_mentions_inside_quotes_and_code_are_ignored(self):
        cooked = (
            '<aside class="quote" data-username="carol"><blockquote><p>@dave said hi</p></blockquote></aside>'
            '<p>Thanks <code>@eve</code></p><pre>@frank</pre><p>cc @grace.</p>'
        )
        parsed = parse_post(cooked)
        self.assertEqual(parsed.mentions, ["grace"])
        self.assertEqual(parsed.quoted_usernames, ["carol"])

    def test_email_addresses_are_not_mentions(self):
        parsed = parse_post("<p>mail bob@example.com or ping @bob</p>")
        self.assertEqual(parsed.mentions, ["bob"])

    def test_raw_fallback_strips_quote_blocks(self):
        raw = '[quote="carol, post:1, topic:5"]\n@dave wrote this\n[/quote]\n\nAgreed @erin'
        parsed = parse_post(None, raw)
        self.assertEqual(parsed.mentions, ["erin"])
        self.assertEqual(parsed.quoted_usernames, ["carol"])

    def test_collects_hrefs_and_bare_urls(self):
        cooked = '<p><a href="/t/some-topic/12/3">link</a> and http://forum.example.com/p/7.</p>'
        parsed = parse_post(cooked)
        self.assertEqual(parsed.hrefs, ["/t/some-topic/12/3", "http://forum.example.com/p/7"])


class TestParseLink(unittest.TestCase):

    def test_slug_topic_and_post(self):
        self.assertEqual(parse_link("/t/hello-world/12/3", BASE_URL), LinkTarget(topic_id=12, post_number=3))
        self.assertEqual(parse_link(f"{BASE_URL}/t/hello-world/12", BASE_URL), LinkTarget(topic_id=12))

    def test_topic_without_slug(self):
        self.assertEqual(parse_link("/t/12/4", BASE_URL), LinkTarget(topic_id=12, post_number=4))

    def test_post_id_path(self):
        self.assertEqual(parse_link("/p/99", BASE_URL), LinkTarget(post_id=99))

    def test_foreign_hosts_and_other_paths(self):
        self.assertIsNone(parse_link("https://elsewhere.com/t/slug/12", BASE_URL))
        self.assertIsNone(parse_link("/u/alice", BASE_URL))
        self.assertIsNone(parse_link("mailto:alice@example.com", BASE_URL))
        self.assertIsNone(parse_link("relative/t/1", BASE_URL))

    def test_subfolder_install(self):
        base = "https://example.com/forum"
        self.assertEqual(parse_link("/forum/t/slug/5/2", base), LinkTarget(topic_id=5, post_number=2))
        self.assertIsNone(parse_link("/t/slug/5/2", base))


class TestCanMentionGroup(ForumTestCase):

    def test_levels(self):
        user = self.forum.user()
        moderator = self.forum.user(moderator=True)
        admin = self.forum.admin()

        group = self.forum.group(mentionable_level=int(MentionableLevel.NOBODY))
        self.assertFalse(can_mention_group(group, admin, is_member=True, is_owner=True))

        group.mentionable_level = int(MentionableLevel.ONLY_ADMINS)
        self.assertTrue(can_mention_group(group, admin, False, False))
        self.assertFalse(can_mention_group(group, moderator, False, False))

        group.mentionable_level = int(MentionableLevel.MODS_AND_ADMINS)
        self.assertTrue(can_mention_group(group, moderator, False, False))
        self.assertFalse(can_mention_group(group, user, True, True))

        group.mentionable_level = int(MentionableLevel.MEMBERS_MODS_AND_ADMINS)
        self.assertTrue(can_mention_group(group, user, is_member=True, is_owner=False))
        self.assertFalse(can_mention_group(group, user, is_member=False, is_owner=False))

        group.mentionable_level = int(MentionableLevel.OWNERS_MODS_AND_ADMINS)
        self.assertFalse(can_mention_group(group, user, is_member=True, is_owner=False))
        self.assertTrue(can_mention_group(group, user, is_member=True, is_owner=True))

        group.mentionable_level = int(MentionableLevel.EVERYONE)
        self.assertTrue(can_mention_group(group, user, False, False))


class TestMentionExtractor(ForumTestCase):

    def setUp(self):
        super().setUp()
        self.extractor = MentionExtractor(self.repo)
        self.author = self.forum.user("author")

    def test_first_occurrence_order_and_self_mention_dropped(self):
        alice = self.forum.user("alice")
        team = self.forum.group("team", mentionable_level=int(MentionableLevel.EVERYONE))
        topic = self.forum.topic(self.author)
        post = self.forum.post(topic, self.author, raw="@team @author @alice @ghost")

        mentions = self.extractor.extract(post, self.author)

        self.assertEqual([(m.user, m.group) for m in mentions], [(None, team), (alice, None)])

    def test_unmentionable_group_is_dropped(self):
        self.forum.group("locked", mentionable_level=int(MentionableLevel.NOBODY))
        topic = self.forum.topic(self.author)
        post = self.forum.post(topic, self.author, raw="hello @locked")

        self.assertEqual(self.extractor.extract(post, self.author), [])

    def test_private_message_mentions_limited_to_participants(self):
        inside = self.forum.user("inside")
        self.forum.user("outside")
        pm = self.forum.private_message(self.author, users=[inside])
        post = self.forum.post(pm, self.author, raw="@inside @outside")

        mentions = self.extractor.extract(post, self.author)

        self.assertEqual([m.user for m in mentions], [inside])

    def test_allowed_group_of_private_message_is_always_mentionable(self):
        member = self.forum.user()
        inbox = self.forum.group("inbox", members=[member], mentionable_level=int(MentionableLevel.NOBODY))
        pm = self.forum.private_message(self.author, groups=[inbox])
        post = self.forum.post(pm, self.author, raw="@inbox please look")

        mentions = self.extractor.extract(post, self.author)

        self.assertEqual([m.group for m in mentions], [inbox])


class TestQuoteExtractor(ForumTestCase):

    def test_quoted_authors_other_than_poster(self):
        author = self.forum.user("author")
        carol = self.forum.user("carol")
        topic = self.forum.topic(author)
        cooked = (
            '<aside class="quote" data-username="carol"><blockquote>x</blockquote></aside>'
            '<aside class="quote" data-username="author"><blockquote>y</blockquote></aside>'
            '<aside class="quote" data-username="nobody"><blockquote>z</blockquote></aside>'
        )
        post = self.forum.post(topic, author, cooked=cooked)

        self.assertEqual(QuoteExtractor(self.repo).extract(post, author), [carol])


class TestLinkExtractor(ForumTestCase):

    def setUp(self):
        super().setUp()
        self.extractor = LinkExtractor(self.repo, BASE_URL)
        self.author = self.forum.user("author")
        self.target_author = self.forum.user("target")
        self.other_topic = self.forum.topic(self.target_author)
        self.first = self.forum.post(self.other_topic, self.target_author)
        self.second = self.forum.post(self.other_topic, self.target_author)

    def _linking_post(self, *hrefs, topic=None):
        links = "".join(f'<a href="{h}">x</a>' for h in hrefs)
        topic = topic or self.forum.topic(self.author)
        return self.forum.post(topic, self.author, cooked=f"<p>{links}</p>")

    def test_links_resolve_to_authors_once(self):
        post = self._linking_post(
            f"/t/slug/{self.other_topic.id}/2",
            f"{BASE_URL}/p/{self.second.id}",
            f"/t/slug/{self.other_topic.id}",
        )

        self.assertEqual([p.id for p in self.extractor.linked_posts(post)], [self.second.id, self.first.id])
        self.assertEqual(self.extractor.extract(post, self.author), [self.target_author])

    def test_deleted_target_falls_back_to_first_post(self):
        self.second.deleted_at = utc_now()
        self.session.flush()
        post = self._linking_post(f"/t/slug/{self.other_topic.id}/2")

        self.assertEqual(self.extractor.linked_posts(post), [self.first])

    def test_reflection_and_excluded_users(self):
        topic = self.forum.topic(self.author)
        post = self.forum.post(topic, self.author, cooked="<p>placeholder</p>")
        post.cooked = f'<a href="/t/slug/{topic.id}/{post.post_number}">me</a><a href="/p/{self.first.id}">them</a>'
        self.session.flush()

        self.assertEqual(self.extractor.linked_posts(post), [self.first])
        self.assertEqual(self.extractor.extract(post, self.author, exclude_user_ids={self.target_author.id}), [])

    def test_unknown_topic_is_ignored(self):
        post = self._linking_post("/t/slug/424242/1")
        self.assertEqual(self.extractor.linked_posts(post), [])


if __name__ == '__main__':
    unittest.main()
