#!/usr/bin/env python3
"""
Unit tests for the alert engine repositories.

Runs against an in-memory SQLite database:
- UserRepository: lookups, silencing, push clients, do not disturb
- TopicRepository: ACL ordering, first unread post, group email generation
- LevelRepository: per-scope levels and read positions
- NotificationRepository: collapse lookups and the unread-key race
"""

from datetime import timedelta

from database.models import Notification, NotificationLevel, User, utc_now
from database.uow import alert_uow
from tests.fixtures.forum_fixtures import ForumTestCase
from tests import create_test_session_factory


class TestUserRepository(ForumTestCase):

    def test_find_users_by_usernames_is_case_insensitive(self):
        alice = self.forum.user("Alice")
        self.forum.user("bob")

        found = self.repo.users.find_users_by_usernames(["ALICE", "nobody"])

        self.assertEqual(found, {"alice": alice})

    def test_get_users_ordered_keeps_input_order(self):
        a = self.forum.user()
        b = self.forum.user()
        c = self.forum.user()

        users = self.repo.users.get_users_ordered([c.id, a.id, 9999, b.id])

        self.assertEqual([u.id for u in users], [c.id, a.id, b.id])

    def test_group_members_in_membership_order(self):
        first = self.forum.user()
        second = self.forum.user()
        group = self.forum.group("team")
        self.forum.add_member(group, second)
        self.forum.add_member(group, first)

        members = self.repo.users.group_members(group.id)

        self.assertEqual(members, [second, first])

    def test_silencing_user_ids_covers_mutes_and_live_ignores(self):
        author = self.forum.user()
        muter = self.forum.user()
        ignorer = self.forum.user()
        expired = self.forum.user()
        bystander = self.forum.user()
        self.forum.mute(muter, author)
        self.forum.ignore(ignorer, author, expiring_at=utc_now() + timedelta(days=1))
        self.forum.ignore(expired, author, expiring_at=utc_now() - timedelta(days=1))

        silencing = self.repo.users.silencing_user_ids(
            author.id, [muter.id, ignorer.id, expired.id, bystander.id]
        )

        self.assertEqual(silencing, {muter.id, ignorer.id})

    def test_push_clients_skip_revoked_and_urlless_keys(self):
        user = self.forum.user()
        live = self.forum.push_client(user)
        revoked = self.forum.push_client(user)
        revoked.revoked_at = utc_now()
        self.forum.push_client(user, push_url=None)
        self.session.flush()

        self.assertEqual(self.repo.users.push_clients(user.id), [live])

    def test_in_do_not_disturb(self):
        quiet = self.forum.user()
        loud = self.forum.user()
        self.forum.do_not_disturb(quiet)

        self.assertTrue(self.repo.users.in_do_not_disturb(quiet.id))
        self.assertFalse(self.repo.users.in_do_not_disturb(loud.id))


class TestTopicRepository(ForumTestCase):

    def test_allowed_users_and_groups_oldest_first(self):
        owner = self.forum.user()
        other = self.forum.user()
        g1 = self.forum.group()
        g2 = self.forum.group()
        pm = self.forum.private_message(owner, users=[other], groups=[g2, g1])

        self.assertEqual(self.repo.topics.allowed_user_ids(pm.id), [owner.id, other.id])
        self.assertEqual(self.repo.topics.allowed_group_ids(pm.id), [g2.id, g1.id])

    def test_participant_ids_include_group_members(self):
        owner = self.forum.user()
        member = self.forum.user()
        group = self.forum.group(members=[member])
        pm = self.forum.private_message(owner, groups=[group])

        self.assertEqual(self.repo.topics.participant_ids(pm.id), {owner.id, member.id})

    def test_first_unread_post_skips_whispers_for_non_staff(self):
        author = self.forum.admin()
        topic = self.forum.topic(author)
        self.forum.post(topic, author)
        whisper = self.forum.whisper(topic, author)
        regular = self.forum.post(topic, author)

        self.assertEqual(self.repo.topics.first_unread_post(topic.id, 1, include_whispers=True), whisper)
        self.assertEqual(self.repo.topics.first_unread_post(topic.id, 1, include_whispers=False), regular)
        self.assertIsNone(self.repo.topics.first_unread_post(topic.id, 3, include_whispers=True))

    def test_bump_group_email_generation(self):
        topic = self.forum.topic(self.forum.user())

        self.assertEqual(self.repo.topics.group_email_generation(topic.id), 0)
        self.assertEqual(self.repo.topics.bump_group_email_generation(topic.id), 1)
        self.assertEqual(self.repo.topics.bump_group_email_generation(topic.id), 2)
        self.assertEqual(self.repo.topics.group_email_generation(topic.id), 2)


class TestLevelRepository(ForumTestCase):

    def test_topic_levels_ignore_unset_rows(self):
        topic = self.forum.topic(self.forum.user())
        watcher = self.forum.user()
        reader = self.forum.user()
        self.forum.watch_topic(watcher, topic)
        self.forum.topic_user(reader, topic, last_read_post_number=3)

        self.assertEqual(self.repo.levels.topic_levels(topic.id), {watcher.id: NotificationLevel.WATCHING})

    def test_tag_levels_take_highest(self):
        user = self.forum.user()
        t1 = self.forum.tag()
        t2 = self.forum.tag()
        self.forum.tag_level(user, t1, NotificationLevel.TRACKING)
        self.forum.tag_level(user, t2, NotificationLevel.WATCHING)

        self.assertEqual(self.repo.levels.tag_levels([t1.id, t2.id]), {user.id: NotificationLevel.WATCHING})
        self.assertEqual(self.repo.levels.tag_levels([]), {})

    def test_readers_of(self):
        topic = self.forum.topic(self.forum.user())
        behind = self.forum.user()
        ahead = self.forum.user()
        self.forum.topic_user(behind, topic, last_read_post_number=1)
        self.forum.topic_user(ahead, topic, last_read_post_number=4)

        self.assertEqual(self.repo.levels.readers_of(topic.id, 2), {ahead.id})
        self.assertEqual(self.repo.levels.last_read_post_number(behind.id, topic.id), 1)


class TestNotificationRepository(ForumTestCase):

    def _row(self, user, key="topic:1:replies", **kwargs):
        return Notification(user_id=user.id, notification_type=9, data={}, collapse_key=key, **kwargs)

    def test_try_insert_reports_taken_collapse_key(self):
        user = self.forum.user()
        self.assertTrue(self.repo.notifications.try_insert(self._row(user)))

        self.assertFalse(self.repo.notifications.try_insert(self._row(user)))
        # The outer transaction survives the failed savepoint
        self.assertEqual(len(self.repo.notifications.for_user(user.id)), 1)

    def test_reading_frees_the_collapse_key(self):
        user = self.forum.user()
        row = self._row(user)
        self.repo.notifications.try_insert(row)

        self.repo.notifications.mark_read(row.id)

        self.assertIsNone(self.repo.notifications.find_unread_by_collapse_key(user.id, "topic:1:replies"))
        self.assertTrue(self.repo.notifications.try_insert(self._row(user)))
        self.assertEqual(len(self.repo.notifications.for_user(user.id, unread_only=True)), 1)


class TestAlertUow(ForumTestCase):

    def test_commits_on_success_and_rolls_back_on_error(self):
        factory = create_test_session_factory(self.engine)
        self.session.commit()

        with alert_uow(factory) as repo:
            repo.db.add(self._user("kept"))

        with self.assertRaises(ValueError):
            with alert_uow(factory) as repo:
                repo.db.add(self._user("dropped"))
                repo.flush()
                raise ValueError("boom")

        with alert_uow(factory) as repo:
            found = repo.users.find_users_by_usernames(["kept", "dropped"])
        self.assertEqual(set(found), {"kept"})

    def _user(self, username):
        return User(username=username, email=f"{username}@example.com")
