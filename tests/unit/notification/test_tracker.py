#!/usr/bin/env python3
"""
Tests for notification creation, collapsing and deduplication strategies.
"""

import unittest
from datetime import timedelta
from unittest.mock import Mock, patch

from database.models import utc_now
from notification import (
    AlertException,
    BeforeCreateNotification,
    EditThrottleStrategy,
    GrantedCauseStrategy,
    HookRegistry,
    NotificationRequest,
    NotificationTrackerService,
    NotificationType,
)
from tests.fixtures.forum_fixtures import ForumTestCase


def existing(notification_type, **data):
    return Mock(notification_type=int(notification_type), data=data, created_at=utc_now())


class TestGrantedCauseStrategy(unittest.TestCase):

    def setUp(self):
        self.strategy = GrantedCauseStrategy()

    def request(self, notification_type):
        return Mock(notification_type=notification_type)

    def test_first_grant_allowed(self):
        self.assertTrue(self.strategy.should_allow_notification([], self.request(NotificationType.MENTIONED)))

    def test_same_cause_not_granted_twice(self):
        rows = [existing(NotificationType.QUOTED)]
        self.assertFalse(self.strategy.should_allow_notification(rows, self.request(NotificationType.QUOTED)))
        self.assertTrue(self.strategy.should_allow_notification(rows, self.request(NotificationType.LINKED)))

    def test_user_and_group_mentions_share_a_cause(self):
        rows = [existing(NotificationType.GROUP_MENTIONED)]
        self.assertFalse(self.strategy.should_allow_notification(rows, self.request(NotificationType.MENTIONED)))

    def test_reply_shadows_mention_quote_and_link(self):
        rows = [existing(NotificationType.REPLIED)]
        for notification_type in (NotificationType.MENTIONED, NotificationType.QUOTED, NotificationType.LINKED):
            self.assertFalse(self.strategy.should_allow_notification(rows, self.request(notification_type)))
        self.assertTrue(self.strategy.should_allow_notification(rows, self.request(NotificationType.WATCHING_FIRST_POST)))


class TestEditThrottleStrategy(unittest.TestCase):

    def setUp(self):
        self.strategy = EditThrottleStrategy(window_hours=24)

    def request(self, editor_id):
        return Mock(notifier=Mock(id=editor_id), user=Mock(id=1), post=Mock(id=1))

    def test_no_previous_edit(self):
        self.assertTrue(self.strategy.should_allow_notification([], self.request(7)))

    def test_same_editor_inside_window_is_throttled(self):
        rows = [existing(NotificationType.EDITED, editor_id=7)]
        self.assertFalse(self.strategy.should_allow_notification(rows, self.request(7)))

    def test_different_editor_is_allowed(self):
        rows = [existing(NotificationType.EDITED, editor_id=7)]
        self.assertTrue(self.strategy.should_allow_notification(rows, self.request(8)))

    def test_only_newest_edit_counts(self):
        rows = [existing(NotificationType.EDITED, editor_id=8), existing(NotificationType.EDITED, editor_id=7)]
        self.assertTrue(self.strategy.should_allow_notification(rows, self.request(7)))

    def test_window_expiry(self):
        old = existing(NotificationType.EDITED, editor_id=7)
        old.created_at = utc_now() - timedelta(hours=25)
        self.assertTrue(self.strategy.should_allow_notification([old], self.request(7)))


class TestNotificationTrackerService(ForumTestCase):

    def setUp(self):
        super().setUp()
        self.hooks = HookRegistry()
        self.tracker = NotificationTrackerService(self.repo, self.hooks, excerpt_length=20)
        self.author = self.forum.user("author")
        self.watcher = self.forum.user("watcher")
        self.topic = self.forum.topic(self.author, title="Release notes")
        self.forum.post(self.topic, self.author)

    def request(self, notification_type=NotificationType.POSTED, post=None, **kwargs):
        post = post or self.forum.post(self.topic, self.author, raw="A" * 50)
        return NotificationRequest(
            user=self.watcher,
            notification_type=notification_type,
            post=post,
            notifier=self.author,
            **kwargs,
        )

    def test_new_row_payload(self):
        result = self.tracker.create_notification(self.request())

        self.assertTrue(result.created)
        row = result.notification
        self.assertEqual(row.collapse_key, f"topic:{self.topic.id}:replies")
        self.assertEqual(row.post_number, 2)
        self.assertEqual(row.data['topic_title'], "Release notes")
        self.assertEqual(row.data['display_username'], "author")
        self.assertEqual(row.data['replies_count'], 1)
        self.assertEqual(row.data['excerpt'], "A" * 20 + "…")

    def test_non_collapsing_types_have_no_key(self):
        result = self.tracker.create_notification(self.request(NotificationType.QUOTED))

        self.assertIsNone(result.notification.collapse_key)

    def test_collapse_takes_latest_type(self):
        self.tracker.create_notification(self.request(NotificationType.POSTED))
        result = self.tracker.create_notification(self.request(NotificationType.REPLIED))

        self.assertFalse(result.created)
        self.assertEqual(result.notification.notification_type, NotificationType.REPLIED)
        self.assertEqual(result.notification.data['notification_type'], int(NotificationType.REPLIED))
        self.assertEqual(result.notification.data['replies_count'], 2)

    def test_before_create_hook_only_for_new_rows(self):
        events = []
        self.hooks.subscribe(BeforeCreateNotification, events.append)

        self.tracker.create_notification(self.request(opts={'source': 'test'}))
        self.tracker.create_notification(self.request())

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].user, self.watcher)
        self.assertEqual(events[0].opts, {'source': 'test'})

    def test_lost_insert_race_collapses_into_winner(self):
        winner = self.tracker.create_notification(self.request()).notification

        with patch.object(self.repo.notifications, 'find_unread_by_collapse_key', side_effect=[None, winner]):
            result = self.tracker.create_notification(self.request())

        self.assertFalse(result.created)
        self.assertIs(result.notification, winner)
        self.assertEqual(winner.data['replies_count'], 2)
        self.assertEqual(len(self.repo.notifications.for_user(self.watcher.id)), 1)

    def test_conflict_without_unread_row_raises(self):
        self.tracker.create_notification(self.request())

        with patch.object(self.repo.notifications, 'find_unread_by_collapse_key', side_effect=[None, None]):
            with self.assertRaises(AlertException):
                self.tracker.create_notification(self.request())

    def test_duplicate_cause_returns_none(self):
        post = self.forum.post(self.topic, self.author)
        self.tracker.create_notification(self.request(NotificationType.MENTIONED, post=post))

        self.assertIsNone(self.tracker.create_notification(self.request(NotificationType.MENTIONED, post=post)))


if __name__ == '__main__':
    unittest.main()
