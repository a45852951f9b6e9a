"""
Tests for leaderboard ranking.
"""

import datetime
import unittest

from unishare.common.exceptions import ValidationError
from unishare.gamification.leaderboard import find_rank, in_scope, rank, scope_key
from unishare.gamification.models import (
    ActionRecord, BadgeLevel, LeaderboardScope, ScopeType, Timeframe, UserProgress
)

NOW = datetime.datetime(2024, 3, 15, 12, 0, tzinfo=datetime.timezone.utc)
GLOBAL = LeaderboardScope()


def user(user_id, points, hours_ago=None, department=None, course=None):
    return UserProgress(
        user_id=user_id,
        total_points=points,
        last_activity_at=NOW - datetime.timedelta(hours=hours_ago) if hours_ago is not None else None,
        department=department,
        course=course
    )


def record(user_id, action_type, days_ago):
    return ActionRecord(
        user_id=user_id,
        action_type=action_type,
        occurred_at=NOW - datetime.timedelta(days=days_ago)
    )


class TestScopes(unittest.TestCase):

    def test_scope_keys(self):
        self.assertEqual(scope_key(GLOBAL), "global")
        self.assertEqual(scope_key(LeaderboardScope.build("department", department="CS")), "department:CS")
        self.assertEqual(scope_key(LeaderboardScope.build("course", course="CS101")), "course:CS101")

    def test_scope_requires_value(self):
        with self.assertRaises(ValidationError):
            LeaderboardScope.build("department")
        with self.assertRaises(ValidationError):
            LeaderboardScope.build("course", department="CS")
        with self.assertRaises(ValidationError):
            LeaderboardScope.build("campus")

    def test_in_scope(self):
        member = user("a", 10, department="CS", course="CS101")
        self.assertTrue(in_scope(member, GLOBAL))
        self.assertTrue(in_scope(member, LeaderboardScope.build("department", department="CS")))
        self.assertFalse(in_scope(member, LeaderboardScope.build("course", course="MATH1")))


class TestRank(unittest.TestCase):
    """Test ordering, tie-breaks and windows."""

    def test_orders_by_points(self):
        entries = rank([user("a", 10, 1), user("b", 30, 1), user("c", 20, 1)], GLOBAL)
        self.assertEqual([e.user_id for e in entries], ["b", "c", "a"])
        self.assertEqual([e.rank for e in entries], [1, 2, 3])
        self.assertTrue(all(e.scope_key == "global" for e in entries))
        self.assertTrue(all(e.timeframe == Timeframe.ALL_TIME for e in entries))

    def test_tie_goes_to_earlier_last_activity(self):
        entries = rank([user("late", 50, hours_ago=1), user("early", 50, hours_ago=5)], GLOBAL)
        self.assertEqual([e.user_id for e in entries], ["early", "late"])
        self.assertEqual([e.rank for e in entries], [1, 2])

    def test_tie_without_activity_sorts_last_then_by_id(self):
        entries = rank([user("z", 0), user("y", 0), user("x", 0, hours_ago=2)], GLOBAL)
        self.assertEqual([e.user_id for e in entries], ["x", "y", "z"])

    def test_is_deterministic(self):
        users = [user(f"u{i}", (i * 7) % 5, hours_ago=i % 3) for i in range(20)]
        first = [e.to_dict() for e in rank(users, GLOBAL)]
        second = [e.to_dict() for e in rank(list(reversed(users)), GLOBAL)]
        self.assertEqual(first, second)

    def test_ranks_are_contiguous(self):
        users = [user(f"u{i}", 10, hours_ago=i) for i in range(6)]
        self.assertEqual([e.rank for e in rank(users, GLOBAL)], list(range(1, 7)))

    def test_scoped_ranking(self):
        users = [
            user("a", 40, 1, department="CS"),
            user("b", 90, 1, department="MATH"),
            user("c", 60, 1, department="CS"),
        ]
        entries = rank(users, LeaderboardScope.build("department", department="CS"))
        self.assertEqual([e.user_id for e in entries], ["c", "a"])
        self.assertEqual(entries[0].scope_key, "department:CS")

    def test_empty_scope(self):
        self.assertEqual(rank([user("a", 10, 1)], LeaderboardScope.build("course", course="NONE")), [])

    def test_unvalidated_scope_is_rejected(self):
        with self.assertRaises(ValidationError):
            rank([user("a", 10, 1)], LeaderboardScope(type=ScopeType.DEPARTMENT))

    def test_limit(self):
        users = [user(f"u{i}", i, 1) for i in range(10)]
        entries = rank(users, GLOBAL, limit=3)
        self.assertEqual([e.user_id for e in entries], ["u9", "u8", "u7"])

    def test_weekly_uses_window_points(self):
        users = [user("old", 500, hours_ago=1), user("new", 20, hours_ago=2)]
        ledgers = {
            "old": [record("old", "complete_profile", 30)] * 20,
            "new": [record("new", "upload_resource", 2), record("new", "upload_resource", 1)],
        }
        entries = rank(users, GLOBAL, Timeframe.WEEKLY, ledgers=ledgers, now=NOW)
        self.assertEqual([(e.user_id, e.total_points) for e in entries], [("new", 20), ("old", 0)])

    def test_weekly_tie_goes_to_earlier_last_activity(self):
        users = [user("a", 10, hours_ago=1), user("b", 10, hours_ago=30)]
        ledgers = {
            "a": [record("a", "upload_resource", 0)],
            "b": [record("b", "upload_resource", 1)],
        }
        entries = rank(users, GLOBAL, "weekly", ledgers=ledgers, now=NOW)
        self.assertEqual([e.user_id for e in entries], ["b", "a"])

    def test_windowed_requires_ledgers(self):
        with self.assertRaises(ValidationError):
            rank([user("a", 10, 1)], GLOBAL, Timeframe.MONTHLY)

    def test_unknown_timeframe(self):
        with self.assertRaises(ValidationError):
            rank([user("a", 10, 1)], GLOBAL, "yearly")

    def test_entry_carries_badge(self):
        entries = rank([UserProgress(user_id="a", total_points=1200, badge_level=BadgeLevel.MASTER)], GLOBAL)
        self.assertEqual(entries[0].badge_level, BadgeLevel.MASTER)


class TestFindRank(unittest.TestCase):

    def test_find_rank(self):
        entries = rank([user("a", 10, 1), user("b", 30, 1)], GLOBAL)
        self.assertEqual(find_rank(entries, "a"), 2)
        self.assertEqual(find_rank(entries, "b"), 1)
        self.assertIsNone(find_rank(entries, "nobody"))


if __name__ == "__main__":
    unittest.main()
