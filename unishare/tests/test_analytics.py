"""
Tests for the analytics aggregator.
"""

import datetime
import unittest

from unishare.gamification.analytics import (
    activity_trends, aggregate, engagement_score, user_engagement
)
from unishare.gamification.models import (
    ActionMetadata, ActionRecord, Timeframe, UserProgress
)
from unishare.gamification.progress import compute_progress

NOW = datetime.datetime(2024, 3, 15, 12, 0, tzinfo=datetime.timezone.utc)


def record(user_id, action_type, days_ago=0, **metadata):
    return ActionRecord(
        user_id=user_id,
        action_type=action_type,
        occurred_at=NOW - datetime.timedelta(days=days_ago),
        metadata=ActionMetadata.from_dict(metadata)
    )


def population():
    ledger = [
        record("alice", "upload_resource", 20),
        record("alice", "achievement_unlocked", 20, achievement_id="first_upload", points_awarded=10),
        record("alice", "create_collection", 3),
        record("alice", "achievement_unlocked", 3, achievement_id="first_collection", points_awarded=15),
        record("bob", "upload_resource", 1),
        record("bob", "achievement_unlocked", 1, achievement_id="first_upload", points_awarded=10),
        record("bob", "cast_vote", 0),
    ]
    departments = {"alice": "CS", "bob": "MATH", "carol": "CS"}
    users = [
        compute_progress([r for r in ledger if r.user_id == user_id], user_id=user_id, department=dept)
        for user_id, dept in departments.items()
    ]
    return users, ledger


class TestEngagement(unittest.TestCase):

    def test_engagement_score(self):
        progress = UserProgress(
            user_id="u1",
            total_points=40,
            achievements_unlocked=frozenset({"first_upload", "first_collection"}),
            action_counts={"upload_resource": 2, "create_collection": 1, "cast_vote": 3}
        )
        # 40 + 2*10 + 2*5 + 1*8 + 3*1
        self.assertEqual(engagement_score(progress), 81)

    def test_user_engagement(self):
        ledger = [
            record("u1", "upload_resource", 1),
            record("u1", "receive_upvote", 0),
            record("u1", "receive_downvote", 0),
            record("u1", "cast_vote", 0),
        ]
        engagement = user_engagement(compute_progress(ledger, now=NOW))
        self.assertEqual(engagement.user_id, "u1")
        self.assertEqual(engagement.total_points, 14)
        self.assertEqual(engagement.uploads_count, 1)
        self.assertEqual(engagement.votes_given, 1)
        self.assertEqual(engagement.votes_received, 2)
        self.assertEqual(engagement.streak_days, 2)
        self.assertEqual(engagement.engagement_score, 14 + 5 + 1)

    def test_new_user_scores_zero(self):
        self.assertEqual(user_engagement(UserProgress(user_id="u1")).engagement_score, 0)


class TestAggregate(unittest.TestCase):
    """Test population reports."""

    def test_empty_population_is_zero_filled(self):
        report = aggregate([], [], Timeframe.WEEKLY, now=NOW)
        self.assertEqual(report.timeframe, Timeframe.WEEKLY)
        self.assertEqual(report.engagement["total_users"], 0)
        self.assertEqual(report.engagement["active_users"], 0)
        self.assertEqual(report.points_distribution["total_points_awarded"], 0)
        self.assertEqual(report.points_distribution["average_points_per_user"], 0)
        self.assertEqual(report.points_distribution["top_point_earners"], [])
        self.assertEqual(report.achievement_stats["total_achievements_awarded"], 0)
        self.assertTrue(all(rate == 0 for rate in report.achievement_stats["completion_rates"].values()))
        self.assertEqual(len(report.achievement_stats["completion_rates"]), 12)
        self.assertEqual(report.achievement_stats["popular_achievements"], [])
        self.assertEqual(
            report.leaderboard_stats["badge_distribution"],
            {"Freshman": 0, "Intermediate": 0, "Advanced": 0, "Expert": 0, "Master": 0}
        )
        self.assertEqual(report.leaderboard_stats["department_rankings"], [])
        self.assertEqual(len(report.activity_trends), 7)
        self.assertTrue(all(day["total_points"] == 0 for day in report.activity_trends))

    def test_all_time_report(self):
        users, ledger = population()
        report = aggregate(users, ledger, now=NOW)

        self.assertEqual(report.engagement["total_users"], 3)
        self.assertEqual(report.engagement["active_users"], 2)
        self.assertEqual(report.engagement["daily_active_users"], 1)
        self.assertEqual(report.engagement["weekly_active_users"], 2)
        self.assertEqual(report.engagement["total_actions"], 7)

        points = report.points_distribution
        self.assertEqual(points["total_points_awarded"], 71)
        self.assertEqual(points["average_points_per_user"], round(71 / 3, 2))
        self.assertEqual(points["points_by_action_type"]["achievement_unlocked"], 35)
        self.assertEqual(points["top_point_earners"][0], {"user_id": "alice", "total_points": 50, "weekly_points": 30})

        stats = report.achievement_stats
        self.assertEqual(stats["total_achievements_awarded"], 3)
        self.assertEqual(stats["completion_counts"]["first_upload"], 2)
        self.assertEqual(stats["completion_rates"]["first_upload"], 66.67)
        self.assertEqual(stats["completion_rates"]["first_collection"], 33.33)
        self.assertEqual(stats["popular_achievements"][0]["achievement_id"], "first_upload")
        self.assertEqual(stats["recent_achievements"][0]["user_id"], "bob")
        self.assertEqual(stats["recent_achievements"][0]["title"], "First Contribution")

        board = report.leaderboard_stats
        self.assertEqual(board["badge_distribution"]["Intermediate"], 1)
        self.assertEqual(board["badge_distribution"]["Freshman"], 2)
        self.assertEqual(board["department_rankings"][0]["department"], "CS")
        self.assertEqual(board["department_rankings"][0]["average_points"], 25)
        self.assertEqual(board["department_rankings"][0]["top_user"], "alice")
        self.assertEqual(board["department_rankings"][1]["department"], "MATH")
        self.assertEqual(len(report.activity_trends), 30)

    def test_weekly_window_excludes_old_records(self):
        users, ledger = population()
        report = aggregate(users, ledger, "weekly", now=NOW)
        self.assertEqual(report.points_distribution["total_points_awarded"], 51)
        self.assertEqual(report.achievement_stats["total_achievements_awarded"], 2)
        # Completion reflects everything ever unlocked
        self.assertEqual(report.achievement_stats["completion_counts"]["first_upload"], 2)

    def test_malformed_records_do_not_break_report(self):
        users, ledger = population()
        ledger.append({"user_id": "bob", "action_type": "bogus_action", "occurred_at": NOW.isoformat()})
        report = aggregate(users, ledger, now=NOW)
        self.assertEqual(report.engagement["total_actions"], 7)

    def test_report_serializes(self):
        users, ledger = population()
        data = aggregate(users, ledger, "monthly", now=NOW).to_dict()
        self.assertEqual(data["timeframe"], "monthly")
        self.assertIn("activity_trends", data)


class TestTrends(unittest.TestCase):

    def test_daily_buckets(self):
        _, ledger = population()
        trends = activity_trends(ledger, days=3, now=NOW)
        self.assertEqual([day["date"] for day in trends], ["2024-03-13", "2024-03-14", "2024-03-15"])
        self.assertEqual(trends[1]["uploads"], 1)
        self.assertEqual(trends[1]["achievements_earned"], 1)
        self.assertEqual(trends[1]["total_points"], 20)
        self.assertEqual(trends[2]["active_users"], 1)
        self.assertEqual(trends[2]["total_points"], 1)

    def test_days_floor_at_one(self):
        self.assertEqual(len(activity_trends([], days=0, now=NOW)), 1)


if __name__ == "__main__":
    unittest.main()
