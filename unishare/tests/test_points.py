"""
Tests for the action classifier.
"""

import unittest

import pytest

from unishare.common.exceptions import UnknownActionKind, ValidationError
from unishare.gamification.models import (
    AchievementCategory, ActionRecord, ActionType, UserAction
)
from unishare.gamification.points import POINT_RULES, calculate_points, classify
from unishare.common.utils import utc_now


class TestClassify(unittest.TestCase):
    """Test base points and modifiers."""

    def test_base_points(self):
        """Every rule-table action scores its base value without metadata."""
        expected = {
            "upload_resource": 10,
            "receive_upvote": 5,
            "receive_downvote": -2,
            "cast_vote": 1,
            "resource_downloaded": 2,
            "create_collection": 15,
            "add_to_collection": 3,
            "share_collection": 8,
            "complete_profile": 25,
            "weekly_activity": 50,
            "tag_resource": 1,
            "verify_resource": 20,
            "comment_resource": 3,
        }
        for action_type, points in expected.items():
            with self.subTest(action_type=action_type):
                self.assertEqual(calculate_points({"action_type": action_type}), points)

    def test_every_kind_has_a_rule(self):
        self.assertEqual(set(POINT_RULES), set(ActionType))

    def test_upload_resource_type_bonus(self):
        self.assertEqual(calculate_points({"action_type": "upload_resource", "resource_type": "video"}), 15)
        self.assertEqual(calculate_points({"action_type": "upload_resource", "resource_type": "code"}), 18)
        self.assertEqual(calculate_points({"action_type": "upload_resource", "resource_type": "article"}), 13)
        self.assertEqual(calculate_points({"action_type": "upload_resource", "resource_type": "link"}), 12)
        self.assertEqual(calculate_points({"action_type": "upload_resource", "resource_type": "document"}), 10)

    def test_unknown_resource_type_has_no_bonus(self):
        self.assertEqual(calculate_points({"action_type": "upload_resource", "resource_type": "hologram"}), 10)

    def test_resource_type_bonus_only_for_uploads(self):
        self.assertEqual(calculate_points({"action_type": "resource_downloaded", "resource_type": "code"}), 2)

    def test_verified_bonus(self):
        points = calculate_points({"action_type": "upload_resource", "metadata": {"is_verified": True}})
        self.assertEqual(points, 20)

    def test_popularity_bonus_capped(self):
        self.assertEqual(calculate_points({"action_type": "receive_upvote", "metadata": {"upvotes": 10}}), 5)
        self.assertEqual(calculate_points({"action_type": "receive_upvote", "metadata": {"upvotes": 11}}), 16)
        self.assertEqual(calculate_points({"action_type": "receive_upvote", "metadata": {"upvotes": 500}}), 55)

    def test_downvote_is_flat_penalty(self):
        """Modifiers never apply to the downvote penalty."""
        points = calculate_points({
            "action_type": "receive_downvote",
            "metadata": {"is_verified": True, "upvotes": 40},
        })
        self.assertEqual(points, -2)

    def test_achievement_bonus_uses_metadata(self):
        points = calculate_points({
            "action_type": "achievement_unlocked",
            "metadata": {"achievement_id": "first_upload", "points_awarded": 10},
        })
        self.assertEqual(points, 10)

    def test_negative_achievement_bonus_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            classify({"action_type": "achievement_unlocked", "metadata": {"points_awarded": -500}})
        self.assertEqual(ctx.exception.errors, {"points_awarded": -500})

    def test_categories(self):
        self.assertEqual(classify({"action_type": "upload_resource"}).category, AchievementCategory.UPLOAD)
        self.assertEqual(classify({"action_type": "receive_upvote"}).category, AchievementCategory.ENGAGEMENT)
        self.assertEqual(classify({"action_type": "comment_resource"}).category, AchievementCategory.ENGAGEMENT)
        self.assertEqual(classify({"action_type": "create_collection"}).category, AchievementCategory.CURATION)
        self.assertEqual(classify({"action_type": "verify_resource"}).category, AchievementCategory.CURATION)
        self.assertEqual(classify({"action_type": "resource_downloaded"}).category, AchievementCategory.SOCIAL)
        self.assertEqual(classify({"action_type": "weekly_activity"}).category, AchievementCategory.MILESTONE)

    def test_accepts_records_and_user_actions(self):
        record = ActionRecord(user_id="u1", action_type="create_collection", occurred_at=utc_now())
        action = UserAction(type="upload_resource", user_id="u1", resource_type="video")
        self.assertEqual(calculate_points(record), 15)
        self.assertEqual(calculate_points(action), 15)

    def test_is_pure(self):
        action = {"action_type": "upload_resource", "resource_type": "code", "metadata": {"upvotes": 20}}
        self.assertEqual(classify(action), classify(action))
        self.assertEqual(action["metadata"], {"upvotes": 20})


class TestUnknownActions(unittest.TestCase):
    """Unknown kinds fail fast instead of scoring zero."""

    def test_bogus_action_raises(self):
        with self.assertRaises(UnknownActionKind) as ctx:
            classify({"action_type": "bogus_action"})
        self.assertEqual(ctx.exception.action_type, "bogus_action")

    def test_missing_action_type_raises(self):
        with self.assertRaises(UnknownActionKind):
            classify({"metadata": {}})

    def test_unknown_kind_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            calculate_points({"action_type": "teleport"})

    def test_user_action_rejects_unknown_type(self):
        with self.assertRaises(UnknownActionKind):
            UserAction(type="bogus_action", user_id="u1")


if __name__ == "__main__":
    unittest.main()
