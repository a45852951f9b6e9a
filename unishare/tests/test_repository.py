"""
Tests for the gamification repository against a throwaway SQLite database.
"""

import datetime
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from unishare.common.config import DatabaseConfig
from unishare.common.db import create_engine, create_session_factory
from unishare.common.exceptions import DuplicateError, NotFoundError, StoreUnavailableError
from unishare.database.init_db import create_schema
from unishare.gamification.achievements import get_achievement, get_default_achievements
from unishare.gamification.models import ActionMetadata, ActionRecord
from unishare.gamification.repository import GamificationRepository

NOW = datetime.datetime(2024, 3, 15, 12, 0, tzinfo=datetime.timezone.utc)


@pytest_asyncio.fixture
async def repository(tmp_path):
    engine = create_engine(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"))
    await create_schema(engine)
    repo = GamificationRepository(create_session_factory(engine))
    await repo.create_user("alice", "Alice A", department="CS", course="CS101")
    await repo.create_user("bob", "Bob B", department="MATH", course="MATH1")
    yield repo
    await engine.dispose()


def action(user_id, action_type, minutes_ago=0, **kwargs):
    return ActionRecord(
        user_id=user_id,
        action_type=action_type,
        occurred_at=NOW - datetime.timedelta(minutes=minutes_ago),
        **kwargs
    )


@pytest.mark.asyncio
async def test_create_and_list_users(repository):
    with pytest.raises(DuplicateError):
        await repository.create_user("alice")

    user = await repository.get_user("alice")
    assert user.department == "CS"
    assert user.points == 0
    assert await repository.get_user("nobody") is None

    assert [u.id for u in await repository.list_users()] == ["alice", "bob"]
    assert [u.id for u in await repository.list_users(department="MATH")] == ["bob"]
    assert [u.id for u in await repository.list_users(course="CS101")] == ["alice"]


@pytest.mark.asyncio
async def test_append_action_updates_total_and_badge(repository):
    record, total = await repository.append_action(action("alice", "upload_resource", 5), 10)
    assert record.id is not None
    assert total == 10

    _, total = await repository.append_action(action("alice", "complete_profile", 1), 40)
    assert total == 50

    user = await repository.get_user("alice")
    assert user.points == 50
    assert user.badge_level == "Intermediate"


@pytest.mark.asyncio
async def test_ledger_round_trip(repository):
    await repository.append_action(
        action("alice", "receive_upvote", 10, resource_id="r1", metadata=ActionMetadata(upvotes=12)),
        12
    )
    await repository.append_action(action("alice", "cast_vote", 5), 1)
    await repository.append_action(action("bob", "upload_resource", 1, resource_type="code"), 18)

    ledger = await repository.get_ledger("alice")
    assert [r.action_type for r in ledger] == ["receive_upvote", "cast_vote"]
    assert ledger[0].resource_id == "r1"
    assert ledger[0].metadata.upvotes == 12
    assert ledger[0].occurred_at == NOW - datetime.timedelta(minutes=10)
    assert ledger[0].occurred_at.tzinfo is not None

    recent = await repository.get_ledger(since=NOW - datetime.timedelta(minutes=6))
    assert [r.user_id for r in recent] == ["alice", "bob"]

    grouped = await repository.get_ledgers(["bob"])
    assert list(grouped) == ["bob"]
    assert grouped["bob"][0].resource_type == "code"


@pytest.mark.asyncio
async def test_append_for_missing_user_leaves_no_record(repository):
    with pytest.raises(NotFoundError):
        await repository.append_action(action("ghost", "upload_resource"), 10)
    assert await repository.get_ledger("ghost") == []


@pytest.mark.asyncio
async def test_unlock_achievement_once(repository):
    first_upload = get_achievement(get_default_achievements(), "first_upload")

    assert await repository.unlock_achievement("alice", first_upload, NOW) is True
    assert await repository.unlock_achievement("alice", first_upload, NOW) is False

    rows = await repository.get_unlocked_achievements("alice")
    assert [row.achievement_id for row in rows] == ["first_upload"]

    ledger = await repository.get_ledger("alice")
    assert len(ledger) == 1
    assert ledger[0].action_type == "achievement_unlocked"
    assert ledger[0].metadata.achievement_id == "first_upload"
    assert ledger[0].metadata.points_awarded == 10
    assert (await repository.get_user("alice")).points == 10

    notifications = await repository.get_notifications("alice", unread_only=True)
    assert len(notifications) == 1
    assert notifications[0].title == "Achievement Unlocked: First Contribution"
    assert notifications[0].data["achievement_id"] == "first_upload"

    assert await repository.get_all_unlocked() == {"alice": {"first_upload"}}


@pytest.mark.asyncio
async def test_store_failure_is_not_an_empty_ledger():
    session = MagicMock()
    session.begin.side_effect = OperationalError("SELECT 1", {}, Exception("database is locked"))

    class BrokenFactory:
        def __call__(self):
            return self

        async def __aenter__(self):
            return session

        async def __aexit__(self, *exc_info):
            return False

    repo = GamificationRepository(BrokenFactory())
    with pytest.raises(StoreUnavailableError):
        await repo.get_ledger("alice")
