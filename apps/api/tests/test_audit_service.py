"""Tests for the activity log."""
import uuid

from sqlalchemy import text

from everease.db.enums import ActivityType, ExecutorStatus
from everease.db.models import ActivityLog, Executor
from everease.services import audit_service


def test_record_appends_entry(db, planner):
    entry = audit_service.record(
        db,
        user_id=planner.id,
        action_type=ActivityType.EXECUTOR_INVITED,
        details="Invited Erin",
        actor_id=planner.id,
    )

    assert entry is not None
    stored = db.query(ActivityLog).one()
    assert stored.action_type == "executor_invited"
    assert stored.user_id == planner.id
    assert stored.actor_id == planner.id
    assert stored.created_at is not None


def test_record_truncates_long_details(db, planner):
    audit_service.record(db, planner.id, ActivityType.EXECUTOR_UPDATED, "x" * 5000)
    assert len(db.query(ActivityLog).one().details) == audit_service.MAX_DETAILS_LENGTH


def test_failed_write_does_not_undo_state_change(db, planner):
    """An audit failure never rolls back the transition it describes."""
    executor = Executor(planner_id=planner.id, name="Erin", email="erin@example.com")
    db.add(executor)
    db.commit()

    executor.status = ExecutorStatus.ACTIVE.value
    db.commit()

    # Make the insert itself fail
    db.execute(text("DROP TABLE activity_log"))
    db.commit()

    assert audit_service.record(db, planner.id, ActivityType.EXECUTOR_ACCEPTED, "Erin accepted") is None

    db.expire_all()
    assert db.get(Executor, executor.id).status == ExecutorStatus.ACTIVE.value


def test_list_activity_newest_first_and_scoped(db, planner, profile_factory):
    from datetime import datetime, timedelta, timezone

    other = profile_factory("other@example.com")
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for minutes, action in enumerate(
        [ActivityType.EXECUTOR_INVITED, ActivityType.EXECUTOR_ACCEPTED, ActivityType.DEATH_VERIFIED]
    ):
        db.add(ActivityLog(user_id=planner.id, action_type=action.value, created_at=base + timedelta(minutes=minutes)))
    db.add(ActivityLog(user_id=other.id, action_type=ActivityType.EXECUTOR_INVITED.value, created_at=base))
    db.commit()

    items = audit_service.list_activity(db, planner.id)
    assert [i.action_type for i in items] == ["death_verified", "executor_accepted", "executor_invited"]

    filtered = audit_service.list_activity(db, planner.id, action_type=ActivityType.EXECUTOR_INVITED)
    assert len(filtered) == 1
    assert audit_service.count_activity(db, planner.id) == 3
    assert audit_service.count_activity(db, other.id) == 1

    page = audit_service.list_activity(db, planner.id, limit=1, offset=1)
    assert [i.action_type for i in page] == ["executor_accepted"]


def test_system_entries_have_no_actor(db):
    planner_id = uuid.uuid4()
    audit_service.record(db, planner_id, ActivityType.ACCESS_REVOKED, "expired")
    assert db.query(ActivityLog).one().actor_id is None


def test_hash_email_hides_address():
    hashed = audit_service.hash_email("erin.executor@example.com")
    assert hashed.startswith("eri...@[hash:")
    assert "example.com" not in hashed
    assert audit_service.hash_email("ERIN.executor@example.com") == hashed
    assert audit_service.hash_email("") == ""
