"""
Tests for the todo lifecycle state machine.

Tests cover:
- Creation and validation (title, assignee and labels within the tenant)
- Toggle and successor spawning for recurring todos
- Recurrence rules
- Placement transitions: archive, unarchive, trash, restore, purge
- Tenant isolation of every guarded mutation
"""

import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

import models
from models import ActivityAction, RecurrenceType, TodoStatus
from todos import lifecycle
from todos.errors import InvalidReference, InvalidStateTransition, NotFoundOrForbidden, ValidationError
from todos.subtasks import create_subtask
from todos.comments import create_comment

logger = logging.getLogger(__name__)

DUE = datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc)


def _tenant_todos(db: Session, tenant_id: int):
    return db.query(models.Todo).filter(models.Todo.tenant_id == tenant_id).order_by(models.Todo.id).all()


# ============== Create (7 tests) ==============


def test_create_todo_defaults(test_db: Session, admin_ctx):
    """Test that a new todo is PENDING, non-recurring, active and owned by the caller."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="  Buy milk  ", description="")

    assert todo.title == "Buy milk"
    assert todo.description is None
    assert todo.status == TodoStatus.PENDING
    assert todo.recurrence_type == RecurrenceType.NONE
    assert todo.created_by_id == admin_ctx.user_id
    assert todo.tenant_id == admin_ctx.tenant_id
    assert lifecycle.lifecycle_state(todo) == lifecycle.ACTIVE


def test_create_todo_requires_title(test_db: Session, admin_ctx):
    """Test that a blank title is a field error and nothing is written."""
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.create_todo(test_db, admin_ctx, title="   ")

    assert exc_info.value.field == "title"
    assert test_db.query(models.Todo).count() == 0
    assert test_db.query(models.TodoActivity).count() == 0


def test_title_length_limit(test_db: Session, admin_ctx):
    """Test that titles longer than 255 characters are a field error on create and update."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="x" * 255)
    assert len(todo.title) == 255

    with pytest.raises(ValidationError) as exc_info:
        lifecycle.create_todo(test_db, admin_ctx, title="x" * 256)
    assert exc_info.value.field == "title"
    assert exc_info.value.message == "Title must be 255 characters or less"

    with pytest.raises(ValidationError):
        lifecycle.update_todo(test_db, admin_ctx, todo.id, title="y" * 300)

    test_db.expire_all()
    assert test_db.query(models.Todo).count() == 1
    assert test_db.get(models.Todo, todo.id).title == "x" * 255


def test_blank_description_is_stored_as_none(test_db: Session, admin_ctx):
    """Test that a whitespace-only description is stored as None and does not count as a change."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Plain", description="   ")
    assert todo.description is None

    updated = lifecycle.update_todo(test_db, admin_ctx, todo.id, title="Plain", description="  \n ")

    assert updated.description is None
    actions = [row.action for row in test_db.query(models.TodoActivity).filter(models.TodoActivity.todo_id == todo.id)]
    assert actions == [ActivityAction.CREATED.value]


def test_create_todo_rejects_assignee_from_other_tenant(test_db: Session, admin_ctx, outsider_user):
    """Test that an assignee outside the caller's tenant is rejected."""
    with pytest.raises(InvalidReference) as exc_info:
        lifecycle.create_todo(test_db, admin_ctx, title="Task", assignee_id=outsider_user.id)

    assert exc_info.value.field == "assigneeId"
    assert test_db.query(models.Todo).count() == 0


def test_create_todo_rejects_foreign_labels(test_db: Session, admin_ctx, label_urgent, foreign_label):
    """Test that one foreign label id aborts the whole create."""
    with pytest.raises(InvalidReference):
        lifecycle.create_todo(test_db, admin_ctx, title="Task", label_ids=[label_urgent.id, foreign_label.id])

    assert test_db.query(models.Todo).count() == 0
    assert test_db.query(models.TodoLabel).count() == 0


def test_create_todo_attaches_labels(test_db: Session, admin_ctx, label_urgent, label_home):
    """Test that labels given at creation are attached (duplicates ignored)."""
    todo = lifecycle.create_todo(
        test_db, admin_ctx, title="Task", label_ids=[label_urgent.id, label_home.id, label_urgent.id]
    )

    assert sorted(todo.label_ids) == sorted([label_urgent.id, label_home.id])


# ============== Toggle and successors (6 tests) ==============


def test_toggle_non_recurring_todo_yields_single_todo(test_db: Session, admin_ctx):
    """Test that completing a non-recurring todo creates no successor."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="One-off", due_date=DUE)

    result = lifecycle.toggle_todo(test_db, admin_ctx, todo.id)

    assert result.todo.status == TodoStatus.COMPLETED
    assert result.successor is None
    assert len(_tenant_todos(test_db, admin_ctx.tenant_id)) == 1


def test_completing_recurring_todo_spawns_successor(test_db: Session, admin_ctx, member_user, label_urgent):
    """Test that completing a recurring todo yields exactly two todos with the right successor."""
    todo = lifecycle.create_todo(
        test_db,
        admin_ctx,
        title="Pay rent",
        description="Bank transfer",
        due_date=DUE,
        assignee_id=member_user.id,
        label_ids=[label_urgent.id],
    )
    lifecycle.update_todo_recurrence(test_db, admin_ctx, todo.id, RecurrenceType.MONTHLY)
    create_subtask(test_db, admin_ctx, todo.id, "Check balance")
    create_comment(test_db, admin_ctx, todo.id, "Remember the reference")

    result = lifecycle.toggle_todo(test_db, admin_ctx, todo.id)

    todos = _tenant_todos(test_db, admin_ctx.tenant_id)
    assert len(todos) == 2
    assert result.todo.status == TodoStatus.COMPLETED

    successor = result.successor
    assert successor is not None
    assert successor.status == TodoStatus.PENDING
    assert successor.title == "Pay rent"
    assert successor.description == "Bank transfer"
    assert successor.assignee_id == member_user.id
    assert successor.created_by_id == admin_ctx.user_id
    assert successor.recurrence_type == RecurrenceType.MONTHLY
    assert successor.due_date.replace(tzinfo=None) == datetime(2026, 2, 28, 9, 0)
    assert successor.label_ids == [label_urgent.id]
    assert successor.subtasks == []
    assert test_db.query(models.Comment).filter(models.Comment.todo_id == successor.id).count() == 0

    created = test_db.query(models.TodoActivity).filter(models.TodoActivity.todo_id == successor.id).all()
    assert [row.action for row in created] == [ActivityAction.CREATED.value]
    logger.info("✓ Recurring completion spawned one successor")


def test_recurring_todo_without_due_date_does_not_spawn(test_db: Session, admin_ctx):
    """Test that a recurrence left behind after clearing the due date is ignored."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Water plants", due_date=DUE)
    lifecycle.update_todo_recurrence(test_db, admin_ctx, todo.id, RecurrenceType.WEEKLY)
    lifecycle.update_todo(test_db, admin_ctx, todo.id, title="Water plants", due_date=None)

    result = lifecycle.toggle_todo(test_db, admin_ctx, todo.id)

    assert result.successor is None
    assert len(_tenant_todos(test_db, admin_ctx.tenant_id)) == 1


def test_reopening_never_spawns(test_db: Session, admin_ctx):
    """Test that un-completing a recurring todo does not spawn another successor."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Standup", due_date=DUE)
    lifecycle.update_todo_recurrence(test_db, admin_ctx, todo.id, RecurrenceType.DAILY)

    lifecycle.toggle_todo(test_db, admin_ctx, todo.id)
    result = lifecycle.toggle_todo(test_db, admin_ctx, todo.id)

    assert result.todo.status == TodoStatus.PENDING
    assert result.successor is None
    assert len(_tenant_todos(test_db, admin_ctx.tenant_id)) == 2


def test_toggle_records_status_change(test_db: Session, admin_ctx):
    """Test that a toggle writes one STATUS_CHANGED row with verbatim values."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Toggle me")
    lifecycle.toggle_todo(test_db, admin_ctx, todo.id)

    row = (
        test_db.query(models.TodoActivity)
        .filter(models.TodoActivity.todo_id == todo.id, models.TodoActivity.action == ActivityAction.STATUS_CHANGED.value)
        .one()
    )
    assert (row.field, row.old_value, row.new_value) == ("status", "PENDING", "COMPLETED")


def test_toggle_trashed_todo_is_rejected(test_db: Session, admin_ctx):
    """Test that a trashed todo cannot be completed."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Gone")
    lifecycle.trash_todo(test_db, admin_ctx, todo.id)

    with pytest.raises(InvalidStateTransition):
        lifecycle.toggle_todo(test_db, admin_ctx, todo.id)


# ============== Recurrence rules (2 tests) ==============


def test_recurrence_requires_due_date(test_db: Session, admin_ctx):
    """Test that a repeating interval on a todo without due date is rejected."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="No date")

    with pytest.raises(InvalidStateTransition) as exc_info:
        lifecycle.update_todo_recurrence(test_db, admin_ctx, todo.id, RecurrenceType.WEEKLY)

    assert exc_info.value.message == "A due date is required to set a recurrence"
    test_db.expire_all()
    assert test_db.get(models.Todo, todo.id).recurrence_type == RecurrenceType.NONE


def test_recurrence_can_be_cleared_without_due_date(test_db: Session, admin_ctx):
    """Test that NONE is always accepted."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="No date")

    updated = lifecycle.update_todo_recurrence(test_db, admin_ctx, todo.id, RecurrenceType.NONE)

    assert updated.recurrence_type == RecurrenceType.NONE


# ============== Placement (8 tests) ==============


def test_archive_and_unarchive(test_db: Session, admin_ctx):
    """Test active -> archived -> active with ARCHIVED and RESTORED rows."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Archive me")

    archived = lifecycle.archive_todo(test_db, admin_ctx, todo.id)
    assert lifecycle.lifecycle_state(archived) == lifecycle.ARCHIVED

    active = lifecycle.unarchive_todo(test_db, admin_ctx, todo.id)
    assert lifecycle.lifecycle_state(active) == lifecycle.ACTIVE

    actions = [
        row.action
        for row in test_db.query(models.TodoActivity)
        .filter(models.TodoActivity.todo_id == todo.id)
        .order_by(models.TodoActivity.id)
    ]
    assert actions == [ActivityAction.CREATED.value, ActivityAction.ARCHIVED.value, ActivityAction.RESTORED.value]


def test_archive_twice_is_rejected(test_db: Session, admin_ctx):
    """Test that archiving an archived todo fails."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Archive me")
    lifecycle.archive_todo(test_db, admin_ctx, todo.id)

    with pytest.raises(InvalidStateTransition):
        lifecycle.archive_todo(test_db, admin_ctx, todo.id)


def test_archive_trashed_todo_is_rejected(test_db: Session, admin_ctx):
    """Test that a trashed todo cannot be archived."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Trash me")
    lifecycle.trash_todo(test_db, admin_ctx, todo.id)

    with pytest.raises(InvalidStateTransition) as exc_info:
        lifecycle.archive_todo(test_db, admin_ctx, todo.id)

    assert exc_info.value.message == "Cannot archive a deleted todo"


def test_archive_purged_todo_is_not_found(test_db: Session, admin_ctx):
    """Test that a purged todo no longer exists for any transition."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Purge me")
    lifecycle.trash_todo(test_db, admin_ctx, todo.id)
    lifecycle.purge_todo(test_db, admin_ctx, todo.id)

    with pytest.raises(NotFoundOrForbidden):
        lifecycle.archive_todo(test_db, admin_ctx, todo.id)


def test_restore_archived_then_trashed_returns_to_archive(test_db: Session, admin_ctx):
    """Test that restoring a todo that was archived before trashing brings it back archived."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Round trip")
    lifecycle.archive_todo(test_db, admin_ctx, todo.id)
    lifecycle.trash_todo(test_db, admin_ctx, todo.id)

    restored = lifecycle.restore_todo(test_db, admin_ctx, todo.id)

    assert lifecycle.lifecycle_state(restored) == lifecycle.ARCHIVED
    logger.info("✓ Restore returned todo to the archive")


def test_restore_never_archived_returns_to_active(test_db: Session, admin_ctx):
    """Test that restoring a todo trashed from the active list makes it active again."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Round trip")
    lifecycle.trash_todo(test_db, admin_ctx, todo.id)

    restored = lifecycle.restore_todo(test_db, admin_ctx, todo.id)

    assert lifecycle.lifecycle_state(restored) == lifecycle.ACTIVE


def test_purge_requires_trash_and_cascades(test_db: Session, admin_ctx, label_urgent):
    """Test that purge only works from the trash and removes children and activities."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Purge me", label_ids=[label_urgent.id])
    create_subtask(test_db, admin_ctx, todo.id, "Child")

    with pytest.raises(InvalidStateTransition):
        lifecycle.purge_todo(test_db, admin_ctx, todo.id)

    lifecycle.trash_todo(test_db, admin_ctx, todo.id)
    lifecycle.purge_todo(test_db, admin_ctx, todo.id)

    assert test_db.query(models.Todo).filter(models.Todo.id == todo.id).count() == 0
    assert test_db.query(models.Subtask).filter(models.Subtask.todo_id == todo.id).count() == 0
    assert test_db.query(models.TodoLabel).filter(models.TodoLabel.todo_id == todo.id).count() == 0
    assert test_db.query(models.TodoActivity).filter(models.TodoActivity.todo_id == todo.id).count() == 0
    assert test_db.query(models.Label).filter(models.Label.id == label_urgent.id).count() == 1


def test_list_todos_by_view(test_db: Session, admin_ctx):
    """Test that each view only returns todos in that placement."""
    active = lifecycle.create_todo(test_db, admin_ctx, title="Active")
    archived = lifecycle.create_todo(test_db, admin_ctx, title="Archived")
    trashed = lifecycle.create_todo(test_db, admin_ctx, title="Trashed")
    lifecycle.archive_todo(test_db, admin_ctx, archived.id)
    lifecycle.trash_todo(test_db, admin_ctx, trashed.id)

    assert [todo.id for todo in lifecycle.list_todos(test_db, admin_ctx, lifecycle.ACTIVE)] == [active.id]
    assert [todo.id for todo in lifecycle.list_todos(test_db, admin_ctx, lifecycle.ARCHIVED)] == [archived.id]
    assert [todo.id for todo in lifecycle.list_todos(test_db, admin_ctx, lifecycle.TRASHED)] == [trashed.id]

    with pytest.raises(ValidationError):
        lifecycle.list_todos(test_db, admin_ctx, "everything")


# ============== Tenant isolation (4 tests) ==============


@pytest.mark.parametrize(
    "operation",
    [
        lambda db, ctx, todo_id: lifecycle.update_todo(db, ctx, todo_id, title="Hijacked"),
        lambda db, ctx, todo_id: lifecycle.toggle_todo(db, ctx, todo_id),
        lambda db, ctx, todo_id: lifecycle.update_todo_assignee(db, ctx, todo_id, None),
        lambda db, ctx, todo_id: lifecycle.archive_todo(db, ctx, todo_id),
        lambda db, ctx, todo_id: lifecycle.trash_todo(db, ctx, todo_id),
        lambda db, ctx, todo_id: lifecycle.get_todo(db, ctx, todo_id),
    ],
    ids=["update", "toggle", "assign", "archive", "trash", "get"],
)
def test_other_tenant_cannot_touch_todo(test_db: Session, admin_ctx, outsider_ctx, operation):
    """Test that another tenant gets NotFoundOrForbidden and the row is unchanged."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Private")

    with pytest.raises(NotFoundOrForbidden) as exc_info:
        operation(test_db, outsider_ctx, todo.id)

    assert exc_info.value.message == "Todo not found"
    test_db.expire_all()
    row = test_db.get(models.Todo, todo.id)
    assert row.title == "Private"
    assert row.status == TodoStatus.PENDING
    assert row.archived_at is None and row.deleted_at is None
    assert test_db.query(models.TodoActivity).filter(models.TodoActivity.todo_id == todo.id).count() == 1


def _archive_then_trash(db: Session, ctx, todo_id: int) -> None:
    lifecycle.archive_todo(db, ctx, todo_id)
    lifecycle.trash_todo(db, ctx, todo_id)


@pytest.mark.parametrize(
    "prepare, operation",
    [
        (
            lambda db, ctx, todo_id: lifecycle.trash_todo(db, ctx, todo_id),
            lambda db, ctx, todo_id: lifecycle.restore_todo(db, ctx, todo_id),
        ),
        (
            _archive_then_trash,
            lambda db, ctx, todo_id: lifecycle.restore_todo(db, ctx, todo_id),
        ),
        (
            lambda db, ctx, todo_id: lifecycle.archive_todo(db, ctx, todo_id),
            lambda db, ctx, todo_id: lifecycle.unarchive_todo(db, ctx, todo_id),
        ),
        (
            lambda db, ctx, todo_id: None,
            lambda db, ctx, todo_id: lifecycle.update_todo_recurrence(db, ctx, todo_id, RecurrenceType.WEEKLY),
        ),
    ],
    ids=["restore-trashed", "restore-archived-trashed", "unarchive", "recurrence"],
)
def test_other_tenant_cannot_change_placement_or_recurrence(
    test_db: Session, admin_ctx, outsider_ctx, prepare, operation
):
    """Test that restore, unarchive and recurrence are guarded by tenant from any starting state."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Private", due_date=DUE)
    prepare(test_db, admin_ctx, todo.id)
    test_db.expire_all()
    before = test_db.get(models.Todo, todo.id)
    expected = (before.archived_at, before.deleted_at, before.recurrence_type)
    activity_count = test_db.query(models.TodoActivity).filter(models.TodoActivity.todo_id == todo.id).count()

    with pytest.raises(NotFoundOrForbidden) as exc_info:
        operation(test_db, outsider_ctx, todo.id)

    assert exc_info.value.message == "Todo not found"
    test_db.expire_all()
    row = test_db.get(models.Todo, todo.id)
    assert (row.archived_at, row.deleted_at, row.recurrence_type) == expected
    assert test_db.query(models.TodoActivity).filter(models.TodoActivity.todo_id == todo.id).count() == activity_count


def test_missing_and_foreign_ids_look_the_same(test_db: Session, admin_ctx, outsider_ctx):
    """Test that a foreign id and a nonexistent id raise the same message."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Private")

    with pytest.raises(NotFoundOrForbidden) as foreign:
        lifecycle.archive_todo(test_db, outsider_ctx, todo.id)
    with pytest.raises(NotFoundOrForbidden) as missing:
        lifecycle.archive_todo(test_db, outsider_ctx, todo.id + 1000)

    assert foreign.value.message == missing.value.message


def test_other_tenant_cannot_purge(test_db: Session, admin_ctx, outsider_ctx):
    """Test that a trashed todo cannot be purged across tenants."""
    todo = lifecycle.create_todo(test_db, admin_ctx, title="Private")
    lifecycle.trash_todo(test_db, admin_ctx, todo.id)

    with pytest.raises(NotFoundOrForbidden):
        lifecycle.purge_todo(test_db, outsider_ctx, todo.id)

    assert test_db.query(models.Todo).filter(models.Todo.id == todo.id).count() == 1
