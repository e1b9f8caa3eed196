"""
Todo lifecycle: create, update, toggle, assign, recur, archive, trash,
restore and purge.

Every operation validates first and writes second, inside one transaction,
so a rejected request leaves no row, activity or notification behind.

State axes:
- status: PENDING <-> COMPLETED
- placement: active -> archived -> trashed -> purged (gone)
  archived_at is kept while a todo sits in the trash, which is how restore
  knows whether to return it to the archive or to the active list.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

import models
from models import ActivityAction, RecurrenceType, TodoStatus
from config import MAX_TODO_TITLE_LENGTH
from time_utils import ensure_utc, utc_now
from todos.activity import record_changes, record_event, snapshot
from todos.context import RequestContext
from todos.errors import InvalidReference, InvalidStateTransition, ValidationError
from todos.guard import (
    delete_todo_by_id_and_tenant,
    find_live_todo,
    find_todo_by_id_and_tenant,
    find_user_in_tenant,
    update_todo_by_id_and_tenant,
)
from todos.labels import attach_labels, resolve_labels
from todos.notify import notify_assignment
from todos.recurrence import next_due_date
from todos.transaction import atomic

logger = logging.getLogger(__name__)

ACTIVE = "active"
ARCHIVED = "archived"
TRASHED = "trashed"
VIEWS = (ACTIVE, ARCHIVED, TRASHED)


def lifecycle_state(todo: models.Todo) -> str:
    """Placement of a todo: active, archived or trashed."""
    if todo.deleted_at is not None:
        return TRASHED
    if todo.archived_at is not None:
        return ARCHIVED
    return ACTIVE


@dataclass
class ToggleResult:
    todo: models.Todo
    successor: Optional[models.Todo] = None


def _validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required", field="title")
    if len(title) > MAX_TODO_TITLE_LENGTH:
        raise ValidationError(f"Title must be {MAX_TODO_TITLE_LENGTH} characters or less", field="title")
    return title


def _clean_description(description: Optional[str]) -> Optional[str]:
    return (description or "").strip() or None


def _validate_assignee(db: Session, tenant_id: int, assignee_id: Optional[int]) -> None:
    if assignee_id is None:
        return
    if find_user_in_tenant(db, assignee_id, tenant_id) is None:
        logger.info(f"Assignee {assignee_id} is not a member of tenant {tenant_id}")
        raise InvalidReference("Invalid assignee", field="assigneeId")


def load_todo(db: Session, todo_id: int) -> models.Todo:
    return (
        db.query(models.Todo)
        .options(selectinload(models.Todo.labels), selectinload(models.Todo.subtasks))
        .filter(models.Todo.id == todo_id)
        .one()
    )


# ============== Reads ==============

def get_todo(db: Session, ctx: RequestContext, todo_id: int) -> models.Todo:
    return find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id)


def list_todos(db: Session, ctx: RequestContext, view: str = ACTIVE) -> List[models.Todo]:
    """Todos of the caller's tenant in one placement, newest first."""
    if view not in VIEWS:
        raise ValidationError(f"Unknown view {view!r}", field="view")

    query = (
        db.query(models.Todo)
        .options(selectinload(models.Todo.labels), selectinload(models.Todo.subtasks))
        .filter(models.Todo.tenant_id == ctx.tenant_id)
    )
    if view == ACTIVE:
        query = query.filter(models.Todo.archived_at.is_(None), models.Todo.deleted_at.is_(None))
    elif view == ARCHIVED:
        query = query.filter(models.Todo.archived_at.isnot(None), models.Todo.deleted_at.is_(None))
    else:
        query = query.filter(models.Todo.deleted_at.isnot(None))

    return query.order_by(models.Todo.created_at.desc(), models.Todo.id.desc()).all()


# ============== Create / update ==============

def insert_todo(
    db: Session,
    ctx: RequestContext,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    assignee_id: Optional[int] = None,
    label_ids: Iterable[int] = (),
) -> models.Todo:
    """Validate and add a new todo with its labels and CREATED row. The caller owns the transaction."""
    title = _validate_title(title)
    _validate_assignee(db, ctx.tenant_id, assignee_id)
    labels = resolve_labels(db, ctx.tenant_id, label_ids or [])

    todo = models.Todo(
        title=title,
        description=_clean_description(description),
        due_date=ensure_utc(due_date),
        status=TodoStatus.PENDING,
        recurrence_type=RecurrenceType.NONE,
        tenant_id=ctx.tenant_id,
        created_by_id=ctx.user_id,
        assignee_id=assignee_id,
    )
    db.add(todo)
    db.flush()

    attach_labels(db, todo.id, labels)
    record_event(db, todo.id, ctx.user_id, ActivityAction.CREATED)
    notify_assignment(db, todo, ctx.user_id, None, assignee_id)
    return todo


def create_todo(
    db: Session,
    ctx: RequestContext,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    assignee_id: Optional[int] = None,
    label_ids: Iterable[int] = (),
) -> models.Todo:
    """
    Create a PENDING todo in the caller's tenant and record CREATED.

    Raises:
        ValidationError: empty or overlong title
        InvalidReference: assignee or label outside the tenant
    """
    logger.info(f"User {ctx.user_id} creating todo in tenant {ctx.tenant_id}")

    with atomic(db):
        todo = insert_todo(db, ctx, title, description, due_date, assignee_id, label_ids)

    logger.info(f"Todo created successfully: id={todo.id}")
    return load_todo(db, todo.id)


def update_todo(
    db: Session,
    ctx: RequestContext,
    todo_id: int,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    assignee_id: Optional[int] = None,
) -> models.Todo:
    """
    Replace the editable fields of a todo.

    Optional fields that are not supplied are cleared. One activity row is
    written per tracked field that actually changed.
    """
    logger.info(f"User {ctx.user_id} updating todo {todo_id}")

    with atomic(db):
        title = _validate_title(title)
        todo = find_live_todo(db, todo_id, ctx.tenant_id)
        _validate_assignee(db, ctx.tenant_id, assignee_id)

        before = snapshot(todo)
        values = {
            "title": title,
            "description": _clean_description(description),
            "due_date": ensure_utc(due_date),
            "assignee_id": assignee_id,
        }
        update_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, values)

        after = {**before, **values}
        record_changes(db, todo_id, ctx.user_id, before, after)
        notify_assignment(db, todo, ctx.user_id, before["assignee_id"], assignee_id)

    logger.info(f"Todo {todo_id} updated successfully")
    return load_todo(db, todo_id)


def update_todo_assignee(db: Session, ctx: RequestContext, todo_id: int, assignee_id: Optional[int]) -> models.Todo:
    """Assign (or with None, unassign) a todo."""
    logger.info(f"User {ctx.user_id} assigning todo {todo_id} to {assignee_id}")

    with atomic(db):
        todo = find_live_todo(db, todo_id, ctx.tenant_id)
        _validate_assignee(db, ctx.tenant_id, assignee_id)

        old_assignee_id = todo.assignee_id
        update_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, {"assignee_id": assignee_id})
        record_changes(db, todo_id, ctx.user_id, {"assignee_id": old_assignee_id}, {"assignee_id": assignee_id})
        notify_assignment(db, todo, ctx.user_id, old_assignee_id, assignee_id)

    return load_todo(db, todo_id)


def update_todo_recurrence(db: Session, ctx: RequestContext, todo_id: int, interval: RecurrenceType) -> models.Todo:
    """
    Set the recurrence interval.

    Raises:
        InvalidStateTransition: a repeating interval on a todo without due date
    """
    interval = RecurrenceType(interval)
    logger.info(f"User {ctx.user_id} setting recurrence of todo {todo_id} to {interval.value}")

    with atomic(db):
        todo = find_live_todo(db, todo_id, ctx.tenant_id)
        if interval is not RecurrenceType.NONE and todo.due_date is None:
            raise InvalidStateTransition("A due date is required to set a recurrence", field="recurrenceType")
        update_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, {"recurrence_type": interval})

    return load_todo(db, todo_id)


# ============== Status ==============

def _spawn_successor(db: Session, todo: models.Todo, actor_id: int) -> models.Todo:
    """
    Create the next PENDING instance of a completed recurring todo.

    Copies title, description, assignee, creator, recurrence and labels;
    subtasks and comments start empty.
    """
    successor = models.Todo(
        title=todo.title,
        description=todo.description,
        due_date=next_due_date(ensure_utc(todo.due_date), todo.recurrence_type),
        status=TodoStatus.PENDING,
        recurrence_type=todo.recurrence_type,
        tenant_id=todo.tenant_id,
        created_by_id=todo.created_by_id,
        assignee_id=todo.assignee_id,
    )
    db.add(successor)
    db.flush()

    label_ids = [
        label_id
        for (label_id,) in db.query(models.TodoLabel.label_id).filter(models.TodoLabel.todo_id == todo.id).all()
    ]
    for label_id in label_ids:
        db.add(models.TodoLabel(todo_id=successor.id, label_id=label_id))

    record_event(db, successor.id, actor_id, ActivityAction.CREATED)
    logger.info(f"Spawned successor {successor.id} of recurring todo {todo.id} due {successor.due_date}")
    return successor


def toggle_todo(db: Session, ctx: RequestContext, todo_id: int) -> ToggleResult:
    """
    Flip PENDING <-> COMPLETED.

    Completing a recurring todo that has a due date creates its successor in
    the same transaction. Reopening never does.
    """
    logger.info(f"User {ctx.user_id} toggling todo {todo_id}")

    with atomic(db):
        todo = find_live_todo(db, todo_id, ctx.tenant_id)
        old_status = todo.status
        new_status = TodoStatus.COMPLETED if old_status == TodoStatus.PENDING else TodoStatus.PENDING

        update_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, {"status": new_status})
        record_changes(db, todo_id, ctx.user_id, {"status": old_status}, {"status": new_status})

        successor = None
        completing = old_status == TodoStatus.PENDING and new_status == TodoStatus.COMPLETED
        if completing and todo.recurrence_type != RecurrenceType.NONE and todo.due_date is not None:
            successor = _spawn_successor(db, todo, ctx.user_id)

    return ToggleResult(
        todo=load_todo(db, todo_id),
        successor=load_todo(db, successor.id) if successor is not None else None,
    )


# ============== Placement ==============

def archive_todo(db: Session, ctx: RequestContext, todo_id: int) -> models.Todo:
    """active -> archived"""
    logger.info(f"User {ctx.user_id} archiving todo {todo_id}")

    with atomic(db):
        todo = find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, for_update=True)
        if todo.deleted_at is not None:
            raise InvalidStateTransition("Cannot archive a deleted todo")
        if todo.archived_at is not None:
            raise InvalidStateTransition("Todo is already archived")

        update_todo_by_id_and_tenant(
            db,
            todo_id,
            ctx.tenant_id,
            {"archived_at": utc_now()},
            models.Todo.archived_at.is_(None),
            models.Todo.deleted_at.is_(None),
        )
        record_event(db, todo_id, ctx.user_id, ActivityAction.ARCHIVED)

    return load_todo(db, todo_id)


def unarchive_todo(db: Session, ctx: RequestContext, todo_id: int) -> models.Todo:
    """archived -> active"""
    logger.info(f"User {ctx.user_id} unarchiving todo {todo_id}")

    with atomic(db):
        todo = find_live_todo(db, todo_id, ctx.tenant_id)
        if todo.archived_at is None:
            raise InvalidStateTransition("Todo is not archived")

        update_todo_by_id_and_tenant(
            db,
            todo_id,
            ctx.tenant_id,
            {"archived_at": None},
            models.Todo.deleted_at.is_(None),
        )
        record_event(db, todo_id, ctx.user_id, ActivityAction.RESTORED)

    return load_todo(db, todo_id)


def trash_todo(db: Session, ctx: RequestContext, todo_id: int) -> models.Todo:
    """active | archived -> trashed (archived_at is left in place)."""
    logger.info(f"User {ctx.user_id} moving todo {todo_id} to trash")

    with atomic(db):
        todo = find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, for_update=True)
        if todo.deleted_at is not None:
            raise InvalidStateTransition("Todo is already in trash")

        update_todo_by_id_and_tenant(
            db,
            todo_id,
            ctx.tenant_id,
            {"deleted_at": utc_now()},
            models.Todo.deleted_at.is_(None),
        )
        record_event(db, todo_id, ctx.user_id, ActivityAction.TRASHED)

    return load_todo(db, todo_id)


def restore_todo(db: Session, ctx: RequestContext, todo_id: int) -> models.Todo:
    """trashed -> archived if it was archived before trashing, else active."""
    logger.info(f"User {ctx.user_id} restoring todo {todo_id} from trash")

    with atomic(db):
        todo = find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, for_update=True)
        if todo.deleted_at is None:
            raise InvalidStateTransition("Todo is not in trash")

        update_todo_by_id_and_tenant(
            db,
            todo_id,
            ctx.tenant_id,
            {"deleted_at": None},
            models.Todo.deleted_at.isnot(None),
        )
        record_event(db, todo_id, ctx.user_id, ActivityAction.RESTORED)

    restored = load_todo(db, todo_id)
    logger.info(f"Todo {todo_id} restored to {lifecycle_state(restored)}")
    return restored


def purge_todo(db: Session, ctx: RequestContext, todo_id: int) -> None:
    """
    Permanently delete a trashed todo with its subtasks, labels, comments
    and activities. No terminal activity row is kept.
    """
    logger.info(f"User {ctx.user_id} permanently deleting todo {todo_id}")

    with atomic(db):
        todo = find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, for_update=True)
        if todo.deleted_at is None:
            raise InvalidStateTransition("Only trashed todos can be permanently deleted")

        delete_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id, models.Todo.deleted_at.isnot(None))

    logger.info(f"Todo {todo_id} purged")
