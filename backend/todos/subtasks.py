"""
Subtasks: a bounded, ordered checklist owned by a todo.

Every mutation re-checks tenant ownership through the parent todo.
"""

import logging
from typing import List

from sqlalchemy import not_
from sqlalchemy.orm import Session

import models
from config import MAX_SUBTASK_TITLE_LENGTH, MAX_SUBTASKS
from todos.context import RequestContext
from todos.errors import InvalidStateTransition, ValidationError
from todos.guard import (
    delete_subtask_by_id_and_tenant,
    find_live_todo,
    find_subtask_by_id_and_tenant,
    find_todo_by_id_and_tenant,
    update_subtask_by_id_and_tenant,
)
from todos.transaction import atomic

logger = logging.getLogger(__name__)


def validate_subtask_title(title: str) -> str:
    """Trim and check a subtask title. Returns the trimmed title."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("Subtask title cannot be empty", field="title")
    if len(title) > MAX_SUBTASK_TITLE_LENGTH:
        raise ValidationError(
            f"Subtask title must be {MAX_SUBTASK_TITLE_LENGTH} characters or less",
            field="title",
        )
    return title


def _ensure_parent_live(db: Session, ctx: RequestContext, subtask_id: int) -> models.Subtask:
    subtask = find_subtask_by_id_and_tenant(db, subtask_id, ctx.tenant_id)
    if subtask.todo.deleted_at is not None:
        raise InvalidStateTransition("Todo is deleted")
    return subtask


def list_subtasks(db: Session, ctx: RequestContext, todo_id: int) -> List[models.Subtask]:
    find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id)
    return (
        db.query(models.Subtask)
        .filter(models.Subtask.todo_id == todo_id)
        .order_by(models.Subtask.order.asc())
        .all()
    )


def append_subtasks(db: Session, todo_id: int, titles: List[str]) -> List[models.Subtask]:
    """Append already-validated titles after the current last subtask. The caller owns the transaction."""
    # Orders stay dense (0..n-1), so the next slot is the current count
    next_order = db.query(models.Subtask).filter(models.Subtask.todo_id == todo_id).count()

    subtasks = []
    for offset, title in enumerate(titles):
        subtask = models.Subtask(todo_id=todo_id, title=title, order=next_order + offset, is_complete=False)
        db.add(subtask)
        subtasks.append(subtask)
    db.flush()
    return subtasks


def create_subtask(db: Session, ctx: RequestContext, todo_id: int, title: str) -> models.Subtask:
    """
    Append a subtask to a todo.

    Raises:
        ValidationError: empty title, title too long, or the todo already has the maximum
    """
    logger.debug(f"User {ctx.user_id} creating subtask on todo {todo_id}")

    with atomic(db):
        title = validate_subtask_title(title)
        find_live_todo(db, todo_id, ctx.tenant_id)

        count = db.query(models.Subtask).filter(models.Subtask.todo_id == todo_id).count()
        if count >= MAX_SUBTASKS:
            logger.info(f"Todo {todo_id} already has {count} subtasks")
            raise ValidationError(f"Maximum {MAX_SUBTASKS} subtasks allowed per todo", field="title")

        subtask = append_subtasks(db, todo_id, [title])[0]

    db.refresh(subtask)
    logger.info(f"Subtask created successfully: id={subtask.id}, todo_id={todo_id}")
    return subtask


def update_subtask(db: Session, ctx: RequestContext, subtask_id: int, title: str) -> models.Subtask:
    """Rename a subtask."""
    logger.debug(f"User {ctx.user_id} updating subtask {subtask_id}")

    with atomic(db):
        title = validate_subtask_title(title)
        _ensure_parent_live(db, ctx, subtask_id)
        update_subtask_by_id_and_tenant(db, subtask_id, ctx.tenant_id, {"title": title})

    return db.query(models.Subtask).filter(models.Subtask.id == subtask_id).one()


def toggle_subtask(db: Session, ctx: RequestContext, subtask_id: int) -> models.Subtask:
    """Flip a subtask's completion flag in one guarded statement."""
    logger.debug(f"User {ctx.user_id} toggling subtask {subtask_id}")

    with atomic(db):
        _ensure_parent_live(db, ctx, subtask_id)
        update_subtask_by_id_and_tenant(
            db,
            subtask_id,
            ctx.tenant_id,
            {models.Subtask.is_complete: not_(models.Subtask.is_complete)},
        )

    return db.query(models.Subtask).filter(models.Subtask.id == subtask_id).one()


def delete_subtask(db: Session, ctx: RequestContext, subtask_id: int) -> None:
    """
    Delete a subtask and close the gap it leaves in the order sequence.
    """
    logger.debug(f"User {ctx.user_id} deleting subtask {subtask_id}")

    with atomic(db):
        subtask = _ensure_parent_live(db, ctx, subtask_id)
        todo_id, order = subtask.todo_id, subtask.order
        delete_subtask_by_id_and_tenant(db, subtask_id, ctx.tenant_id)
        db.query(models.Subtask).filter(
            models.Subtask.todo_id == todo_id,
            models.Subtask.order > order,
        ).update({models.Subtask.order: models.Subtask.order - 1}, synchronize_session="fetch")

    logger.info(f"Subtask {subtask_id} deleted")
