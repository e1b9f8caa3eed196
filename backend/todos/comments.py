"""
Comments on todos. A new comment notifies the todo's creator unless the
creator wrote it.
"""

import logging
from typing import List

from sqlalchemy.orm import Session, joinedload

import models
from todos.context import RequestContext
from todos.errors import ValidationError
from todos.guard import find_live_todo, find_todo_by_id_and_tenant
from todos.notify import notify_comment
from todos.transaction import atomic

logger = logging.getLogger(__name__)


def list_comments(db: Session, ctx: RequestContext, todo_id: int) -> List[models.Comment]:
    """Comments of a todo in the caller's tenant, newest first."""
    find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id)
    return (
        db.query(models.Comment)
        .options(joinedload(models.Comment.author))
        .filter(models.Comment.todo_id == todo_id)
        .order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
        .all()
    )


def create_comment(db: Session, ctx: RequestContext, todo_id: int, content: str) -> models.Comment:
    """
    Add a comment to a todo.

    Raises:
        ValidationError: content empty after trimming
        NotFoundOrForbidden: todo missing or in another tenant
    """
    logger.debug(f"User {ctx.user_id} creating comment on todo {todo_id}")

    with atomic(db):
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty", field="content")

        todo = find_live_todo(db, todo_id, ctx.tenant_id)
        comment = models.Comment(content=content, todo_id=todo_id, author_id=ctx.user_id)
        db.add(comment)
        db.flush()
        notify_comment(db, todo, ctx.user_id)

    logger.info(f"Comment {comment.id} created on todo {todo_id}")
    return (
        db.query(models.Comment)
        .options(joinedload(models.Comment.author))
        .filter(models.Comment.id == comment.id)
        .one()
    )
