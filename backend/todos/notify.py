"""
Notification trigger: cross-user side effects of assignment and comments,
plus the recipient-side read operations.

Nobody is ever notified about their own action.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from models import NotificationType
from todos.context import RequestContext
from todos.errors import NotFoundOrForbidden

logger = logging.getLogger(__name__)

FALLBACK_ACTOR = "Someone"


def resolve_actor_email(db: Session, actor_id: int) -> str:
    """Actor email for notification text, or a generic subject if it cannot be resolved."""
    actor = db.query(models.User).filter(models.User.id == actor_id).first()
    if actor is None or not actor.email:
        logger.warning(f"Could not resolve email for actor {actor_id}, using generic subject")
        return FALLBACK_ACTOR
    return actor.email


def create_notification(
    db: Session,
    user_id: int,
    type: NotificationType,
    message: str,
    todo_id: Optional[int] = None,
) -> models.Notification:
    """Append an unread notification for ``user_id``. The caller owns the transaction."""
    logger.debug(f"Creating notification: type={type.value}, user_id={user_id}, todo_id={todo_id}")
    notification = models.Notification(
        user_id=user_id,
        type=type.value,
        message=message,
        todo_id=todo_id,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def notify_assignment(
    db: Session,
    todo: models.Todo,
    actor_id: int,
    old_assignee_id: Optional[int],
    new_assignee_id: Optional[int],
) -> Optional[models.Notification]:
    """
    Notify the new assignee when someone else assigns them.

    No notification when the assignee is unchanged, cleared, or the actor
    assigned themselves.
    """
    if new_assignee_id is None or new_assignee_id == old_assignee_id:
        return None
    if new_assignee_id == actor_id:
        logger.debug(f"Skipping self-assignment notification for user {actor_id}")
        return None

    actor_email = resolve_actor_email(db, actor_id)
    return create_notification(
        db,
        user_id=new_assignee_id,
        type=NotificationType.TODO_ASSIGNED,
        message=f'{actor_email} assigned you to "{todo.title}"',
        todo_id=todo.id,
    )


def notify_comment(db: Session, todo: models.Todo, actor_id: int) -> Optional[models.Notification]:
    """Notify the todo's creator when someone else comments on it."""
    if todo.created_by_id == actor_id:
        logger.debug(f"Skipping self-comment notification for user {actor_id}")
        return None

    actor_email = resolve_actor_email(db, actor_id)
    return create_notification(
        db,
        user_id=todo.created_by_id,
        type=NotificationType.TODO_COMMENTED,
        message=f'{actor_email} commented on "{todo.title}"',
        todo_id=todo.id,
    )


# ============== Recipient side ==============

def get_notifications(db: Session, ctx: RequestContext, limit: int = 20) -> List[models.Notification]:
    """The caller's most recent notifications, newest first."""
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == ctx.user_id)
        .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .limit(limit)
        .all()
    )


def get_unread_count(db: Session, ctx: RequestContext) -> int:
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == ctx.user_id, models.Notification.is_read.is_(False))
        .count()
    )


def mark_notification_read(db: Session, ctx: RequestContext, notification_id: int) -> None:
    """Mark one of the caller's own notifications as read."""
    affected = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == ctx.user_id)
        .update({models.Notification.is_read: True}, synchronize_session="fetch")
    )
    if affected == 0:
        raise NotFoundOrForbidden("Notification")
    db.commit()


def mark_all_notifications_read(db: Session, ctx: RequestContext) -> int:
    """Mark every unread notification of the caller as read. Returns how many changed."""
    affected = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == ctx.user_id, models.Notification.is_read.is_(False))
        .update({models.Notification.is_read: True}, synchronize_session="fetch")
    )
    db.commit()
    logger.info(f"Marked {affected} notifications read for user {ctx.user_id}")
    return affected
