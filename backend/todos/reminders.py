"""
Due-date reminder emails, run by an external scheduler.

Two passes per run:
- due soon: pending todos due between 24 and 48 hours from now
- overdue: pending todos that became due within the past 24 hours

Each todo is reminded at most once per kind; the matching ``*_reminder_sent_at``
column is stamped after a successful send. Archived and trashed todos, and
todos whose creator opted out, are skipped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from sqlalchemy.orm import Session, joinedload

import models
from config import APP_URL
from models import TodoStatus
from time_utils import due_soon_window, ensure_utc, overdue_window, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderEmail:
    to: str
    subject: str
    body: str


class EmailSender(Protocol):
    def send(self, email: ReminderEmail) -> None:
        ...


class LoggingEmailSender:
    """Default transport: writes the email to the log instead of delivering it."""

    def send(self, email: ReminderEmail) -> None:
        logger.info(f"Reminder email to {email.to}: {email.subject}")


def _format_due(value: datetime) -> str:
    due = ensure_utc(value)
    return f"{due.strftime('%B')} {due.day}, {due.year}"


def _due_soon_email(todo: models.Todo) -> ReminderEmail:
    return ReminderEmail(
        to=todo.created_by.email,
        subject=f"Reminder: {todo.title} is due soon",
        body=f'"{todo.title}" is due on {_format_due(todo.due_date)}.\n\nView your todos: {APP_URL}/todos',
    )


def _overdue_email(todo: models.Todo) -> ReminderEmail:
    return ReminderEmail(
        to=todo.created_by.email,
        subject=f"Overdue: {todo.title}",
        body=f'"{todo.title}" was due on {_format_due(todo.due_date)}.\n\nView your todos: {APP_URL}/todos',
    )


def _candidates(db: Session, start: datetime, end: datetime, sent_column) -> List[models.Todo]:
    return (
        db.query(models.Todo)
        .join(models.User, models.Todo.created_by_id == models.User.id)
        .options(joinedload(models.Todo.created_by))
        .filter(
            models.Todo.status == TodoStatus.PENDING,
            models.Todo.archived_at.is_(None),
            models.Todo.deleted_at.is_(None),
            models.Todo.due_date.isnot(None),
            models.Todo.due_date >= start,
            models.Todo.due_date < end,
            sent_column.is_(None),
            models.User.email_reminders_enabled.is_(True),
        )
        .order_by(models.Todo.due_date.asc(), models.Todo.id.asc())
        .all()
    )


def _send_batch(db: Session, sender: EmailSender, todos: List[models.Todo], build, sent_column, now: datetime) -> int:
    sent = 0
    for todo in todos:
        try:
            sender.send(build(todo))
        except Exception as e:
            logger.warning(f"Reminder email for todo {todo.id} failed, will retry next run: {str(e)}")
            continue

        # A row stamped by a concurrent run is not counted twice
        affected = (
            db.query(models.Todo)
            .filter(models.Todo.id == todo.id, sent_column.is_(None))
            .update({sent_column.key: now}, synchronize_session="fetch")
        )
        db.commit()
        if affected:
            sent += 1
    return sent


def process_reminders(db: Session, sender: Optional[EmailSender] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Send due-soon and overdue reminders.

    Args:
        db: Database session
        sender: Email transport; defaults to ``LoggingEmailSender``
        now: Reference time; defaults to the current UTC time

    Returns:
        {"dueSoonSent": int, "overdueSent": int}
    """
    sender = sender or LoggingEmailSender()
    now = ensure_utc(now) if now is not None else utc_now()

    soon_start, soon_end = due_soon_window(now)
    due_soon = _candidates(db, soon_start, soon_end, models.Todo.due_soon_reminder_sent_at)

    overdue_start, overdue_end = overdue_window(now)
    overdue = _candidates(db, overdue_start, overdue_end, models.Todo.overdue_reminder_sent_at)

    logger.info(f"Reminder run at {now.isoformat()}: {len(due_soon)} due soon, {len(overdue)} overdue candidates")

    due_soon_sent = _send_batch(db, sender, due_soon, _due_soon_email, models.Todo.due_soon_reminder_sent_at, now)
    overdue_sent = _send_batch(db, sender, overdue, _overdue_email, models.Todo.overdue_reminder_sent_at, now)

    logger.info(f"Reminder run finished: {due_soon_sent} due soon sent, {overdue_sent} overdue sent")
    return {"dueSoonSent": due_soon_sent, "overdueSent": overdue_sent}
