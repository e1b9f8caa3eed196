"""
Activity recorder: diff-and-append audit trail for todo mutations.

Changes are detected in one place, from a "before" and an "after" projection
of a todo, against a declarative list of tracked fields. Rows are written in
the order the fields are declared (status, assignee, due date, description),
followed by label changes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

import models
from models import ActivityAction
from time_utils import to_iso
from todos.context import RequestContext
from todos.guard import find_todo_by_id_and_tenant

logger = logging.getLogger(__name__)


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value)


def _id_value(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _text_value(value: Any) -> Optional[str]:
    # Empty text and missing text are the same thing
    return value if value else None


@dataclass(frozen=True)
class TrackedField:
    attribute: str
    field: str
    action: ActivityAction
    normalize: Callable[[Any], Optional[str]]
    retain_values: bool = True


TRACKED_FIELDS: List[TrackedField] = [
    TrackedField("status", "status", ActivityAction.STATUS_CHANGED, _enum_value),
    TrackedField("assignee_id", "assigneeId", ActivityAction.ASSIGNEE_CHANGED, _id_value),
    TrackedField("due_date", "dueDate", ActivityAction.DUE_DATE_CHANGED, to_iso),
    # The change is recorded, the content is not
    TrackedField("description", "description", ActivityAction.DESCRIPTION_CHANGED, _text_value, retain_values=False),
]


@dataclass(frozen=True)
class ActivityEntry:
    action: ActivityAction
    field: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None


def snapshot(todo: models.Todo) -> Dict[str, Any]:
    """Project a todo onto its tracked attributes."""
    return {tracked.attribute: getattr(todo, tracked.attribute) for tracked in TRACKED_FIELDS}


def diff_snapshots(before: Dict[str, Any], after: Dict[str, Any]) -> List[ActivityEntry]:
    """
    Compare two projections and return one entry per tracked field that changed.

    Attributes missing from a projection count as None, so None and "not
    provided" never produce an entry.
    """
    entries = []
    for tracked in TRACKED_FIELDS:
        old = tracked.normalize(before.get(tracked.attribute))
        new = tracked.normalize(after.get(tracked.attribute))
        if old == new:
            continue
        if tracked.retain_values:
            entries.append(ActivityEntry(tracked.action, tracked.field, old, new))
        else:
            entries.append(ActivityEntry(tracked.action, tracked.field, None, None))
    return entries


def diff_labels(old_labels: Iterable[models.Label], new_labels: Iterable[models.Label]) -> List[ActivityEntry]:
    """One LABELS_CHANGED entry per removed label, then one per added label."""
    old_by_id = {label.id: label for label in old_labels}
    new_by_id = {label.id: label for label in new_labels}
    entries = [
        ActivityEntry(ActivityAction.LABELS_CHANGED, "labels", old_by_id[label_id].name, None)
        for label_id in sorted(old_by_id.keys() - new_by_id.keys())
    ]
    entries.extend(
        ActivityEntry(ActivityAction.LABELS_CHANGED, "labels", None, new_by_id[label_id].name)
        for label_id in sorted(new_by_id.keys() - old_by_id.keys())
    )
    return entries


def create_todo_activity(db: Session, todo_id: int, actor_id: int, entry: ActivityEntry) -> models.TodoActivity:
    """
    Append one activity row. The caller owns the transaction.

    Args:
        db: Database session
        todo_id: ID of the todo
        actor_id: ID of the user who caused the change
        entry: What changed

    Returns:
        The pending TodoActivity row
    """
    logger.debug(f"Recording activity: action={entry.action.value}, todo_id={todo_id}, actor_id={actor_id}, field={entry.field}")
    activity = models.TodoActivity(
        todo_id=todo_id,
        actor_id=actor_id,
        action=entry.action.value,
        field=entry.field,
        old_value=entry.old_value,
        new_value=entry.new_value,
    )
    db.add(activity)
    db.flush()
    return activity


def record_event(db: Session, todo_id: int, actor_id: int, action: ActivityAction) -> models.TodoActivity:
    """Record a field-less lifecycle event (CREATED, ARCHIVED, ...)."""
    return create_todo_activity(db, todo_id, actor_id, ActivityEntry(action))


def record_entries(db: Session, todo_id: int, actor_id: int, entries: Iterable[ActivityEntry]) -> List[models.TodoActivity]:
    return [create_todo_activity(db, todo_id, actor_id, entry) for entry in entries]


def record_changes(
    db: Session,
    todo_id: int,
    actor_id: int,
    before: Dict[str, Any],
    after: Dict[str, Any],
) -> List[ActivityEntry]:
    """Diff two projections and append a row for each change. Returns the entries written."""
    entries = diff_snapshots(before, after)
    record_entries(db, todo_id, actor_id, entries)
    return entries


def get_todo_activities(db: Session, ctx: RequestContext, todo_id: int) -> List[models.TodoActivity]:
    """
    Activities of a todo in the caller's tenant, newest first.

    Rows written by the same mutation share a timestamp; the id breaks the tie.
    """
    find_todo_by_id_and_tenant(db, todo_id, ctx.tenant_id)

    activities = (
        db.query(models.TodoActivity)
        .options(joinedload(models.TodoActivity.actor))
        .filter(models.TodoActivity.todo_id == todo_id)
        .order_by(models.TodoActivity.created_at.desc(), models.TodoActivity.id.desc())
        .all()
    )
    logger.info(f"Found {len(activities)} activities for todo {todo_id}")
    return activities
