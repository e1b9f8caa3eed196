"""
Label catalogue of a tenant and the label set attached to each todo.

Every batch of label ids is validated with a single existence query scoped
to the caller's tenant; one foreign id aborts the whole batch.
"""

import logging
import re
from typing import Iterable, List, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

import models
from config import MAX_LABEL_NAME_LENGTH
from todos.activity import diff_labels, record_entries
from todos.context import RequestContext
from todos.errors import InvalidReference, NotFoundOrForbidden, PermissionDenied, ValidationError
from todos.guard import find_live_todo
from todos.transaction import atomic

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def resolve_labels(
    db: Session,
    tenant_id: int,
    label_ids: Iterable[int],
    message: str = "Invalid labels",
    field: str = "labelIds",
) -> List[models.Label]:
    """
    Load the labels for ``label_ids`` (deduplicated, order kept) inside the tenant.

    Raises:
        InvalidReference: if any id is unknown or belongs to another tenant
    """
    unique_ids = list(dict.fromkeys(label_ids))
    if not unique_ids:
        return []

    labels = (
        db.query(models.Label)
        .filter(models.Label.id.in_(unique_ids), models.Label.tenant_id == tenant_id)
        .all()
    )
    if len(labels) != len(unique_ids):
        logger.info(f"Label batch {unique_ids} has ids outside tenant {tenant_id}")
        raise InvalidReference(message, field=field)

    by_id = {label.id: label for label in labels}
    return [by_id[label_id] for label_id in unique_ids]


def current_labels(db: Session, todo_id: int) -> List[models.Label]:
    return (
        db.query(models.Label)
        .join(models.TodoLabel, models.TodoLabel.label_id == models.Label.id)
        .filter(models.TodoLabel.todo_id == todo_id)
        .order_by(models.Label.name.asc())
        .all()
    )


def attach_labels(db: Session, todo_id: int, labels: Iterable[models.Label]) -> None:
    for label in labels:
        db.add(models.TodoLabel(todo_id=todo_id, label_id=label.id))
    db.flush()


# ============== Catalogue ==============

def list_labels(db: Session, ctx: RequestContext) -> List[models.Label]:
    return (
        db.query(models.Label)
        .filter(models.Label.tenant_id == ctx.tenant_id)
        .order_by(models.Label.name.asc())
        .all()
    )


def _require_admin(db: Session, ctx: RequestContext, verb: str) -> None:
    user = db.query(models.User).filter(models.User.id == ctx.user_id).first()
    if user is None or user.role != models.UserRole.ADMIN:
        logger.info(f"User {ctx.user_id} is not an admin, cannot {verb} labels")
        raise PermissionDenied(f"Only admins can {verb} labels")


def _validate_label(name: str, color: str) -> Tuple[str, str]:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Label name is required", field="name")
    if len(name) > MAX_LABEL_NAME_LENGTH:
        raise ValidationError(f"Label name must be {MAX_LABEL_NAME_LENGTH} characters or less", field="name")
    if not color or not HEX_COLOR.match(color):
        raise ValidationError("Invalid color format", field="color")
    return name, color


def _ensure_unique_name(db: Session, tenant_id: int, name: str, exclude_id: int = None) -> None:
    query = db.query(models.Label).filter(
        models.Label.tenant_id == tenant_id,
        func.lower(models.Label.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(models.Label.id != exclude_id)
    if query.first() is not None:
        raise ValidationError("A label with this name already exists", field="name")


def create_label(db: Session, ctx: RequestContext, name: str, color: str) -> models.Label:
    """Create a tenant label (admins only)."""
    logger.info(f"User {ctx.user_id} creating label {name!r}")
    with atomic(db):
        _require_admin(db, ctx, "create")
        name, color = _validate_label(name, color)
        _ensure_unique_name(db, ctx.tenant_id, name)
        label = models.Label(name=name, color=color, tenant_id=ctx.tenant_id)
        db.add(label)
    db.refresh(label)
    logger.info(f"Label created successfully: id={label.id}")
    return label


def update_label(db: Session, ctx: RequestContext, label_id: int, name: str, color: str) -> models.Label:
    """Rename/recolor a tenant label (admins only)."""
    logger.info(f"User {ctx.user_id} updating label {label_id}")
    with atomic(db):
        _require_admin(db, ctx, "update")
        name, color = _validate_label(name, color)
        _ensure_unique_name(db, ctx.tenant_id, name, exclude_id=label_id)
        affected = (
            db.query(models.Label)
            .filter(models.Label.id == label_id, models.Label.tenant_id == ctx.tenant_id)
            .update({models.Label.name: name, models.Label.color: color}, synchronize_session="fetch")
        )
        if affected == 0:
            raise NotFoundOrForbidden("Label")
    return db.query(models.Label).filter(models.Label.id == label_id).one()


def delete_label(db: Session, ctx: RequestContext, label_id: int) -> None:
    """Delete a tenant label (admins only). Todos keep existing, only the joins go."""
    logger.info(f"User {ctx.user_id} deleting label {label_id}")
    with atomic(db):
        _require_admin(db, ctx, "delete")
        affected = (
            db.query(models.Label)
            .filter(models.Label.id == label_id, models.Label.tenant_id == ctx.tenant_id)
            .delete(synchronize_session="fetch")
        )
        if affected == 0:
            raise NotFoundOrForbidden("Label")


# ============== Labels on a todo ==============

def set_todo_labels(db: Session, ctx: RequestContext, todo_id: int, label_ids: Iterable[int]) -> List[models.Label]:
    """
    Replace the whole label set of a todo.

    Emits one LABELS_CHANGED row per removed label, then per added label.
    """
    logger.info(f"User {ctx.user_id} replacing labels of todo {todo_id}")
    with atomic(db):
        find_live_todo(db, todo_id, ctx.tenant_id)
        new_labels = resolve_labels(db, ctx.tenant_id, label_ids)
        old_labels = current_labels(db, todo_id)

        db.query(models.TodoLabel).filter(models.TodoLabel.todo_id == todo_id).delete(synchronize_session="fetch")
        attach_labels(db, todo_id, new_labels)
        record_entries(db, todo_id, ctx.user_id, diff_labels(old_labels, new_labels))
    return current_labels(db, todo_id)


def add_label_to_todo(db: Session, ctx: RequestContext, todo_id: int, label_id: int) -> None:
    """Attach one label; attaching an already attached label is a no-op."""
    with atomic(db):
        find_live_todo(db, todo_id, ctx.tenant_id)
        label = resolve_labels(db, ctx.tenant_id, [label_id], message="Label not found", field="labelId")[0]
        existing = db.query(models.TodoLabel).filter_by(todo_id=todo_id, label_id=label_id).first()
        if existing is not None:
            logger.debug(f"Label {label_id} already on todo {todo_id}")
            return
        attach_labels(db, todo_id, [label])
        record_entries(db, todo_id, ctx.user_id, diff_labels([], [label]))
    logger.info(f"Label {label_id} added to todo {todo_id}")


def remove_label_from_todo(db: Session, ctx: RequestContext, todo_id: int, label_id: int) -> None:
    """Detach one label; detaching a label that is not attached is a no-op."""
    with atomic(db):
        find_live_todo(db, todo_id, ctx.tenant_id)
        label = resolve_labels(db, ctx.tenant_id, [label_id], message="Label not found", field="labelId")[0]
        removed = (
            db.query(models.TodoLabel)
            .filter(models.TodoLabel.todo_id == todo_id, models.TodoLabel.label_id == label_id)
            .delete(synchronize_session="fetch")
        )
        if removed == 0:
            logger.debug(f"Label {label_id} not on todo {todo_id}")
            return
        record_entries(db, todo_id, ctx.user_id, diff_labels([label], []))
    logger.info(f"Label {label_id} removed from todo {todo_id}")
