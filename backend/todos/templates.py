"""
Todo templates: reusable title/description, checklist and label set.

Updating a template replaces its subtasks and labels in one transaction.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

import models
from config import (
    MAX_TEMPLATE_DESCRIPTION_LENGTH,
    MAX_TEMPLATE_NAME_LENGTH,
    MAX_TEMPLATE_SUBTASKS,
    MAX_TEMPLATES_PER_TENANT,
)
from todos.context import RequestContext
from todos.errors import NotFoundOrForbidden, ValidationError
from todos.labels import resolve_labels
from todos.lifecycle import insert_todo, load_todo
from todos.subtasks import append_subtasks, validate_subtask_title
from todos.transaction import atomic

logger = logging.getLogger(__name__)


def _query(db: Session):
    return db.query(models.TodoTemplate).options(
        selectinload(models.TodoTemplate.subtasks),
        selectinload(models.TodoTemplate.labels).selectinload(models.TemplateLabel.label),
    )


def _validate(name: str, description: Optional[str], subtask_titles: List[str]):
    name = (name or "").strip()
    if not name:
        raise ValidationError("Template name is required", field="name")
    if len(name) > MAX_TEMPLATE_NAME_LENGTH:
        raise ValidationError(f"Template name must be {MAX_TEMPLATE_NAME_LENGTH} characters or less", field="name")

    if description and len(description) > MAX_TEMPLATE_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be {MAX_TEMPLATE_DESCRIPTION_LENGTH} characters or less",
            field="description",
        )
    description = (description or "").strip() or None

    if len(subtask_titles) > MAX_TEMPLATE_SUBTASKS:
        raise ValidationError(f"Maximum {MAX_TEMPLATE_SUBTASKS} subtasks per template", field="subtasks")
    titles = [validate_subtask_title(title) for title in subtask_titles]
    return name, description, titles


def _fill(db: Session, template: models.TodoTemplate, labels: List[models.Label], titles: List[str]) -> None:
    for index, title in enumerate(titles):
        db.add(models.TemplateSubtask(template_id=template.id, title=title, order=index))
    for label in labels:
        db.add(models.TemplateLabel(template_id=template.id, label_id=label.id))
    db.flush()


def list_templates(db: Session, ctx: RequestContext) -> List[models.TodoTemplate]:
    return (
        _query(db)
        .filter(models.TodoTemplate.tenant_id == ctx.tenant_id)
        .order_by(models.TodoTemplate.name.asc())
        .all()
    )


def get_template(db: Session, ctx: RequestContext, template_id: int) -> models.TodoTemplate:
    template = (
        _query(db)
        .filter(models.TodoTemplate.id == template_id, models.TodoTemplate.tenant_id == ctx.tenant_id)
        .first()
    )
    if template is None:
        raise NotFoundOrForbidden("Template")
    return template


def create_template(
    db: Session,
    ctx: RequestContext,
    name: str,
    description: Optional[str] = None,
    label_ids: Iterable[int] = (),
    subtask_titles: Iterable[str] = (),
) -> models.TodoTemplate:
    """Create a template in the caller's tenant."""
    logger.info(f"User {ctx.user_id} creating template {name!r}")

    with atomic(db):
        name, description, titles = _validate(name, description, list(subtask_titles))

        count = db.query(models.TodoTemplate).filter(models.TodoTemplate.tenant_id == ctx.tenant_id).count()
        if count >= MAX_TEMPLATES_PER_TENANT:
            raise ValidationError(f"Maximum {MAX_TEMPLATES_PER_TENANT} templates per tenant reached")

        labels = resolve_labels(db, ctx.tenant_id, label_ids, message="Invalid label selection")

        template = models.TodoTemplate(
            name=name,
            description=description,
            tenant_id=ctx.tenant_id,
            created_by_id=ctx.user_id,
        )
        db.add(template)
        db.flush()
        _fill(db, template, labels, titles)

    logger.info(f"Template created successfully: id={template.id}")
    return get_template(db, ctx, template.id)


def update_template(
    db: Session,
    ctx: RequestContext,
    template_id: int,
    name: str,
    description: Optional[str] = None,
    label_ids: Iterable[int] = (),
    subtask_titles: Iterable[str] = (),
) -> models.TodoTemplate:
    """Rewrite a template, replacing its subtasks and labels."""
    logger.info(f"User {ctx.user_id} updating template {template_id}")

    with atomic(db):
        template = get_template(db, ctx, template_id)
        name, description, titles = _validate(name, description, list(subtask_titles))
        labels = resolve_labels(db, ctx.tenant_id, label_ids, message="Invalid label selection")

        db.query(models.TemplateSubtask).filter(models.TemplateSubtask.template_id == template_id).delete(
            synchronize_session="fetch"
        )
        db.query(models.TemplateLabel).filter(models.TemplateLabel.template_id == template_id).delete(
            synchronize_session="fetch"
        )
        db.expire(template, ["subtasks", "labels"])
        template.name = name
        template.description = description
        _fill(db, template, labels, titles)

    return get_template(db, ctx, template_id)


def delete_template(db: Session, ctx: RequestContext, template_id: int) -> None:
    logger.info(f"User {ctx.user_id} deleting template {template_id}")

    with atomic(db):
        affected = (
            db.query(models.TodoTemplate)
            .filter(models.TodoTemplate.id == template_id, models.TodoTemplate.tenant_id == ctx.tenant_id)
            .delete(synchronize_session="fetch")
        )
        if affected == 0:
            raise NotFoundOrForbidden("Template")


def create_todo_from_template(
    db: Session,
    ctx: RequestContext,
    template_id: int,
    title: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> models.Todo:
    """
    Instantiate a template as a new todo.

    The todo takes the template's description and labels, its subtasks in
    template order, and the template name as title unless one is given.
    """
    logger.info(f"User {ctx.user_id} creating todo from template {template_id}")

    with atomic(db):
        template = get_template(db, ctx, template_id)
        todo = insert_todo(
            db,
            ctx,
            title=title or template.name,
            description=template.description,
            due_date=due_date,
            label_ids=[template_label.label_id for template_label in template.labels],
        )
        append_subtasks(db, todo.id, [subtask.title for subtask in template.subtasks])

    return load_todo(db, todo.id)
