"""
Tenant guard: every read-for-mutation and every write is filtered on both
the entity id and the caller's tenant id in a single statement.

A zero-row result is reported as ``NotFoundOrForbidden`` whether the id is
missing or lives in another tenant.
"""

import logging
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

import models
from todos.errors import InvalidStateTransition, NotFoundOrForbidden

logger = logging.getLogger(__name__)


def find_todo_by_id_and_tenant(db: Session, todo_id: int, tenant_id: int, for_update: bool = False) -> models.Todo:
    """
    Load a todo scoped to a tenant.

    Args:
        db: Database session
        todo_id: ID of the todo
        tenant_id: Caller's tenant
        for_update: Take a row lock where the backend supports it

    Raises:
        NotFoundOrForbidden: if no row matches both id and tenant
    """
    query = db.query(models.Todo).filter(
        models.Todo.id == todo_id,
        models.Todo.tenant_id == tenant_id,
    )
    if for_update:
        query = query.with_for_update()
    todo = query.first()
    if todo is None:
        logger.info(f"Todo {todo_id} not found for tenant {tenant_id}")
        raise NotFoundOrForbidden("Todo")
    return todo


def update_todo_by_id_and_tenant(
    db: Session,
    todo_id: int,
    tenant_id: int,
    values: Dict[str, Any],
    *conditions,
) -> None:
    """
    Apply ``values`` to the todo matching id AND tenant (AND any extra conditions).

    The update is issued as one compound UPDATE statement; no separate
    existence check precedes it.

    Raises:
        NotFoundOrForbidden: if no row was affected
    """
    logger.debug(f"Guarded update of todo {todo_id} (tenant {tenant_id}): fields={sorted(values)}")
    affected = (
        db.query(models.Todo)
        .filter(models.Todo.id == todo_id, models.Todo.tenant_id == tenant_id, *conditions)
        .update(values, synchronize_session="fetch")
    )
    if affected == 0:
        logger.info(f"Guarded update matched no row: todo {todo_id}, tenant {tenant_id}")
        raise NotFoundOrForbidden("Todo")


def delete_todo_by_id_and_tenant(db: Session, todo_id: int, tenant_id: int, *conditions) -> None:
    """
    Physically delete the todo matching id AND tenant (AND any extra conditions).

    Child rows go with it through ON DELETE CASCADE.

    Raises:
        NotFoundOrForbidden: if no row was deleted
    """
    affected = (
        db.query(models.Todo)
        .filter(models.Todo.id == todo_id, models.Todo.tenant_id == tenant_id, *conditions)
        .delete(synchronize_session="fetch")
    )
    if affected == 0:
        logger.info(f"Guarded delete matched no row: todo {todo_id}, tenant {tenant_id}")
        raise NotFoundOrForbidden("Todo")


def find_subtask_by_id_and_tenant(db: Session, subtask_id: int, tenant_id: int) -> models.Subtask:
    """
    Load a subtask whose parent todo belongs to the tenant.

    Raises:
        NotFoundOrForbidden: if the subtask is missing or its todo is in another tenant
    """
    subtask = (
        db.query(models.Subtask)
        .join(models.Todo, models.Subtask.todo_id == models.Todo.id)
        .filter(models.Subtask.id == subtask_id, models.Todo.tenant_id == tenant_id)
        .first()
    )
    if subtask is None:
        logger.info(f"Subtask {subtask_id} not found for tenant {tenant_id}")
        raise NotFoundOrForbidden("Subtask")
    return subtask


def find_user_in_tenant(db: Session, user_id: int, tenant_id: int):
    """Return the user if it belongs to the tenant, else None."""
    return (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.tenant_id == tenant_id)
        .first()
    )


def _subtask_ids_in_tenant(tenant_id: int):
    return (
        select(models.Subtask.id)
        .join(models.Todo, models.Subtask.todo_id == models.Todo.id)
        .where(models.Todo.tenant_id == tenant_id)
    )


def update_subtask_by_id_and_tenant(db: Session, subtask_id: int, tenant_id: int, values: Dict[str, Any]) -> None:
    """
    Update a subtask in one statement, conditioned on its todo's tenant.

    Raises:
        NotFoundOrForbidden: if no row was affected
    """
    affected = (
        db.query(models.Subtask)
        .filter(models.Subtask.id == subtask_id, models.Subtask.id.in_(_subtask_ids_in_tenant(tenant_id)))
        .update(values, synchronize_session="fetch")
    )
    if affected == 0:
        logger.info(f"Guarded subtask update matched no row: subtask {subtask_id}, tenant {tenant_id}")
        raise NotFoundOrForbidden("Subtask")


def delete_subtask_by_id_and_tenant(db: Session, subtask_id: int, tenant_id: int) -> None:
    """
    Delete a subtask in one statement, conditioned on its todo's tenant.

    Raises:
        NotFoundOrForbidden: if no row was deleted
    """
    affected = (
        db.query(models.Subtask)
        .filter(models.Subtask.id == subtask_id, models.Subtask.id.in_(_subtask_ids_in_tenant(tenant_id)))
        .delete(synchronize_session="fetch")
    )
    if affected == 0:
        logger.info(f"Guarded subtask delete matched no row: subtask {subtask_id}, tenant {tenant_id}")
        raise NotFoundOrForbidden("Subtask")


def find_live_todo(db: Session, todo_id: int, tenant_id: int) -> models.Todo:
    """
    Load a todo for mutation, rejecting trashed rows.

    Raises:
        NotFoundOrForbidden: if no row matches both id and tenant
        InvalidStateTransition: if the todo is in the trash
    """
    todo = find_todo_by_id_and_tenant(db, todo_id, tenant_id, for_update=True)
    if todo.deleted_at is not None:
        logger.info(f"Todo {todo_id} is in the trash, rejecting mutation")
        raise InvalidStateTransition("Todo is deleted")
    return todo
