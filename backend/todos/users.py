import logging
from typing import List

from sqlalchemy.orm import Session

import models
from todos.context import RequestContext
from todos.errors import Unauthenticated
from todos.guard import find_user_in_tenant
from todos.transaction import atomic

logger = logging.getLogger(__name__)


def list_tenant_users(db: Session, ctx: RequestContext) -> List[models.User]:
    """Users of the caller's tenant, i.e. the valid assignees, ordered by email."""
    return (
        db.query(models.User)
        .filter(models.User.tenant_id == ctx.tenant_id)
        .order_by(models.User.email.asc())
        .all()
    )


def update_email_reminders(db: Session, ctx: RequestContext, enabled: bool) -> models.User:
    """Opt the caller in to or out of due-date reminder emails."""
    logger.info(f"User {ctx.user_id} setting email reminders to {enabled}")

    with atomic(db):
        affected = (
            db.query(models.User)
            .filter(models.User.id == ctx.user_id, models.User.tenant_id == ctx.tenant_id)
            .update({"email_reminders_enabled": bool(enabled)}, synchronize_session="fetch")
        )
        if affected == 0:
            raise Unauthenticated()

    return find_user_in_tenant(db, ctx.user_id, ctx.tenant_id)
