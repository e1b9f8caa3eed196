"""
FastAPI dependencies for authentication.

This module provides dependency functions that can be used in route handlers to:
- Resolve the caller's ``RequestContext`` (user id + tenant id) from a JWT
- Protect the scheduler endpoint with the shared cron secret
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from auth.security import verify_cron_secret, verify_token
from config import CRON_SECRET
from database import get_db
from todos.context import RequestContext
from todos.errors import Unauthenticated
from todos.guard import find_user_in_tenant

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def _parse_id(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def get_request_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> RequestContext:
    """
    Extract the caller's identity from a JWT access token.

    The token must carry ``sub`` (user id) and ``tenant_id``, and the user must
    still belong to that tenant.

    Raises:
        Unauthenticated: missing, invalid or expired token, or unknown user

    Example:
        @app.get("/api/todos")
        def list_todos(ctx: RequestContext = Depends(get_request_context)):
            ...
    """
    if not credentials or not credentials.credentials:
        logger.debug("Request without bearer token")
        raise Unauthenticated()

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise Unauthenticated("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise Unauthenticated("Invalid token type")

    user_id = _parse_id(payload.get("sub"))
    tenant_id = _parse_id(payload.get("tenant_id"))
    if user_id is None or tenant_id is None:
        logger.info("Token payload missing or malformed 'sub'/'tenant_id' claims")
        raise Unauthenticated("Invalid token payload")

    user = find_user_in_tenant(db, user_id, tenant_id)
    if user is None:
        logger.info(f"User {user_id} not found in tenant {tenant_id}")
        raise Unauthenticated()

    logger.debug(f"Request authenticated: user {user_id}, tenant {tenant_id}")
    return RequestContext(user_id=user_id, tenant_id=tenant_id)


async def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Allow the request only if it presents ``Authorization: Bearer $CRON_SECRET``."""
    presented = credentials.credentials if credentials else None
    if not verify_cron_secret(presented, CRON_SECRET):
        logger.warning("Rejected scheduler request with missing or wrong secret")
        raise Unauthenticated("Unauthorized")
