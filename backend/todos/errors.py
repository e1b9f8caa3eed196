"""
Error taxonomy for the todo engine.

Engine functions raise these; the HTTP layer turns them into structured
``{"error": ...}`` / ``{"errors": {field: [...]}}`` bodies.
"""

from typing import Optional


class TodoEngineError(Exception):
    """Base class for recoverable engine errors."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class Unauthenticated(TodoEngineError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ValidationError(TodoEngineError):
    status_code = 422


class NotFoundOrForbidden(TodoEngineError):
    """The id is missing or belongs to another tenant. The message never says which."""

    status_code = 404

    def __init__(self, entity: str = "Todo"):
        super().__init__(f"{entity} not found")
        self.entity = entity


class InvalidReference(TodoEngineError):
    status_code = 422


class InvalidStateTransition(TodoEngineError):
    status_code = 409


class PermissionDenied(TodoEngineError):
    status_code = 403
