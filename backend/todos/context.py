from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Caller identity handed to every engine operation."""

    user_id: int
    tenant_id: int
