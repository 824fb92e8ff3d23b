from __future__ import annotations

from typing import Any

from ...errors import AuthorizationError
from .roles import has_capability


def require_capability(actor: Any, capability: str, *, operation: str) -> None:
    """
    Authorization for workflow operations.

    The workflow asks for a capability (reviewer, slot_owner, ...), never for a
    concrete role, so role changes only touch `roles.CAPABILITIES_BY_ROLE`.
    """
    if actor is None:
        raise AuthorizationError(message="An authenticated actor is required", operation=operation)
    if not has_capability(actor, capability):
        raise AuthorizationError(
            message=f"Actor {actor.id} lacks the '{capability}' capability",
            operation=operation,
            entity_id=actor.id,
            details={"role": getattr(actor, "role", None), "capability": capability},
        )


def require_same_actor(actor: Any, owner_id: str, *, operation: str, entity_id: str | None = None) -> None:
    aid = str(getattr(actor, "id", "") or "")
    if not aid or aid != str(owner_id or ""):
        raise AuthorizationError(
            message=f"Actor {aid or '?'} does not own {entity_id or 'this record'}",
            operation=operation,
            entity_id=entity_id,
        )
