from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from app.core.roles import has_permission
from app.core.security_current import ActorContext, get_current_actor


def require_permission(permission: str) -> Callable[[ActorContext], ActorContext]:
    normalized_permission = (permission or "").strip().lower()
    if not normalized_permission:
        raise ValueError("Permission key is required")

    def dependency(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if not has_permission(role=actor.role, permission=normalized_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission for this action",
            )
        return actor

    return dependency
