from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.permissions import require_permission
from app.core.roles import ROLE_DEFINITIONS
from app.core.security_current import ActorContext
from app.models.user import User
from app.schemas.role import RoleListOut, RoleOut

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get(
    "",
    response_model=RoleListOut,
    summary="Role catalogue",
    description="System roles with their permissions and how many company users hold each one.",
    responses=error_responses(401, 403, 500, path="/roles"),
)
def list_roles(
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("users.read")),
):
    counts = dict(
        db.execute(
            select(User.role, func.count(User.id))
            .where(User.company_id == actor.company_id)
            .group_by(User.role)
        ).all()
    )
    return RoleListOut(
        items=[
            RoleOut(
                key=definition.role.value,
                label=definition.label,
                description=definition.description,
                permissions=sorted(definition.permissions),
                is_system=True,
                user_count=int(counts.get(definition.role.value, 0)),
            )
            for definition in ROLE_DEFINITIONS.values()
        ]
    )
