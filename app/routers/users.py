from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.observability import log_event
from app.core.permissions import require_permission
from app.core.roles import Role
from app.core.security import hash_password
from app.core.security_current import ActorContext
from app.models.activity import Activity
from app.models.stock import StockMovement
from app.models.user import User
from app.schemas.common import PaginationMeta
from app.schemas.user import UserCreateIn, UserListOut, UserOut, UserUpdateIn

router = APIRouter(prefix="/users", tags=["users"])


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role,
        activity_id=user.activity_id,
        is_active=user.is_active,
        created_at=user.created_at,
    )


def _user_in_company_or_404(db: Session, *, company_id: str, user_id: str) -> User:
    user = db.execute(
        select(User).where(User.id == user_id, User.company_id == company_id)
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _ensure_activity_in_company(db: Session, *, company_id: str, activity_id: str | None) -> None:
    if activity_id is None:
        return
    found = db.execute(
        select(Activity.id).where(Activity.id == activity_id, Activity.company_id == company_id)
    ).scalar_one_or_none()
    if not found:
        raise HTTPException(status_code=400, detail="Activity does not belong to this company")


def _enforce_role_grant(actor: ActorContext, new_role: Role | None) -> None:
    if new_role is None:
        return
    if new_role is Role.OWNER and actor.role is not Role.OWNER:
        raise HTTPException(status_code=403, detail="Only owners can assign the owner role")
    if new_role is Role.ADMIN and actor.role is Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admins cannot assign the admin role")


def _enforce_manage_rules(
    *,
    actor: ActorContext,
    target: User,
    new_role: Role | None,
    new_is_active: bool | None,
) -> None:
    target_role = Role.parse(target.role)

    if target.id == actor.user_id and new_is_active is False:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    if target.id == actor.user_id and new_role is not None and new_role is not actor.role:
        raise HTTPException(status_code=400, detail="You cannot change your own role")

    if target_role is Role.OWNER and actor.role is not Role.OWNER:
        raise HTTPException(status_code=403, detail="Only owners can modify owner accounts")
    if actor.role is Role.ADMIN and target_role is Role.ADMIN and target.id != actor.user_id:
        raise HTTPException(status_code=403, detail="Admins cannot modify other admin accounts")

    _enforce_role_grant(actor, new_role)


@router.get(
    "",
    response_model=UserListOut,
    summary="List company users",
    responses=error_responses(401, 403, 422, 500, path="/users"),
)
def list_users(
    include_inactive: bool = Query(default=True),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("users.read")),
):
    count_stmt = select(func.count(User.id)).where(User.company_id == actor.company_id)
    data_stmt = select(User).where(User.company_id == actor.company_id)
    if not include_inactive:
        count_stmt = count_stmt.where(User.is_active.is_(True))
        data_stmt = data_stmt.where(User.is_active.is_(True))

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        data_stmt.order_by(User.created_at.desc()).offset(offset).limit(limit)
    ).scalars().all()

    items = [_user_out(user) for user in rows]
    count = len(items)
    return UserListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.post(
    "",
    response_model=UserOut,
    summary="Create user",
    responses=error_responses(400, 401, 403, 409, 422, 500, path="/users"),
)
def create_user(
    payload: UserCreateIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("users.write")),
):
    normalized_email = payload.email.lower().strip()
    existing = db.execute(
        select(User.id).where(func.lower(User.email) == normalized_email)
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    _enforce_role_grant(actor, payload.role)
    _ensure_activity_in_company(db, company_id=actor.company_id, activity_id=payload.activity_id)

    user = User(
        company_id=actor.company_id,
        activity_id=payload.activity_id,
        email=normalized_email,
        hashed_password=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        role=payload.role.value,
        is_active=payload.is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log_event("user.created", user_id=user.id, role=user.role, actor_user_id=actor.user_id)
    return _user_out(user)


@router.patch(
    "/{user_id}",
    response_model=UserOut,
    summary="Update user",
    responses=error_responses(400, 401, 403, 404, 422, 500, path="/users/{user_id}"),
)
def update_user(
    user_id: str,
    payload: UserUpdateIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("users.write")),
):
    user = _user_in_company_or_404(db, company_id=actor.company_id, user_id=user_id)
    _enforce_manage_rules(actor=actor, target=user, new_role=payload.role, new_is_active=payload.is_active)

    fields_set = payload.model_fields_set
    if "activity_id" in fields_set:
        _ensure_activity_in_company(db, company_id=actor.company_id, activity_id=payload.activity_id)
        user.activity_id = payload.activity_id
    if payload.first_name is not None:
        user.first_name = payload.first_name
    if payload.last_name is not None:
        user.last_name = payload.last_name
    if "phone" in fields_set:
        user.phone = payload.phone
    if payload.role is not None:
        user.role = payload.role.value
    if payload.is_active is not None:
        user.is_active = payload.is_active

    db.commit()
    db.refresh(user)
    log_event("user.updated", user_id=user.id, actor_user_id=actor.user_id, fields=sorted(fields_set))
    return _user_out(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
    responses=error_responses(400, 401, 403, 404, 409, 500, path="/users/{user_id}"),
)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("users.delete")),
):
    user = _user_in_company_or_404(db, company_id=actor.company_id, user_id=user_id)
    if user.id == actor.user_id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    recorded_movements = int(
        db.execute(
            select(func.count(StockMovement.id)).where(StockMovement.created_by == user.id)
        ).scalar_one()
    )
    if recorded_movements:
        raise HTTPException(
            status_code=409,
            detail="User has recorded stock movements; deactivate it instead",
        )

    db.delete(user)
    db.commit()
    log_event("user.deleted", user_id=user_id, actor_user_id=actor.user_id)
    return None
