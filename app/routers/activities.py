from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.id_utils import generate_id
from app.core.observability import log_event
from app.core.permissions import require_permission
from app.core.security_current import ActorContext, get_current_actor
from app.models.activity import Activity
from app.models.product import Product
from app.models.stock import Stock
from app.models.user import User
from app.schemas.activity import ActivityCreateIn, ActivityListOut, ActivityOut, ActivityUpdateIn
from app.schemas.common import PaginationMeta

router = APIRouter(prefix="/activities", tags=["activities"])


def _activity_in_company_or_404(db: Session, *, company_id: str, activity_id: str) -> Activity:
    activity = db.execute(
        select(Activity).where(Activity.id == activity_id, Activity.company_id == company_id)
    ).scalar_one_or_none()
    if not activity:
        raise HTTPException(status_code=404, detail="Activity not found")
    return activity


def _activity_out(activity: Activity) -> ActivityOut:
    return ActivityOut(
        id=activity.id,
        name=activity.name,
        address=activity.address,
        phone=activity.phone,
        manager_name=activity.manager_name,
        is_active=activity.is_active,
        created_at=activity.created_at,
        updated_at=activity.updated_at,
    )


@router.get(
    "",
    response_model=ActivityListOut,
    summary="List activities",
    responses=error_responses(401, 403, 422, 500, path="/activities"),
)
def list_activities(
    include_inactive: bool = Query(default=True),
    order: str = Query(default="created_at", pattern="^(created_at|name)$"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    count_stmt = select(func.count(Activity.id)).where(Activity.company_id == actor.company_id)
    stmt = select(Activity).where(Activity.company_id == actor.company_id)
    if not include_inactive:
        count_stmt = count_stmt.where(Activity.is_active.is_(True))
        stmt = stmt.where(Activity.is_active.is_(True))

    ordering = Activity.name.asc() if order == "name" else Activity.created_at.desc()
    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(stmt.order_by(ordering).offset(offset).limit(limit)).scalars().all()
    items = [_activity_out(row) for row in rows]
    count = len(items)
    return ActivityListOut(
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
    response_model=ActivityOut,
    summary="Create activity",
    responses=error_responses(401, 403, 422, 500, path="/activities"),
)
def create_activity(
    payload: ActivityCreateIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("settings.activities")),
):
    activity = Activity(
        id=generate_id(),
        company_id=actor.company_id,
        name=payload.name,
        address=payload.address,
        phone=payload.phone,
        manager_name=payload.manager_name,
        is_active=payload.is_active,
    )
    db.add(activity)
    db.commit()
    db.refresh(activity)
    log_event("activity.created", activity_id=activity.id, actor_user_id=actor.user_id)
    return _activity_out(activity)


@router.patch(
    "/{activity_id}",
    response_model=ActivityOut,
    summary="Update activity",
    responses=error_responses(401, 403, 404, 422, 500, path="/activities/{activity_id}"),
)
def update_activity(
    activity_id: str,
    payload: ActivityUpdateIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("settings.activities")),
):
    activity = _activity_in_company_or_404(db, company_id=actor.company_id, activity_id=activity_id)
    changes = payload.model_dump(exclude_unset=True)
    for field in ("name", "is_active"):
        if field in changes and changes[field] is None:
            changes.pop(field)
    for field, value in changes.items():
        setattr(activity, field, value)

    db.commit()
    db.refresh(activity)
    log_event(
        "activity.updated",
        activity_id=activity.id,
        actor_user_id=actor.user_id,
        fields=sorted(changes),
    )
    return _activity_out(activity)


@router.delete(
    "/{activity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete activity",
    responses=error_responses(401, 403, 404, 409, 500, path="/activities/{activity_id}"),
)
def delete_activity(
    activity_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("settings.activities")),
):
    activity = _activity_in_company_or_404(db, company_id=actor.company_id, activity_id=activity_id)

    assigned_users = int(
        db.execute(select(func.count(User.id)).where(User.activity_id == activity.id)).scalar_one()
    )
    stock_rows = int(
        db.execute(select(func.count(Stock.id)).where(Stock.activity_id == activity.id)).scalar_one()
    )
    products = int(
        db.execute(select(func.count(Product.id)).where(Product.activity_id == activity.id)).scalar_one()
    )
    if assigned_users or stock_rows or products:
        raise HTTPException(
            status_code=409,
            detail="Activity still has assigned users, products or stock records; deactivate it instead",
        )

    db.delete(activity)
    db.commit()
    log_event("activity.deleted", activity_id=activity_id, actor_user_id=actor.user_id)
    return None
