from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.roles import Role
from app.core.security import TokenValidationError, decode_access_token
from app.models.company import Company
from app.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


@dataclass(frozen=True)
class ActorContext:
    """Who is calling: passed explicitly into every stock and settings operation."""

    user_id: str
    company_id: str
    activity_id: str | None
    role: Role


def actor_from_user(user: User) -> ActorContext:
    role = Role.parse(user.role)
    if role is None:
        raise HTTPException(status_code=403, detail="Unknown role for this account")
    return ActorContext(
        user_id=user.id,
        company_id=user.company_id,
        activity_id=user.activity_id,
        role=role,
    )


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    try:
        payload = decode_access_token(token)
    except TokenValidationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user = db.execute(select(User).where(User.id == payload["sub"])).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is disabled")
    return user


def get_current_company(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> Company:
    company = db.execute(select(Company).where(Company.id == user.company_id)).scalar_one_or_none()
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    if not company.is_active:
        raise HTTPException(status_code=403, detail="Company account is not active")
    return company


def get_current_actor(
    user: User = Depends(get_current_user),
    company: Company = Depends(get_current_company),
) -> ActorContext:
    return actor_from_user(user)
