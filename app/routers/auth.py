from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.id_utils import generate_id
from app.core.roles import Role, role_permissions
from app.core.security import create_access_token, hash_password, verify_password
from app.core.security_current import get_current_company, get_current_user
from app.models.activity import Activity
from app.models.company import Company
from app.models.user import User
from app.schemas.auth import LoginIn, MeOut, RegisterIn, TokenOut

router = APIRouter(prefix="/auth", tags=["auth"])
TOKEN_RESPONSE = {
    200: {
        "description": "Bearer access token",
        "content": {
            "application/json": {
                "example": {
                    "access_token": "access-token",
                    "token_type": "bearer",
                }
            }
        },
    }
}


def _email_taken(db: Session, email: str) -> bool:
    found = db.execute(
        select(User.id).where(func.lower(User.email) == email.lower())
    ).scalar_one_or_none()
    return found is not None


def _authenticate_user(db: Session, email: str, password: str) -> User:
    user = db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    ).scalar_one_or_none()

    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is disabled")
    return user


def _token_for(user: User) -> TokenOut:
    return TokenOut(access_token=create_access_token(user.id, company_id=user.company_id))


@router.post(
    "/register",
    response_model=TokenOut,
    summary="Register a company owner",
    description="Creates the company and its owner account, then returns an access token.",
    responses={**TOKEN_RESPONSE, **error_responses(409, 422, 500, path="/auth/register")},
)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    normalized_email = payload.email.lower()
    if _email_taken(db, normalized_email):
        raise HTTPException(status_code=409, detail="Email already registered")

    company = Company(id=generate_id(), name=payload.company_name, email=normalized_email, is_active=True)
    db.add(company)
    db.flush()

    user = User(
        company_id=company.id,
        email=normalized_email,
        hashed_password=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        role=Role.OWNER.value,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return _token_for(user)


@router.post(
    "/login",
    response_model=TokenOut,
    summary="Login with JSON",
    responses={**TOKEN_RESPONSE, **error_responses(401, 403, 422, 500, path="/auth/login")},
)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = _authenticate_user(db, payload.email, payload.password)
    return _token_for(user)


@router.post(
    "/token",
    response_model=TokenOut,
    summary="OAuth2 password token (Swagger Authorize)",
    description="Form-data login used by Swagger Authorize. Put the email in the `username` field.",
    responses={**TOKEN_RESPONSE, **error_responses(401, 403, 422, 500, path="/auth/token")},
)
def login_for_swagger(
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
):
    user = _authenticate_user(db, form_data.username, form_data.password)
    return _token_for(user)


@router.get(
    "/me",
    response_model=MeOut,
    summary="Current user profile",
    responses=error_responses(401, 403, 404, 500, path="/auth/me"),
)
def me(
    user: User = Depends(get_current_user),
    company: Company = Depends(get_current_company),
    db: Session = Depends(get_db),
):
    activity_name = None
    if user.activity_id:
        activity_name = db.execute(
            select(Activity.name).where(Activity.id == user.activity_id)
        ).scalar_one_or_none()

    return MeOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role,
        company_id=company.id,
        company_name=company.name,
        activity_id=user.activity_id,
        activity_name=activity_name,
        permissions=sorted(role_permissions(user.role)),
        created_at=user.created_at,
    )
