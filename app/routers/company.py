from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_db
from app.core.observability import log_event
from app.core.permissions import require_permission
from app.core.security_current import ActorContext, get_current_company
from app.models.company import Company
from app.schemas.company import CompanyOut, CompanyUpdateIn

router = APIRouter(prefix="/company", tags=["company"])


def _company_out(company: Company) -> CompanyOut:
    return CompanyOut(
        id=company.id,
        name=company.name,
        address=company.address,
        phone=company.phone,
        email=company.email,
        tax_number=company.tax_number,
        is_active=company.is_active,
        created_at=company.created_at,
        updated_at=company.updated_at,
    )


@router.get(
    "",
    response_model=CompanyOut,
    summary="Get company settings",
    responses=error_responses(401, 403, 404, 500, path="/company"),
)
def get_company(company: Company = Depends(get_current_company)):
    return _company_out(company)


@router.patch(
    "",
    response_model=CompanyOut,
    summary="Update company settings",
    responses=error_responses(401, 403, 404, 422, 500, path="/company"),
)
def update_company(
    payload: CompanyUpdateIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("settings.company")),
    company: Company = Depends(get_current_company),
):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    for field, value in changes.items():
        setattr(company, field, value)

    db.commit()
    db.refresh(company)
    log_event("company.updated", company_id=company.id, actor_user_id=actor.user_id, fields=sorted(changes))
    return _company_out(company)
