from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user, require_admin
from app.models.company import InsuranceCompany
from app.models.user import User
from app.schemas.company import Company, CompanyCreate, CompanyUpdate

router = APIRouter(prefix="/api/companies", tags=["companies"])


def _get_company(db: Session, company_id: int) -> InsuranceCompany:
    company = db.query(InsuranceCompany).filter(InsuranceCompany.id == company_id).first()
    if not company:
        raise HTTPException(status_code=404, detail="Insurance company not found")
    return company


@router.get("/", response_model=List[Company])
def list_companies(
    include_inactive: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(InsuranceCompany)
    if not include_inactive:
        query = query.filter(InsuranceCompany.is_active == True)
    return query.order_by(InsuranceCompany.name).all()


@router.get("/{company_id}", response_model=Company)
def get_company(
    company_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_company(db, company_id)


@router.post("/", response_model=Company, status_code=status.HTTP_201_CREATED)
def create_company(
    data: CompanyCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    code = data.code.strip().upper()
    if db.query(InsuranceCompany).filter(InsuranceCompany.code == code).first():
        raise HTTPException(status_code=400, detail=f"Company code {code} already exists")

    company = InsuranceCompany(**data.model_dump(exclude={"code"}), code=code)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@router.put("/{company_id}", response_model=Company)
def update_company(
    company_id: int,
    data: CompanyUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    company = _get_company(db, company_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(company, field, value)
    db.commit()
    db.refresh(company)
    return company


@router.delete("/{company_id}")
def deactivate_company(
    company_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Companies are deactivated, never deleted; their rules and policies stay."""
    require_admin(current_user)
    company = _get_company(db, company_id)
    company.is_active = False
    db.commit()
    return {"status": "deactivated", "id": company.id}
