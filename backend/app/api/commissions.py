from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.commission import Commission
from app.models.user import User
from app.schemas.commission import BulkPaidRequest, Commission as CommissionSchema
from app.services import commission_report
from app.services.ledger import PolicyLedgerService

router = APIRouter(prefix="/api/commissions", tags=["commissions"])


def _scope(current_user: User) -> Optional[int]:
    """Admins see every agent's commissions; agents only their own."""
    return None if (current_user.role or "").lower() == "admin" else current_user.id


@router.get("/", response_model=List[CommissionSchema])
def list_commissions(
    payment_status: Optional[str] = None,
    company_id: Optional[int] = None,
    sub_agent_id: Optional[int] = None,
    commission_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Commission)
    agent_id = _scope(current_user)
    if agent_id is not None:
        query = query.filter(Commission.agent_id == agent_id)
    if payment_status:
        query = query.filter(Commission.payment_status == payment_status)
    if company_id:
        query = query.filter(Commission.company_id == company_id)
    if sub_agent_id:
        query = query.filter(Commission.sub_agent_id == sub_agent_id)
    if commission_type:
        query = query.filter(Commission.commission_type == commission_type)
    return (
        query.order_by(Commission.created_at.desc(), Commission.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


@router.get("/summary")
def get_summary(
    company_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Total / paid / pending / cancelled commission amounts."""
    return commission_report.summarize(db, agent_id=_scope(current_user), company_id=company_id)


@router.get("/by-company")
def get_by_company(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return commission_report.by_company(db, agent_id=_scope(current_user))


@router.get("/sub-agents")
def get_sub_agent_earnings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return commission_report.by_sub_agent(db, agent_id=current_user.id)


@router.put("/{commission_id}/paid", response_model=CommissionSchema)
def mark_paid(
    commission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return PolicyLedgerService(db).mark_commission_paid(commission_id, agent_id=_scope(current_user))


@router.post("/bulk-paid")
def bulk_mark_paid(
    data: BulkPaidRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    commissions = PolicyLedgerService(db).bulk_mark_paid(data.commission_ids, agent_id=_scope(current_user))
    return {"updated": len(commissions), "commission_ids": sorted(c.id for c in commissions)}
