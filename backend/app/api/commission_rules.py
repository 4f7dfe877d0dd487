"""Commission rule administration and rate previews."""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user, require_admin
from app.models.commission import CommissionRule
from app.models.user import User
from app.schemas.commission import (
    CommissionRule as CommissionRuleSchema,
    CommissionRuleCreate,
    CommissionRuleSupersede,
)
from app.services.commission import CommissionCalculationService, compute_total
from app.services.repository import PolicyRepository
from app.services.rules import CommissionRuleService

router = APIRouter(prefix="/api/commission-rules", tags=["commission-rules"])


def _tiers_payload(tiers) -> List[dict]:
    return [t.model_dump() for t in tiers]


@router.get("/", response_model=List[CommissionRuleSchema])
def list_rules(
    company_id: Optional[int] = None,
    policy_type: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(CommissionRule)
    if company_id:
        query = query.filter(CommissionRule.company_id == company_id)
    if policy_type:
        query = query.filter(CommissionRule.policy_type.ilike(policy_type))
    return query.order_by(
        CommissionRule.company_id, CommissionRule.policy_type, CommissionRule.effective_from
    ).all()


@router.post("/", response_model=CommissionRuleSchema, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: CommissionRuleCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    return CommissionRuleService(db).create_rule(
        company_id=data.company_id,
        policy_type=data.policy_type,
        tier_rules=_tiers_payload(data.tier_rules),
        effective_from=data.effective_from,
        effective_to=data.effective_to,
        created_by=current_user.id,
    )


@router.post("/{rule_id}/supersede", response_model=CommissionRuleSchema, status_code=status.HTTP_201_CREATED)
def supersede_rule(
    rule_id: int,
    data: CommissionRuleSupersede,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Close the rule at effective_from and open a new one with the given tiers."""
    require_admin(current_user)
    return CommissionRuleService(db).supersede_rule(
        rule_id,
        tier_rules=_tiers_payload(data.tier_rules),
        effective_from=data.effective_from,
        created_by=current_user.id,
    )


@router.get("/quote")
def quote_rate(
    company_id: int,
    policy_type: str,
    premium: Decimal = Query(..., gt=0),
    as_of: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Preview the rate and commission a sale would earn."""
    quote = CommissionCalculationService(PolicyRepository(db)).quote_rate(
        company_id, policy_type, premium, as_of
    )
    return {
        "rule_id": quote.rule_id,
        "tier": quote.tier.as_dict(),
        "rate": float(quote.rate),
        "commission": float(compute_total(premium, quote.rate)),
    }
