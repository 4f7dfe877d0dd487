from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal


class CommissionInDB(BaseModel):
    id: int
    policy_id: int
    agent_id: int
    sub_agent_id: Optional[int] = None
    company_id: int
    rule_id: Optional[int] = None
    commission_type: str
    event_key: str
    premium_amount: Decimal
    total_commission_percent: Decimal
    total_commission_amount: Decimal
    agent_commission_amount: Decimal
    sub_agent_commission_amount: Decimal
    payment_status: str
    payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Commission(CommissionInDB):
    pass


class BulkPaidRequest(BaseModel):
    commission_ids: List[int] = Field(..., min_length=1)


class TierRule(BaseModel):
    min_premium: Decimal = Field(..., ge=0)
    max_premium: Optional[Decimal] = Field(None, gt=0)
    rate: Decimal = Field(..., ge=0, le=100)


class CommissionRuleCreate(BaseModel):
    company_id: int
    policy_type: str = Field(..., min_length=1)
    tier_rules: List[TierRule] = Field(..., min_length=1)
    effective_from: date
    effective_to: Optional[date] = None


class CommissionRuleSupersede(BaseModel):
    tier_rules: List[TierRule] = Field(..., min_length=1)
    effective_from: date


class CommissionRule(BaseModel):
    id: int
    company_id: int
    policy_type: str
    tier_rules: list
    effective_from: date
    effective_to: Optional[date] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
