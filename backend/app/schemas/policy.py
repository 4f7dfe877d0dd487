from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from app.schemas.commission import Commission


class PolicyBase(BaseModel):
    policy_number: str = Field(..., min_length=1)
    policy_type: str = Field(..., min_length=1)
    company_id: int
    premium_amount: Decimal = Field(..., gt=0)
    sum_assured: Optional[Decimal] = Field(None, gt=0)
    start_date: date
    end_date: date
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None


class PolicyCreate(PolicyBase):
    sub_agent_id: Optional[int] = None
    client_id: Optional[int] = None


class PolicyUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    client_id: Optional[int] = None
    sum_assured: Optional[Decimal] = Field(None, gt=0)
    notes: Optional[str] = None

    class Config:
        extra = "forbid"


class Renewal(BaseModel):
    id: int
    policy_id: int
    renewal_date: date
    renewal_status: str
    completed_at: Optional[datetime] = None
    reminders_sent: Optional[List[int]] = None

    class Config:
        from_attributes = True


class PolicyInDB(PolicyBase):
    id: int
    agent_id: int
    sub_agent_id: Optional[int] = None
    client_id: Optional[int] = None
    status: str
    policy_source: str
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Policy(PolicyInDB):
    pass


class PolicyDetail(Policy):
    commissions: List[Commission] = []
    renewals: List[Renewal] = []


class RenewalComplete(BaseModel):
    premium_amount: Optional[Decimal] = Field(None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RenewalCompleted(BaseModel):
    commission: Commission
    next_renewal: Optional[Renewal] = None
    duplicate: bool = False


class ImportRowError(BaseModel):
    row: int
    message: str


class BulkUploadResult(BaseModel):
    successful: int
    failed: int
    errors: List[ImportRowError]
