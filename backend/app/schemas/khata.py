from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal


class DebitCreate(BaseModel):
    client_id: int
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    entry_date: Optional[date] = None
    policy_id: Optional[int] = None


class CollectionCreate(DebitCreate):
    payment_mode: Optional[str] = None
    reference: Optional[str] = None


class LedgerEntryUpdate(BaseModel):
    description: Optional[str] = None
    entry_date: Optional[date] = None


class LedgerEntry(BaseModel):
    id: int
    client_id: int
    policy_id: Optional[int] = None
    entry_type: str
    amount: Decimal
    description: Optional[str] = None
    payment_mode: Optional[str] = None
    reference: Optional[str] = None
    entry_date: date
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatementLine(BaseModel):
    entry: LedgerEntry
    running_balance: Decimal


class KhataClient(BaseModel):
    id: int
    client_code: Optional[str] = None
    name: str
    phone: Optional[str] = None

    class Config:
        from_attributes = True


class ClientKhata(BaseModel):
    client: KhataClient
    statement: List[StatementLine]
    total_debit: Decimal
    total_collection: Decimal
    pending_amount: Decimal


class PendingCollection(BaseModel):
    client_id: int
    client_code: Optional[str] = None
    name: str
    phone: Optional[str] = None
    pending_amount: Decimal
