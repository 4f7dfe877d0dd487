"""Sub-agents and clients owned by an agent."""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class SubAgentBase(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None


class SubAgentCreate(SubAgentBase):
    # Falls back to DEFAULT_SUB_AGENT_PERCENTAGE
    commission_percentage: Optional[Decimal] = Field(None, ge=0, le=100)


class SubAgentUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    commission_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class SubAgent(SubAgentBase):
    id: int
    agent_id: int
    sub_agent_code: str
    commission_percentage: Decimal
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class Client(ClientBase):
    id: int
    agent_id: int
    client_code: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
