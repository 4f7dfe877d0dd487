from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
import enum


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class CommissionType(str, enum.Enum):
    NEW_BUSINESS = "new_business"
    RENEWAL = "renewal"


class Commission(Base):
    """One computed commission per policy event (sale or renewal completion).

    Amounts are fixed at creation; only payment_status / payment_date change.
    """
    __tablename__ = "commissions"
    __table_args__ = (
        UniqueConstraint("policy_id", "commission_type", "event_key", name="uq_commission_event"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    policy_id = Column(Integer, ForeignKey("policies.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sub_agent_id = Column(Integer, ForeignKey("sub_agents.id"), nullable=True, index=True)
    company_id = Column(Integer, ForeignKey("insurance_companies.id"), nullable=False, index=True)
    rule_id = Column(Integer, ForeignKey("commission_rules.id"), nullable=True)

    # Triggering event, e.g. "policy:12" or "renewal:40"
    commission_type = Column(String, nullable=False, default=CommissionType.NEW_BUSINESS.value)
    event_key = Column(String, nullable=False)

    # Rate and amounts at time of calculation
    premium_amount = Column(Numeric(12, 2), nullable=False)
    total_commission_percent = Column(Numeric(6, 3), nullable=False)  # e.g. 15.000
    total_commission_amount = Column(Numeric(12, 2), nullable=False)
    agent_commission_amount = Column(Numeric(12, 2), nullable=False)
    sub_agent_commission_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Payment tracking
    payment_status = Column(String, default=PaymentStatus.PENDING.value, nullable=False, index=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    policy = relationship("Policy", back_populates="commissions")
    sub_agent = relationship("SubAgent")
    company = relationship("InsuranceCompany")


class CommissionRule(Base):
    """Tiered commission rates a company pays for one policy type.

    tier_rules is a list of {"min_premium", "max_premium" (null = open), "rate"}.
    Rules are superseded by closing effective_to and creating a new rule.
    """
    __tablename__ = "commission_rules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("insurance_companies.id"), nullable=False, index=True)
    policy_type = Column(String, nullable=False, index=True)
    tier_rules = Column(JSON, nullable=False)

    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)  # exclusive; null = still active

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    company = relationship("InsuranceCompany", back_populates="commission_rules")
