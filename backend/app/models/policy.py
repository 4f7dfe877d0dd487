from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
import enum


class PolicyStatus(str, enum.Enum):
    ACTIVE = "active"
    LAPSED = "lapsed"
    CANCELLED = "cancelled"


class PolicySource(str, enum.Enum):
    NEW = "new"
    BULK_IMPORT = "bulk_import"


class RenewalStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    LAPSED = "lapsed"


class Policy(Base):
    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, index=True)

    # Policy information
    policy_number = Column(String, unique=True, index=True, nullable=False)
    policy_type = Column(String, nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("insurance_companies.id"), nullable=False, index=True)
    premium_amount = Column(Numeric(12, 2), nullable=False)
    sum_assured = Column(Numeric(14, 2), nullable=True)

    # Ownership
    agent_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sub_agent_id = Column(Integer, ForeignKey("sub_agents.id"), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)

    # Inline customer fields (bulk uploads carry no client record)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)

    # Cycle
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False, index=True)

    status = Column(String, default=PolicyStatus.ACTIVE.value, nullable=False, index=True)
    policy_source = Column(String, default=PolicySource.NEW.value, nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    company = relationship("InsuranceCompany")
    agent = relationship("User", back_populates="policies")
    sub_agent = relationship("SubAgent", back_populates="policies")
    client = relationship("Client", back_populates="policies")
    commissions = relationship("Commission", back_populates="policy", cascade="all, delete-orphan")
    renewals = relationship(
        "Renewal", back_populates="policy", cascade="all, delete-orphan",
        order_by="Renewal.renewal_date",
    )

    @property
    def display_name(self) -> str:
        if self.customer_name:
            return self.customer_name
        return self.client.name if self.client else ""

    @property
    def contact_phone(self):
        if self.customer_phone:
            return self.customer_phone
        return self.client.phone if self.client else None


class Renewal(Base):
    """Renewal due for one policy cycle, scheduled at the cycle's end date."""
    __tablename__ = "renewals"

    id = Column(Integer, primary_key=True, index=True)
    policy_id = Column(Integer, ForeignKey("policies.id"), nullable=False, index=True)
    renewal_date = Column(Date, nullable=False, index=True)
    renewal_status = Column(String, default=RenewalStatus.PENDING.value, nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Reminder offsets already sent, e.g. [30, 15]
    reminders_sent = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    policy = relationship("Policy", back_populates="renewals")
