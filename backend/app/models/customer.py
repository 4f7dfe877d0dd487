"""Agent-owned clients and sub-agents."""
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_code = Column(String, nullable=True, index=True)  # "<agent_code>-C0001"

    name = Column(String, nullable=False, index=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    agent = relationship("User", back_populates="clients")
    policies = relationship("Policy", back_populates="client")
    ledger_entries = relationship("LedgerEntry", back_populates="client", order_by="LedgerEntry.entry_date")


class SubAgent(Base):
    """Works under an agent and co-earns commission on policies they help sell."""
    __tablename__ = "sub_agents"

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sub_agent_code = Column(String, unique=True, nullable=False, index=True)  # "<agent_code>-S01"

    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)

    # Share of the total commission, 0-100
    commission_percentage = Column(Numeric(5, 2), nullable=False, default=50)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    agent = relationship("User", back_populates="sub_agents")
    policies = relationship("Policy", back_populates="sub_agent")
