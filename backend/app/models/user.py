from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    AGENT = "agent"


class User(Base):
    """Back-office admin or a broker/agent who sells policies."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    role = Column(String, default="agent", nullable=False)
    is_active = Column(Boolean, default=True)

    # Broker code used by bulk uploads, e.g. "AGT0001"
    agent_code = Column(String, unique=True, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    policies = relationship("Policy", back_populates="agent")
    sub_agents = relationship("SubAgent", back_populates="agent", cascade="all, delete-orphan")
    clients = relationship("Client", back_populates="agent", cascade="all, delete-orphan")
