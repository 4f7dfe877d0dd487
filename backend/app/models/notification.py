"""Audit trail of outbound SMS / email attempts."""
from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from app.core.database import Base


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    channel = Column(String, nullable=False)  # sms, email
    event_type = Column(String, nullable=False, index=True)  # renewal_due, welcome
    recipient = Column(String, nullable=True)
    outcome = Column(String, nullable=False, index=True)  # delivered, skipped, failed
    provider = Column(String, nullable=True)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
