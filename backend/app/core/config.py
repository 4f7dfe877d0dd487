from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Insurance Book"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database
    DATABASE_URL: str = "postgresql://insurance_user:insurance_pass@db:5432/insurance_book"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Bulk upload
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB

    # Renewals
    RENEWAL_GRACE_DAYS: int = 30
    RENEWAL_REMINDER_DAYS: List[int] = [30, 15, 7, 1]
    RENEWAL_JOB_INTERVAL_HOURS: int = 24
    ENABLE_RENEWAL_SCHEDULER: bool = True

    # Sub-agent split used when none is given on creation
    DEFAULT_SUB_AGENT_PERCENTAGE: float = 50.0

    # SMS: Twilio first, MSG91 as fallback
    SMS_COUNTRY_CODE: str = "+91"
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    MSG91_API_KEY: Optional[str] = None
    MSG91_SENDER_ID: str = "INSBOOK"

    # Mailgun for renewal / welcome emails
    MAILGUN_API_KEY: Optional[str] = None
    MAILGUN_DOMAIN: Optional[str] = None
    MAILGUN_FROM_EMAIL: str = "no-reply@insurancebook.app"
    MAILGUN_FROM_NAME: str = "Insurance Book"

    # App URL (frontend)
    FRONTEND_URL: str = "http://localhost:3000"

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True


settings = Settings()
