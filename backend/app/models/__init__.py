from app.models.user import User, UserRole
from app.models.company import InsuranceCompany
from app.models.customer import Client, SubAgent
from app.models.policy import Policy, PolicyStatus, PolicySource, Renewal, RenewalStatus
from app.models.commission import Commission, CommissionRule, CommissionType, PaymentStatus
from app.models.notification import NotificationLog
from app.models.khata import EntryType, LedgerEntry

__all__ = [
    "User",
    "UserRole",
    "InsuranceCompany",
    "Client",
    "SubAgent",
    "Policy",
    "PolicyStatus",
    "PolicySource",
    "Renewal",
    "RenewalStatus",
    "Commission",
    "CommissionRule",
    "CommissionType",
    "PaymentStatus",
    "NotificationLog",
    "EntryType",
    "LedgerEntry",
]
