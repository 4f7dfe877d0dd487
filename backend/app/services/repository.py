"""Database access used by the commission ledger and bulk import."""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import DuplicateCommissionEvent
from app.models.commission import Commission, CommissionRule
from app.models.company import InsuranceCompany
from app.models.customer import SubAgent
from app.models.policy import Policy, Renewal, RenewalStatus
from app.models.user import User
from app.services.commission import select_active_rule

logger = logging.getLogger(__name__)


class PolicyRepository:

    def __init__(self, db: Session):
        self.db = db

    # ── Lookups ──────────────────────────────────────────────────────

    def find_active_rule(self, company_id: int, policy_type: str, as_of: date) -> Optional[CommissionRule]:
        candidates = (
            self.db.query(CommissionRule)
            .filter(
                CommissionRule.company_id == company_id,
                CommissionRule.effective_from <= as_of,
            )
            .all()
        )
        scoped = [r for r in candidates if (r.policy_type or "").lower() == (policy_type or "").lower()]
        if not scoped:
            return None
        return select_active_rule(scoped, company_id, policy_type, as_of)

    def rules_for_scope(self, company_id: int, policy_type: str):
        rules = (
            self.db.query(CommissionRule)
            .filter(CommissionRule.company_id == company_id)
            .order_by(CommissionRule.effective_from)
            .all()
        )
        return [r for r in rules if (r.policy_type or "").lower() == (policy_type or "").lower()]

    def find_company_by_code(self, code: str) -> Optional[InsuranceCompany]:
        return (
            self.db.query(InsuranceCompany)
            .filter(InsuranceCompany.code == code.strip().upper(), InsuranceCompany.is_active == True)
            .first()
        )

    def find_agent_by_code(self, code: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.agent_code == code.strip().upper(), User.is_active == True)
            .first()
        )

    def policy_number_exists(self, number: str) -> bool:
        return (
            self.db.query(Policy.id).filter(Policy.policy_number == number.strip()).first()
            is not None
        )

    def get_policy(self, policy_id: int) -> Optional[Policy]:
        return self.db.query(Policy).filter(Policy.id == policy_id).first()

    def get_renewal(self, renewal_id: int) -> Optional[Renewal]:
        return self.db.query(Renewal).filter(Renewal.id == renewal_id).first()

    def get_sub_agent(self, sub_agent_id: int) -> Optional[SubAgent]:
        return self.db.query(SubAgent).filter(SubAgent.id == sub_agent_id).first()

    def get_commission(self, commission_id: int) -> Optional[Commission]:
        return self.db.query(Commission).filter(Commission.id == commission_id).first()

    def find_commission_by_event(self, policy_id: int, commission_type: str, event_key: str) -> Optional[Commission]:
        return (
            self.db.query(Commission)
            .filter(
                Commission.policy_id == policy_id,
                Commission.commission_type == commission_type,
                Commission.event_key == event_key,
            )
            .first()
        )

    # ── Writes (flush only; the caller owns the transaction) ─────────

    def create_policy(self, record: dict) -> Policy:
        policy = Policy(**record)
        self.db.add(policy)
        self.db.flush()
        return policy

    def create_renewal(self, policy: Policy, renewal_date: date) -> Renewal:
        renewal = Renewal(
            policy_id=policy.id,
            renewal_date=renewal_date,
            renewal_status=RenewalStatus.PENDING.value,
            reminders_sent=[],
        )
        self.db.add(renewal)
        self.db.flush()
        return renewal

    def create_commission(self, record: dict) -> Commission:
        """
        Insert a commission row. The (policy, type, event) unique constraint
        turns a concurrent duplicate into DuplicateCommissionEvent; the session
        is rolled back in that case.
        """
        commission = Commission(**record)
        self.db.add(commission)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                f"Duplicate commission event {record.get('commission_type')}/{record.get('event_key')} "
                f"for policy {record.get('policy_id')}"
            )
            raise DuplicateCommissionEvent(
                f"Commission already recorded for event {record.get('event_key')}"
            )
        return commission
