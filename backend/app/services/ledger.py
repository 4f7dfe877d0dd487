"""Policy lifecycle and the commission records it generates.

Lifecycle per policy cycle:
- sale: policy ACTIVE, new_business commission, renewal pending at end_date
- renewal completed: renewal commission on the renewal premium, next renewal
  pending; completing the same renewal again returns the stored commission
- lapse: pending renewal past the grace period -> renewal and policy lapsed,
  no commission
- cancellation: policy cancelled, pending commissions cancelled, paid ones kept
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    AppError,
    DuplicateCommissionEvent,
    InvalidTransition,
    NotFound,
)
from app.models.commission import Commission, CommissionType, PaymentStatus
from app.models.customer import Client
from app.models.policy import Policy, PolicySource, PolicyStatus, Renewal, RenewalStatus
from app.services.commission import CommissionCalculationService, to_money
from app.services.repository import PolicyRepository

logger = logging.getLogger(__name__)

EDITABLE_POLICY_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "client_id",
    "sum_assured",
    "notes",
)


class InvalidPolicyData(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"


class DuplicatePolicyNumber(AppError):
    status_code = 409
    code = "DUPLICATE_POLICY_NUMBER"


@dataclass
class RenewalResult:
    commission: Commission
    next_renewal: Optional[Renewal]
    duplicate: bool = False


def next_cycle_end(start: date, end: date) -> date:
    """Same term length as the current cycle, counted in months when it is a whole number of months."""
    if start.day == end.day:
        months = (end.year - start.year) * 12 + (end.month - start.month)
        if months > 0:
            return end + relativedelta(months=months)
    return end + (end - start)


def new_business_event(policy_id: int) -> str:
    return f"policy:{policy_id}"


def renewal_event(renewal_id: int) -> str:
    return f"renewal:{renewal_id}"


class PolicyLedgerService:

    def __init__(self, db: Session, repository: Optional[PolicyRepository] = None):
        self.db = db
        self.repository = repository or PolicyRepository(db)
        self.calculator = CommissionCalculationService(self.repository)

    # ── Sale ─────────────────────────────────────────────────────────

    def create_policy(
        self,
        data: dict,
        source: PolicySource = PolicySource.NEW,
        as_of: Optional[date] = None,
        commit: bool = True,
    ) -> Policy:
        """
        Create a policy with its new-business commission and first renewal.
        Rule/tier/percentage errors propagate and nothing is written.
        """
        policy_number = (data.get("policy_number") or "").strip()
        if not policy_number:
            raise InvalidPolicyData("Policy number is required")
        if self.repository.policy_number_exists(policy_number):
            raise DuplicatePolicyNumber(f"Policy number {policy_number} already exists")

        premium = to_money(data["premium_amount"])
        if premium <= 0:
            raise InvalidPolicyData("Premium amount must be positive")
        if data["end_date"] <= data["start_date"]:
            raise InvalidPolicyData("End date must be after start date")

        sub_agent = None
        if data.get("sub_agent_id"):
            sub_agent = self.repository.get_sub_agent(data["sub_agent_id"])
            if not sub_agent or sub_agent.agent_id != data["agent_id"]:
                raise NotFound("Sub-agent not found")

        breakdown = self.calculator.calculate(
            company_id=data["company_id"],
            policy_type=data["policy_type"],
            premium=premium,
            sub_agent_percentage=sub_agent.commission_percentage if sub_agent else None,
            has_sub_agent=sub_agent is not None,
            as_of=as_of,
        )

        record = dict(data)
        record["policy_number"] = policy_number
        record["premium_amount"] = premium
        record["status"] = PolicyStatus.ACTIVE.value
        record["policy_source"] = source.value

        try:
            policy = self.repository.create_policy(record)
            self.repository.create_commission(
                self._commission_record(policy, breakdown, CommissionType.NEW_BUSINESS,
                                        new_business_event(policy.id))
            )
            self.repository.create_renewal(policy, policy.end_date)
            if commit:
                self.db.commit()
                self.db.refresh(policy)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Policy {policy.policy_number} created ({source.value}); "
            f"commission {breakdown.total_amount} at {breakdown.percent}%"
        )
        return policy

    def update_details(self, policy_id: int, changes: dict, agent_id: Optional[int] = None) -> Policy:
        """
        Edit the descriptive fields of a policy. Premium, dates, type and
        company are fixed once the commission is recorded.
        """
        policy = self.repository.get_policy(policy_id)
        if not policy or (agent_id is not None and policy.agent_id != agent_id):
            raise NotFound("Policy not found")
        if policy.status == PolicyStatus.CANCELLED.value:
            raise InvalidTransition("A cancelled policy cannot be edited")

        locked = sorted(set(changes) - set(EDITABLE_POLICY_FIELDS))
        if locked:
            raise InvalidPolicyData(f"Fields cannot be edited: {', '.join(locked)}")

        client_id = changes.get("client_id")
        if client_id is not None:
            client = self.db.query(Client).filter(Client.id == client_id).first()
            if not client or client.agent_id != policy.agent_id:
                raise NotFound("Client not found")

        for name, value in changes.items():
            setattr(policy, name, value)
        self.db.commit()
        self.db.refresh(policy)
        logger.info(f"Policy {policy.policy_number} updated: {', '.join(sorted(changes))}")
        return policy

    # ── Renewal ──────────────────────────────────────────────────────

    def complete_renewal(
        self,
        renewal_id: int,
        premium_amount=None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        as_of: Optional[date] = None,
    ) -> RenewalResult:
        renewal = self.repository.get_renewal(renewal_id)
        if not renewal:
            raise NotFound("Renewal not found")
        policy = renewal.policy
        event_key = renewal_event(renewal.id)

        if renewal.renewal_status == RenewalStatus.COMPLETED.value:
            existing = self.repository.find_commission_by_event(
                policy.id, CommissionType.RENEWAL.value, event_key
            )
            if existing:
                logger.info(f"Renewal {renewal.id} already completed; returning commission {existing.id}")
                return RenewalResult(commission=existing, next_renewal=None, duplicate=True)
            raise InvalidTransition("Renewal is already completed")
        if renewal.renewal_status == RenewalStatus.LAPSED.value:
            raise InvalidTransition("A lapsed renewal cannot be completed")
        if policy.status != PolicyStatus.ACTIVE.value:
            raise InvalidTransition(f"Cannot renew a {policy.status} policy")

        premium = to_money(premium_amount if premium_amount is not None else policy.premium_amount)
        if premium <= 0:
            raise InvalidPolicyData("Premium amount must be positive")
        new_start = start_date or renewal.renewal_date
        new_end = end_date or next_cycle_end(policy.start_date, policy.end_date)
        if new_end <= new_start:
            raise InvalidPolicyData("End date must be after start date")

        sub_agent = policy.sub_agent
        breakdown = self.calculator.calculate(
            company_id=policy.company_id,
            policy_type=policy.policy_type,
            premium=premium,
            sub_agent_percentage=sub_agent.commission_percentage if sub_agent else None,
            has_sub_agent=sub_agent is not None,
            as_of=as_of,
        )

        policy_id = policy.id
        try:
            renewal.renewal_status = RenewalStatus.COMPLETED.value
            renewal.completed_at = datetime.now(timezone.utc)
            policy.premium_amount = premium
            policy.start_date = new_start
            policy.end_date = new_end

            commission = self.repository.create_commission(
                self._commission_record(policy, breakdown, CommissionType.RENEWAL, event_key)
            )
            next_renewal = self.repository.create_renewal(policy, new_end)
            self.db.commit()
        except DuplicateCommissionEvent:
            # Another request completed this renewal first
            existing = self.repository.find_commission_by_event(
                policy_id, CommissionType.RENEWAL.value, event_key
            )
            if existing is None:
                raise
            return RenewalResult(commission=existing, next_renewal=None, duplicate=True)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(commission)
        logger.info(
            f"Renewal {renewal_id} completed for policy {policy.policy_number}; "
            f"commission {breakdown.total_amount}, next renewal {new_end.isoformat()}"
        )
        return RenewalResult(commission=commission, next_renewal=next_renewal)

    def lapse_overdue(self, as_of: Optional[date] = None, grace_days: Optional[int] = None) -> List[Renewal]:
        """Lapse pending renewals not completed within the grace period."""
        as_of = as_of or date.today()
        grace = settings.RENEWAL_GRACE_DAYS if grace_days is None else grace_days
        cutoff = as_of - timedelta(days=grace)

        overdue = (
            self.db.query(Renewal)
            .filter(
                Renewal.renewal_status == RenewalStatus.PENDING.value,
                Renewal.renewal_date < cutoff,
            )
            .all()
        )
        for renewal in overdue:
            renewal.renewal_status = RenewalStatus.LAPSED.value
            if renewal.policy.status == PolicyStatus.ACTIVE.value:
                renewal.policy.status = PolicyStatus.LAPSED.value
        self.db.commit()

        if overdue:
            logger.info(f"Lapsed {len(overdue)} renewals due before {cutoff.isoformat()}")
        return overdue

    # ── Cancellation ─────────────────────────────────────────────────

    def cancel_policy(self, policy_id: int, agent_id: Optional[int] = None) -> Policy:
        policy = self.repository.get_policy(policy_id)
        if not policy or (agent_id is not None and policy.agent_id != agent_id):
            raise NotFound("Policy not found")
        if policy.status == PolicyStatus.CANCELLED.value:
            raise InvalidTransition("Policy is already cancelled")

        policy.status = PolicyStatus.CANCELLED.value
        policy.cancelled_at = datetime.now(timezone.utc)

        cancelled = 0
        for commission in policy.commissions:
            if commission.payment_status == PaymentStatus.PENDING.value:
                commission.payment_status = PaymentStatus.CANCELLED.value
                cancelled += 1

        self.db.commit()
        self.db.refresh(policy)
        logger.info(f"Policy {policy.policy_number} cancelled; {cancelled} pending commissions cancelled")
        return policy

    # ── Payment tracking ─────────────────────────────────────────────

    def mark_commission_paid(self, commission_id: int, agent_id: Optional[int] = None) -> Commission:
        commission = self.repository.get_commission(commission_id)
        if not commission or (agent_id is not None and commission.agent_id != agent_id):
            raise NotFound("Commission not found")
        self._mark_paid(commission)
        self.db.commit()
        self.db.refresh(commission)
        return commission

    def bulk_mark_paid(self, commission_ids: List[int], agent_id: Optional[int] = None) -> List[Commission]:
        commissions = self.db.query(Commission).filter(Commission.id.in_(commission_ids)).all()
        if agent_id is not None:
            commissions = [c for c in commissions if c.agent_id == agent_id]
        if len(commissions) != len(set(commission_ids)):
            raise NotFound("Some commissions were not found")
        for commission in commissions:
            self._mark_paid(commission)
        self.db.commit()
        return commissions

    def _mark_paid(self, commission: Commission):
        if commission.payment_status == PaymentStatus.PAID.value:
            return
        if commission.payment_status == PaymentStatus.CANCELLED.value:
            raise InvalidTransition(f"Commission {commission.id} is cancelled and cannot be paid")
        commission.payment_status = PaymentStatus.PAID.value
        commission.payment_date = datetime.now(timezone.utc)

    # ── Helpers ──────────────────────────────────────────────────────

    def _commission_record(self, policy: Policy, breakdown, commission_type: CommissionType, event_key: str) -> dict:
        return {
            "policy_id": policy.id,
            "agent_id": policy.agent_id,
            "sub_agent_id": policy.sub_agent_id,
            "company_id": policy.company_id,
            "rule_id": breakdown.rule_id,
            "commission_type": commission_type.value,
            "event_key": event_key,
            "premium_amount": breakdown.premium_amount,
            "total_commission_percent": breakdown.percent,
            "total_commission_amount": breakdown.total_amount,
            "agent_commission_amount": breakdown.agent_amount,
            "sub_agent_commission_amount": breakdown.sub_agent_amount or Decimal("0"),
            "payment_status": PaymentStatus.PENDING.value,
        }
