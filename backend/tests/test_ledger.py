"""Policy lifecycle and the commissions it records."""
from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import InvalidPercentage, InvalidTransition, NotFound, RuleNotFound
from app.models.commission import Commission, CommissionType, PaymentStatus
from app.models.policy import Policy, PolicySource, PolicyStatus, Renewal, RenewalStatus
from app.services.ledger import (
    DuplicatePolicyNumber,
    InvalidPolicyData,
    PolicyLedgerService,
    next_cycle_end,
)


@pytest.fixture
def ledger(db):
    return PolicyLedgerService(db)


@pytest.fixture
def policy(ledger, motor_rule, icici, agent, policy_data):
    return ledger.create_policy(policy_data(icici, agent))


def _renewal(policy):
    return [r for r in policy.renewals if r.renewal_status == RenewalStatus.PENDING.value][0]


class TestCreatePolicy:
    def test_creates_commission_and_first_renewal(self, db, policy):
        assert policy.status == PolicyStatus.ACTIVE.value
        assert policy.policy_source == PolicySource.NEW.value

        commissions = db.query(Commission).filter(Commission.policy_id == policy.id).all()
        assert len(commissions) == 1
        commission = commissions[0]
        assert commission.commission_type == CommissionType.NEW_BUSINESS.value
        assert commission.event_key == f"policy:{policy.id}"
        assert commission.total_commission_percent == Decimal("15")
        assert commission.total_commission_amount == Decimal("2250")
        assert commission.agent_commission_amount == Decimal("2250")
        assert commission.payment_status == PaymentStatus.PENDING.value

        renewals = db.query(Renewal).filter(Renewal.policy_id == policy.id).all()
        assert len(renewals) == 1
        assert renewals[0].renewal_date == date(2025, 1, 1)
        assert renewals[0].renewal_status == RenewalStatus.PENDING.value

    def test_sub_agent_split(self, db, ledger, motor_rule, icici, agent, make_sub_agent, policy_data):
        sub_agent = make_sub_agent(agent, percentage=Decimal("40"))
        policy = ledger.create_policy(policy_data(icici, agent, sub_agent_id=sub_agent.id))
        commission = policy.commissions[0]
        assert commission.sub_agent_id == sub_agent.id
        assert commission.sub_agent_commission_amount == Decimal("900")
        assert commission.agent_commission_amount == Decimal("1350")

    def test_other_agents_sub_agent_rejected(self, ledger, motor_rule, icici, agent, make_agent,
                                             make_sub_agent, policy_data):
        other = make_agent()
        sub_agent = make_sub_agent(other)
        with pytest.raises(NotFound):
            ledger.create_policy(policy_data(icici, agent, sub_agent_id=sub_agent.id))

    def test_invalid_sub_agent_percentage_writes_nothing(self, db, ledger, motor_rule, icici, agent,
                                                         make_sub_agent, policy_data):
        sub_agent = make_sub_agent(agent, percentage=Decimal("120"))
        with pytest.raises(InvalidPercentage):
            ledger.create_policy(policy_data(icici, agent, sub_agent_id=sub_agent.id))
        assert db.query(Policy).count() == 0

    def test_missing_rule_writes_nothing(self, db, ledger, icici, agent, policy_data):
        with pytest.raises(RuleNotFound):
            ledger.create_policy(policy_data(icici, agent))
        assert db.query(Policy).count() == 0
        assert db.query(Commission).count() == 0

    def test_duplicate_policy_number(self, ledger, policy, icici, agent, policy_data):
        with pytest.raises(DuplicatePolicyNumber):
            ledger.create_policy(policy_data(icici, agent))

    def test_end_date_must_follow_start(self, ledger, motor_rule, icici, agent, policy_data):
        with pytest.raises(InvalidPolicyData):
            ledger.create_policy(policy_data(icici, agent, end_date=date(2024, 1, 1)))

    def test_tier_resolved_on_stored_premium(self, db, ledger, make_rule, icici, agent, policy_data):
        make_rule(icici, policy_type="Health", tiers=[
            {"min_premium": 0, "max_premium": 50000, "rate": 10},
            {"min_premium": 50000, "max_premium": None, "rate": 15},
        ])
        policy = ledger.create_policy(
            policy_data(icici, agent, policy_type="Health", premium_amount=Decimal("49999.999"))
        )
        db.refresh(policy)
        commission = policy.commissions[0]
        assert policy.premium_amount == Decimal("50000.00")
        assert commission.total_commission_percent == Decimal("15")
        assert commission.total_commission_amount == Decimal("7500")


class TestCompleteRenewal:
    def test_renewal_commission_on_renewal_premium(self, db, ledger, policy):
        renewal = _renewal(policy)
        result = ledger.complete_renewal(renewal.id, premium_amount=Decimal("20000"))

        assert not result.duplicate
        assert result.commission.commission_type == CommissionType.RENEWAL.value
        assert result.commission.event_key == f"renewal:{renewal.id}"
        assert result.commission.total_commission_amount == Decimal("3000")

        db.refresh(policy)
        assert policy.premium_amount == Decimal("20000")
        assert policy.start_date == date(2025, 1, 1)
        assert policy.end_date == date(2026, 1, 1)
        assert result.next_renewal.renewal_date == date(2026, 1, 1)
        assert result.next_renewal.renewal_status == RenewalStatus.PENDING.value

    def test_completing_twice_records_one_commission(self, db, ledger, policy):
        renewal = _renewal(policy)
        first = ledger.complete_renewal(renewal.id)
        second = ledger.complete_renewal(renewal.id)

        assert second.duplicate
        assert second.commission.id == first.commission.id
        renewal_commissions = (
            db.query(Commission)
            .filter(
                Commission.policy_id == policy.id,
                Commission.commission_type == CommissionType.RENEWAL.value,
            )
            .count()
        )
        assert renewal_commissions == 1
        assert db.query(Renewal).filter(Renewal.policy_id == policy.id).count() == 2

    def test_concurrent_completion_returns_stored_commission(self, db, ledger, policy):
        # Another request recorded the renewal commission but this one still sees the renewal pending
        renewal = _renewal(policy)
        stored = Commission(
            policy_id=policy.id,
            agent_id=policy.agent_id,
            company_id=policy.company_id,
            commission_type=CommissionType.RENEWAL.value,
            event_key=f"renewal:{renewal.id}",
            premium_amount=Decimal("15000"),
            total_commission_percent=Decimal("15"),
            total_commission_amount=Decimal("2250"),
            agent_commission_amount=Decimal("2250"),
            sub_agent_commission_amount=Decimal("0"),
        )
        db.add(stored)
        db.commit()
        assert renewal.renewal_status == RenewalStatus.PENDING.value

        result = ledger.complete_renewal(renewal.id)

        assert result.duplicate
        assert result.commission.id == stored.id
        renewal_commissions = (
            db.query(Commission)
            .filter(
                Commission.policy_id == policy.id,
                Commission.commission_type == CommissionType.RENEWAL.value,
            )
            .all()
        )
        assert [c.id for c in renewal_commissions] == [stored.id]
        assert db.query(Renewal).filter(Renewal.policy_id == policy.id).count() == 1

    def test_cancelled_policy_cannot_renew(self, ledger, policy):
        renewal = _renewal(policy)
        ledger.cancel_policy(policy.id)
        with pytest.raises(InvalidTransition):
            ledger.complete_renewal(renewal.id)

    def test_lapsed_renewal_cannot_complete(self, ledger, policy):
        renewal = _renewal(policy)
        ledger.lapse_overdue(as_of=date(2025, 3, 1), grace_days=30)
        with pytest.raises(InvalidTransition):
            ledger.complete_renewal(renewal.id)

    def test_unknown_renewal(self, ledger):
        with pytest.raises(NotFound):
            ledger.complete_renewal(12345)


class TestNextCycleEnd:
    def test_whole_year_term(self):
        assert next_cycle_end(date(2024, 1, 1), date(2025, 1, 1)) == date(2026, 1, 1)

    def test_six_month_term(self):
        assert next_cycle_end(date(2024, 1, 15), date(2024, 7, 15)) == date(2025, 1, 15)

    def test_day_based_term(self):
        assert next_cycle_end(date(2024, 1, 1), date(2024, 12, 31)) == date(2025, 12, 31)


class TestLapseOverdue:
    def test_lapses_after_grace_period(self, db, ledger, policy):
        renewal = _renewal(policy)

        assert ledger.lapse_overdue(as_of=date(2025, 1, 31), grace_days=30) == []

        lapsed = ledger.lapse_overdue(as_of=date(2025, 2, 1), grace_days=30)
        assert [r.id for r in lapsed] == [renewal.id]

        db.refresh(policy)
        assert policy.status == PolicyStatus.LAPSED.value
        assert db.query(Commission).filter(Commission.policy_id == policy.id).count() == 1

    def test_cancelled_policy_stays_cancelled(self, db, ledger, policy):
        ledger.cancel_policy(policy.id)
        ledger.lapse_overdue(as_of=date(2025, 6, 1), grace_days=30)
        db.refresh(policy)
        assert policy.status == PolicyStatus.CANCELLED.value


class TestCancelPolicy:
    def test_pending_commissions_cancelled_paid_kept(self, db, ledger, policy):
        paid = policy.commissions[0]
        ledger.mark_commission_paid(paid.id)
        renewal = ledger.complete_renewal(_renewal(policy).id)
        pending = renewal.commission

        ledger.cancel_policy(policy.id)

        db.refresh(paid)
        db.refresh(pending)
        assert paid.payment_status == PaymentStatus.PAID.value
        assert paid.total_commission_amount == Decimal("2250")
        assert pending.payment_status == PaymentStatus.CANCELLED.value
        assert pending.total_commission_amount == Decimal("2250")

    def test_cancel_twice_rejected(self, ledger, policy):
        ledger.cancel_policy(policy.id)
        with pytest.raises(InvalidTransition):
            ledger.cancel_policy(policy.id)

    def test_other_agent_cannot_cancel(self, ledger, policy, make_agent):
        other = make_agent()
        with pytest.raises(NotFound):
            ledger.cancel_policy(policy.id, agent_id=other.id)


class TestPaymentTracking:
    def test_mark_paid_sets_payment_date(self, ledger, policy):
        commission = ledger.mark_commission_paid(policy.commissions[0].id)
        assert commission.payment_status == PaymentStatus.PAID.value
        assert commission.payment_date is not None

    def test_cancelled_commission_cannot_be_paid(self, ledger, policy):
        commission_id = policy.commissions[0].id
        ledger.cancel_policy(policy.id)
        with pytest.raises(InvalidTransition):
            ledger.mark_commission_paid(commission_id)

    def test_bulk_mark_paid(self, ledger, policy):
        renewal = ledger.complete_renewal(_renewal(policy).id)
        ids = [policy.commissions[0].id, renewal.commission.id]
        updated = ledger.bulk_mark_paid(ids)
        assert {c.payment_status for c in updated} == {PaymentStatus.PAID.value}

    def test_bulk_mark_paid_unknown_id(self, ledger, policy):
        with pytest.raises(NotFound):
            ledger.bulk_mark_paid([policy.commissions[0].id, 9999])


class TestUpdateDetails:
    def test_descriptive_fields_change_commission_does_not(self, db, ledger, policy, make_client, agent):
        client = make_client(agent)
        updated = ledger.update_details(policy.id, {
            "customer_phone": "9000000000",
            "client_id": client.id,
            "notes": "Prefers WhatsApp",
        })
        assert updated.customer_phone == "9000000000"
        assert updated.client_id == client.id
        assert updated.premium_amount == Decimal("15000")
        assert db.query(Commission).one().total_commission_amount == Decimal("2250")

    def test_financial_fields_rejected(self, ledger, policy):
        with pytest.raises(InvalidPolicyData, match="premium_amount"):
            ledger.update_details(policy.id, {"premium_amount": Decimal("1"), "notes": "x"})

    def test_cancelled_policy_is_frozen(self, ledger, policy):
        ledger.cancel_policy(policy.id)
        with pytest.raises(InvalidTransition):
            ledger.update_details(policy.id, {"notes": "too late"})

    def test_client_of_another_agent(self, ledger, policy, make_client, make_agent):
        foreign = make_client(make_agent())
        with pytest.raises(NotFound):
            ledger.update_details(policy.id, {"client_id": foreign.id})
