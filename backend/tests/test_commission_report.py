from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.models.khata import EntryType
from app.models.policy import Renewal, RenewalStatus
from app.services import commission_report
from app.services.khata import KhataService
from app.services.ledger import PolicyLedgerService


@pytest.fixture
def ledger(db):
    return PolicyLedgerService(db)


@pytest.fixture
def book(db, ledger, motor_rule, make_rule, make_company, icici, agent, make_sub_agent, policy_data):
    """Three policies: ICICI 15000 (paid), ICICI 10000 via sub-agent, HDFC 20000 (cancelled)."""
    hdfc = make_company("HDFC")
    make_rule(hdfc, tiers=[{"min_premium": 0, "max_premium": None, "rate": 10}])
    sub_agent = make_sub_agent(agent, percentage=Decimal("50"))

    paid = ledger.create_policy(policy_data(icici, agent, policy_number="P1"))
    ledger.mark_commission_paid(paid.commissions[0].id)
    ledger.create_policy(policy_data(
        icici, agent, policy_number="P2", premium_amount=Decimal("10000"), sub_agent_id=sub_agent.id,
    ))
    cancelled = ledger.create_policy(policy_data(
        hdfc, agent, policy_number="P3", premium_amount=Decimal("20000"),
    ))
    ledger.cancel_policy(cancelled.id)
    return {"icici": icici, "hdfc": hdfc, "sub_agent": sub_agent}


class TestSummaries:
    def test_summarize_by_status(self, db, agent, book):
        summary = commission_report.summarize(db, agent_id=agent.id)
        assert summary["paid"] == 2250.0
        assert summary["pending"] == 1500.0
        assert summary["cancelled"] == 2000.0
        assert summary["total"] == 3750.0
        assert summary["count"] == 3

    def test_summarize_for_other_agent_is_empty(self, db, make_agent, book):
        other = make_agent()
        assert commission_report.summarize(db, agent_id=other.id)["count"] == 0

    def test_by_company(self, db, agent, book):
        rows = commission_report.by_company(db, agent_id=agent.id)
        assert [r["company_code"] for r in rows] == ["ICICI", "HDFC"]
        assert rows[0]["total"] == 3750.0
        assert rows[1]["cancelled"] == 2000.0
        assert rows[1]["total"] == 0.0

    def test_by_sub_agent_uses_sub_agent_share(self, db, agent, book):
        rows = commission_report.by_sub_agent(db, agent.id)
        assert len(rows) == 1
        assert rows[0]["sub_agent_code"] == book["sub_agent"].sub_agent_code
        assert rows[0]["pending"] == 750.0
        assert rows[0]["total"] == 750.0


class TestDashboard:
    def test_dashboard_stats(self, db, agent, book, make_client):
        customer = make_client(agent)
        khata = KhataService(db, agent.id)
        khata.record(customer.id, EntryType.DEBIT, Decimal("15000"))
        khata.record(customer.id, EntryType.CREDIT, Decimal("5000"))

        stats = commission_report.dashboard_stats(db, agent.id, today=date(2024, 12, 15))

        assert stats["total_clients"] == 1
        assert stats["total_policies"] == 3
        assert stats["active_policies"] == 2
        assert stats["total_premium"] == 25000.0
        assert stats["pending_collection"] == 10000.0
        assert stats["upcoming_renewals"] == 2
        assert stats["sub_agent_count"] == 1
        assert stats["commissions"]["total"] == 3750.0
        assert len(stats["recent_policies"]) == 3

    def test_monthly_report(self, db, agent, book, ledger, make_client):
        customer = make_client(agent)
        KhataService(db, agent.id).record(customer.id, EntryType.CREDIT, Decimal("5000"))
        renewal = (
            db.query(Renewal)
            .filter(Renewal.renewal_status == RenewalStatus.PENDING.value)
            .order_by(Renewal.id)
            .first()
        )
        ledger.complete_renewal(renewal.id)
        now = datetime.now(timezone.utc)

        report = commission_report.monthly_report(db, agent.id, now.year, now.month)

        assert report["new_policies_count"] == 3
        assert report["renewed_policies_count"] == 1
        assert report["total_collections"] == 5000.0
        assert report["total_commission"] > 3750.0

    def test_empty_month(self, db, agent, book):
        report = commission_report.monthly_report(db, agent.id, 2001, 1)
        assert report["new_policies_count"] == 0
        assert report["total_commission"] == 0.0
