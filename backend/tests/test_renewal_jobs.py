from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from app.models.policy import PolicyStatus, Renewal, RenewalStatus
from app.services.ledger import PolicyLedgerService
from app.tasks.renewal_jobs import run_daily_renewal_cycle, send_renewal_reminders

TODAY = date(2025, 3, 10)


@pytest.fixture
def make_policy(db, motor_rule, icici, agent, policy_data):
    ledger = PolicyLedgerService(db)

    def _make(number, days_to_renewal):
        end = TODAY + timedelta(days=days_to_renewal)
        return ledger.create_policy(policy_data(
            icici, agent, policy_number=number, start_date=end - timedelta(days=365), end_date=end,
        ))
    return _make


class TestSendRenewalReminders:
    def test_reminds_on_configured_offsets_once(self, db, make_policy):
        due_in_7 = make_policy("POL7", 7)
        make_policy("POL8", 8)
        notifier = MagicMock()

        assert send_renewal_reminders(db, notifier, TODAY, [30, 15, 7, 1]) == 1
        notifier.notify_renewal_due.assert_called_once()
        policy, days = notifier.notify_renewal_due.call_args.args
        assert policy.id == due_in_7.id
        assert days == 7

        renewal = db.query(Renewal).filter(Renewal.policy_id == due_in_7.id).one()
        assert renewal.reminders_sent == [7]

        # Same day again: nothing new
        assert send_renewal_reminders(db, notifier, TODAY, [30, 15, 7, 1]) == 0
        assert notifier.notify_renewal_due.call_count == 1

    def test_cancelled_policies_are_not_reminded(self, db, make_policy):
        policy = make_policy("POL1", 15)
        PolicyLedgerService(db).cancel_policy(policy.id)
        notifier = MagicMock()
        assert send_renewal_reminders(db, notifier, TODAY, [15]) == 0
        notifier.notify_renewal_due.assert_not_called()


class TestDailyCycle:
    def test_reminds_and_lapses(self, db, make_policy):
        overdue = make_policy("POLOLD", -31)
        make_policy("POL1", 1)
        notifier = MagicMock()

        result = run_daily_renewal_cycle(db, notifier, today=TODAY, reminder_days=[1], grace_days=30)

        assert result == {"reminders_sent": 1, "renewals_lapsed": 1}
        db.refresh(overdue)
        assert overdue.status == PolicyStatus.LAPSED.value
        assert overdue.renewals[0].renewal_status == RenewalStatus.LAPSED.value
