"""Daily renewal cycle: reminder notifications and the lapse sweep."""
import logging
import threading
import time
from datetime import date, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from app.models.policy import Policy, PolicyStatus, Renewal, RenewalStatus
from app.services.ledger import PolicyLedgerService

logger = logging.getLogger(__name__)


def send_renewal_reminders(db: Session, notifier, today: Optional[date] = None,
                           reminder_days: Iterable[int] = (30, 15, 7, 1)) -> int:
    """
    Remind customers whose pending renewal falls exactly `d` days from today,
    once per offset. Returns the number of renewals reminded.
    """
    today = today or date.today()
    sent = 0

    for days in sorted(set(reminder_days), reverse=True):
        target = today + timedelta(days=days)
        due = (
            db.query(Renewal)
            .join(Policy, Renewal.policy_id == Policy.id)
            .filter(
                Renewal.renewal_status == RenewalStatus.PENDING.value,
                Renewal.renewal_date == target,
                Policy.status == PolicyStatus.ACTIVE.value,
            )
            .all()
        )
        for renewal in due:
            already = list(renewal.reminders_sent or [])
            if days in already:
                continue
            notifier.notify_renewal_due(renewal.policy, days)
            # Reassign so the JSON column is marked dirty
            renewal.reminders_sent = already + [days]
            sent += 1
        db.commit()

    if sent:
        logger.info(f"Renewal reminders sent for {sent} renewals")
    return sent


def run_daily_renewal_cycle(db: Session, notifier, today: Optional[date] = None,
                            reminder_days: Iterable[int] = (30, 15, 7, 1),
                            grace_days: Optional[int] = None) -> dict:
    today = today or date.today()
    reminded = send_renewal_reminders(db, notifier, today, reminder_days)
    lapsed = PolicyLedgerService(db).lapse_overdue(as_of=today, grace_days=grace_days)
    return {"reminders_sent": reminded, "renewals_lapsed": len(lapsed)}


def start_renewal_scheduler(session_factory: Callable, notifier, config) -> threading.Thread:
    """Run the daily cycle in a daemon thread every RENEWAL_JOB_INTERVAL_HOURS."""

    def _run():
        time.sleep(30)  # Wait for app to fully start
        while True:
            db = session_factory()
            try:
                result = run_daily_renewal_cycle(
                    db,
                    notifier,
                    reminder_days=config.RENEWAL_REMINDER_DAYS,
                    grace_days=config.RENEWAL_GRACE_DAYS,
                )
                logger.info(f"Renewal cycle results: {result}")
            except Exception as e:
                db.rollback()
                logger.error(f"Renewal cycle error: {e}")
            finally:
                db.close()
            time.sleep(config.RENEWAL_JOB_INTERVAL_HOURS * 3600)

    thread = threading.Thread(target=_run, name="renewal-scheduler", daemon=True)
    thread.start()
    logger.info(f"Renewal scheduler started (every {config.RENEWAL_JOB_INTERVAL_HOURS} hours)")
    return thread
