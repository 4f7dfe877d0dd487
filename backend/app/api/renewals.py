"""Renewal pipeline: upcoming and overdue renewals, completion and reminders."""
import calendar
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_notifier
from app.core.database import get_db
from app.core.security import get_current_user, require_admin
from app.models.policy import Policy, PolicyStatus, Renewal, RenewalStatus
from app.models.user import User
from app.schemas.policy import RenewalComplete, RenewalCompleted
from app.services.ledger import PolicyLedgerService
from app.services.notifications import Notifier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/renewals", tags=["renewals"])


def urgency(days_left: int) -> str:
    if days_left <= 7:
        return "critical"
    if days_left <= 15:
        return "high"
    return "normal"


def _pending_query(db: Session, current_user: User):
    query = (
        db.query(Renewal)
        .join(Policy, Renewal.policy_id == Policy.id)
        .filter(
            Renewal.renewal_status == RenewalStatus.PENDING.value,
            Policy.status == PolicyStatus.ACTIVE.value,
        )
    )
    if (current_user.role or "").lower() != "admin":
        query = query.filter(Policy.agent_id == current_user.id)
    return query


def _renewal_to_dict(renewal: Renewal, today: date) -> dict:
    policy = renewal.policy
    days_left = (renewal.renewal_date - today).days
    return {
        "id": renewal.id,
        "policy_id": policy.id,
        "policy_number": policy.policy_number,
        "policy_type": policy.policy_type,
        "company": policy.company.name if policy.company else None,
        "customer_name": policy.display_name,
        "customer_phone": policy.contact_phone,
        "premium_amount": float(policy.premium_amount),
        "renewal_date": renewal.renewal_date.isoformat(),
        "renewal_status": renewal.renewal_status,
        "days_left": days_left,
        "urgency": urgency(days_left),
        "reminders_sent": renewal.reminders_sent or [],
    }


def _get_own_renewal(db: Session, renewal_id: int, current_user: User) -> Renewal:
    renewal = db.query(Renewal).filter(Renewal.id == renewal_id).first()
    if not renewal:
        raise HTTPException(status_code=404, detail="Renewal not found")
    if (current_user.role or "").lower() != "admin" and renewal.policy.agent_id != current_user.id:
        raise HTTPException(status_code=404, detail="Renewal not found")
    return renewal


@router.get("/upcoming")
def upcoming_renewals(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    today = date.today()
    renewals = (
        _pending_query(db, current_user)
        .filter(Renewal.renewal_date >= today, Renewal.renewal_date <= today + timedelta(days=days))
        .order_by(Renewal.renewal_date)
        .all()
    )
    items = [_renewal_to_dict(r, today) for r in renewals]
    counts = defaultdict(int)
    for item in items:
        counts[item["urgency"]] += 1
    return {"renewals": items, "total": len(items), "by_urgency": dict(counts)}


@router.get("/expired")
def expired_renewals(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Pending renewals whose date has passed but are still inside the grace period."""
    today = date.today()
    renewals = (
        _pending_query(db, current_user)
        .filter(Renewal.renewal_date < today)
        .order_by(Renewal.renewal_date)
        .all()
    )
    return {"renewals": [_renewal_to_dict(r, today) for r in renewals], "total": len(renewals)}


@router.get("/calendar")
def renewal_calendar(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    today = date.today()
    year = year or today.year
    month = month or today.month
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])

    renewals = (
        _pending_query(db, current_user)
        .filter(Renewal.renewal_date >= first, Renewal.renewal_date <= last)
        .order_by(Renewal.renewal_date)
        .all()
    )
    days = defaultdict(list)
    for renewal in renewals:
        days[renewal.renewal_date.isoformat()].append(_renewal_to_dict(renewal, today))
    return {"year": year, "month": month, "days": dict(days), "total": len(renewals)}


@router.post("/lapse-overdue")
def lapse_overdue(
    grace_days: Optional[int] = Query(None, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    lapsed = PolicyLedgerService(db).lapse_overdue(grace_days=grace_days)
    return {"lapsed": len(lapsed), "renewal_ids": [r.id for r in lapsed]}


@router.post("/{renewal_id}/complete", response_model=RenewalCompleted)
def complete_renewal(
    renewal_id: int,
    data: Optional[RenewalComplete] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark the renewal done and record its commission. Repeating the call is safe."""
    _get_own_renewal(db, renewal_id, current_user)
    data = data or RenewalComplete()
    result = PolicyLedgerService(db).complete_renewal(
        renewal_id,
        premium_amount=data.premium_amount,
        start_date=data.start_date,
        end_date=data.end_date,
    )
    return {
        "commission": result.commission,
        "next_renewal": result.next_renewal,
        "duplicate": result.duplicate,
    }


@router.post("/{renewal_id}/send-reminder")
def send_reminder(
    renewal_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    renewal = _get_own_renewal(db, renewal_id, current_user)
    if renewal.renewal_status != RenewalStatus.PENDING.value:
        raise HTTPException(status_code=400, detail=f"Renewal is {renewal.renewal_status}")

    days_left = (renewal.renewal_date - date.today()).days
    results = notifier.notify_renewal_due(renewal.policy, days_left)
    return {
        "renewal_id": renewal.id,
        "results": [
            {"outcome": r.outcome.value, "provider": r.provider, "detail": r.detail}
            for r in results
        ],
    }
