"""Read-side commission totals and agent dashboard figures."""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.commission import Commission, PaymentStatus
from app.models.company import InsuranceCompany
from app.models.customer import Client, SubAgent
from app.models.khata import EntryType, LedgerEntry
from app.models.policy import Policy, PolicyStatus, Renewal, RenewalStatus
from app.services.khata import signed_amount


def _empty_summary() -> dict:
    return {"total": 0.0, "paid": 0.0, "pending": 0.0, "cancelled": 0.0, "count": 0}


def summarize(
    db: Session,
    agent_id: Optional[int] = None,
    sub_agent_id: Optional[int] = None,
    company_id: Optional[int] = None,
) -> dict:
    """
    Totals by payment status. For a sub-agent the sub-agent share is summed,
    otherwise the full commission amount.
    """
    amount_column = (
        Commission.sub_agent_commission_amount if sub_agent_id is not None
        else Commission.total_commission_amount
    )
    query = db.query(
        Commission.payment_status,
        func.coalesce(func.sum(amount_column), 0),
        func.count(Commission.id),
    )
    if agent_id is not None:
        query = query.filter(Commission.agent_id == agent_id)
    if sub_agent_id is not None:
        query = query.filter(Commission.sub_agent_id == sub_agent_id)
    if company_id is not None:
        query = query.filter(Commission.company_id == company_id)

    summary = _empty_summary()
    for status, amount, count in query.group_by(Commission.payment_status).all():
        amount = float(Decimal(str(amount)))
        summary["count"] += count
        if status in summary:
            summary[status] += amount
        # Cancelled commissions are reported but not owed
        if status != PaymentStatus.CANCELLED.value:
            summary["total"] += amount
    return summary


def by_company(db: Session, agent_id: Optional[int] = None) -> List[dict]:
    query = (
        db.query(
            InsuranceCompany.id,
            InsuranceCompany.name,
            InsuranceCompany.code,
            Commission.payment_status,
            func.coalesce(func.sum(Commission.total_commission_amount), 0),
            func.count(Commission.id),
        )
        .join(Commission, Commission.company_id == InsuranceCompany.id)
    )
    if agent_id is not None:
        query = query.filter(Commission.agent_id == agent_id)
    rows = query.group_by(
        InsuranceCompany.id, InsuranceCompany.name, InsuranceCompany.code, Commission.payment_status
    ).all()

    companies = {}
    for company_id, name, code, status, amount, count in rows:
        entry = companies.setdefault(company_id, {
            "company_id": company_id,
            "company_name": name,
            "company_code": code,
            **_empty_summary(),
        })
        amount = float(Decimal(str(amount)))
        entry["count"] += count
        entry[status] = entry.get(status, 0.0) + amount
        if status != PaymentStatus.CANCELLED.value:
            entry["total"] += amount

    return sorted(companies.values(), key=lambda c: c["total"], reverse=True)


def by_sub_agent(db: Session, agent_id: int) -> List[dict]:
    """Sub-agent earnings for one agent, including sub-agents with no commission yet."""
    sub_agents = (
        db.query(SubAgent)
        .filter(SubAgent.agent_id == agent_id)
        .order_by(SubAgent.sub_agent_code)
        .all()
    )
    results = []
    for sub_agent in sub_agents:
        summary = summarize(db, agent_id=agent_id, sub_agent_id=sub_agent.id)
        results.append({
            "sub_agent_id": sub_agent.id,
            "sub_agent_code": sub_agent.sub_agent_code,
            "name": sub_agent.name,
            "commission_percentage": float(sub_agent.commission_percentage or 0),
            "is_active": sub_agent.is_active,
            **summary,
        })
    return results


def _month_bounds(year: int, month: int):
    start = datetime(year, month, 1)
    return start, start + relativedelta(months=1)


def dashboard_stats(db: Session, agent_id: int, today: Optional[date] = None) -> dict:
    """Headline numbers for an agent's dashboard."""
    today = today or date.today()
    policies = db.query(Policy).filter(Policy.agent_id == agent_id)
    total_premium = (
        db.query(func.coalesce(func.sum(Policy.premium_amount), 0))
        .filter(Policy.agent_id == agent_id, Policy.status != PolicyStatus.CANCELLED.value)
        .scalar()
    )
    upcoming_renewals = (
        db.query(Renewal)
        .join(Policy, Renewal.policy_id == Policy.id)
        .filter(
            Policy.agent_id == agent_id,
            Policy.status == PolicyStatus.ACTIVE.value,
            Renewal.renewal_status == RenewalStatus.PENDING.value,
            Renewal.renewal_date >= today,
            Renewal.renewal_date <= today + timedelta(days=30),
        )
        .count()
    )
    pending_collection = (
        db.query(func.coalesce(func.sum(signed_amount()), 0))
        .filter(LedgerEntry.agent_id == agent_id)
        .scalar()
    )
    recent = (
        db.query(Policy)
        .filter(Policy.agent_id == agent_id)
        .order_by(Policy.created_at.desc(), Policy.id.desc())
        .limit(5)
        .all()
    )

    return {
        "total_clients": db.query(Client).filter(Client.agent_id == agent_id).count(),
        "total_policies": policies.count(),
        "active_policies": policies.filter(Policy.status == PolicyStatus.ACTIVE.value).count(),
        "total_premium": float(Decimal(str(total_premium))),
        "pending_collection": float(Decimal(str(pending_collection))),
        "upcoming_renewals": upcoming_renewals,
        "sub_agent_count": (
            db.query(SubAgent).filter(SubAgent.agent_id == agent_id, SubAgent.is_active.is_(True)).count()
        ),
        "commissions": summarize(db, agent_id=agent_id),
        "recent_policies": [
            {
                "id": p.id,
                "policy_number": p.policy_number,
                "customer_name": p.display_name,
                "company_name": p.company.name if p.company else None,
                "premium_amount": float(p.premium_amount),
                "end_date": p.end_date,
            }
            for p in recent
        ],
    }


def monthly_report(db: Session, agent_id: int, year: int, month: int) -> dict:
    """New business, completed renewals, commission and collections for one calendar month."""
    start, end = _month_bounds(year, month)

    new_policies = (
        db.query(Policy)
        .filter(Policy.agent_id == agent_id, Policy.created_at >= start, Policy.created_at < end)
        .order_by(Policy.created_at)
        .all()
    )
    renewed = (
        db.query(Renewal)
        .join(Policy, Renewal.policy_id == Policy.id)
        .filter(
            Policy.agent_id == agent_id,
            Renewal.renewal_status == RenewalStatus.COMPLETED.value,
            Renewal.completed_at >= start,
            Renewal.completed_at < end,
        )
        .order_by(Renewal.completed_at)
        .all()
    )
    commission_total = (
        db.query(func.coalesce(func.sum(Commission.total_commission_amount), 0))
        .filter(
            Commission.agent_id == agent_id,
            Commission.payment_status != PaymentStatus.CANCELLED.value,
            Commission.created_at >= start,
            Commission.created_at < end,
        )
        .scalar()
    )
    collections = (
        db.query(func.coalesce(func.sum(LedgerEntry.amount), 0))
        .filter(
            LedgerEntry.agent_id == agent_id,
            LedgerEntry.entry_type == EntryType.CREDIT.value,
            LedgerEntry.entry_date >= start.date(),
            LedgerEntry.entry_date < end.date(),
        )
        .scalar()
    )

    return {
        "year": year,
        "month": month,
        "new_policies_count": len(new_policies),
        "renewed_policies_count": len(renewed),
        "total_premium": float(sum((Decimal(str(p.premium_amount)) for p in new_policies), Decimal("0"))),
        "total_commission": float(Decimal(str(commission_total))),
        "total_collections": float(Decimal(str(collections))),
        "new_policies": [
            {
                "policy_number": p.policy_number,
                "customer_name": p.display_name,
                "company_name": p.company.name if p.company else None,
                "premium_amount": float(p.premium_amount),
            }
            for p in new_policies
        ],
        "renewed_policies": [
            {
                "policy_number": r.policy.policy_number,
                "customer_name": r.policy.display_name,
                "completed_at": r.completed_at,
            }
            for r in renewed
        ],
    }
