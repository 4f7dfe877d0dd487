import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENABLE_RENEWAL_SCHEDULER", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import Base
from app.core.security import get_password_hash
from app.models.commission import CommissionRule
from app.models.company import InsuranceCompany
from app.models.customer import Client, SubAgent
from app.models.user import User, UserRole

RULES_FROM = date(2024, 1, 1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ── Factories ────────────────────────────────────────────────────────

@pytest.fixture
def make_company(db):
    def _make(code="ICICI", name=None, is_active=True):
        company = InsuranceCompany(name=name or f"{code} Insurance", code=code, is_active=is_active)
        db.add(company)
        db.commit()
        db.refresh(company)
        return company
    return _make


@pytest.fixture
def make_agent(db):
    counter = {"n": 0}

    def _make(agent_code=None, role=UserRole.AGENT.value, password="secret123", phone="9876543210"):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=f"user{n}@example.com",
            username=f"user{n}",
            full_name=f"User {n}",
            phone=phone,
            hashed_password=get_password_hash(password),
            role=role,
            agent_code=agent_code if agent_code is not None else (
                f"AGT{n:04d}" if role == UserRole.AGENT.value else None
            ),
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_rule(db):
    def _make(company, policy_type="Motor", tiers=None, effective_from=RULES_FROM, effective_to=None):
        rule = CommissionRule(
            company_id=company.id,
            policy_type=policy_type,
            tier_rules=tiers or [{"min_premium": 0, "max_premium": None, "rate": 15}],
            effective_from=effective_from,
            effective_to=effective_to,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule
    return _make


@pytest.fixture
def make_sub_agent(db):
    def _make(agent, percentage=Decimal("50"), code=None):
        sub_agent = SubAgent(
            agent_id=agent.id,
            sub_agent_code=code or f"{agent.agent_code}-S01",
            name="Sub Agent",
            phone="9876500001",
            commission_percentage=percentage,
        )
        db.add(sub_agent)
        db.commit()
        db.refresh(sub_agent)
        return sub_agent
    return _make


@pytest.fixture
def make_client(db):
    counter = {"n": 0}

    def _make(agent, name="Asha Patel", phone="9876511111"):
        counter["n"] += 1
        client = Client(
            agent_id=agent.id,
            client_code=f"{agent.agent_code}-C{counter['n']:04d}",
            name=name,
            phone=phone,
        )
        db.add(client)
        db.commit()
        db.refresh(client)
        return client
    return _make


@pytest.fixture
def icici(make_company):
    return make_company("ICICI")


@pytest.fixture
def agent(make_agent):
    return make_agent()


@pytest.fixture
def motor_rule(make_rule, icici):
    return make_rule(icici)


def _policy_data(company, agent, **overrides):
    data = {
        "policy_number": "POL001",
        "policy_type": "Motor",
        "company_id": company.id,
        "agent_id": agent.id,
        "premium_amount": Decimal("15000"),
        "customer_name": "John Doe",
        "customer_phone": "9876543210",
        "start_date": date(2024, 1, 1),
        "end_date": date(2025, 1, 1),
    }
    data.update(overrides)
    return data


@pytest.fixture
def policy_data():
    return _policy_data
