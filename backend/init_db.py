"""
Database initialization script
Run this to create tables and seed demo data
"""
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

import app.models  # noqa: F401
from app.core.database import engine, Base, SessionLocal
from app.core.security import get_password_hash
from app.models.commission import CommissionRule
from app.models.company import InsuranceCompany
from app.models.user import User, UserRole
from app.services.rules import CommissionRuleService

SEED_RULES_FROM = date(2024, 1, 1)

COMPANIES = [
    {"name": "ICICI Lombard", "code": "ICICI"},
    {"name": "HDFC ERGO", "code": "HDFC"},
]

RULES = [
    # (company code, policy type, tiers)
    ("ICICI", "Motor", [{"min_premium": 0, "max_premium": None, "rate": 15}]),
    ("HDFC", "Health", [
        {"min_premium": 0, "max_premium": 50000, "rate": 10},
        {"min_premium": 50000, "max_premium": None, "rate": 15},
    ]),
]


def init_db():
    """Initialize database with tables"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("✓ Tables created successfully")


def seed_data():
    """Seed initial data"""
    db = SessionLocal()

    try:
        print("\nSeeding initial data...")

        admin = db.query(User).filter(User.username == "admin").first()
        if not admin:
            admin = User(
                email="admin@insurancebook.app",
                username="admin",
                full_name="System Administrator",
                hashed_password=get_password_hash("admin123"),
                role=UserRole.ADMIN.value,
            )
            db.add(admin)
            print("✓ Admin user created (username: admin, password: admin123)")

        agent = db.query(User).filter(User.username == "agent1").first()
        if not agent:
            agent = User(
                email="agent@insurancebook.app",
                username="agent1",
                full_name="Ravi Kumar",
                phone="9876500000",
                hashed_password=get_password_hash("agent1234"),
                role=UserRole.AGENT.value,
                agent_code="AGT0001",
            )
            db.add(agent)
            print("✓ Sample agent created (username: agent1, password: agent1234, code: AGT0001)")

        for company_data in COMPANIES:
            if not db.query(InsuranceCompany).filter(InsuranceCompany.code == company_data["code"]).first():
                db.add(InsuranceCompany(**company_data))
                print(f"✓ Created company {company_data['code']}")
        db.commit()

        rules = CommissionRuleService(db)
        for code, policy_type, tiers in RULES:
            company = db.query(InsuranceCompany).filter(InsuranceCompany.code == code).first()
            exists = db.query(CommissionRule).filter(
                CommissionRule.company_id == company.id,
                CommissionRule.policy_type == policy_type,
            ).first()
            if not exists:
                rules.create_rule(company.id, policy_type, tiers, SEED_RULES_FROM)
                print(f"✓ Created {code} {policy_type} commission rule")

        print("\n✓ Database seeded successfully!")

    except Exception as e:
        print(f"\n✗ Error seeding data: {e}")
        db.rollback()
    finally:
        db.close()


if __name__ == "__main__":
    print("=" * 60)
    print("Insurance Book - Database Initialization")
    print("=" * 60)

    init_db()
    seed_data()

    print("\n" + "=" * 60)
    print("Initialization complete!")
    print("=" * 60)
    print("\nYou can now access:")
    print("  - API: http://localhost:8000")
    print("  - API Docs: http://localhost:8000/docs")
    print("\nDefault credentials:")
    print("  Admin - username: admin, password: admin123")
    print("  Agent - username: agent1, password: agent1234")
    print("=" * 60)
