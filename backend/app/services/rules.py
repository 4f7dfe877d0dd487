import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import InvalidTierConfiguration, NotFound, OverlappingRuleWindow
from app.models.commission import CommissionRule
from app.models.company import InsuranceCompany
from app.services.commission import parse_tiers, validate_tier_rules, windows_overlap
from app.services.repository import PolicyRepository

logger = logging.getLogger(__name__)


class CommissionRuleService:
    """
    Maintains commission rules. A rule's tiers are never edited in place;
    a rate change closes the current rule and opens a new one.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = PolicyRepository(db)

    def create_rule(
        self,
        company_id: int,
        policy_type: str,
        tier_rules: List[dict],
        effective_from: date,
        effective_to: Optional[date] = None,
        created_by: Optional[int] = None,
        commit: bool = True,
    ) -> CommissionRule:
        company = self.db.query(InsuranceCompany).filter(InsuranceCompany.id == company_id).first()
        if not company:
            raise NotFound("Insurance company not found")

        policy_type = (policy_type or "").strip()
        if not policy_type:
            raise InvalidTierConfiguration("Policy type is required")
        if effective_to is not None and effective_to <= effective_from:
            raise InvalidTierConfiguration("effective_to must be after effective_from")

        tiers = validate_tier_rules(parse_tiers(tier_rules))

        for existing in self.repository.rules_for_scope(company_id, policy_type):
            if windows_overlap(existing.effective_from, existing.effective_to, effective_from, effective_to):
                raise OverlappingRuleWindow(
                    f"Rule {existing.id} for {company.code} {policy_type} is already effective "
                    f"from {existing.effective_from.isoformat()}"
                    + (f" to {existing.effective_to.isoformat()}" if existing.effective_to else "")
                )

        rule = CommissionRule(
            company_id=company_id,
            policy_type=policy_type,
            tier_rules=[t.as_dict() for t in tiers],
            effective_from=effective_from,
            effective_to=effective_to,
            created_by=created_by,
        )
        self.db.add(rule)
        if commit:
            self.db.commit()
            self.db.refresh(rule)
        else:
            self.db.flush()

        logger.info(
            f"Commission rule {rule.id} created for {company.code} {policy_type} "
            f"from {effective_from.isoformat()} ({len(tiers)} tiers)"
        )
        return rule

    def supersede_rule(
        self,
        rule_id: int,
        tier_rules: List[dict],
        effective_from: date,
        created_by: Optional[int] = None,
    ) -> CommissionRule:
        """Close rule_id at effective_from and open a replacement from that date."""
        old = self.db.query(CommissionRule).filter(CommissionRule.id == rule_id).first()
        if not old:
            raise NotFound("Commission rule not found")
        if effective_from <= old.effective_from:
            raise InvalidTierConfiguration(
                "The new rule must start after the rule it replaces"
            )
        if old.effective_to is not None and effective_from >= old.effective_to:
            raise InvalidTierConfiguration(
                f"Rule {old.id} already ended on {old.effective_to.isoformat()}"
            )

        # Validate before closing the old window
        validate_tier_rules(parse_tiers(tier_rules))

        try:
            old.effective_to = effective_from
            self.db.flush()
            rule = self.create_rule(
                company_id=old.company_id,
                policy_type=old.policy_type,
                tier_rules=tier_rules,
                effective_from=effective_from,
                created_by=created_by,
                commit=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(rule)
        logger.info(f"Commission rule {old.id} superseded by {rule.id} from {effective_from.isoformat()}")
        return rule
