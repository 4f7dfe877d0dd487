"""Commission rate resolution and split allocation.

Rates come from tiered CommissionRules:
1. Exactly one rule is effective per (company, policy type) on a given date
2. Tiers are half-open premium bands [min_premium, max_premium); a premium equal
   to a band's max belongs to the next band
3. Total commission = premium * rate / 100, rounded to whole currency units
4. A sub-agent's share is rounded; the agent gets the remainder so the two
   shares always add up to the total
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List, Optional

from app.core.errors import (
    InvalidPercentage,
    InvalidTierConfiguration,
    RuleNotFound,
    TierNotFound,
)

HUNDRED = Decimal("100")
WHOLE_UNIT = Decimal("1")
CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Not a number: {value!r}")


def to_money(value) -> Decimal:
    """Premiums are stored with two decimals; rates must be resolved on the stored value."""
    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Tier:
    min_premium: Decimal
    max_premium: Optional[Decimal]
    rate: Decimal

    def covers(self, premium: Decimal) -> bool:
        if premium < self.min_premium:
            return False
        return self.max_premium is None or premium < self.max_premium

    def as_dict(self) -> dict:
        return {
            "min_premium": float(self.min_premium),
            "max_premium": float(self.max_premium) if self.max_premium is not None else None,
            "rate": float(self.rate),
        }


@dataclass(frozen=True)
class RateQuote:
    rule_id: Optional[int]
    tier: Tier

    @property
    def rate(self) -> Decimal:
        return self.tier.rate


@dataclass(frozen=True)
class Allocation:
    agent_amount: Decimal
    sub_agent_amount: Decimal


@dataclass(frozen=True)
class CommissionBreakdown:
    rule_id: Optional[int]
    premium_amount: Decimal
    percent: Decimal
    total_amount: Decimal
    agent_amount: Decimal
    sub_agent_amount: Decimal


def parse_tiers(raw_tiers: Iterable[dict]) -> List[Tier]:
    """Build Tier objects from stored JSON (snake_case or camelCase keys)."""
    tiers = []
    for raw in raw_tiers or []:
        min_value = raw.get("min_premium", raw.get("minPremium"))
        max_value = raw.get("max_premium", raw.get("maxPremium"))
        rate = raw.get("rate")
        if min_value is None or rate is None:
            raise InvalidTierConfiguration("Each tier needs min_premium and rate")
        try:
            tiers.append(Tier(
                min_premium=to_decimal(min_value),
                max_premium=to_decimal(max_value) if max_value is not None else None,
                rate=to_decimal(rate),
            ))
        except ValueError as e:
            raise InvalidTierConfiguration(f"Invalid tier {raw}: {e}")
    return tiers


def validate_tier_rules(tiers: List[Tier]) -> List[Tier]:
    """
    Check that tiers cover every premium >= 0 exactly once.
    Returns the tiers sorted by min_premium.
    """
    if not tiers:
        raise InvalidTierConfiguration("At least one tier is required")

    ordered = sorted(tiers, key=lambda t: t.min_premium)

    if ordered[0].min_premium != 0:
        raise InvalidTierConfiguration("The lowest tier must start at a premium of 0")

    for index, tier in enumerate(ordered):
        if tier.rate < 0 or tier.rate > HUNDRED:
            raise InvalidTierConfiguration(f"Tier rate {tier.rate} must be between 0 and 100")

        is_last = index == len(ordered) - 1
        if tier.max_premium is None:
            if not is_last:
                raise InvalidTierConfiguration(
                    "Only the highest tier may have an open (null) max_premium"
                )
            continue

        if tier.max_premium <= tier.min_premium:
            raise InvalidTierConfiguration(
                f"Tier starting at {tier.min_premium} must end above its start"
            )
        if is_last:
            raise InvalidTierConfiguration("The highest tier must have an open max_premium")

        following = ordered[index + 1]
        if following.min_premium < tier.max_premium:
            raise InvalidTierConfiguration(
                f"Tiers overlap between {following.min_premium} and {tier.max_premium}"
            )
        if following.min_premium > tier.max_premium:
            raise InvalidTierConfiguration(
                f"Gap between tiers: nothing covers {tier.max_premium} to {following.min_premium}"
            )

    return ordered


def resolve_tier(tiers: List[Tier], premium) -> Tier:
    premium = to_decimal(premium)
    for tier in sorted(tiers, key=lambda t: t.min_premium):
        if tier.covers(premium):
            return tier
    raise TierNotFound(f"No commission tier covers a premium of {premium}")


def is_effective(effective_from: date, effective_to: Optional[date], as_of: date) -> bool:
    """effective_from is inclusive, effective_to exclusive."""
    if effective_from > as_of:
        return False
    return effective_to is None or as_of < effective_to


def windows_overlap(a_from: date, a_to: Optional[date], b_from: date, b_to: Optional[date]) -> bool:
    a_before_b = a_to is not None and a_to <= b_from
    b_before_a = b_to is not None and b_to <= a_from
    return not (a_before_b or b_before_a)


def select_active_rule(rules, company_id: int, policy_type: str, as_of: date):
    matches = [
        rule for rule in rules
        if rule.company_id == company_id
        and (rule.policy_type or "").lower() == (policy_type or "").lower()
        and is_effective(rule.effective_from, rule.effective_to, as_of)
    ]
    if not matches:
        raise RuleNotFound(
            f"No commission rule configured for company {company_id}, "
            f"policy type '{policy_type}' on {as_of.isoformat()}"
        )
    if len(matches) > 1:
        raise InvalidTierConfiguration(
            f"{len(matches)} commission rules are effective for company {company_id}, "
            f"policy type '{policy_type}' on {as_of.isoformat()}"
        )
    return matches[0]


def compute_total(premium, percent) -> Decimal:
    premium = to_decimal(premium)
    percent = to_decimal(percent)
    return (premium * percent / HUNDRED).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def allocate(total, sub_agent_percentage=None, has_sub_agent: bool = False) -> Allocation:
    total = to_decimal(total)
    if not has_sub_agent:
        return Allocation(agent_amount=total, sub_agent_amount=Decimal("0"))

    if sub_agent_percentage is None:
        raise InvalidPercentage("Sub-agent commission percentage is required")
    percentage = to_decimal(sub_agent_percentage)
    if percentage < 0 or percentage > HUNDRED:
        raise InvalidPercentage(
            f"Sub-agent commission percentage {percentage} must be between 0 and 100"
        )

    sub_agent_amount = (total * percentage / HUNDRED).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
    return Allocation(agent_amount=total - sub_agent_amount, sub_agent_amount=sub_agent_amount)


class CommissionCalculationService:
    """
    Resolves a rate through the repository's rule lookup and splits the
    resulting commission between agent and sub-agent.
    """

    def __init__(self, repository):
        self.repository = repository

    def quote_rate(self, company_id: int, policy_type: str, premium, as_of: Optional[date] = None) -> RateQuote:
        as_of = as_of or date.today()
        rule = self.repository.find_active_rule(company_id, policy_type, as_of)
        if rule is None:
            raise RuleNotFound(
                f"No commission rule configured for company {company_id}, "
                f"policy type '{policy_type}' on {as_of.isoformat()}"
            )
        tier = resolve_tier(parse_tiers(rule.tier_rules), premium)
        return RateQuote(rule_id=rule.id, tier=tier)

    def calculate(
        self,
        company_id: int,
        policy_type: str,
        premium,
        sub_agent_percentage=None,
        has_sub_agent: bool = False,
        as_of: Optional[date] = None,
    ) -> CommissionBreakdown:
        premium = to_money(premium)
        quote = self.quote_rate(company_id, policy_type, premium, as_of)
        total = compute_total(premium, quote.rate)
        split = allocate(total, sub_agent_percentage, has_sub_agent)
        return CommissionBreakdown(
            rule_id=quote.rule_id,
            premium_amount=premium,
            percent=quote.rate,
            total_amount=total,
            agent_amount=split.agent_amount,
            sub_agent_amount=split.sub_agent_amount,
        )
