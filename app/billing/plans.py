"""Plan definitions: tiers, statuses, pricing and per-plan limits."""

from dataclasses import dataclass
from enum import Enum

from app.config import settings


class Plan(str, Enum):
    """Subscription tier. Ordered from least to most privileged."""

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ELITE = "elite"

    @property
    def tier(self) -> int:
        return _PLAN_ORDER.index(self)

    @property
    def is_paid(self) -> bool:
        return self is not Plan.FREE

    @property
    def legacy_value(self) -> str:
        """Storage value used by the original database enum."""
        return _PLAN_TO_LEGACY[self]

    @classmethod
    def parse(cls, value: "str | Plan") -> "Plan":
        """Validate an external plan string (canonical or legacy) into a ``Plan``.

        Raises:
            ValueError: If the value names no known plan.
        """
        if isinstance(value, Plan):
            return value
        key = (value or "").strip().lower()
        if key in _LEGACY_TO_PLAN:
            return _LEGACY_TO_PLAN[key]
        return cls(key)


_PLAN_ORDER: list[Plan] = [Plan.FREE, Plan.BASIC, Plan.PRO, Plan.ELITE]

_PLAN_TO_LEGACY: dict[Plan, str] = {
    Plan.FREE: "free",
    Plan.BASIC: "intermediate",
    Plan.PRO: "advanced",
    Plan.ELITE: "elite",
}
_LEGACY_TO_PLAN: dict[str, Plan] = {v: k for k, v in _PLAN_TO_LEGACY.items()}


class SubscriptionStatus(str, Enum):
    """Entitlement status as stored locally."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"

    @classmethod
    def from_provider(cls, value: str | None) -> "SubscriptionStatus":
        """Map a Stripe subscription status onto the local status set."""
        return _PROVIDER_STATUS.get((value or "").lower(), cls.PAST_DUE)


_PROVIDER_STATUS: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.PAST_DUE,
    # First payment never made, or collection paused: no paid access
    "incomplete": SubscriptionStatus.EXPIRED,
    "paused": SubscriptionStatus.EXPIRED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}

# Statuses under which a paid plan keeps its access until expires_at.
ACCESS_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    }
)


@dataclass(frozen=True)
class PlanLimits:
    """Usage limits and capabilities for a subscription plan."""

    name: Plan
    display_name: str
    subtitle: str
    price_monthly_cents: int  # in centavos (e.g., 4990 = R$ 49,90)
    daily_analyses: int | None  # None = unlimited
    history_days: int | None  # None = unlimited
    bankroll_entries_per_day: int
    can_see_alerts: bool
    can_use_smart_risk: bool
    can_export_csv: bool
    stripe_price_id: str | None  # None for free tier


PLANS: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(
        name=Plan.FREE,
        display_name="Free",
        subtitle="Consciência Inicial",
        price_monthly_cents=0,
        daily_analyses=1,
        history_days=3,
        bankroll_entries_per_day=1,
        can_see_alerts=False,
        can_use_smart_risk=False,
        can_export_csv=False,
        stripe_price_id=None,
    ),
    Plan.BASIC: PlanLimits(
        name=Plan.BASIC,
        display_name="Basic",
        subtitle="Aposta com Critério",
        price_monthly_cents=4990,
        daily_analyses=2,
        history_days=15,
        bankroll_entries_per_day=10,
        can_see_alerts=True,
        can_use_smart_risk=False,
        can_export_csv=False,
        stripe_price_id=settings.stripe_basic_price_id or None,
    ),
    Plan.PRO: PlanLimits(
        name=Plan.PRO,
        display_name="Pro",
        subtitle="Decisão Profissional",
        price_monthly_cents=11990,
        daily_analyses=10,
        history_days=None,
        bankroll_entries_per_day=50,
        can_see_alerts=True,
        can_use_smart_risk=True,
        can_export_csv=False,
        stripe_price_id=settings.stripe_pro_price_id or None,
    ),
    Plan.ELITE: PlanLimits(
        name=Plan.ELITE,
        display_name="Elite",
        subtitle="Controle Estratégico",
        price_monthly_cents=24990,
        daily_analyses=None,
        history_days=None,
        bankroll_entries_per_day=200,
        can_see_alerts=True,
        can_use_smart_risk=True,
        can_export_csv=True,
        stripe_price_id=settings.stripe_elite_price_id or None,
    ),
}

def _build_price_table() -> dict[str, Plan]:
    return {p.stripe_price_id: p.name for p in PLANS.values() if p.stripe_price_id}


PRICE_TO_PLAN: dict[str, Plan] = _build_price_table()


def get_plan(plan: "str | Plan") -> PlanLimits:
    """Get plan limits by name. Defaults to free if unknown."""
    try:
        return PLANS[Plan.parse(plan)]
    except ValueError:
        return PLANS[Plan.FREE]


def price_to_plan(price_id: str | None) -> Plan:
    """Reverse lookup: Stripe price ID -> plan. Unknown prices degrade to free."""
    if not price_id:
        return Plan.FREE
    return PRICE_TO_PLAN.get(price_id, Plan.FREE)


def is_known_price(price_id: str | None) -> bool:
    """True if the price ID belongs to one of the configured paid plans."""
    return bool(price_id) and price_id in PRICE_TO_PLAN
