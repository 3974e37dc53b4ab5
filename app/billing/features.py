"""Feature gates: the minimum plan tier required for each gated feature."""

from enum import Enum

from app.billing.plans import Plan


class Feature(str, Enum):
    BANKROLL_ALERTS = "bankroll_alerts"
    SMART_RISK = "smart_risk"
    PATTERN_ALERTS = "pattern_alerts"
    CSV_EXPORT = "csv_export"


FEATURE_MIN_PLAN: dict[Feature, Plan] = {
    Feature.BANKROLL_ALERTS: Plan.BASIC,
    Feature.SMART_RISK: Plan.PRO,
    Feature.PATTERN_ALERTS: Plan.PRO,
    Feature.CSV_EXPORT: Plan.ELITE,
}


def can_access(feature: Feature, plan: "str | Plan") -> bool:
    """Return True if ``plan`` meets the feature's minimum tier.

    Unknown plan strings are treated as free.
    """
    try:
        tier = Plan.parse(plan).tier
    except ValueError:
        tier = Plan.FREE.tier
    return tier >= FEATURE_MIN_PLAN[feature].tier


def required_plan(feature: Feature) -> Plan:
    return FEATURE_MIN_PLAN[feature]
