"""Behavioural alert rules for the bankroll.

Each rule is an independent pure function
``(settings, entries, plan, now) -> Alert | None``. ``generate_alerts``
evaluates them in order and returns every alert that fired.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from app.bankroll.engine import (
    BetType,
    EntryStatus,
    daily_limit,
    entries_since,
    exposure,
    newest_first,
    stake_base,
    start_of_day,
)
from app.billing.features import Feature, can_access
from app.billing.plans import Plan
from app.models.bankroll import BankrollEntry, BankrollSettings

STAKE_HIGH_FACTOR = Decimal("1.5")
RECOVERY_WINDOW = timedelta(hours=24)
RECOVERY_MIN_ENTRIES = 3
RECOVERY_MIN_LOSSES = 2
RECOVERY_STAKE_FACTOR = Decimal("1.5")
MULTIPLE_WINDOW = timedelta(days=7)
MULTIPLE_MIN_ENTRIES = 5
MULTIPLE_MIN_SHARE = Decimal("0.7")


class Severity(str, Enum):
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class Alert:
    type: str
    message: str
    severity: Severity


AlertRule = Callable[[BankrollSettings | None, Sequence[BankrollEntry], Plan, datetime], Alert | None]


def stake_above_recommended(
    settings: BankrollSettings | None,
    entries: Sequence[BankrollEntry],
    plan: Plan,
    now: datetime,
) -> Alert | None:
    """Latest stake more than 1.5x the recommended base stake (paid tiers)."""
    if not entries or not can_access(Feature.BANKROLL_ALERTS, plan):
        return None
    latest = newest_first(entries)[0]
    if latest.stake > stake_base(settings) * STAKE_HIGH_FACTOR:
        return Alert(
            type="stake_high",
            message="Você está apostando acima do recomendado.",
            severity=Severity.WARNING,
        )
    return None


def daily_exposure(
    settings: BankrollSettings | None,
    entries: Sequence[BankrollEntry],
    plan: Plan,
    now: datetime,
) -> Alert | None:
    """Today's exposure above the daily limit. Escalated to danger on paid tiers."""
    if exposure(entries, start_of_day(now)) <= daily_limit(settings):
        return None
    severity = Severity.DANGER if can_access(Feature.BANKROLL_ALERTS, plan) else Severity.WARNING
    return Alert(
        type="exposure",
        message="Exposição do dia acima do sugerido.",
        severity=severity,
    )


def recovery_pattern(
    settings: BankrollSettings | None,
    entries: Sequence[BankrollEntry],
    plan: Plan,
    now: datetime,
) -> Alert | None:
    """Chasing losses: repeated losses followed by a sharply larger stake."""
    if not can_access(Feature.PATTERN_ALERTS, plan):
        return None
    recent = newest_first(entries_since(entries, now - RECOVERY_WINDOW))
    if len(recent) < RECOVERY_MIN_ENTRIES:
        return None
    losses = sum(1 for e in recent if e.status == EntryStatus.LOST)
    if losses < RECOVERY_MIN_LOSSES:
        return None

    latest, older = recent[0], recent[1:]
    avg_before = sum((e.stake for e in older), Decimal("0")) / len(older)
    if latest.stake > avg_before * RECOVERY_STAKE_FACTOR:
        return Alert(
            type="recovery_pattern",
            message="Padrão de recuperação identificado. Cuidado com decisões impulsivas.",
            severity=Severity.DANGER,
        )
    return None


def multiple_frequency(
    settings: BankrollSettings | None,
    entries: Sequence[BankrollEntry],
    plan: Plan,
    now: datetime,
) -> Alert | None:
    """Most of the week's bets are accumulators."""
    if not can_access(Feature.PATTERN_ALERTS, plan):
        return None
    week = entries_since(entries, now - MULTIPLE_WINDOW)
    if len(week) < MULTIPLE_MIN_ENTRIES:
        return None
    multiples = sum(1 for e in week if e.bet_type == BetType.MULTIPLE)
    if Decimal(multiples) / len(week) >= MULTIPLE_MIN_SHARE:
        return Alert(
            type="multiple_frequency",
            message="Múltiplas frequentes aumentam variância e risco.",
            severity=Severity.WARNING,
        )
    return None


ALERT_RULES: tuple[AlertRule, ...] = (
    stake_above_recommended,
    daily_exposure,
    recovery_pattern,
    multiple_frequency,
)


def generate_alerts(
    settings: BankrollSettings | None,
    entries: Sequence[BankrollEntry],
    plan: Plan,
    now: datetime,
    rules: Sequence[AlertRule] = ALERT_RULES,
) -> list[Alert]:
    """Evaluate every rule in order and return all alerts that fired."""
    alerts = []
    for rule in rules:
        alert = rule(settings, entries, plan, now)
        if alert is not None:
            alerts.append(alert)
    return alerts
