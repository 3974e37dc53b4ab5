"""Bankroll exposure engine: stake sizing, exposure windows and monthly stats.

Everything here is a pure function of the stored settings, the fetched
entry list and the clock. Nothing is persisted; callers recompute on
every read.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from app.billing.features import Feature, can_access
from app.billing.plans import Plan, get_plan
from app.models.bankroll import BankrollEntry, BankrollSettings

CENTS = Decimal("0.01")

RISK_MULTIPLIERS: dict[str, Decimal] = {
    "low": Decimal("1.0"),
    "medium": Decimal("0.7"),
    "high": Decimal("0.4"),
}

# Suggested limits, as multiples of the base stake
DAILY_LIMIT_STAKES = 5
WEEKLY_LIMIT_STAKES = 20
MONTHLY_LIMIT_STAKES = 60

# Exposure ratio thresholds, in percent of the limit
YELLOW_THRESHOLD = Decimal("80")
RED_THRESHOLD = Decimal("100")


class BetType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class EntryStatus(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExposureStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def newest_first(entries: Iterable[BankrollEntry]) -> list[BankrollEntry]:
    return sorted(entries, key=lambda e: e.created_at, reverse=True)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    """Midnight seven days ago."""
    return start_of_day(now) - timedelta(days=7)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def entries_since(entries: Iterable[BankrollEntry], since: datetime) -> list[BankrollEntry]:
    return [e for e in entries if e.created_at >= since]


def stake_base(settings: BankrollSettings | None) -> Decimal:
    """Recommended unit stake: ``bankroll * base_stake_percent / 100``."""
    if settings is None:
        return Decimal("0")
    return _dec(settings.current_bankroll) * _dec(settings.base_stake_percent) / 100


def smart_risk_active(settings: BankrollSettings | None, plan: Plan) -> bool:
    """The stored toggle only counts while the plan still includes smart risk."""
    return bool(settings and settings.smart_risk_adjustment) and can_access(Feature.SMART_RISK, plan)


def adjusted_stake(settings: BankrollSettings | None, plan: Plan, risk_level: str | None = None) -> Decimal:
    """Base stake scaled down for riskier tickets when smart adjustment applies."""
    base = stake_base(settings)
    if not risk_level or not smart_risk_active(settings, plan):
        return base
    return base * RISK_MULTIPLIERS[RiskLevel(risk_level).value]


def exposure(entries: Iterable[BankrollEntry], since: datetime) -> Decimal:
    """Total stake committed at or after ``since``."""
    return sum((_dec(e.stake) for e in entries_since(entries, since)), Decimal("0"))


def daily_limit(settings: BankrollSettings | None) -> Decimal:
    return stake_base(settings) * DAILY_LIMIT_STAKES


def weekly_limit(settings: BankrollSettings | None) -> Decimal:
    return stake_base(settings) * WEEKLY_LIMIT_STAKES


def monthly_limit(settings: BankrollSettings | None) -> Decimal:
    """The user's explicit monthly limit, or 60 base stakes when unset."""
    if settings is not None and settings.monthly_exposure_limit is not None:
        return _dec(settings.monthly_exposure_limit)
    return stake_base(settings) * MONTHLY_LIMIT_STAKES


def exposure_status(exposure_amount, limit) -> ExposureStatus:
    """Traffic-light status of exposure against a limit.

    A zero (or negative) limit counts as a ratio of 0.
    """
    limit = _dec(limit)
    ratio = _dec(exposure_amount) / limit * 100 if limit > 0 else Decimal("0")
    if ratio <= YELLOW_THRESHOLD:
        return ExposureStatus.GREEN
    if ratio <= RED_THRESHOLD:
        return ExposureStatus.YELLOW
    return ExposureStatus.RED


@dataclass(frozen=True)
class MonthlyStats:
    total_staked: Decimal
    total_entries: int
    wins: int
    losses: int
    net_result: Decimal


def monthly_stats(entries: Iterable[BankrollEntry], now: datetime) -> MonthlyStats:
    """Aggregate the current calendar month's entries."""
    month_entries = entries_since(entries, start_of_month(now))
    return MonthlyStats(
        total_staked=sum((_dec(e.stake) for e in month_entries), Decimal("0")),
        total_entries=len(month_entries),
        wins=sum(1 for e in month_entries if e.status == EntryStatus.WON),
        losses=sum(1 for e in month_entries if e.status == EntryStatus.LOST),
        net_result=sum((_dec(e.profit_loss) for e in month_entries), Decimal("0")),
    )


def entries_today(entries: Iterable[BankrollEntry], now: datetime) -> int:
    return len(entries_since(entries, start_of_day(now)))


def daily_entry_quota(plan: "str | Plan") -> int:
    return get_plan(plan).bankroll_entries_per_day


def can_add_entry(entries: Iterable[BankrollEntry], plan: "str | Plan", now: datetime) -> bool:
    """True while today's entry count is below the plan's daily quota."""
    return entries_today(entries, now) < daily_entry_quota(plan)


def settle_profit_loss(stake, odd_total, outcome: "str | EntryStatus") -> Decimal:
    """Profit or loss booked when an open entry is settled.

    A win pays ``stake * (odd_total - 1)`` (0 without odds); a loss costs
    the stake.

    Raises:
        ValueError: If ``outcome`` is not ``won`` or ``lost``.
    """
    outcome = EntryStatus(outcome)
    stake = _dec(stake)
    if outcome is EntryStatus.WON:
        if not odd_total:
            return Decimal("0.00")
        return (stake * (_dec(odd_total) - 1)).quantize(CENTS)
    if outcome is EntryStatus.LOST:
        return (-stake).quantize(CENTS)
    raise ValueError("An entry can only be settled as won or lost")


@dataclass(frozen=True)
class ExposureWindow:
    exposure: Decimal
    limit: Decimal
    status: ExposureStatus


@dataclass(frozen=True)
class BankrollSummary:
    plan: Plan
    stake_base: Decimal
    daily: ExposureWindow
    weekly: ExposureWindow
    monthly: ExposureWindow
    monthly_stats: MonthlyStats
    entries_today: int
    daily_entry_quota: int
    can_add_entry: bool
    alerts: list = field(default_factory=list)


def _window(entries: Sequence[BankrollEntry], since: datetime, limit: Decimal) -> ExposureWindow:
    amount = exposure(entries, since)
    return ExposureWindow(exposure=amount, limit=limit, status=exposure_status(amount, limit))


def summarize(
    settings: BankrollSettings | None,
    entries: Sequence[BankrollEntry],
    plan: Plan,
    now: datetime,
) -> BankrollSummary:
    """Compute every derived bankroll figure for one snapshot."""
    # Imported here: alerts builds on this module's helpers
    from app.bankroll.alerts import generate_alerts

    today = entries_today(entries, now)
    quota = daily_entry_quota(plan)
    return BankrollSummary(
        plan=plan,
        stake_base=stake_base(settings),
        daily=_window(entries, start_of_day(now), daily_limit(settings)),
        weekly=_window(entries, start_of_week(now), weekly_limit(settings)),
        monthly=_window(entries, start_of_month(now), monthly_limit(settings)),
        monthly_stats=monthly_stats(entries, now),
        entries_today=today,
        daily_entry_quota=quota,
        can_add_entry=today < quota,
        alerts=generate_alerts(settings, entries, plan, now),
    )
