"""Tests for the bankroll alert rules."""

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from app.bankroll.alerts import (
    ALERT_RULES,
    Severity,
    daily_exposure,
    generate_alerts,
    multiple_frequency,
    recovery_pattern,
    stake_above_recommended,
)
from app.billing.plans import Plan

NOW = datetime(2026, 3, 15, 12, 0, 0)

# base stake 10, daily limit 50
SETTINGS = SimpleNamespace(
    current_bankroll=Decimal("1000"),
    base_stake_percent=Decimal("1"),
    smart_risk_adjustment=False,
    monthly_exposure_limit=None,
)


def _entry(stake="10", ago=timedelta(hours=1), status="open", bet_type="single"):
    return SimpleNamespace(
        stake=Decimal(stake),
        status=status,
        bet_type=bet_type,
        profit_loss=Decimal("0"),
        created_at=NOW - ago,
    )


def _chasing_losses():
    return [
        _entry("10", timedelta(hours=3), status="lost"),
        _entry("10", timedelta(hours=2), status="lost"),
        _entry("40", timedelta(minutes=10)),
    ]


class TestStakeAboveRecommended:
    def test_fires_for_paid_plan(self):
        alert = stake_above_recommended(SETTINGS, [_entry("16")], Plan.BASIC, NOW)
        assert alert is not None
        assert alert.type == "stake_high"
        assert alert.severity is Severity.WARNING

    def test_only_latest_entry_counts(self):
        entries = [_entry("50", timedelta(hours=5)), _entry("10", timedelta(hours=1))]
        assert stake_above_recommended(SETTINGS, entries, Plan.PRO, NOW) is None

    def test_at_threshold_is_quiet(self):
        assert stake_above_recommended(SETTINGS, [_entry("15")], Plan.PRO, NOW) is None

    def test_not_shown_on_free(self):
        assert stake_above_recommended(SETTINGS, [_entry("100")], Plan.FREE, NOW) is None

    def test_no_entries(self):
        assert stake_above_recommended(SETTINGS, [], Plan.ELITE, NOW) is None


class TestDailyExposure:
    def _over_limit(self):
        return [_entry("10", timedelta(minutes=i)) for i in range(6)]

    def test_free_plan_gets_warning(self):
        alert = daily_exposure(SETTINGS, self._over_limit(), Plan.FREE, NOW)
        assert alert.type == "exposure"
        assert alert.severity is Severity.WARNING

    def test_paid_plan_gets_danger(self):
        alert = daily_exposure(SETTINGS, self._over_limit(), Plan.PRO, NOW)
        assert alert.severity is Severity.DANGER

    def test_at_limit_is_quiet(self):
        entries = [_entry("10", timedelta(minutes=i)) for i in range(5)]
        assert daily_exposure(SETTINGS, entries, Plan.PRO, NOW) is None

    def test_yesterday_does_not_count(self):
        entries = [_entry("100", timedelta(hours=13))]
        assert daily_exposure(SETTINGS, entries, Plan.PRO, NOW) is None


class TestRecoveryPattern:
    def test_fires_after_losses_and_stake_jump(self):
        alert = recovery_pattern(SETTINGS, _chasing_losses(), Plan.PRO, NOW)
        assert alert.type == "recovery_pattern"
        assert alert.severity is Severity.DANGER

    def test_requires_pro(self):
        assert recovery_pattern(SETTINGS, _chasing_losses(), Plan.BASIC, NOW) is None

    def test_needs_two_losses(self):
        entries = _chasing_losses()
        entries[0].status = "won"
        assert recovery_pattern(SETTINGS, entries, Plan.PRO, NOW) is None

    def test_needs_three_recent_entries(self):
        entries = _chasing_losses()
        entries[0].created_at = NOW - timedelta(hours=30)
        assert recovery_pattern(SETTINGS, entries, Plan.PRO, NOW) is None

    def test_steady_stake_is_quiet(self):
        entries = _chasing_losses()
        entries[-1].stake = Decimal("15")
        assert recovery_pattern(SETTINGS, entries, Plan.PRO, NOW) is None


class TestMultipleFrequency:
    def test_fires_at_seventy_percent(self):
        entries = [_entry(ago=timedelta(days=i), bet_type="multiple") for i in range(4)]
        entries.append(_entry(ago=timedelta(days=5)))
        alert = multiple_frequency(SETTINGS, entries, Plan.ELITE, NOW)
        assert alert.type == "multiple_frequency"
        assert alert.severity is Severity.WARNING

    def test_below_share_is_quiet(self):
        entries = [_entry(ago=timedelta(days=i), bet_type="multiple") for i in range(3)]
        entries += [_entry(ago=timedelta(days=4)), _entry(ago=timedelta(days=5))]
        assert multiple_frequency(SETTINGS, entries, Plan.PRO, NOW) is None

    def test_needs_five_entries(self):
        entries = [_entry(ago=timedelta(days=i), bet_type="multiple") for i in range(4)]
        assert multiple_frequency(SETTINGS, entries, Plan.PRO, NOW) is None

    def test_requires_pro(self):
        entries = [_entry(ago=timedelta(days=i), bet_type="multiple") for i in range(5)]
        assert multiple_frequency(SETTINGS, entries, Plan.BASIC, NOW) is None


class TestGenerateAlerts:
    def test_rules_fire_in_order(self):
        entries = _chasing_losses() + [_entry("10", timedelta(hours=1))]
        alerts = generate_alerts(SETTINGS, entries, Plan.PRO, NOW)
        assert [a.type for a in alerts] == ["stake_high", "exposure", "recovery_pattern"]

    def test_free_plan_only_sees_exposure(self):
        entries = _chasing_losses() + [_entry("10", timedelta(hours=1))]
        alerts = generate_alerts(SETTINGS, entries, Plan.FREE, NOW)
        assert [(a.type, a.severity) for a in alerts] == [("exposure", Severity.WARNING)]

    def test_quiet_history(self):
        assert generate_alerts(SETTINGS, [_entry("5")], Plan.ELITE, NOW) == []

    def test_custom_rules(self):
        alerts = generate_alerts(SETTINGS, _chasing_losses(), Plan.PRO, NOW, rules=[recovery_pattern])
        assert [a.type for a in alerts] == ["recovery_pattern"]
        assert len(ALERT_RULES) == 4
