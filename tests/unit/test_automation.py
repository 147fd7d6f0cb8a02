"""Unit tests for scheduled automation rules"""

import pytest
from datetime import time, timedelta
from decimal import Decimal
from parental_guard.domain.automation import (
    ActivityBasedTrigger,
    AdjustLimitsAction,
    ApplyModeAction,
    AutomationSchedule,
    BalanceBasedTrigger,
    BlockTransactionsAction,
    CompositeTrigger,
    CoolingOffSeverity,
    PatternBasedTrigger,
    RestrictToCategoryAction,
    RiskBasedTrigger,
    ScheduleRule,
    SendAlertAction,
    TimeBasedTrigger,
    TriggerContext,
    TriggerCoolingOffAction,
    TriggerLogic,
    blocking_limits,
    due_rules,
    scale_limits,
)
from parental_guard.domain.models import (
    AlertType,
    BehaviorPattern,
    Category,
    Limits,
    PatternType,
    RiskLevel,
    Transaction,
    WithdrawalLimits,
)
from parental_guard.domain.modes import SafetyMode
from parental_guard.domain.verdicts import LimitKind, Outcome
from parental_guard.services.common import account_missing

TUESDAY = 1
ALWAYS = BalanceBasedTrigger()


@pytest.fixture
def context(make_snapshot, now):
    def _make(snapshot=None, patterns=(), risk_level=RiskLevel.LOW, at=None):
        return TriggerContext(
            snapshot=snapshot or make_snapshot(),
            now=at or now,
            patterns=patterns,
            risk_level=risk_level,
        )

    return _make


def velocity(occurrences, last_detected):
    return BehaviorPattern(
        pattern_type=PatternType.VELOCITY_ANOMALY,
        severity=0.7,
        occurrences=occurrences,
        first_detected=last_detected,
        last_detected=last_detected,
    )


def spend(amount, category, timestamp):
    return Transaction(amount=Decimal(amount), category=category, timestamp=timestamp)


def messages(sink):
    return [a.message for a in sink.for_account("acc-minor-1")]


# --- Triggers ----------------------------------------------------------------


def test_time_trigger_is_half_open(context, now):
    school = TimeBasedTrigger(days_of_week=frozenset({TUESDAY}), start=time(9), end=time(14))
    afternoon = TimeBasedTrigger(days_of_week=frozenset({TUESDAY}), start=time(14), end=time(16))
    monday_only = TimeBasedTrigger(days_of_week=frozenset({0}), start=time(0), end=time(23, 59))

    assert not school.should_trigger(context())
    assert school.should_trigger(context(at=now - timedelta(minutes=1)))
    assert afternoon.should_trigger(context())
    assert not monday_only.should_trigger(context())


def test_pattern_trigger_counts_occurrences_inside_window(context, now):
    patterns = [velocity(2, now - timedelta(hours=1)), velocity(5, now - timedelta(hours=30))]

    assert not PatternBasedTrigger(PatternType.VELOCITY_ANOMALY, min_occurrences=3).should_trigger(
        context(patterns=patterns)
    )
    assert PatternBasedTrigger(PatternType.VELOCITY_ANOMALY, min_occurrences=3, within_hours=48).should_trigger(
        context(patterns=patterns)
    )
    night = PatternBasedTrigger(PatternType.UNUSUAL_TIME_ACTIVITY, min_occurrences=1, within_hours=48)
    assert not night.should_trigger(context(patterns=patterns))


def test_risk_trigger_compares_levels(context):
    high = context(risk_level=RiskLevel.HIGH)

    assert RiskBasedTrigger(RiskLevel.MEDIUM).should_trigger(high)
    assert RiskBasedTrigger(RiskLevel.HIGH).should_trigger(high)
    assert not RiskBasedTrigger(RiskLevel.CRITICAL).should_trigger(high)


def test_activity_trigger_counts_recent_ledger_entries(context, make_snapshot, completed_tx, now):
    snapshot = make_snapshot(
        transactions=tuple(completed_tx("20", now - timedelta(minutes=10 * i)) for i in range(1, 4))
        + (completed_tx("20", now - timedelta(days=2)),)
    )

    assert ActivityBasedTrigger(min_transactions=3, within_hours=1).should_trigger(context(snapshot=snapshot))
    assert not ActivityBasedTrigger(min_transactions=4, within_hours=1).should_trigger(context(snapshot=snapshot))


def test_balance_trigger_bounds_are_inclusive(context, make_snapshot):
    low_balance = context(snapshot=make_snapshot(balance="500"))

    assert BalanceBasedTrigger(max_balance=Decimal("500")).should_trigger(low_balance)
    assert BalanceBasedTrigger(min_balance=Decimal("500")).should_trigger(low_balance)
    assert not BalanceBasedTrigger(max_balance=Decimal("499.99")).should_trigger(low_balance)
    assert ALWAYS.should_trigger(low_balance)


def test_composite_trigger_logic(context):
    high = context(risk_level=RiskLevel.HIGH)
    fires = RiskBasedTrigger(RiskLevel.HIGH)
    silent = RiskBasedTrigger(RiskLevel.CRITICAL)

    assert not CompositeTrigger((fires, silent), TriggerLogic.AND).should_trigger(high)
    assert CompositeTrigger((fires, silent), TriggerLogic.OR).should_trigger(high)
    assert CompositeTrigger((fires, ALWAYS)).should_trigger(high)


def test_due_rules_orders_by_priority_and_skips_disabled(context):
    low = ScheduleRule("low", ALWAYS, SendAlertAction("low"), priority=1)
    high = ScheduleRule("high", ALWAYS, SendAlertAction("high"), priority=10)
    off = ScheduleRule("off", ALWAYS, SendAlertAction("off"), priority=99, enabled=False)
    quiet = ScheduleRule("quiet", RiskBasedTrigger(RiskLevel.CRITICAL), SendAlertAction("quiet"), priority=50)

    schedule = AutomationSchedule("acc-minor-1", rules=(low, high, off, quiet))

    assert due_rules(schedule, context()) == [high, low]
    assert due_rules(AutomationSchedule("acc-minor-1", rules=(low,), enabled=False), context()) == []


# --- Limit transforms --------------------------------------------------------


def test_scale_limits_leaves_unset_and_category_caps_alone():
    limits = Limits(
        per_transaction_max=Decimal("500"),
        monthly_max=Decimal("3000"),
        per_category_max={Category.FOOD: Decimal("800")},
        withdrawal_limits=WithdrawalLimits(daily=Decimal("200")),
    )

    scaled = scale_limits(limits, Decimal("0.5"), Decimal("0.5"), Decimal("0.5"))

    assert scaled.per_transaction_max == Decimal("250")
    assert scaled.monthly_max == Decimal("1500")
    assert scaled.withdrawal_limits.daily == Decimal("100")
    assert scaled.withdrawal_limits.weekly is None
    assert scaled.per_category_max[Category.FOOD] == Decimal("800")
    assert scale_limits(limits, monthly_multiplier=Decimal("2")).per_transaction_max == Decimal("500")


def test_blocking_limits_keep_monthly_caps():
    limits = Limits(
        per_transaction_max=Decimal("500"),
        monthly_max=Decimal("3000"),
        withdrawal_limits=WithdrawalLimits(daily=Decimal("200"), monthly=Decimal("1000")),
    )

    blocked = blocking_limits(limits)

    assert blocked.per_transaction_max == Decimal("0")
    assert blocked.withdrawal_limits.daily == Decimal("0")
    assert blocked.withdrawal_limits.weekly == Decimal("0")
    assert blocked.monthly_max == Decimal("3000")
    assert blocked.withdrawal_limits.monthly == Decimal("1000")


# --- Service -----------------------------------------------------------------


def test_block_then_restore(services, seed, make_snapshot, storage, sink, now):
    seed(make_snapshot(limits=Limits(per_transaction_max=Decimal("500"), monthly_max=Decimal("3000"))))
    automation = services.automation
    automation.save_schedule(
        AutomationSchedule(
            "acc-minor-1",
            rules=(ScheduleRule("late spree", ALWAYS, BlockTransactionsAction(2, "Spending spree")),),
        )
    )

    entries = automation.execute_schedules("acc-minor-1", now)

    assert [e.success for e in entries] == [True]
    assert automation.restore_due_at("acc-minor-1") == now + timedelta(hours=2)
    blocked = services.spending.validate_and_apply(
        "acc-minor-1", spend("50", Category.FOOD, now + timedelta(minutes=30))
    )
    assert blocked.outcome is Outcome.LIMIT_EXCEEDED
    assert blocked.limit is LimitKind.PER_TRANSACTION
    assert "All transactions blocked for 2 hours: Spending spree" in messages(sink)
    assert "Automated rule 'late spree' executed: All transactions blocked for 2 hours: Spending spree" in messages(
        sink
    )

    assert automation.process_scheduled_restorations(now + timedelta(hours=1)) == []
    assert automation.process_scheduled_restorations(now + timedelta(hours=2)) == ["acc-minor-1"]
    assert storage.load("acc-minor-1").limits.per_transaction_max == Decimal("500")
    assert "Limits automatically restored" in messages(sink)
    assert automation.restore_due_at("acc-minor-1") is None


def test_stacked_temporary_changes_restore_the_first_limits(services, seed, make_snapshot, storage, now):
    seed(make_snapshot(limits=Limits(per_transaction_max=Decimal("500"), monthly_max=Decimal("3000"))))
    halve = ScheduleRule(
        "halve",
        ALWAYS,
        AdjustLimitsAction(
            monthly_multiplier=Decimal("0.5"), per_transaction_multiplier=Decimal("0.5"), reset_after_hours=4
        ),
        priority=10,
    )
    block = ScheduleRule("block", ALWAYS, BlockTransactionsAction(2, "Cooling down"), priority=1)
    services.automation.save_schedule(AutomationSchedule("acc-minor-1", rules=(block, halve)))

    entries = services.automation.execute_schedules("acc-minor-1", now)

    assert [e.rule_id for e in entries] == [halve.id, block.id]
    limits = storage.load("acc-minor-1").limits
    assert limits.per_transaction_max == Decimal("0")
    assert limits.monthly_max == Decimal("1500")
    assert services.automation.restore_due_at("acc-minor-1") == now + timedelta(hours=4)

    assert services.automation.process_scheduled_restorations(now + timedelta(hours=4)) == ["acc-minor-1"]
    restored = storage.load("acc-minor-1").limits
    assert restored.per_transaction_max == Decimal("500")
    assert restored.monthly_max == Decimal("3000")


def test_permanent_adjustment_schedules_no_restore(services, seed, make_snapshot, storage, now):
    seed(make_snapshot(limits=Limits(monthly_max=Decimal("3000"))))
    services.automation.save_schedule(
        AutomationSchedule(
            "acc-minor-1",
            rules=(ScheduleRule("tighten", ALWAYS, AdjustLimitsAction(monthly_multiplier=Decimal("0.8"))),),
        )
    )

    services.automation.execute_schedules("acc-minor-1", now)

    assert storage.load("acc-minor-1").limits.monthly_max == Decimal("2400")
    assert services.automation.restore_due_at("acc-minor-1") is None


def test_restrict_to_category_until_expiry(services, seed, make_snapshot, sink, now):
    seed(make_snapshot())
    school_hours = TimeBasedTrigger(days_of_week=frozenset({TUESDAY}), start=time(8), end=time(15))
    services.automation.save_schedule(
        AutomationSchedule(
            "acc-minor-1",
            rules=(
                ScheduleRule(
                    "school focus",
                    school_hours,
                    RestrictToCategoryAction(frozenset({Category.FOOD, Category.EDUCATION}), duration_hours=3),
                ),
            ),
        )
    )

    services.automation.execute_schedules("acc-minor-1", now)

    rejected = services.spending.validate_and_apply(
        "acc-minor-1", spend("300", Category.ENTERTAINMENT, now + timedelta(minutes=5))
    )
    assert rejected.outcome is Outcome.LIMIT_EXCEEDED
    assert rejected.limit is LimitKind.CATEGORY_RESTRICTION
    assert [a.alert_type for a in rejected.alerts] == [AlertType.UNUSUAL_MERCHANT]
    assert services.spending.validate_and_apply(
        "acc-minor-1", spend("80", Category.FOOD, now + timedelta(minutes=6))
    ).applied

    later = now + timedelta(hours=3)
    assert services.spending.validate_and_apply("acc-minor-1", spend("300", Category.ENTERTAINMENT, later)).applied
    services.automation.process_scheduled_restorations(later)
    assert "Category restrictions lifted" in messages(sink)


def test_apply_mode_action_uses_safety_modes(services, seed, make_snapshot, storage, now):
    seed(make_snapshot())
    services.automation.save_schedule(
        AutomationSchedule(
            "acc-minor-1",
            rules=(ScheduleRule("lockdown", RiskBasedTrigger(RiskLevel.LOW), ApplyModeAction(SafetyMode.MAX_SECURITY)),),
        )
    )

    entries = services.automation.execute_schedules("acc-minor-1", now)

    assert entries[0].success
    assert storage.load("acc-minor-1").limits.per_transaction_max == Decimal("100")


def test_pattern_rule_fires_from_stored_patterns(services, seed, make_snapshot, storage, sink, now):
    seed(make_snapshot())
    storage.save_pattern("acc-minor-1", velocity(3, now - timedelta(hours=1)))
    services.automation.save_schedule(
        AutomationSchedule(
            "acc-minor-1",
            rules=(
                ScheduleRule(
                    "burst check",
                    PatternBasedTrigger(PatternType.VELOCITY_ANOMALY, min_occurrences=3),
                    SendAlertAction("Rapid payments today, please check in", requires_action=True),
                ),
                ScheduleRule(
                    "calm down",
                    PatternBasedTrigger(PatternType.VELOCITY_ANOMALY, min_occurrences=3),
                    TriggerCoolingOffAction(CoolingOffSeverity.MEDIUM, "Too many payments"),
                ),
            ),
        )
    )

    entries = services.automation.execute_schedules("acc-minor-1", now)

    assert all(e.success for e in entries)
    assert [a.message for a in sink.requiring_action("acc-minor-1")] == ["Rapid payments today, please check in"]
    assert "Cooling-off triggered: medium - Too many payments" in messages(sink)


def test_failed_rule_is_logged_and_reported(services, seed, make_snapshot, sink, now, monkeypatch):
    seed(make_snapshot())
    monkeypatch.setattr(services.modes, "apply_mode", lambda account_id, mode, at: account_missing(account_id))
    rule = ScheduleRule("lockdown", ALWAYS, ApplyModeAction(SafetyMode.MAX_SECURITY))
    services.automation.save_schedule(AutomationSchedule("acc-minor-1", rules=(rule,)))

    services.automation.execute_schedules("acc-minor-1", now)

    [entry] = services.automation.execution_log("acc-minor-1")
    assert entry.rule_id == rule.id
    assert not entry.success
    assert any(m.startswith("Failed to execute rule 'lockdown'") for m in messages(sink))


def test_disabled_or_missing_schedules_do_nothing(services, seed, make_snapshot, sink, now):
    seed(make_snapshot())
    rule = ScheduleRule("notice", ALWAYS, SendAlertAction("hello"))
    services.automation.save_schedule(AutomationSchedule("acc-minor-1", rules=(rule,), enabled=False))
    services.automation.save_schedule(AutomationSchedule("acc-unknown", rules=(rule,)))

    assert services.automation.execute_schedules("acc-minor-1", now) == []
    assert services.automation.execute_schedules("acc-unknown", now) == []
    assert services.automation.execute_schedules("acc-no-schedule", now) == []
    assert sink.for_account("acc-minor-1") == []


def test_execute_all_stamps_last_executed(services, seed, make_snapshot, now):
    seed(make_snapshot())
    seed(make_snapshot(account_id="acc-minor-2"))
    for account_id in ("acc-minor-1", "acc-minor-2"):
        services.automation.save_schedule(
            AutomationSchedule(account_id, rules=(ScheduleRule("notice", ALWAYS, SendAlertAction("weekly")),))
        )

    entries = services.automation.execute_all(now)

    assert sorted(e.account_id for e in entries) == ["acc-minor-1", "acc-minor-2"]
    assert services.automation.schedule_for("acc-minor-2").last_executed == now
    assert len(services.automation.execution_log()) == 2
