"""Scheduled automation - parent-defined rules that react to time, risk and activity

A rule pairs one trigger with one action. Triggers are pure predicates over a
TriggerContext; actions are plain values carried out by the automation service.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence, Tuple, Union

from parental_guard.domain.models import (
    AccountSnapshot,
    AlertType,
    BehaviorPattern,
    Category,
    Limits,
    PatternType,
    RiskLevel,
    Transaction,
    new_id,
)
from parental_guard.domain.modes import SafetyMode
from parental_guard.domain.money import ZERO, to_money
from parental_guard.domain.verdicts import LimitKind, Outcome, Verdict, rejected
from parental_guard.utils.date_utils import within_trailing

_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


@dataclass(frozen=True)
class TriggerContext:
    snapshot: AccountSnapshot
    now: datetime
    patterns: Sequence[BehaviorPattern]
    risk_level: RiskLevel


# --- Triggers ----------------------------------------------------------------


@dataclass(frozen=True)
class TimeBasedTrigger:
    """Fires on the given weekdays (Monday is 0) inside [start, end)"""

    days_of_week: FrozenSet[int]
    start: time
    end: time

    def should_trigger(self, context: TriggerContext) -> bool:
        moment = context.now
        return moment.weekday() in self.days_of_week and self.start <= moment.time() < self.end


@dataclass(frozen=True)
class PatternBasedTrigger:
    """Fires once a pattern type has been seen often enough in the trailing window"""

    pattern_type: PatternType
    min_occurrences: int
    within_hours: int = 24

    def should_trigger(self, context: TriggerContext) -> bool:
        window = timedelta(hours=self.within_hours)
        seen = sum(
            p.occurrences
            for p in context.patterns
            if p.pattern_type is self.pattern_type and within_trailing(p.last_detected, context.now, window)
        )
        return seen >= self.min_occurrences


@dataclass(frozen=True)
class RiskBasedTrigger:
    min_risk_level: RiskLevel

    def should_trigger(self, context: TriggerContext) -> bool:
        return _RISK_RANK[context.risk_level] >= _RISK_RANK[self.min_risk_level]


@dataclass(frozen=True)
class ActivityBasedTrigger:
    """Fires on a burst of ledger entries"""

    min_transactions: int
    within_hours: int

    def should_trigger(self, context: TriggerContext) -> bool:
        window = timedelta(hours=self.within_hours)
        count = sum(1 for t in context.snapshot.transactions if within_trailing(t.timestamp, context.now, window))
        return count >= self.min_transactions


@dataclass(frozen=True)
class BalanceBasedTrigger:
    """Fires while the balance sits inside [min_balance, max_balance]; either bound may be open"""

    min_balance: Optional[Decimal] = None
    max_balance: Optional[Decimal] = None

    def should_trigger(self, context: TriggerContext) -> bool:
        balance = context.snapshot.balance
        if self.min_balance is not None and balance < self.min_balance:
            return False
        if self.max_balance is not None and balance > self.max_balance:
            return False
        return True


class TriggerLogic(str, Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class CompositeTrigger:
    triggers: Tuple["Trigger", ...]
    logic: TriggerLogic = TriggerLogic.AND

    def should_trigger(self, context: TriggerContext) -> bool:
        results = (t.should_trigger(context) for t in self.triggers)
        if self.logic is TriggerLogic.AND:
            return all(results)
        return any(results)


Trigger = Union[
    TimeBasedTrigger,
    PatternBasedTrigger,
    RiskBasedTrigger,
    ActivityBasedTrigger,
    BalanceBasedTrigger,
    CompositeTrigger,
]


# --- Actions -----------------------------------------------------------------


class CoolingOffSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ApplyModeAction:
    mode: SafetyMode


@dataclass(frozen=True)
class AdjustLimitsAction:
    """Scale the current limits. With reset_after_hours the originals come back later."""

    monthly_multiplier: Optional[Decimal] = None
    per_transaction_multiplier: Optional[Decimal] = None
    withdrawal_multiplier: Optional[Decimal] = None
    reset_after_hours: Optional[int] = None


@dataclass(frozen=True)
class SendAlertAction:
    message: str
    alert_type: AlertType = AlertType.GENERIC_NOTICE
    requires_action: bool = False


@dataclass(frozen=True)
class BlockTransactionsAction:
    duration_hours: int
    reason: str


@dataclass(frozen=True)
class RestrictToCategoryAction:
    categories: FrozenSet[Category]
    duration_hours: int


@dataclass(frozen=True)
class TriggerCoolingOffAction:
    severity: CoolingOffSeverity
    reason: str


Action = Union[
    ApplyModeAction,
    AdjustLimitsAction,
    SendAlertAction,
    BlockTransactionsAction,
    RestrictToCategoryAction,
    TriggerCoolingOffAction,
]


# --- Rules & schedules -------------------------------------------------------


@dataclass(frozen=True)
class ScheduleRule:
    name: str
    trigger: Trigger
    action: Action
    priority: int = 0
    enabled: bool = True
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class AutomationSchedule:
    account_id: str
    rules: Tuple[ScheduleRule, ...] = ()
    enabled: bool = True
    last_executed: Optional[datetime] = None


@dataclass(frozen=True)
class ScheduleExecutionLog:
    rule_id: str
    account_id: str
    executed_at: datetime
    trigger: Trigger
    action: Action
    success: bool
    message: str


@dataclass(frozen=True)
class CategoryRestriction:
    """Spending allowed only in these categories until expires_at"""

    allowed: FrozenSet[Category]
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


def due_rules(schedule: AutomationSchedule, context: TriggerContext) -> List[ScheduleRule]:
    """Enabled rules whose trigger fires, highest priority first"""
    if not schedule.enabled:
        return []
    ordered = sorted((r for r in schedule.rules if r.enabled), key=lambda r: r.priority, reverse=True)
    return [r for r in ordered if r.trigger.should_trigger(context)]


def _scale(value: Optional[Decimal], factor: Optional[Decimal]) -> Optional[Decimal]:
    if value is None or factor is None:
        return value
    return to_money(value * factor)


def scale_limits(
    limits: Limits,
    monthly_multiplier: Optional[Decimal] = None,
    per_transaction_multiplier: Optional[Decimal] = None,
    withdrawal_multiplier: Optional[Decimal] = None,
) -> Limits:
    """Multiply the configured caps; unset caps stay unset, category caps are untouched"""
    withdrawals = limits.withdrawal_limits
    return replace(
        limits,
        monthly_max=_scale(limits.monthly_max, monthly_multiplier),
        per_transaction_max=_scale(limits.per_transaction_max, per_transaction_multiplier),
        withdrawal_limits=replace(
            withdrawals,
            daily=_scale(withdrawals.daily, withdrawal_multiplier),
            weekly=_scale(withdrawals.weekly, withdrawal_multiplier),
            monthly=_scale(withdrawals.monthly, withdrawal_multiplier),
        ),
    )


def blocking_limits(limits: Limits) -> Limits:
    """
    Zero caps that stop every spend and withdrawal.

    Monthly caps are left alone so the incoming-credit cap derived from them
    does not collapse while the block lasts.
    """
    return replace(
        limits,
        per_transaction_max=ZERO,
        withdrawal_limits=replace(limits.withdrawal_limits, daily=ZERO, weekly=ZERO),
    )


def check_restriction(restriction: Optional[CategoryRestriction], tx: Transaction) -> Optional[Verdict]:
    """Rejection for a spend outside the allowed categories, else None"""
    if restriction is None or not restriction.is_active(tx.timestamp) or tx.category in restriction.allowed:
        return None
    allowed = ", ".join(sorted(c.value for c in restriction.allowed)) or "none"
    return rejected(
        Outcome.LIMIT_EXCEEDED,
        f"Category {tx.category.value} is restricted until {restriction.expires_at.isoformat()} (allowed: {allowed})",
        transaction=tx,
        limit=LimitKind.CATEGORY_RESTRICTION,
    )
