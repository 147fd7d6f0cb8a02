"""Behavioral baseline construction and anomaly pattern detection"""

from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from parental_guard.domain.models import (
    HIGH_RISK_CATEGORIES,
    AccountSnapshot,
    BehaviorBaseline,
    BehaviorPattern,
    PatternType,
    TimeRange,
    Transaction,
)
from parental_guard.domain.money import sum_money, to_money
from parental_guard.utils.date_utils import whole_days_between, within_trailing

DEFAULT_TIME_RANGES: Tuple[TimeRange, ...] = (TimeRange(9, 21),)
EMA_OLD_WEIGHT = Decimal("0.7")
EMA_NEW_WEIGHT = Decimal("0.3")
BASELINE_REFRESH_WINDOW = timedelta(days=30)
RECENT_WINDOW = timedelta(days=7)
VELOCITY_WINDOW = timedelta(hours=1)
PAYEE_ADDITION_WINDOW = timedelta(hours=24)


def infer_common_time_ranges(hours: Iterable[int]) -> Tuple[TimeRange, ...]:
    """
    Group above-average hours into contiguous half-open ranges.

    An hour is "common" when its count exceeds total / 24. Example:
    hours {9, 10, 11, 14, 15} -> [9, 12) and [14, 16).
    """
    counts = Counter(hours)
    if not counts:
        return DEFAULT_TIME_RANGES

    threshold = sum(counts.values()) / 24
    peaks = sorted(h for h, c in counts.items() if c > threshold)
    if not peaks:
        return DEFAULT_TIME_RANGES

    ranges: List[TimeRange] = []
    start = end = peaks[0]
    for hour in peaks[1:]:
        if hour == end + 1:
            end = hour
        else:
            ranges.append(TimeRange(start, end + 1))
            start = end = hour
    ranges.append(TimeRange(start, end + 1))
    return tuple(ranges)


def build_baseline(snapshot: AccountSnapshot, now: datetime, default_amount: Decimal) -> BehaviorBaseline:
    """Initial baseline from completed history"""
    completed = snapshot.completed_transactions()

    if completed:
        days = max(1, whole_days_between(snapshot.created_at, now))
        avg_daily = len(completed) / days
        avg_amount = to_money(sum_money(t.amount for t in completed) / len(completed))
    else:
        avg_daily = 0.0
        avg_amount = default_amount

    return BehaviorBaseline(
        account_id=snapshot.id,
        avg_daily_transactions=avg_daily,
        avg_transaction_amount=avg_amount,
        common_categories=Counter(t.category for t in completed),
        common_time_ranges=infer_common_time_ranges(t.timestamp.hour for t in completed),
        typical_payees=frozenset(t.to_payee_id for t in completed if t.to_payee_id),
        last_updated=now,
    )


def update_baseline(baseline: BehaviorBaseline, snapshot: AccountSnapshot, now: datetime) -> BehaviorBaseline:
    """
    Exponential moving average over the last 30 days of completed activity.

    avg = 0.7 * old + 0.3 * recent mean; recent category counts replace the
    stored ones; payees are unioned. No recent activity leaves it unchanged.
    """
    recent = [
        t for t in snapshot.completed_transactions() if within_trailing(t.timestamp, now, BASELINE_REFRESH_WINDOW)
    ]
    if not recent:
        return baseline

    recent_mean = sum_money(t.amount for t in recent) / len(recent)
    categories = dict(baseline.common_categories)
    categories.update(Counter(t.category for t in recent))

    return replace(
        baseline,
        avg_transaction_amount=to_money(
            baseline.avg_transaction_amount * EMA_OLD_WEIGHT + recent_mean * EMA_NEW_WEIGHT
        ),
        common_categories=categories,
        typical_payees=baseline.typical_payees | {t.to_payee_id for t in recent if t.to_payee_id},
        last_updated=now,
    )


def amount_ratio(amount: Decimal, baseline: BehaviorBaseline) -> float:
    if baseline.avg_transaction_amount <= 0:
        return 0.0
    return float(amount / baseline.avg_transaction_amount)


def _pattern(
    pattern_type: PatternType,
    severity: float,
    now: datetime,
    occurrences: int = 1,
    first_detected: Optional[datetime] = None,
    **metadata: str,
) -> BehaviorPattern:
    return BehaviorPattern(
        pattern_type=pattern_type,
        severity=severity,
        occurrences=occurrences,
        first_detected=first_detected or now,
        last_detected=now,
        metadata=metadata,
    )


def _dominant_category(baseline: BehaviorBaseline):
    if not baseline.common_categories:
        return None
    return min(baseline.common_categories.items(), key=lambda kv: (-kv[1], kv[0].value))[0]


def detect_patterns(
    snapshot: AccountSnapshot,
    tx: Transaction,
    baseline: BehaviorBaseline,
) -> List[BehaviorPattern]:
    """Run the seven detectors independently against a proposed transaction"""
    now = tx.timestamp
    hour = now.hour
    ratio = amount_ratio(tx.amount, baseline)
    patterns: List[BehaviorPattern] = []

    if tx.amount > baseline.avg_transaction_amount * 3:
        patterns.append(
            _pattern(
                PatternType.SUDDEN_SPENDING_INCREASE,
                min(1.0, ratio / 5.0),
                now,
                amount=str(tx.amount),
                baseline=str(baseline.avg_transaction_amount),
            )
        )

    in_common_range = any(r.contains(hour) for r in baseline.common_time_ranges)
    if not in_common_range and (hour < 6 or hour > 22):
        patterns.append(
            _pattern(PatternType.UNUSUAL_TIME_ACTIVITY, 0.8 if hour < 5 else 0.5, now, hour=str(hour))
        )

    new_payees = [p for p in snapshot.payees if within_trailing(p.added_at, now, PAYEE_ADDITION_WINDOW)]
    if len(new_payees) > 3:
        patterns.append(
            _pattern(
                PatternType.RAPID_PAYEE_ADDITIONS,
                min(1.0, len(new_payees) / 5.0),
                now,
                occurrences=len(new_payees),
                first_detected=min(p.added_at for p in new_payees),
                count=str(len(new_payees)),
            )
        )

    recent = [t for t in snapshot.transactions if within_trailing(t.timestamp, now, RECENT_WINDOW)]
    dominant = _dominant_category(baseline)
    if dominant is not None:
        recent_count = sum(1 for t in recent if t.category is dominant)
        if recent_count < 2:
            patterns.append(
                _pattern(
                    PatternType.UNUSUAL_CATEGORY_SHIFT,
                    0.6,
                    now,
                    expected=dominant.value,
                    current=tx.category.value,
                )
            )

    if tx.category in HIGH_RISK_CATEGORIES:
        high_risk_count = sum(1 for t in recent if t.category in HIGH_RISK_CATEGORIES)
        if high_risk_count > 2:
            patterns.append(
                _pattern(
                    PatternType.HIGH_RISK_MERCHANT_FREQUENCY,
                    min(1.0, high_risk_count / 5.0),
                    now,
                    occurrences=high_risk_count,
                    count=str(high_risk_count),
                )
            )

    last_hour = [t for t in snapshot.transactions if within_trailing(t.timestamp, now, VELOCITY_WINDOW)]
    if len(last_hour) > 5:
        patterns.append(
            _pattern(
                PatternType.VELOCITY_ANOMALY,
                min(1.0, len(last_hour) / 10.0),
                now,
                occurrences=len(last_hour),
                first_detected=min(t.timestamp for t in last_hour),
                count=str(len(last_hour)),
                window="1hour",
            )
        )

    if tx.to_payee_id is not None:
        new_payee = tx.to_payee_id not in baseline.typical_payees
        large_amount = tx.amount > baseline.avg_transaction_amount * 2
        night_time = hour >= 21 or hour < 7
        if new_payee and large_amount and night_time:
            patterns.append(
                _pattern(
                    PatternType.SOCIAL_ENGINEERING_INDICATORS,
                    0.9,
                    now,
                    newPayee="true",
                    nightTime="true",
                    largeAmount="true",
                )
            )

    return patterns


def merge_pattern(
    existing: Sequence[BehaviorPattern],
    pattern: BehaviorPattern,
    window: timedelta = timedelta(hours=24),
) -> BehaviorPattern:
    """
    Fold a new detection into a stored pattern of the same type seen within
    `window`. Severity is averaged, occurrences summed, metadata unioned with
    new values winning. The stored pattern's id and first_detected are kept.
    """
    for current in existing:
        if current.pattern_type is not pattern.pattern_type:
            continue
        if abs(pattern.last_detected - current.last_detected) < window:
            metadata = dict(current.metadata)
            metadata.update(pattern.metadata)
            return replace(
                current,
                severity=(current.severity + pattern.severity) / 2,
                occurrences=current.occurrences + pattern.occurrences,
                last_detected=pattern.last_detected,
                metadata=metadata,
            )
    return pattern


def fraud_signals(snapshot: AccountSnapshot, tx: Transaction, lookback: int = 10) -> List[str]:
    """
    Rule-based fraud hints raised alongside routing.

    - a high-risk merchant category
    - 3 or more completed payments to the same payee among the last `lookback` ledger entries
    """
    signals: List[str] = []
    if tx.category in HIGH_RISK_CATEGORIES:
        signals.append(f"High-risk merchant category {tx.category.value} used in tx {tx.id}")

    if tx.to_payee_id is not None:
        recent = snapshot.transactions[-lookback:]
        repeated = sum(1 for t in recent if t.is_completed and t.to_payee_id == tx.to_payee_id)
        if repeated >= 3:
            signals.append(f"Multiple recent payments to same payee {tx.to_payee_id}")
    return signals
