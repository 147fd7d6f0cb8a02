"""Risk scoring engine - weighted factor aggregation for transactions and accounts"""

from datetime import datetime, timedelta
from typing import Dict, List, Sequence

from parental_guard.domain.behavior import VELOCITY_WINDOW, amount_ratio
from parental_guard.domain.models import (
    AccountSnapshot,
    BehaviorBaseline,
    BehaviorPattern,
    RiskFactor,
    RiskLevel,
    RiskScore,
    Transaction,
)
from parental_guard.utils.date_utils import whole_days_between, within_trailing

CRITICAL_RISK_THRESHOLD = 0.85
HIGH_RISK_THRESHOLD = 0.70
MEDIUM_RISK_THRESHOLD = 0.40

PATTERN_WEIGHT = 0.3
NEW_ACCOUNT_DAYS = 30

RECOMMENDATIONS: Dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: (
        "BLOCK transaction immediately. Require parent approval and verification. "
        "Potential fraud/account takeover."
    ),
    RiskLevel.HIGH: "Require immediate parent approval before proceeding. Multiple high-risk factors detected.",
    RiskLevel.MEDIUM: "Flag for parent review. Consider one-tap approval requirement.",
    RiskLevel.LOW: "Proceed with normal validation. Monitor for pattern changes.",
}


def evaluate_transaction_factors(
    snapshot: AccountSnapshot,
    tx: Transaction,
    baseline: BehaviorBaseline,
    patterns: Sequence[BehaviorPattern],
) -> List[RiskFactor]:
    """
    Build the per-transaction factor list.

    Weights:
    - Amount anomaly: 0.25 (>5x baseline), 0.15 (>3x), 0.05 (>2x), else 0
    - Time risk: 0.20 between 22:00 and 06:00, else 0.05
    - Unknown payee: 0.15 when the payee is not in the typical set
    - Velocity: 0.20 when >3 transactions in the last hour, else 0.05
    - Auth failures: 0 (no authentication feed yet)
    - Each detected pattern: severity x 0.3
    - Account maturity: 0.10 for accounts younger than 30 days
    """
    factors: List[RiskFactor] = []
    now = tx.timestamp

    ratio = amount_ratio(tx.amount, baseline)
    if ratio > 5:
        amount_weight = 0.25
    elif ratio > 3:
        amount_weight = 0.15
    elif ratio > 2:
        amount_weight = 0.05
    else:
        amount_weight = 0.0
    factors.append(
        RiskFactor(
            name="Amount Anomaly",
            weight=amount_weight,
            detected=ratio > 2,
            description=f"Transaction ₹{tx.amount} is {ratio:.1f}x the baseline ₹{baseline.avg_transaction_amount}",
        )
    )

    hour = now.hour
    risky_hour = hour >= 22 or hour < 6
    factors.append(
        RiskFactor(
            name="Time Risk",
            weight=0.20 if risky_hour else 0.05,
            detected=risky_hour,
            description=f"Transaction at {hour:02d}:00 (high-risk: {risky_hour})",
        )
    )

    unknown_payee = tx.to_payee_id is not None and tx.to_payee_id not in baseline.typical_payees
    factors.append(
        RiskFactor(
            name="Unknown Payee",
            weight=0.15 if unknown_payee else 0.0,
            detected=unknown_payee,
            description="Transfer to new/unknown payee" if unknown_payee else "No unfamiliar payee involved",
        )
    )

    recent_count = sum(1 for t in snapshot.transactions if within_trailing(t.timestamp, now, VELOCITY_WINDOW))
    high_velocity = recent_count > 3
    factors.append(
        RiskFactor(
            name="Transaction Velocity",
            weight=0.20 if high_velocity else 0.05,
            detected=high_velocity,
            description=f"{recent_count} transactions in last hour",
        )
    )

    # Reserved for an authentication-service feed
    factors.append(
        RiskFactor(
            name="Auth Failures",
            weight=0.0,
            detected=False,
            description="No recent failed authentication attempts",
        )
    )

    for pattern in patterns:
        factors.append(
            RiskFactor(
                name=f"Pattern: {pattern.pattern_type.value}",
                weight=pattern.severity * PATTERN_WEIGHT,
                detected=True,
                description=f"Detected {pattern.pattern_type.value} with severity {int(pattern.severity * 100)}%",
            )
        )

    age_days = whole_days_between(snapshot.created_at, now)
    new_account = age_days < NEW_ACCOUNT_DAYS
    factors.append(
        RiskFactor(
            name="Account Maturity",
            weight=0.10 if new_account else 0.0,
            detected=new_account,
            description=f"Account {age_days} days old (new: {new_account})",
        )
    )

    return factors


def evaluate_account_factors(
    snapshot: AccountSnapshot,
    recent_patterns: Sequence[BehaviorPattern],
    now: datetime,
) -> List[RiskFactor]:
    """Account-level factors: pattern severity, payee trust, category variety, locked ratio"""
    factors: List[RiskFactor] = []

    avg_severity = (
        sum(p.severity for p in recent_patterns) / len(recent_patterns) if recent_patterns else 0.0
    )
    factors.append(
        RiskFactor(
            name="Behavioral Patterns",
            weight=avg_severity * 0.4,
            detected=bool(recent_patterns),
            description=(
                f"{len(recent_patterns)} suspicious patterns detected "
                f"(avg severity: {int(avg_severity * 100)}%)"
            ),
        )
    )

    total_payees = len(snapshot.payees)
    trusted = sum(1 for p in snapshot.payees if p.trusted)
    trust_ratio = trusted / total_payees if total_payees else 1.0
    factors.append(
        RiskFactor(
            name="Payee Trust Ratio",
            weight=(1.0 - trust_ratio) * 0.15,
            detected=trust_ratio < 0.5,
            description=f"{trusted}/{total_payees} payees are trusted ({int(trust_ratio * 100)}%)",
        )
    )

    last_30_days = [t for t in snapshot.transactions if within_trailing(t.timestamp, now, timedelta(days=30))]
    variety = len({t.category for t in last_30_days})
    high_variety = variety > 5
    factors.append(
        RiskFactor(
            name="Spending Consistency",
            weight=0.10 if high_variety else 0.0,
            detected=high_variety,
            description=f"Transactions across {variety} different categories",
        )
    )

    locked_ratio = float(snapshot.total_locked / snapshot.balance) if snapshot.balance > 0 else 0.0
    high_locked = locked_ratio > 0.3
    factors.append(
        RiskFactor(
            name="Locked Funds Ratio",
            weight=0.15 if high_locked else 0.0,
            detected=high_locked,
            description=f"{int(locked_ratio * 100)}% of funds are locked",
        )
    )

    return factors


def calculate_risk_score(factors: Sequence[RiskFactor]) -> float:
    """Sum of factor weights, capped at 1.0"""
    return round(min(1.0, sum(f.weight for f in factors)), 4)


def determine_risk_level(score: float) -> RiskLevel:
    """
    Map score to level.

    - >= 0.85: critical
    - >= 0.70: high
    - >= 0.40: medium
    - otherwise low
    """
    if score >= CRITICAL_RISK_THRESHOLD:
        return RiskLevel.CRITICAL
    elif score >= HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    elif score >= MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    else:
        return RiskLevel.LOW


def make_risk_score(factors: Sequence[RiskFactor], timestamp: datetime) -> RiskScore:
    score = calculate_risk_score(factors)
    level = determine_risk_level(score)
    return RiskScore(
        level=level,
        score=score,
        factors=tuple(factors),
        recommendation=RECOMMENDATIONS[level],
        timestamp=timestamp,
    )


def score_transaction(
    snapshot: AccountSnapshot,
    tx: Transaction,
    baseline: BehaviorBaseline,
    patterns: Sequence[BehaviorPattern],
) -> RiskScore:
    """Main entry point for per-transaction scoring. Pure: same inputs, same score."""
    return make_risk_score(evaluate_transaction_factors(snapshot, tx, baseline, patterns), tx.timestamp)


def score_account(snapshot: AccountSnapshot, recent_patterns: Sequence[BehaviorPattern], now: datetime) -> RiskScore:
    return make_risk_score(evaluate_account_factors(snapshot, recent_patterns, now), now)
