"""Unit tests for risk scoring logic"""

import pytest
from datetime import timedelta
from decimal import Decimal
from parental_guard.domain.behavior import DEFAULT_TIME_RANGES, detect_patterns
from parental_guard.domain.models import (
    BehaviorBaseline,
    Category,
    PatternType,
    Payee,
    PurposeTag,
    RiskFactor,
    RiskLevel,
    Transaction,
)
from parental_guard.domain.scoring import (
    RECOMMENDATIONS,
    calculate_risk_score,
    determine_risk_level,
    evaluate_account_factors,
    evaluate_transaction_factors,
    score_transaction,
)


def make_baseline(avg: str = "500", payees=()) -> BehaviorBaseline:
    return BehaviorBaseline(
        account_id="acc-minor-1",
        avg_daily_transactions=1.0,
        avg_transaction_amount=Decimal(avg),
        common_categories={},
        common_time_ranges=DEFAULT_TIME_RANGES,
        typical_payees=frozenset(payees),
        last_updated=None,
    )


def factor(weight: float) -> RiskFactor:
    return RiskFactor(name="f", weight=weight, detected=weight > 0, description="")


@pytest.mark.parametrize(
    "score,level",
    [
        (0.85, RiskLevel.CRITICAL),
        (0.8499, RiskLevel.HIGH),
        (0.70, RiskLevel.HIGH),
        (0.6999, RiskLevel.MEDIUM),
        (0.40, RiskLevel.MEDIUM),
        (0.3999, RiskLevel.LOW),
        (0.0, RiskLevel.LOW),
    ],
)
def test_determine_risk_level_boundaries(score, level):
    assert determine_risk_level(score) is level


def test_calculate_risk_score_capped():
    assert calculate_risk_score([factor(0.6), factor(0.7)]) == 1.0
    assert calculate_risk_score([factor(0.1), factor(0.05)]) == pytest.approx(0.15)


def test_transaction_factor_order(make_snapshot, now):
    tx = Transaction(amount=Decimal("100"), category=Category.FOOD, timestamp=now)
    names = [f.name for f in evaluate_transaction_factors(make_snapshot(), tx, make_baseline(), [])]

    assert names == [
        "Amount Anomaly",
        "Time Risk",
        "Unknown Payee",
        "Transaction Velocity",
        "Auth Failures",
        "Account Maturity",
    ]


def test_ordinary_daytime_spend_is_low(make_snapshot, now):
    tx = Transaction(amount=Decimal("100"), category=Category.FOOD, timestamp=now)

    score = score_transaction(make_snapshot(), tx, make_baseline(), [])

    # 0.05 time + 0.05 velocity
    assert score.score == pytest.approx(0.10)
    assert score.level is RiskLevel.LOW
    assert score.recommendation == RECOMMENDATIONS[RiskLevel.LOW]
    assert score.timestamp == tx.timestamp


@pytest.mark.parametrize(
    "amount,weight",
    [("1000", 0.0), ("1000.01", 0.05), ("1500.01", 0.15), ("2500.01", 0.25)],
)
def test_amount_anomaly_weights(make_snapshot, now, amount, weight):
    tx = Transaction(amount=Decimal(amount), category=Category.FOOD, timestamp=now)
    amount_factor = evaluate_transaction_factors(make_snapshot(), tx, make_baseline(), [])[0]
    assert amount_factor.weight == weight


def test_new_account_maturity_factor(make_snapshot, now):
    snapshot = make_snapshot(created_at=now - timedelta(days=5))
    tx = Transaction(amount=Decimal("100"), category=Category.FOOD, timestamp=now)

    maturity = evaluate_transaction_factors(snapshot, tx, make_baseline(), [])[-1]

    assert maturity.weight == 0.10
    assert maturity.detected


def test_night_transfer_to_untrusted_payee_is_critical_or_high(make_snapshot, now):
    """Baseline 250, ₹5000 to a known untrusted payee at 02:00"""
    at_two = now.replace(hour=2)
    snapshot = make_snapshot(
        payees=(Payee(id="gamer", display_name="Gamer", account_number="XX99", added_at=now - timedelta(days=3)),)
    )
    baseline = make_baseline(avg="250")
    tx = Transaction(amount=Decimal("5000"), category=Category.GIFTS, timestamp=at_two, to_payee_id="gamer")

    patterns = detect_patterns(snapshot, tx, baseline)
    assert {p.pattern_type for p in patterns} >= {
        PatternType.SUDDEN_SPENDING_INCREASE,
        PatternType.UNUSUAL_TIME_ACTIVITY,
        PatternType.SOCIAL_ENGINEERING_INDICATORS,
    }

    score = score_transaction(snapshot, tx, baseline, patterns)
    assert score.level in (RiskLevel.CRITICAL, RiskLevel.HIGH)


def test_scoring_is_idempotent(make_snapshot, now):
    snapshot = make_snapshot()
    baseline = make_baseline()
    tx = Transaction(amount=Decimal("2600"), category=Category.FOOD, timestamp=now.replace(hour=23))
    patterns = detect_patterns(snapshot, tx, baseline)

    assert score_transaction(snapshot, tx, baseline, patterns) == score_transaction(snapshot, tx, baseline, patterns)


def test_account_factors(make_snapshot, payee_factory, now):
    snapshot = make_snapshot(
        balance="1000",
        locked_funds={PurposeTag.MEDICAL: Decimal("400")},
        payees=(payee_factory("a", trusted=True), payee_factory("b")),
    )

    factors = {f.name: f for f in evaluate_account_factors(snapshot, [], now)}

    assert factors["Behavioral Patterns"].weight == 0.0
    assert factors["Payee Trust Ratio"].weight == pytest.approx(0.075)
    assert factors["Spending Consistency"].weight == 0.0
    assert factors["Locked Funds Ratio"].weight == 0.15
