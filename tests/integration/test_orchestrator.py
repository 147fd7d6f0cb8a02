"""Integration tests for the transaction orchestrator over in-memory storage"""

import pytest
from datetime import timedelta
from decimal import Decimal
from parental_guard.domain.models import (
    AlertType,
    Category,
    Limits,
    PurposeTag,
    RiskLevel,
    Transaction,
    TransactionStatus,
    WithdrawalLimits,
)
from parental_guard.domain.verdicts import Outcome


@pytest.fixture
def account(seed, make_snapshot):
    return seed(make_snapshot(balance="10000"))


def test_low_risk_spend_is_applied(services, account, storage, now):
    tx = Transaction(amount=Decimal("100"), category=Category.FOOD, timestamp=now)

    verdict = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert verdict.applied
    assert verdict.risk_score.level is RiskLevel.LOW
    assert storage.load("acc-minor-1").balance == Decimal("9900")
    assert storage.load_baseline("acc-minor-1") is not None


def test_medium_risk_flags_then_applies(services, account, sink, now):
    """2600 against a 500 baseline: amount 0.25 + sudden 0.3 + time 0.05 + velocity 0.05"""
    tx = Transaction(amount=Decimal("2600"), category=Category.SHOPPING, timestamp=now)

    verdict = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert verdict.risk_score.level is RiskLevel.MEDIUM
    assert verdict.applied
    assert verdict.alerts[0].alert_type is AlertType.BEHAVIORAL_ANOMALY


def test_high_risk_requires_approval_then_parent_approves(services, account, storage, sink, night):
    tx = Transaction(amount=Decimal("1600"), category=Category.SHOPPING, timestamp=night)

    held = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert held.risk_score.level is RiskLevel.HIGH
    assert held.requires_approval
    assert held.transaction.status is TransactionStatus.REQUIRES_APPROVAL
    assert storage.load("acc-minor-1").balance == Decimal("10000")
    assert sink.requiring_action("acc-minor-1")[0].alert_type is AlertType.REQUIRES_PARENT_APPROVAL

    approved = services.orchestrator.approve_transaction("acc-minor-1", held.transaction, "parent-1")

    assert approved.applied
    assert approved.transaction.status is TransactionStatus.COMPLETED
    assert storage.load("acc-minor-1").balance == Decimal("8400")


def test_critical_risk_blocks(services, seed, make_snapshot, storage, now):
    seed(make_snapshot(balance="10000", created_at=now - timedelta(days=5)))
    tx = Transaction(
        amount=Decimal("5000"), category=Category.GIFTS, timestamp=now.replace(hour=2), to_payee_id="stranger"
    )

    verdict = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert verdict.outcome is Outcome.BLOCKED
    assert verdict.transaction.status is TransactionStatus.BLOCKED
    assert verdict.alerts[0].alert_type is AlertType.HIGH_RISK_SCORE
    assert storage.load("acc-minor-1").balance == Decimal("10000")
    assert AlertType.SOCIAL_ENGINEERING_DETECTED in [a.alert_type for a in verdict.alerts]
    stored = {p.pattern_type.value for p in storage.load_recent_patterns("acc-minor-1", now - timedelta(days=1))}
    assert "social_engineering_indicators" in stored


def test_approval_never_skips_balance(services, seed, make_snapshot, now):
    seed(make_snapshot(balance="100"))
    tx = Transaction(amount=Decimal("500"), category=Category.GIFTS, timestamp=now, to_payee_id="stranger")

    verdict = services.orchestrator.approve_transaction("acc-minor-1", tx, "parent-1")

    assert verdict.outcome is Outcome.INSUFFICIENT_BALANCE


def test_payee_route(services, account, now):
    tx = Transaction(amount=Decimal("1500"), category=Category.GIFTS, timestamp=now, to_payee_id="stranger")

    verdict = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert verdict.requires_approval
    assert AlertType.REPEATED_PAYMENTS_TO_UNKNOWN_PAYEE in [a.alert_type for a in verdict.alerts]


def test_purpose_route(services, seed, make_snapshot, storage, now):
    seed(make_snapshot(balance="5000", locked_funds={PurposeTag.MEDICAL: Decimal("5000")}))
    tx = Transaction(
        amount=Decimal("1200"), category=Category.MEDICAL, timestamp=now, purpose_tag=PurposeTag.MEDICAL
    )

    verdict = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert verdict.applied
    assert storage.load("acc-minor-1").locked_for(PurposeTag.MEDICAL) == Decimal("3800")


def test_high_risk_category_raises_fraud_notice(services, account, now):
    tx = Transaction(amount=Decimal("50"), category=Category.CRYPTO, timestamp=now)

    verdict = services.orchestrator.process_transaction("acc-minor-1", tx)

    assert verdict.applied
    assert AlertType.FRAUD_SUSPECTED in [a.alert_type for a in verdict.alerts]


def test_withdrawal_gate(services, seed, make_snapshot, now):
    seed(make_snapshot(balance="5000", limits=Limits(withdrawal_limits=WithdrawalLimits(daily=Decimal("500")))))

    assert services.orchestrator.process_withdrawal("acc-minor-1", Decimal("200"), now).applied

    risky = services.orchestrator.process_withdrawal("acc-minor-1", Decimal("3000"), now.replace(hour=2))
    assert risky.outcome is Outcome.BLOCKED
    assert risky.alerts[0].alert_type is AlertType.HIGH_RISK_SCORE


def test_preview_does_not_store_patterns(services, account, storage, now):
    tx = Transaction(amount=Decimal("5000"), category=Category.FOOD, timestamp=now.replace(hour=3))

    first = services.orchestrator.preview_transaction_risk("acc-minor-1", tx)
    second = services.orchestrator.preview_transaction_risk("acc-minor-1", tx)

    assert first == second
    assert storage.load_recent_patterns("acc-minor-1", now - timedelta(days=7)) == []


def test_analyze_account_and_acknowledge(services, account, storage, now):
    tx = Transaction(amount=Decimal("5000"), category=Category.FOOD, timestamp=now.replace(hour=3))
    services.orchestrator.process_transaction("acc-minor-1", tx)
    assert storage.load_recent_patterns("acc-minor-1", now - timedelta(days=7))

    score = services.orchestrator.analyze_account("acc-minor-1", now)
    assert score.factors[0].name == "Behavioral Patterns"
    assert score.factors[0].detected

    services.orchestrator.acknowledge_patterns("acc-minor-1")
    assert storage.load_recent_patterns("acc-minor-1", now - timedelta(days=7)) == []


def test_account_stats(services, account, now):
    services.orchestrator.process_transaction(
        "acc-minor-1", Transaction(amount=Decimal("100"), category=Category.FOOD, timestamp=now)
    )

    stats = services.orchestrator.account_stats("acc-minor-1", now)

    assert stats.balance == Decimal("9900")
    assert stats.total_transactions == 1
    assert stats.avg_transaction_amount == Decimal("500")
    assert services.orchestrator.account_stats("missing", now) is None


def test_unknown_account(services, now):
    tx = Transaction(amount=Decimal("10"), category=Category.FOOD, timestamp=now)
    assert services.orchestrator.process_transaction("missing", tx).outcome is Outcome.ACCOUNT_NOT_FOUND


def test_velocity_pattern_raises_its_own_alert(services, seed, make_snapshot, completed_tx, now):
    """Six small spends in the last hour: medium risk, still applied, velocity alert attached"""
    burst = tuple(completed_tx("10", now - timedelta(minutes=5 * i)) for i in range(1, 7))
    seed(make_snapshot(balance="1000", transactions=burst))

    verdict = services.orchestrator.process_transaction(
        "acc-minor-1", Transaction(amount=Decimal("10"), category=Category.FOOD, timestamp=now)
    )

    assert verdict.applied
    assert verdict.risk_score.level is RiskLevel.MEDIUM
    assert AlertType.VELOCITY_ANOMALY_DETECTED in [a.alert_type for a in verdict.alerts]


def test_repeated_high_risk_merchant_raises_unusual_merchant(services, seed, make_snapshot, completed_tx, now):
    history = tuple(completed_tx("50", now - timedelta(days=d), Category.CRYPTO) for d in (3, 2, 1))
    seed(make_snapshot(balance="1000", transactions=history))

    verdict = services.orchestrator.process_transaction(
        "acc-minor-1", Transaction(amount=Decimal("50"), category=Category.CRYPTO, timestamp=now)
    )

    types = [a.alert_type for a in verdict.alerts]
    assert verdict.applied
    assert AlertType.UNUSUAL_MERCHANT in types
    assert AlertType.FRAUD_SUSPECTED in types
