"""Transaction orchestration - risk gate first, then routing to the rule evaluators"""

import logging
import time
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from parental_guard.domain.behavior import RECENT_WINDOW, fraud_signals
from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.models import (
    AccountSnapshot,
    AccountStats,
    Alert,
    AlertType,
    BehaviorPattern,
    PatternType,
    RiskLevel,
    RiskScore,
    Transaction,
    TransactionStatus,
)
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Outcome, Verdict, rejected
from parental_guard.infrastructure.observability.logging import log_verdict
from parental_guard.infrastructure.observability.metrics import evaluation_histogram, record_verdict
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing
from parental_guard.services.credits import IncomingCreditService
from parental_guard.services.payees import PayeeGate
from parental_guard.services.purpose import PurposeFundAllocator
from parental_guard.services.risk import RiskEngine
from parental_guard.services.spending import SpendingControlService
from parental_guard.services.withdrawals import WithdrawalService, withdrawal_transaction

logger = logging.getLogger(__name__)

# Detected patterns that warrant their own parent alert
_PATTERN_ALERTS = {
    PatternType.SOCIAL_ENGINEERING_INDICATORS: AlertType.SOCIAL_ENGINEERING_DETECTED,
    PatternType.VELOCITY_ANOMALY: AlertType.VELOCITY_ANOMALY_DETECTED,
    PatternType.HIGH_RISK_MERCHANT_FREQUENCY: AlertType.UNUSUAL_MERCHANT,
}


class TransactionOrchestrator:
    """
    Entry point for every money movement.

    Flow:
    1. Score the transaction (baseline, patterns, factors)
    2. critical -> blocked, high -> parent approval, medium -> flagged
    3. Route: purpose tag -> allocator, payee -> payee gate, else limit evaluator
    """

    def __init__(
        self,
        storage: Storage,
        alerts: AlertService,
        risk: RiskEngine,
        spending: SpendingControlService,
        payees: PayeeGate,
        purpose: PurposeFundAllocator,
        withdrawals: WithdrawalService,
        credits: IncomingCreditService,
    ):
        self.storage = storage
        self.alerts = alerts
        self.risk = risk
        self.spending = spending
        self.payees = payees
        self.purpose = purpose
        self.withdrawals = withdrawals
        self.credits = credits

    def process_transaction(self, account_id: str, tx: Transaction) -> Verdict:
        start_time = time.perf_counter()
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        score, patterns = self.risk.analyze_transaction(snapshot, tx)
        now = tx.timestamp

        if score.level is RiskLevel.CRITICAL:
            alert = self.alerts.raise_alert(
                account_id,
                AlertType.HIGH_RISK_SCORE,
                f"CRITICAL RISK DETECTED: {score.recommendation}",
                now,
                risk_score=score,
                requires_action=True,
            )
            verdict = rejected(
                Outcome.BLOCKED,
                score.recommendation,
                transaction=tx.with_status(TransactionStatus.BLOCKED),
                risk_score=score,
            ).with_alerts(alert)
            record_verdict("risk_gate", verdict.outcome.value)
        elif score.level is RiskLevel.HIGH:
            alert = self.alerts.raise_alert(
                account_id,
                AlertType.REQUIRES_PARENT_APPROVAL,
                f"High-risk transaction detected. Parent approval required. {score.recommendation}",
                now,
                risk_score=score,
                requires_action=True,
            )
            verdict = rejected(
                Outcome.APPROVAL_REQUIRED,
                score.recommendation,
                transaction=tx.with_status(TransactionStatus.REQUIRES_APPROVAL),
                risk_score=score,
            ).with_alerts(alert)
            record_verdict("risk_gate", verdict.outcome.value)
        else:
            notices: List[Alert] = []
            if score.level is RiskLevel.MEDIUM:
                notices.append(
                    self.alerts.raise_alert(
                        account_id,
                        AlertType.BEHAVIORAL_ANOMALY,
                        f"Medium-risk transaction: {score.recommendation}",
                        now,
                        risk_score=score,
                    )
                )
            for signal in fraud_signals(snapshot, tx):
                notices.append(self.alerts.raise_alert(account_id, AlertType.FRAUD_SUSPECTED, signal, now))

            routed = self.route(snapshot, tx)
            verdict = replace(routed, risk_score=score, alerts=tuple(notices) + routed.alerts)

        verdict = verdict.with_alerts(*self._pattern_alerts(account_id, patterns, score, now))

        duration = time.perf_counter() - start_time
        evaluation_histogram.observe(duration)
        log_verdict(
            account_id,
            "transaction",
            verdict.outcome.value,
            amount=str(tx.amount),
            risk_level=score.level.value,
            duration_ms=round(duration * 1000, 3),
        )
        return verdict

    def _pattern_alerts(
        self, account_id: str, patterns: Sequence[BehaviorPattern], score: RiskScore, now: datetime
    ) -> List[Alert]:
        alerts = []
        for pattern in patterns:
            alert_type = _PATTERN_ALERTS.get(pattern.pattern_type)
            if alert_type is None:
                continue
            alerts.append(
                self.alerts.raise_alert(
                    account_id,
                    alert_type,
                    f"Detected {pattern.pattern_type.value} with severity {int(pattern.severity * 100)}%",
                    now,
                    risk_score=score,
                )
            )
        return alerts

    def route(self, snapshot: AccountSnapshot, tx: Transaction, approved: bool = False) -> Verdict:
        """
        Dispatch to the evaluator for this kind of transaction.

        With `approved` set, a payee transfer skips the trust ladder (the parent
        has already answered it) but still goes through caps and balance.
        """
        if tx.purpose_tag is not None:
            payee = snapshot.find_payee(tx.to_payee_id) if tx.to_payee_id else None
            merchant_category = payee.merchant_category if payee and payee.merchant_category else tx.category
            return self.purpose.apply(snapshot, tx, merchant_category)
        if tx.to_payee_id is not None and not approved:
            return self.payees.transfer(snapshot, tx)
        return self.spending.apply(snapshot, tx)

    def approve_transaction(self, account_id: str, tx: Transaction, parent_id: str) -> Verdict:
        """Parent approval of a held transaction. Skips the risk gate, never the balance check."""
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        notice = self.alerts.raise_alert(
            account_id,
            AlertType.GENERIC_NOTICE,
            f"Parent {parent_id} approved transaction of ₹{tx.amount}",
            tx.timestamp,
        )
        logger.info(
            "Transaction approved by parent",
            extra={"account_id": account_id, "transaction_id": tx.id, "parent_id": parent_id},
        )
        routed = self.route(snapshot, tx, approved=True)
        return replace(routed, alerts=(notice,) + routed.alerts)

    def process_withdrawal(self, account_id: str, amount: Decimal, now: datetime) -> Verdict:
        tx = withdrawal_transaction(amount, now)
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        score, _ = self.risk.analyze_transaction(snapshot, tx)
        if score.level in (RiskLevel.CRITICAL, RiskLevel.HIGH):
            alert = self.alerts.raise_alert(
                account_id,
                AlertType.HIGH_RISK_SCORE,
                f"High-risk withdrawal detected: {score.recommendation}",
                now,
                risk_score=score,
                requires_action=True,
            )
            record_verdict("risk_gate", Outcome.BLOCKED.value)
            return rejected(
                Outcome.BLOCKED,
                score.recommendation,
                transaction=tx.with_status(TransactionStatus.BLOCKED),
                risk_score=score,
            ).with_alerts(alert)

        return replace(self.withdrawals.apply(snapshot, tx), risk_score=score)

    def process_incoming_credit(self, account_id: str, amount: Decimal, now: datetime) -> Verdict:
        return self.credits.process_incoming(account_id, amount, now)

    def analyze_account(self, account_id: str, now: datetime) -> RiskScore:
        """
        Periodic account health check. Alerts on high/critical, then refreshes
        the baseline. Raises AccountNotFoundError for an unknown account.
        """
        snapshot = self.storage.load(account_id)
        score = self.risk.analyze_account(snapshot, now)

        if score.level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            self.alerts.raise_alert(
                account_id,
                AlertType.BEHAVIORAL_ANOMALY,
                f"Account risk assessment: {score.recommendation}",
                now,
                risk_score=score,
                requires_action=True,
            )

        self.risk.update_baseline(snapshot, now)
        return score

    def preview_transaction_risk(self, account_id: str, tx: Transaction) -> RiskScore:
        """Score a hypothetical transaction without storing patterns"""
        snapshot = self.storage.load(account_id)
        score, _ = self.risk.preview(snapshot, tx)
        return score

    def acknowledge_patterns(self, account_id: str) -> None:
        """Parent reviewed the flagged patterns"""
        self.storage.clear_patterns(account_id)
        logger.info("Patterns acknowledged", extra={"account_id": account_id})

    def account_stats(self, account_id: str, now: datetime) -> Optional[AccountStats]:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return None

        baseline = self.storage.load_baseline(account_id)
        recent_patterns = self.storage.load_recent_patterns(account_id, now - RECENT_WINDOW)
        return AccountStats(
            account_id=snapshot.id,
            balance=snapshot.balance,
            available_balance=snapshot.available_balance,
            locked_funds=snapshot.total_locked,
            total_transactions=len(snapshot.transactions),
            trusted_payees=sum(1 for p in snapshot.payees if p.trusted),
            total_payees=len(snapshot.payees),
            recent_pattern_count=len(recent_patterns),
            avg_transaction_amount=baseline.avg_transaction_amount if baseline else None,
            last_baseline_update=baseline.last_updated if baseline else None,
        )
