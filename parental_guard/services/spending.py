"""Limit Evaluator service - validates spends and persists the resulting snapshot"""

import logging

from parental_guard.config import settings
from parental_guard.domain.automation import check_restriction
from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.limits import evaluate_spending
from parental_guard.domain.models import AccountSnapshot, AlertType, Transaction
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Outcome, Verdict
from parental_guard.infrastructure.observability.logging import log_verdict
from parental_guard.infrastructure.observability.metrics import record_verdict
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing, commit
from parental_guard.services.override import EmergencyOverrideGate
from parental_guard.services.restrictions import CategoryRestrictionGate

logger = logging.getLogger(__name__)

_REJECTION_ALERTS = {
    Outcome.LIMIT_EXCEEDED: AlertType.LARGE_TRANSACTION,
    Outcome.INSUFFICIENT_BALANCE: AlertType.INSUFFICIENT_FUNDS,
}


class SpendingControlService:
    """Category restriction, then per-transaction, per-category and monthly caps, then the balance check"""

    def __init__(
        self,
        storage: Storage,
        alerts: AlertService,
        emergency: EmergencyOverrideGate,
        apply_monthly_with_category_limit: bool | None = None,
        restrictions: CategoryRestrictionGate | None = None,
    ):
        self.storage = storage
        self.alerts = alerts
        self.emergency = emergency
        self.apply_monthly_with_category_limit = (
            settings.apply_monthly_with_category_limit
            if apply_monthly_with_category_limit is None
            else apply_monthly_with_category_limit
        )
        self.restrictions = restrictions

    def validate_and_apply(self, account_id: str, tx: Transaction) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)
        return self.apply(snapshot, tx)

    def apply(self, snapshot: AccountSnapshot, tx: Transaction, step: str = "spend") -> Verdict:
        """Evaluate against an already-loaded snapshot and persist on success"""
        override = self.emergency.is_active(snapshot.id, tx.timestamp)
        if override:
            logger.info("Spending caps bypassed by emergency override", extra={"account_id": snapshot.id})

        restriction = None
        if not override and self.restrictions is not None:
            restriction = self.restrictions.active_for(snapshot.id, tx.timestamp)

        blocked = check_restriction(restriction, tx)
        if blocked is not None:
            alert = self.alerts.raise_alert(snapshot.id, AlertType.UNUSUAL_MERCHANT, blocked.message, tx.timestamp)
            verdict = blocked.with_alerts(alert)
        else:
            verdict = evaluate_spending(snapshot, tx, override, self.apply_monthly_with_category_limit)
            if verdict.applied:
                verdict = commit(self.storage, verdict)
            elif verdict.outcome in _REJECTION_ALERTS:
                alert = self.alerts.raise_alert(
                    snapshot.id, _REJECTION_ALERTS[verdict.outcome], verdict.message, tx.timestamp
                )
                verdict = verdict.with_alerts(alert)

        record_verdict(step, verdict.outcome.value)
        log_verdict(snapshot.id, step, verdict.outcome.value, amount=str(tx.amount))
        return verdict
