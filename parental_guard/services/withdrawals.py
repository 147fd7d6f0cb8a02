"""Cash withdrawals against daily, weekly and monthly windows"""

from datetime import datetime
from decimal import Decimal

from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.limits import check_withdrawal_windows, deduct
from parental_guard.domain.models import AccountSnapshot, AlertType, Category, Transaction
from parental_guard.domain.money import require_positive
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Outcome, Verdict
from parental_guard.infrastructure.observability.logging import log_verdict
from parental_guard.infrastructure.observability.metrics import record_verdict
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing, commit
from parental_guard.services.override import EmergencyOverrideGate


def withdrawal_transaction(amount: Decimal, now: datetime) -> Transaction:
    return Transaction(amount=require_positive(amount), category=Category.OTHER, timestamp=now, withdrawal=True)


class WithdrawalService:
    """Enforces withdrawal windows; the override skips windows but not the balance check"""

    def __init__(self, storage: Storage, alerts: AlertService, emergency: EmergencyOverrideGate):
        self.storage = storage
        self.alerts = alerts
        self.emergency = emergency

    def attempt_withdrawal(self, account_id: str, amount: Decimal, now: datetime) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)
        return self.apply(snapshot, withdrawal_transaction(amount, now))

    def apply(self, snapshot: AccountSnapshot, tx: Transaction) -> Verdict:
        verdict = None
        if not self.emergency.is_active(snapshot.id, tx.timestamp):
            verdict = check_withdrawal_windows(snapshot, tx.amount, tx.timestamp)
            if verdict is not None:
                verdict = verdict.with_alerts(
                    self.alerts.raise_alert(snapshot.id, AlertType.WITHDRAWAL_EXCEEDED, verdict.message, tx.timestamp)
                )

        if verdict is None:
            verdict = deduct(snapshot, tx)
            if verdict.applied:
                verdict = commit(self.storage, verdict)
            elif verdict.outcome is Outcome.INSUFFICIENT_BALANCE:
                verdict = verdict.with_alerts(
                    self.alerts.raise_alert(snapshot.id, AlertType.INSUFFICIENT_FUNDS, verdict.message, tx.timestamp)
                )

        record_verdict("withdrawal", verdict.outcome.value)
        log_verdict(snapshot.id, "withdrawal", verdict.outcome.value, amount=str(tx.amount))
        return verdict
