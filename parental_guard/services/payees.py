"""Payee Trust & Night-Window Gate"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from parental_guard.config import settings
from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.models import (
    AccountSnapshot,
    AlertType,
    Category,
    Payee,
    Transaction,
    TransactionStatus,
    new_id,
)
from parental_guard.domain.payees import decide_transfer, night_addition_blocked
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Outcome, Verdict, applied, rejected
from parental_guard.infrastructure.observability.logging import log_verdict
from parental_guard.infrastructure.observability.metrics import record_verdict
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing, commit
from parental_guard.services.spending import SpendingControlService

logger = logging.getLogger(__name__)

# Alerts that ask the parent to act on a held transfer
_ACTION_ALERTS = frozenset({AlertType.REQUIRES_PARENT_APPROVAL, AlertType.REPEATED_PAYMENTS_TO_UNKNOWN_PAYEE})


class PayeeGate:
    """
    Payee additions and transfers.

    Night additions are throttled to one per rolling window. Transfers run the
    first-transaction ladder; anything allowed continues into the spending caps.
    """

    def __init__(
        self,
        storage: Storage,
        alerts: AlertService,
        spending: SpendingControlService,
        first_transfer_floor: Optional[Decimal] = None,
        night_window_hours: Optional[int] = None,
    ):
        self.storage = storage
        self.alerts = alerts
        self.spending = spending
        self.floor = first_transfer_floor if first_transfer_floor is not None else settings.first_transfer_floor
        if night_window_hours is None:
            night_window_hours = settings.night_payee_window_hours
        self.night_window = timedelta(hours=night_window_hours)
        self.normal_start = settings.normal_hours_start
        self.normal_end = settings.normal_hours_end

    def add_payee(
        self,
        account_id: str,
        display_name: str,
        account_number: str,
        now: datetime,
        merchant_category: Optional[Category] = None,
        payee_id: Optional[str] = None,
    ) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        if night_addition_blocked(snapshot, now, self.night_window, self.normal_start, self.normal_end):
            message = (
                f"Attempt to add payee {display_name} at night blocked: "
                f"only one payee can be added per {int(self.night_window.total_seconds() // 3600)}h at night"
            )
            alert = self.alerts.raise_alert(account_id, AlertType.NIGHT_TIME_ACTIVITY, message, now)
            verdict = rejected(Outcome.NIGHT_WINDOW_VIOLATION, message).with_alerts(alert)
        else:
            payee = Payee(
                display_name=display_name,
                account_number=account_number,
                added_at=now,
                merchant_category=merchant_category,
                id=payee_id or new_id(),
            )
            verdict = commit(
                self.storage, applied(snapshot.upsert_payee(payee), message=f"Payee {display_name} added", payee=payee)
            )
            if verdict.applied:
                alert = self.alerts.raise_alert(
                    account_id, AlertType.NEW_PAYEE_ADDED, f"New payee added: {display_name} ({account_number})", now
                )
                verdict = verdict.with_alerts(alert)

        record_verdict("add_payee", verdict.outcome.value)
        log_verdict(account_id, "add_payee", verdict.outcome.value)
        return verdict

    def process_transfer(self, account_id: str, tx: Transaction, now: Optional[datetime] = None) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)
        return self.transfer(snapshot, tx, now)

    def transfer(self, snapshot: AccountSnapshot, tx: Transaction, now: Optional[datetime] = None) -> Verdict:
        """Run the trust ladder against a loaded snapshot"""
        now = now or tx.timestamp
        decision = decide_transfer(snapshot, tx, now, self.floor, self.normal_start, self.normal_end)

        if decision.requires_approval:
            held = tx.with_status(TransactionStatus.REQUIRES_APPROVAL)
            alerts = [
                self.alerts.raise_alert(
                    snapshot.id, alert_type, decision.reason, now, requires_action=alert_type in _ACTION_ALERTS
                )
                for alert_type in decision.alert_types
            ]
            verdict = rejected(Outcome.APPROVAL_REQUIRED, decision.reason, transaction=held).with_alerts(*alerts)
            record_verdict("transfer", verdict.outcome.value)
            log_verdict(snapshot.id, "transfer", verdict.outcome.value, amount=str(tx.amount))
            return verdict

        notices = [
            self.alerts.raise_alert(snapshot.id, alert_type, decision.reason, now)
            for alert_type in decision.alert_types
        ]
        return self.spending.apply(snapshot, tx, step="transfer").with_alerts(*notices)

    def mark_trusted(self, account_id: str, payee_id: str, parent_id: str, now: datetime) -> Verdict:
        """Parent promotes a payee to trusted"""
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        payee = snapshot.find_payee(payee_id)
        if payee is None:
            return rejected(Outcome.PAYEE_NOT_FOUND, f"Payee {payee_id} not found on account {account_id}")

        verdict = commit(
            self.storage,
            applied(snapshot.mark_payee_trusted(payee_id), message="Payee trusted", payee=payee.mark_trusted()),
        )
        if verdict.applied:
            logger.info("Payee trusted", extra={"account_id": account_id, "payee_id": payee_id, "parent_id": parent_id})
            verdict = verdict.with_alerts(
                self.alerts.raise_alert(
                    account_id,
                    AlertType.PAYEE_TRUSTED,
                    f"Payee {payee.display_name} marked trusted by parent={parent_id}",
                    now,
                )
            )
        return verdict
