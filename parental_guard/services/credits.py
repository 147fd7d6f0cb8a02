"""Incoming credits - excess above the computed cap is locked under misc"""

import logging
from datetime import datetime
from decimal import Decimal

from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.limits import incoming_credit_cap
from parental_guard.domain.models import AlertType, PurposeTag
from parental_guard.domain.money import ZERO, require_positive
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Verdict, applied
from parental_guard.infrastructure.observability.logging import log_verdict
from parental_guard.infrastructure.observability.metrics import record_verdict
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing, commit

logger = logging.getLogger(__name__)

BASELINE_DEVIATION_MULTIPLE = 5


class IncomingCreditService:
    def __init__(self, storage: Storage, alerts: AlertService):
        self.storage = storage
        self.alerts = alerts

    def process_incoming(self, account_id: str, amount: Decimal, now: datetime) -> Verdict:
        """
        Credit the account, then lock whatever available balance exceeds
        (monthly + monthly withdrawal) x multiplier.

        Only available balance is considered so the locked total never
        exceeds the balance.
        """
        amount = require_positive(amount)
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        cap = incoming_credit_cap(snapshot.limits)
        updated = snapshot.add_funds(amount)
        excess = updated.available_balance - cap if cap is not None else ZERO

        if excess > ZERO:
            updated = updated.lock_funds(PurposeTag.MISC, excess)
            logger.info(
                "Incoming credit above cap", extra={"account_id": account_id, "cap": str(cap), "excess": str(excess)}
            )
            message = f"Incoming funds exceeded computed limit ₹{cap}. Locked ₹{excess}"
        else:
            message = f"Credited ₹{amount}"

        verdict = commit(self.storage, applied(updated, message=message))
        if verdict.applied:
            if excess > ZERO:
                verdict = verdict.with_alerts(
                    self.alerts.raise_alert(account_id, AlertType.INCOMING_CREDIT_EXCEEDED, message, now)
                )
            baseline = self.storage.load_baseline(account_id)
            if baseline is not None and amount > baseline.avg_transaction_amount * BASELINE_DEVIATION_MULTIPLE:
                verdict = verdict.with_alerts(
                    self.alerts.raise_alert(
                        account_id,
                        AlertType.BASELINE_DEVIATION,
                        f"Incoming credit ₹{amount} is more than {BASELINE_DEVIATION_MULTIPLE}x "
                        f"the usual ₹{baseline.avg_transaction_amount}",
                        now,
                    )
                )

        record_verdict("credit", verdict.outcome.value)
        log_verdict(account_id, "credit", verdict.outcome.value, amount=str(amount))
        return verdict
