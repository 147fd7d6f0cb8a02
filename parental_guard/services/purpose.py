"""Purpose-Fund Allocator - parent-tagged funds spendable only at matching merchants"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.limits import deduct
from parental_guard.domain.models import AccountSnapshot, AlertType, Category, PurposeTag, Transaction
from parental_guard.domain.money import ZERO, require_positive
from parental_guard.domain.ports import Storage
from parental_guard.domain.purpose import purpose_allows
from parental_guard.domain.verdicts import Outcome, Verdict, applied, rejected
from parental_guard.infrastructure.observability.logging import log_verdict
from parental_guard.infrastructure.observability.metrics import record_verdict
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing, commit

logger = logging.getLogger(__name__)


class PurposeFundAllocator:
    def __init__(self, storage: Storage, alerts: AlertService):
        self.storage = storage
        self.alerts = alerts

    def tag_funds(
        self, account_id: str, purpose: PurposeTag, amount: Decimal, parent_id: str, now: datetime
    ) -> Verdict:
        """Credit `amount` and lock it under `purpose`"""
        amount = require_positive(amount)
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)

        updated = snapshot.add_funds(amount).lock_funds(purpose, amount)
        verdict = commit(self.storage, applied(updated, message=f"₹{amount} locked for {purpose.value}"))
        if verdict.applied:
            logger.info(
                "Purpose funds tagged",
                extra={"account_id": account_id, "purpose": purpose.value, "amount": str(amount), "parent_id": parent_id},
            )
            verdict = verdict.with_alerts(
                self.alerts.raise_alert(
                    account_id,
                    AlertType.PURPOSE_FUNDS_TAGGED,
                    f"Parent {parent_id} sent ₹{amount} tagged as {purpose.value}",
                    now,
                )
            )
        record_verdict("purpose_tag", verdict.outcome.value)
        return verdict

    def consume(self, account_id: str, tx: Transaction, merchant_category: Optional[Category]) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)
        return self.apply(snapshot, tx, merchant_category)

    def apply(self, snapshot: AccountSnapshot, tx: Transaction, merchant_category: Optional[Category]) -> Verdict:
        """
        Spend from purpose-locked funds.

        Unlocks min(amount, locked) for the purpose, then deducts the full
        amount; any excess must be covered by unlocked balance.
        """
        verdict = self._evaluate(snapshot, tx, merchant_category)
        if verdict.applied:
            verdict = commit(self.storage, verdict)
        elif verdict.outcome is Outcome.PURPOSE_MISMATCH:
            verdict = verdict.with_alerts(
                self.alerts.raise_alert(snapshot.id, AlertType.PURPOSE_MISMATCH, verdict.message, tx.timestamp)
            )
        elif verdict.outcome is Outcome.INSUFFICIENT_BALANCE:
            verdict = verdict.with_alerts(
                self.alerts.raise_alert(snapshot.id, AlertType.INSUFFICIENT_FUNDS, verdict.message, tx.timestamp)
            )

        record_verdict("purpose", verdict.outcome.value)
        log_verdict(snapshot.id, "purpose", verdict.outcome.value, amount=str(tx.amount))
        return verdict

    def _evaluate(self, snapshot: AccountSnapshot, tx: Transaction, merchant_category: Optional[Category]) -> Verdict:
        purpose = tx.purpose_tag
        if purpose is None:
            return rejected(Outcome.PURPOSE_MISMATCH, "No purpose tag in transaction", transaction=tx)

        locked = snapshot.locked_for(purpose)
        if locked <= ZERO:
            return rejected(Outcome.NO_LOCKED_FUNDS, f"No locked funds for purpose {purpose.value}", transaction=tx)

        if merchant_category is None:
            return rejected(
                Outcome.PURPOSE_MISMATCH,
                "Merchant category unknown; cannot use purpose-tagged funds",
                transaction=tx,
            )
        if not purpose_allows(purpose, merchant_category):
            return rejected(
                Outcome.PURPOSE_MISMATCH,
                f"Merchant category {merchant_category.value} not permitted for purpose {purpose.value}",
                transaction=tx,
            )

        unlocked = snapshot.unlock_funds(purpose, min(tx.amount, locked))
        return deduct(unlocked, tx)
