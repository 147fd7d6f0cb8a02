"""Verdicts - tagged result of every evaluator

A verdict is either an applied state transition (outcome APPLIED with the new
snapshot) or exactly one rejection kind with a message. Never both.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from parental_guard.domain.models import AccountSnapshot, Alert, Payee, RiskScore, Transaction


class Outcome(str, Enum):
    APPLIED = "applied"
    ACCOUNT_NOT_FOUND = "account_not_found"
    PAYEE_NOT_FOUND = "payee_not_found"
    LIMIT_EXCEEDED = "limit_exceeded"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    NIGHT_WINDOW_VIOLATION = "night_window_violation"
    APPROVAL_REQUIRED = "approval_required"
    BLOCKED = "blocked"
    PURPOSE_MISMATCH = "purpose_mismatch"
    NO_LOCKED_FUNDS = "no_locked_funds"
    CONFLICT = "conflict"


class LimitKind(str, Enum):
    PER_TRANSACTION = "per_transaction"
    CATEGORY = "category"
    MONTHLY = "monthly"
    WITHDRAWAL_DAILY = "withdrawal_daily"
    WITHDRAWAL_WEEKLY = "withdrawal_weekly"
    WITHDRAWAL_MONTHLY = "withdrawal_monthly"
    CATEGORY_RESTRICTION = "category_restriction"


@dataclass(frozen=True)
class Verdict:
    outcome: Outcome
    message: str = ""
    snapshot: Optional[AccountSnapshot] = None
    transaction: Optional[Transaction] = None
    payee: Optional[Payee] = None
    limit: Optional[LimitKind] = None
    risk_score: Optional[RiskScore] = None
    alerts: Tuple[Alert, ...] = ()

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED

    @property
    def requires_approval(self) -> bool:
        return self.outcome is Outcome.APPROVAL_REQUIRED

    def with_alerts(self, *alerts: Alert) -> "Verdict":
        return replace(self, alerts=self.alerts + tuple(alerts))


def applied(
    snapshot: AccountSnapshot,
    transaction: Optional[Transaction] = None,
    message: str = "",
    payee: Optional[Payee] = None,
) -> Verdict:
    return Verdict(Outcome.APPLIED, message, snapshot=snapshot, transaction=transaction, payee=payee)


def rejected(
    outcome: Outcome,
    message: str,
    transaction: Optional[Transaction] = None,
    limit: Optional[LimitKind] = None,
    risk_score: Optional[RiskScore] = None,
) -> Verdict:
    if outcome is Outcome.APPLIED:
        raise ValueError("rejected() needs a non-applied outcome")
    return Verdict(outcome, message, transaction=transaction, limit=limit, risk_score=risk_score)
