"""Payee trust ladder and night-window throttle"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Tuple

from parental_guard.domain.models import AccountSnapshot, AlertType, Transaction
from parental_guard.utils.date_utils import is_night


@dataclass(frozen=True)
class TransferDecision:
    """Where a transfer goes next, and which alerts accompany it"""

    requires_approval: bool
    reason: str
    alert_types: Tuple[AlertType, ...] = ()


def completed_transfers_to(snapshot: AccountSnapshot, payee_id: str) -> int:
    return sum(1 for t in snapshot.transactions if t.is_completed and t.to_payee_id == payee_id)


def recent_payee_additions(snapshot: AccountSnapshot, now: datetime, window: timedelta) -> int:
    """Payees whose added_at is strictly after now - window"""
    cutoff = now - window
    return sum(1 for p in snapshot.payees if p.added_at > cutoff)


def night_addition_blocked(
    snapshot: AccountSnapshot,
    now: datetime,
    window: timedelta,
    normal_start: int,
    normal_end: int,
) -> bool:
    """At night only one payee may be added per rolling window"""
    if not is_night(now, normal_start, normal_end):
        return False
    if snapshot.limits.allow_night_additions:
        return False
    return recent_payee_additions(snapshot, now, window) >= 1


def decide_transfer(
    snapshot: AccountSnapshot,
    tx: Transaction,
    now: datetime,
    floor: Decimal,
    normal_start: int,
    normal_end: int,
) -> TransferDecision:
    """
    First-transaction ladder.

    The floor is a per-payee-lifetime allowance: only the first transfer to a
    payee may use it without approval, until a parent trusts the payee.

    Unknown payee (id not in the payee list):
      - first transfer <= floor: allowed, informational alert
      - anything else: approval, message carries the 1-based transfer count
    Known payee, first transfer:
      - <= floor: allowed regardless of trust or time
      - > floor at night: approval
      - > floor in normal hours: approval only if untrusted
    Known payee, repeat transfer:
      - trusted: allowed
      - untrusted at night: approval
      - untrusted above floor: approval
    """
    payee_id = tx.to_payee_id
    prior = completed_transfers_to(snapshot, payee_id)
    night = is_night(now, normal_start, normal_end)
    payee = snapshot.find_payee(payee_id)

    if payee is None:
        attempt = prior + 1
        if prior == 0 and tx.amount <= floor:
            return TransferDecision(
                requires_approval=False,
                reason=f"First transfer of ₹{tx.amount} to unknown payee {payee_id} allowed",
                alert_types=(AlertType.UNKNOWN_PAYEE_TRANSFER,),
            )
        return TransferDecision(
            requires_approval=True,
            reason=f"Transfer #{attempt} of ₹{tx.amount} to unknown payee {payee_id} requires parent approval",
            alert_types=(AlertType.REPEATED_PAYMENTS_TO_UNKNOWN_PAYEE,),
        )

    if prior == 0:
        if tx.amount <= floor:
            return TransferDecision(False, f"First transfer to {payee.display_name} within ₹{floor}")
        if night:
            return TransferDecision(
                True,
                f"First transfer of ₹{tx.amount} to {payee.display_name} at night requires parental approval",
                (AlertType.NIGHT_TIME_ACTIVITY, AlertType.REQUIRES_PARENT_APPROVAL),
            )
        if not payee.trusted:
            return TransferDecision(
                True,
                f"Transfer ₹{tx.amount} to untrusted payee {payee.display_name} requires parental approval",
                (AlertType.REQUIRES_PARENT_APPROVAL,),
            )
        return TransferDecision(False, f"First transfer to trusted payee {payee.display_name}")

    if payee.trusted:
        return TransferDecision(False, f"Transfer to trusted payee {payee.display_name}")
    if night:
        return TransferDecision(
            True,
            f"Transfer to {payee.display_name} requires parental approval (night restrictions)",
            (AlertType.NIGHT_TIME_ACTIVITY, AlertType.REQUIRES_PARENT_APPROVAL),
        )
    if tx.amount > floor:
        return TransferDecision(
            True,
            f"Transfer ₹{tx.amount} to untrusted payee {payee.display_name} requires parental approval",
            (AlertType.REQUIRES_PARENT_APPROVAL,),
        )
    return TransferDecision(False, f"Transfer to {payee.display_name} within ₹{floor}")
