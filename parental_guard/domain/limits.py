"""Limit evaluation - per-transaction, per-category, monthly and withdrawal windows"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from parental_guard.domain.models import AccountSnapshot, Category, Limits, Transaction, TransactionStatus
from parental_guard.domain.money import sum_money
from parental_guard.domain.verdicts import LimitKind, Outcome, Verdict, applied, rejected
from parental_guard.utils.date_utils import same_calendar_month, within_trailing


def month_spent(transactions: Iterable[Transaction], moment: datetime, category: Optional[Category] = None) -> Decimal:
    """Sum of completed transactions in the calendar month of `moment`, optionally for one category"""
    return sum_money(
        t.amount
        for t in transactions
        if t.is_completed
        and same_calendar_month(t.timestamp, moment)
        and (category is None or t.category is category)
    )


def withdrawn_within(transactions: Iterable[Transaction], now: datetime, window: timedelta) -> Decimal:
    return sum_money(
        t.amount for t in transactions if t.is_completed and t.withdrawal and within_trailing(t.timestamp, now, window)
    )


def withdrawn_this_month(transactions: Iterable[Transaction], now: datetime) -> Decimal:
    return sum_money(
        t.amount
        for t in transactions
        if t.is_completed and t.withdrawal and same_calendar_month(t.timestamp, now)
    )


def check_spending_caps(
    snapshot: AccountSnapshot,
    tx: Transaction,
    apply_monthly_with_category: bool = False,
) -> Optional[Verdict]:
    """
    Checks 1-3 in fixed order, returning the first failure or None.

    1. Per-transaction cap
    2. Per-category monthly cap (authoritative when configured for the category)
    3. Overall monthly cap, skipped when a category cap applied unless
       apply_monthly_with_category is set
    """
    limits = snapshot.limits

    if limits.per_transaction_max is not None and tx.amount > limits.per_transaction_max:
        return rejected(
            Outcome.LIMIT_EXCEEDED,
            f"Transaction ₹{tx.amount} exceeds per-transaction limit ₹{limits.per_transaction_max}",
            transaction=tx,
            limit=LimitKind.PER_TRANSACTION,
        )

    category_max = limits.per_category_max.get(tx.category)
    if category_max is not None:
        spent = month_spent(snapshot.transactions, tx.timestamp, tx.category)
        if spent + tx.amount > category_max:
            return rejected(
                Outcome.LIMIT_EXCEEDED,
                f"Category {tx.category.value} monthly limit exceeded (₹{category_max}). Already spent ₹{spent}",
                transaction=tx,
                limit=LimitKind.CATEGORY,
            )
        if not apply_monthly_with_category:
            return None

    if limits.monthly_max is not None:
        spent = month_spent(snapshot.transactions, tx.timestamp)
        if spent + tx.amount > limits.monthly_max:
            return rejected(
                Outcome.LIMIT_EXCEEDED,
                f"Monthly limit ₹{limits.monthly_max} exceeded. Already spent ₹{spent}",
                transaction=tx,
                limit=LimitKind.MONTHLY,
            )

    return None


def check_withdrawal_windows(snapshot: AccountSnapshot, amount: Decimal, now: datetime) -> Optional[Verdict]:
    """Daily (rolling 24h), weekly (rolling 7d) and calendar-month withdrawal caps"""
    windows = snapshot.limits.withdrawal_limits
    txs = snapshot.transactions
    checks = (
        (windows.daily, withdrawn_within(txs, now, timedelta(days=1)), LimitKind.WITHDRAWAL_DAILY, "Daily"),
        (windows.weekly, withdrawn_within(txs, now, timedelta(days=7)), LimitKind.WITHDRAWAL_WEEKLY, "Weekly"),
        (windows.monthly, withdrawn_this_month(txs, now), LimitKind.WITHDRAWAL_MONTHLY, "Monthly"),
    )
    for cap, spent, kind, label in checks:
        if cap is not None and spent + amount > cap:
            return rejected(
                Outcome.LIMIT_EXCEEDED,
                f"{label} withdrawal limit ₹{cap} exceeded. Already withdrawn ₹{spent}",
                limit=kind,
            )
    return None


def check_balance(snapshot: AccountSnapshot, tx: Transaction) -> Optional[Verdict]:
    """No-overdraft check against available (unlocked) balance. Never bypassed."""
    if tx.amount > snapshot.available_balance:
        return rejected(
            Outcome.INSUFFICIENT_BALANCE,
            f"Insufficient available balance for ₹{tx.amount} (available ₹{snapshot.available_balance})",
            transaction=tx,
        )
    return None


def deduct(snapshot: AccountSnapshot, tx: Transaction) -> Verdict:
    """Balance check then append the transaction as completed"""
    failure = check_balance(snapshot, tx)
    if failure is not None:
        return failure
    completed = tx.with_status(TransactionStatus.COMPLETED)
    return applied(snapshot.deduct_funds(tx.amount, completed), completed)


def evaluate_spending(
    snapshot: AccountSnapshot,
    tx: Transaction,
    override_active: bool = False,
    apply_monthly_with_category: bool = False,
) -> Verdict:
    """
    Run a spend through the limit checks and compute the resulting snapshot.

    Emergency override skips the caps but never the balance check. Nothing is
    persisted here.
    """
    if not override_active:
        failure = check_spending_caps(snapshot, tx, apply_monthly_with_category)
        if failure is not None:
            return failure
    return deduct(snapshot, tx)


def incoming_credit_cap(limits: Limits) -> Optional[Decimal]:
    """
    (monthly limit + monthly withdrawal limit) x incoming_credit_multiplier.

    A missing limit counts as zero; with neither configured there is no cap.
    """
    monthly = limits.monthly_max
    withdraw_monthly = limits.withdrawal_limits.monthly
    if monthly is None and withdraw_monthly is None:
        return None
    base = (monthly or Decimal("0")) + (withdraw_monthly or Decimal("0"))
    return base * limits.incoming_credit_multiplier
