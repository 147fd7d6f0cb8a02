"""Data access layer implementing the Storage and AlertSink contracts on SQLAlchemy"""

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from parental_guard.domain.exceptions import AccountNotFoundError, ConcurrentModificationError
from parental_guard.domain.models import (
    AccountSnapshot,
    Alert,
    BehaviorBaseline,
    BehaviorPattern,
    Category,
    Limits,
    Payee,
    PatternType,
    PurposeTag,
    TimeRange,
    Transaction,
    TransactionStatus,
    WithdrawalLimits,
)
from parental_guard.domain.money import to_money
from parental_guard.infrastructure.database.models import (
    AccountRecord,
    AlertRecord,
    BaselineRecord,
    LedgerEntryRecord,
    LockedFundRecord,
    PatternRecord,
    PayeeRecord,
)

logger = logging.getLogger(__name__)


def _money_or_none(value: Optional[str]) -> Optional[Decimal]:
    return to_money(value) if value is not None else None


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def limits_to_json(limits: Limits) -> Dict[str, Any]:
    return {
        "per_transaction_max": _str_or_none(limits.per_transaction_max),
        "monthly_max": _str_or_none(limits.monthly_max),
        "per_category_max": {c.value: str(v) for c, v in limits.per_category_max.items()},
        "withdrawal_limits": {
            "daily": _str_or_none(limits.withdrawal_limits.daily),
            "weekly": _str_or_none(limits.withdrawal_limits.weekly),
            "monthly": _str_or_none(limits.withdrawal_limits.monthly),
        },
        "incoming_credit_multiplier": limits.incoming_credit_multiplier,
        "allow_night_additions": limits.allow_night_additions,
    }


def limits_from_json(data: Dict[str, Any]) -> Limits:
    windows = data.get("withdrawal_limits") or {}
    return Limits(
        per_transaction_max=_money_or_none(data.get("per_transaction_max")),
        monthly_max=_money_or_none(data.get("monthly_max")),
        per_category_max={Category(c): to_money(v) for c, v in (data.get("per_category_max") or {}).items()},
        withdrawal_limits=WithdrawalLimits(
            daily=_money_or_none(windows.get("daily")),
            weekly=_money_or_none(windows.get("weekly")),
            monthly=_money_or_none(windows.get("monthly")),
        ),
        incoming_credit_multiplier=data.get("incoming_credit_multiplier", 2),
        allow_night_additions=data.get("allow_night_additions", False),
    )


class SqlStorage:
    """
    Storage backed by a SQLAlchemy session.

    save() checks the loaded version against the stored row and relies on
    the mapper's version_id_col for the final compare-and-swap: a concurrent
    writer surfaces as StaleDataError, mapped to ConcurrentModificationError.
    """

    def __init__(self, db: Session):
        self.db = db

    def _account_row(self, account_id: str) -> Optional[AccountRecord]:
        return (
            self.db.query(AccountRecord)
            .filter(AccountRecord.id == account_id)
            .populate_existing()
            .first()
        )

    def load(self, account_id: str) -> AccountSnapshot:
        row = self._account_row(account_id)
        if row is None:
            raise AccountNotFoundError(account_id)
        return self._to_snapshot(row)

    def save(self, snapshot: AccountSnapshot) -> AccountSnapshot:
        row = self._account_row(snapshot.id)
        stored_version = row.version if row is not None else 0
        if stored_version != snapshot.version:
            raise ConcurrentModificationError(
                f"Account {snapshot.id} is at version {stored_version}, snapshot was derived from {snapshot.version}"
            )

        if row is None:
            row = AccountRecord(id=snapshot.id, owner_id=snapshot.owner_id, created_at=snapshot.created_at)
            self.db.add(row)

        row.balance = snapshot.balance
        row.limits = limits_to_json(snapshot.limits)
        row.version = snapshot.version + 1
        self._sync_payees(row, snapshot)
        self._sync_ledger(row, snapshot)
        self._sync_locked_funds(row, snapshot)

        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrentModificationError(f"Account {snapshot.id} was modified concurrently") from e

        return replace(snapshot, version=snapshot.version + 1)

    def _sync_payees(self, row: AccountRecord, snapshot: AccountSnapshot) -> None:
        existing = {p.id: p for p in row.payees}
        for payee in snapshot.payees:
            record = existing.get(payee.id)
            if record is None:
                record = PayeeRecord(id=payee.id)
                row.payees.append(record)
            record.display_name = payee.display_name
            record.account_number = payee.account_number
            record.trusted = payee.trusted
            record.merchant_category = payee.merchant_category.value if payee.merchant_category else None
            record.added_at = payee.added_at

    def _sync_ledger(self, row: AccountRecord, snapshot: AccountSnapshot) -> None:
        # Ledger is append-only: only entries beyond the stored length are new
        stored = len(row.transactions)
        for position, tx in enumerate(snapshot.transactions[stored:], start=stored):
            row.transactions.append(
                LedgerEntryRecord(
                    id=tx.id,
                    position=position,
                    amount=tx.amount,
                    category=tx.category.value,
                    timestamp=tx.timestamp,
                    to_payee_id=tx.to_payee_id,
                    status=tx.status.value,
                    purpose_tag=tx.purpose_tag.value if tx.purpose_tag else None,
                    withdrawal=tx.withdrawal,
                )
            )

    def _sync_locked_funds(self, row: AccountRecord, snapshot: AccountSnapshot) -> None:
        existing = {f.purpose: f for f in row.locked_funds}
        wanted = {purpose.value: amount for purpose, amount in snapshot.locked_funds.items()}
        for purpose, record in existing.items():
            if purpose not in wanted:
                row.locked_funds.remove(record)
        for purpose, amount in wanted.items():
            record = existing.get(purpose)
            if record is None:
                row.locked_funds.append(LockedFundRecord(purpose=purpose, amount=amount))
            else:
                record.amount = amount

    def _to_snapshot(self, row: AccountRecord) -> AccountSnapshot:
        return AccountSnapshot(
            id=row.id,
            owner_id=row.owner_id,
            limits=limits_from_json(row.limits),
            created_at=row.created_at,
            balance=to_money(row.balance),
            locked_funds={PurposeTag(f.purpose): to_money(f.amount) for f in row.locked_funds},
            payees=tuple(
                Payee(
                    id=p.id,
                    display_name=p.display_name,
                    account_number=p.account_number,
                    added_at=p.added_at,
                    trusted=p.trusted,
                    merchant_category=Category(p.merchant_category) if p.merchant_category else None,
                )
                for p in sorted(row.payees, key=lambda p: p.added_at)
            ),
            transactions=tuple(
                Transaction(
                    id=t.id,
                    amount=to_money(t.amount),
                    category=Category(t.category),
                    timestamp=t.timestamp,
                    to_payee_id=t.to_payee_id,
                    status=TransactionStatus(t.status),
                    purpose_tag=PurposeTag(t.purpose_tag) if t.purpose_tag else None,
                    withdrawal=t.withdrawal,
                )
                for t in row.transactions
            ),
            version=row.version,
        )

    def load_baseline(self, account_id: str) -> Optional[BehaviorBaseline]:
        row = self.db.query(BaselineRecord).filter(BaselineRecord.account_id == account_id).first()
        if row is None:
            return None
        return BehaviorBaseline(
            account_id=row.account_id,
            avg_daily_transactions=row.avg_daily_transactions,
            avg_transaction_amount=to_money(row.avg_transaction_amount),
            common_categories={Category(c): n for c, n in row.common_categories.items()},
            common_time_ranges=tuple(TimeRange(start, end) for start, end in row.common_time_ranges),
            typical_payees=frozenset(row.typical_payees),
            last_updated=row.last_updated,
        )

    def save_baseline(self, baseline: BehaviorBaseline) -> None:
        self.db.merge(
            BaselineRecord(
                account_id=baseline.account_id,
                avg_daily_transactions=baseline.avg_daily_transactions,
                avg_transaction_amount=baseline.avg_transaction_amount,
                common_categories={c.value: n for c, n in baseline.common_categories.items()},
                common_time_ranges=[[r.start_hour, r.end_hour] for r in baseline.common_time_ranges],
                typical_payees=sorted(baseline.typical_payees),
                last_updated=baseline.last_updated,
            )
        )
        self.db.commit()

    def load_recent_patterns(self, account_id: str, since: datetime) -> List[BehaviorPattern]:
        rows = (
            self.db.query(PatternRecord)
            .filter(PatternRecord.account_id == account_id, PatternRecord.last_detected > since)
            .order_by(PatternRecord.last_detected.desc())
            .all()
        )
        return [
            BehaviorPattern(
                pattern_id=r.id,
                pattern_type=PatternType(r.pattern_type),
                severity=r.severity,
                occurrences=r.occurrences,
                first_detected=r.first_detected,
                last_detected=r.last_detected,
                metadata=r.extra_data or {},
            )
            for r in rows
        ]

    def save_pattern(self, account_id: str, pattern: BehaviorPattern) -> None:
        self.db.merge(
            PatternRecord(
                id=pattern.pattern_id,
                account_id=account_id,
                pattern_type=pattern.pattern_type.value,
                severity=pattern.severity,
                occurrences=pattern.occurrences,
                first_detected=pattern.first_detected,
                last_detected=pattern.last_detected,
                extra_data=dict(pattern.metadata),
            )
        )
        self.db.commit()

    def clear_patterns(self, account_id: str) -> None:
        self.db.query(PatternRecord).filter(PatternRecord.account_id == account_id).delete()
        self.db.commit()


class SqlAlertSink:
    """Persists alerts for later review by the parent"""

    def __init__(self, db: Session):
        self.db = db

    def emit(self, alert: Alert) -> None:
        self.db.add(
            AlertRecord(
                account_id=alert.account_id,
                alert_type=alert.alert_type.value,
                message=alert.message,
                timestamp=alert.timestamp,
                risk_level=alert.risk_score.level.value if alert.risk_score else None,
                risk_score=alert.risk_score.score if alert.risk_score else None,
                requires_action=alert.requires_action,
            )
        )
        self.db.commit()

    def recent_for_account(self, account_id: str, limit: int = 10) -> List[AlertRecord]:
        """Fetch recent alerts for an account"""
        return (
            self.db.query(AlertRecord)
            .filter(AlertRecord.account_id == account_id)
            .order_by(AlertRecord.timestamp.desc())
            .limit(limit)
            .all()
        )
