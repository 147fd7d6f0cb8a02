"""Domain models - frozen dataclasses representing the supervised account"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from parental_guard.domain.exceptions import InvalidAmountError, InvalidStatusTransitionError
from parental_guard.domain.money import ZERO, sum_money


def new_id() -> str:
    return str(uuid.uuid4())


def _frozen_map(data: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(data or {}))


class Category(str, Enum):
    """Merchant / spending categories"""

    FOOD = "food"
    GROCERY = "grocery"
    TRANSPORT = "transport"
    TRAVEL = "travel"
    EDUCATION = "education"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    MEDICAL = "medical"
    GIFTS = "gifts"
    UTILITIES = "utilities"
    SAVINGS = "savings"
    INVESTMENT = "investment"
    INSURANCE = "insurance"
    CLOTHING = "clothing"
    PERSONAL_CARE = "personal_care"
    BOOKS = "books"
    TECHNOLOGY = "technology"
    OTHER = "other"
    CRYPTO = "crypto"
    GAMBLING = "gambling"


HIGH_RISK_CATEGORIES: FrozenSet[Category] = frozenset({Category.CRYPTO, Category.GAMBLING})


class PurposeTag(str, Enum):
    """Parent-assigned label for locked funds"""

    MEDICAL = "medical"
    TRAVEL = "travel"
    EMERGENCY = "emergency"
    EDUCATION = "education"
    EXAM_FEES = "exam_fees"
    MISC = "misc"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"
    REQUIRES_APPROVAL = "requires_approval"


# A transaction awaiting parent approval is still open; everything else is final
OPEN_STATUSES = frozenset({TransactionStatus.PENDING, TransactionStatus.REQUIRES_APPROVAL})


@dataclass(frozen=True)
class Transaction:
    """Single ledger entry. Immutable; status moves open -> terminal once."""

    amount: Decimal
    category: Category
    timestamp: datetime
    to_payee_id: Optional[str] = None  # None for withdrawals and plain spends
    status: TransactionStatus = TransactionStatus.PENDING
    purpose_tag: Optional[PurposeTag] = None
    withdrawal: bool = False
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if self.amount <= ZERO:
            raise InvalidAmountError(f"Transaction amount must be positive, got {self.amount}")

    def with_status(self, status: TransactionStatus) -> "Transaction":
        if self.status not in OPEN_STATUSES and status is not self.status:
            raise InvalidStatusTransitionError(
                f"Transaction {self.id} is already {self.status.value}"
            )
        return replace(self, status=status)

    @property
    def is_completed(self) -> bool:
        return self.status is TransactionStatus.COMPLETED


@dataclass(frozen=True)
class Payee:
    """Merchant or personal payee"""

    display_name: str
    account_number: str  # masked
    added_at: datetime
    trusted: bool = False
    merchant_category: Optional[Category] = None
    id: str = field(default_factory=new_id)

    def mark_trusted(self) -> "Payee":
        return replace(self, trusted=True)


@dataclass(frozen=True)
class WithdrawalLimits:
    daily: Optional[Decimal] = None
    weekly: Optional[Decimal] = None
    monthly: Optional[Decimal] = None


@dataclass(frozen=True)
class Limits:
    """
    Spending and withdrawal limits. Replaced wholesale, never edited in place.

    incoming_credit_multiplier scales (monthly + monthly withdrawal) into the
    incoming-credit cap.
    """

    per_transaction_max: Optional[Decimal] = None
    monthly_max: Optional[Decimal] = None
    per_category_max: Mapping[Category, Decimal] = field(default_factory=dict)
    withdrawal_limits: WithdrawalLimits = field(default_factory=WithdrawalLimits)
    incoming_credit_multiplier: int = 2
    allow_night_additions: bool = False

    def __post_init__(self):
        object.__setattr__(self, "per_category_max", _frozen_map(self.per_category_max))


@dataclass(frozen=True)
class AccountSnapshot:
    """
    Immutable view of a minor's account.

    Every mutator returns a new snapshot. `version` is the storage
    compare-and-swap token and is only bumped by Storage.save.
    """

    id: str
    owner_id: str
    limits: Limits
    created_at: datetime
    balance: Decimal = ZERO
    locked_funds: Mapping[PurposeTag, Decimal] = field(default_factory=dict)
    payees: Tuple[Payee, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    version: int = 0

    def __post_init__(self):
        object.__setattr__(self, "locked_funds", _frozen_map(self.locked_funds))
        object.__setattr__(self, "payees", tuple(self.payees))
        object.__setattr__(self, "transactions", tuple(self.transactions))

    @property
    def total_locked(self) -> Decimal:
        return sum_money(self.locked_funds.values())

    @property
    def available_balance(self) -> Decimal:
        return self.balance - self.total_locked

    def locked_for(self, purpose: PurposeTag) -> Decimal:
        return self.locked_funds.get(purpose, ZERO)

    def find_payee(self, payee_id: str) -> Optional[Payee]:
        return next((p for p in self.payees if p.id == payee_id), None)

    def completed_transactions(self) -> Tuple[Transaction, ...]:
        return tuple(t for t in self.transactions if t.is_completed)

    def add_funds(self, amount: Decimal) -> "AccountSnapshot":
        return replace(self, balance=self.balance + amount)

    def deduct_funds(self, amount: Decimal, tx: Transaction) -> "AccountSnapshot":
        """Pure ledger update; limit and balance validation belong to the evaluators"""
        return replace(self, balance=self.balance - amount, transactions=self.transactions + (tx,))

    def lock_funds(self, purpose: PurposeTag, amount: Decimal) -> "AccountSnapshot":
        locked = dict(self.locked_funds)
        locked[purpose] = locked.get(purpose, ZERO) + amount
        return replace(self, locked_funds=locked)

    def unlock_funds(self, purpose: PurposeTag, amount: Decimal) -> "AccountSnapshot":
        locked = dict(self.locked_funds)
        remaining = max(locked.get(purpose, ZERO) - amount, ZERO)
        if remaining == ZERO:
            locked.pop(purpose, None)
        else:
            locked[purpose] = remaining
        return replace(self, locked_funds=locked)

    def upsert_payee(self, payee: Payee) -> "AccountSnapshot":
        others = tuple(p for p in self.payees if p.id != payee.id)
        return replace(self, payees=others + (payee,))

    def mark_payee_trusted(self, payee_id: str) -> "AccountSnapshot":
        return replace(
            self,
            payees=tuple(p.mark_trusted() if p.id == payee_id else p for p in self.payees),
        )

    def with_limits(self, limits: Limits) -> "AccountSnapshot":
        return replace(self, limits=limits)


# --- Behavior & risk -------------------------------------------------------


class PatternType(str, Enum):
    SUDDEN_SPENDING_INCREASE = "sudden_spending_increase"
    UNUSUAL_TIME_ACTIVITY = "unusual_time_activity"
    REPEATED_FAILED_AUTH = "repeated_failed_auth"
    RAPID_PAYEE_ADDITIONS = "rapid_payee_additions"
    HIGH_RISK_MERCHANT_FREQUENCY = "high_risk_merchant_frequency"
    GEOGRAPHIC_ANOMALY = "geographic_anomaly"
    VELOCITY_ANOMALY = "velocity_anomaly"
    SOCIAL_ENGINEERING_INDICATORS = "social_engineering_indicators"
    ACCOUNT_TAKEOVER = "account_takeover"
    UNUSUAL_CATEGORY_SHIFT = "unusual_category_shift"


@dataclass(frozen=True)
class BehaviorPattern:
    """Detected behavioral anomaly"""

    pattern_type: PatternType
    severity: float  # 0.0 to 1.0
    occurrences: int
    first_detected: datetime
    last_detected: datetime
    metadata: Mapping[str, str] = field(default_factory=dict)
    pattern_id: str = field(default_factory=new_id)

    def __post_init__(self):
        object.__setattr__(self, "metadata", _frozen_map(self.metadata))


@dataclass(frozen=True)
class TimeRange:
    """Half-open hour range [start_hour, end_hour)"""

    start_hour: int
    end_hour: int

    def contains(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour


@dataclass(frozen=True)
class BehaviorBaseline:
    """Rolling statistical profile of normal behavior for an account"""

    account_id: str
    avg_daily_transactions: float
    avg_transaction_amount: Decimal
    common_categories: Mapping[Category, int]
    common_time_ranges: Tuple[TimeRange, ...]
    typical_payees: FrozenSet[str]
    last_updated: datetime

    def __post_init__(self):
        object.__setattr__(self, "common_categories", _frozen_map(self.common_categories))
        object.__setattr__(self, "common_time_ranges", tuple(self.common_time_ranges))
        object.__setattr__(self, "typical_payees", frozenset(self.typical_payees))


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class RiskFactor:
    """Individual contribution to the overall score"""

    name: str
    weight: float
    detected: bool
    description: str


@dataclass(frozen=True)
class RiskScore:
    """Output of risk assessment"""

    level: RiskLevel
    score: float  # 0.0 to 1.0
    factors: Tuple[RiskFactor, ...]
    recommendation: str
    timestamp: datetime


# --- Alerts ------------------------------------------------------------------


class AlertType(str, Enum):
    LARGE_TRANSACTION = "large_transaction"
    UNUSUAL_MERCHANT = "unusual_merchant"
    NEW_PAYEE_ADDED = "new_payee_added"
    PAYEE_TRUSTED = "payee_trusted"
    UNKNOWN_PAYEE_TRANSFER = "unknown_payee_transfer"
    REPEATED_PAYMENTS_TO_UNKNOWN_PAYEE = "repeated_payments_to_unknown_payee"
    INCOMING_CREDIT_EXCEEDED = "incoming_credit_exceeded"
    NIGHT_TIME_ACTIVITY = "night_time_activity"
    WITHDRAWAL_EXCEEDED = "withdrawal_exceeded"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    REQUIRES_PARENT_APPROVAL = "requires_parent_approval"
    PURPOSE_FUNDS_TAGGED = "purpose_funds_tagged"
    PURPOSE_MISMATCH = "purpose_mismatch"
    EMERGENCY_OVERRIDE_USED = "emergency_override_used"
    FRAUD_SUSPECTED = "fraud_suspected"
    GENERIC_NOTICE = "generic_notice"
    BEHAVIORAL_ANOMALY = "behavioral_anomaly"
    HIGH_RISK_SCORE = "high_risk_score"
    SOCIAL_ENGINEERING_DETECTED = "social_engineering_detected"
    VELOCITY_ANOMALY_DETECTED = "velocity_anomaly_detected"
    BASELINE_DEVIATION = "baseline_deviation"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_HIGH_PRIORITY_TYPES = frozenset(
    {
        AlertType.FRAUD_SUSPECTED,
        AlertType.HIGH_RISK_SCORE,
        AlertType.SOCIAL_ENGINEERING_DETECTED,
        AlertType.REQUIRES_PARENT_APPROVAL,
    }
)

_TYPE_SEVERITY: Dict[AlertType, AlertSeverity] = {
    AlertType.FRAUD_SUSPECTED: AlertSeverity.CRITICAL,
    AlertType.SOCIAL_ENGINEERING_DETECTED: AlertSeverity.HIGH,
    AlertType.HIGH_RISK_SCORE: AlertSeverity.HIGH,
    AlertType.REQUIRES_PARENT_APPROVAL: AlertSeverity.HIGH,
    AlertType.WITHDRAWAL_EXCEEDED: AlertSeverity.MEDIUM,
    AlertType.INCOMING_CREDIT_EXCEEDED: AlertSeverity.MEDIUM,
    AlertType.BEHAVIORAL_ANOMALY: AlertSeverity.MEDIUM,
    AlertType.VELOCITY_ANOMALY_DETECTED: AlertSeverity.MEDIUM,
}


@dataclass(frozen=True)
class Alert:
    """Parent notification. Created, emitted, never mutated."""

    account_id: str
    alert_type: AlertType
    message: str
    timestamp: datetime
    risk_score: Optional[RiskScore] = None
    requires_action: bool = False

    @property
    def is_high_priority(self) -> bool:
        return self.alert_type in _HIGH_PRIORITY_TYPES

    @property
    def severity(self) -> AlertSeverity:
        if self.risk_score is not None:
            return AlertSeverity(self.risk_score.level.value)
        return _TYPE_SEVERITY.get(self.alert_type, AlertSeverity.LOW)


@dataclass(frozen=True)
class AccountStats:
    """Summary of balances and risk metrics for an account"""

    account_id: str
    balance: Decimal
    available_balance: Decimal
    locked_funds: Decimal
    total_transactions: int
    trusted_payees: int
    total_payees: int
    recent_pattern_count: int
    avg_transaction_amount: Optional[Decimal]
    last_baseline_update: Optional[datetime]
