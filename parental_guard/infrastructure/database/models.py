"""SQLAlchemy ORM models for account snapshots, behavior data and alerts"""

import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime, Integer, Numeric, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

MONEY = Numeric(14, 2)


class AccountRecord(Base):
    """Supervised account. `version` is managed by the storage layer for compare-and-swap."""

    __tablename__ = "account"

    id = Column(String(64), primary_key=True)
    owner_id = Column(Text, nullable=False, index=True)
    balance = Column(MONEY, nullable=False, default=0)
    limits = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False)

    payees = relationship("PayeeRecord", back_populates="account", cascade="all, delete-orphan")
    transactions = relationship(
        "LedgerEntryRecord",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="LedgerEntryRecord.position",
    )
    locked_funds = relationship("LockedFundRecord", back_populates="account", cascade="all, delete-orphan")

    # Version values are assigned explicitly so that payee-only changes still bump the row
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}


class PayeeRecord(Base):
    __tablename__ = "payee"

    id = Column(String(64), primary_key=True)
    account_id = Column(String(64), ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    display_name = Column(Text, nullable=False)
    account_number = Column(Text, nullable=False)
    trusted = Column(Boolean, nullable=False, default=False)
    merchant_category = Column(Text, nullable=True)
    added_at = Column(DateTime, nullable=False)

    account = relationship("AccountRecord", back_populates="payees")


class LedgerEntryRecord(Base):
    """Append-only ledger row; `position` preserves append order"""

    __tablename__ = "ledger_transaction"

    id = Column(String(64), primary_key=True)
    account_id = Column(String(64), ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    amount = Column(MONEY, nullable=False)
    category = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    to_payee_id = Column(String(64), nullable=True)
    status = Column(Text, nullable=False)
    purpose_tag = Column(Text, nullable=True)
    withdrawal = Column(Boolean, nullable=False, default=False)

    account = relationship("AccountRecord", back_populates="transactions")


class LockedFundRecord(Base):
    __tablename__ = "locked_fund"

    account_id = Column(String(64), ForeignKey("account.id", ondelete="CASCADE"), primary_key=True)
    purpose = Column(String(32), primary_key=True)
    amount = Column(MONEY, nullable=False)

    account = relationship("AccountRecord", back_populates="locked_funds")


class BaselineRecord(Base):
    """Behavioral baseline, one row per account"""

    __tablename__ = "behavior_baseline"

    account_id = Column(String(64), primary_key=True)
    avg_daily_transactions = Column(Float, nullable=False)
    avg_transaction_amount = Column(MONEY, nullable=False)
    common_categories = Column(JSON, nullable=False)
    common_time_ranges = Column(JSON, nullable=False)
    typical_payees = Column(JSON, nullable=False)
    last_updated = Column(DateTime, nullable=False)


class PatternRecord(Base):
    """Detected behavior pattern, upserted by pattern id"""

    __tablename__ = "behavior_pattern"

    id = Column(String(64), primary_key=True)
    account_id = Column(String(64), nullable=False, index=True)
    pattern_type = Column(Text, nullable=False)
    severity = Column(Float, nullable=False)
    occurrences = Column(Integer, nullable=False)
    first_detected = Column(DateTime, nullable=False)
    last_detected = Column(DateTime, nullable=False, index=True)
    extra_data = Column(JSON, nullable=True)


class AlertRecord(Base):
    """Emitted parent alert"""

    __tablename__ = "alert"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(64), nullable=False, index=True)
    alert_type = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    risk_level = Column(Text, nullable=True)
    risk_score = Column(Float, nullable=True)
    requires_action = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
