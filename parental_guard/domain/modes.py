"""Pre-configured safety modes. Each mode yields a whole new Limits value."""

from dataclasses import replace
from decimal import Decimal
from enum import Enum

from parental_guard.domain.models import Limits


class SafetyMode(str, Enum):
    SCHOOL_HOURS_SAFE = "school_hours_safe"
    MAX_SECURITY = "max_security"
    WEEKEND_EXPLORER = "weekend_explorer"


def limits_for_mode(current: Limits, mode: SafetyMode) -> Limits:
    """Derive the replacement limits for a mode, keeping unrelated settings"""
    if mode is SafetyMode.SCHOOL_HOURS_SAFE:
        return replace(current, per_transaction_max=Decimal("200"), monthly_max=Decimal("2000"))
    if mode is SafetyMode.MAX_SECURITY:
        return replace(
            current,
            per_transaction_max=Decimal("100"),
            monthly_max=Decimal("1000"),
            withdrawal_limits=replace(current.withdrawal_limits, daily=Decimal("200")),
        )
    if mode is SafetyMode.WEEKEND_EXPLORER:
        return replace(current, per_transaction_max=Decimal("2000"), monthly_max=Decimal("10000"))
    raise ValueError(f"Unknown safety mode {mode}")
