"""Risk engine - baseline lifecycle, pattern storage and scoring"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from parental_guard.config import settings
from parental_guard.domain.behavior import RECENT_WINDOW, build_baseline, detect_patterns, merge_pattern, update_baseline
from parental_guard.domain.models import AccountSnapshot, BehaviorBaseline, BehaviorPattern, RiskScore, Transaction
from parental_guard.domain.ports import Storage
from parental_guard.domain.scoring import score_account, score_transaction
from parental_guard.infrastructure.observability.metrics import record_risk_score

logger = logging.getLogger(__name__)


class RiskEngine:
    """
    Scores transactions and accounts against the stored behavioral baseline.

    Scoring itself is pure; this class owns the read/write of baselines and
    patterns around it.
    """

    def __init__(
        self,
        storage: Storage,
        default_baseline_amount: Optional[Decimal] = None,
        merge_window_hours: Optional[int] = None,
    ):
        self.storage = storage
        self.default_baseline_amount = (
            default_baseline_amount if default_baseline_amount is not None else settings.default_baseline_amount
        )
        if merge_window_hours is None:
            merge_window_hours = settings.pattern_merge_window_hours
        self.merge_window = timedelta(hours=merge_window_hours)

    def get_or_create_baseline(self, snapshot: AccountSnapshot, now: datetime) -> BehaviorBaseline:
        baseline = self.storage.load_baseline(snapshot.id)
        if baseline is None:
            baseline = build_baseline(snapshot, now, self.default_baseline_amount)
            self.storage.save_baseline(baseline)
            logger.info("Baseline created", extra={"account_id": snapshot.id})
        return baseline

    def preview(self, snapshot: AccountSnapshot, tx: Transaction) -> Tuple[RiskScore, List[BehaviorPattern]]:
        """Score without persisting patterns (the baseline may still be created)"""
        baseline = self.get_or_create_baseline(snapshot, tx.timestamp)
        patterns = detect_patterns(snapshot, tx, baseline)
        return score_transaction(snapshot, tx, baseline, patterns), patterns

    def analyze_transaction(self, snapshot: AccountSnapshot, tx: Transaction) -> Tuple[RiskScore, List[BehaviorPattern]]:
        """Baseline, detect, score, then store the detected patterns merged with recent ones"""
        score, patterns = self.preview(snapshot, tx)

        existing = self.storage.load_recent_patterns(snapshot.id, tx.timestamp - self.merge_window)
        for pattern in patterns:
            merged = merge_pattern(existing, pattern, self.merge_window)
            self.storage.save_pattern(snapshot.id, merged)
            existing = [merged] + [p for p in existing if p.pattern_id != merged.pattern_id]

        record_risk_score(score.level.value, [p.pattern_type.value for p in patterns])
        logger.info(
            "Transaction scored",
            extra={
                "account_id": snapshot.id,
                "transaction_id": tx.id,
                "risk_score": score.score,
                "risk_level": score.level.value,
                "patterns": [p.pattern_type.value for p in patterns],
            },
        )
        return score, patterns

    def analyze_account(self, snapshot: AccountSnapshot, now: datetime) -> RiskScore:
        recent = self.recent_patterns(snapshot.id, now)
        score = score_account(snapshot, recent, now)
        record_risk_score(score.level.value, [])
        return score

    def update_baseline(self, snapshot: AccountSnapshot, now: datetime) -> BehaviorBaseline:
        baseline = update_baseline(self.get_or_create_baseline(snapshot, now), snapshot, now)
        self.storage.save_baseline(baseline)
        return baseline

    def recent_patterns(self, account_id: str, now: datetime, window: timedelta = RECENT_WINDOW) -> List[BehaviorPattern]:
        return self.storage.load_recent_patterns(account_id, now - window)
