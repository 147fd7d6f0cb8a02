"""Collaborator contracts the core depends on"""

from datetime import datetime
from typing import List, Optional, Protocol

from parental_guard.domain.models import AccountSnapshot, Alert, BehaviorBaseline, BehaviorPattern


class Storage(Protocol):
    """
    Per-account key-value store.

    save() is a compare-and-swap on snapshot.version: it raises
    ConcurrentModificationError when the stored version differs from the one
    the snapshot was derived from, and returns the snapshot with its bumped
    version on success. A snapshot with version 0 and no stored record is an
    insert.
    """

    def load(self, account_id: str) -> AccountSnapshot:
        """Raises AccountNotFoundError"""
        ...

    def save(self, snapshot: AccountSnapshot) -> AccountSnapshot:
        ...

    def load_baseline(self, account_id: str) -> Optional[BehaviorBaseline]:
        ...

    def save_baseline(self, baseline: BehaviorBaseline) -> None:
        ...

    def load_recent_patterns(self, account_id: str, since: datetime) -> List[BehaviorPattern]:
        """Patterns whose last_detected is after `since`, newest first"""
        ...

    def save_pattern(self, account_id: str, pattern: BehaviorPattern) -> None:
        """Upsert by pattern_id"""
        ...

    def clear_patterns(self, account_id: str) -> None:
        ...


class AlertSink(Protocol):
    """Fire-and-forget alert delivery"""

    def emit(self, alert: Alert) -> None:
        ...
