"""In-process storage and alert sink

Both are guarded by a lock so concurrent callers see compare-and-swap
semantics on account snapshots.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from parental_guard.domain.exceptions import AccountNotFoundError, ConcurrentModificationError
from parental_guard.domain.models import AccountSnapshot, Alert, BehaviorBaseline, BehaviorPattern


class InMemoryStorage:
    """Storage keyed by account id with optimistic versioning"""

    def __init__(self):
        self._lock = threading.Lock()
        self._accounts: Dict[str, AccountSnapshot] = {}
        self._baselines: Dict[str, BehaviorBaseline] = {}
        self._patterns: Dict[str, Dict[str, BehaviorPattern]] = {}

    def load(self, account_id: str) -> AccountSnapshot:
        with self._lock:
            snapshot = self._accounts.get(account_id)
        if snapshot is None:
            raise AccountNotFoundError(account_id)
        return snapshot

    def save(self, snapshot: AccountSnapshot) -> AccountSnapshot:
        with self._lock:
            stored = self._accounts.get(snapshot.id)
            stored_version = stored.version if stored is not None else 0
            if stored_version != snapshot.version:
                raise ConcurrentModificationError(
                    f"Account {snapshot.id} is at version {stored_version}, snapshot was derived from {snapshot.version}"
                )
            saved = replace(snapshot, version=snapshot.version + 1)
            self._accounts[snapshot.id] = saved
            return saved

    def load_baseline(self, account_id: str) -> Optional[BehaviorBaseline]:
        with self._lock:
            return self._baselines.get(account_id)

    def save_baseline(self, baseline: BehaviorBaseline) -> None:
        with self._lock:
            self._baselines[baseline.account_id] = baseline

    def load_recent_patterns(self, account_id: str, since: datetime) -> List[BehaviorPattern]:
        with self._lock:
            patterns = list(self._patterns.get(account_id, {}).values())
        recent = [p for p in patterns if p.last_detected > since]
        return sorted(recent, key=lambda p: p.last_detected, reverse=True)

    def save_pattern(self, account_id: str, pattern: BehaviorPattern) -> None:
        with self._lock:
            self._patterns.setdefault(account_id, {})[pattern.pattern_id] = pattern

    def clear_patterns(self, account_id: str) -> None:
        with self._lock:
            self._patterns.pop(account_id, None)


class InMemoryAlertSink:
    """Collects emitted alerts, newest last"""

    def __init__(self):
        self._lock = threading.Lock()
        self._alerts: List[Alert] = []

    def emit(self, alert: Alert) -> None:
        with self._lock:
            self._alerts.append(alert)

    def for_account(self, account_id: str) -> List[Alert]:
        with self._lock:
            return [a for a in self._alerts if a.account_id == account_id]

    def high_priority(self, account_id: str) -> List[Alert]:
        return [a for a in self.for_account(account_id) if a.is_high_priority]

    def requiring_action(self, account_id: str) -> List[Alert]:
        return [a for a in self.for_account(account_id) if a.requires_action]

    def clear(self) -> None:
        with self._lock:
            self._alerts.clear()
