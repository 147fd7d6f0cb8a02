"""Category restriction windows set by automation rules"""

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from parental_guard.domain.automation import CategoryRestriction
from parental_guard.domain.models import Category

logger = logging.getLogger(__name__)


class CategoryRestrictionGate:
    """
    Per-account allow-lists with an expiry.

    Readers treat a window as over once now reaches expires_at. Expired
    windows stay stored until lift_expired() collects them, so the lift can
    still be reported to the parent.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._restrictions: Dict[str, CategoryRestriction] = {}

    def restrict(self, account_id: str, categories: Iterable[Category], expires_at: datetime) -> CategoryRestriction:
        restriction = CategoryRestriction(allowed=frozenset(categories), expires_at=expires_at)
        with self._lock:
            self._restrictions[account_id] = restriction
        logger.info(
            "Category restriction set",
            extra={
                "account_id": account_id,
                "allowed": sorted(c.value for c in restriction.allowed),
                "expires_at": expires_at.isoformat(),
            },
        )
        return restriction

    def active_for(self, account_id: str, now: datetime) -> Optional[CategoryRestriction]:
        with self._lock:
            restriction = self._restrictions.get(account_id)
        if restriction is None or not restriction.is_active(now):
            return None
        return restriction

    def lift(self, account_id: str) -> None:
        with self._lock:
            self._restrictions.pop(account_id, None)

    def lift_expired(self, now: datetime) -> List[str]:
        """Drop expired windows and return the accounts they belonged to"""
        with self._lock:
            expired = [a for a, r in self._restrictions.items() if not r.is_active(now)]
            for account_id in expired:
                del self._restrictions[account_id]
        for account_id in expired:
            logger.info("Category restriction lifted", extra={"account_id": account_id})
        return expired
