"""Emergency override - time-boxed, parent-authorized bypass of spending caps"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from parental_guard.config import settings
from parental_guard.domain.models import AlertType
from parental_guard.services.alerts import AlertService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideWindow:
    expires_at: datetime
    authorizing_parent: str


class EmergencyOverrideGate:
    """
    Per-account override windows.

    Expiry is detected on read rather than scheduled: is_active() clears an
    expired window under the same lock it reads it with, so concurrent callers
    always agree. The override never bypasses the no-overdraft check.
    """

    def __init__(self, alerts: AlertService, default_minutes: int | None = None):
        self.alerts = alerts
        self.default_minutes = default_minutes if default_minutes is not None else settings.emergency_override_minutes
        self._lock = threading.Lock()
        self._windows: Dict[str, OverrideWindow] = {}

    def enable(self, account_id: str, parent_id: str, now: datetime, minutes: int | None = None) -> OverrideWindow:
        minutes = minutes if minutes is not None else self.default_minutes
        window = OverrideWindow(expires_at=now + timedelta(minutes=minutes), authorizing_parent=parent_id)
        with self._lock:
            self._windows[account_id] = window
        logger.info(
            "Emergency override enabled",
            extra={"account_id": account_id, "parent_id": parent_id, "minutes": minutes},
        )
        self.alerts.raise_alert(
            account_id,
            AlertType.EMERGENCY_OVERRIDE_USED,
            f"Emergency override active for {minutes} minutes by parent={parent_id}",
            now,
        )
        return window

    def disable(self, account_id: str, now: datetime) -> None:
        with self._lock:
            self._windows.pop(account_id, None)
        self.alerts.raise_alert(
            account_id, AlertType.GENERIC_NOTICE, f"Emergency override disabled for account={account_id}", now
        )

    def is_active(self, account_id: str, now: datetime) -> bool:
        """True strictly before expires_at; an expired window is cleared"""
        with self._lock:
            window = self._windows.get(account_id)
            if window is None:
                return False
            if now < window.expires_at:
                return True
            del self._windows[account_id]
        logger.info("Emergency override expired", extra={"account_id": account_id})
        return False

    def window_for(self, account_id: str) -> Optional[OverrideWindow]:
        """Stored window without expiry evaluation"""
        with self._lock:
            return self._windows.get(account_id)
