"""Safety modes and direct limit updates"""

import logging
from datetime import datetime

from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.models import AlertType, Limits
from parental_guard.domain.modes import SafetyMode, limits_for_mode
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Verdict, applied
from parental_guard.services.alerts import AlertService
from parental_guard.services.common import account_missing, commit

logger = logging.getLogger(__name__)


class SmartModesService:
    def __init__(self, storage: Storage, alerts: AlertService):
        self.storage = storage
        self.alerts = alerts

    def apply_mode(self, account_id: str, mode: SafetyMode, now: datetime) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)
        return self._replace_limits(
            account_id, snapshot.with_limits(limits_for_mode(snapshot.limits, mode)), f"Applied mode {mode.value}", now
        )

    def update_limits(self, account_id: str, limits: Limits, parent_id: str, now: datetime) -> Verdict:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return account_missing(account_id)
        return self._replace_limits(
            account_id, snapshot.with_limits(limits), f"Limits updated by parent={parent_id}", now
        )

    def _replace_limits(self, account_id, updated, message, now) -> Verdict:
        verdict = commit(self.storage, applied(updated, message=message))
        if verdict.applied:
            logger.info(message, extra={"account_id": account_id})
            verdict = verdict.with_alerts(self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, message, now))
        return verdict
