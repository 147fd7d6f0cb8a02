"""Scheduled automation - runs parent-defined rules against the account state"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from parental_guard.domain.automation import (
    Action,
    AdjustLimitsAction,
    ApplyModeAction,
    AutomationSchedule,
    BlockTransactionsAction,
    RestrictToCategoryAction,
    ScheduleExecutionLog,
    ScheduleRule,
    SendAlertAction,
    TriggerContext,
    TriggerCoolingOffAction,
    blocking_limits,
    due_rules,
    scale_limits,
)
from parental_guard.domain.exceptions import AccountNotFoundError
from parental_guard.domain.models import AlertType, Limits
from parental_guard.domain.ports import Storage
from parental_guard.domain.verdicts import Outcome
from parental_guard.infrastructure.observability.metrics import record_automation
from parental_guard.services.alerts import AlertService
from parental_guard.services.modes import SmartModesService
from parental_guard.services.restrictions import CategoryRestrictionGate
from parental_guard.services.risk import RiskEngine

logger = logging.getLogger(__name__)

AUTOMATION_ACTOR = "automation"


class ScheduledAutomationService:
    """
    Evaluates each account's schedule and carries out the triggered actions.

    Flow per account:
    1. Score the account and collect its recent patterns
    2. Enabled rules whose trigger fires run highest priority first
    3. Each rule run is logged and reported to the parent

    Temporary limit changes remember the limits in force before the first of
    them. process_scheduled_restorations() puts those back once due and
    collects expired category restrictions.
    """

    def __init__(
        self,
        storage: Storage,
        alerts: AlertService,
        modes: SmartModesService,
        risk: RiskEngine,
        restrictions: CategoryRestrictionGate,
    ):
        self.storage = storage
        self.alerts = alerts
        self.modes = modes
        self.risk = risk
        self.restrictions = restrictions
        self._lock = threading.Lock()
        self._schedules: Dict[str, AutomationSchedule] = {}
        self._original_limits: Dict[str, Limits] = {}
        self._restore_at: Dict[str, datetime] = {}
        self._log: List[ScheduleExecutionLog] = []

    def save_schedule(self, schedule: AutomationSchedule) -> None:
        with self._lock:
            self._schedules[schedule.account_id] = schedule
        logger.info(
            "Automation schedule saved",
            extra={"account_id": schedule.account_id, "rules": len(schedule.rules), "enabled": schedule.enabled},
        )

    def schedule_for(self, account_id: str) -> Optional[AutomationSchedule]:
        with self._lock:
            return self._schedules.get(account_id)

    def execute_schedules(self, account_id: str, now: datetime) -> List[ScheduleExecutionLog]:
        schedule = self.schedule_for(account_id)
        if schedule is None or not schedule.enabled:
            return []
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            logger.warning("Automation schedule skipped, account not found", extra={"account_id": account_id})
            return []

        score = self.risk.analyze_account(snapshot, now)
        context = TriggerContext(
            snapshot=snapshot,
            now=now,
            patterns=self.risk.recent_patterns(account_id, now),
            risk_level=score.level,
        )
        entries = [self._run_rule(account_id, rule, now) for rule in due_rules(schedule, context)]

        with self._lock:
            current = self._schedules.get(account_id)
            if current is not None:
                self._schedules[account_id] = replace(current, last_executed=now)
        return entries

    def execute_all(self, now: datetime) -> List[ScheduleExecutionLog]:
        with self._lock:
            account_ids = list(self._schedules)
        entries: List[ScheduleExecutionLog] = []
        for account_id in account_ids:
            entries.extend(self.execute_schedules(account_id, now))
        return entries

    def process_scheduled_restorations(self, now: datetime) -> List[str]:
        """Restore limits whose time has come; returns the restored account ids"""
        with self._lock:
            due = [a for a, restore_at in self._restore_at.items() if now >= restore_at]
            pending = {a: self._original_limits.pop(a) for a in due}
            for account_id in due:
                del self._restore_at[account_id]

        restored = []
        for account_id, limits in pending.items():
            verdict = self.modes.update_limits(account_id, limits, AUTOMATION_ACTOR, now)
            if verdict.applied:
                self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, "Limits automatically restored", now)
                restored.append(account_id)
            elif verdict.outcome is Outcome.CONFLICT:
                with self._lock:
                    self._original_limits.setdefault(account_id, limits)
                    self._restore_at.setdefault(account_id, now)
                logger.warning("Limit restore deferred after concurrent update", extra={"account_id": account_id})
            else:
                logger.warning(
                    "Limit restore dropped",
                    extra={"account_id": account_id, "outcome": verdict.outcome.value},
                )

        for account_id in self.restrictions.lift_expired(now):
            self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, "Category restrictions lifted", now)
        return restored

    def restore_due_at(self, account_id: str) -> Optional[datetime]:
        with self._lock:
            return self._restore_at.get(account_id)

    def execution_log(self, account_id: Optional[str] = None) -> List[ScheduleExecutionLog]:
        with self._lock:
            return [e for e in self._log if account_id is None or e.account_id == account_id]

    def _run_rule(self, account_id: str, rule: ScheduleRule, now: datetime) -> ScheduleExecutionLog:
        success, message = self._perform(account_id, rule.action, now)
        if success:
            notice = f"Automated rule '{rule.name}' executed: {message}"
        else:
            notice = f"Failed to execute rule '{rule.name}': {message}"
        self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, notice, now)

        entry = ScheduleExecutionLog(
            rule_id=rule.id,
            account_id=account_id,
            executed_at=now,
            trigger=rule.trigger,
            action=rule.action,
            success=success,
            message=message,
        )
        with self._lock:
            self._log.append(entry)
        record_automation(type(rule.action).__name__, success)
        logger.info(
            "Automation rule executed" if success else "Automation rule failed",
            extra={"account_id": account_id, "rule_id": rule.id, "rule": rule.name, "priority": rule.priority},
        )
        return entry

    def _perform(self, account_id: str, action: Action, now: datetime) -> Tuple[bool, str]:
        if isinstance(action, ApplyModeAction):
            verdict = self.modes.apply_mode(account_id, action.mode, now)
            return verdict.applied, verdict.message

        if isinstance(action, AdjustLimitsAction):
            return self._change_limits(
                account_id,
                lambda limits: scale_limits(
                    limits,
                    action.monthly_multiplier,
                    action.per_transaction_multiplier,
                    action.withdrawal_multiplier,
                ),
                now,
                action.reset_after_hours,
            )

        if isinstance(action, SendAlertAction):
            self.alerts.raise_alert(
                account_id, action.alert_type, action.message, now, requires_action=action.requires_action
            )
            return True, action.message

        if isinstance(action, BlockTransactionsAction):
            success, message = self._change_limits(account_id, blocking_limits, now, action.duration_hours)
            if success:
                message = f"All transactions blocked for {action.duration_hours} hours: {action.reason}"
                self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, message, now, requires_action=True)
            return success, message

        if isinstance(action, RestrictToCategoryAction):
            self.restrictions.restrict(account_id, action.categories, now + timedelta(hours=action.duration_hours))
            allowed = ", ".join(sorted(c.value for c in action.categories))
            message = f"Spending restricted to {allowed} for {action.duration_hours} hours"
            self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, message, now)
            return True, message

        if isinstance(action, TriggerCoolingOffAction):
            message = f"Cooling-off triggered: {action.severity.value} - {action.reason}"
            self.alerts.raise_alert(account_id, AlertType.GENERIC_NOTICE, message, now)
            return True, message

        raise ValueError(f"Unknown automation action {action!r}")

    def _change_limits(
        self,
        account_id: str,
        transform: Callable[[Limits], Limits],
        now: datetime,
        restore_after_hours: Optional[int],
    ) -> Tuple[bool, str]:
        try:
            snapshot = self.storage.load(account_id)
        except AccountNotFoundError:
            return False, f"Account {account_id} not found"

        verdict = self.modes.update_limits(account_id, transform(snapshot.limits), AUTOMATION_ACTOR, now)
        if verdict.applied and restore_after_hours is not None:
            restore_at = now + timedelta(hours=restore_after_hours)
            with self._lock:
                self._original_limits.setdefault(account_id, snapshot.limits)
                self._restore_at[account_id] = max(restore_at, self._restore_at.get(account_id, restore_at))
        return verdict.applied, verdict.message
