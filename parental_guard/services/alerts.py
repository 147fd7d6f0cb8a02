"""Alert creation and best-effort delivery"""

import logging
from datetime import datetime
from typing import Optional

from parental_guard.domain.models import Alert, AlertType, RiskScore
from parental_guard.domain.ports import AlertSink
from parental_guard.infrastructure.observability.metrics import alert_failure_counter, alerts_emitted_counter

logger = logging.getLogger(__name__)


class AlertService:
    """
    Builds alerts and hands them to the sink.

    Delivery is fire-and-forget: a failing sink is logged and counted but
    never fails the financial operation that raised the alert.
    """

    def __init__(self, sink: AlertSink):
        self.sink = sink

    def emit(self, alert: Alert) -> Alert:
        try:
            self.sink.emit(alert)
            alerts_emitted_counter.labels(alert_type=alert.alert_type.value).inc()
        except Exception:
            alert_failure_counter.inc()
            logger.exception(
                "Alert delivery failed",
                extra={"account_id": alert.account_id, "alert_type": alert.alert_type.value},
            )
        return alert

    def raise_alert(
        self,
        account_id: str,
        alert_type: AlertType,
        message: str,
        now: datetime,
        risk_score: Optional[RiskScore] = None,
        requires_action: bool = False,
    ) -> Alert:
        """Create and emit an alert"""
        return self.emit(
            Alert(
                account_id=account_id,
                alert_type=alert_type,
                message=message,
                timestamp=now,
                risk_score=risk_score,
                requires_action=requires_action,
            )
        )
