"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from parental_guard.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_verdict(
    account_id: str,
    step: str,
    outcome: str,
    amount: Optional[str] = None,
    risk_level: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log structured decision outcome for analysis"""
    logging.getLogger("parental_guard.decisions").info(
        "Verdict reached",
        extra={
            "account_id": account_id,
            "step": step,
            "outcome": outcome,
            "amount": amount,
            "risk_level": risk_level,
            "duration_ms": duration_ms,
        },
    )
