"""Prometheus metrics for verdict outcomes, risk levels, patterns and alert delivery"""

from prometheus_client import Counter, Histogram

# Decision metrics
verdict_counter = Counter(
    "guard_verdict_total",
    "Verdicts reached by the decision core",
    ["step", "outcome"],  # step: spend | transfer | purpose | withdrawal | credit | payee | risk_gate
)

risk_level_counter = Counter(
    "guard_risk_level_total",
    "Risk scores produced by level",
    ["level"],
)

pattern_counter = Counter(
    "guard_patterns_detected_total",
    "Behavioral patterns detected",
    ["pattern"],
)

# Automation metrics
automation_rule_counter = Counter(
    "guard_automation_rules_total",
    "Scheduled automation rules carried out",
    ["action", "success"],
)

# Alert metrics
alerts_emitted_counter = Counter(
    "guard_alerts_emitted_total",
    "Alerts handed to the alert sink",
    ["alert_type"],
)

alert_failure_counter = Counter(
    "alert_emit_failures_total",
    "Alert sink failures (alerts are best-effort)",
)

# Storage metrics
storage_conflict_counter = Counter(
    "guard_storage_conflicts_total",
    "Snapshot saves rejected by compare-and-swap",
)

evaluation_histogram = Histogram(
    "guard_evaluation_seconds",
    "Time to evaluate a transaction end to end",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0],
)


def record_verdict(step: str, outcome: str) -> None:
    verdict_counter.labels(step=step, outcome=outcome).inc()


def record_risk_score(level: str, pattern_types: list[str]) -> None:
    """Record the score level and any patterns that fed into it"""
    risk_level_counter.labels(level=level).inc()
    for pattern in pattern_types:
        pattern_counter.labels(pattern=pattern).inc()


def record_automation(action: str, success: bool) -> None:
    automation_rule_counter.labels(action=action, success=str(success).lower()).inc()
