"""Wiring of the decision core around a storage and an alert sink"""

from dataclasses import dataclass

from parental_guard.config import settings
from parental_guard.domain.ports import AlertSink, Storage
from parental_guard.infrastructure.database.repositories import SqlAlertSink, SqlStorage
from parental_guard.infrastructure.database.session import SessionLocal, init_db
from parental_guard.infrastructure.observability.logging import setup_logging
from parental_guard.services.alerts import AlertService
from parental_guard.services.automation import ScheduledAutomationService
from parental_guard.services.credits import IncomingCreditService
from parental_guard.services.modes import SmartModesService
from parental_guard.services.orchestrator import TransactionOrchestrator
from parental_guard.services.override import EmergencyOverrideGate
from parental_guard.services.payees import PayeeGate
from parental_guard.services.purpose import PurposeFundAllocator
from parental_guard.services.restrictions import CategoryRestrictionGate
from parental_guard.services.risk import RiskEngine
from parental_guard.services.spending import SpendingControlService
from parental_guard.services.withdrawals import WithdrawalService


@dataclass
class GuardServices:
    alerts: AlertService
    emergency: EmergencyOverrideGate
    spending: SpendingControlService
    withdrawals: WithdrawalService
    payees: PayeeGate
    purpose: PurposeFundAllocator
    credits: IncomingCreditService
    modes: SmartModesService
    risk: RiskEngine
    orchestrator: TransactionOrchestrator
    restrictions: CategoryRestrictionGate
    automation: ScheduledAutomationService


def build_services(storage: Storage, sink: AlertSink) -> GuardServices:
    """Provide one consistent set of services sharing storage, alerts, override and restriction state"""
    alerts = AlertService(sink)
    emergency = EmergencyOverrideGate(alerts)
    restrictions = CategoryRestrictionGate()
    spending = SpendingControlService(storage, alerts, emergency, restrictions=restrictions)
    withdrawals = WithdrawalService(storage, alerts, emergency)
    payees = PayeeGate(storage, alerts, spending)
    purpose = PurposeFundAllocator(storage, alerts)
    credits = IncomingCreditService(storage, alerts)
    risk = RiskEngine(storage)
    modes = SmartModesService(storage, alerts)
    orchestrator = TransactionOrchestrator(
        storage, alerts, risk, spending, payees, purpose, withdrawals, credits
    )
    return GuardServices(
        alerts=alerts,
        emergency=emergency,
        spending=spending,
        withdrawals=withdrawals,
        payees=payees,
        purpose=purpose,
        credits=credits,
        modes=modes,
        risk=risk,
        orchestrator=orchestrator,
        restrictions=restrictions,
        automation=ScheduledAutomationService(storage, alerts, modes, risk, restrictions),
    )


def build_sql_services() -> GuardServices:
    """Production wiring: JSON logging, tables created, services over a fresh session"""
    setup_logging(settings.log_level)
    init_db()
    db = SessionLocal()
    return build_services(SqlStorage(db), SqlAlertSink(db))
