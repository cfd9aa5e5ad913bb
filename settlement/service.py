"""
Settlement - Service Wiring.

Builds the settlement components from one configuration so the
API, the scheduler process and the CLI share the same graph.
"""

import random
from dataclasses import dataclass
from typing import Optional

from core.clock import ClockProtocol, ClockFactory
from database.engine import SessionFactoryType
from .alerting import SettlementAlerter
from .config import SettlementConfig
from .ledger import SqlBalanceLedger
from .positions import OpenPositionStore
from .reconciliation import SettlementIssueStore, PayoutReconciler
from .scheduler import SettlementScheduler
from .state_machine import TradeStateMachine


@dataclass
class SettlementServices:
    """Wired settlement components."""

    config: SettlementConfig
    state_machine: TradeStateMachine
    ledger: SqlBalanceLedger
    positions: OpenPositionStore
    issues: SettlementIssueStore
    scheduler: SettlementScheduler
    reconciler: PayoutReconciler
    alerter: SettlementAlerter


def build_settlement_services(
    config: Optional[SettlementConfig] = None,
    session_factory: Optional[SessionFactoryType] = None,
    clock: Optional[ClockProtocol] = None,
    rng: Optional[random.Random] = None,
) -> SettlementServices:
    """Create the settlement component graph."""
    config = config or SettlementConfig.from_env()
    clock = clock or ClockFactory.get_clock()

    state_machine = TradeStateMachine(
        session_factory=session_factory,
        clock=clock,
        config=config.decision,
        rng=rng,
        resolve_retry_limit=config.scheduler.resolve_retry_limit,
    )
    ledger = SqlBalanceLedger(session_factory, currency=config.ledger.currency)
    positions = OpenPositionStore(session_factory)
    issues = SettlementIssueStore(session_factory, clock=clock)
    alerter = SettlementAlerter(config.alerts)

    scheduler = SettlementScheduler(
        state_machine=state_machine,
        ledger=ledger,
        positions=positions,
        issues=issues,
        session_factory=session_factory,
        clock=clock,
        config=config,
        alerter=alerter,
    )
    reconciler = PayoutReconciler(
        ledger=ledger,
        issues=issues,
        session_factory=session_factory,
        payout_description=config.ledger.payout_description,
        max_attempts=config.ledger.reconcile_max_attempts,
    )

    return SettlementServices(
        config=config,
        state_machine=state_machine,
        ledger=ledger,
        positions=positions,
        issues=issues,
        scheduler=scheduler,
        reconciler=reconciler,
        alerter=alerter,
    )


__all__ = ["SettlementServices", "build_settlement_services"]
