"""Reconciliation of posted ledger totals against calculated cycle totals"""

import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from remittance_engine.domain.exceptions import NotFoundError, ReconciliationException
from remittance_engine.domain.models import AccountRole
from remittance_engine.infrastructure.database.ledger import LedgerRepository, SqlLedgerRepository
from remittance_engine.infrastructure.database.models import ReconciliationSnapshot
from remittance_engine.infrastructure.database.repositories import CycleRepository, SnapshotRepository
from remittance_engine.infrastructure.observability.logging import log_cycle_event, log_reconciliation_exception
from remittance_engine.infrastructure.observability.metrics import record_reconciliation
from remittance_engine.services.settlement import settlement_correlation_id
from remittance_engine.utils.clock import Clock, SystemClock


class ReconciliationService:
    """Records append-only snapshots comparing GL movements to remittance totals"""

    def __init__(self, db: Session, clock: Clock | None = None, ledger: LedgerRepository | None = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.ledger = ledger or SqlLedgerRepository(db)
        self.cycles = CycleRepository(db)
        self.snapshots = SnapshotRepository(db)

    def reconcile(self, cycle_id: uuid.UUID, actor_id: str) -> ReconciliationSnapshot:
        """
        Compare the ledger with the cycle and record a snapshot.

        Ledger side: net credits to investor payable and servicer fee income
        for the cycle's settlement entries. Remittance side: the cycle's
        investor_due_minor and servicer_fee_minor. Diffs are GL - remittance.

        An imbalance is recorded and logged for manual review, never raised.

        Raises:
            NotFoundError: unknown cycle
        """
        cycle = self.cycles.get_cycle(cycle_id)
        if cycle is None:
            raise NotFoundError(f"Cycle {cycle_id} not found")

        gl = self.ledger.net_credits_by_role(settlement_correlation_id(cycle.id))
        gl_investor = gl[AccountRole.INVESTOR_PAYABLE]
        gl_servicer = gl[AccountRole.SERVICER_FEE_INCOME]
        remit_investor = cycle.investor_due_minor
        remit_servicer = cycle.servicer_fee_minor

        diff_investor = gl_investor - remit_investor
        diff_servicer = gl_servicer - remit_servicer
        diff_total = (gl_investor + gl_servicer) - (remit_investor + remit_servicer)
        is_balanced = diff_investor == 0 and diff_servicer == 0 and diff_total == 0

        snapshot = ReconciliationSnapshot(
            cycle_id=cycle.id,
            remit_investor_minor=remit_investor,
            remit_servicer_minor=remit_servicer,
            gl_investor_minor=gl_investor,
            gl_servicer_minor=gl_servicer,
            diff_investor_minor=diff_investor,
            diff_servicer_minor=diff_servicer,
            diff_total_minor=diff_total,
            is_balanced=is_balanced,
            notes="Reconciliation passed - zero variance" if is_balanced else "Variance detected - manual review",
            created_by=actor_id,
            created_at=self.clock.now(),
        )
        try:
            self.snapshots.create_snapshot(snapshot)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        record_reconciliation(is_balanced)
        if is_balanced:
            log_cycle_event("reconciled", str(cycle.id), str(cycle.contract_id), actor_id=actor_id)
        else:
            log_reconciliation_exception(
                ReconciliationException(str(cycle.id), diff_investor, diff_servicer, diff_total),
                snapshot_id=str(snapshot.id),
            )
        return snapshot

    def history(self, cycle_id: uuid.UUID) -> List[ReconciliationSnapshot]:
        return self.snapshots.list_for_cycle(cycle_id)

    def latest(self, cycle_id: uuid.UUID) -> Optional[ReconciliationSnapshot]:
        return self.snapshots.latest_for_cycle(cycle_id)

    def list_unbalanced(self) -> List[ReconciliationSnapshot]:
        """Outstanding exceptions: cycles whose latest reconciliation is unbalanced"""
        return self.snapshots.list_outstanding_unbalanced()
