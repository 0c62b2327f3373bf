"""Remittance cycle commands: initiate, calculate, lock, settle, export and reporting"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from remittance_engine.domain.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from remittance_engine.domain.models import (
    CycleStatus,
    ExportFormat,
    RemittanceItem,
    WaterfallRuleSpec,
    WaterfallTotals,
)
from remittance_engine.domain.periods import compute_period_bounds, compute_settlement_date
from remittance_engine.domain.waterfall import aggregate_items, compute_waterfall
from remittance_engine.infrastructure.database.models import (
    ReconciliationSnapshot,
    RemittanceCycle,
    RemittanceExport,
    RemittanceItemRecord,
)
from remittance_engine.infrastructure.database.repositories import (
    CollectionRepository,
    ContractRepository,
    CycleRepository,
    SnapshotRepository,
)
from remittance_engine.infrastructure.observability.logging import log_cycle_event
from remittance_engine.infrastructure.observability.metrics import (
    record_transition,
    waterfall_calculation_histogram,
)
from remittance_engine.services.exports import ExportGenerator
from remittance_engine.services.settlement import SettlementPoster
from remittance_engine.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Summary view of one cycle"""

    cycle: RemittanceCycle
    loan_count: int
    totals: WaterfallTotals
    latest_reconciliation: Optional[ReconciliationSnapshot]


def _to_item(record: RemittanceItemRecord) -> RemittanceItem:
    return RemittanceItem(
        loan_id=record.loan_id,
        principal_minor=record.principal_minor,
        interest_minor=record.interest_minor,
        fees_minor=record.fees_minor,
        investor_share_minor=record.investor_share_minor,
        servicer_fee_minor=record.servicer_fee_minor,
        late_fee_servicer_minor=record.late_fee_servicer_minor,
        advance_minor=record.advance_minor,
        escrow_minor=record.escrow_minor,
        unapplied_minor=record.unapplied_minor,
    )


class RemittanceService:
    """Manual cycle commands; the scheduler drives the same methods"""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.contracts = ContractRepository(db)
        self.cycles = CycleRepository(db)
        self.collections = CollectionRepository(db)
        self.snapshots = SnapshotRepository(db)

    def _get_cycle_or_raise(self, cycle_id: uuid.UUID) -> RemittanceCycle:
        cycle = self.cycles.get_cycle(cycle_id)
        if cycle is None:
            raise NotFoundError(f"Cycle {cycle_id} not found")
        return cycle

    def initiate_cycle(self, contract_id: uuid.UUID) -> RemittanceCycle:
        """
        Create the cycle for the contract's current period.

        Idempotent: the (contract, period_start, period_end) triple is unique,
        so a repeat call (or a concurrent insert) returns the existing cycle.
        A cycle for the same period under another version of the contract is
        returned as well, since both would read the same collections.
        """
        contract = self.contracts.get_contract(contract_id)
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")

        bounds = compute_period_bounds(contract.cutoff_day, self.clock.now())
        existing = self.cycles.find_lineage_cycle_for_period(contract, bounds.period_start, bounds.period_end)
        if existing is not None:
            return existing

        try:
            cycle = self.cycles.create_cycle(
                contract_id=contract.id,
                period_start=bounds.period_start,
                period_end=bounds.period_end,
                settlement_date=compute_settlement_date(bounds.period_end, contract.remittance_day),
                created_at=self.clock.now(),
            )
            self.db.commit()
        except IntegrityError:
            # Lost the race on the period unique constraint
            self.db.rollback()
            existing = self.cycles.find_cycle_for_period(contract.id, bounds.period_start, bounds.period_end)
            if existing is None:
                raise
            logger.info("Cycle created concurrently", extra={"cycle_id": str(existing.id), "contract_id": str(contract_id)})
            return existing
        except Exception:
            self.db.rollback()
            raise

        record_transition(CycleStatus.OPEN.value)
        log_cycle_event(
            "created",
            str(cycle.id),
            str(contract.id),
            period_start=cycle.period_start.isoformat(),
            period_end=cycle.period_end.isoformat(),
            settlement_date=cycle.settlement_date.isoformat(),
        )
        return cycle

    def calculate(self, cycle_id: uuid.UUID) -> WaterfallTotals:
        """
        Run the waterfall for a cycle.

        - open: closed first, then calculated
        - closed: recomputed from collections; items replaced, totals persisted
        - locked/settled: persisted items re-aggregated, nothing written

        Raises:
            NotFoundError: unknown cycle
            ValidationError: bad collection data
            WaterfallImbalanceError: conservation check failed (nothing persisted)
        """
        cycle = self._get_cycle_or_raise(cycle_id)

        if cycle.status in (CycleStatus.LOCKED.value, CycleStatus.SETTLED.value):
            return aggregate_items([_to_item(r) for r in self.cycles.get_items(cycle.id)])

        start_time = time.time()
        closed_now = False
        try:
            if cycle.status == CycleStatus.OPEN.value:
                self.cycles.transition(cycle, CycleStatus.CLOSED, at=self.clock.now())
                closed_now = True

            contract = cycle.contract
            rules = [
                WaterfallRuleSpec(rank=r.rank, bucket=r.bucket, cap_minor=r.cap_minor)
                for r in self.contracts.get_rules(contract.id)
            ]
            # Consecutive periods can overlap; each collection belongs to the earliest cycle covering it
            window_start = cycle.period_start
            covered_through = self.cycles.get_covered_through(cycle)
            if covered_through is not None and covered_through > window_start:
                window_start = covered_through
            collections = self.collections.get_loan_collections(
                contract.investor_id, contract.product_code, window_start, cycle.period_end
            )
            result = compute_waterfall(
                contract.method,
                collections,
                rules,
                contract.servicer_fee_bps,
                contract.late_fee_split_bps,
            )

            self.cycles.replace_items(cycle, result.items)
            self.cycles.update_totals(cycle, result.totals, calculated_at=self.clock.now())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        waterfall_calculation_histogram.observe(time.time() - start_time)
        if closed_now:
            record_transition(CycleStatus.CLOSED.value)
        log_cycle_event(
            "calculated",
            str(cycle.id),
            str(cycle.contract_id),
            loan_count=len(result.items),
            investor_due_minor=result.totals.investor_due_minor,
            servicer_fee_minor=result.totals.servicer_fee_minor,
            servicer_advance_minor=result.totals.servicer_advance_minor,
        )
        return result.totals

    def lock(self, cycle_id: uuid.UUID) -> RemittanceCycle:
        """Freeze a calculated cycle (closed -> locked)"""
        cycle = self._get_cycle_or_raise(cycle_id)
        if cycle.status == CycleStatus.CLOSED.value and cycle.calculated_at is None:
            raise InvalidTransitionError(
                str(cycle.id), cycle.status, CycleStatus.LOCKED.value, "cycle has not been calculated"
            )

        try:
            self.cycles.transition(cycle, CycleStatus.LOCKED, at=self.clock.now())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        record_transition(CycleStatus.LOCKED.value)
        log_cycle_event("locked", str(cycle.id), str(cycle.contract_id))
        return cycle

    def settle(self, cycle_id: uuid.UUID, actor_id: str) -> RemittanceCycle:
        return SettlementPoster(self.db, clock=self.clock).post_settlement(cycle_id, actor_id)

    def export(self, cycle_id: uuid.UUID, export_format: ExportFormat | str) -> RemittanceExport:
        return ExportGenerator(self.db, clock=self.clock).create_export(cycle_id, export_format)

    def get_export(self, export_id: uuid.UUID) -> RemittanceExport:
        return ExportGenerator(self.db, clock=self.clock).get_export(export_id)

    def get_cycle(self, cycle_id: uuid.UUID) -> RemittanceCycle:
        return self._get_cycle_or_raise(cycle_id)

    def list_cycles(
        self,
        contract_id: Optional[uuid.UUID] = None,
        status: Optional[CycleStatus | str] = None,
    ) -> List[RemittanceCycle]:
        status_value = None
        if status is not None:
            try:
                status_value = CycleStatus(status).value
            except ValueError as e:
                raise ValidationError(f"Unknown cycle status: {status}") from e
        return self.cycles.list_cycles(contract_id=contract_id, status=status_value)

    def get_items(self, cycle_id: uuid.UUID) -> List[RemittanceItemRecord]:
        cycle = self._get_cycle_or_raise(cycle_id)
        return self.cycles.get_items(cycle.id)

    def get_report(self, cycle_id: uuid.UUID) -> CycleReport:
        cycle = self._get_cycle_or_raise(cycle_id)
        return CycleReport(
            cycle=cycle,
            loan_count=len(self.cycles.get_items(cycle.id)),
            totals=WaterfallTotals(
                total_principal_minor=cycle.total_principal_minor,
                total_interest_minor=cycle.total_interest_minor,
                total_fees_minor=cycle.total_fees_minor,
                servicer_fee_minor=cycle.servicer_fee_minor,
                investor_due_minor=cycle.investor_due_minor,
                servicer_advance_minor=cycle.servicer_advance_minor,
            ),
            latest_reconciliation=self.snapshots.latest_for_cycle(cycle.id),
        )
