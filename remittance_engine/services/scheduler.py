"""Daily remittance scheduler: creates, closes, locks and settles cycles for every contract with work to do"""

import logging
import threading
import time
import uuid
from typing import Callable, List

from sqlalchemy.orm import Session

from remittance_engine.config import settings
from remittance_engine.domain.models import ContractStatus, CycleStatus, SchedulerRunSummary
from remittance_engine.domain.periods import compute_period_bounds
from remittance_engine.infrastructure.database.models import InvestorContract
from remittance_engine.infrastructure.database.repositories import ContractRepository, CycleRepository
from remittance_engine.infrastructure.observability.metrics import (
    scheduler_contract_failure_counter,
    scheduler_run_histogram,
)
from remittance_engine.services.cycles import RemittanceService
from remittance_engine.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class RemittanceScheduler:
    """
    Periodic pass over active contracts and superseded versions with unsettled cycles.

    Contracts are processed one at a time, each in its own session. A failure
    in one contract is logged and counted; the pass carries on with the next.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        interval_seconds: int | None = None,
        actor_id: str | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._interval = interval_seconds or settings.scheduler_interval_seconds
        self._actor_id = actor_id or settings.scheduler_actor_id
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def process_cycles(self) -> SchedulerRunSummary:
        """Run one pass (public for the manual trigger endpoint and tests)"""
        start_time = time.time()
        summary = SchedulerRunSummary()

        for contract_id in self._schedulable_contract_ids():
            summary.contracts_processed += 1
            session = self._session_factory()
            try:
                self._process_contract(session, contract_id, summary)
            except Exception:
                session.rollback()
                scheduler_contract_failure_counter.inc()
                summary.failed_contracts.append(str(contract_id))
                logger.exception("Scheduler failed for contract", extra={"contract_id": str(contract_id)})
            finally:
                session.close()

        scheduler_run_histogram.observe(time.time() - start_time)
        logger.info(
            "Scheduler pass complete",
            extra={
                "contracts_processed": summary.contracts_processed,
                "cycles_created": len(summary.cycles_created),
                "cycles_locked": len(summary.cycles_locked),
                "cycles_settled": len(summary.cycles_settled),
                "failed_contracts": len(summary.failed_contracts),
            },
        )
        return summary

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="remittance-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current pass to finish"""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.process_cycles()
            except Exception:
                logger.exception("Scheduler pass failed")
            self._stop_event.wait(timeout=self._interval)

    def _schedulable_contract_ids(self) -> List[uuid.UUID]:
        session = self._session_factory()
        try:
            return [c.id for c in ContractRepository(session).list_schedulable_contracts()]
        finally:
            session.close()

    def _process_contract(self, session: Session, contract_id: uuid.UUID, summary: SchedulerRunSummary) -> None:
        contract = ContractRepository(session).get_contract(contract_id)
        cycles = CycleRepository(session)
        service = RemittanceService(session, clock=self._clock)
        today = self._clock.today()

        # (a) open the current period once the previous cycle has settled; superseded versions only wind down
        if contract.status == ContractStatus.ACTIVE.value and self._should_create_cycle(contract, cycles):
            cycle = service.initiate_cycle(contract.id)
            summary.cycles_created.append(str(cycle.id))

        # (b) close, calculate and lock cycles whose period has ended
        for cycle in cycles.list_cycles(contract_id=contract.id, status=CycleStatus.OPEN.value):
            if cycle.period_end < today:
                service.calculate(cycle.id)
                service.lock(cycle.id)
                summary.cycles_locked.append(str(cycle.id))

        # (c) settle locked cycles that are due
        for cycle in cycles.list_cycles(contract_id=contract.id, status=CycleStatus.LOCKED.value):
            if cycle.settlement_date <= today:
                service.settle(cycle.id, self._actor_id)
                summary.cycles_settled.append(str(cycle.id))

    def _should_create_cycle(self, contract: InvestorContract, cycles: CycleRepository) -> bool:
        bounds = compute_period_bounds(contract.cutoff_day, self._clock.now())
        # Earlier versions read the same collections, so their cycles count
        if cycles.find_lineage_cycle_for_period(contract, bounds.period_start, bounds.period_end) is not None:
            return False
        latest = cycles.get_latest_lineage_cycle(contract)
        return latest is None or latest.status == CycleStatus.SETTLED.value
