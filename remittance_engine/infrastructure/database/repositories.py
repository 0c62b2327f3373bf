"""Data access layer for remittance entities"""

import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session
from remittance_engine.infrastructure.database.models import (
    InvestorContract,
    InvestorWaterfallRule,
    LoanCollection as LoanCollectionRecord,
    LoanScheduleEntry,
    ReconciliationSnapshot,
    RemittanceCycle,
    RemittanceExport,
    RemittanceItemRecord,
)
from remittance_engine.domain.cycle_state import ensure_transition
from remittance_engine.domain.models import (
    ContractSpec,
    ContractStatus,
    CycleStatus,
    LoanCollection,
    RemittanceItem,
    WaterfallTotals,
)


class ContractRepository:
    """Repository for investor contracts and their waterfall rules"""

    def __init__(self, db: Session):
        self.db = db

    def create_contract(
        self,
        spec: ContractSpec,
        created_at: datetime,
        version: int = 1,
        supersedes_id: Optional[uuid.UUID] = None,
    ) -> InvestorContract:
        """Persist contract with its ranked rules"""
        db_contract = InvestorContract(
            investor_id=spec.investor_id,
            product_code=spec.product_code,
            method=spec.method.value,
            remittance_day=spec.remittance_day,
            cutoff_day=spec.cutoff_day,
            custodial_account_id=spec.custodial_account_id,
            servicer_fee_bps=spec.servicer_fee_bps,
            late_fee_split_bps=spec.late_fee_split_bps,
            version=version,
            status=ContractStatus.ACTIVE.value,
            supersedes_id=supersedes_id,
            created_at=created_at,
        )
        self.db.add(db_contract)
        self.db.flush()  # Get ID without committing

        for rule in spec.waterfall_rules:
            self.db.add(
                InvestorWaterfallRule(
                    contract_id=db_contract.id,
                    rank=rule.rank,
                    bucket=rule.bucket.value,
                    cap_minor=rule.cap_minor,
                )
            )
        self.db.flush()
        return db_contract

    def get_contract(self, contract_id: uuid.UUID) -> Optional[InvestorContract]:
        return self.db.query(InvestorContract).filter(InvestorContract.id == contract_id).first()

    def list_contracts(self, status: Optional[str] = None) -> List[InvestorContract]:
        """Contracts in creation order (deterministic scheduler order)"""
        query = self.db.query(InvestorContract)
        if status is not None:
            query = query.filter(InvestorContract.status == status)
        return query.order_by(InvestorContract.created_at, InvestorContract.id).all()

    def list_schedulable_contracts(self) -> List[InvestorContract]:
        """Active contracts plus superseded versions that still have unsettled cycles"""
        unsettled = select(RemittanceCycle.contract_id).where(RemittanceCycle.status != CycleStatus.SETTLED.value)
        return (
            self.db.query(InvestorContract)
            .filter(
                or_(
                    InvestorContract.status == ContractStatus.ACTIVE.value,
                    InvestorContract.id.in_(unsettled),
                )
            )
            .order_by(InvestorContract.created_at, InvestorContract.id)
            .all()
        )

    def get_rules(self, contract_id: uuid.UUID) -> List[InvestorWaterfallRule]:
        return (
            self.db.query(InvestorWaterfallRule)
            .filter(InvestorWaterfallRule.contract_id == contract_id)
            .order_by(InvestorWaterfallRule.rank)
            .all()
        )

    def mark_superseded(self, contract: InvestorContract) -> None:
        contract.status = ContractStatus.SUPERSEDED.value
        self.db.flush()


class CycleRepository:
    """Repository for remittance cycles and their items"""

    def __init__(self, db: Session):
        self.db = db

    def create_cycle(
        self,
        contract_id: uuid.UUID,
        period_start: date,
        period_end: date,
        settlement_date: date,
        created_at: datetime,
    ) -> RemittanceCycle:
        """Insert an open cycle; the period unique constraint rejects duplicates"""
        db_cycle = RemittanceCycle(
            contract_id=contract_id,
            period_start=period_start,
            period_end=period_end,
            settlement_date=settlement_date,
            status=CycleStatus.OPEN.value,
            created_at=created_at,
        )
        self.db.add(db_cycle)
        self.db.flush()
        return db_cycle

    def get_cycle(self, cycle_id: uuid.UUID) -> Optional[RemittanceCycle]:
        return self.db.query(RemittanceCycle).filter(RemittanceCycle.id == cycle_id).first()

    def get_cycle_for_update(self, cycle_id: uuid.UUID) -> Optional[RemittanceCycle]:
        """Fetch and row-lock the cycle (SELECT ... FOR UPDATE) for the rest of the transaction"""
        return (
            self.db.query(RemittanceCycle)
            .filter(RemittanceCycle.id == cycle_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def find_cycle_for_period(
        self, contract_id: uuid.UUID, period_start: date, period_end: date
    ) -> Optional[RemittanceCycle]:
        return (
            self.db.query(RemittanceCycle)
            .filter(
                RemittanceCycle.contract_id == contract_id,
                RemittanceCycle.period_start == period_start,
                RemittanceCycle.period_end == period_end,
            )
            .first()
        )

    def get_latest_cycle(self, contract_id: uuid.UUID) -> Optional[RemittanceCycle]:
        """Most recent cycle by period end"""
        return (
            self.db.query(RemittanceCycle)
            .filter(RemittanceCycle.contract_id == contract_id)
            .order_by(RemittanceCycle.period_end.desc(), RemittanceCycle.created_at.desc())
            .first()
        )

    def _lineage_query(self, contract: InvestorContract, *columns):
        """Cycles of every version sharing the contract's (investor_id, product_code) collection key"""
        return (
            self.db.query(*columns)
            .select_from(RemittanceCycle)
            .join(InvestorContract, RemittanceCycle.contract_id == InvestorContract.id)
            .filter(
                InvestorContract.investor_id == contract.investor_id,
                InvestorContract.product_code == contract.product_code,
            )
        )

    def find_lineage_cycle_for_period(
        self, contract: InvestorContract, period_start: date, period_end: date
    ) -> Optional[RemittanceCycle]:
        return (
            self._lineage_query(contract, RemittanceCycle)
            .filter(RemittanceCycle.period_start == period_start, RemittanceCycle.period_end == period_end)
            .order_by(InvestorContract.version)
            .first()
        )

    def get_latest_lineage_cycle(self, contract: InvestorContract) -> Optional[RemittanceCycle]:
        """Most recent cycle by period end across all versions of the contract"""
        return (
            self._lineage_query(contract, RemittanceCycle)
            .order_by(RemittanceCycle.period_end.desc(), RemittanceCycle.created_at.desc())
            .first()
        )

    def get_covered_through(self, cycle: RemittanceCycle) -> Optional[date]:
        """
        Latest period_end among earlier cycles reading the same collections.

        Versions of a contract share the (investor_id, product_code) key, so
        cycles created under a superseded version count as coverage too.
        """
        return (
            self._lineage_query(cycle.contract, func.max(RemittanceCycle.period_end))
            .filter(
                RemittanceCycle.id != cycle.id,
                RemittanceCycle.period_end < cycle.period_end,
            )
            .scalar()
        )

    def list_cycles(
        self,
        contract_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
    ) -> List[RemittanceCycle]:
        query = self.db.query(RemittanceCycle)
        if contract_id is not None:
            query = query.filter(RemittanceCycle.contract_id == contract_id)
        if status is not None:
            query = query.filter(RemittanceCycle.status == status)
        return query.order_by(RemittanceCycle.period_start, RemittanceCycle.period_end, RemittanceCycle.id).all()

    def get_items(self, cycle_id: uuid.UUID) -> List[RemittanceItemRecord]:
        """Items ascending by loan identifier"""
        return (
            self.db.query(RemittanceItemRecord)
            .filter(RemittanceItemRecord.cycle_id == cycle_id)
            .order_by(RemittanceItemRecord.loan_id)
            .all()
        )

    def replace_items(self, cycle: RemittanceCycle, items: Sequence[RemittanceItem]) -> None:
        """Swap the cycle's derived items for a fresh calculation"""
        self.db.query(RemittanceItemRecord).filter(RemittanceItemRecord.cycle_id == cycle.id).delete(
            synchronize_session=False
        )
        for item in items:
            self.db.add(
                RemittanceItemRecord(
                    cycle_id=cycle.id,
                    loan_id=item.loan_id,
                    principal_minor=item.principal_minor,
                    interest_minor=item.interest_minor,
                    fees_minor=item.fees_minor,
                    investor_share_minor=item.investor_share_minor,
                    servicer_fee_minor=item.servicer_fee_minor,
                    late_fee_servicer_minor=item.late_fee_servicer_minor,
                    advance_minor=item.advance_minor,
                    escrow_minor=item.escrow_minor,
                    unapplied_minor=item.unapplied_minor,
                )
            )
        self.db.flush()
        self.db.expire(cycle, ["items"])

    def update_totals(self, cycle: RemittanceCycle, totals: WaterfallTotals, calculated_at: datetime) -> None:
        cycle.total_principal_minor = totals.total_principal_minor
        cycle.total_interest_minor = totals.total_interest_minor
        cycle.total_fees_minor = totals.total_fees_minor
        cycle.servicer_fee_minor = totals.servicer_fee_minor
        cycle.investor_due_minor = totals.investor_due_minor
        cycle.servicer_advance_minor = totals.servicer_advance_minor
        cycle.calculated_at = calculated_at
        self.db.flush()

    def transition(self, cycle: RemittanceCycle, requested: CycleStatus, at: datetime) -> None:
        """
        Move a cycle to the next state, stamping the matching timestamp.

        Raises:
            InvalidTransitionError: requested is not the immediate successor
        """
        target = ensure_transition(str(cycle.id), cycle.status, requested)
        cycle.status = target.value
        if target == CycleStatus.CLOSED:
            cycle.closed_at = at
        elif target == CycleStatus.LOCKED:
            cycle.locked_at = at
        elif target == CycleStatus.SETTLED:
            cycle.settled_at = at
        self.db.flush()

    def compare_and_set_status(
        self,
        cycle_id: uuid.UUID,
        expected: CycleStatus,
        new: CycleStatus,
        **values,
    ) -> bool:
        """
        Conditional UPDATE ... WHERE status = expected.

        Returns False when another transaction already moved the cycle.
        """
        result = self.db.execute(
            update(RemittanceCycle)
            .where(RemittanceCycle.id == cycle_id, RemittanceCycle.status == expected.value)
            .values(status=new.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class CollectionRepository:
    """Read access to collections posted by the servicing core (plus writers for ingestion and tests)"""

    def __init__(self, db: Session):
        self.db = db

    def record_collection(
        self,
        investor_id: str,
        product_code: str,
        loan_id: str,
        effective_date: date,
        principal_minor: int = 0,
        interest_minor: int = 0,
        late_fees_minor: int = 0,
        escrow_minor: int = 0,
        recoveries_minor: int = 0,
    ) -> LoanCollectionRecord:
        record = LoanCollectionRecord(
            investor_id=investor_id,
            product_code=product_code,
            loan_id=loan_id,
            effective_date=effective_date,
            principal_minor=principal_minor,
            interest_minor=interest_minor,
            late_fees_minor=late_fees_minor,
            escrow_minor=escrow_minor,
            recoveries_minor=recoveries_minor,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def record_schedule(
        self,
        investor_id: str,
        product_code: str,
        loan_id: str,
        due_date: date,
        scheduled_principal_minor: int,
        scheduled_interest_minor: int,
    ) -> LoanScheduleEntry:
        record = LoanScheduleEntry(
            investor_id=investor_id,
            product_code=product_code,
            loan_id=loan_id,
            due_date=due_date,
            scheduled_principal_minor=scheduled_principal_minor,
            scheduled_interest_minor=scheduled_interest_minor,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_loan_collections(
        self,
        investor_id: str,
        product_code: str,
        period_start: date,
        period_end: date,
    ) -> List[LoanCollection]:
        """
        Per-loan collected and scheduled totals for period_start < date <= period_end.

        Loans with a schedule but no payment appear with zero collections.
        """
        collected_rows = (
            self.db.query(
                LoanCollectionRecord.loan_id,
                func.coalesce(func.sum(LoanCollectionRecord.principal_minor), 0),
                func.coalesce(func.sum(LoanCollectionRecord.interest_minor), 0),
                func.coalesce(func.sum(LoanCollectionRecord.late_fees_minor), 0),
                func.coalesce(func.sum(LoanCollectionRecord.escrow_minor), 0),
                func.coalesce(func.sum(LoanCollectionRecord.recoveries_minor), 0),
            )
            .filter(
                LoanCollectionRecord.investor_id == investor_id,
                LoanCollectionRecord.product_code == product_code,
                LoanCollectionRecord.effective_date > period_start,
                LoanCollectionRecord.effective_date <= period_end,
            )
            .group_by(LoanCollectionRecord.loan_id)
            .all()
        )
        scheduled_rows = (
            self.db.query(
                LoanScheduleEntry.loan_id,
                func.coalesce(func.sum(LoanScheduleEntry.scheduled_principal_minor), 0),
                func.coalesce(func.sum(LoanScheduleEntry.scheduled_interest_minor), 0),
            )
            .filter(
                LoanScheduleEntry.investor_id == investor_id,
                LoanScheduleEntry.product_code == product_code,
                LoanScheduleEntry.due_date > period_start,
                LoanScheduleEntry.due_date <= period_end,
            )
            .group_by(LoanScheduleEntry.loan_id)
            .all()
        )

        by_loan: Dict[str, LoanCollection] = {}
        for loan_id, principal, interest, late_fees, escrow, recoveries in collected_rows:
            by_loan[loan_id] = LoanCollection(
                loan_id=loan_id,
                principal_collected_minor=int(principal),
                interest_collected_minor=int(interest),
                late_fees_collected_minor=int(late_fees),
                escrow_collected_minor=int(escrow),
                recoveries_collected_minor=int(recoveries),
            )
        for loan_id, scheduled_principal, scheduled_interest in scheduled_rows:
            collection = by_loan.setdefault(loan_id, LoanCollection(loan_id=loan_id))
            collection.scheduled_principal_minor = int(scheduled_principal)
            collection.scheduled_interest_minor = int(scheduled_interest)

        return [by_loan[loan_id] for loan_id in sorted(by_loan)]


class ExportRepository:
    """Repository for generated export artifacts"""

    def __init__(self, db: Session):
        self.db = db

    def create_export(
        self,
        cycle_id: uuid.UUID,
        export_format: str,
        content: bytes,
        content_hash: str,
        created_at: datetime,
    ) -> RemittanceExport:
        db_export = RemittanceExport(
            cycle_id=cycle_id,
            format=export_format,
            content=content,
            content_hash=content_hash,
            created_at=created_at,
        )
        self.db.add(db_export)
        self.db.flush()
        return db_export

    def find_export(self, cycle_id: uuid.UUID, export_format: str, content_hash: str) -> Optional[RemittanceExport]:
        """Existing artifact with identical content, if any"""
        return (
            self.db.query(RemittanceExport)
            .filter(
                RemittanceExport.cycle_id == cycle_id,
                RemittanceExport.format == export_format,
                RemittanceExport.content_hash == content_hash,
            )
            .first()
        )

    def get_export(self, export_id: uuid.UUID) -> Optional[RemittanceExport]:
        return self.db.query(RemittanceExport).filter(RemittanceExport.id == export_id).first()


class SnapshotRepository:
    """Append-only store of reconciliation snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def create_snapshot(self, snapshot: ReconciliationSnapshot) -> ReconciliationSnapshot:
        """Append with the next per-cycle sequence number; (cycle_id, seq) is unique"""
        last_seq = (
            self.db.query(func.max(ReconciliationSnapshot.seq))
            .filter(ReconciliationSnapshot.cycle_id == snapshot.cycle_id)
            .scalar()
        )
        snapshot.seq = (last_seq or 0) + 1
        self.db.add(snapshot)
        self.db.flush()
        return snapshot

    def list_for_cycle(self, cycle_id: uuid.UUID) -> List[ReconciliationSnapshot]:
        """Newest first"""
        return (
            self.db.query(ReconciliationSnapshot)
            .filter(ReconciliationSnapshot.cycle_id == cycle_id)
            .order_by(ReconciliationSnapshot.seq.desc())
            .all()
        )

    def latest_for_cycle(self, cycle_id: uuid.UUID) -> Optional[ReconciliationSnapshot]:
        return (
            self.db.query(ReconciliationSnapshot)
            .filter(ReconciliationSnapshot.cycle_id == cycle_id)
            .order_by(ReconciliationSnapshot.seq.desc())
            .first()
        )

    def list_outstanding_unbalanced(self) -> List[ReconciliationSnapshot]:
        """Latest snapshot of every cycle whose most recent reconciliation failed"""
        latest: Dict[uuid.UUID, ReconciliationSnapshot] = {}
        snapshots = (
            self.db.query(ReconciliationSnapshot)
            .order_by(ReconciliationSnapshot.created_at.desc(), ReconciliationSnapshot.seq.desc())
            .all()
        )
        for snapshot in snapshots:
            current = latest.get(snapshot.cycle_id)
            if current is None or snapshot.seq > current.seq:
                latest[snapshot.cycle_id] = snapshot
        return [s for s in latest.values() if not s.is_balanced]
