"""Reconciliation endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from remittance_engine.api.dependencies import get_clock, parse_uuid
from remittance_engine.api.v1.schemas import ActorRequest, SnapshotListResponse, SnapshotResponse
from remittance_engine.infrastructure.database.session import get_db
from remittance_engine.services.cycles import RemittanceService
from remittance_engine.services.reconciliation import ReconciliationService
from remittance_engine.utils.clock import Clock

router = APIRouter()


@router.post("/cycles/{cycle_id}/reconcile", response_model=SnapshotResponse)
def reconcile_cycle(
    cycle_id: str,
    body: ActorRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Compare ledger postings with the cycle totals and record a snapshot.

    An imbalance is returned with is_balanced=false; it is not an error.
    """
    snapshot = ReconciliationService(db, clock=clock).reconcile(parse_uuid(cycle_id, "cycle_id"), body.user_id)
    return SnapshotResponse.from_record(snapshot)


@router.get("/cycles/{cycle_id}/reconciliation", response_model=SnapshotListResponse)
def reconciliation_history(cycle_id: str, db: Session = Depends(get_db)):
    """Snapshots for a cycle, newest first"""
    cycle_uuid = parse_uuid(cycle_id, "cycle_id")
    RemittanceService(db).get_cycle(cycle_uuid)
    snapshots = ReconciliationService(db).history(cycle_uuid)
    return SnapshotListResponse(snapshots=[SnapshotResponse.from_record(s) for s in snapshots])


@router.get("/reconciliation/unbalanced", response_model=SnapshotListResponse)
def list_unbalanced(db: Session = Depends(get_db)):
    """Outstanding exceptions: cycles whose latest snapshot is unbalanced"""
    snapshots = ReconciliationService(db).list_unbalanced()
    return SnapshotListResponse(snapshots=[SnapshotResponse.from_record(s) for s in snapshots])
