"""Remittance cycle endpoints: manual commands and read views"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from remittance_engine.api.dependencies import get_clock, get_request_id, parse_uuid
from remittance_engine.api.v1.schemas import (
    ActorRequest,
    CalculateResponse,
    CycleListResponse,
    CycleResponse,
    ExportRequest,
    ExportResponse,
    InitiateCycleRequest,
    ItemsResponse,
    RemittanceItemSchema,
    ReportResponse,
    SnapshotResponse,
    TotalsSchema,
)
from remittance_engine.infrastructure.database.session import get_db
from remittance_engine.services.cycles import RemittanceService
from remittance_engine.utils.clock import Clock

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/cycles/initiate", response_model=CycleResponse)
def initiate_cycle(
    body: InitiateCycleRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Create (or return) the cycle for the contract's current period"""
    cycle = RemittanceService(db, clock=clock).initiate_cycle(parse_uuid(body.contract_id, "contract_id"))
    logger.info("Cycle initiated", extra={"request_id": get_request_id(request), "cycle_id": str(cycle.id)})
    return CycleResponse.from_record(cycle)


@router.get("/cycles", response_model=CycleListResponse)
def list_cycles(
    contract_id: Optional[str] = Query(None, description="Filter by contract"),
    status: Optional[str] = Query(None, description="open | closed | locked | settled"),
    db: Session = Depends(get_db),
):
    contract_uuid = parse_uuid(contract_id, "contract_id") if contract_id else None
    cycles = RemittanceService(db).list_cycles(contract_id=contract_uuid, status=status)
    return CycleListResponse(cycles=[CycleResponse.from_record(c) for c in cycles])


@router.get("/cycles/{cycle_id}", response_model=CycleResponse)
def get_cycle(cycle_id: str, db: Session = Depends(get_db)):
    cycle = RemittanceService(db).get_cycle(parse_uuid(cycle_id, "cycle_id"))
    return CycleResponse.from_record(cycle)


@router.get("/cycles/{cycle_id}/items", response_model=ItemsResponse)
def get_items(cycle_id: str, db: Session = Depends(get_db)):
    """Per-loan split, ascending by loan id"""
    cycle_uuid = parse_uuid(cycle_id, "cycle_id")
    items = RemittanceService(db).get_items(cycle_uuid)
    return ItemsResponse(cycle_id=str(cycle_uuid), items=[RemittanceItemSchema.from_record(i) for i in items])


@router.get("/cycles/{cycle_id}/report", response_model=ReportResponse)
def get_report(cycle_id: str, db: Session = Depends(get_db)):
    report = RemittanceService(db).get_report(parse_uuid(cycle_id, "cycle_id"))
    latest = report.latest_reconciliation
    return ReportResponse(
        cycle=CycleResponse.from_record(report.cycle),
        loan_count=report.loan_count,
        totals=TotalsSchema.from_totals(report.totals),
        latest_reconciliation=SnapshotResponse.from_record(latest) if latest else None,
    )


@router.post("/cycles/{cycle_id}/calculate", response_model=CalculateResponse)
def calculate_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Run the waterfall; repeat calls return identical totals"""
    service = RemittanceService(db, clock=clock)
    cycle_uuid = parse_uuid(cycle_id, "cycle_id")
    totals = service.calculate(cycle_uuid)
    cycle = service.get_cycle(cycle_uuid)
    return CalculateResponse(cycle_id=str(cycle.id), status=cycle.status, totals=TotalsSchema.from_totals(totals))


@router.post("/cycles/{cycle_id}/lock", response_model=CycleResponse)
def lock_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    cycle = RemittanceService(db, clock=clock).lock(parse_uuid(cycle_id, "cycle_id"))
    return CycleResponse.from_record(cycle)


@router.post("/cycles/{cycle_id}/settle", response_model=CycleResponse)
def settle_cycle(
    cycle_id: str,
    body: ActorRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Post the locked cycle to the ledger and mark it settled"""
    cycle = RemittanceService(db, clock=clock).settle(parse_uuid(cycle_id, "cycle_id"), body.user_id)
    return CycleResponse.from_record(cycle)


@router.post("/cycles/{cycle_id}/export", response_model=ExportResponse)
def export_cycle(
    cycle_id: str,
    body: ExportRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    export = RemittanceService(db, clock=clock).export(parse_uuid(cycle_id, "cycle_id"), body.format)
    return ExportResponse(
        export_id=str(export.id),
        cycle_id=str(export.cycle_id),
        format=export.format,
        content_hash=export.content_hash,
    )
