"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Any, List, Optional


class WaterfallRuleSchema(BaseModel):
    """One ranked waterfall bucket"""

    rank: int = Field(..., description="Lower rank is paid first")
    bucket: str = Field(..., description="interest | principal | late_fees | escrow | recoveries")
    cap_minor: Optional[int] = Field(None, description="Per-loan cap for the bucket in cents")


class ContractRequest(BaseModel):
    """Request body for POST /v1/contracts and POST /v1/contracts/{id}/versions"""

    investor_id: str = Field(..., min_length=1, description="Investor identifier")
    product_code: str = Field(..., min_length=1, description="Loan product sold to the investor")
    method: str = Field(..., description="scheduled_p_i | actual_cash | scheduled_p_i_with_interest_shortfall")
    remittance_day: int = Field(..., description="Business days after period end to settle")
    cutoff_day: int = Field(..., description="Day of month the period closes")
    custodial_account_id: str = Field(..., min_length=1)
    servicer_fee_bps: int
    late_fee_split_bps: int
    waterfall_rules: List[WaterfallRuleSchema] = Field(default_factory=list)


class ContractResponse(BaseModel):
    contract_id: str
    investor_id: str
    product_code: str
    method: str
    remittance_day: int
    cutoff_day: int
    custodial_account_id: str
    servicer_fee_bps: int
    late_fee_split_bps: int
    version: int
    status: str
    supersedes_id: Optional[str] = None
    waterfall_rules: List[WaterfallRuleSchema]

    @classmethod
    def from_record(cls, contract: Any) -> "ContractResponse":
        return cls(
            contract_id=str(contract.id),
            investor_id=contract.investor_id,
            product_code=contract.product_code,
            method=contract.method,
            remittance_day=contract.remittance_day,
            cutoff_day=contract.cutoff_day,
            custodial_account_id=contract.custodial_account_id,
            servicer_fee_bps=contract.servicer_fee_bps,
            late_fee_split_bps=contract.late_fee_split_bps,
            version=contract.version,
            status=contract.status,
            supersedes_id=str(contract.supersedes_id) if contract.supersedes_id else None,
            waterfall_rules=[
                WaterfallRuleSchema(rank=r.rank, bucket=r.bucket, cap_minor=r.cap_minor) for r in contract.rules
            ],
        )


class ContractListResponse(BaseModel):
    contracts: List[ContractResponse]


class InitiateCycleRequest(BaseModel):
    """Request body for POST /v1/cycles/initiate"""

    contract_id: str = Field(..., description="Contract UUID")


class ActorRequest(BaseModel):
    """Request body for settle and reconcile commands"""

    user_id: str = Field(..., min_length=1, description="Operator performing the action")


class ExportRequest(BaseModel):
    """Request body for POST /v1/cycles/{id}/export"""

    format: str = Field(..., description="csv | xml")


class TotalsSchema(BaseModel):
    total_principal_minor: int
    total_interest_minor: int
    total_fees_minor: int
    servicer_fee_minor: int
    investor_due_minor: int
    servicer_advance_minor: int

    @classmethod
    def from_totals(cls, totals: Any) -> "TotalsSchema":
        """Works for both WaterfallTotals and a RemittanceCycle row"""
        return cls(
            total_principal_minor=totals.total_principal_minor,
            total_interest_minor=totals.total_interest_minor,
            total_fees_minor=totals.total_fees_minor,
            servicer_fee_minor=totals.servicer_fee_minor,
            investor_due_minor=totals.investor_due_minor,
            servicer_advance_minor=totals.servicer_advance_minor,
        )


class CycleResponse(BaseModel):
    """Remittance cycle with its persisted totals"""

    cycle_id: str
    contract_id: str
    period_start: date
    period_end: date
    settlement_date: date
    status: str
    totals: TotalsSchema
    calculated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    settled_by: Optional[str] = None

    @classmethod
    def from_record(cls, cycle: Any) -> "CycleResponse":
        return cls(
            cycle_id=str(cycle.id),
            contract_id=str(cycle.contract_id),
            period_start=cycle.period_start,
            period_end=cycle.period_end,
            settlement_date=cycle.settlement_date,
            status=cycle.status,
            totals=TotalsSchema.from_totals(cycle),
            calculated_at=cycle.calculated_at,
            closed_at=cycle.closed_at,
            locked_at=cycle.locked_at,
            settled_at=cycle.settled_at,
            settled_by=cycle.settled_by,
        )


class CycleListResponse(BaseModel):
    cycles: List[CycleResponse]


class CalculateResponse(BaseModel):
    """Response for POST /v1/cycles/{id}/calculate"""

    cycle_id: str
    status: str
    totals: TotalsSchema


class RemittanceItemSchema(BaseModel):
    loan_id: str
    principal_minor: int
    interest_minor: int
    fees_minor: int
    investor_share_minor: int
    servicer_fee_minor: int
    late_fee_servicer_minor: int
    advance_minor: int
    escrow_minor: int
    unapplied_minor: int

    @classmethod
    def from_record(cls, item: Any) -> "RemittanceItemSchema":
        return cls(**{name: getattr(item, name) for name in cls.model_fields})


class ItemsResponse(BaseModel):
    cycle_id: str
    items: List[RemittanceItemSchema]


class SnapshotResponse(BaseModel):
    """Reconciliation snapshot; diffs are rendered as strings of minor units"""

    snapshot_id: str
    cycle_id: str
    remit_investor_minor: int
    remit_servicer_minor: int
    gl_investor_minor: int
    gl_servicer_minor: int
    diff_investor_minor: str
    diff_servicer_minor: str
    diff_total_minor: str
    is_balanced: bool
    notes: Optional[str] = None
    created_by: str
    created_at: datetime

    @classmethod
    def from_record(cls, snapshot: Any) -> "SnapshotResponse":
        return cls(
            snapshot_id=str(snapshot.id),
            cycle_id=str(snapshot.cycle_id),
            remit_investor_minor=snapshot.remit_investor_minor,
            remit_servicer_minor=snapshot.remit_servicer_minor,
            gl_investor_minor=snapshot.gl_investor_minor,
            gl_servicer_minor=snapshot.gl_servicer_minor,
            diff_investor_minor=str(snapshot.diff_investor_minor),
            diff_servicer_minor=str(snapshot.diff_servicer_minor),
            diff_total_minor=str(snapshot.diff_total_minor),
            is_balanced=snapshot.is_balanced,
            notes=snapshot.notes,
            created_by=snapshot.created_by,
            created_at=snapshot.created_at,
        )


class SnapshotListResponse(BaseModel):
    snapshots: List[SnapshotResponse]


class ReportResponse(BaseModel):
    """Response for GET /v1/cycles/{id}/report"""

    cycle: CycleResponse
    loan_count: int
    totals: TotalsSchema
    latest_reconciliation: Optional[SnapshotResponse] = None


class ExportResponse(BaseModel):
    export_id: str
    cycle_id: str
    format: str
    content_hash: str


class SchedulerRunResponse(BaseModel):
    """Response for POST /v1/scheduler/run"""

    contracts_processed: int
    cycles_created: List[str]
    cycles_locked: List[str]
    cycles_settled: List[str]
    failed_contracts: List[str]
