"""Investor contract endpoints"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from remittance_engine.api.dependencies import get_clock, parse_uuid
from remittance_engine.api.v1.schemas import ContractListResponse, ContractRequest, ContractResponse
from remittance_engine.domain.models import ContractSpec, WaterfallRuleSpec
from remittance_engine.infrastructure.database.session import get_db
from remittance_engine.services.contracts import ContractRegistry
from remittance_engine.utils.clock import Clock

router = APIRouter()


def _to_spec(body: ContractRequest) -> ContractSpec:
    return ContractSpec(
        investor_id=body.investor_id,
        product_code=body.product_code,
        method=body.method,
        remittance_day=body.remittance_day,
        cutoff_day=body.cutoff_day,
        custodial_account_id=body.custodial_account_id,
        servicer_fee_bps=body.servicer_fee_bps,
        late_fee_split_bps=body.late_fee_split_bps,
        waterfall_rules=[
            WaterfallRuleSpec(rank=r.rank, bucket=r.bucket, cap_minor=r.cap_minor) for r in body.waterfall_rules
        ],
    )


@router.post("/contracts", response_model=ContractResponse, status_code=201)
def create_contract(
    body: ContractRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Register an investor contract with its ranked waterfall rules"""
    contract = ContractRegistry(db, clock=clock).create_contract(_to_spec(body))
    return ContractResponse.from_record(contract)


@router.get("/contracts", response_model=ContractListResponse)
def list_contracts(
    include_superseded: bool = Query(False, description="Include replaced contract versions"),
    db: Session = Depends(get_db),
):
    contracts = ContractRegistry(db).list_contracts(include_superseded=include_superseded)
    return ContractListResponse(contracts=[ContractResponse.from_record(c) for c in contracts])


@router.get("/contracts/{contract_id}", response_model=ContractResponse)
def get_contract(contract_id: str, db: Session = Depends(get_db)):
    contract = ContractRegistry(db).get_contract(parse_uuid(contract_id, "contract_id"))
    return ContractResponse.from_record(contract)


@router.post("/contracts/{contract_id}/versions", response_model=ContractResponse, status_code=201)
def supersede_contract(
    contract_id: str,
    body: ContractRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Create a new version of a contract.

    The previous version is marked superseded; its existing cycles keep it.
    """
    registry = ContractRegistry(db, clock=clock)
    contract = registry.supersede_contract(parse_uuid(contract_id, "contract_id"), _to_spec(body))
    return ContractResponse.from_record(contract)
