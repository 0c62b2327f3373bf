"""POST /v1/scheduler/run - Trigger one scheduler pass on demand"""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from remittance_engine.api.dependencies import get_scheduler
from remittance_engine.api.v1.schemas import SchedulerRunResponse
from remittance_engine.services.scheduler import RemittanceScheduler

router = APIRouter()


@router.post("/scheduler/run", response_model=SchedulerRunResponse)
def run_scheduler(scheduler: RemittanceScheduler = Depends(get_scheduler)):
    """Per-contract failures are reported in `failed_contracts`, not as an error status"""
    summary = scheduler.process_cycles()
    return SchedulerRunResponse(**asdict(summary))
