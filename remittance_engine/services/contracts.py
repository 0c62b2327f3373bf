"""Contract registry: investor contracts and their ranked waterfall rules"""

import logging
import uuid
from typing import List

from sqlalchemy.orm import Session

from remittance_engine.domain.exceptions import NotFoundError, ValidationError
from remittance_engine.domain.models import ContractSpec, ContractStatus, RemittanceMethod, WaterfallBucket
from remittance_engine.infrastructure.database.models import InvestorContract
from remittance_engine.infrastructure.database.repositories import ContractRepository
from remittance_engine.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

MAX_BPS = 10_000


def validate_contract_spec(spec: ContractSpec) -> None:
    """
    Reject contract input before anything is persisted.

    Raises:
        ValidationError: bps outside 0-10000, cutoff outside 1-31, remittance
            day outside 0-31, unknown method/bucket, negative cap or duplicate rank
    """
    try:
        spec.method = RemittanceMethod(spec.method)
    except ValueError as e:
        raise ValidationError(f"Unknown remittance method: {spec.method}") from e

    for name in ("servicer_fee_bps", "late_fee_split_bps"):
        value = getattr(spec, name)
        if not 0 <= value <= MAX_BPS:
            raise ValidationError(f"{name} must be between 0 and {MAX_BPS}, got {value}")

    if not 1 <= spec.cutoff_day <= 31:
        raise ValidationError(f"cutoff_day must be between 1 and 31, got {spec.cutoff_day}")
    if not 0 <= spec.remittance_day <= 31:
        raise ValidationError(f"remittance_day must be between 0 and 31, got {spec.remittance_day}")
    if not spec.investor_id or not spec.product_code or not spec.custodial_account_id:
        raise ValidationError("investor_id, product_code and custodial_account_id are required")

    seen_ranks = set()
    for rule in spec.waterfall_rules:
        if rule.rank in seen_ranks:
            raise ValidationError(f"Duplicate waterfall rank {rule.rank}")
        seen_ranks.add(rule.rank)
        try:
            rule.bucket = WaterfallBucket(rule.bucket)
        except ValueError as e:
            raise ValidationError(f"Unknown waterfall bucket: {rule.bucket}") from e
        if rule.cap_minor is not None and rule.cap_minor < 0:
            raise ValidationError(f"Waterfall cap for rank {rule.rank} must not be negative")


class ContractRegistry:
    """Creates, versions and looks up investor contracts"""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.contracts = ContractRepository(db)

    def create_contract(self, spec: ContractSpec) -> InvestorContract:
        validate_contract_spec(spec)
        try:
            contract = self.contracts.create_contract(spec, created_at=self.clock.now())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Contract created",
            extra={"contract_id": str(contract.id), "investor_id": contract.investor_id, "method": contract.method},
        )
        return contract

    def get_contract(self, contract_id: uuid.UUID) -> InvestorContract:
        """Raises NotFoundError for unknown ids"""
        contract = self.contracts.get_contract(contract_id)
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        return contract

    def list_active_contracts(self) -> List[InvestorContract]:
        return self.contracts.list_contracts(status=ContractStatus.ACTIVE.value)

    def list_contracts(self, include_superseded: bool = False) -> List[InvestorContract]:
        return self.contracts.list_contracts(status=None if include_superseded else ContractStatus.ACTIVE.value)

    def supersede_contract(self, contract_id: uuid.UUID, spec: ContractSpec) -> InvestorContract:
        """
        Replace a contract with a new version.

        Cycles already created keep referencing the version they were created
        under and are still driven to settlement by the scheduler. Only the new
        version opens further cycles, and it starts after the last period any
        earlier version covered.
        """
        current = self.get_contract(contract_id)
        if current.status != ContractStatus.ACTIVE.value:
            raise ValidationError(f"Contract {contract_id} is already superseded")
        if spec.investor_id != current.investor_id:
            raise ValidationError("A new contract version must keep the same investor")
        validate_contract_spec(spec)

        try:
            self.contracts.mark_superseded(current)
            contract = self.contracts.create_contract(
                spec,
                created_at=self.clock.now(),
                version=current.version + 1,
                supersedes_id=current.id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Contract superseded",
            extra={"contract_id": str(contract.id), "supersedes_id": str(current.id), "version": contract.version},
        )
        return contract
