"""Settlement poster: balanced ledger entries for a locked cycle, written atomically with the status change"""

import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from remittance_engine.config import settings
from remittance_engine.domain.cycle_state import ensure_transition
from remittance_engine.domain.exceptions import (
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    SettlementPostingError,
)
from remittance_engine.domain.models import AccountRole, CycleStatus, EntryType
from remittance_engine.infrastructure.database.ledger import (
    LedgerLine,
    LedgerRepository,
    LedgerTransaction,
    SqlLedgerRepository,
)
from remittance_engine.infrastructure.database.models import RemittanceCycle
from remittance_engine.infrastructure.database.repositories import CycleRepository
from remittance_engine.infrastructure.observability.logging import log_cycle_event
from remittance_engine.infrastructure.observability.metrics import (
    record_transition,
    settlement_counter,
    settlement_failure_counter,
)
from remittance_engine.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


def settlement_correlation_id(cycle_id) -> str:
    """Idempotency key shared by every ledger entry of one cycle's settlement"""
    return f"remit:{cycle_id}"


def build_settlement_transaction(cycle: RemittanceCycle, effective_date, currency: str | None = None) -> LedgerTransaction:
    """
    Settlement lines for a cycle:
    - DEBIT custodial cash for principal + interest + fees collected
    - CREDIT investor payable for the investor due
    - CREDIT servicer fee income for the servicer fee
    Zero-amount lines are left out.
    """
    collected = cycle.total_principal_minor + cycle.total_interest_minor + cycle.total_fees_minor
    candidates = [
        LedgerLine(
            account_role=AccountRole.CUSTODIAL_CASH,
            account_code=settings.custodial_cash_account_code,
            entry_type=EntryType.DEBIT,
            amount_minor=collected,
            memo=f"Custodial cash remitted for cycle {cycle.id}",
        ),
        LedgerLine(
            account_role=AccountRole.INVESTOR_PAYABLE,
            account_code=settings.investor_payable_account_code,
            entry_type=EntryType.CREDIT,
            amount_minor=cycle.investor_due_minor,
            memo=f"Investor remittance payable for cycle {cycle.id}",
        ),
        LedgerLine(
            account_role=AccountRole.SERVICER_FEE_INCOME,
            account_code=settings.servicer_fee_income_account_code,
            entry_type=EntryType.CREDIT,
            amount_minor=cycle.servicer_fee_minor,
            memo=f"Servicer fee income for cycle {cycle.id}",
        ),
    ]
    return LedgerTransaction(
        correlation_id=settlement_correlation_id(cycle.id),
        effective_date=effective_date,
        currency=currency or settings.currency,
        lines=[line for line in candidates if line.amount_minor > 0],
        metadata={"cycle_id": str(cycle.id), "contract_id": str(cycle.contract_id)},
    )


class SettlementPoster:
    """Posts a locked cycle to the ledger and marks it settled in the same transaction"""

    def __init__(self, db: Session, clock: Clock | None = None, ledger: LedgerRepository | None = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.ledger = ledger or SqlLedgerRepository(db)
        self.cycles = CycleRepository(db)

    def post_settlement(self, cycle_id: uuid.UUID, actor_id: str) -> RemittanceCycle:
        """
        Settle a locked cycle.

        The cycle row is locked (SELECT ... FOR UPDATE), its status checked,
        the ledger lines written and the status moved locked -> settled with a
        conditional UPDATE, all before a single commit. Two concurrent calls
        cannot both succeed.

        Raises:
            NotFoundError: unknown cycle
            InvalidTransitionError: cycle is not locked (status unchanged)
            SettlementPostingError: ledger/database write failed; rolled back, cycle stays locked
        """
        try:
            cycle = self.cycles.get_cycle_for_update(cycle_id)
            if cycle is None:
                raise NotFoundError(f"Cycle {cycle_id} not found")
            ensure_transition(str(cycle.id), cycle.status, CycleStatus.SETTLED)

            now = self.clock.now()
            transaction = build_settlement_transaction(cycle, effective_date=now.date())
            if transaction.debit_total_minor != transaction.credit_total_minor:
                raise LedgerError(
                    f"Settlement lines unbalanced: debits={transaction.debit_total_minor} "
                    f"credits={transaction.credit_total_minor}"
                )
            if transaction.lines:
                self.ledger.post_transaction(transaction)

            settled = self.cycles.compare_and_set_status(
                cycle.id,
                expected=CycleStatus.LOCKED,
                new=CycleStatus.SETTLED,
                settled_at=now,
                settled_by=actor_id,
            )
            if not settled:
                raise InvalidTransitionError(
                    str(cycle.id), cycle.status, CycleStatus.SETTLED.value, "settled by a concurrent request"
                )
            self.db.commit()

        except (NotFoundError, InvalidTransitionError):
            self.db.rollback()
            raise
        except (LedgerError, SQLAlchemyError) as e:
            self.db.rollback()
            settlement_failure_counter.inc()
            logger.error(f"Settlement failed: {e}", extra={"cycle_id": str(cycle_id)})
            raise SettlementPostingError(str(cycle_id), str(e)) from e

        self.db.refresh(cycle)
        settlement_counter.inc()
        record_transition(CycleStatus.SETTLED.value)
        log_cycle_event(
            "settled",
            str(cycle.id),
            str(cycle.contract_id),
            actor_id=actor_id,
            investor_due_minor=cycle.investor_due_minor,
            servicer_fee_minor=cycle.servicer_fee_minor,
        )
        return cycle
