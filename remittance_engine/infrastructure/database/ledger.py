"""Ledger repository contract and the SQLAlchemy implementation sharing the caller's transaction"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List
from sqlalchemy import case, func
from sqlalchemy.orm import Session
from remittance_engine.domain.exceptions import LedgerError
from remittance_engine.domain.models import AccountRole, EntryType
from remittance_engine.infrastructure.database.models import LedgerEntry


@dataclass
class LedgerLine:
    """One side of a double-entry posting"""

    account_role: AccountRole
    account_code: str
    entry_type: EntryType
    amount_minor: int
    memo: str = ""


@dataclass
class LedgerTransaction:
    """Balanced set of lines posted together under one correlation id"""

    correlation_id: str
    effective_date: date
    currency: str
    lines: List[LedgerLine]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def debit_total_minor(self) -> int:
        return sum(line.amount_minor for line in self.lines if line.entry_type == EntryType.DEBIT)

    @property
    def credit_total_minor(self) -> int:
        return sum(line.amount_minor for line in self.lines if line.entry_type == EntryType.CREDIT)


class LedgerRepository(ABC):
    """What the remittance engine needs from the double-entry ledger"""

    @abstractmethod
    def post_transaction(self, transaction: LedgerTransaction) -> uuid.UUID:
        """Write all lines or none. Raises LedgerError if unbalanced or already posted."""
        ...

    @abstractmethod
    def has_transaction(self, correlation_id: str) -> bool:
        ...

    @abstractmethod
    def get_entries(self, correlation_id: str) -> List[LedgerEntry]:
        ...

    @abstractmethod
    def net_credits_by_role(self, correlation_id: str) -> Dict[AccountRole, int]:
        """Credits minus debits per account role"""
        ...


class SqlLedgerRepository(LedgerRepository):
    """
    Ledger writer bound to an existing session.

    Nothing is committed here: the entries land in the caller's transaction,
    so they commit or roll back together with the cycle status change.
    """

    def __init__(self, db: Session):
        self.db = db

    def post_transaction(self, transaction: LedgerTransaction) -> uuid.UUID:
        if not transaction.lines:
            raise LedgerError(f"Transaction {transaction.correlation_id} has no lines")
        if any(line.amount_minor <= 0 for line in transaction.lines):
            raise LedgerError(f"Transaction {transaction.correlation_id} has non-positive line amounts")
        if transaction.debit_total_minor != transaction.credit_total_minor:
            raise LedgerError(
                f"Unbalanced transaction {transaction.correlation_id}: "
                f"debits={transaction.debit_total_minor} credits={transaction.credit_total_minor}"
            )
        if self.has_transaction(transaction.correlation_id):
            raise LedgerError(f"Transaction {transaction.correlation_id} already posted")

        transaction_id = uuid.uuid4()
        for line in transaction.lines:
            self.db.add(
                LedgerEntry(
                    transaction_id=transaction_id,
                    correlation_id=transaction.correlation_id,
                    account_code=line.account_code,
                    account_role=line.account_role.value,
                    entry_type=line.entry_type.value,
                    amount_minor=line.amount_minor,
                    currency=transaction.currency,
                    effective_date=transaction.effective_date,
                    memo=line.memo,
                    entry_metadata=transaction.metadata,
                )
            )
        self.db.flush()
        return transaction_id

    def has_transaction(self, correlation_id: str) -> bool:
        return (
            self.db.query(LedgerEntry.id).filter(LedgerEntry.correlation_id == correlation_id).first()
            is not None
        )

    def get_entries(self, correlation_id: str) -> List[LedgerEntry]:
        return (
            self.db.query(LedgerEntry)
            .filter(LedgerEntry.correlation_id == correlation_id)
            .order_by(LedgerEntry.entry_type, LedgerEntry.account_code)
            .all()
        )

    def net_credits_by_role(self, correlation_id: str) -> Dict[AccountRole, int]:
        signed_amount = case(
            (LedgerEntry.entry_type == EntryType.CREDIT.value, LedgerEntry.amount_minor),
            else_=-LedgerEntry.amount_minor,
        )
        rows = (
            self.db.query(LedgerEntry.account_role, func.coalesce(func.sum(signed_amount), 0))
            .filter(LedgerEntry.correlation_id == correlation_id)
            .group_by(LedgerEntry.account_role)
            .all()
        )
        totals = {role: 0 for role in AccountRole}
        for role, amount in rows:
            totals[AccountRole(role)] = int(amount)
        return totals
