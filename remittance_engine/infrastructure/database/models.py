"""SQLAlchemy ORM models for contracts, cycles, exports, snapshots and the ledger tables read/written here"""

import uuid
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from remittance_engine.domain.models import ContractStatus, CycleStatus

Base = declarative_base()


class InvestorContract(Base):
    """Investor remittance contract (one row per version)"""

    __tablename__ = "investor_contract"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    investor_id = Column(Text, nullable=False, index=True)
    product_code = Column(Text, nullable=False)
    method = Column(Text, nullable=False)
    remittance_day = Column(Integer, nullable=False)
    cutoff_day = Column(Integer, nullable=False)
    custodial_account_id = Column(Text, nullable=False)
    servicer_fee_bps = Column(Integer, nullable=False)
    late_fee_split_bps = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    status = Column(Text, nullable=False, default=ContractStatus.ACTIVE.value, index=True)
    supersedes_id = Column(UUID(as_uuid=True), ForeignKey("investor_contract.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    rules = relationship(
        "InvestorWaterfallRule",
        back_populates="contract",
        order_by="InvestorWaterfallRule.rank",
        cascade="all, delete-orphan",
    )
    cycles = relationship("RemittanceCycle", back_populates="contract")


class InvestorWaterfallRule(Base):
    """Ranked waterfall bucket; lower rank is paid first"""

    __tablename__ = "investor_waterfall_rule"
    __table_args__ = (UniqueConstraint("contract_id", "rank", name="uq_waterfall_rule_rank"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contract_id = Column(UUID(as_uuid=True), ForeignKey("investor_contract.id", ondelete="CASCADE"), nullable=False)
    rank = Column(Integer, nullable=False)
    bucket = Column(Text, nullable=False)
    cap_minor = Column(BigInteger, nullable=True)

    contract = relationship("InvestorContract", back_populates="rules")


class RemittanceCycle(Base):
    """One remittance period for one contract"""

    __tablename__ = "remittance_cycle"
    # Idempotency key for cycle creation
    __table_args__ = (
        UniqueConstraint("contract_id", "period_start", "period_end", name="uq_remittance_cycle_period"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contract_id = Column(UUID(as_uuid=True), ForeignKey("investor_contract.id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    settlement_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default=CycleStatus.OPEN.value, index=True)
    total_principal_minor = Column(BigInteger, nullable=False, default=0)
    total_interest_minor = Column(BigInteger, nullable=False, default=0)
    total_fees_minor = Column(BigInteger, nullable=False, default=0)
    servicer_fee_minor = Column(BigInteger, nullable=False, default=0)
    investor_due_minor = Column(BigInteger, nullable=False, default=0)
    servicer_advance_minor = Column(BigInteger, nullable=False, default=0)
    calculated_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    settled_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    contract = relationship("InvestorContract", back_populates="cycles")
    items = relationship(
        "RemittanceItemRecord",
        back_populates="cycle",
        order_by="RemittanceItemRecord.loan_id",
        cascade="all, delete-orphan",
    )


class RemittanceItemRecord(Base):
    """Per-loan investor/servicer split within a cycle"""

    __tablename__ = "remittance_item"
    __table_args__ = (UniqueConstraint("cycle_id", "loan_id", name="uq_remittance_item_loan"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cycle_id = Column(UUID(as_uuid=True), ForeignKey("remittance_cycle.id", ondelete="CASCADE"), nullable=False)
    loan_id = Column(Text, nullable=False)
    principal_minor = Column(BigInteger, nullable=False)
    interest_minor = Column(BigInteger, nullable=False)
    fees_minor = Column(BigInteger, nullable=False)
    investor_share_minor = Column(BigInteger, nullable=False)
    servicer_fee_minor = Column(BigInteger, nullable=False)
    late_fee_servicer_minor = Column(BigInteger, nullable=False, default=0)
    advance_minor = Column(BigInteger, nullable=False, default=0)
    escrow_minor = Column(BigInteger, nullable=False, default=0)
    unapplied_minor = Column(BigInteger, nullable=False, default=0)

    cycle = relationship("RemittanceCycle", back_populates="items")


class RemittanceExport(Base):
    """Generated CSV/XML artifact with its SHA-256 content hash"""

    __tablename__ = "remittance_export"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cycle_id = Column(UUID(as_uuid=True), ForeignKey("remittance_cycle.id"), nullable=False, index=True)
    format = Column(Text, nullable=False)
    content = Column(LargeBinary, nullable=False)
    content_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReconciliationSnapshot(Base):
    """Append-only comparison of posted ledger totals against calculated cycle totals"""

    __tablename__ = "remittance_recon_snapshot"
    __table_args__ = (UniqueConstraint("cycle_id", "seq", name="uq_recon_snapshot_seq"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cycle_id = Column(UUID(as_uuid=True), ForeignKey("remittance_cycle.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)  # per-cycle, increasing; orders snapshots taken at the same instant
    remit_investor_minor = Column(BigInteger, nullable=False)
    remit_servicer_minor = Column(BigInteger, nullable=False)
    gl_investor_minor = Column(BigInteger, nullable=False)
    gl_servicer_minor = Column(BigInteger, nullable=False)
    diff_investor_minor = Column(BigInteger, nullable=False)
    diff_servicer_minor = Column(BigInteger, nullable=False)
    diff_total_minor = Column(BigInteger, nullable=False)
    is_balanced = Column(Boolean, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LedgerEntry(Base):
    """Double-entry ledger row (table owned by the ledger subsystem)"""

    __tablename__ = "ledger_entry"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    correlation_id = Column(Text, nullable=False, index=True)
    account_code = Column(Text, nullable=False)
    account_role = Column(Text, nullable=False)
    entry_type = Column(Text, nullable=False)  # DEBIT | CREDIT
    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False, default="USD")
    effective_date = Column(Date, nullable=False)
    memo = Column(Text, nullable=True)
    entry_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LoanCollection(Base):
    """Posted borrower payment allocation (written by the servicing core)"""

    __tablename__ = "loan_collection"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    investor_id = Column(Text, nullable=False, index=True)
    product_code = Column(Text, nullable=False)
    loan_id = Column(Text, nullable=False, index=True)
    effective_date = Column(Date, nullable=False)
    principal_minor = Column(BigInteger, nullable=False, default=0)
    interest_minor = Column(BigInteger, nullable=False, default=0)
    late_fees_minor = Column(BigInteger, nullable=False, default=0)
    escrow_minor = Column(BigInteger, nullable=False, default=0)
    recoveries_minor = Column(BigInteger, nullable=False, default=0)


class LoanScheduleEntry(Base):
    """Contractual installment due for a loan (written by the servicing core)"""

    __tablename__ = "loan_schedule"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    investor_id = Column(Text, nullable=False, index=True)
    product_code = Column(Text, nullable=False)
    loan_id = Column(Text, nullable=False, index=True)
    due_date = Column(Date, nullable=False)
    scheduled_principal_minor = Column(BigInteger, nullable=False, default=0)
    scheduled_interest_minor = Column(BigInteger, nullable=False, default=0)
