"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional


class RemittanceMethod(str, Enum):
    """How investor cash is determined for each loan"""

    SCHEDULED_P_I = "scheduled_p_i"
    ACTUAL_CASH = "actual_cash"
    SCHEDULED_P_I_WITH_INTEREST_SHORTFALL = "scheduled_p_i_with_interest_shortfall"


class WaterfallBucket(str, Enum):
    INTEREST = "interest"
    PRINCIPAL = "principal"
    LATE_FEES = "late_fees"
    ESCROW = "escrow"
    RECOVERIES = "recoveries"


class CycleStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"
    SETTLED = "settled"


class ContractStatus(str, Enum):
    """Only the active version of a contract opens new cycles"""

    ACTIVE = "active"
    SUPERSEDED = "superseded"


class ExportFormat(str, Enum):
    CSV = "csv"
    XML = "xml"


class AccountRole(str, Enum):
    """Ledger account roles touched by a settlement"""

    CUSTODIAL_CASH = "custodial_cash"
    INVESTOR_PAYABLE = "investor_payable"
    SERVICER_FEE_INCOME = "servicer_fee_income"


class EntryType(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


@dataclass
class WaterfallRuleSpec:
    """One ranked bucket of a contract's waterfall"""

    rank: int
    bucket: WaterfallBucket
    cap_minor: Optional[int] = None


@dataclass
class ContractSpec:
    """Input for creating (or versioning) an investor contract"""

    investor_id: str
    product_code: str
    method: RemittanceMethod
    remittance_day: int
    cutoff_day: int
    custodial_account_id: str
    servicer_fee_bps: int
    late_fee_split_bps: int
    waterfall_rules: List[WaterfallRuleSpec] = field(default_factory=list)


@dataclass
class LoanCollection:
    """Cash collected and amounts scheduled for one loan within a remittance period"""

    loan_id: str
    scheduled_principal_minor: int = 0
    scheduled_interest_minor: int = 0
    principal_collected_minor: int = 0
    interest_collected_minor: int = 0
    late_fees_collected_minor: int = 0
    escrow_collected_minor: int = 0
    recoveries_collected_minor: int = 0

    @property
    def total_collected_minor(self) -> int:
        return (
            self.principal_collected_minor
            + self.interest_collected_minor
            + self.late_fees_collected_minor
            + self.escrow_collected_minor
            + self.recoveries_collected_minor
        )


@dataclass
class RemittanceItem:
    """Per-loan split of remitted cash between investor and servicer"""

    loan_id: str
    principal_minor: int
    interest_minor: int
    fees_minor: int
    investor_share_minor: int
    servicer_fee_minor: int
    late_fee_servicer_minor: int = 0
    advance_minor: int = 0  # Servicer advance, outside the conservation identity
    escrow_minor: int = 0  # Retained for the borrower escrow account
    unapplied_minor: int = 0  # Cash left after every ranked bucket

    @property
    def total_minor(self) -> int:
        return self.principal_minor + self.interest_minor + self.fees_minor


@dataclass
class WaterfallTotals:
    """Aggregated cycle totals"""

    total_principal_minor: int = 0
    total_interest_minor: int = 0
    total_fees_minor: int = 0
    servicer_fee_minor: int = 0
    investor_due_minor: int = 0
    servicer_advance_minor: int = 0

    @property
    def total_collected_minor(self) -> int:
        return self.total_principal_minor + self.total_interest_minor + self.total_fees_minor


@dataclass
class WaterfallResult:
    """Output of the waterfall calculator"""

    items: List[RemittanceItem]
    totals: WaterfallTotals


@dataclass
class PeriodBounds:
    period_start: date
    period_end: date


@dataclass
class SchedulerRunSummary:
    """Outcome of one daily scheduler pass"""

    contracts_processed: int = 0
    cycles_created: List[str] = field(default_factory=list)
    cycles_locked: List[str] = field(default_factory=list)
    cycles_settled: List[str] = field(default_factory=list)
    failed_contracts: List[str] = field(default_factory=list)
