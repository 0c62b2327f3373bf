"""Waterfall engine - core business logic for investor/servicer cash splits"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Sequence

from remittance_engine.domain.exceptions import ValidationError, WaterfallImbalanceError
from remittance_engine.domain.models import (
    LoanCollection,
    RemittanceItem,
    RemittanceMethod,
    WaterfallBucket,
    WaterfallResult,
    WaterfallRuleSpec,
    WaterfallTotals,
)

BPS_DENOMINATOR = Decimal(10_000)
WHOLE_CENT = Decimal("1")


@dataclass
class Allocation:
    """Remitted amounts for one loan before the servicer split"""

    principal_minor: int
    interest_minor: int
    fees_minor: int
    advance_minor: int = 0
    escrow_minor: int = 0
    unapplied_minor: int = 0


def apply_bps(amount_minor: int, bps: int) -> int:
    """
    amount * bps / 10000, rounded half-up to a whole cent.

    Decimal arithmetic only: 31250 cents at 50 bps is 156.25 -> 156,
    62500 cents at 50 bps is 312.5 -> 313.
    """
    value = Decimal(amount_minor) * Decimal(bps) / BPS_DENOMINATOR
    return int(value.quantize(WHOLE_CENT, rounding=ROUND_HALF_UP))


def allocate_scheduled_p_i(collection: LoanCollection, rules: Sequence[WaterfallRuleSpec]) -> Allocation:
    """Investor gets scheduled P&I regardless of collections; any shortfall is a servicer advance"""
    scheduled = collection.scheduled_principal_minor + collection.scheduled_interest_minor
    collected = collection.principal_collected_minor + collection.interest_collected_minor
    return Allocation(
        principal_minor=collection.scheduled_principal_minor,
        interest_minor=collection.scheduled_interest_minor,
        fees_minor=collection.late_fees_collected_minor,
        advance_minor=max(0, scheduled - collected),
    )


def allocate_interest_shortfall(collection: LoanCollection, rules: Sequence[WaterfallRuleSpec]) -> Allocation:
    """Scheduled principal; interest net of the collection shortfall (investor absorbs it)"""
    interest_shortfall = max(0, collection.scheduled_interest_minor - collection.interest_collected_minor)
    return Allocation(
        principal_minor=collection.scheduled_principal_minor,
        interest_minor=collection.scheduled_interest_minor - interest_shortfall,
        fees_minor=collection.late_fees_collected_minor,
        advance_minor=max(0, collection.scheduled_principal_minor - collection.principal_collected_minor),
    )


def allocate_actual_cash(collection: LoanCollection, rules: Sequence[WaterfallRuleSpec]) -> Allocation:
    """
    Allocate exactly the cash collected, rank by rank.

    Each rank is filled up to its demand (capped by cap_minor when set)
    before anything flows to the next rank. Once cash runs out the
    remaining ranks get zero. Buckets without a rule get nothing; cash
    left after the last rank is reported as unapplied.
    """
    demand: Dict[WaterfallBucket, int] = {
        WaterfallBucket.INTEREST: max(collection.scheduled_interest_minor, collection.interest_collected_minor),
        WaterfallBucket.PRINCIPAL: max(collection.scheduled_principal_minor, collection.principal_collected_minor),
        WaterfallBucket.LATE_FEES: collection.late_fees_collected_minor,
        WaterfallBucket.ESCROW: collection.escrow_collected_minor,
        WaterfallBucket.RECOVERIES: collection.recoveries_collected_minor,
    }
    filled: Dict[WaterfallBucket, int] = {bucket: 0 for bucket in WaterfallBucket}
    cash = collection.total_collected_minor

    for rule in sorted(rules, key=lambda r: r.rank):
        bucket = WaterfallBucket(rule.bucket)
        room = demand[bucket] - filled[bucket]
        if rule.cap_minor is not None:
            room = min(room, rule.cap_minor)
        amount = max(0, min(cash, room))
        filled[bucket] += amount
        cash -= amount

    return Allocation(
        principal_minor=filled[WaterfallBucket.PRINCIPAL] + filled[WaterfallBucket.RECOVERIES],
        interest_minor=filled[WaterfallBucket.INTEREST],
        fees_minor=filled[WaterfallBucket.LATE_FEES],
        escrow_minor=filled[WaterfallBucket.ESCROW],
        unapplied_minor=cash,
    )


ALLOCATORS: Dict[RemittanceMethod, Callable[[LoanCollection, Sequence[WaterfallRuleSpec]], Allocation]] = {
    RemittanceMethod.SCHEDULED_P_I: allocate_scheduled_p_i,
    RemittanceMethod.ACTUAL_CASH: allocate_actual_cash,
    RemittanceMethod.SCHEDULED_P_I_WITH_INTEREST_SHORTFALL: allocate_interest_shortfall,
}


def validate_collections(collections: Sequence[LoanCollection]) -> None:
    seen = set()
    for collection in collections:
        if collection.loan_id in seen:
            raise ValidationError(f"Duplicate collection for loan {collection.loan_id}")
        seen.add(collection.loan_id)

        amounts = (
            collection.scheduled_principal_minor,
            collection.scheduled_interest_minor,
            collection.principal_collected_minor,
            collection.interest_collected_minor,
            collection.late_fees_collected_minor,
            collection.escrow_collected_minor,
            collection.recoveries_collected_minor,
        )
        if any(amount < 0 for amount in amounts):
            raise ValidationError(f"Negative amount in collection for loan {collection.loan_id}")


def split_item(loan_id: str, allocation: Allocation, servicer_fee_bps: int, late_fee_split_bps: int) -> RemittanceItem:
    """Apply servicer fee and late-fee split to one loan, rounding per loan"""
    total = allocation.principal_minor + allocation.interest_minor + allocation.fees_minor
    servicer_fee = apply_bps(total, servicer_fee_bps)
    late_fee_servicer = apply_bps(allocation.fees_minor, late_fee_split_bps)
    investor_share = total - servicer_fee - late_fee_servicer

    if investor_share < 0:
        raise WaterfallImbalanceError(
            f"Negative investor share for loan {loan_id}: fees exceed remitted cash",
            expected_minor=total,
            actual_minor=servicer_fee + late_fee_servicer,
        )

    return RemittanceItem(
        loan_id=loan_id,
        principal_minor=allocation.principal_minor,
        interest_minor=allocation.interest_minor,
        fees_minor=allocation.fees_minor,
        investor_share_minor=investor_share,
        servicer_fee_minor=servicer_fee + late_fee_servicer,
        late_fee_servicer_minor=late_fee_servicer,
        advance_minor=allocation.advance_minor,
        escrow_minor=allocation.escrow_minor,
        unapplied_minor=allocation.unapplied_minor,
    )


def aggregate_items(items: Sequence[RemittanceItem]) -> WaterfallTotals:
    """
    Sum items into cycle totals and check conservation.

    Raises:
        WaterfallImbalanceError: if investor + servicer != principal + interest + fees
    """
    totals = WaterfallTotals(
        total_principal_minor=sum(i.principal_minor for i in items),
        total_interest_minor=sum(i.interest_minor for i in items),
        total_fees_minor=sum(i.fees_minor for i in items),
        servicer_fee_minor=sum(i.servicer_fee_minor for i in items),
        investor_due_minor=sum(i.investor_share_minor for i in items),
        servicer_advance_minor=sum(i.advance_minor for i in items),
    )

    split_total = totals.investor_due_minor + totals.servicer_fee_minor
    if split_total != totals.total_collected_minor:
        raise WaterfallImbalanceError(
            f"Waterfall imbalance: investor+servicer={split_total} != collected={totals.total_collected_minor}",
            expected_minor=totals.total_collected_minor,
            actual_minor=split_total,
        )
    return totals


def compute_waterfall(
    method: RemittanceMethod | str,
    collections: Sequence[LoanCollection],
    rules: Sequence[WaterfallRuleSpec],
    servicer_fee_bps: int,
    late_fee_split_bps: int,
) -> WaterfallResult:
    """
    Main entry point: turn per-loan collections into remittance items and totals.

    Items come back ordered by loan_id. Pure: no I/O, no clock.

    Raises:
        ValidationError: unknown method, bps out of range, negative or duplicate collections
        WaterfallImbalanceError: conservation check failed
    """
    try:
        method = RemittanceMethod(method)
    except ValueError as e:
        raise ValidationError(f"Unknown remittance method: {method}") from e

    for name, bps in (("servicer_fee_bps", servicer_fee_bps), ("late_fee_split_bps", late_fee_split_bps)):
        if not 0 <= bps <= 10_000:
            raise ValidationError(f"{name} must be between 0 and 10000, got {bps}")

    validate_collections(collections)
    allocate = ALLOCATORS[method]

    items: List[RemittanceItem] = [
        split_item(c.loan_id, allocate(c, rules), servicer_fee_bps, late_fee_split_bps)
        for c in sorted(collections, key=lambda c: c.loan_id)
    ]
    return WaterfallResult(items=items, totals=aggregate_items(items))
