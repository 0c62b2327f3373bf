"""Unit tests for the waterfall calculator"""

import pytest
from remittance_engine.domain.exceptions import ValidationError, WaterfallImbalanceError
from remittance_engine.domain.models import (
    LoanCollection,
    RemittanceItem,
    RemittanceMethod,
    WaterfallBucket,
    WaterfallRuleSpec,
)
from remittance_engine.domain.waterfall import aggregate_items, apply_bps, compute_waterfall

STANDARD_RULES = [
    WaterfallRuleSpec(rank=1, bucket=WaterfallBucket.INTEREST),
    WaterfallRuleSpec(rank=2, bucket=WaterfallBucket.PRINCIPAL),
    WaterfallRuleSpec(rank=3, bucket=WaterfallBucket.LATE_FEES),
]


def paid_in_full(loan_id: str, principal: int, interest: int, late_fees: int = 0) -> LoanCollection:
    return LoanCollection(
        loan_id=loan_id,
        scheduled_principal_minor=principal,
        scheduled_interest_minor=interest,
        principal_collected_minor=principal,
        interest_collected_minor=interest,
        late_fees_collected_minor=late_fees,
    )


def test_apply_bps_rounds_half_up():
    """Test half-cent results round away from zero"""
    assert apply_bps(62500, 50) == 313  # 312.5
    assert apply_bps(95000, 50) == 475
    assert apply_bps(31250, 50) == 156  # 156.25
    assert apply_bps(2500, 5000) == 1250
    assert apply_bps(0, 50) == 0


@pytest.mark.parametrize("method", list(RemittanceMethod))
def test_two_loan_scenario_conserves_cash(method: RemittanceMethod):
    """Test $1,575.00 collected splits with zero cent drift under every method"""
    collections = [
        paid_in_full("LOAN-A", 50000, 10000, late_fees=2500),
        paid_in_full("LOAN-B", 75000, 15000, late_fees=5000),
    ]
    result = compute_waterfall(method, collections, STANDARD_RULES, servicer_fee_bps=50, late_fee_split_bps=5000)

    totals = result.totals
    assert totals.total_collected_minor == 157500
    # Per loan: A = 313 + 1250, B = 475 + 2500
    assert totals.servicer_fee_minor == 4538
    assert totals.investor_due_minor == 152962
    assert totals.investor_due_minor + totals.servicer_fee_minor - totals.total_collected_minor == 0


def test_items_sorted_by_loan_id_with_per_loan_split():
    """Test items come back ordered and each item balances on its own"""
    collections = [
        paid_in_full("LOAN-B", 75000, 15000, late_fees=5000),
        paid_in_full("LOAN-A", 50000, 10000, late_fees=2500),
    ]
    result = compute_waterfall(RemittanceMethod.SCHEDULED_P_I, collections, STANDARD_RULES, 50, 5000)

    assert [item.loan_id for item in result.items] == ["LOAN-A", "LOAN-B"]
    loan_a = result.items[0]
    assert loan_a.servicer_fee_minor == 1563
    assert loan_a.late_fee_servicer_minor == 1250
    assert loan_a.investor_share_minor == 60937
    for item in result.items:
        assert item.investor_share_minor + item.servicer_fee_minor == item.total_minor


def test_scheduled_p_i_records_advance_for_shortfall():
    """Test investor gets scheduled P&I and the shortfall becomes a servicer advance"""
    collection = LoanCollection(
        loan_id="LOAN-1",
        scheduled_principal_minor=50000,
        scheduled_interest_minor=10000,
        principal_collected_minor=20000,
        interest_collected_minor=10000,
    )
    result = compute_waterfall(RemittanceMethod.SCHEDULED_P_I, [collection], STANDARD_RULES, 0, 0)

    item = result.items[0]
    assert item.principal_minor == 50000
    assert item.interest_minor == 10000
    assert item.investor_share_minor == 60000
    assert item.advance_minor == 30000
    assert result.totals.servicer_advance_minor == 30000


def test_interest_shortfall_absorbed_by_investor():
    """Test interest is remitted net of the collection shortfall, without an advance"""
    collection = LoanCollection(
        loan_id="LOAN-1",
        scheduled_principal_minor=50000,
        scheduled_interest_minor=10000,
        principal_collected_minor=50000,
        interest_collected_minor=6000,
    )
    result = compute_waterfall(
        RemittanceMethod.SCHEDULED_P_I_WITH_INTEREST_SHORTFALL, [collection], STANDARD_RULES, 0, 0
    )

    item = result.items[0]
    assert item.principal_minor == 50000
    assert item.interest_minor == 6000
    assert item.advance_minor == 0


def test_actual_cash_fills_ranks_in_order():
    """Test insufficient cash fills interest first and starves lower ranks"""
    collection = LoanCollection(
        loan_id="LOAN-1",
        scheduled_principal_minor=50000,
        scheduled_interest_minor=10000,
        principal_collected_minor=0,
        interest_collected_minor=12000,
    )
    result = compute_waterfall(RemittanceMethod.ACTUAL_CASH, [collection], STANDARD_RULES, 0, 0)

    item = result.items[0]
    # 12000 pooled: interest demand is max(10000, 12000) = 12000, nothing left for principal
    assert item.interest_minor == 12000
    assert item.principal_minor == 0
    assert item.unapplied_minor == 0


def test_actual_cash_respects_caps_and_reports_unapplied():
    """Test a capped bucket stops at its cap and leftover cash is unapplied"""
    collection = LoanCollection(
        loan_id="LOAN-1",
        scheduled_principal_minor=50000,
        scheduled_interest_minor=10000,
        principal_collected_minor=50000,
        interest_collected_minor=10000,
        late_fees_collected_minor=3000,
    )
    rules = [
        WaterfallRuleSpec(rank=1, bucket=WaterfallBucket.INTEREST),
        WaterfallRuleSpec(rank=2, bucket=WaterfallBucket.PRINCIPAL),
        WaterfallRuleSpec(rank=3, bucket=WaterfallBucket.LATE_FEES, cap_minor=1000),
    ]
    result = compute_waterfall(RemittanceMethod.ACTUAL_CASH, [collection], rules, 0, 0)

    item = result.items[0]
    assert item.fees_minor == 1000
    assert item.unapplied_minor == 2000
    assert item.total_minor == 61000


def test_actual_cash_rank_order_changes_allocation():
    """Test principal ranked first takes the cash before interest"""
    collection = LoanCollection(
        loan_id="LOAN-1",
        scheduled_principal_minor=50000,
        scheduled_interest_minor=10000,
        principal_collected_minor=30000,
    )
    rules = [
        WaterfallRuleSpec(rank=1, bucket=WaterfallBucket.PRINCIPAL),
        WaterfallRuleSpec(rank=2, bucket=WaterfallBucket.INTEREST),
    ]
    result = compute_waterfall(RemittanceMethod.ACTUAL_CASH, [collection], rules, 0, 0)

    assert result.items[0].principal_minor == 30000
    assert result.items[0].interest_minor == 0


def test_actual_cash_escrow_retained_and_recoveries_to_principal():
    """Test escrow is kept out of the remitted total and recoveries count as principal"""
    collection = LoanCollection(
        loan_id="LOAN-1",
        escrow_collected_minor=4000,
        recoveries_collected_minor=7000,
    )
    rules = [
        WaterfallRuleSpec(rank=1, bucket=WaterfallBucket.ESCROW),
        WaterfallRuleSpec(rank=2, bucket=WaterfallBucket.RECOVERIES),
    ]
    result = compute_waterfall(RemittanceMethod.ACTUAL_CASH, [collection], rules, 0, 0)

    item = result.items[0]
    assert item.escrow_minor == 4000
    assert item.principal_minor == 7000
    assert item.total_minor == 7000


def test_actual_cash_bucket_without_rule_gets_nothing():
    """Test late fees are unapplied when the contract has no late-fee rank"""
    collection = LoanCollection(loan_id="LOAN-1", late_fees_collected_minor=2500)
    rules = [WaterfallRuleSpec(rank=1, bucket=WaterfallBucket.INTEREST)]
    result = compute_waterfall(RemittanceMethod.ACTUAL_CASH, [collection], rules, 0, 0)

    assert result.items[0].fees_minor == 0
    assert result.items[0].unapplied_minor == 2500


def test_negative_collection_rejected():
    """Test negative amounts fail validation"""
    collection = LoanCollection(loan_id="LOAN-1", principal_collected_minor=-1)
    with pytest.raises(ValidationError):
        compute_waterfall(RemittanceMethod.ACTUAL_CASH, [collection], STANDARD_RULES, 0, 0)


def test_duplicate_loan_rejected():
    """Test the same loan twice fails validation"""
    collections = [paid_in_full("LOAN-1", 100, 10), paid_in_full("LOAN-1", 100, 10)]
    with pytest.raises(ValidationError):
        compute_waterfall(RemittanceMethod.SCHEDULED_P_I, collections, STANDARD_RULES, 0, 0)


def test_out_of_range_bps_rejected():
    with pytest.raises(ValidationError):
        compute_waterfall(RemittanceMethod.SCHEDULED_P_I, [], STANDARD_RULES, 10_001, 0)


def test_unknown_method_rejected():
    with pytest.raises(ValidationError):
        compute_waterfall("gross_up", [], STANDARD_RULES, 0, 0)


def test_full_fee_split_leaves_no_negative_share():
    """Test 100% servicing plus 100% late-fee split is an imbalance, not a negative payout"""
    collection = paid_in_full("LOAN-1", 0, 0, late_fees=1000)
    with pytest.raises(WaterfallImbalanceError):
        compute_waterfall(RemittanceMethod.SCHEDULED_P_I, [collection], STANDARD_RULES, 10_000, 10_000)


def test_aggregate_detects_imbalance():
    """Test a tampered item fails the conservation check"""
    item = RemittanceItem(
        loan_id="LOAN-1",
        principal_minor=1000,
        interest_minor=0,
        fees_minor=0,
        investor_share_minor=990,
        servicer_fee_minor=5,
    )
    with pytest.raises(WaterfallImbalanceError) as exc_info:
        aggregate_items([item])
    assert exc_info.value.expected_minor == 1000
    assert exc_info.value.actual_minor == 995


def test_empty_collections_give_zero_totals():
    result = compute_waterfall(RemittanceMethod.ACTUAL_CASH, [], STANDARD_RULES, 50, 5000)
    assert result.items == []
    assert result.totals.total_collected_minor == 0
