import random
from datetime import date
from decimal import Decimal

import pytest

from engine.compute import (
    add_months,
    classify_receipt,
    compute_debt_schedule,
    compute_indexation,
    compute_solvency,
    compute_solvency_ratio,
    format_quarter,
    indexation_quarters,
    reconcile_charges,
    reference_quarter,
    total_debt,
)
from errors import CalculationError, InvalidFieldError
from models import ChargeLine, IncomeProfile
from reporting.format_utils import to_cents


# --- Indexation ---
def test_indexation_basic():
    result = compute_indexation(750, 100, 103)
    assert result.new_rent == Decimal("772.50")
    assert result.variation_percent == Decimal("3.00")
    assert result.increase == Decimal("22.50")


def test_indexation_accepts_text_amounts_and_keeps_labels():
    result = compute_indexation("750,00", "142.06", "145.47", "T2 2023", "T2 2024", "2024-09-01")
    # 750 * 145.47 / 142.06 = 768.0029...
    assert result.new_rent == Decimal("768.00")
    payload = result.as_dict()
    assert payload["new_rent"] == 768.0
    assert payload["old_period_label"] == "T2 2023"
    assert payload["effective_date"] == "2024-09-01"


@pytest.mark.parametrize("old_index, new_index", [(0, 103), (-1, 103), (100, 0)])
def test_indexation_rejects_non_positive_index(old_index, new_index):
    with pytest.raises(CalculationError):
        compute_indexation(750, old_index, new_index)


def test_indexation_rejects_non_numeric_rent():
    with pytest.raises(InvalidFieldError) as exc:
        compute_indexation("sept cents", 100, 103)
    assert exc.value.field == "old_rent"


# --- IRL quarters ---
def test_format_quarter():
    assert format_quarter(2, 2024) == "T2 2024"


def test_reference_quarter_from_lease_start():
    assert reference_quarter("2024-09-01") == (3, 2024)
    assert reference_quarter(date(2025, 1, 31)) == (1, 2025)
    assert reference_quarter(None) is None


def test_indexation_quarters_shift_by_years_since_start():
    assert indexation_quarters(2024, 3, "2024-09-01", on=date(2025, 9, 1)) == ("T3 2024", "T3 2025")
    assert indexation_quarters("2023", "2", "2024-09-01", on=date(2027, 2, 1)) == ("T2 2023", "T2 2026")
    assert indexation_quarters(2024, 1, None, on=date(2027, 2, 1)) == ("T1 2024", "T1 2024")


@pytest.mark.parametrize(
    "year, quarter, field",
    [
        (2024, 5, "lease.irl_reference_quarter"),
        (2024, "T2", "lease.irl_reference_quarter"),
        (2024.5, 2, "lease.irl_reference_year"),
    ],
)
def test_indexation_quarters_rejects_bad_reference(year, quarter, field):
    with pytest.raises(InvalidFieldError) as exc:
        indexation_quarters(year, quarter, "2024-09-01", on=date(2025, 9, 1))
    assert exc.value.field == field


# --- Debt ---
def test_total_debt_rounds_to_cent():
    assert total_debt([{"amount": 100.005}, {"amount": "200"}]) == Decimal("300.01")


def test_debt_schedule_last_installment_absorbs_remainder():
    entries = compute_debt_schedule(1000, 3, date(2025, 1, 15))
    assert [e.amount for e in entries] == [Decimal("334"), Decimal("334"), Decimal("332")]
    assert [e.remaining_balance for e in entries] == [Decimal("666"), Decimal("332"), Decimal("0")]
    assert [e.due_date for e in entries] == [date(2025, 2, 15), date(2025, 3, 15), date(2025, 4, 15)]
    assert sum(e.amount for e in entries) == Decimal("1000")


def test_debt_schedule_clamps_due_day_to_month_end():
    entries = compute_debt_schedule(600, 3, date(2025, 1, 31))
    assert [e.due_date for e in entries] == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]


def test_debt_schedule_small_debt_falls_back_to_cents():
    entries = compute_debt_schedule(10, 6, date(2025, 1, 1))
    amounts = [e.amount for e in entries]
    assert amounts[:5] == [Decimal("1.67")] * 5
    assert amounts[-1] == Decimal("1.65")
    assert sum(amounts) == Decimal("10.00")
    assert entries[-1].remaining_balance == Decimal("0")


def test_debt_schedule_single_installment():
    entries = compute_debt_schedule("450,75", 1, date(2025, 1, 1))
    assert len(entries) == 1
    assert entries[0].amount == Decimal("450.75")
    assert entries[0].as_dict() == {
        "sequence": 1,
        "due_date": "2025-02-01",
        "amount": 450.75,
        "remaining_balance": 0.0,
    }


@pytest.mark.parametrize("count", [0, -2, 2.5])
def test_debt_schedule_rejects_bad_count(count):
    with pytest.raises(CalculationError):
        compute_debt_schedule(1000, count, date(2025, 1, 1))


def test_debt_schedule_rejects_negative_total():
    with pytest.raises(CalculationError):
        compute_debt_schedule(-10, 2, date(2025, 1, 1))


@pytest.mark.parametrize("seed", range(8))
def test_debt_schedule_invariants_on_random_debts(seed):
    rng = random.Random(seed)
    for _ in range(50):
        total = Decimal(rng.randint(0, 500_000)) / 100
        count = rng.randint(1, 24)
        entries = compute_debt_schedule(total, count, date(2025, 1, 31))
        amounts = [e.amount for e in entries]
        balances = [e.remaining_balance for e in entries]
        assert len(entries) == count
        assert sum(amounts) == to_cents(total)
        assert all(a >= 0 for a in amounts)
        assert all(a == to_cents(a) for a in amounts)
        assert len(set(amounts[:-1])) <= 1
        assert balances == sorted(balances, reverse=True)
        assert balances[-1] == Decimal("0")


def test_add_months_leap_year():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)


# --- Charges ---
def test_charges_refund():
    result = reconcile_charges(1200, 950)
    assert result.balance == Decimal("250.00")
    assert result.is_refund
    assert not result.is_additional_payment


def test_charges_additional_payment():
    result = reconcile_charges(800, 950)
    assert result.balance == Decimal("-150.00")
    assert result.is_additional_payment
    assert not result.is_refund


def test_charges_default_breakdown_is_flagged_and_sums_to_actual():
    result = reconcile_charges(1200, 950)
    assert result.is_estimated_breakdown
    assert [item.label for item in result.breakdown][0] == "Eau froide"
    assert sum(item.amount for item in result.breakdown) == Decimal("950.00")


def test_charges_itemized_breakdown_sets_actual():
    result = reconcile_charges(100, None, [ChargeLine(label="Eau", amount=40), {"label": "Chauffage", "amount": "70"}])
    assert result.actual_charges == Decimal("110.00")
    assert not result.is_estimated_breakdown
    assert result.as_dict()["balance"] == -10.0


def test_charges_without_actual_or_breakdown():
    with pytest.raises(InvalidFieldError):
        reconcile_charges(100)


# --- Receipts ---
def test_receipt_full_payment():
    status = classify_receipt(800, 100, 900)
    assert status.is_full
    assert status.remaining_due == Decimal("0")


def test_receipt_partial_payment():
    status = classify_receipt(800, 100, 500)
    assert not status.is_full
    assert status.remaining_due == Decimal("400.00")


def test_receipt_aid_reduces_tenant_share():
    status = classify_receipt(800, 100, 700, aid_amount=200)
    assert status.net_due == Decimal("700.00")
    assert status.is_full


# --- Solvency ---
def test_solvency_ratio():
    assert compute_solvency_ratio(2400, 800) == Decimal("3.00")
    assert compute_solvency_ratio(2000, 0) == Decimal("0")


def test_solvency_without_guarantor():
    profile = IncomeProfile(monthly_income=2000, other_income="n/a", co_applicant_incomes=[400])
    result = compute_solvency(profile, 800)
    assert result.total_income == Decimal("2400.00")
    assert result.ratio == Decimal("3.00")
    assert result.guarantor_income is None
    assert result.as_dict()["guarantor_ratio"] is None


def test_solvency_declared_guarantor_with_zero_income():
    profile = IncomeProfile(monthly_income=1500, guarantor_income=0)
    result = compute_solvency(profile, 750)
    assert result.guarantor_income == Decimal("0.00")
    assert result.guarantor_ratio == Decimal("0")


def test_solvency_sums_both_guarantors():
    profile = IncomeProfile.model_validate({"monthlyIncome": "1 800", "guarantorIncome": 3000, "secondGuarantorIncome": 1500})
    result = compute_solvency(profile, 900)
    assert result.total_income == Decimal("1800.00")
    assert result.guarantor_income == Decimal("4500.00")
    assert result.guarantor_ratio == Decimal("5.00")
