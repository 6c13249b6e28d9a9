from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Optional, Tuple

from errors import CalculationError, InvalidFieldError
from models import IncomeProfile
from reporting.format_utils import CENT, parse_date, parse_decimal, to_cents

ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_INSTALLMENT_COUNT = 6

# Illustrative split used when no itemized charge statement is available.
DEFAULT_CHARGE_SPLIT: Tuple[Tuple[str, Decimal], ...] = (
    ("Eau froide", Decimal("0.25")),
    ("Chauffage collectif", Decimal("0.35")),
    ("Entretien parties communes", Decimal("0.15")),
    ("Ordures ménagères", Decimal("0.15")),
    ("Électricité parties communes", Decimal("0.10")),
)


def _money(value: Decimal) -> float:
    return float(to_cents(value))


def require_number(value: Any, field: str) -> Decimal:
    """Parse a value a legal formula depends on; non-numeric input fails fast."""
    parsed = parse_decimal(value)
    if parsed is None:
        raise InvalidFieldError(field, value)
    return parsed


def coerce_amount(value: Any) -> Decimal:
    """Optional additive amounts (aid, other income, fees): non-numeric counts as 0."""
    parsed = parse_decimal(value)
    return ZERO if parsed is None else parsed


def add_months(d: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    index = d.month - 1 + months
    year = d.year + index // 12
    month = index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


# ---------------------------------------------------------------------------
# Indexation (IRL revision)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexationResult:
    old_rent: Decimal
    new_rent: Decimal
    old_index: Decimal
    new_index: Decimal
    variation_percent: Decimal
    old_period_label: str = ""
    new_period_label: str = ""
    effective_date: Optional[date] = None

    @property
    def increase(self) -> Decimal:
        return self.new_rent - self.old_rent

    def as_dict(self) -> dict:
        return {
            "old_rent": _money(self.old_rent),
            "new_rent": _money(self.new_rent),
            "old_index": float(self.old_index),
            "new_index": float(self.new_index),
            "old_period_label": self.old_period_label,
            "new_period_label": self.new_period_label,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
            "variation_percent": float(self.variation_percent),
            "increase": _money(self.increase),
        }


def compute_indexation(
    old_rent: Any,
    old_index: Any,
    new_index: Any,
    old_period_label: str = "",
    new_period_label: str = "",
    effective_date: Any = None,
) -> IndexationResult:
    """
    new_rent = round(old_rent * new_index / old_index, 2), half-up.

    The variation is taken from the rounded new rent so the letter's figures
    are consistent with each other (750 / 100 / 103 -> 772.50, 3.00 %).
    """
    rent = require_number(old_rent, "old_rent")
    base = require_number(old_index, "old_index")
    target = require_number(new_index, "new_index")
    if base <= 0:
        raise CalculationError(f"old_index must be > 0, got {base}")
    if target <= 0:
        raise CalculationError(f"new_index must be > 0, got {target}")
    if rent <= 0:
        raise CalculationError(f"old_rent must be > 0, got {rent}")

    new_rent = to_cents(rent * target / base)
    variation = to_cents((new_rent - rent) / rent * HUNDRED)
    return IndexationResult(
        old_rent=to_cents(rent),
        new_rent=new_rent,
        old_index=base,
        new_index=target,
        variation_percent=variation,
        old_period_label=old_period_label or "",
        new_period_label=new_period_label or "",
        effective_date=parse_date(effective_date),
    )


def quarter_of(d: date) -> int:
    return (d.month - 1) // 3 + 1


def format_quarter(quarter: int, year: int) -> str:
    """IRL quarters are published as "T2 2024"."""
    return f"T{quarter} {year}"


def reference_quarter(start_date: Any) -> Optional[Tuple[int, int]]:
    """(quarter, year) the lease started in, or None without a start date."""
    start = parse_date(start_date)
    if start is None:
        return None
    return quarter_of(start), start.year


def indexation_quarters(
    reference_year: Any,
    reference_quarter_no: Any,
    start_date: Any,
    on: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Labels of the reference IRL and of the revision IRL. The revision uses
    the same quarter, shifted by the number of calendar years since the
    lease started.
    """
    year_value = require_number(reference_year, "lease.irl_reference_year")
    quarter_value = require_number(reference_quarter_no, "lease.irl_reference_quarter")
    if quarter_value not in (1, 2, 3, 4):
        raise InvalidFieldError("lease.irl_reference_quarter", reference_quarter_no, expected="a quarter 1-4")
    if year_value != year_value.to_integral_value():
        raise InvalidFieldError("lease.irl_reference_year", reference_year, expected="a year")
    year, quarter = int(year_value), int(quarter_value)
    start = parse_date(start_date)
    today = on or date.today()
    elapsed = max(0, today.year - start.year) if start else 0
    return format_quarter(quarter, year), format_quarter(quarter, year + elapsed)


# ---------------------------------------------------------------------------
# Debt
# ---------------------------------------------------------------------------


def total_debt(entries: Iterable[Any]) -> Decimal:
    """Sum of ledger amounts, rounded to the cent. Accepts dicts or objects with `.amount`."""
    total = ZERO
    for i, entry in enumerate(entries):
        raw = entry.get("amount") if isinstance(entry, dict) else getattr(entry, "amount", None)
        total += require_number(raw, f"debts[{i}].amount")
    return to_cents(total)


@dataclass(frozen=True)
class ScheduleEntry:
    sequence: int
    due_date: date
    amount: Decimal
    remaining_balance: Decimal

    def as_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "due_date": self.due_date.isoformat(),
            "amount": _money(self.amount),
            "remaining_balance": _money(self.remaining_balance),
        }


def _installment_amount(total: Decimal, count: int) -> Decimal:
    """
    Regular installment: ceil(total / n) in whole euros. When n-1 such
    installments would leave nothing for the last one (small debts), fall back
    to the cent-level ceiling, then the cent-level floor.
    """
    if count == 1:
        return total
    share = total / count
    for quantum, rounding in (
        (Decimal("1"), ROUND_CEILING),
        (CENT, ROUND_CEILING),
    ):
        candidate = share.quantize(quantum, rounding=rounding)
        if candidate * (count - 1) < total:
            return candidate
    return share.quantize(CENT, rounding=ROUND_FLOOR)


def compute_debt_schedule(
    total: Any,
    installment_count: Any = DEFAULT_INSTALLMENT_COUNT,
    start_date: Any = None,
) -> List[ScheduleEntry]:
    """
    Split a debt into `installment_count` monthly payments. The last entry
    absorbs the rounding remainder so the schedule always sums to the total;
    entry i is due start_date + (i + 1) months.
    """
    amount = to_cents(require_number(total, "total_debt"))
    count_value = require_number(installment_count, "installment_count")
    if count_value != count_value.to_integral_value():
        raise CalculationError(f"installment_count must be a whole number, got {installment_count}")
    count = int(count_value)
    if count < 1:
        raise CalculationError(f"installment_count must be >= 1, got {count}")
    if amount < 0:
        raise CalculationError(f"total_debt must be >= 0, got {amount}")
    start = parse_date(start_date) or date.today()

    installment = _installment_amount(amount, count)
    entries: List[ScheduleEntry] = []
    paid = ZERO
    for i in range(count):
        due = installment if i < count - 1 else amount - installment * (count - 1)
        paid += due
        entries.append(
            ScheduleEntry(
                sequence=i + 1,
                due_date=add_months(start, i + 1),
                amount=due,
                remaining_balance=max(ZERO, amount - paid),
            )
        )
    return entries


# ---------------------------------------------------------------------------
# Charge reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChargeItem:
    label: str
    amount: Decimal


@dataclass(frozen=True)
class ChargeReconciliationResult:
    provisions_paid: Decimal
    actual_charges: Decimal
    breakdown: Tuple[ChargeItem, ...]
    is_estimated_breakdown: bool

    @property
    def balance(self) -> Decimal:
        """Positive: refund owed to the tenant. Negative: amount the tenant owes."""
        return self.provisions_paid - self.actual_charges

    @property
    def is_refund(self) -> bool:
        return self.balance > 0

    @property
    def is_additional_payment(self) -> bool:
        return self.balance < 0

    def as_dict(self) -> dict:
        return {
            "provisions_paid": _money(self.provisions_paid),
            "actual_charges": _money(self.actual_charges),
            "balance": _money(self.balance),
            "is_refund": self.is_refund,
            "is_additional_payment": self.is_additional_payment,
            "is_estimated_breakdown": self.is_estimated_breakdown,
            "breakdown": [{"label": b.label, "amount": _money(b.amount)} for b in self.breakdown],
        }


def default_charge_breakdown(actual: Decimal) -> Tuple[ChargeItem, ...]:
    items: List[ChargeItem] = []
    allocated = ZERO
    for i, (label, share) in enumerate(DEFAULT_CHARGE_SPLIT):
        if i == len(DEFAULT_CHARGE_SPLIT) - 1:
            amount = actual - allocated
        else:
            amount = to_cents(actual * share)
        allocated += amount
        items.append(ChargeItem(label, amount))
    return tuple(items)


def _charge_items(breakdown: Iterable[Any]) -> Tuple[ChargeItem, ...]:
    items: List[ChargeItem] = []
    for i, line in enumerate(breakdown or ()):
        if isinstance(line, dict):
            label, raw = line.get("label"), line.get("amount")
        else:
            label, raw = getattr(line, "label", None), getattr(line, "amount", None)
        items.append(ChargeItem(str(label or f"Poste {i + 1}"), to_cents(require_number(raw, f"breakdown[{i}].amount"))))
    return tuple(items)


def reconcile_charges(
    provisions_paid: Any,
    actual_charges: Any = None,
    breakdown: Optional[Iterable[Any]] = None,
) -> ChargeReconciliationResult:
    """
    balance = provisions - actual. When `actual_charges` is omitted it is the
    sum of the itemized breakdown; when no breakdown is given the default
    split is used and flagged as an estimate.
    """
    provisions = to_cents(require_number(provisions_paid, "provisions_paid"))
    items = _charge_items(breakdown or ())
    if actual_charges is None or (isinstance(actual_charges, str) and not actual_charges.strip()):
        if not items:
            raise InvalidFieldError("actual_charges", actual_charges)
        actual = to_cents(sum((item.amount for item in items), ZERO))
    else:
        actual = to_cents(require_number(actual_charges, "actual_charges"))
    if provisions < 0 or actual < 0:
        raise CalculationError("provisions and actual charges must be >= 0")

    estimated = not items
    if estimated:
        items = default_charge_breakdown(actual)
    return ChargeReconciliationResult(
        provisions_paid=provisions,
        actual_charges=actual,
        breakdown=items,
        is_estimated_breakdown=estimated,
    )


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptStatus:
    rent_amount: Decimal
    charges_amount: Decimal
    aid_amount: Decimal
    amount_received: Decimal

    @property
    def total_due(self) -> Decimal:
        return self.rent_amount + self.charges_amount

    @property
    def net_due(self) -> Decimal:
        return max(ZERO, self.total_due - self.aid_amount)

    @property
    def is_full(self) -> bool:
        return self.amount_received >= self.net_due

    @property
    def remaining_due(self) -> Decimal:
        return max(ZERO, self.net_due - self.amount_received)


def classify_receipt(rent_amount: Any, charges_amount: Any, amount_received: Any, aid_amount: Any = 0) -> ReceiptStatus:
    """
    A full receipt (quittance) may only be issued once the tenant's share is
    paid in full; anything less gets a partial-payment receipt.
    """
    return ReceiptStatus(
        rent_amount=to_cents(require_number(rent_amount, "rent_amount")),
        charges_amount=to_cents(coerce_amount(charges_amount)),
        aid_amount=to_cents(coerce_amount(aid_amount)),
        amount_received=to_cents(coerce_amount(amount_received)),
    )


# ---------------------------------------------------------------------------
# Solvency
# ---------------------------------------------------------------------------


def compute_solvency_ratio(total_income: Any, rent_amount: Any) -> Decimal:
    """round(income / rent, 2); 0 when the rent is not positive."""
    income = coerce_amount(total_income)
    rent = coerce_amount(rent_amount)
    if rent <= 0:
        return ZERO
    return (income / rent).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SolvencyResult:
    rent_amount: Decimal
    total_income: Decimal
    ratio: Decimal
    guarantor_income: Optional[Decimal]
    guarantor_ratio: Optional[Decimal]

    def as_dict(self) -> dict:
        return {
            "rent_amount": _money(self.rent_amount),
            "total_income": _money(self.total_income),
            "ratio": float(self.ratio),
            "guarantor_income": _money(self.guarantor_income) if self.guarantor_income is not None else None,
            "guarantor_ratio": float(self.guarantor_ratio) if self.guarantor_ratio is not None else None,
        }


def compute_solvency(profile: IncomeProfile, rent_amount: Any) -> SolvencyResult:
    rent = to_cents(coerce_amount(rent_amount))
    income = coerce_amount(profile.monthly_income) + coerce_amount(profile.other_income)
    for extra in profile.co_applicant_incomes:
        income += coerce_amount(extra)
    income = to_cents(income)

    declared = [g for g in (profile.guarantor_income, profile.second_guarantor_income) if g is not None]
    guarantor_income: Optional[Decimal] = None
    guarantor_ratio: Optional[Decimal] = None
    if declared:
        guarantor_income = to_cents(sum((coerce_amount(g) for g in declared), ZERO))
        guarantor_ratio = compute_solvency_ratio(guarantor_income, rent)

    return SolvencyResult(
        rent_amount=rent,
        total_income=income,
        ratio=compute_solvency_ratio(income, rent),
        guarantor_income=guarantor_income,
        guarantor_ratio=guarantor_ratio,
    )
