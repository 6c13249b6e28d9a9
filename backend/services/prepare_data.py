"""
Business records -> document payloads.

Each prepare function reads the loose record dicts handed over by the
persistence layer, applies the document's defaults and returns a plain
payload dict that the type's payload schema validates. Mandatory fields are
checked up front and reported with their dotted record path; nothing is
rendered from a half-filled payload.

Type-specific inputs travel in `records.extras`:

    receipt               payment {amount, payment_date, payment_method}
    payment_notice        month (any date inside the target month)
    formal_notice         unpaid_payments [{due_date, amount_due, amount_paid}], delay_days
    annual_certificate    year, payments [{payment_date, amount, status}]
    landlord_termination  reason, reason_detail, effective_date, beneficiary, beneficiary_relationship
    tenant_termination    reason, reason_detail, departure_date, reduced_notice
    sale_notice           sale {sale_price, agency_fees, payment_terms, completion_delay,
                          special_conditions, effective_date}
    indexation_letter     indexation {old_rent, old_index, new_index, old_period_label,
                          new_period_label, effective_date}
    charge_reconciliation charges {period_label, year, months, payments, provisions_paid,
                          actual_charges, breakdown, settlement_method}
    payment_plan          debt {debt_date, total, details, installment_count, start_date,
                          late_days, other_conditions}
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

from engine.compute import (
    DEFAULT_INSTALLMENT_COUNT,
    add_months,
    classify_receipt,
    coerce_amount,
    indexation_quarters,
    reference_quarter,
    require_number,
    total_debt,
)
from engine.legal_rules import lease_rule, tenant_notice_months
from errors import CalculationError, InvalidFieldError, MissingFieldError
from models import BusinessRecords, DocumentType, LeaseType, coerce_lease_type
from reporting.format_utils import format_date, generate_document_number, parse_date, parse_decimal

logger = logging.getLogger(__name__)

LoadConfig = Callable[[str], Any]

PAYMENT_PAID_STATUSES = {"paid", "payé", "paye"}
DEFAULT_FORMAL_NOTICE_DELAY_DAYS = 8
DEFAULT_PAYMENT_PLAN_LATE_DAYS = 15
DEFAULT_PROVISION_MONTHS = 12


@dataclass
class PrepareContext:
    document_type: DocumentType
    today: date = field(default_factory=date.today)
    load_config: Optional[LoadConfig] = None


# ---------------------------------------------------------------------------
# Record access
# ---------------------------------------------------------------------------


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _get(record: Optional[Dict[str, Any]], key: str, default: Any = None) -> Any:
    if not record:
        return default
    value = record.get(key)
    return default if _blank(value) else value


def _require(record: Optional[Dict[str, Any]], key: str, path: str, ctx: PrepareContext) -> Any:
    value = _get(record, key)
    if value is None:
        raise MissingFieldError(path, ctx.document_type.value)
    return value


def _require_record(record: Optional[Dict[str, Any]], path: str, ctx: PrepareContext) -> Dict[str, Any]:
    if not record:
        raise MissingFieldError(path, ctx.document_type.value)
    return record


def _require_amount(record: Optional[Dict[str, Any]], key: str, path: str, ctx: PrepareContext) -> float:
    """Mandatory amount: absent -> MissingFieldError, non-numeric -> InvalidFieldError."""
    return float(require_number(_require(record, key, path, ctx), path))


def _require_date(record: Optional[Dict[str, Any]], key: str, path: str, ctx: PrepareContext) -> date:
    raw = _require(record, key, path, ctx)
    parsed = parse_date(raw)
    if parsed is None:
        raise InvalidFieldError(path, raw, expected="a date")
    return parsed


def _optional_float(value: Any) -> Optional[float]:
    parsed = parse_decimal(value)
    return float(parsed) if parsed is not None else None


def _optional_int(value: Any) -> Optional[int]:
    parsed = parse_decimal(value)
    return int(parsed) if parsed is not None else None


def _person_name(record: Optional[Dict[str, Any]]) -> str:
    if not record:
        return ""
    if _get(record, "name"):
        return str(record["name"]).strip()
    return " ".join(str(_get(record, k, "")).strip() for k in ("first_name", "last_name")).strip()


def _party(record: Dict[str, Any], name: str) -> Dict[str, Any]:
    return {
        "name": name,
        "address": _get(record, "address", ""),
        "city": _get(record, "city", ""),
        "postal_code": str(_get(record, "postal_code", "")),
        "email": _get(record, "email"),
        "phone": _get(record, "phone"),
        "tax_id": _get(record, "siret"),
        "legal_form": _get(record, "entity_type") or _get(record, "legal_form"),
        "bank_account": _get(record, "iban"),
        "bic": _get(record, "bic"),
    }


def landlord_party(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """The owning entity (SCI, company) takes precedence over the individual landlord."""
    if records.entity and _get(records.entity, "name"):
        return _party(records.entity, str(records.entity["name"]).strip())
    name = _person_name(records.landlord)
    if not name:
        raise MissingFieldError("entity.name", ctx.document_type.value)
    return _party(records.landlord or {}, name)


def tenant_party(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """Documents are addressed to the tenant group when there is one."""
    group = records.tenant_group or {}
    name = _person_name(group) or _person_name(records.tenant)
    if not name:
        raise MissingFieldError("tenant_group.name", ctx.document_type.value)
    source = dict(records.tenant or {})
    for key, value in group.items():
        if not _blank(value) and key not in ("name", "first_name", "last_name"):
            source.setdefault(key, value)
    return _party(source, name)


def premises(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    prop = records.property_record or {}
    lot = records.lot or {}
    address = _get(prop, "address") or _get(lot, "address")
    if address is None:
        raise MissingFieldError("property.address", ctx.document_type.value)
    label = str(_get(lot, "name", "")).strip()
    if label and _get(lot, "reference"):
        label = f"{label} ({lot['reference']})"
    annexes = _get(lot, "equipments") or _get(lot, "annexes") or []
    return {
        "address": address,
        "city": _get(prop, "city", ""),
        "postal_code": str(_get(prop, "postal_code", "")),
        "label": label,
        "surface": _optional_float(_get(lot, "surface_habitable") or _get(lot, "surface_area")),
        "rooms": _optional_int(_get(lot, "nb_rooms")),
        "lot_type": _get(lot, "lot_type"),
        "floor": _optional_int(_get(lot, "floor")),
        "door_number": _get(lot, "door_number"),
        "furnished": bool(_get(lot, "furnished", False)),
        "annexes": [str(a) for a in annexes] if isinstance(annexes, (list, tuple)) else [],
        "dpe_rating": _get(lot, "dpe_rating"),
        "dpe_value": _optional_float(_get(lot, "dpe_value")),
        "ges_rating": _get(lot, "ges_rating"),
        "ges_value": _optional_float(_get(lot, "ges_value")),
    }


def is_furnished(records: BusinessRecords) -> bool:
    """Furnished if the lease says so, or the lot is flagged furnished when the lease is silent."""
    raw = _get(records.lease, "lease_type")
    if raw is not None:
        try:
            return coerce_lease_type(raw) != LeaseType.UNFURNISHED
        except ValueError:
            pass
    return bool(_get(records.lot, "furnished", False))


def _base(records: BusinessRecords, ctx: PrepareContext, number_type: str | None = None) -> Dict[str, Any]:
    return {
        "landlord": landlord_party(records, ctx),
        "tenant": tenant_party(records, ctx),
        "premises": premises(records, ctx),
        "document_number": generate_document_number(number_type or ctx.document_type.value, on=ctx.today),
        "issue_date": ctx.today,
    }


def _lease_amounts(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, float]:
    lease = _require_record(records.lease, "lease", ctx)
    return {
        "rent_amount": _require_amount(lease, "rent_amount", "lease.rent_amount", ctx),
        "charges_amount": float(coerce_amount(_get(lease, "charges_amount"))),
    }


def _aid_paid_to_landlord(records: BusinessRecords) -> float:
    if not _get(records.lease, "caf_direct_payment", False):
        return 0.0
    return float(coerce_amount(_get(records.lease, "caf_amount")))


def _month_bounds(d: date) -> tuple[date, date]:
    first = d.replace(day=1)
    return first, add_months(first, 1) - timedelta(days=1)


# ---------------------------------------------------------------------------
# Per-type transforms
# ---------------------------------------------------------------------------


def prepare_receipt(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    payment = _require_record(records.extras.get("payment"), "extras.payment", ctx)
    amounts = _lease_amounts(records, ctx)
    paid_on = _require_date(payment, "payment_date", "extras.payment.payment_date", ctx)
    received = _require_amount(payment, "amount", "extras.payment.amount", ctx)
    aid = _aid_paid_to_landlord(records)
    status = classify_receipt(amounts["rent_amount"], amounts["charges_amount"], received, aid)
    start, end = _month_bounds(paid_on)
    payload = _base(records, ctx, "receipt" if status.is_full else "partial_receipt")
    payload.update(
        amounts,
        period_label=format_date(paid_on, "month_year"),
        period_start=start,
        period_end=end,
        aid_amount=aid,
        amount_received=received,
        payment_date=paid_on,
        payment_method=_get(payment, "payment_method"),
    )
    return payload


def prepare_payment_notice(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """Target month defaults to next month; the due day is the lease payment day (5 by default)."""
    amounts = _lease_amounts(records, ctx)
    month = parse_date(records.extras.get("month"))
    target = month.replace(day=1) if month else add_months(ctx.today.replace(day=1), 1)
    payment_day = _optional_int(_get(records.lease, "payment_day")) or 5
    _, last = _month_bounds(target)
    due = target.replace(day=min(max(1, payment_day), last.day))
    payload = _base(records, ctx)
    payload.update(
        amounts,
        period_label=format_date(target, "month_year"),
        due_date=due,
        aid_amount=_aid_paid_to_landlord(records),
    )
    return payload


def prepare_formal_notice(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    unpaid = records.extras.get("unpaid_payments") or []
    if not unpaid:
        raise MissingFieldError("extras.unpaid_payments", ctx.document_type.value)
    debts = []
    for i, item in enumerate(unpaid):
        path = f"extras.unpaid_payments[{i}]"
        when = parse_date(_get(item, "due_date") or _get(item, "payment_date"))
        if when is None:
            raise MissingFieldError(f"{path}.due_date", ctx.document_type.value)
        due_raw = _get(item, "amount_due") if _get(item, "amount_due") is not None else _get(item, "amount")
        if due_raw is None:
            raise MissingFieldError(f"{path}.amount_due", ctx.document_type.value)
        due = require_number(due_raw, f"{path}.amount_due")
        remaining = due - coerce_amount(_get(item, "amount_paid"))
        if remaining <= 0:
            continue
        debts.append({"label": f"Loyer et charges - {format_date(when, 'month_year')}", "amount": float(remaining)})
    if not debts:
        raise CalculationError("No outstanding amount in extras.unpaid_payments")
    total = total_debt(debts)
    requested = _optional_int(records.extras.get("delay_days")) or DEFAULT_FORMAL_NOTICE_DELAY_DAYS
    payload = _base(records, ctx)
    payload.update(
        debts=debts,
        total_debt=float(total),
        delay_days=max(DEFAULT_FORMAL_NOTICE_DELAY_DAYS, requested),
        lease_start_date=parse_date(_get(records.lease, "start_date")),
    )
    return payload


def _lease_terms(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    lease = _require_record(records.lease, "lease", ctx)
    raw_type = _get(lease, "lease_type") or ("furnished" if is_furnished(records) else "")
    try:
        lease_type = coerce_lease_type(raw_type)
    except ValueError:
        raise InvalidFieldError("lease.lease_type", raw_type, expected="a known lease type") from None
    deposit = _optional_float(_get(lease, "deposit_amount"))
    rent = _require_amount(lease, "rent_amount", "lease.rent_amount", ctx)
    if deposit is None:
        deposit = 0.0 if lease_rule(lease_type).max_deposit_months == 0 else rent
    return {
        "rent_amount": rent,
        "charges_amount": float(coerce_amount(_get(lease, "charges_amount"))),
        "deposit_amount": deposit,
        "start_date": _require_date(lease, "start_date", "lease.start_date", ctx),
        "end_date": parse_date(_get(lease, "end_date")),
        "lease_type": lease_type,
        "payment_day": _optional_int(_get(lease, "payment_day")) or 5,
    }


def prepare_caf_certificate(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    payload = _base(records, ctx)
    payload.update(
        lease=_lease_terms(records, ctx),
        beneficiary_number=str(
            _get(records.tenant_group, "caf_allocataire_number") or _get(records.tenant, "caf_allocataire_number") or ""
        ),
        direct_payment=bool(_get(records.lease, "caf_direct_payment", False)),
        aid_amount=float(coerce_amount(_get(records.lease, "caf_amount"))),
    )
    return payload


def _is_paid(payment: Any) -> bool:
    return str(_get(payment, "status", "")).strip().lower() in PAYMENT_PAID_STATUSES


def paid_months(payments: List[Dict[str, Any]], year: int) -> int:
    """Payments marked paid whose due date (else payment date) falls in `year`."""
    count = 0
    for item in payments:
        when = parse_date(_get(item, "due_date") or _get(item, "payment_date"))
        if when is not None and when.year == year and _is_paid(item):
            count += 1
    return count


def prepare_annual_certificate(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """Only payments marked paid and dated within the year are listed, sorted by month."""
    amounts = _lease_amounts(records, ctx)
    year = _optional_int(records.extras.get("year")) or ctx.today.year
    lines = []
    for item in records.extras.get("payments") or []:
        paid_on = parse_date(_get(item, "payment_date"))
        if paid_on is None or paid_on.year != year or not _is_paid(item):
            continue
        lines.append(
            {
                "month": paid_on.month,
                "rent_amount": amounts["rent_amount"],
                "charges_amount": amounts["charges_amount"],
                "amount_paid": float(coerce_amount(_get(item, "amount"))),
            }
        )
    lines.sort(key=lambda line: line["month"])
    payload = _base(records, ctx)
    payload.update(year=year, payments=lines)
    return payload


def prepare_landlord_termination(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    extras = records.extras
    effective = parse_date(extras.get("effective_date")) or parse_date(_get(records.lease, "end_date"))
    if effective is None:
        raise MissingFieldError("lease.end_date", ctx.document_type.value)
    beneficiary = extras.get("beneficiary")
    if isinstance(beneficiary, dict):
        name = _person_name(beneficiary)
        beneficiary = _party(beneficiary, name) if name else None
    elif isinstance(beneficiary, str) and beneficiary.strip():
        beneficiary = {"name": beneficiary.strip()}
    else:
        beneficiary = None
    payload = _base(records, ctx)
    payload.update(
        reason=extras.get("reason") or "motif_legitime",
        reason_detail=extras.get("reason_detail"),
        effective_date=effective,
        lease_start_date=parse_date(_get(records.lease, "start_date")),
        furnished=is_furnished(records),
        beneficiary=beneficiary,
        beneficiary_relationship=extras.get("beneficiary_relationship"),
    )
    return payload


def prepare_tenant_termination(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """Departure defaults to today plus the applicable notice period."""
    extras = records.extras
    reason = extras.get("reason") or "convenance"
    reduced = bool(extras.get("reduced_notice", False))
    furnished = is_furnished(records)
    departure = parse_date(extras.get("departure_date"))
    if departure is None:
        departure = add_months(ctx.today, tenant_notice_months(furnished, reason, reduced))
    payload = _base(records, ctx)
    payload.update(
        reason=reason,
        reason_detail=extras.get("reason_detail"),
        departure_date=departure,
        furnished=furnished,
        reduced_notice=reduced,
    )
    return payload


def prepare_sale_notice(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """Pre-emption answer is due two months after issue; the lease ends at its term by default."""
    sale = _require_record(records.extras.get("sale"), "extras.sale", ctx)
    price = _require_amount(sale, "sale_price", "extras.sale.sale_price", ctx)
    effective = parse_date(_get(sale, "effective_date")) or parse_date(_get(records.lease, "end_date"))
    if effective is None:
        raise MissingFieldError("lease.end_date", ctx.document_type.value)
    payload = _base(records, ctx)
    payload.update(
        sale_price=price,
        agency_fees=float(coerce_amount(_get(sale, "agency_fees"))),
        furnished=is_furnished(records),
        special_conditions=_get(sale, "special_conditions"),
        effective_date=effective,
        response_deadline=add_months(ctx.today, 2),
    )
    for key in ("payment_terms", "completion_delay"):
        if _get(sale, key) is not None:
            payload[key] = sale[key]
    return payload


def prepare_indexation_letter(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    data = _require_record(records.extras.get("indexation"), "extras.indexation", ctx)
    old_rent_raw = _get(data, "old_rent")
    if old_rent_raw is None:
        old_rent_raw = _require(records.lease, "rent_amount", "lease.rent_amount", ctx)
    effective = parse_date(_get(data, "effective_date")) or parse_date(_get(records.lease, "start_date"))
    if effective is None:
        raise MissingFieldError("extras.indexation.effective_date", ctx.document_type.value)
    old_label, new_label = _irl_labels(records, ctx)
    payload = _base(records, ctx)
    payload.update(
        old_rent=float(require_number(old_rent_raw, "extras.indexation.old_rent")),
        old_index=_require_amount(data, "old_index", "extras.indexation.old_index", ctx),
        new_index=_require_amount(data, "new_index", "extras.indexation.new_index", ctx),
        old_period_label=str(_get(data, "old_period_label") or old_label),
        new_period_label=str(_get(data, "new_period_label") or new_label),
        effective_date=effective,
    )
    return payload


def _irl_labels(records: BusinessRecords, ctx: PrepareContext) -> tuple[str, str]:
    """
    Quarter labels from the lease's IRL reference (irl_reference_year and
    irl_reference_quarter), else from the quarter the lease started in.
    """
    lease = records.lease or {}
    start = _get(lease, "start_date")
    year, quarter = _get(lease, "irl_reference_year"), _get(lease, "irl_reference_quarter")
    if year is None or quarter is None:
        ref = reference_quarter(start)
        if ref is None:
            return "", ""
        quarter, year = ref
    return indexation_quarters(year, quarter, start, on=ctx.today)


def prepare_charge_reconciliation(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """Provisions default to the charge provision times the months paid that year, else 12 months."""
    data = _require_record(records.extras.get("charges"), "extras.charges", ctx)
    year = _optional_int(_get(data, "year")) or ctx.today.year
    period_label = str(_get(data, "period_label") or year)
    provisions = _get(data, "provisions_paid")
    if provisions is None:
        monthly = coerce_amount(_get(records.lease, "charges_amount"))
        payments = _get(data, "payments") or records.extras.get("payments")
        if payments:
            months = paid_months(payments, year)
        else:
            months = _optional_int(_get(data, "months")) or DEFAULT_PROVISION_MONTHS
        provisions = monthly * months
    breakdown = []
    for i, line in enumerate(_get(data, "breakdown") or []):
        label = _get(line, "label")
        if label is None:
            raise MissingFieldError(f"extras.charges.breakdown[{i}].label", ctx.document_type.value)
        breakdown.append({"label": label, "amount": float(require_number(_get(line, "amount"), f"extras.charges.breakdown[{i}].amount"))})
    actual = _get(data, "actual_charges")
    if actual is None:
        if not breakdown:
            raise MissingFieldError("extras.charges.actual_charges", ctx.document_type.value)
        actual = total_debt(breakdown)
    period_start = parse_date(_get(data, "period_start"))
    period_end = parse_date(_get(data, "period_end"))
    if period_start is None and _get(data, "period_label") is None:
        period_start, period_end = date(year, 1, 1), date(year, 12, 31)
    payload = _base(records, ctx)
    payload.update(
        period_label=period_label,
        period_start=period_start,
        period_end=period_end,
        provisions_paid=float(require_number(provisions, "extras.charges.provisions_paid")),
        actual_charges=float(require_number(actual, "extras.charges.actual_charges")),
        breakdown=breakdown,
        settlement_method=_get(data, "settlement_method"),
    )
    return payload


def _installment_count(data: Dict[str, Any]) -> int:
    """6 when not given; anything else must be a whole number."""
    raw = _get(data, "installment_count")
    if raw is None:
        return DEFAULT_INSTALLMENT_COUNT
    value = require_number(raw, "extras.debt.installment_count")
    if value != value.to_integral_value():
        raise InvalidFieldError("extras.debt.installment_count", raw, expected="a whole number")
    return int(value)


def prepare_payment_plan(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    data = _require_record(records.extras.get("debt"), "extras.debt", ctx)
    details = [
        {"label": str(_get(d, "label", "Arriérés de loyers")), "amount": float(require_number(_get(d, "amount"), f"extras.debt.details[{i}].amount"))}
        for i, d in enumerate(_get(data, "details") or [])
    ]
    total_raw = _get(data, "total")
    if total_raw is None:
        if not details:
            raise MissingFieldError("extras.debt.total", ctx.document_type.value)
        total = total_debt(details)
    else:
        total = require_number(total_raw, "extras.debt.total")
    payload = _base(records, ctx)
    payload.update(
        debt_date=parse_date(_get(data, "debt_date")) or ctx.today,
        debts=details,
        total_debt=float(total),
        installment_count=_installment_count(data),
        start_date=parse_date(_get(data, "start_date")) or ctx.today,
        late_days=_optional_int(_get(data, "late_days")) or DEFAULT_PAYMENT_PLAN_LATE_DAYS,
        other_conditions=_get(data, "other_conditions"),
    )
    return payload


def clause_key(lease_type: LeaseType) -> str:
    return f"{lease_type.value}_lease"


def custom_clauses(lease_type: LeaseType, load_config: Optional[LoadConfig]) -> List[Dict[str, Any]]:
    """
    Clauses stored under "<lease_type>_lease", either {"customClauses": [...]}
    or a bare list. Anything malformed is logged and treated as no clauses.
    """
    if load_config is None:
        return []
    key = clause_key(lease_type)
    try:
        raw = load_config(key)
    except Exception as e:
        logger.warning("CLAUSES_UNREADABLE key=%s err=%s", key, e)
        return []
    if raw is None:
        return []
    if isinstance(raw, dict):
        raw = raw.get("customClauses", raw.get("custom_clauses", []))
    if not isinstance(raw, list):
        logger.warning("CLAUSES_MALFORMED key=%s type=%s", key, type(raw).__name__)
        return []
    clauses = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning("CLAUSES_MALFORMED key=%s index=%d type=%s", key, i, type(item).__name__)
            return []
        title, content = item.get("title"), item.get("content")
        if (title is not None and not isinstance(title, str)) or (content is not None and not isinstance(content, str)):
            logger.warning("CLAUSES_MALFORMED key=%s index=%d", key, i)
            return []
        clauses.append({"title": title, "content": content})
    return clauses


def prepare_lease_contract(records: BusinessRecords, ctx: PrepareContext) -> Dict[str, Any]:
    """The clause configuration is read once per contract."""
    terms = _lease_terms(records, ctx)
    payload = _base(records, ctx)
    payload.update(
        lease=terms,
        custom_clauses=custom_clauses(terms["lease_type"], ctx.load_config),
        signature_city=str(records.extras.get("signature_city") or payload["landlord"]["city"] or ""),
    )
    return payload
