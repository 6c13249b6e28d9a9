from datetime import date

import pytest

from errors import CalculationError, InvalidFieldError, MissingFieldError
from models import BusinessRecords, DocumentType, LeaseType
from services.assembler import prepare_payload
from services.prepare_data import PrepareContext, clause_key, custom_clauses, landlord_party, premises, tenant_party

TODAY = date(2025, 3, 10)


def _records(records: dict, **extras) -> BusinessRecords:
    data = dict(records, extras=extras)
    return BusinessRecords.model_validate(data)


def _prepare(document_type, records: dict, load_config=None, **extras):
    return prepare_payload(document_type, _records(records, **extras), load_config=load_config, today=TODAY)


# --- Parties ---
def test_entity_is_the_landlord_and_group_is_the_tenant(records):
    recs = _records(records)
    ctx = PrepareContext(DocumentType.RECEIPT, today=TODAY)
    landlord = landlord_party(recs, ctx)
    assert landlord["name"] == "SCI Les Tilleuls"
    assert landlord["legal_form"] == "sci"
    assert landlord["bank_account"] == "FR7630006000011234567890189"
    tenant = tenant_party(recs, ctx)
    assert tenant["name"] == "Claire Dupont"
    assert tenant["email"] == "claire.dupont@example.com"


def test_individual_landlord_when_no_entity(records):
    records = dict(records, entity=None, landlord={"first_name": "Jean", "last_name": "Martin", "city": "Lyon"})
    landlord = landlord_party(_records(records), PrepareContext(DocumentType.RECEIPT, today=TODAY))
    assert landlord["name"] == "Jean Martin"


def test_missing_landlord_is_reported(records):
    records = dict(records, entity=None, landlord=None)
    with pytest.raises(MissingFieldError) as exc:
        landlord_party(_records(records), PrepareContext(DocumentType.RECEIPT, today=TODAY))
    assert exc.value.field == "entity.name"


def test_premises_label_includes_lot_reference(records):
    info = premises(_records(records), PrepareContext(DocumentType.RECEIPT, today=TODAY))
    assert info["label"] == "Appartement T2 (A12)"
    assert info["surface"] == 48.5
    assert info["rooms"] == 2


def test_missing_address_is_reported(records):
    records = dict(records, property={"city": "Lyon"})
    with pytest.raises(MissingFieldError) as exc:
        _prepare("payment_notice", records)
    assert exc.value.field == "property.address"


# --- Receipts ---
def test_full_payment_gives_a_quittance_number(records):
    payload = _prepare("receipt", records, payment={"amount": 900, "payment_date": "2025-03-05"})
    assert payload.document_number.startswith("QUI-20250310-")
    assert payload.period_label == "mars 2025"
    assert payload.period_start == date(2025, 3, 1)
    assert payload.period_end == date(2025, 3, 31)


def test_partial_payment_gives_a_recu_number(records):
    payload = _prepare("receipt", records, payment={"amount": 500, "payment_date": "2025-03-05"})
    assert payload.document_number.startswith("REC-")


def test_direct_aid_counts_towards_the_rent(records):
    records = dict(records, lease=dict(records["lease"], caf_direct_payment=True, caf_amount=200))
    payload = _prepare("receipt", records, payment={"amount": 700, "payment_date": "2025-03-05"})
    assert payload.aid_amount == 200
    assert payload.document_number.startswith("QUI-")


def test_receipt_without_payment(records):
    with pytest.raises(MissingFieldError) as exc:
        _prepare("receipt", records)
    assert exc.value.field == "extras.payment"
    assert exc.value.document_type == "receipt"


def test_receipt_with_blank_rent(records):
    records = dict(records, lease=dict(records["lease"], rent_amount="  "))
    with pytest.raises(MissingFieldError) as exc:
        _prepare("receipt", records, payment={"amount": 900, "payment_date": "2025-03-05"})
    assert exc.value.field == "lease.rent_amount"


def test_receipt_with_non_numeric_amount(records):
    with pytest.raises(InvalidFieldError) as exc:
        _prepare("receipt", records, payment={"amount": "neuf cents", "payment_date": "2025-03-05"})
    assert exc.value.field == "extras.payment.amount"


# --- Notices ---
def test_payment_notice_defaults_to_next_month(records):
    payload = _prepare("payment_notice", records)
    assert payload.period_label == "avril 2025"
    assert payload.due_date == date(2025, 4, 5)


def test_payment_notice_due_day_clamped_to_month_end(records):
    records = dict(records, lease=dict(records["lease"], payment_day=31))
    payload = _prepare("payment_notice", records, month="2025-02-14")
    assert payload.due_date == date(2025, 2, 28)


def test_formal_notice_keeps_only_outstanding_months(records):
    unpaid = [
        {"due_date": "2025-01-05", "amount_due": 900, "amount_paid": 300},
        {"due_date": "2025-02-05", "amount_due": 900, "amount_paid": 900},
        {"due_date": "2025-03-05", "amount_due": 900},
    ]
    payload = _prepare("formal_notice", records, unpaid_payments=unpaid, delay_days=3)
    assert [d.label for d in payload.debts] == ["Loyer et charges - janvier 2025", "Loyer et charges - mars 2025"]
    assert payload.total_debt == 1500
    assert payload.delay_days == 8
    assert payload.lease_start_date == date(2024, 9, 1)


def test_formal_notice_without_arrears(records):
    with pytest.raises(MissingFieldError):
        _prepare("formal_notice", records)
    with pytest.raises(CalculationError):
        _prepare("formal_notice", records, unpaid_payments=[{"due_date": "2025-01-05", "amount_due": 900, "amount_paid": 900}])


def test_formal_notice_reports_item_path(records):
    with pytest.raises(MissingFieldError) as exc:
        _prepare("formal_notice", records, unpaid_payments=[{"due_date": "2025-01-05"}])
    assert exc.value.field == "extras.unpaid_payments[0].amount_due"


# --- Certificates ---
def test_annual_certificate_keeps_paid_payments_of_the_year(records):
    payments = [
        {"payment_date": "2024-11-04", "amount": 900, "status": "paid"},
        {"payment_date": "2024-09-03", "amount": 900, "status": "Payé"},
        {"payment_date": "2024-10-05", "amount": 900, "status": "pending"},
        {"payment_date": "2023-12-05", "amount": 900, "status": "paid"},
    ]
    payload = _prepare("annual_certificate", records, year=2024, payments=payments)
    assert [line.month for line in payload.payments] == [9, 11]
    assert payload.year == 2024


def test_caf_certificate_carries_lease_terms(records):
    records = dict(records, tenant_group={"name": "Claire Dupont", "caf_allocataire_number": "1234567"})
    payload = _prepare("caf_certificate", records)
    assert payload.beneficiary_number == "1234567"
    assert payload.lease.lease_type == LeaseType.UNFURNISHED
    assert not payload.direct_payment


# --- Terminations, sale ---
def test_landlord_termination_defaults_to_lease_end(records):
    payload = _prepare("landlord_termination", records, reason="reprise", beneficiary={"first_name": "Paul", "last_name": "Martin"})
    assert payload.effective_date == date(2027, 8, 31)
    assert payload.beneficiary.name == "Paul Martin"
    assert not payload.furnished


def test_tenant_termination_departure_after_notice(records):
    assert _prepare("tenant_termination", records).departure_date == date(2025, 6, 10)
    reduced = _prepare("tenant_termination", records, reason="mutation")
    assert reduced.departure_date == date(2025, 4, 10)


def test_furnished_lot_shortens_notice(records):
    records = dict(records, lease=dict(records["lease"], lease_type="meublé"))
    assert _prepare("tenant_termination", records).departure_date == date(2025, 4, 10)


def test_sale_notice_deadlines(records):
    payload = _prepare("sale_notice", records, sale={"sale_price": "250 000"})
    assert payload.sale_price == 250000
    assert payload.response_deadline == date(2025, 5, 10)
    assert payload.effective_date == date(2027, 8, 31)


def test_sale_notice_requires_price(records):
    with pytest.raises(MissingFieldError) as exc:
        _prepare("sale_notice", records, sale={"agency_fees": 5000})
    assert exc.value.field == "extras.sale.sale_price"


# --- Indexation, charges, payment plan ---
def test_indexation_letter_falls_back_to_lease_rent(records):
    payload = _prepare("indexation_letter", records, indexation={"old_index": 142.06, "new_index": 145.47})
    assert payload.old_rent == 800
    assert payload.effective_date == date(2024, 9, 1)


def test_indexation_letter_labels_from_lease_irl_reference(records):
    lease = dict(records["lease"], irl_reference_year=2023, irl_reference_quarter=2)
    payload = _prepare("indexation_letter", dict(records, lease=lease), indexation={"old_index": 142.06, "new_index": 145.47})
    assert payload.old_period_label == "T2 2023"
    assert payload.new_period_label == "T2 2024"


def test_indexation_letter_labels_from_lease_start_quarter(records):
    payload = _prepare("indexation_letter", records, indexation={"old_index": 142.06, "new_index": 145.47})
    assert payload.old_period_label == "T3 2024"
    assert payload.new_period_label == "T3 2025"


def test_indexation_letter_keeps_given_labels(records):
    indexation = {"old_index": 142.06, "new_index": 145.47, "old_period_label": "T4 2023", "new_period_label": "T4 2024"}
    payload = _prepare("indexation_letter", records, indexation=indexation)
    assert (payload.old_period_label, payload.new_period_label) == ("T4 2023", "T4 2024")


def test_indexation_letter_rejects_bad_reference_quarter(records):
    lease = dict(records["lease"], irl_reference_year=2023, irl_reference_quarter=5)
    with pytest.raises(InvalidFieldError) as exc:
        _prepare("indexation_letter", dict(records, lease=lease), indexation={"old_index": 142.06, "new_index": 145.47})
    assert exc.value.field == "lease.irl_reference_quarter"


def test_indexation_letter_requires_indices(records):
    with pytest.raises(MissingFieldError) as exc:
        _prepare("indexation_letter", records, indexation={"old_index": 142.06})
    assert exc.value.field == "extras.indexation.new_index"


def test_charge_reconciliation_defaults_provisions_to_twelve_months(records):
    payload = _prepare("charge_reconciliation", records, charges={"year": 2024, "actual_charges": 950})
    assert payload.provisions_paid == 1200
    assert payload.period_label == "2024"
    assert payload.period_start == date(2024, 1, 1)


PAYMENTS_2024 = [
    {"due_date": "2024-01-05", "payment_date": "2024-01-04", "amount": 900, "status": "paid"},
    {"due_date": "2024-02-05", "amount": 900, "status": "Payé"},
    {"payment_date": "2024-03-06", "amount": 900, "status": "paid"},
    {"due_date": "2024-04-05", "amount": 900, "status": "pending"},
    {"due_date": "2023-12-05", "amount": 900, "status": "paid"},
]


def test_charge_reconciliation_provisions_from_paid_months(records):
    charges = {"year": 2024, "actual_charges": 950, "payments": PAYMENTS_2024}
    payload = _prepare("charge_reconciliation", records, charges=charges)
    assert payload.provisions_paid == 300


def test_charge_reconciliation_uses_top_level_payments(records):
    payload = _prepare("charge_reconciliation", records, charges={"year": 2024, "actual_charges": 950}, payments=PAYMENTS_2024)
    assert payload.provisions_paid == 300


def test_charge_reconciliation_actual_from_breakdown(records):
    breakdown = [{"label": "Eau froide", "amount": 400}, {"label": "Chauffage", "amount": "550,50"}]
    payload = _prepare("charge_reconciliation", records, charges={"provisions_paid": 900, "breakdown": breakdown})
    assert payload.actual_charges == 950.5


def test_payment_plan_total_from_details(records):
    debt = {"details": [{"label": "Janvier", "amount": 900}, {"label": "Février", "amount": 450}], "installment_count": 3}
    payload = _prepare("payment_plan", records, debt=debt)
    assert payload.total_debt == 1350
    assert payload.start_date == TODAY
    assert payload.late_days == 15


def test_payment_plan_installment_count_defaults_to_six(records):
    payload = _prepare("payment_plan", records, debt={"total": 1200})
    assert payload.installment_count == 6
    assert _prepare("payment_plan", records, debt={"total": 1200, "installment_count": "4"}).installment_count == 4


@pytest.mark.parametrize("count", ["abc", "2.5", 2.5])
def test_payment_plan_rejects_bad_installment_count(records, count):
    with pytest.raises(InvalidFieldError) as exc:
        _prepare("payment_plan", records, debt={"total": 1200, "installment_count": count})
    assert exc.value.field == "extras.debt.installment_count"


# --- Lease contract and clauses ---
def test_lease_contract_deposit_defaults(records):
    lease = {k: v for k, v in records["lease"].items() if k != "deposit_amount"}
    payload = _prepare("lease_contract", dict(records, lease=lease))
    assert payload.lease.deposit_amount == 800
    mobility = dict(lease, lease_type="mobility", end_date="2025-06-30")
    assert _prepare("lease_contract", dict(records, lease=mobility)).lease.deposit_amount == 0
    assert payload.signature_city == "Lyon"


def test_lease_contract_unknown_lease_type(records):
    records = dict(records, lease=dict(records["lease"], lease_type="commercial"))
    with pytest.raises(InvalidFieldError) as exc:
        _prepare("lease_contract", records)
    assert exc.value.field == "lease.lease_type"


def test_clause_config_is_read_once_under_lease_type_key(records):
    calls = []

    def load_config(key):
        calls.append(key)
        return {"customClauses": [{"title": "Animaux", "content": "Tolérés."}, {"content": "Sans titre."}]}

    payload = _prepare("lease_contract", records, load_config=load_config)
    assert calls == ["unfurnished_lease"]
    assert [c.title for c in payload.custom_clauses] == ["Animaux", None]


def test_clause_key_per_lease_type():
    assert clause_key(LeaseType.FURNISHED) == "furnished_lease"
    assert clause_key(LeaseType.MOBILITY) == "mobility_lease"


@pytest.mark.parametrize(
    "stored",
    [
        "not a list",
        {"customClauses": {"title": "x"}},
        [{"title": "ok"}, "loose text"],
        [{"title": 12, "content": "x"}],
    ],
)
def test_malformed_clauses_mean_no_clauses(stored, caplog):
    assert custom_clauses(LeaseType.UNFURNISHED, lambda key: stored) == []
    assert "CLAUSES_MALFORMED" in caplog.text


def test_unreadable_clause_store_means_no_clauses(caplog):
    def load_config(key):
        raise OSError("clauses.json: permission denied")

    assert custom_clauses(LeaseType.UNFURNISHED, load_config) == []
    assert "CLAUSES_UNREADABLE key=unfurnished_lease" in caplog.text


def test_clauses_absent_or_no_loader():
    assert custom_clauses(LeaseType.UNFURNISHED, None) == []
    assert custom_clauses(LeaseType.UNFURNISHED, lambda key: None) == []
    assert custom_clauses(LeaseType.UNFURNISHED, lambda key: [{"title": "A"}]) == [{"title": "A", "content": None}]
