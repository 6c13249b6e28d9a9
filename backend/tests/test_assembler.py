import html
import re

import pytest
from pydantic import ValidationError

from errors import MissingFieldError, PayloadError, UnknownDocumentTypeError
from models import BusinessRecords, DocumentRequest, DocumentType
from services.assembler import DOCUMENT_REGISTRY, contract_filename, generate_document, get_entry, render_payload

DOC_NUMBER = re.compile(r"^[A-Z]{3}-\d{8}-[A-Z0-9]{4}$")

EXTRAS = {
    DocumentType.RECEIPT: {"payment": {"amount": 900, "payment_date": "2025-03-05", "payment_method": "virement"}},
    DocumentType.PAYMENT_NOTICE: {},
    DocumentType.FORMAL_NOTICE: {"unpaid_payments": [{"due_date": "2025-02-05", "amount_due": 900}]},
    DocumentType.CAF_CERTIFICATE: {},
    DocumentType.ANNUAL_CERTIFICATE: {"year": 2024, "payments": [{"payment_date": "2024-10-03", "amount": 900, "status": "paid"}]},
    DocumentType.LANDLORD_TERMINATION: {"reason": "vente"},
    DocumentType.TENANT_TERMINATION: {},
    DocumentType.SALE_NOTICE: {"sale": {"sale_price": 250000}},
    DocumentType.INDEXATION_LETTER: {"indexation": {"old_index": 142.06, "new_index": 145.47}},
    DocumentType.CHARGE_RECONCILIATION: {"charges": {"year": 2024, "actual_charges": 950}},
    DocumentType.PAYMENT_PLAN: {"debt": {"total": 1000, "installment_count": 3}},
    DocumentType.LEASE_CONTRACT: {},
}


def test_registry_covers_every_document_type():
    assert set(DOCUMENT_REGISTRY) == set(DocumentType)
    assert set(EXTRAS) == set(DocumentType)


def test_get_entry_unknown_type():
    with pytest.raises(UnknownDocumentTypeError) as exc:
        get_entry("bail_commercial")
    assert "bail_commercial" in str(exc.value)


@pytest.mark.parametrize("document_type", list(DocumentType), ids=lambda t: t.value)
def test_generate_every_document_as_html(document_type, records, today):
    records = dict(records, extras=EXTRAS[document_type])
    artifact = generate_document(document_type, records, output="html", today=today)
    assert artifact.document_type == document_type
    assert artifact.media_type == "text/html; charset=utf-8"
    assert artifact.extension == "html"
    assert artifact.page_count >= 1
    assert DOC_NUMBER.match(artifact.document_number)
    assert artifact.document_number in artifact.content.decode("utf-8")


def test_contract_filename_and_no_warnings(records, today):
    artifact = generate_document("lease_contract", records, output="html", today=today)
    assert artifact.filename == "lease_contract_dupont_appartement_t2.html"
    assert artifact.document_number.startswith("BAI-20250310-")
    assert artifact.warnings == []
    assert artifact.page_count >= 2


def test_contract_filename_fallbacks(records):
    recs = BusinessRecords.model_validate(dict(records, tenant={}, tenant_group={"name": "Famille Lefèvre"}, lot=None))
    assert contract_filename(recs, "pdf") == "lease_contract_famille_lefevre_lot.pdf"


def test_contract_with_short_duration_is_generated_with_warning(records, today):
    records = dict(records, lease=dict(records["lease"], end_date="2025-08-31"))
    artifact = generate_document("lease_contract", records, output="html", today=today)
    assert len(artifact.warnings) == 1
    assert "36 mois" in artifact.warnings[0]


def test_contract_clauses_come_from_load_config(records, today):
    stored = {"customClauses": [{"title": "Animaux", "content": "Les animaux domestiques sont tolérés."}]}
    artifact = generate_document(
        "lease_contract", records, load_config=lambda key: stored if key == "unfurnished_lease" else None, output="html", today=today
    )
    text = html.unescape(artifact.content.decode("utf-8"))
    assert "ARTICLE 10 - CLAUSES PARTICULIÈRES" in text
    assert "Les animaux domestiques sont tolérés." in text


def test_contract_with_malformed_clauses_still_renders(records, today):
    artifact = generate_document("lease_contract", records, load_config=lambda key: 42, output="html", today=today)
    assert "ARTICLE 10" not in artifact.content.decode("utf-8")


def test_contract_with_unreadable_clause_store_still_renders(records, today, caplog):
    def load_config(key):
        raise OSError("clauses.json: permission denied")

    artifact = generate_document("lease_contract", records, load_config=load_config, output="html", today=today)
    assert "ARTICLE 10" not in artifact.content.decode("utf-8")
    assert "CLAUSES_UNREADABLE" in caplog.text


def test_partial_receipt_number(records, today):
    records = dict(records, extras={"payment": {"amount": 450, "payment_date": "2025-03-05"}})
    artifact = generate_document("receipt", records, output="html", today=today)
    assert artifact.document_number.startswith("REC-20250310-")
    assert artifact.filename is None


def test_missing_field_stops_generation(records, today):
    records = dict(records, lease=dict(records["lease"], rent_amount=None))
    with pytest.raises(MissingFieldError) as exc:
        generate_document("payment_notice", records, output="html", today=today)
    assert exc.value.field == "lease.rent_amount"


def test_unknown_document_type(records):
    with pytest.raises(UnknownDocumentTypeError):
        generate_document("bail_commercial", records, output="html")


def test_unsupported_output_format(records, today):
    with pytest.raises(PayloadError) as exc:
        generate_document("payment_notice", records, output="docx", today=today)
    assert exc.value.field == "format"


# --- Prepared payloads ---
def test_render_payload_validates_against_type_schema():
    request = DocumentRequest.model_validate(
        {
            "documentType": "indexation_letter",
            "payload": {
                "landlord": {"name": "SCI Les Tilleuls"},
                "tenant": {"name": "Claire Dupont"},
                "property": {"address": "5 avenue Jean Jaurès"},
                "document_number": "IND-20250310-0001",
                "issue_date": "2025-03-10",
                "old_rent": 750,
                "old_index": 100,
                "new_index": 103,
                "effective_date": "2025-09-01",
            },
        }
    )
    artifact = render_payload(request, output="html")
    assert artifact.document_number == "IND-20250310-0001"
    assert "772,50" in artifact.content.decode("utf-8")


def test_render_payload_rejects_incomplete_payload():
    request = DocumentRequest(document_type="indexation_letter", payload={"old_rent": 750})
    with pytest.raises(ValidationError):
        render_payload(request, output="html")
