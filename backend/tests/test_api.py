import html

from fastapi.testclient import TestClient

from main import app

client = TestClient(app)


def _with_extras(records: dict, **extras) -> dict:
    return dict(records, extras=extras)


# --- Health and catalogue ---
def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.headers.get("X-Request-Id")


def test_document_types_lists_all_twelve():
    r = client.get("/api/v1/document-types")
    assert r.status_code == 200
    types = {item["document_type"] for item in r.json()}
    assert len(types) == 12
    assert "lease_contract" in types
    contract = next(item for item in r.json() if item["document_type"] == "lease_contract")
    assert "lease" in contract["required_fields"]


def test_brands():
    r = client.get("/api/v1/brands")
    assert r.status_code == 200
    assert {b["brand_id"] for b in r.json()} >= {"default", "classic"}


# --- Documents from records ---
def test_create_payment_notice_as_html(records):
    r = client.post("/api/v1/documents/payment_notice?format=html", json=records)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert r.headers["X-Document-Number"].startswith("AVE-")
    assert int(r.headers["X-Page-Count"]) >= 1
    disposition = r.headers["Content-Disposition"]
    assert disposition.startswith('attachment; filename="payment_notice_claire_dupont_')
    assert disposition.endswith('.html"')
    assert "AVIS D'ÉCHÉANCE" in html.unescape(r.text)


def test_create_contract_uses_contract_filename(records, clauses_file):
    r = client.post("/api/v1/documents/lease_contract?format=html", json=records)
    assert r.status_code == 200
    assert r.headers["Content-Disposition"] == 'attachment; filename="lease_contract_dupont_appartement_t2.html"'
    assert "X-Document-Warnings" not in r.headers


def test_contract_warnings_header(records, clauses_file):
    records = dict(records, lease=dict(records["lease"], end_date="2025-08-31", deposit_amount=2400))
    r = client.post("/api/v1/documents/lease_contract?format=html", json=records)
    assert r.status_code == 200
    assert r.headers["X-Document-Warnings"] == "2"


def test_preview_returns_html(records):
    r = client.post("/api/v1/documents/receipt/preview", json=_with_extras(records, payment={"amount": 900, "payment_date": "2025-03-05"}))
    assert r.status_code == 200
    assert r.headers["X-Document-Number"].startswith("QUI-")
    assert "QUITTANCE DE LOYER" in html.unescape(r.text)


def test_unknown_document_type_is_404(records):
    r = client.post("/api/v1/documents/bail_commercial?format=html", json=records)
    assert r.status_code == 404
    assert r.json()["error"] == "unknown_document_type"


def test_missing_field_is_422_with_path(records):
    r = client.post("/api/v1/documents/receipt?format=html", json=records)
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "missing_field"
    assert body["field"] == "extras.payment"


def test_non_numeric_rent_is_422(records):
    records = dict(records, lease=dict(records["lease"], rent_amount="huit cents"))
    r = client.post("/api/v1/documents/payment_notice?format=html", json=records)
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_field"
    assert r.json()["field"] == "lease.rent_amount"


def test_unknown_brand_is_400(records):
    r = client.post("/api/v1/documents/payment_notice?format=html&brand_id=nope", json=records)
    assert r.status_code == 400


def test_bad_format_is_rejected(records):
    r = client.post("/api/v1/documents/payment_notice?format=docx", json=records)
    assert r.status_code == 422


# --- Prepared payloads ---
def _prepared_receipt(**overrides) -> dict:
    payload = {
        "landlord": {"name": "SCI Les Tilleuls", "city": "Lyon"},
        "tenant": {"name": "Claire Dupont"},
        "property": {"address": "5 avenue Jean Jaurès", "city": "Lyon", "postal_code": "69007"},
        "document_number": "QUI-20250310-AB12",
        "issue_date": "2025-03-10",
        "period_label": "mars 2025",
        "rent_amount": 800,
        "charges_amount": 100,
        "amount_received": 900,
        "payment_date": "2025-03-05",
    }
    payload.update(overrides)
    return {"documentType": "receipt", "payload": payload}


def test_render_prepared_payload(records):
    r = client.post("/api/v1/documents/render?format=html&brand_id=classic", json=_prepared_receipt())
    assert r.status_code == 200
    assert r.headers["X-Document-Number"] == "QUI-20250310-AB12"
    assert 'filename="receipt_claire_dupont_' in r.headers["Content-Disposition"]


def test_render_invalid_payload_is_422():
    body = _prepared_receipt()
    del body["payload"]["amount_received"]
    r = client.post("/api/v1/documents/render?format=html", json=body)
    assert r.status_code == 422
    assert r.json()["error"] == "payload_invalid"
    assert r.json()["field"] == "amount_received"


# --- Calculations ---
def test_indexation_endpoint():
    r = client.post("/api/v1/calculations/indexation", json={"old_rent": 750, "old_index": 100, "new_index": 103})
    assert r.status_code == 200
    assert r.json()["new_rent"] == 772.5
    assert r.json()["variation_percent"] == 3.0


def test_indexation_endpoint_rejects_zero_index():
    r = client.post("/api/v1/calculations/indexation", json={"old_rent": 750, "old_index": 0, "new_index": 103})
    assert r.status_code == 422
    assert r.json()["error"] == "calculation_error"


def test_debt_schedule_endpoint():
    r = client.post(
        "/api/v1/calculations/debt-schedule",
        json={"total_debt": 1000, "installment_count": 3, "start_date": "2025-01-15"},
    )
    assert r.status_code == 200
    body = r.json()
    assert [e["amount"] for e in body["schedule"]] == [334.0, 334.0, 332.0]
    assert body["total_debt"] == 1000.0
    assert body["schedule"][0]["due_date"] == "2025-02-15"


def test_debt_schedule_endpoint_total_is_exact_to_the_cent():
    r = client.post(
        "/api/v1/calculations/debt-schedule",
        json={"total_debt": "100.01", "installment_count": 3, "start_date": "2025-01-15"},
    )
    assert r.status_code == 200
    body = r.json()
    assert [e["amount"] for e in body["schedule"]] == [34.0, 34.0, 32.01]
    assert body["total_debt"] == 100.01


def test_charges_endpoint():
    r = client.post("/api/v1/calculations/charges", json={"provisions_paid": 1200, "actual_charges": 950})
    assert r.status_code == 200
    assert r.json()["balance"] == 250.0
    assert r.json()["is_refund"] is True


def test_solvency_endpoint():
    r = client.post("/api/v1/calculations/solvency", json={"rent_amount": 800, "income": {"monthlyIncome": 2400}})
    assert r.status_code == 200
    assert r.json()["ratio"] == 3.0
    assert r.json()["guarantor_ratio"] is None


# --- Custom clauses ---
def test_clauses_roundtrip_feeds_contract(records, clauses_file):
    assert client.get("/api/v1/clauses/unfurnished_lease").status_code == 404
    r = client.put(
        "/api/v1/clauses/unfurnished_lease",
        json={"customClauses": [{"title": "Animaux", "content": "Les animaux domestiques sont tolérés."}]},
    )
    assert r.status_code == 200
    assert clauses_file.is_file()
    stored = client.get("/api/v1/clauses/unfurnished_lease").json()["value"]
    assert stored["customClauses"][0]["title"] == "Animaux"
    assert client.get("/api/v1/clauses").json() == {"keys": ["unfurnished_lease"]}

    contract = client.post("/api/v1/documents/lease_contract?format=html", json=records)
    assert "ARTICLE 10 - CLAUSES PARTICULIÈRES" in html.unescape(contract.text)
