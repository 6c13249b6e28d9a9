"""
Document API: document types, generation from business records, rendering
of prepared payloads, standalone calculations and custom clause sets.
"""
from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, Response

import clause_store
from brands import active_brand, get_brand, list_brands
from engine.compute import compute_debt_schedule, compute_indexation, compute_solvency, reconcile_charges
from errors import DocumentError
from models import (
    BusinessRecords,
    ChargesRequest,
    ClauseSet,
    DebtScheduleRequest,
    DocumentRequest,
    DocumentType,
    IndexationRequest,
    SolvencyRequest,
)
from models_branding import BrandConfig
from reporting.document_templates import TEMPLATES
from reporting.format_utils import sanitize_filename_part, to_cents
from reporting.lease_contract import CONTRACT_TITLE
from services.assembler import DOCUMENT_REGISTRY, DocumentArtifact, generate_document, render_payload

router = APIRouter(prefix="/api/v1", tags=["api"])

_LOG = logging.getLogger("uvicorn.error")


def _rid(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())[:8]


def _brand(brand_id: Optional[str]) -> BrandConfig:
    if not brand_id:
        return active_brand()
    brand = get_brand(brand_id)
    if brand is None:
        raise HTTPException(status_code=400, detail=f"Unknown brand_id: {brand_id}")
    return brand


def _download_name(artifact: DocumentArtifact, tenant_name: str) -> str:
    """Contracts carry their own filename; other documents get <type>_<tenant>_<date>.<ext>."""
    if artifact.filename:
        return artifact.filename
    tenant = sanitize_filename_part(tenant_name, "locataire")
    return f"{artifact.document_type.value}_{tenant}_{date.today().isoformat()}.{artifact.extension}"


def _artifact_response(artifact: DocumentArtifact, tenant_name: str, inline: bool = False) -> Response:
    headers = {
        "X-Document-Number": artifact.document_number,
        "X-Page-Count": str(artifact.page_count),
        "Content-Disposition": f'{"inline" if inline else "attachment"}; filename="{_download_name(artifact, tenant_name)}"',
    }
    if artifact.warnings:
        headers["X-Document-Warnings"] = str(len(artifact.warnings))
    return Response(content=artifact.content, media_type=artifact.media_type, headers=headers)


def _records_tenant_name(records: BusinessRecords) -> str:
    group = records.tenant_group or {}
    tenant = records.tenant or {}
    return str(group.get("name") or tenant.get("last_name") or tenant.get("name") or "")


# --- Catalogue ---


@router.get("/document-types")
def list_document_types() -> list[dict[str, Any]]:
    out = [spec.describe() for spec in TEMPLATES.values()]
    contract = DOCUMENT_REGISTRY.get(DocumentType.LEASE_CONTRACT)
    if contract is not None:
        out.append(
            {
                "document_type": contract.document_type.value,
                "title": CONTRACT_TITLE.capitalize(),
                "legal_reference": "Loi n° 89-462 du 6 juillet 1989",
                "required_fields": [
                    name for name, f in contract.payload_schema.model_fields.items() if f.is_required()
                ],
                "sections": ["title", "articles", "custom_clauses", "signature", "legal_mention"],
            }
        )
    return out


@router.get("/brands")
def brands() -> list[dict[str, Any]]:
    return [b.model_dump() for b in list_brands()]


# --- Documents ---


@router.post("/documents/render")
def render_document(
    req: DocumentRequest,
    request: Request,
    format: str = Query("pdf", pattern="^(pdf|html)$"),
    brand_id: Optional[str] = None,
) -> Response:
    """Render an already-prepared payload. The payload is validated against the type's schema (422)."""
    rid = _rid(request)
    _LOG.info("DOCUMENT_RENDER_START rid=%s type=%s format=%s", rid, req.document_type.value, format)
    try:
        artifact = render_payload(req, output=format, brand=_brand(brand_id))
    except DocumentError as e:
        _LOG.info("DOCUMENT_ERR rid=%s type=%s code=%s err=%s", rid, req.document_type.value, e.code, e)
        raise
    tenant = req.payload.get("tenant")
    tenant_name = tenant.get("name", "") if isinstance(tenant, dict) else ""
    _LOG.info(
        "DOCUMENT_DONE rid=%s type=%s number=%s pages=%d",
        rid, req.document_type.value, artifact.document_number, artifact.page_count,
    )
    return _artifact_response(artifact, tenant_name)


@router.post("/documents/{document_type}")
def create_document(
    document_type: str,
    records: BusinessRecords,
    request: Request,
    format: str = Query("pdf", pattern="^(pdf|html)$"),
    brand_id: Optional[str] = None,
) -> Response:
    """Prepare and render a document from business records."""
    rid = _rid(request)
    _LOG.info("DOCUMENT_START rid=%s type=%s format=%s", rid, document_type, format)
    try:
        artifact = generate_document(
            document_type,
            records,
            load_config=clause_store.load_config,
            output=format,
            brand=_brand(brand_id),
        )
    except DocumentError as e:
        _LOG.info("DOCUMENT_ERR rid=%s type=%s code=%s err=%s", rid, document_type, e.code, e)
        raise
    for warning in artifact.warnings:
        _LOG.warning("DOCUMENT_WARN rid=%s type=%s msg=%s", rid, document_type, warning)
    _LOG.info(
        "DOCUMENT_DONE rid=%s type=%s number=%s pages=%d",
        rid, document_type, artifact.document_number, artifact.page_count,
    )
    return _artifact_response(artifact, _records_tenant_name(records))


@router.post("/documents/{document_type}/preview", response_class=HTMLResponse)
def preview_document(
    document_type: str,
    records: BusinessRecords,
    brand_id: Optional[str] = None,
) -> HTMLResponse:
    """Return the document as HTML (no Playwright required)."""
    artifact = generate_document(
        document_type,
        records,
        load_config=clause_store.load_config,
        output="html",
        brand=_brand(brand_id),
    )
    return HTMLResponse(
        artifact.content.decode("utf-8"),
        headers={"X-Document-Number": artifact.document_number, "X-Page-Count": str(artifact.page_count)},
    )


# --- Calculations ---


@router.post("/calculations/indexation")
def calc_indexation(req: IndexationRequest) -> dict[str, Any]:
    return compute_indexation(
        req.old_rent,
        req.old_index,
        req.new_index,
        old_period_label=req.old_period_label,
        new_period_label=req.new_period_label,
        effective_date=req.effective_date,
    ).as_dict()


@router.post("/calculations/debt-schedule")
def calc_debt_schedule(req: DebtScheduleRequest) -> dict[str, Any]:
    entries = compute_debt_schedule(req.total_debt, req.installment_count, req.start_date)
    return {
        "total_debt": float(to_cents(sum((e.amount for e in entries), Decimal("0")))),
        "installment_count": len(entries),
        "schedule": [e.as_dict() for e in entries],
    }


@router.post("/calculations/charges")
def calc_charges(req: ChargesRequest) -> dict[str, Any]:
    return reconcile_charges(req.provisions_paid, req.actual_charges, req.breakdown).as_dict()


@router.post("/calculations/solvency")
def calc_solvency(req: SolvencyRequest) -> dict[str, Any]:
    return compute_solvency(req.income, req.rent_amount).as_dict()


# --- Custom clauses ---


@router.get("/clauses")
def list_clause_sets() -> dict[str, Any]:
    return {"keys": clause_store.list_keys()}


@router.get("/clauses/{key}")
def get_clauses(key: str) -> dict[str, Any]:
    value = clause_store.load_config(key)
    if value is None:
        raise HTTPException(status_code=404, detail=f"No clause set for key: {key}")
    return {"key": key, "value": value}


@router.put("/clauses/{key}")
def put_clauses(key: str, body: ClauseSet) -> dict[str, Any]:
    value = {"customClauses": [c.model_dump() for c in body.custom_clauses]}
    clause_store.save_config(key, value)
    _LOG.info("CLAUSES_SAVED key=%s count=%d", key, len(body.custom_clauses))
    return {"key": key, "value": value}
