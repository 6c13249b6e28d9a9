"""
Document assembler: one registry entry per document type tying together the
payload schema, the prepare-data transform and the renderer.

    generate_document(type, records)   business records -> artifact
    render_payload(DocumentRequest)    already-prepared payload -> artifact

Both paths render through the same layout engine. Output is HTML or PDF;
PDF conversion is the only step that needs the Playwright runtime.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from errors import PayloadError, UnknownDocumentTypeError
from models import (
    AnnualCertificatePayload,
    BusinessRecords,
    CafCertificatePayload,
    ChargeReconciliationPayload,
    DocumentRequest,
    DocumentType,
    FormalNoticePayload,
    IndexationLetterPayload,
    LandlordTerminationPayload,
    LeaseContractPayload,
    PaymentNoticePayload,
    PaymentPlanPayload,
    ReceiptPayload,
    SaleNoticePayload,
    TenantTerminationPayload,
    coerce_document_type,
)
from models_branding import BrandConfig
from reporting.components import RenderedDocument
from reporting.document_templates import render_template
from reporting.format_utils import sanitize_filename_part
from reporting.lease_contract import contract_warnings, render_lease_contract
from reporting.pdf_builder import html_to_pdf

from . import prepare_data as prep

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = {"pdf": ("application/pdf", "pdf"), "html": ("text/html; charset=utf-8", "html")}

PrepareFn = Callable[[BusinessRecords, prep.PrepareContext], Dict[str, Any]]
RenderFn = Callable[[BaseModel, Optional[BrandConfig]], RenderedDocument]


@dataclass
class DocumentArtifact:
    document_type: DocumentType
    content: bytes
    media_type: str
    extension: str
    document_number: str
    page_count: int
    filename: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DocumentEntry:
    document_type: DocumentType
    payload_schema: type[BaseModel]
    prepare: PrepareFn
    render: RenderFn
    warnings: Optional[Callable[[BaseModel], List[str]]] = None


DOCUMENT_REGISTRY: Dict[DocumentType, DocumentEntry] = {}


def register_document(
    document_type: DocumentType,
    payload_schema: type[BaseModel],
    render: RenderFn,
    warnings: Optional[Callable[[BaseModel], List[str]]] = None,
) -> Callable[[PrepareFn], PrepareFn]:
    """Decorate a prepare function to register a document type."""
    def decorator(prepare: PrepareFn) -> PrepareFn:
        DOCUMENT_REGISTRY[document_type] = DocumentEntry(
            document_type=document_type,
            payload_schema=payload_schema,
            prepare=prepare,
            render=render,
            warnings=warnings,
        )
        return prepare

    return decorator


def get_entry(document_type: Any) -> DocumentEntry:
    try:
        key = coerce_document_type(document_type)
    except ValueError:
        raise UnknownDocumentTypeError(str(document_type)) from None
    entry = DOCUMENT_REGISTRY.get(key)
    if entry is None:
        raise UnknownDocumentTypeError(key.value)
    return entry


def _template_renderer(document_type: DocumentType) -> RenderFn:
    def render(payload: BaseModel, brand: Optional[BrandConfig] = None) -> RenderedDocument:
        return render_template(document_type, payload, brand)

    return render


_FIXED_LAYOUT: Dict[DocumentType, tuple[type[BaseModel], PrepareFn]] = {
    DocumentType.RECEIPT: (ReceiptPayload, prep.prepare_receipt),
    DocumentType.PAYMENT_NOTICE: (PaymentNoticePayload, prep.prepare_payment_notice),
    DocumentType.FORMAL_NOTICE: (FormalNoticePayload, prep.prepare_formal_notice),
    DocumentType.CAF_CERTIFICATE: (CafCertificatePayload, prep.prepare_caf_certificate),
    DocumentType.ANNUAL_CERTIFICATE: (AnnualCertificatePayload, prep.prepare_annual_certificate),
    DocumentType.LANDLORD_TERMINATION: (LandlordTerminationPayload, prep.prepare_landlord_termination),
    DocumentType.TENANT_TERMINATION: (TenantTerminationPayload, prep.prepare_tenant_termination),
    DocumentType.SALE_NOTICE: (SaleNoticePayload, prep.prepare_sale_notice),
    DocumentType.INDEXATION_LETTER: (IndexationLetterPayload, prep.prepare_indexation_letter),
    DocumentType.CHARGE_RECONCILIATION: (ChargeReconciliationPayload, prep.prepare_charge_reconciliation),
    DocumentType.PAYMENT_PLAN: (PaymentPlanPayload, prep.prepare_payment_plan),
}

for _type, (_schema, _prepare) in _FIXED_LAYOUT.items():
    register_document(_type, _schema, _template_renderer(_type))(_prepare)

register_document(
    DocumentType.LEASE_CONTRACT,
    LeaseContractPayload,
    render_lease_contract,
    warnings=contract_warnings,
)(prep.prepare_lease_contract)


def contract_filename(records: BusinessRecords, extension: str) -> str:
    """lease_contract_<tenant last name>_<lot name>.<ext>, sanitized for any filesystem."""
    tenant = records.tenant or {}
    last_name = tenant.get("last_name") or (records.tenant_group or {}).get("name") or "locataire"
    lot = (records.lot or {}).get("name") or "lot"
    return (
        f"{DocumentType.LEASE_CONTRACT.value}_{sanitize_filename_part(last_name, 'locataire')}"
        f"_{sanitize_filename_part(lot, 'lot')}.{extension}"
    )


def _output(output: str) -> tuple[str, str]:
    key = str(output or "pdf").strip().lower()
    if key not in OUTPUT_FORMATS:
        raise PayloadError(f"Unsupported output format: {output}", field="format")
    return OUTPUT_FORMATS[key]


def _build_artifact(
    entry: DocumentEntry,
    payload: BaseModel,
    output: str,
    brand: Optional[BrandConfig],
    filename: Optional[str] = None,
) -> DocumentArtifact:
    media_type, extension = _output(output)
    rendered = entry.render(payload, brand)
    warnings = entry.warnings(payload) if entry.warnings else []
    content = html_to_pdf(rendered.html) if extension == "pdf" else rendered.html.encode("utf-8")
    return DocumentArtifact(
        document_type=entry.document_type,
        content=content,
        media_type=media_type,
        extension=extension,
        document_number=payload.document_number,
        page_count=rendered.page_count,
        filename=filename,
        warnings=warnings,
    )


def prepare_payload(
    document_type: Any,
    records: BusinessRecords,
    load_config: Optional[prep.LoadConfig] = None,
    today: Optional[date] = None,
) -> BaseModel:
    """Run the prepare-data transform and validate its result against the payload schema."""
    entry = get_entry(document_type)
    ctx = prep.PrepareContext(document_type=entry.document_type, today=today or date.today(), load_config=load_config)
    data = entry.prepare(records, ctx)
    return entry.payload_schema.model_validate(data)


def generate_document(
    document_type: Any,
    records: BusinessRecords,
    load_config: Optional[prep.LoadConfig] = None,
    output: str = "pdf",
    today: Optional[date] = None,
    brand: Optional[BrandConfig] = None,
) -> DocumentArtifact:
    """
    Business records -> artifact. `load_config` supplies the custom clause
    sets for contracts; without it a contract has no custom clauses.
    """
    entry = get_entry(document_type)
    if not isinstance(records, BusinessRecords):
        records = BusinessRecords.model_validate(records)
    payload = prepare_payload(entry.document_type, records, load_config=load_config, today=today)
    filename = None
    if entry.document_type == DocumentType.LEASE_CONTRACT:
        filename = contract_filename(records, _output(output)[1])
    artifact = _build_artifact(entry, payload, output, brand, filename=filename)
    logger.info(
        "DOCUMENT_GENERATED type=%s number=%s pages=%d format=%s warnings=%d",
        entry.document_type.value,
        artifact.document_number,
        artifact.page_count,
        artifact.extension,
        len(artifact.warnings),
    )
    return artifact


def render_payload(
    request: DocumentRequest,
    output: str = "pdf",
    brand: Optional[BrandConfig] = None,
) -> DocumentArtifact:
    """Render an already-prepared payload after validating it against the type's schema."""
    entry = get_entry(request.document_type)
    payload = entry.payload_schema.model_validate(request.payload)
    return _build_artifact(entry, payload, output, brand)
