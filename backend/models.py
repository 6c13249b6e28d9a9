from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from reporting.format_utils import parse_decimal


class DocumentType(str, Enum):
    RECEIPT = "receipt"
    PAYMENT_NOTICE = "payment_notice"
    FORMAL_NOTICE = "formal_notice"
    CAF_CERTIFICATE = "caf_certificate"
    ANNUAL_CERTIFICATE = "annual_certificate"
    LANDLORD_TERMINATION = "landlord_termination"
    TENANT_TERMINATION = "tenant_termination"
    SALE_NOTICE = "sale_notice"
    INDEXATION_LETTER = "indexation_letter"
    CHARGE_RECONCILIATION = "charge_reconciliation"
    PAYMENT_PLAN = "payment_plan"
    LEASE_CONTRACT = "lease_contract"


class LeaseType(str, Enum):
    UNFURNISHED = "unfurnished"
    FURNISHED = "furnished"
    STUDENT = "student"
    MOBILITY = "mobility"


_LEASE_TYPE_ALIASES: Dict[str, LeaseType] = {
    "empty": LeaseType.UNFURNISHED,
    "vide": LeaseType.UNFURNISHED,
    "non_meuble": LeaseType.UNFURNISHED,
    "nu": LeaseType.UNFURNISHED,
    "meuble": LeaseType.FURNISHED,
    "etudiant": LeaseType.STUDENT,
    "bail_mobilite": LeaseType.MOBILITY,
    "mobilite": LeaseType.MOBILITY,
}


def coerce_lease_type(value: Any) -> LeaseType:
    """Map record spellings ("empty", "meublé", "Bail mobilité") onto LeaseType; blank -> unfurnished."""
    if isinstance(value, LeaseType):
        return value
    key = str(value or "").strip().lower()
    key = re.sub(r"[\s-]+", "_", key)
    key = key.replace("é", "e").replace("è", "e")
    if not key:
        return LeaseType.UNFURNISHED
    try:
        return LeaseType(key)
    except ValueError:
        pass
    if key in _LEASE_TYPE_ALIASES:
        return _LEASE_TYPE_ALIASES[key]
    raise ValueError(f"unknown lease type: {value!r}")


def coerce_document_type(value: Any) -> DocumentType:
    if isinstance(value, DocumentType):
        return value
    key = str(value or "").strip().lower().replace("-", "_")
    return DocumentType(key)


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class Party(BaseModel):
    """Landlord, tenant or beneficiary identity as printed on documents."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    address: str = ""
    city: str = ""
    postal_code: str = Field(default="", validation_alias=AliasChoices("postal_code", "postalCode"))
    email: Optional[str] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("tax_id", "taxId", "siret"))
    legal_form: Optional[str] = Field(default=None, validation_alias=AliasChoices("legal_form", "legalForm"))
    bank_account: Optional[str] = Field(default=None, validation_alias=AliasChoices("bank_account", "iban"))
    bic: Optional[str] = None

    @field_validator("email", "phone", "tax_id", "legal_form", "bank_account", "bic", mode="before")
    @classmethod
    def blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def city_line(self) -> str:
        return " ".join(p for p in (self.postal_code, self.city) if p).strip()


class PropertyDesignation(BaseModel):
    """The rented dwelling (lot + building address)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    address: str = Field(min_length=1)
    city: str = ""
    postal_code: str = Field(default="", validation_alias=AliasChoices("postal_code", "postalCode"))
    label: str = ""
    surface: Optional[float] = Field(default=None, gt=0.0)
    rooms: Optional[int] = Field(default=None, ge=0)
    lot_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("lot_type", "lotType", "type"))
    floor: Optional[int] = None
    door_number: Optional[str] = Field(default=None, validation_alias=AliasChoices("door_number", "doorNumber"))
    furnished: bool = False
    annexes: List[str] = Field(default_factory=list)
    dpe_rating: Optional[str] = Field(default=None, validation_alias=AliasChoices("dpe_rating", "dpe"))
    dpe_value: Optional[float] = None
    ges_rating: Optional[str] = Field(default=None, validation_alias=AliasChoices("ges_rating", "ges"))
    ges_value: Optional[float] = None

    @field_validator("surface", "rooms", "floor", "dpe_value", "ges_value", "door_number", mode="before")
    @classmethod
    def blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def city_line(self) -> str:
        return " ".join(p for p in (self.postal_code, self.city) if p).strip()

    @property
    def full_address(self) -> str:
        return ", ".join(p for p in (self.address, self.city_line) if p)


class LeaseTerms(BaseModel):
    """Financial and temporal terms of a lease. All amounts in euros."""
    model_config = ConfigDict(frozen=True)

    rent_amount: float = Field(ge=0.0)
    charges_amount: float = Field(ge=0.0, default=0.0)
    deposit_amount: Optional[float] = Field(default=None, ge=0.0)
    start_date: date
    end_date: Optional[date] = None
    lease_type: LeaseType = LeaseType.UNFURNISHED
    payment_day: int = Field(default=5, ge=1, le=31)

    @field_validator("lease_type", mode="before")
    @classmethod
    def normalize_lease_type(cls, v: Any) -> LeaseType:
        return coerce_lease_type(v)

    @field_validator("end_date", "deposit_amount", mode="before")
    @classmethod
    def blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: Optional[date], info):
        start = info.data.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("end_date must be on or after start_date")
        return v

    @property
    def total_monthly(self) -> float:
        return self.rent_amount + self.charges_amount


class DebtLedgerEntry(BaseModel):
    """One unpaid line (usually one month of rent)."""
    model_config = ConfigDict(frozen=True)

    label: str = Field(min_length=1)
    amount: float = Field(ge=0.0)


class ChargeLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str = Field(min_length=1)
    amount: float = Field(ge=0.0)


class CustomClause(BaseModel):
    """Free-text clause appended to a contract. Either part may be missing."""
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    content: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.title or "").strip() and not (self.content or "").strip()


class AnnualPaymentLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: int = Field(ge=1, le=12)
    rent_amount: float = Field(ge=0.0)
    charges_amount: float = Field(ge=0.0, default=0.0)
    amount_paid: Optional[float] = Field(default=None, ge=0.0)

    @property
    def total(self) -> float:
        return self.rent_amount + self.charges_amount

    @property
    def paid(self) -> float:
        return self.total if self.amount_paid is None else self.amount_paid


# ---------------------------------------------------------------------------
# Document payloads (output of prepare-data, input of renderers)
# ---------------------------------------------------------------------------


class DocumentPayload(BaseModel):
    """
    Fields shared by every document: who sends it, to whom, about which
    dwelling, and the document number printed in the header.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    landlord: Party
    tenant: Party
    premises: PropertyDesignation = Field(validation_alias=AliasChoices("premises", "property"))
    document_number: str = Field(min_length=1)
    issue_date: date


class ReceiptPayload(DocumentPayload):
    period_label: str = Field(min_length=1)
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    rent_amount: float = Field(ge=0.0)
    charges_amount: float = Field(ge=0.0, default=0.0)
    aid_amount: float = Field(ge=0.0, default=0.0)
    amount_received: float = Field(ge=0.0)
    payment_date: date
    payment_method: Optional[str] = None


class PaymentNoticePayload(DocumentPayload):
    period_label: str = Field(min_length=1)
    due_date: date
    rent_amount: float = Field(ge=0.0)
    charges_amount: float = Field(ge=0.0, default=0.0)
    aid_amount: float = Field(ge=0.0, default=0.0)


class FormalNoticePayload(DocumentPayload):
    debts: List[DebtLedgerEntry] = Field(min_length=1)
    total_debt: float = Field(gt=0.0)
    delay_days: int = 8
    lease_start_date: Optional[date] = None

    @field_validator("delay_days", mode="before")
    @classmethod
    def minimum_legal_delay(cls, v: Any) -> int:
        """A formal notice never grants less than 8 days."""
        if v is None or v == "":
            return 8
        return max(8, int(v))


class CafCertificatePayload(DocumentPayload):
    lease: LeaseTerms
    beneficiary_number: str = ""
    direct_payment: bool = False
    aid_amount: float = Field(ge=0.0, default=0.0)


class AnnualCertificatePayload(DocumentPayload):
    year: int = Field(ge=1900, le=2200)
    payments: List[AnnualPaymentLine] = Field(default_factory=list)


class LandlordTerminationPayload(DocumentPayload):
    reason: str = "motif_legitime"
    reason_detail: Optional[str] = None
    effective_date: date
    lease_start_date: Optional[date] = None
    furnished: bool = False
    beneficiary: Optional[Party] = None
    beneficiary_relationship: Optional[str] = None


class TenantTerminationPayload(DocumentPayload):
    reason: str = "convenance"
    reason_detail: Optional[str] = None
    departure_date: date
    furnished: bool = False
    reduced_notice: bool = False


class SaleNoticePayload(DocumentPayload):
    sale_price: float = Field(gt=0.0)
    agency_fees: float = Field(ge=0.0, default=0.0)
    payment_terms: str = "Comptant à la signature de l'acte authentique"
    completion_delay: str = "4 mois maximum après acceptation"
    special_conditions: Optional[str] = None
    furnished: bool = False
    effective_date: date
    response_deadline: date


class IndexationLetterPayload(DocumentPayload):
    """Revision inputs; the new rent is always recomputed from the indices."""
    old_rent: float = Field(gt=0.0)
    old_index: float = Field(gt=0.0)
    new_index: float = Field(gt=0.0)
    old_period_label: str = ""
    new_period_label: str = ""
    effective_date: date


class ChargeReconciliationPayload(DocumentPayload):
    period_label: str = Field(min_length=1)
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    provisions_paid: float = Field(ge=0.0)
    actual_charges: float = Field(ge=0.0)
    breakdown: List[ChargeLine] = Field(default_factory=list)
    settlement_method: Optional[str] = None


class PaymentPlanPayload(DocumentPayload):
    debt_date: date
    debts: List[DebtLedgerEntry] = Field(default_factory=list)
    total_debt: float = Field(gt=0.0)
    installment_count: int = Field(default=6, ge=1, le=120)
    start_date: date
    late_days: int = Field(default=15, ge=1)
    other_conditions: Optional[str] = None


class LeaseContractPayload(DocumentPayload):
    lease: LeaseTerms
    custom_clauses: List[CustomClause] = Field(default_factory=list)
    signature_city: str = ""


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class DocumentRequest(BaseModel):
    """An already-prepared payload addressed to one document type. Immutable."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    document_type: DocumentType = Field(validation_alias=AliasChoices("document_type", "documentType"))
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("document_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> DocumentType:
        return coerce_document_type(v)


class BusinessRecords(BaseModel):
    """
    Raw records handed to prepare-data. Each record is a loose dict as it
    comes from the persistence layer; `extras` carries the type-specific
    inputs (payment, unpaid payments, year, reason, sale details, ...).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    lease: Optional[Dict[str, Any]] = None
    entity: Optional[Dict[str, Any]] = None
    landlord: Optional[Dict[str, Any]] = None
    tenant: Optional[Dict[str, Any]] = None
    tenant_group: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("tenant_group", "tenantGroup")
    )
    lot: Optional[Dict[str, Any]] = None
    property_record: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("property", "property_record")
    )
    extras: Dict[str, Any] = Field(default_factory=dict)


def _amount_or_zero(v: Any) -> float:
    parsed = parse_decimal(v)
    return float(parsed) if parsed is not None else 0.0


def _amount_or_none(v: Any) -> Optional[float]:
    parsed = parse_decimal(v)
    return float(parsed) if parsed is not None else None


class IncomeProfile(BaseModel):
    """
    Monthly incomes used for the solvency ratio.

    Applicant incomes default to 0 (non-numeric input counts as 0).
    Guarantor incomes default to None: "no guarantor declared" is not the same
    as "a guarantor with no income".
    """
    model_config = ConfigDict(populate_by_name=True)

    monthly_income: float = Field(default=0.0, validation_alias=AliasChoices("monthly_income", "monthlyIncome"))
    other_income: float = Field(default=0.0, validation_alias=AliasChoices("other_income", "otherIncome"))
    co_applicant_incomes: List[float] = Field(
        default_factory=list, validation_alias=AliasChoices("co_applicant_incomes", "coApplicantIncomes")
    )
    guarantor_income: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("guarantor_income", "guarantorIncome")
    )
    second_guarantor_income: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("second_guarantor_income", "secondGuarantorIncome")
    )

    @field_validator("monthly_income", "other_income", mode="before")
    @classmethod
    def coerce_income(cls, v: Any) -> float:
        return _amount_or_zero(v)

    @field_validator("co_applicant_incomes", mode="before")
    @classmethod
    def coerce_co_applicants(cls, v: Any) -> List[float]:
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            v = [v]
        return [_amount_or_zero(x) for x in v]

    @field_validator("guarantor_income", "second_guarantor_income", mode="before")
    @classmethod
    def coerce_guarantor(cls, v: Any) -> Optional[float]:
        return _amount_or_none(v)


class IndexationRequest(BaseModel):
    old_rent: Any
    old_index: Any
    new_index: Any
    old_period_label: str = ""
    new_period_label: str = ""
    effective_date: Optional[date] = None


class DebtScheduleRequest(BaseModel):
    total_debt: Any
    installment_count: int = 6
    start_date: Optional[date] = None


class ChargesRequest(BaseModel):
    provisions_paid: Any
    actual_charges: Any = None
    breakdown: List[ChargeLine] = Field(default_factory=list)


class SolvencyRequest(BaseModel):
    rent_amount: Any
    income: IncomeProfile = Field(default_factory=IncomeProfile)


class ClauseSet(BaseModel):
    """Body of PUT /clauses/{key}."""
    custom_clauses: List[CustomClause] = Field(
        default_factory=list, validation_alias=AliasChoices("customClauses", "custom_clauses")
    )
