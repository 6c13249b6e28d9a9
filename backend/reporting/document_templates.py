"""
Fixed-layout rental documents.

Each document type registers a `TemplateSpec`: its title, legal reference,
payload schema and a build function turning a validated payload into layout
sections. Every template follows the same order: letterhead, recipient,
title, body, figures, legal mention, signature. Rendering goes through the
shared layout engine, so long tables and letters paginate like the contract.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, Sequence

from brands import active_brand
from engine.compute import (
    classify_receipt,
    compute_debt_schedule,
    compute_indexation,
    reconcile_charges,
    total_debt,
)
from engine.legal_rules import (
    landlord_notice_months,
    landlord_reason,
    tenant_notice_months,
    tenant_reason,
)
from errors import UnknownDocumentTypeError
from models import (
    AnnualCertificatePayload,
    CafCertificatePayload,
    ChargeReconciliationPayload,
    DocumentPayload,
    DocumentType,
    FormalNoticePayload,
    LandlordTerminationPayload,
    LeaseType,
    Party,
    PaymentNoticePayload,
    PaymentPlanPayload,
    ReceiptPayload,
    SaleNoticePayload,
    TenantTerminationPayload,
    IndexationLetterPayload,
    coerce_document_type,
)
from models_branding import BrandConfig

from .components import (
    AmountRows,
    BulletList,
    DataTable,
    DocumentTitle,
    Heading,
    HighlightBox,
    LegalMention,
    Letterhead,
    NoticeBox,
    NumberedList,
    Paragraph,
    PlaceDate,
    RecipientBlock,
    RenderedDocument,
    SignatureBlock,
    Subject,
    _esc,
    render_sections,
)
from .format_utils import MONTHS_FR, amount_in_words, format_currency, format_date, format_number, format_percent
from .layout import Block

REGISTERED_MAIL = "LETTRE RECOMMANDÉE AVEC A.R."
SALUTATION = "Madame, Monsieur,"
CLOSING = "Je vous prie d'agréer, Madame, Monsieur, l'expression de mes salutations distinguées."

Section = list[Block] | str


@dataclass
class DocumentBody:
    title: str
    sections: list[Section] = field(default_factory=list)


@dataclass(frozen=True)
class TemplateSpec:
    document_type: DocumentType
    title: str
    legal_reference: str
    payload_schema: type[DocumentPayload]
    sections: tuple[str, ...]
    build: Callable[[Any], DocumentBody]

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(name for name, f in self.payload_schema.model_fields.items() if f.is_required())

    def describe(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type.value,
            "title": self.title,
            "legal_reference": self.legal_reference,
            "required_fields": list(self.required_fields),
            "sections": list(self.sections),
        }


TEMPLATES: dict[DocumentType, TemplateSpec] = {}

LETTER_SECTIONS = ("header", "recipient", "title", "body", "figures", "legal_mention", "signature", "footer")


def register_template(
    document_type: DocumentType,
    *,
    title: str,
    legal_reference: str,
    payload_schema: type[DocumentPayload],
    sections: Sequence[str] = LETTER_SECTIONS,
) -> Callable[[Callable[[Any], DocumentBody]], Callable[[Any], DocumentBody]]:
    def decorator(fn: Callable[[Any], DocumentBody]) -> Callable[[Any], DocumentBody]:
        TEMPLATES[document_type] = TemplateSpec(
            document_type=document_type,
            title=title,
            legal_reference=legal_reference,
            payload_schema=payload_schema,
            sections=tuple(sections),
            build=fn,
        )
        return fn

    return decorator


def get_template(document_type: Any) -> TemplateSpec:
    try:
        key = coerce_document_type(document_type)
    except ValueError:
        raise UnknownDocumentTypeError(str(document_type)) from None
    spec = TEMPLATES.get(key)
    if spec is None:
        raise UnknownDocumentTypeError(key.value)
    return spec


def render_template(document_type: Any, payload: Any, brand: BrandConfig | None = None) -> RenderedDocument:
    """Validate `payload` against the type's schema (when given as a dict) and lay it out."""
    spec = get_template(document_type)
    if not isinstance(payload, spec.payload_schema):
        payload = spec.payload_schema.model_validate(payload)
    body = spec.build(payload)
    return render_sections(body.title, body.sections, brand or active_brand(), payload.document_number)


# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------


def _eur(value: Any) -> str:
    return format_currency(value)


def _party_lines(party: Party, with_contact: bool = True) -> list[str]:
    lines = [party.name]
    if party.legal_form:
        lines[0] = f"{party.name} ({party.legal_form})"
    lines.extend(p for p in (party.address, party.city_line) if p)
    if with_contact:
        if party.phone:
            lines.append(f"Tél : {party.phone}")
        if party.email:
            lines.append(f"Email : {party.email}")
        if party.tax_id:
            lines.append(f"SIRET : {party.tax_id}")
    return lines


def _premises_lines(payload: DocumentPayload) -> list[str]:
    lines = []
    if payload.premises.label:
        lines.append(payload.premises.label)
    lines.extend(p for p in (payload.premises.address, payload.premises.city_line) if p)
    return lines


def _tenant_address_lines(payload: DocumentPayload) -> list[str]:
    """Tenants are written to at the rented dwelling unless another address is on file."""
    tenant = payload.tenant
    if tenant.address:
        return [p for p in (tenant.address, tenant.city_line) if p]
    return [p for p in (payload.premises.address, payload.premises.city_line) if p]


def _letter_header(payload: DocumentPayload, mention: str = "") -> list[Block]:
    return [
        Letterhead(_party_lines(payload.landlord), payload.document_number, payload.issue_date),
        RecipientBlock(payload.tenant.name, _tenant_address_lines(payload), mention=mention),
    ]


def _landlord_signature(payload: DocumentPayload, role: str = "Le bailleur") -> list[Block]:
    city = payload.landlord.city or payload.premises.city or "..."
    return [SignatureBlock(f"Fait à {city}, le {format_date(payload.issue_date)}", [(role, payload.landlord.name)])]


def _bold(text: str) -> str:
    return f'<span class="bold">{_esc(text)}</span>'


def _month_label(year: int, month: int) -> str:
    return f"{MONTHS_FR[month - 1].capitalize()} {year}"


# ---------------------------------------------------------------------------
# Quittance / reçu
# ---------------------------------------------------------------------------


RECEIPT_FULL_MENTION = (
    "Cette quittance annule tous les reçus qui auraient pu être établis précédemment en cas de paiement "
    "partiel. Elle ne préjuge pas des sommes restant dues au titre de périodes antérieures."
)
RECEIPT_PARTIAL_MENTION = (
    "Ce reçu atteste uniquement du paiement partiel mentionné ci-dessus. Le solde reste dû par le locataire."
)
RECEIPT_LAW_MENTION = (
    "Conformément à l'article 21 de la loi n° 89-462 du 6 juillet 1989, le bailleur est tenu de délivrer "
    "gratuitement une quittance au locataire qui en fait la demande."
)


@register_template(
    DocumentType.RECEIPT,
    title="Quittance de loyer",
    legal_reference="Article 21 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=ReceiptPayload,
)
def build_receipt(p: ReceiptPayload) -> DocumentBody:
    status = classify_receipt(p.rent_amount, p.charges_amount, p.amount_received, p.aid_amount)
    title = "QUITTANCE DE LOYER" if status.is_full else "REÇU DE PAIEMENT PARTIEL"
    received = _eur(status.amount_received)
    in_words = amount_in_words(status.amount_received)
    purpose = "en paiement" if status.is_full else "en paiement partiel"
    declaration = (
        f"Je soussigné(e) {p.landlord.name}, bailleur du logement désigné ci-dessus, déclare avoir reçu de "
        f"{p.tenant.name} la somme de {received} ({in_words}) {purpose} du loyer et des charges pour la "
        f"période de {p.period_label}."
    )
    declaration_html = (
        f"Je soussigné(e) {_bold(p.landlord.name)}, bailleur du logement désigné ci-dessus, déclare avoir reçu de "
        f"{_bold(p.tenant.name)} la somme de {_bold(received)} ({_esc(in_words)}) {purpose} du loyer et des "
        f"charges pour la période de {_bold(p.period_label)}."
    )

    rows = [("Loyer hors charges", _eur(status.rent_amount)), ("Provision pour charges", _eur(status.charges_amount))]
    if status.aid_amount > 0:
        rows.append(("Aide au logement versée au bailleur", f"- {_eur(status.aid_amount)}"))
    total_label = "Total à la charge du locataire" if status.aid_amount > 0 else "Total"

    payment_note = f"Reçu le {format_date(p.payment_date)}"
    if p.payment_method:
        payment_note += f" | Mode de paiement : {p.payment_method}"

    figures: list[Block] = [
        HighlightBox("Paiement reçu" if status.is_full else "Paiement partiel reçu", received, note=payment_note),
    ]
    if not status.is_full:
        figures.append(HighlightBox("Reste à payer", _eur(status.remaining_due), tone="warning"))

    period = p.period_label
    if p.period_start and p.period_end:
        period = f"{p.period_label} (du {format_date(p.period_start)} au {format_date(p.period_end)})"

    return DocumentBody(
        title=title,
        sections=[
            _letter_header(p),
            [DocumentTitle(title, f"Période : {period}")],
            [
                Heading("Logement"),
                Paragraph("\n".join(_premises_lines(p))),
            ],
            [Paragraph(declaration, html_body=declaration_html)],
            [Heading("Détail des sommes"), *AmountRows("receipt", rows, total=(total_label, _eur(status.net_due)))],
            figures,
            [LegalMention(f"{RECEIPT_FULL_MENTION if status.is_full else RECEIPT_PARTIAL_MENTION} {RECEIPT_LAW_MENTION}")],
            _landlord_signature(p),
        ],
    )


# ---------------------------------------------------------------------------
# Avis d'échéance
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.PAYMENT_NOTICE,
    title="Avis d'échéance",
    legal_reference="Article 21 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=PaymentNoticePayload,
)
def build_payment_notice(p: PaymentNoticePayload) -> DocumentBody:
    rent = Decimal(str(p.rent_amount))
    charges = Decimal(str(p.charges_amount))
    aid = Decimal(str(p.aid_amount))
    net = max(Decimal("0"), rent + charges - aid)

    rows = [("Loyer hors charges", _eur(rent)), ("Provision pour charges", _eur(charges))]
    if aid > 0:
        rows.append(("Aide au logement (versée au bailleur)", f"- {_eur(aid)}"))
    total_label = "Net à payer" if aid > 0 else "Total à payer"

    body = [
        PlaceDate(p.landlord.city, p.issue_date),
        Paragraph(SALUTATION),
        Paragraph(
            f"Nous vous rappelons que le loyer du mois de {p.period_label} arrive à échéance le "
            f"{format_date(p.due_date)}."
        ),
        Paragraph(
            "Vous trouverez ci-dessous le détail des sommes à régler pour le logement situé au "
            f"{p.premises.full_address}."
        ),
    ]
    payment: list[Block] = [HighlightBox(total_label, _eur(net), note=f"À régler au plus tard le {format_date(p.due_date)}")]
    if p.landlord.bank_account:
        bank = f"Règlement par virement bancaire. IBAN : {p.landlord.bank_account}"
        if p.landlord.bic:
            bank += f" | BIC : {p.landlord.bic}"
        payment.append(Paragraph(f"{bank}. Merci d'indiquer la référence {p.document_number} en libellé."))

    return DocumentBody(
        title="AVIS D'ÉCHÉANCE",
        sections=[
            _letter_header(p),
            [DocumentTitle("AVIS D'ÉCHÉANCE", f"Période : {p.period_label}")],
            body,
            AmountRows("notice", rows, total=(total_label, _eur(net))),
            payment,
            [
                NoticeBox(
                    "",
                    "En cas de difficulté de paiement, nous vous invitons à nous contacter dans les plus brefs délais "
                    "afin de trouver ensemble une solution adaptée. Tout retard de paiement peut entraîner des frais "
                    "supplémentaires et des procédures de recouvrement.",
                    tone="warning",
                )
            ],
            [
                LegalMention(
                    "Cet avis d'échéance ne constitue pas une quittance de loyer. Une quittance vous sera délivrée "
                    "gratuitement après réception intégrale du paiement, conformément à l'article 21 de la loi "
                    "n° 89-462 du 6 juillet 1989."
                )
            ],
            _landlord_signature(p),
        ],
    )


# ---------------------------------------------------------------------------
# Mise en demeure
# ---------------------------------------------------------------------------


FORMAL_NOTICE_CONSEQUENCES = (
    "Nous serons contraints d'engager une procédure judiciaire à votre encontre (assignation devant le "
    "tribunal) pouvant aboutir à la résiliation du bail et à votre expulsion.",
    "Des pénalités de retard pourront être appliquées conformément aux dispositions de votre contrat de bail.",
    "Les frais de procédure et de commissaire de justice seront mis à votre charge.",
    "Un signalement pourra être effectué auprès des organismes compétents en matière d'impayés locatifs.",
)


@register_template(
    DocumentType.FORMAL_NOTICE,
    title="Mise en demeure",
    legal_reference="Articles 1344 et suivants du Code civil",
    payload_schema=FormalNoticePayload,
)
def build_formal_notice(p: FormalNoticePayload) -> DocumentBody:
    total = total_debt(p.debts)
    deadline = p.issue_date + timedelta(days=p.delay_days)
    since = f" depuis le {format_date(p.lease_start_date)}" if p.lease_start_date else ""
    rows = [[d.label, _eur(d.amount)] for d in p.debts]

    return DocumentBody(
        title="MISE EN DEMEURE",
        sections=[
            _letter_header(p, mention=REGISTERED_MAIL),
            [DocumentTitle("MISE EN DEMEURE", "Loyers et charges impayés")],
            [
                PlaceDate(p.landlord.city, p.issue_date),
                Subject("Mise en demeure de payer les loyers et charges impayés"),
                Paragraph(SALUTATION),
                Paragraph(
                    "Malgré nos précédentes relances, nous constatons que vous n'avez toujours pas procédé au "
                    "règlement des loyers et charges dus au titre de votre location du logement situé au "
                    f"{p.premises.full_address}{since}."
                ),
                Paragraph(
                    f"Par la présente, nous vous mettons en demeure de régler sous {p.delay_days} jours à compter "
                    "de la réception de ce courrier, les sommes détaillées ci-après."
                ),
            ],
            DataTable(
                "debts",
                ("Période", "Montant dû"),
                rows,
                numeric_columns=(1,),
                footer=("TOTAL DÛ", _eur(total)),
            ),
            [
                HighlightBox(
                    "Date limite de paiement",
                    format_date(deadline),
                    note=f"Vous disposez d'un délai de {p.delay_days} jours pour régler l'intégralité de la somme "
                    f"de {_eur(total)}.",
                    tone="warning",
                )
            ],
            [Heading("À défaut de paiement dans le délai imparti"), *BulletList(FORMAL_NOTICE_CONSEQUENCES)],
            [
                Paragraph(
                    "Nous vous rappelons que le paiement peut être effectué par virement bancaire aux coordonnées "
                    "indiquées dans votre avis d'échéance, ou par tout autre moyen de paiement prévu dans votre "
                    "contrat de bail."
                ),
                Paragraph(
                    "En cas de difficultés financières, nous vous invitons à nous contacter immédiatement afin "
                    "d'étudier les possibilités d'un échéancier de paiement."
                ),
                Paragraph(CLOSING),
            ],
            [
                LegalMention(
                    "La présente mise en demeure est établie conformément aux articles 1344 et suivants du Code civil. "
                    "Elle constitue le point de départ des intérêts de retard prévus par la loi. Cette lettre fait "
                    "courir les délais légaux et sera produite en justice si nécessaire. Nous vous conseillons de "
                    "conserver ce courrier."
                )
            ],
            _landlord_signature(p),
        ],
    )


# ---------------------------------------------------------------------------
# Attestation CAF
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.CAF_CERTIFICATE,
    title="Attestation de loyer (CAF)",
    legal_reference="Article 441-1 du Code pénal",
    payload_schema=CafCertificatePayload,
)
def build_caf_certificate(p: CafCertificatePayload) -> DocumentBody:
    lease = p.lease
    furnished = lease.lease_type != LeaseType.UNFURNISHED
    tenant_rows = [["Nom", p.tenant.name]]
    if p.beneficiary_number:
        tenant_rows.append(["N° allocataire CAF", p.beneficiary_number])
    tenant_rows.append(["Date d'entrée", format_date(lease.start_date)])

    dwelling_rows = [
        ["Adresse du logement", p.premises.full_address],
        ["Type de logement", "Meublé" if furnished else "Non meublé"],
    ]
    if p.premises.surface:
        dwelling_rows.append(["Surface habitable", f"{format_number(p.premises.surface, 2)} m²"])
    dwelling_rows.extend(
        [
            ["Nombre de pièces", str(p.premises.rooms) if p.premises.rooms is not None else "Non renseigné"],
            ["Loyer mensuel (hors charges)", _eur(lease.rent_amount)],
            ["Charges mensuelles", _eur(lease.charges_amount)],
            ["Total mensuel", _eur(Decimal(str(lease.rent_amount)) + Decimal(str(lease.charges_amount)))],
        ]
    )

    mode = [
        Heading("Mode de versement des aides au logement"),
        Paragraph(f"[{'X' if p.direct_payment else ' '}] Versement au bailleur (tiers payant)"),
        Paragraph(f"[{' ' if p.direct_payment else 'X'}] Versement au locataire"),
    ]
    if p.direct_payment and p.aid_amount > 0:
        mode.append(Paragraph(f"Montant mensuel de l'aide perçue par le bailleur : {_eur(p.aid_amount)}"))
    if p.direct_payment and p.landlord.bank_account:
        bank_rows = [["IBAN", p.landlord.bank_account]]
        if p.landlord.bic:
            bank_rows.append(["BIC", p.landlord.bic])
        mode.extend(
            [
                Paragraph("Coordonnées bancaires pour le versement en tiers payant :", css_class="bold"),
                *DataTable("caf-bank", (), bank_rows),
            ]
        )

    landlord_rows = [
        ["Nom / Raison sociale", p.landlord.name],
        ["Adresse", ", ".join(x for x in (p.landlord.address, p.landlord.city_line) if x)],
    ]
    if p.landlord.email:
        landlord_rows.append(["Email", p.landlord.email])

    return DocumentBody(
        title="ATTESTATION DE LOYER",
        sections=[
            [Letterhead(_party_lines(p.landlord), p.document_number, p.issue_date)],
            [DocumentTitle("ATTESTATION DE LOYER", "Document destiné à la Caisse d'Allocations Familiales")],
            [Heading("Identité du bailleur"), *DataTable("caf-landlord", (), landlord_rows)],
            [Heading("Identité du locataire"), *DataTable("caf-tenant", (), tenant_rows)],
            [Heading("Caractéristiques du logement"), *DataTable("caf-dwelling", (), dwelling_rows)],
            mode,
            [
                Paragraph(
                    f"Je soussigné(e) {p.landlord.name}, certifie sur l'honneur que les renseignements fournis "
                    f"ci-dessus sont exacts et que {p.tenant.name} occupe effectivement le logement décrit ci-dessus "
                    f"depuis le {format_date(lease.start_date)} en qualité de locataire et est à jour de ses "
                    "obligations locatives."
                )
            ],
            [
                LegalMention(
                    "Cette attestation est établie pour servir et valoir ce que de droit auprès de la Caisse "
                    "d'Allocations Familiales. Toute fausse déclaration est passible de sanctions pénales (article "
                    "441-1 du Code pénal). Le bailleur s'engage à informer la CAF de toute modification de la "
                    "situation locative (résiliation du bail, changement de loyer...)."
                )
            ],
            _landlord_signature(p, role="Signature du bailleur"),
        ],
    )


# ---------------------------------------------------------------------------
# Attestation annuelle de loyer
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.ANNUAL_CERTIFICATE,
    title="Attestation de loyer annuelle",
    legal_reference="Article 21 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=AnnualCertificatePayload,
)
def build_annual_certificate(p: AnnualCertificatePayload) -> DocumentBody:
    start = f"1er janvier {p.year}"
    end = f"31 décembre {p.year}"
    payments = sorted(p.payments, key=lambda line: line.month)
    rent_total = sum((Decimal(str(x.rent_amount)) for x in payments), Decimal("0"))
    charges_total = sum((Decimal(str(x.charges_amount)) for x in payments), Decimal("0"))
    paid_total = sum((Decimal(str(x.paid)) for x in payments), Decimal("0"))

    if payments:
        table = DataTable(
            "annual",
            ("Période", "Loyer", "Charges", "Payé"),
            [
                [_month_label(p.year, x.month), _eur(x.rent_amount), _eur(x.charges_amount), _eur(x.paid)]
                for x in payments
            ],
            numeric_columns=(1, 2, 3),
            footer=("TOTAL", _eur(rent_total), _eur(charges_total), _eur(paid_total)),
        )
    else:
        table = [Paragraph("Aucun paiement enregistré sur la période.")]

    return DocumentBody(
        title="ATTESTATION DE LOYER",
        sections=[
            _letter_header(p),
            [DocumentTitle("ATTESTATION DE LOYER", f"Période : {start} - {end}")],
            [
                Paragraph(
                    f"Je soussigné(e) {p.landlord.name}, propriétaire du logement situé au "
                    f"{p.premises.full_address}, atteste que {p.tenant.name}, locataire dudit logement, a acquitté "
                    f"les loyers et charges correspondant à la période du {start} au {end}, selon le détail ci-après."
                )
            ],
            [Heading("Récapitulatif des paiements"), *table],
            DataTable(
                "annual-totals",
                (),
                [
                    ["Total des loyers", _eur(rent_total)],
                    ["Total des charges", _eur(charges_total)],
                    ["Total réglé sur la période", _eur(paid_total)],
                ],
                numeric_columns=(1,),
            ),
            [
                LegalMention(
                    "Cette attestation est établie pour servir et valoir ce que de droit. Elle ne constitue pas une "
                    "quittance de loyer au sens de l'article 21 de la loi n° 89-462 du 6 juillet 1989. Le bailleur "
                    "certifie sur l'honneur l'exactitude des informations mentionnées dans ce document."
                )
            ],
            _landlord_signature(p, role="Signature du bailleur"),
        ],
    )


# ---------------------------------------------------------------------------
# Congé donné par le bailleur
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.LANDLORD_TERMINATION,
    title="Congé du bailleur",
    legal_reference="Article 15 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=LandlordTerminationPayload,
)
def build_landlord_termination(p: LandlordTerminationPayload) -> DocumentBody:
    reason = landlord_reason(p.reason)
    months = landlord_notice_months(p.furnished)
    effective = format_date(p.effective_date)

    motive = [Heading("Motif du congé"), Paragraph(reason.description)]
    if p.reason_detail:
        motive.append(Paragraph(p.reason_detail))
    if reason.code == "reprise" and p.beneficiary:
        relation = f" ({p.beneficiary_relationship})" if p.beneficiary_relationship else ""
        where = ", ".join(x for x in (p.beneficiary.address, p.beneficiary.city_line) if x)
        motive.append(
            Paragraph(
                f"Bénéficiaire de la reprise : {p.beneficiary.name}{relation}" + (f", demeurant {where}" if where else "")
            )
        )

    if reason.code == "vente":
        rights = (
            "Conformément à la loi, vous bénéficiez d'un droit de préemption sur le logement. Vous disposez des "
            "deux premiers mois du préavis pour vous porter acquéreur aux conditions mentionnées dans cette lettre."
        )
    else:
        rights = (
            "Vous disposez d'un délai de deux mois à compter de la réception de cette lettre pour contester ce "
            "congé devant le tribunal judiciaire si vous estimez qu'il est injustifié."
        )

    mention = (
        "Le présent congé est délivré conformément aux dispositions de l'article 15 de la loi n° 89-462 du "
        "6 juillet 1989 modifiée. En cas de contestation, le locataire dispose d'un délai de deux mois pour saisir "
        "le juge des contentieux de la protection."
    )
    if reason.code == "reprise":
        mention += (
            " Pour le congé pour reprise, le bailleur doit justifier du caractère réel et sérieux de sa décision "
            "de reprendre le logement."
        )
    elif reason.code == "vente":
        mention += (
            " Pour le congé pour vente, le locataire bénéficie d'un droit de préemption aux conditions indiquées "
            "dans le congé."
        )

    since = f" depuis le {format_date(p.lease_start_date)}" if p.lease_start_date else ""
    return DocumentBody(
        title=reason.title.upper(),
        sections=[
            _letter_header(p, mention=REGISTERED_MAIL),
            [DocumentTitle(reason.title.upper(), "Article 15 de la loi n° 89-462 du 6 juillet 1989")],
            [
                PlaceDate(p.landlord.city, p.issue_date),
                Subject(f"Congé donné au locataire - {reason.title}"),
                Paragraph(SALUTATION),
                Paragraph(
                    f"Je soussigné(e) {p.landlord.name}, propriétaire du logement situé au "
                    f"{p.premises.full_address}, que vous occupez{since}, vous informe par la présente de ma décision "
                    "de mettre fin au contrat de location qui nous lie, conformément à l'article 15 de la loi "
                    "n° 89-462 du 6 juillet 1989."
                ),
            ],
            [HighlightBox("Date de fin du bail", effective)],
            motive,
            [
                Paragraph(
                    f"Ce congé vous est notifié dans le respect du délai de préavis légal de {months} mois avant la "
                    "date d'échéance du bail."
                ),
                Paragraph(
                    f"Je vous rappelle que vous devez libérer les lieux et me restituer les clés au plus tard le "
                    f"{effective}. Un état des lieux de sortie sera effectué à cette occasion."
                ),
            ],
            [NoticeBox("Vos droits", rights)],
            [
                Paragraph(
                    "Je reste à votre disposition pour toute information complémentaire et pour convenir d'un "
                    "rendez-vous afin d'organiser votre départ et l'état des lieux de sortie."
                ),
                Paragraph(CLOSING),
            ],
            [LegalMention(mention)],
            _landlord_signature(p),
        ],
    )


# ---------------------------------------------------------------------------
# Congé donné par le locataire
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.TENANT_TERMINATION,
    title="Congé du locataire",
    legal_reference="Article 15 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=TenantTerminationPayload,
)
def build_tenant_termination(p: TenantTerminationPayload) -> DocumentBody:
    reason = tenant_reason(p.reason)
    months = tenant_notice_months(p.furnished, reason.code, p.reduced_notice)
    reduced = months == 1 and not p.furnished

    if reduced:
        notice_text = (
            "Le préavis est réduit à 1 mois en application de l'article 15 de la loi du 6 juillet 1989 "
            f"({reason.title.lower()})."
        )
    elif p.furnished:
        notice_text = "Le préavis est de 1 mois pour les locations meublées."
    else:
        notice_text = "Le préavis légal est de 3 mois pour les locations non meublées."
    notice_text += (
        "\nJe me tiens à votre disposition pour convenir d'un rendez-vous afin d'effectuer l'état des lieux de sortie."
    )

    motive: list[Block] = []
    if months == 1 and reason.code != "convenance":
        detail = f"\nPrécisions : {p.reason_detail}" if p.reason_detail else ""
        motive = [NoticeBox("Motif justifiant le préavis réduit", f"{reason.description}{detail}")]

    sender = [p.tenant.name, *_premises_lines(p)]
    if p.tenant.phone:
        sender.append(f"Tél : {p.tenant.phone}")
    if p.tenant.email:
        sender.append(f"Email : {p.tenant.email}")
    city = p.premises.city or "..."

    sections: list[Section] = [
        [
            Letterhead(sender, p.document_number, p.issue_date),
            RecipientBlock(p.landlord.name, [x for x in (p.landlord.address, p.landlord.city_line) if x], REGISTERED_MAIL),
        ],
        [DocumentTitle("CONGÉ DU LOCATAIRE", "Article 15 de la loi n° 89-462 du 6 juillet 1989")],
        [
            PlaceDate(p.premises.city, p.issue_date),
            Subject(f"Résiliation du bail - Préavis de {months} mois"),
            Paragraph(SALUTATION),
            Paragraph(
                "Par la présente, je vous informe de ma décision de résilier le contrat de location du logement "
                f"situé au {p.premises.full_address}, conformément à l'article 15 de la loi n° 89-462 du "
                "6 juillet 1989."
            ),
        ],
        [HighlightBox("Date de départ prévue", format_date(p.departure_date))],
    ]
    if motive:
        sections.append(motive)
    sections.extend(
        [
            [NoticeBox(f"Durée du préavis : {months} mois", notice_text)],
            [
                Paragraph(
                    "Conformément à la législation en vigueur, le loyer sera dû jusqu'à la date effective de départ "
                    "ou jusqu'à ce qu'un nouveau locataire prenne possession des lieux, selon la date la plus proche."
                ),
                Paragraph(
                    "Je sollicite la restitution de mon dépôt de garantie dans les délais légaux prévus par la loi "
                    "(un mois si l'état des lieux de sortie est conforme à celui d'entrée, deux mois dans le cas "
                    "contraire)."
                ),
                Paragraph(CLOSING),
            ],
            [
                LegalMention(
                    "Conformément à l'article 15 de la loi n° 89-462 du 6 juillet 1989, le locataire peut résilier le "
                    "contrat de location à tout moment, sous réserve du respect d'un préavis de trois mois (réduit à "
                    "un mois pour les locations meublées ou dans certains cas prévus par la loi : zone tendue, "
                    "mutation professionnelle, perte d'emploi, premier emploi, nouvel emploi suite à perte d'emploi, "
                    "raison de santé justifiant un changement de domicile, bénéficiaire RSA ou AAH, attribution d'un "
                    "logement social)."
                )
            ],
            [SignatureBlock(f"Fait à {city}, le {format_date(p.issue_date)}", [("Le locataire", p.tenant.name)])],
        ]
    )
    return DocumentBody(title="CONGÉ DU LOCATAIRE", sections=sections)


# ---------------------------------------------------------------------------
# Congé pour vente
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.SALE_NOTICE,
    title="Congé pour vente",
    legal_reference="Article 15-II de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=SaleNoticePayload,
)
def build_sale_notice(p: SaleNoticePayload) -> DocumentBody:
    price = Decimal(str(p.sale_price))
    fees = Decimal(str(p.agency_fees))
    rows = [("Prix de vente proposé", _eur(price))]
    if fees > 0:
        rows.append(("Frais d'agence (à la charge de l'acquéreur)", _eur(fees)))
    furnishing = "avec mobilier" if p.furnished else "sans mobilier"

    conditions = [
        f"Mode de paiement : {p.payment_terms}",
        f"Délai de réalisation : {p.completion_delay}",
    ]
    if p.special_conditions:
        conditions.append(f"Conditions particulières : {p.special_conditions}")
    conditions.append(f"Le bien est vendu {furnishing}, dans l'état où il se trouve.")

    return DocumentBody(
        title="CONGÉ POUR VENTE",
        sections=[
            _letter_header(p, mention=REGISTERED_MAIL),
            [DocumentTitle("CONGÉ POUR VENTE", "Article 15-II de la loi n° 89-462 du 6 juillet 1989")],
            [
                PlaceDate(p.landlord.city, p.issue_date),
                Subject("Congé pour vente avec offre de vente"),
                Paragraph(SALUTATION),
                Paragraph(
                    f"Je soussigné(e) {p.landlord.name}, propriétaire du logement situé au {p.premises.full_address}, "
                    "vous notifie par la présente mon intention de vendre ce logement."
                ),
                Paragraph(
                    "Ce congé prendra effet à la date d'échéance de votre bail. Conformément à la loi, vous "
                    "bénéficiez d'un droit de préemption vous permettant d'acquérir le logement en priorité aux "
                    "conditions décrites ci-après."
                ),
            ],
            [
                Heading("Conditions de vente"),
                *AmountRows("sale", rows, total=("Total acquisition", _eur(price + fees))),
            ],
            [
                Heading("Votre droit de préemption"),
                NoticeBox(
                    "",
                    "En application de l'article 15-II de la loi du 6 juillet 1989, vous bénéficiez d'un droit de "
                    "préemption. Cette offre de vente est valable pendant les deux premiers mois du délai de préavis. "
                    "Passé ce délai, l'offre sera caduque.\n"
                    f"Date limite de réponse : {format_date(p.response_deadline)}",
                ),
            ],
            [Heading("Conditions de la vente"), *BulletList(conditions)],
            [
                HighlightBox(
                    "À défaut d'exercice du droit de préemption, le bail prendra fin le",
                    format_date(p.effective_date),
                ),
                Paragraph(
                    "Si vous souhaitez acquérir le logement, vous devez m'en informer par lettre recommandée avec "
                    "accusé de réception dans le délai de deux mois. L'acceptation de l'offre entraîne l'obligation "
                    "de réaliser la vente dans les conditions proposées."
                ),
                Paragraph(CLOSING),
            ],
            [
                LegalMention(
                    "Mentions obligatoires (article 15-II loi 89-462) : Ce congé vaut offre de vente au profit du "
                    "locataire. L'offre est valable pendant les deux premiers mois du délai de préavis. À défaut de "
                    "réponse dans ce délai, le locataire sera déchu de son droit de préemption. Si le propriétaire "
                    "décide de vendre à des conditions plus avantageuses pour l'acquéreur, il devra notifier une "
                    "nouvelle offre au locataire. Les locataires âgés de plus de 65 ans et dont les ressources sont "
                    "inférieures au plafond en vigueur bénéficient d'une protection renforcée."
                )
            ],
            _landlord_signature(p),
        ],
    )


# ---------------------------------------------------------------------------
# Lettre d'indexation
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.INDEXATION_LETTER,
    title="Révision annuelle du loyer",
    legal_reference="Article 17-1 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=IndexationLetterPayload,
)
def build_indexation_letter(p: IndexationLetterPayload) -> DocumentBody:
    result = compute_indexation(
        p.old_rent,
        p.old_index,
        p.new_index,
        old_period_label=p.old_period_label,
        new_period_label=p.new_period_label,
        effective_date=p.effective_date,
    )
    old_idx = format_number(result.old_index, 2)
    new_idx = format_number(result.new_index, 2)
    sign = "+" if result.variation_percent >= 0 else ""
    old_label = f" ({result.old_period_label})" if result.old_period_label else ""
    new_label = f" ({result.new_period_label})" if result.new_period_label else ""
    effective = format_date(p.effective_date)

    return DocumentBody(
        title="RÉVISION ANNUELLE DU LOYER",
        sections=[
            _letter_header(p),
            [DocumentTitle("RÉVISION ANNUELLE DU LOYER", "Indice de Référence des Loyers (IRL)")],
            [
                PlaceDate(p.landlord.city, p.issue_date),
                Subject("Révision annuelle du loyer - Application de l'IRL"),
                Paragraph(SALUTATION),
                Paragraph(
                    "Conformément aux dispositions de l'article 17-1 de la loi n° 89-462 du 6 juillet 1989 et aux "
                    "termes de votre contrat de bail, je vous informe que le loyer du logement que vous occupez au "
                    f"{p.premises.full_address} est révisé à compter du {effective}."
                ),
                Paragraph(
                    "Cette révision est calculée sur la base de la variation de l'Indice de Référence des Loyers "
                    "(IRL) publié par l'INSEE."
                ),
            ],
            [
                Heading("Détail du calcul"),
                *DataTable(
                    "indexation",
                    (),
                    [
                        ["Loyer actuel (hors charges)", _eur(result.old_rent)],
                        [f"IRL de référence du bail{old_label}", old_idx],
                        [f"Nouvel IRL{new_label}", new_idx],
                    ],
                    numeric_columns=(1,),
                ),
                NoticeBox(
                    "",
                    "Nouveau loyer = Ancien loyer × (Nouvel IRL / Ancien IRL)\n"
                    f"{_eur(result.old_rent)} × ({new_idx} / {old_idx}) = {_eur(result.new_rent)}",
                ),
            ],
            [
                HighlightBox(
                    "Nouveau loyer mensuel",
                    _eur(result.new_rent),
                    note=f"Ancien loyer : {_eur(result.old_rent)} | Variation : {sign}{format_percent(result.variation_percent)}"
                    f" | Date d'effet : {effective}",
                ),
            ],
            [
                LegalMention(
                    "Conformément à l'article 17-1 de la loi du 6 juillet 1989, la révision du loyer prend effet à la "
                    "date convenue entre les parties ou, à défaut, à la date anniversaire du contrat. Le montant des "
                    "charges reste inchangé et fera l'objet d'une régularisation annuelle distincte. Les indices IRL "
                    "sont publiés trimestriellement par l'INSEE (Institut National de la Statistique et des Études "
                    "Économiques)."
                ),
                Paragraph(CLOSING),
            ],
            _landlord_signature(p, role="Signature du bailleur"),
        ],
    )


# ---------------------------------------------------------------------------
# Régularisation des charges
# ---------------------------------------------------------------------------


ESTIMATED_BREAKDOWN_NOTICE = (
    "Faute de relevé détaillé des dépenses, le détail ci-dessous est une répartition indicative des charges "
    "réelles par grands postes. Les justificatifs définitifs restent seuls opposables."
)


@register_template(
    DocumentType.CHARGE_RECONCILIATION,
    title="Régularisation des charges",
    legal_reference="Articles 23 et 23-1 de la loi n° 89-462 du 6 juillet 1989",
    payload_schema=ChargeReconciliationPayload,
)
def build_charge_reconciliation(p: ChargeReconciliationPayload) -> DocumentBody:
    result = reconcile_charges(p.provisions_paid, p.actual_charges, p.breakdown)
    amount = _eur(abs(result.balance))
    period = p.period_label
    if p.period_start and p.period_end:
        period = f"{format_date(p.period_start)} au {format_date(p.period_end)}"

    if result.is_refund:
        balance_label = "Solde en faveur du locataire"
        box = HighlightBox(
            "Montant à vous rembourser",
            amount,
            note="Ce montant sera déduit de votre prochain loyer ou remboursé par virement.",
        )
        settlement = f"Le remboursement de {amount} sera effectué {p.settlement_method or 'par déduction sur le prochain loyer'}."
    elif result.is_additional_payment:
        balance_label = "Solde dû par le locataire"
        box = HighlightBox(
            "Montant à régulariser",
            amount,
            note="Ce montant sera ajouté à votre prochain loyer ou peut être réglé séparément.",
            tone="warning",
        )
        settlement = f"Le complément de {amount} {p.settlement_method or 'sera ajouté à votre prochain appel de loyer'}."
    else:
        balance_label = "Solde"
        box = HighlightBox("Aucun solde", amount, note="Les provisions versées couvrent exactement les charges réelles.")
        settlement = "Aucune somme n'est due par l'une ou l'autre des parties au titre de cette période."

    detail: list[Block] = [Heading("Détail des charges réelles")]
    if result.is_estimated_breakdown:
        detail.append(NoticeBox("Répartition indicative", ESTIMATED_BREAKDOWN_NOTICE, tone="warning"))
    detail.extend(
        AmountRows(
            "charges-detail",
            [(item.label, _eur(item.amount)) for item in result.breakdown],
            total=("Total des charges réelles", _eur(result.actual_charges)),
        )
    )

    return DocumentBody(
        title="RÉGULARISATION DES CHARGES",
        sections=[
            _letter_header(p),
            [
                DocumentTitle(
                    "RÉGULARISATION DES CHARGES",
                    f"Articles 23 et 23-1 de la loi n° 89-462 du 6 juillet 1989 | Période : {p.period_label}",
                )
            ],
            [
                PlaceDate(p.landlord.city, p.issue_date),
                Subject(f"Décompte de régularisation des charges locatives {p.period_label}"),
                Paragraph(SALUTATION),
                Paragraph(
                    "Conformément aux dispositions légales, nous vous adressons le décompte de régularisation des "
                    f"charges locatives pour le bien situé au {p.premises.full_address}, pour la période du {period}."
                ),
            ],
            AmountRows(
                "charges",
                [
                    ("Provisions pour charges versées", _eur(result.provisions_paid)),
                    ("Charges réelles (détail ci-dessous)", _eur(result.actual_charges)),
                ],
                total=(balance_label, amount),
            ),
            [box],
            detail,
            [
                Paragraph(
                    "Les justificatifs des charges récupérables sont à votre disposition et peuvent être consultés sur "
                    "simple demande, conformément à l'article 23 de la loi du 6 juillet 1989."
                ),
                Paragraph(settlement),
                Paragraph("Je reste à votre disposition pour toute information complémentaire."),
                Paragraph(CLOSING),
            ],
            [
                LegalMention(
                    "Conformément aux articles 23 et 23-1 de la loi n° 89-462 du 6 juillet 1989, le bailleur doit "
                    "procéder annuellement à la régularisation des charges. Seules les charges récupérables "
                    "limitativement énumérées par le décret n° 87-713 du 26 août 1987 peuvent être répercutées sur le "
                    "locataire. Le locataire dispose d'un délai d'un mois pour contester cette régularisation. Les "
                    "pièces justificatives sont tenues à disposition pendant 6 mois suivant l'envoi du décompte."
                )
            ],
            _landlord_signature(p),
        ],
    )


# ---------------------------------------------------------------------------
# Accord d'échéancier
# ---------------------------------------------------------------------------


@register_template(
    DocumentType.PAYMENT_PLAN,
    title="Accord d'échéancier de paiement",
    legal_reference="Article 1343-5 du Code civil",
    payload_schema=PaymentPlanPayload,
)
def build_payment_plan(p: PaymentPlanPayload) -> DocumentBody:
    schedule = compute_debt_schedule(p.total_debt, p.installment_count, p.start_date)
    debts = [[d.label, _eur(d.amount)] for d in p.debts] or [["Arriérés de loyers", _eur(p.total_debt)]]

    conditions = [
        "Le locataire s'engage à respecter scrupuleusement les dates et montants de l'échéancier ci-dessus.",
        "Le loyer courant doit être payé à sa date d'exigibilité normale, indépendamment de l'échéancier.",
        f"Tout retard de paiement de plus de {p.late_days} jours entraînera la caducité de plein droit du présent accord.",
        "En cas de caducité, l'intégralité de la dette restante deviendra immédiatement exigible.",
    ]
    if p.other_conditions:
        conditions.append(p.other_conditions)

    issued = format_date(p.issue_date)
    return DocumentBody(
        title="ACCORD D'ÉCHÉANCIER DE PAIEMENT",
        sections=[
            [Letterhead(_party_lines(p.landlord), p.document_number, p.issue_date)],
            [
                DocumentTitle(
                    "ACCORD D'ÉCHÉANCIER DE PAIEMENT",
                    "Protocole d'accord amiable pour le remboursement de la dette locative",
                )
            ],
            [
                Heading("Entre les parties"),
                *DataTable(
                    "plan-parties",
                    (),
                    [
                        ["LE BAILLEUR", p.landlord.name, ", ".join(x for x in (p.landlord.address, p.landlord.city_line) if x)],
                        ["LE LOCATAIRE", p.tenant.name, p.premises.full_address],
                    ],
                ),
                Paragraph(
                    "Les parties conviennent d'un commun accord de mettre en place un échéancier de paiement pour le "
                    f"règlement de la dette locative arrêtée au {format_date(p.debt_date)}."
                ),
            ],
            [
                Heading("Récapitulatif de la dette"),
                *DataTable(
                    "plan-debts",
                    ("Désignation", "Montant"),
                    debts,
                    numeric_columns=(1,),
                    footer=("Total de la dette", _eur(p.total_debt)),
                ),
            ],
            [
                Paragraph(
                    "Le locataire s'engage à rembourser cette dette selon l'échéancier suivant, en plus du loyer "
                    "courant, qui devra continuer à être payé normalement à chaque échéance."
                ),
                *DataTable(
                    "plan-schedule",
                    ("N°", "Date d'échéance", "Montant", "Reste dû"),
                    [
                        [str(e.sequence), format_date(e.due_date), _eur(e.amount), _eur(e.remaining_balance)]
                        for e in schedule
                    ],
                    numeric_columns=(2, 3),
                ),
            ],
            [Heading("Conditions de l'accord"), *NumberedList(conditions)],
            [
                NoticeBox(
                    "Important",
                    "Le présent accord ne constitue pas une renonciation du bailleur à ses droits. En cas de "
                    "non-respect de l'échéancier, le bailleur se réserve le droit d'engager ou de poursuivre toute "
                    "procédure de recouvrement, y compris la résiliation du bail pour défaut de paiement.",
                    tone="warning",
                )
            ],
            [
                SignatureBlock(
                    f"Fait en deux exemplaires, le {issued}",
                    [("LE BAILLEUR", p.landlord.name), ("LE LOCATAIRE", p.tenant.name)],
                ),
            ],
            [
                LegalMention(
                    "Le présent accord est établi en deux exemplaires originaux, chacune des parties reconnaissant "
                    "avoir reçu le sien. Cet accord est conclu à titre amiable et ne peut être interprété comme une "
                    "reconnaissance de dette au sens de l'article 1376 du Code civil. Le bailleur conserve tous ses "
                    "droits concernant la créance en cas de non-respect de l'échéancier par le locataire."
                )
            ],
        ],
    )
