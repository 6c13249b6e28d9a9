"""
Lease contract (bail d'habitation) laid out with the shared pagination engine.

Articles are emitted as sections so a heading never ends up alone at the
bottom of a page; the signatures always start on a fresh page and are
followed by the closing legal mention.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from brands import active_brand
from engine.legal_rules import lease_rule, validate_deposit_amount, validate_lease_duration
from models import CustomClause, LeaseContractPayload, LeaseType
from models_branding import BrandConfig

from .components import (
    BulletList,
    DocumentTitle,
    Heading,
    LegalMention,
    Paragraph,
    RenderedDocument,
    SignatureBlock,
    _esc,
    render_sections,
)
from .format_utils import amount_in_words, format_currency, format_date, format_number
from .layout import Block

logger = logging.getLogger(__name__)

CONTRACT_TITLE = "CONTRAT DE LOCATION"
LAW_LINE = "(Loi n° 89-462 du 6 juillet 1989 modifiée par la loi ALUR du 24 mars 2014)"

SUBTITLES = {
    LeaseType.UNFURNISHED: "Bail d'habitation - Logement vide",
    LeaseType.FURNISHED: "Bail d'habitation - Logement meublé",
    LeaseType.STUDENT: "Bail d'habitation - Logement meublé (étudiant)",
    LeaseType.MOBILITY: "Bail mobilité - Logement meublé",
}

RENEWAL_TEXT = {
    LeaseType.UNFURNISHED: (
        "À défaut de congé donné par l'une ou l'autre des parties dans les conditions légales, le bail sera "
        "reconduit tacitement pour une durée de trois ans."
    ),
    LeaseType.FURNISHED: (
        "À défaut de congé donné par l'une ou l'autre des parties dans les conditions légales, le bail sera "
        "reconduit tacitement pour une durée d'un an."
    ),
    LeaseType.STUDENT: (
        "Le bail consenti à un étudiant pour une durée de neuf mois n'est pas reconduit tacitement : il prend "
        "fin à son terme sans qu'un congé soit nécessaire."
    ),
    LeaseType.MOBILITY: (
        "Le bail mobilité ne peut être ni renouvelé ni reconduit. Sa durée peut être modifiée une fois par "
        "avenant sans que la durée totale n'excède dix mois."
    ),
}

LOT_TYPE_LABELS = {
    "apartment": "Appartement",
    "studio": "Studio",
    "house": "Maison",
    "commercial": "Local commercial",
    "office": "Bureau",
    "parking": "Parking",
    "cellar": "Cave",
    "storage": "Débarras",
    "land": "Terrain",
    "other": "Autre",
}

LEGAL_FORM_LABELS = {
    "individual": "Personne physique",
    "sci": "Société Civile Immobilière",
    "sarl": "SARL",
    "sas": "SAS",
    "sasu": "SASU",
    "eurl": "EURL",
    "lmnp": "LMNP",
    "lmp": "LMP",
    "other": "Autre",
}

RESOLUTORY_CLAUSE = (
    "Il est expressément convenu qu'à défaut de paiement au terme convenu de tout ou partie du loyer ou des "
    "charges, ou à défaut de versement du dépôt de garantie, ou en cas de non-souscription d'une assurance des "
    "risques locatifs, le présent bail sera résilié de plein droit, si bon semble au bailleur, un mois après un "
    "commandement de payer demeuré infructueux."
)

TENANT_OBLIGATIONS = (
    "Payer le loyer et les charges aux termes convenus",
    "User paisiblement des locaux loués suivant la destination qui leur a été donnée",
    "Répondre des dégradations et pertes qui surviennent pendant la durée du contrat",
    "Prendre à sa charge l'entretien courant du logement et des équipements mentionnés au contrat",
    "Laisser exécuter dans les lieux loués les travaux d'amélioration des parties communes",
    "Ne pas transformer les locaux sans l'accord écrit du propriétaire",
    "S'assurer contre les risques locatifs",
    "Permettre l'accès aux lieux pour les travaux d'amélioration énergétique",
)

LANDLORD_OBLIGATIONS = (
    "Remettre au locataire le logement en bon état d'usage et de réparation",
    "Assurer au locataire la jouissance paisible du logement",
    "Entretenir les locaux en état de servir à l'usage prévu par le contrat",
    "Effectuer toutes les réparations autres que locatives",
    "Ne pas s'opposer aux aménagements réalisés par le locataire (sauf transformation)",
    "Remettre gratuitement une quittance au locataire qui en fait la demande",
)

DIAGNOSTICS_TEXT = (
    "Les diagnostics obligatoires sont annexés au présent contrat : Diagnostic de Performance Énergétique (DPE), "
    "Constat de Risque d'Exposition au Plomb (CREP), État des Risques et Pollutions (ERP), Diagnostic électricité "
    "et gaz le cas échéant."
)

CLOSING_MENTION = (
    "Le présent contrat est établi conformément à la loi n° 89-462 du 6 juillet 1989 tendant à améliorer les "
    "rapports locatifs, modifiée par la loi n° 2014-366 du 24 mars 2014 pour l'accès au logement et un urbanisme "
    "rénové (ALUR). Le locataire reconnaît avoir reçu un exemplaire du présent contrat ainsi que l'état des lieux "
    "d'entrée et les diagnostics obligatoires."
)

FURNISHED_NOTICE = (
    "Ce bail concerne un logement meublé conformément au décret n° 2015-981 du 31 juillet 2015 fixant la liste "
    "des éléments de mobilier minimum."
)


def _sub_heading(text: str) -> Block:
    return Paragraph(text, css_class="bold")


def _party_section(p: LeaseContractPayload) -> List[Block]:
    landlord = p.landlord
    lines = [landlord.name]
    if landlord.legal_form:
        lines.append(f"Forme juridique : {LEGAL_FORM_LABELS.get(landlord.legal_form, landlord.legal_form)}")
    if landlord.tax_id:
        lines.append(f"SIRET : {landlord.tax_id}")
    if landlord.address:
        lines.append(f"Adresse : {landlord.address}")
    if landlord.city_line:
        lines.append(landlord.city_line)

    tenant = p.tenant
    tenant_lines = [tenant.name]
    if tenant.email:
        tenant_lines.append(f"Email : {tenant.email}")
    if tenant.phone:
        tenant_lines.append(f"Téléphone : {tenant.phone}")

    return [
        Heading("ARTICLE 1 - DÉSIGNATION DES PARTIES"),
        _sub_heading("Le Bailleur :"),
        Paragraph("\n".join(lines), css_class="indent"),
        _sub_heading("Le Locataire :"),
        Paragraph("\n".join(tenant_lines), css_class="indent"),
    ]


def _designation_section(p: LeaseContractPayload) -> List[Block]:
    premises = p.premises
    location = [f"Adresse : {premises.address}"]
    if premises.city_line:
        location.append(premises.city_line)
    if premises.floor is not None:
        location.append(f"Étage : {'Rez-de-chaussée' if premises.floor == 0 else premises.floor}")
    if premises.door_number:
        location.append(f"Porte : {premises.door_number}")

    details = []
    if premises.label:
        details.append(f"Lot : {premises.label}")
    if premises.lot_type:
        details.append(f"Type : {LOT_TYPE_LABELS.get(premises.lot_type, premises.lot_type)}")
    if premises.surface:
        details.append(f"Surface habitable : {format_number(premises.surface, 2)} m²")
    if premises.rooms is not None:
        details.append(f"Nombre de pièces principales : {premises.rooms}")
    if premises.annexes:
        details.append(f"Annexes : {', '.join(premises.annexes)}")

    blocks = [
        Heading("ARTICLE 2 - OBJET DU CONTRAT"),
        Paragraph("Le présent contrat a pour objet la location d'un logement ainsi déterminé :"),
        _sub_heading("Localisation du logement :"),
        Paragraph("\n".join(location), css_class="indent"),
    ]
    if details:
        blocks.extend([_sub_heading("Désignation des locaux :"), Paragraph("\n".join(details), css_class="indent")])
    if p.lease.lease_type != LeaseType.UNFURNISHED:
        blocks.append(Paragraph(FURNISHED_NOTICE))
    return blocks


def _duration_section(p: LeaseContractPayload) -> List[Block]:
    lease = p.lease
    rule = lease_rule(lease.lease_type)
    text = f"Le présent bail est consenti et accepté pour une durée de {rule.duration_text} à compter du {format_date(lease.start_date)}"
    text += f" et se terminera le {format_date(lease.end_date)}." if lease.end_date else "."
    return [
        Heading("ARTICLE 3 - DURÉE DU CONTRAT"),
        Paragraph(text),
        Paragraph(RENEWAL_TEXT[lease.lease_type]),
        Paragraph(f"Référence : {rule.legal_reference}.", css_class="muted"),
    ]


def _amount_line(label: str, amount) -> Block:
    text = f"{label} : {format_currency(amount)} ({amount_in_words(amount)})"
    return Paragraph(
        text,
        html_body=f"{_esc(label)} : <strong>{_esc(format_currency(amount))}</strong> ({_esc(amount_in_words(amount))})",
        css_class="indent",
    )


def _rent_section(p: LeaseContractPayload) -> List[Block]:
    lease = p.lease
    rent = Decimal(str(lease.rent_amount))
    charges = Decimal(str(lease.charges_amount))
    day = "1er" if lease.payment_day == 1 else str(lease.payment_day)
    return [
        Heading("ARTICLE 4 - LOYER ET CHARGES"),
        _sub_heading("4.1 - Loyer :"),
        _amount_line("Loyer mensuel hors charges", rent),
        _sub_heading("4.2 - Charges récupérables :"),
        _amount_line("Provision mensuelle pour charges", charges),
        Paragraph(
            "Cette provision fera l'objet d'une régularisation annuelle. Les charges récupérables sont exigibles en "
            "contrepartie des services rendus liés à l'usage des différents éléments de la chose louée.",
            css_class="indent",
        ),
        _sub_heading("4.3 - Total mensuel :"),
        _amount_line("Montant total mensuel", rent + charges),
        _sub_heading("4.4 - Modalités de paiement :"),
        Paragraph(f"Le loyer est payable mensuellement et d'avance, le {day} de chaque mois.", css_class="indent"),
    ]


def _deposit_section(p: LeaseContractPayload) -> List[Block]:
    lease = p.lease
    rule = lease_rule(lease.lease_type)
    blocks = [Heading("ARTICLE 5 - DÉPÔT DE GARANTIE")]
    if rule.max_deposit_months == 0:
        blocks.append(
            Paragraph(
                "Conformément à l'article 25-13 de la loi du 6 juillet 1989, aucun dépôt de garantie ne peut être "
                "exigé dans le cadre d'un bail mobilité."
            )
        )
        return blocks
    deposit = Decimal(str(lease.deposit_amount or 0))
    cap = "un mois" if rule.max_deposit_months == 1 else "deux mois"
    blocks.extend(
        [
            Paragraph(
                f"Un dépôt de garantie de {format_currency(deposit)} ({amount_in_words(deposit)}) est versé par le "
                "locataire à la signature du présent contrat."
            ),
            Paragraph(
                f"Ce dépôt de garantie ne peut être supérieur à {cap} de loyer hors charges. Il sera restitué dans un "
                "délai maximal de deux mois à compter de la remise des clés, déduction faite des sommes restant dues "
                "au bailleur et des sommes dont celui-ci pourrait être tenu aux lieu et place du locataire."
            ),
        ]
    )
    return blocks


def _diagnostics_section(p: LeaseContractPayload) -> List[Block]:
    premises = p.premises
    blocks = [Heading("ARTICLE 9 - DIAGNOSTICS"), Paragraph(DIAGNOSTICS_TEXT)]
    ratings = []
    if premises.dpe_rating:
        value = f" ({format_number(premises.dpe_value, 0)} kWh/m²/an)" if premises.dpe_value is not None else ""
        ratings.append(f"DPE : Classe {premises.dpe_rating}{value}")
    if premises.ges_rating:
        value = f" ({format_number(premises.ges_value, 0)} kg CO2/m²/an)" if premises.ges_value is not None else ""
        ratings.append(f"GES : Classe {premises.ges_rating}{value}")
    if ratings:
        blocks.append(Paragraph("\n".join(ratings), css_class="indent"))
    return blocks


def _clause_sections(clauses: List[CustomClause]) -> List[List[Block]]:
    """Article 10 only exists when at least one clause has a title or content."""
    kept = [c for c in clauses if not c.is_empty]
    if not kept:
        return []
    sections: List[List[Block]] = []
    for idx, clause in enumerate(kept, start=1):
        blocks: List[Block] = []
        if idx == 1:
            blocks.append(Heading("ARTICLE 10 - CLAUSES PARTICULIÈRES"))
        if clause.title:
            blocks.append(_sub_heading(f"{idx}. {clause.title}"))
        if clause.content:
            blocks.append(Paragraph(clause.content, css_class="indent"))
        sections.append(blocks)
    return sections


def _signature_section(p: LeaseContractPayload) -> List[Block]:
    city = p.signature_city or "........................"
    return [
        Heading("SIGNATURES"),
        Paragraph(f"Fait à {city}, le {format_date(p.issue_date)}"),
        Paragraph("En deux exemplaires originaux"),
        SignatureBlock("", [("Le Bailleur", p.landlord.name), ("Le Locataire", p.tenant.name)]),
    ]


def contract_sections(p: LeaseContractPayload) -> list:
    sections: list = [
        [DocumentTitle(CONTRACT_TITLE, SUBTITLES[p.lease.lease_type]), Paragraph(LAW_LINE, css_class="center")],
        _party_section(p),
        _designation_section(p),
        _duration_section(p),
        _rent_section(p),
        _deposit_section(p),
        [Heading("ARTICLE 6 - CLAUSE RÉSOLUTOIRE"), Paragraph(RESOLUTORY_CLAUSE)],
        [Heading("ARTICLE 7 - OBLIGATIONS DU LOCATAIRE"), *BulletList(TENANT_OBLIGATIONS)],
        [Heading("ARTICLE 8 - OBLIGATIONS DU BAILLEUR"), *BulletList(LANDLORD_OBLIGATIONS)],
        _diagnostics_section(p),
    ]
    sections.extend(_clause_sections(p.custom_clauses))
    sections.append("signature")
    sections.append(_signature_section(p))
    sections.append([LegalMention(CLOSING_MENTION)])
    return sections


def contract_warnings(p: LeaseContractPayload) -> List[str]:
    """Lease-law checks reported alongside the contract; they never block generation."""
    lease = p.lease
    warnings = []
    for check in (
        validate_lease_duration(lease.lease_type, lease.start_date, lease.end_date),
        validate_deposit_amount(lease.lease_type, lease.rent_amount, lease.deposit_amount),
    ):
        if not check.valid:
            logger.warning("LEASE_RULE_VIOLATION document=%s msg=%s", p.document_number, check.message)
            warnings.append(check.message)
    return warnings


def render_lease_contract(payload: LeaseContractPayload, brand: Optional[BrandConfig] = None) -> RenderedDocument:
    if not isinstance(payload, LeaseContractPayload):
        payload = LeaseContractPayload.model_validate(payload)
    return render_sections(CONTRACT_TITLE, contract_sections(payload), brand or active_brand(), payload.document_number)
