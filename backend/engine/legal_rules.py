"""
French residential lease rules (loi n° 89-462 du 6 juillet 1989, loi ELAN for
the bail mobilité): durations, deposit caps, notice periods and the catalogue
of termination reasons printed on congé letters.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Optional

from models import LeaseType, coerce_lease_type
from reporting.format_utils import format_currency, parse_date, parse_decimal


@dataclass(frozen=True)
class LeaseRule:
    label: str
    min_duration_months: int
    max_duration_months: Optional[int]
    max_deposit_months: int
    notice_months: int
    duration_text: str
    legal_reference: str


LEASE_LEGAL_RULES: Dict[LeaseType, LeaseRule] = {
    LeaseType.UNFURNISHED: LeaseRule(
        label="Location vide",
        min_duration_months=36,
        max_duration_months=None,
        max_deposit_months=1,
        notice_months=3,
        duration_text="trois (3) ans",
        legal_reference="Article 10 de la loi n° 89-462 du 6 juillet 1989",
    ),
    LeaseType.FURNISHED: LeaseRule(
        label="Location meublée",
        min_duration_months=12,
        max_duration_months=None,
        max_deposit_months=2,
        notice_months=1,
        duration_text="un (1) an",
        legal_reference="Article 25-7 de la loi n° 89-462 du 6 juillet 1989",
    ),
    LeaseType.STUDENT: LeaseRule(
        label="Location meublée étudiante",
        min_duration_months=9,
        max_duration_months=None,
        max_deposit_months=2,
        notice_months=1,
        duration_text="neuf (9) mois",
        legal_reference="Article 25-7 de la loi n° 89-462 du 6 juillet 1989",
    ),
    LeaseType.MOBILITY: LeaseRule(
        label="Bail mobilité",
        min_duration_months=1,
        max_duration_months=10,
        max_deposit_months=0,
        notice_months=1,
        duration_text="un (1) à dix (10) mois, non renouvelable",
        legal_reference="Articles 25-12 et suivants de la loi n° 89-462 du 6 juillet 1989",
    ),
}


def lease_rule(lease_type: Any) -> LeaseRule:
    return LEASE_LEGAL_RULES[coerce_lease_type(lease_type)]


@dataclass(frozen=True)
class RuleCheck:
    valid: bool
    message: str = ""


def duration_months(start: date, end: date) -> int:
    """
    Whole months covered by a lease running from `start` to `end` inclusive
    (2024-09-01 to 2027-08-31 is 36 months). An incomplete last month does not count.
    """
    after = end + timedelta(days=1)
    months = (after.year - start.year) * 12 + (after.month - start.month)
    if after.day < start.day:
        months -= 1
    return max(months, 0)


def validate_lease_duration(lease_type: Any, start_date: Any, end_date: Any) -> RuleCheck:
    """Open-ended leases are valid except for the bail mobilité, which needs an end date."""
    rule = lease_rule(lease_type)
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        if rule.max_duration_months is not None:
            return RuleCheck(False, f"{rule.label} : une date de fin est obligatoire")
        return RuleCheck(True)
    months = duration_months(start, end)
    if months < rule.min_duration_months:
        return RuleCheck(
            False,
            f"{rule.label} : durée de {months} mois inférieure au minimum légal de {rule.min_duration_months} mois",
        )
    if rule.max_duration_months is not None and months > rule.max_duration_months:
        return RuleCheck(
            False,
            f"{rule.label} : durée de {months} mois supérieure au maximum légal de {rule.max_duration_months} mois",
        )
    return RuleCheck(True)


def validate_deposit_amount(lease_type: Any, rent_amount: Any, deposit_amount: Any) -> RuleCheck:
    """Deposit cap is expressed in months of rent excluding charges."""
    rule = lease_rule(lease_type)
    deposit = parse_decimal(deposit_amount)
    if deposit is None or deposit == 0:
        return RuleCheck(True)
    rent = parse_decimal(rent_amount)
    if rent is None:
        return RuleCheck(True)
    cap = rent * rule.max_deposit_months
    if deposit > cap:
        if rule.max_deposit_months == 0:
            return RuleCheck(False, f"{rule.label} : aucun dépôt de garantie ne peut être exigé")
        return RuleCheck(
            False,
            f"{rule.label} : dépôt de garantie de {format_currency(deposit)} supérieur au plafond de "
            f"{rule.max_deposit_months} mois de loyer hors charges ({format_currency(cap)})",
        )
    return RuleCheck(True)


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TerminationReason:
    code: str
    title: str
    description: str
    reduced_notice: bool = False


LANDLORD_TERMINATION_REASONS: Dict[str, TerminationReason] = {
    "reprise": TerminationReason(
        "reprise",
        "Congé pour reprise",
        "Le bailleur souhaite reprendre le logement pour l'habiter lui-même ou y loger un proche "
        "(ascendant, descendant, conjoint, partenaire ou concubin).",
    ),
    "vente": TerminationReason(
        "vente",
        "Congé pour vente",
        "Le bailleur souhaite vendre le logement libre de toute occupation.",
    ),
    "motif_legitime": TerminationReason(
        "motif_legitime",
        "Congé pour motif légitime et sérieux",
        "Le bailleur invoque un motif légitime et sérieux justifiant la fin du bail.",
    ),
}

TENANT_TERMINATION_REASONS: Dict[str, TerminationReason] = {
    "convenance": TerminationReason(
        "convenance",
        "Congé pour convenance personnelle",
        "Le locataire souhaite quitter le logement pour des raisons personnelles.",
    ),
    "mutation": TerminationReason(
        "mutation",
        "Mutation professionnelle",
        "Le locataire quitte le logement suite à une mutation professionnelle.",
        reduced_notice=True,
    ),
    "perte_emploi": TerminationReason(
        "perte_emploi",
        "Perte d'emploi",
        "Le locataire quitte le logement suite à une perte d'emploi.",
        reduced_notice=True,
    ),
    "nouvel_emploi": TerminationReason(
        "nouvel_emploi",
        "Nouvel emploi suite à perte d'emploi",
        "Le locataire a trouvé un nouvel emploi suite à une période de chômage.",
        reduced_notice=True,
    ),
    "sante": TerminationReason(
        "sante",
        "Raison de santé",
        "Le locataire quitte le logement pour des raisons de santé justifiées.",
        reduced_notice=True,
    ),
    "rsa": TerminationReason(
        "rsa",
        "Bénéficiaire RSA ou AAH",
        "Le locataire est bénéficiaire du Revenu de Solidarité Active ou de l'Allocation aux Adultes Handicapés.",
        reduced_notice=True,
    ),
    "attribution_logement_social": TerminationReason(
        "attribution_logement_social",
        "Attribution d'un logement social",
        "Le locataire a obtenu l'attribution d'un logement social.",
        reduced_notice=True,
    ),
    "zone_tendue": TerminationReason(
        "zone_tendue",
        "Logement en zone tendue",
        "Le logement est situé dans une zone tendue (décret du 10 mai 2013).",
        reduced_notice=True,
    ),
}


def landlord_reason(code: Any) -> TerminationReason:
    """Unknown codes fall back to the generic legitimate-reason congé."""
    key = str(code or "").strip().lower()
    return LANDLORD_TERMINATION_REASONS.get(key, LANDLORD_TERMINATION_REASONS["motif_legitime"])


def tenant_reason(code: Any) -> TerminationReason:
    key = str(code or "").strip().lower()
    return TENANT_TERMINATION_REASONS.get(key, TENANT_TERMINATION_REASONS["convenance"])


def landlord_notice_months(furnished: bool) -> int:
    return 3 if furnished else 6


def tenant_notice_months(furnished: bool, reason: Any = None, reduced: bool = False) -> int:
    if furnished or reduced or tenant_reason(reason).reduced_notice:
        return 1
    return 3
