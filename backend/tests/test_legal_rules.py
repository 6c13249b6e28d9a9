from datetime import date

import pytest

from engine.legal_rules import (
    duration_months,
    landlord_notice_months,
    landlord_reason,
    lease_rule,
    tenant_notice_months,
    tenant_reason,
    validate_deposit_amount,
    validate_lease_duration,
)
from models import LeaseType


def test_lease_rule_accepts_record_spellings():
    assert lease_rule("vide").min_duration_months == 36
    assert lease_rule("meublé").max_deposit_months == 2
    assert lease_rule("Bail mobilité").max_duration_months == 10
    assert lease_rule(LeaseType.STUDENT).min_duration_months == 9


def test_lease_rule_unknown_type():
    with pytest.raises(ValueError):
        lease_rule("commercial")


def test_duration_months_counts_inclusive_end():
    assert duration_months(date(2024, 9, 1), date(2027, 8, 31)) == 36
    assert duration_months(date(2024, 9, 15), date(2025, 9, 14)) == 12
    assert duration_months(date(2024, 9, 15), date(2025, 9, 10)) == 11


def test_validate_duration():
    assert validate_lease_duration("unfurnished", "2024-09-01", "2027-08-31").valid
    short = validate_lease_duration("unfurnished", "2024-09-01", "2025-08-31")
    assert not short.valid
    assert "minimum légal de 36 mois" in short.message


def test_validate_duration_mobility_bounds():
    assert validate_lease_duration("mobility", "2025-01-01", "2025-06-30").valid
    assert not validate_lease_duration("mobility", "2025-01-01", "2026-01-31").valid
    missing_end = validate_lease_duration("mobility", "2025-01-01", None)
    assert not missing_end.valid


def test_validate_duration_open_ended_unfurnished():
    assert validate_lease_duration("unfurnished", "2025-01-01", None).valid


def test_validate_deposit_caps():
    assert validate_deposit_amount("unfurnished", 800, 800).valid
    assert not validate_deposit_amount("unfurnished", 800, 1600).valid
    assert validate_deposit_amount("furnished", 800, 1600).valid
    mobility = validate_deposit_amount("mobility", 800, 100)
    assert not mobility.valid
    assert "aucun dépôt de garantie" in mobility.message


def test_validate_deposit_ignores_missing_values():
    assert validate_deposit_amount("unfurnished", 800, None).valid
    assert validate_deposit_amount("unfurnished", None, 5000).valid


def test_notice_periods():
    assert landlord_notice_months(furnished=False) == 6
    assert landlord_notice_months(furnished=True) == 3
    assert tenant_notice_months(furnished=False) == 3
    assert tenant_notice_months(furnished=True) == 1
    assert tenant_notice_months(furnished=False, reason="mutation") == 1
    assert tenant_notice_months(furnished=False, reason="convenance", reduced=True) == 1


def test_unknown_reasons_fall_back():
    assert landlord_reason("unknown").code == "motif_legitime"
    assert landlord_reason("VENTE").code == "vente"
    assert tenant_reason(None).code == "convenance"
    assert tenant_reason("zone_tendue").reduced_notice
