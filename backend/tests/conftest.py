"""Add backend to path so tests can use the same top-level imports as main.py (models, engine.compute, ...)."""
import os
import sys
from datetime import date

import pytest

_backend_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)

TODAY = date(2025, 3, 10)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def records() -> dict:
    """Business records for one unfurnished lease, as the persistence layer hands them over."""
    return {
        "lease": {
            "rent_amount": 800,
            "charges_amount": 100,
            "deposit_amount": 800,
            "start_date": "2024-09-01",
            "end_date": "2027-08-31",
            "lease_type": "unfurnished",
            "payment_day": 5,
        },
        "entity": {
            "name": "SCI Les Tilleuls",
            "address": "12 rue des Lilas",
            "city": "Lyon",
            "postal_code": "69003",
            "entity_type": "sci",
            "iban": "FR7630006000011234567890189",
            "bic": "AGRIFRPP",
        },
        "tenant": {"first_name": "Claire", "last_name": "Dupont", "email": "claire.dupont@example.com"},
        "tenant_group": {"name": "Claire Dupont"},
        "lot": {
            "name": "Appartement T2",
            "reference": "A12",
            "surface_habitable": 48.5,
            "nb_rooms": 2,
            "lot_type": "apartment",
            "floor": 3,
        },
        "property": {"address": "5 avenue Jean Jaurès", "city": "Lyon", "postal_code": "69007"},
        "extras": {},
    }


@pytest.fixture
def clauses_file(tmp_path, monkeypatch):
    """Point the clause store at an empty file under tmp_path."""
    path = tmp_path / "clauses.json"
    monkeypatch.setenv("CLAUSES_CONFIG_PATH", str(path))
    return path
