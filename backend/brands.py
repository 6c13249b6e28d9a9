"""In-repo letterhead registry; DOCUMENT_BRAND_ID selects one at runtime."""
from __future__ import annotations

import os

from models_branding import BrandConfig

DEFAULT_BRAND_ID = "default"

BRANDS: dict[str, BrandConfig] = {
    "default": BrandConfig(
        brand_id="default",
        company_name="Gestion Locative",
        primary_color="#1e3a5f",
        secondary_color="#4a5568",
        accent_color="#b7791f",
        font_family="Helvetica, Arial, sans-serif",
        footer_text="Document généré automatiquement - Gestion Locative SaaS",
        show_page_numbers=True,
    ),
    "classic": BrandConfig(
        brand_id="classic",
        company_name="Gestion Locative",
        primary_color="#2d3748",
        secondary_color="#718096",
        accent_color="#2c5282",
        font_family="Georgia, 'Times New Roman', serif",
        footer_text="Document généré automatiquement - Gestion Locative SaaS",
        show_page_numbers=True,
    ),
}


def get_brand(brand_id: str) -> BrandConfig | None:
    return BRANDS.get(brand_id)


def list_brands() -> list[BrandConfig]:
    return list(BRANDS.values())


def active_brand() -> BrandConfig:
    """Brand from DOCUMENT_BRAND_ID, falling back to the default letterhead."""
    brand_id = (os.getenv("DOCUMENT_BRAND_ID") or DEFAULT_BRAND_ID).strip()
    return BRANDS.get(brand_id) or BRANDS[DEFAULT_BRAND_ID]
