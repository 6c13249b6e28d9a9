"""Letterhead configuration for generated rental documents."""
from __future__ import annotations

from pydantic import BaseModel


class BrandConfig(BaseModel):
    """Visual identity shared by every document of a management company."""
    brand_id: str
    company_name: str
    primary_color: str = "#1e3a5f"
    secondary_color: str = "#4a5568"
    accent_color: str = "#b7791f"
    font_family: str = "Helvetica, Arial, sans-serif"
    footer_text: str = "Document généré automatiquement - Gestion Locative SaaS"
    show_page_numbers: bool = True
