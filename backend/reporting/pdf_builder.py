"""
Render document HTML to PDF using Playwright (headless Chromium).

Pages are already sized and padded by the layout CSS, so Chromium prints
with zero margins and honours the CSS page size.
"""
from __future__ import annotations

import logging

from errors import RenderError

logger = logging.getLogger(__name__)

_NO_MARGIN = {"top": "0", "bottom": "0", "left": "0", "right": "0"}
_LAUNCH_ARGS = ["--no-sandbox"]


def html_to_pdf(html_content: str) -> bytes:
    """Render HTML to PDF. Raises RenderError when the runtime is missing or fails."""
    try:
        from playwright.sync_api import sync_playwright
    except ImportError as e:
        raise RenderError(
            "Playwright is required for PDF. Install: pip install playwright && playwright install chromium"
        ) from e

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(args=_LAUNCH_ARGS)
            try:
                page = browser.new_page()
                page.set_content(html_content, wait_until="networkidle")
                page.emulate_media(media="print")
                pdf_bytes = page.pdf(
                    format="A4",
                    print_background=True,
                    prefer_css_page_size=True,
                    margin=_NO_MARGIN,
                )
            finally:
                browser.close()
    except Exception as e:
        msg = str(e)
        if len(msg) > 500:
            msg = msg[:500]
        logger.error("PDF_RENDER_FAILED err=%s", msg)
        raise RenderError(f"Playwright runtime unavailable: {msg}") from e
    return pdf_bytes


def check_pdf_runtime() -> None:
    """Launch Chromium once. Raises RenderError when PDF output is not possible."""
    html_to_pdf("<html><body>ok</body></html>")
