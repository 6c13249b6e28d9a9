"""
HTML building blocks shared by every generated document.

Component functions return layout `Block`s (or lists of them) so the same
letterhead, tables, boxes and signature areas are paginated identically for
fixed-layout letters and for the lease contract.
"""
from __future__ import annotations

import html
from dataclasses import dataclass, replace
from typing import Any, Iterable, Sequence

from models_branding import BrandConfig

from .format_utils import format_date
from .layout import (
    A4_PORTRAIT_MM,
    BASE_FONT_PT,
    OVERFLOW_THRESHOLD_MM,
    PAGE_MARGIN_MM,
    PAGE_TOP_MM,
    Block,
    LayoutCursor,
    PageBreak,
    PagePlan,
    chars_per_line,
    line_height_mm,
    paginate,
    render_page_body,
    text_block,
    wrap_lines,
)

SMALL_FONT_PT = 8.0
HEADING_FONT_PT = 11.0
TITLE_FONT_PT = 15.0
TABLE_ROW_MM = 6.5
BOX_PADDING_MM = 6.0


def _esc(value: Any) -> str:
    return html.escape(str(value if value is not None else ""), quote=True)


@dataclass
class RenderedDocument:
    title: str
    html: str
    page_count: int
    breaks: list[PageBreak]


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def Letterhead(
    sender_lines: Sequence[str],
    document_number: str,
    issue_date: Any,
    reference_label: str = "Réf",
) -> Block:
    """Sender identity on the left, date and document number on the right."""
    left = "<br />".join(_esc(line) for line in sender_lines)
    right = (
        f"<div>Date : {_esc(format_date(issue_date))}</div>"
        f"<div>{_esc(reference_label)} : <strong>{_esc(document_number)}</strong></div>"
    )
    return Block(
        kind="letterhead",
        html=f'<div class="letterhead"><div class="sender">{left}</div><div class="doc-ref">{right}</div></div>',
        lines=max(len(sender_lines), 2),
        space_after_mm=8.0,
    )


def RecipientBlock(name: str, address_lines: Sequence[str], mention: str = "") -> Block:
    parts = []
    if mention:
        parts.append(f'<div class="mention">{_esc(mention)}</div>')
    parts.append(f'<div class="recipient-name">{_esc(name)}</div>')
    parts.extend(f"<div>{_esc(line)}</div>" for line in address_lines)
    return Block(
        kind="recipient",
        html=f'<div class="recipient">{"".join(parts)}</div>',
        lines=1 + len(address_lines) + (1 if mention else 0),
        space_after_mm=8.0,
    )


def DocumentTitle(title: str, subtitle: str = "") -> Block:
    sub = f'<div class="doc-subtitle">{_esc(subtitle)}</div>' if subtitle else ""
    return Block(
        kind="title",
        html=f'<div class="doc-title-wrap"><h1 class="doc-title">{_esc(title)}</h1>{sub}</div>',
        lines=2 if subtitle else 1,
        line_height_mm=line_height_mm(TITLE_FONT_PT),
        space_after_mm=6.0,
    )


def Heading(text: str) -> Block:
    return text_block("heading", text, tag="h3", css_class="section-heading", font_pt=HEADING_FONT_PT, space_after_mm=2.0)


def Paragraph(text: str, html_body: str | None = None, css_class: str = "") -> Block:
    return text_block("paragraph", text, html_body=html_body, css_class=css_class)


def Subject(text: str) -> Block:
    return text_block(
        "paragraph",
        f"Objet : {text}",
        html_body=f'<span class="label">Objet :</span> {_esc(text)}',
        css_class="subject",
        space_after_mm=4.0,
    )


def PlaceDate(city: str, when: Any) -> Block:
    place = f"{city}, le " if city else "Le "
    return text_block("paragraph", f"{place}{format_date(when)}", css_class="place-date", space_after_mm=4.0)


def BulletList(items: Iterable[str]) -> list[Block]:
    budget = chars_per_line() - 3
    blocks: list[Block] = []
    for item in items:
        blocks.append(
            Block(
                kind="bullet",
                html=f'<p class="bullet">{_esc(item)}</p>',
                lines=len(wrap_lines(item, budget)),
                space_after_mm=1.0,
                text=item,
                css_class="bullet",
            )
        )
    return blocks


def NumberedList(items: Iterable[str]) -> list[Block]:
    budget = chars_per_line() - 4
    blocks: list[Block] = []
    for i, item in enumerate(items, start=1):
        text = f"{i}. {item}"
        blocks.append(
            Block(
                kind="list_item",
                html=f'<p class="numbered">{_esc(text)}</p>',
                lines=len(wrap_lines(text, budget)),
                space_after_mm=1.5,
                text=text,
                css_class="numbered",
            )
        )
    return blocks


def HighlightBox(label: str, value: str, note: str = "", tone: str = "primary") -> Block:
    note_html = f'<div class="box-note">{_esc(note)}</div>' if note else ""
    note_lines = len(wrap_lines(note, chars_per_line(160.0, SMALL_FONT_PT))) if note else 0
    return Block(
        kind="box",
        html=(
            f'<div class="highlight-box tone-{_esc(tone)}">'
            f'<div class="box-label">{_esc(label)}</div>'
            f'<div class="box-value">{_esc(value)}</div>{note_html}</div>'
        ),
        lines=3 + note_lines,
        space_after_mm=BOX_PADDING_MM,
    )


def NoticeBox(title: str, text: str, tone: str = "info") -> Block:
    """Framed paragraph (rights reminder, estimate warning). Long text splits like a paragraph."""
    budget = chars_per_line(160.0, BASE_FONT_PT)
    body_lines = len(wrap_lines(text, budget))
    title_html = f'<div class="box-title">{_esc(title)}</div>' if title else ""
    return Block(
        kind="notice",
        html=f'<div class="notice-box tone-{_esc(tone)}">{title_html}<div>{_esc(text)}</div></div>',
        lines=body_lines + (1 if title else 0) + 1,
        space_after_mm=BOX_PADDING_MM - 2.0,
        text=f"{title}\n{text}" if title else text,
        tag="div",
        css_class=f"notice-box tone-{tone}",
        width_mm=160.0,
    )


def LegalMention(text: str) -> Block:
    return text_block("mention", text, css_class="legal", font_pt=SMALL_FONT_PT, space_after_mm=3.0, extra_lines=1)


def SignatureBlock(place_line: str, signers: Sequence[tuple[str, str]]) -> Block:
    """One column per signer: role label, name and an empty area for the handwritten signature."""
    cols = "".join(
        f'<div class="signature-col"><div class="sig-role">{_esc(role)}</div>'
        f'<div class="sig-name">{_esc(name)}</div>'
        f'<div class="sig-hint">Signature précédée de la mention « Lu et approuvé »</div>'
        f'<div class="sig-area"></div></div>'
        for role, name in signers
    )
    place = f'<p class="place-date">{_esc(place_line)}</p>' if place_line else ""
    return Block(
        kind="signature",
        html=f'<div class="signature">{place}<div class="signature-row">{cols}</div></div>',
        lines=9 + (1 if place_line else 0),
        space_after_mm=4.0,
    )


def DataTable(
    group: str,
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    *,
    numeric_columns: Sequence[int] = (),
    footer: Sequence[str] | None = None,
) -> list[Block]:
    """
    One block per row so long tables paginate row by row; the header row is
    repeated on every page the table spans.
    """
    numeric = set(numeric_columns)

    def cell(idx: int, value: str, tag: str = "td") -> str:
        cls = ' class="num"' if idx in numeric else ""
        return f"<{tag}{cls}>{_esc(value)}</{tag}>"

    header_html = (
        "<thead><tr>" + "".join(cell(i, h, "th") for i, h in enumerate(headers)) + "</tr></thead>" if headers else ""
    )
    columns = len(headers) or max((len(r) for r in rows), default=1)
    col_budget = max(8, chars_per_line() // max(1, columns))
    blocks: list[Block] = []
    all_rows = [(r, "") for r in rows]
    if footer is not None:
        all_rows.append((footer, "total"))
    for values, cls in all_rows:
        tallest = max((len(wrap_lines(str(v), col_budget)) for v in values), default=1)
        tr_cls = f' class="{cls}"' if cls else ""
        blocks.append(
            Block(
                kind="table_row",
                html=f"<tr{tr_cls}>" + "".join(cell(i, str(v)) for i, v in enumerate(values)) + "</tr>",
                lines=tallest,
                line_height_mm=TABLE_ROW_MM,
                space_after_mm=0.0,
                group=group,
                group_header=header_html,
                group_header_mm=TABLE_ROW_MM + 1.0 if headers else 0.0,
            )
        )
    if blocks:
        last = blocks[-1]
        blocks[-1] = replace(last, space_after_mm=5.0)
    return blocks


def AmountRows(group: str, rows: Sequence[tuple[str, str]], total: tuple[str, str] | None = None) -> list[Block]:
    return DataTable(group, ("Désignation", "Montant"), [list(r) for r in rows], numeric_columns=(1,), footer=list(total) if total else None)


# ---------------------------------------------------------------------------
# Page assembly
# ---------------------------------------------------------------------------


def _build_page_shell(
    *,
    body_html: str,
    brand: BrandConfig,
    page_no: int,
    total_pages: int,
    document_number: str,
) -> str:
    page_label = f"Page {page_no} / {total_pages}" if brand.show_page_numbers else ""
    return f"""
    <section class="pdf-page" data-page="{page_no}">
      <div class="page-content">{body_html}</div>
      <footer class="page-footer">
        <span>{_esc(brand.footer_text)}</span>
        <span>{_esc(document_number)}</span>
        <span>{_esc(page_label)}</span>
      </footer>
    </section>
    """.strip()


def _document_css(brand: BrandConfig) -> str:
    page_w, page_h = A4_PORTRAIT_MM
    content_h = OVERFLOW_THRESHOLD_MM - PAGE_TOP_MM
    return f"""
    @page {{
      size: A4 portrait;
      margin: 0;
    }}
    * {{ box-sizing: border-box; }}
    html, body {{
      margin: 0;
      padding: 0;
      font-family: {brand.font_family};
      font-size: {BASE_FONT_PT:.1f}pt;
      line-height: {line_height_mm():.2f}mm;
      color: #1a202c;
      background: #fff;
      -webkit-print-color-adjust: exact;
      print-color-adjust: exact;
    }}
    .pdf-page {{
      width: {page_w:.0f}mm;
      height: {page_h:.0f}mm;
      padding: {PAGE_TOP_MM:.0f}mm {PAGE_MARGIN_MM:.0f}mm 0;
      position: relative;
      overflow: hidden;
      break-after: page;
      page-break-after: always;
    }}
    .pdf-page:last-child {{ break-after: auto; page-break-after: auto; }}
    .page-content {{ height: {content_h:.0f}mm; overflow: hidden; }}
    .page-footer {{
      position: absolute;
      left: {PAGE_MARGIN_MM:.0f}mm;
      right: {PAGE_MARGIN_MM:.0f}mm;
      bottom: 10mm;
      display: flex;
      justify-content: space-between;
      border-top: 0.3mm solid {brand.secondary_color};
      padding-top: 2mm;
      font-size: {SMALL_FONT_PT:.0f}pt;
      color: {brand.secondary_color};
    }}
    p {{ margin: 0 0 2mm; text-align: justify; }}
    p.cont {{ text-indent: 0; }}
    .letterhead {{ display: flex; justify-content: space-between; margin-bottom: 8mm; }}
    .letterhead .sender {{ font-weight: 600; color: {brand.primary_color}; }}
    .letterhead .doc-ref {{ text-align: right; font-size: 9pt; }}
    .recipient {{ margin: 0 0 8mm 95mm; }}
    .recipient .mention {{ font-weight: 700; font-size: 9pt; }}
    .recipient-name {{ font-weight: 700; }}
    .doc-title-wrap {{ text-align: center; margin-bottom: 6mm; }}
    .doc-title {{
      font-size: {TITLE_FONT_PT:.0f}pt;
      line-height: {line_height_mm(TITLE_FONT_PT):.1f}mm;
      margin: 0;
      color: {brand.primary_color};
      letter-spacing: 0.04em;
      text-transform: uppercase;
    }}
    .doc-subtitle {{ font-size: 9pt; color: {brand.secondary_color}; }}
    .section-heading {{
      font-size: {HEADING_FONT_PT:.0f}pt;
      line-height: {line_height_mm(HEADING_FONT_PT):.1f}mm;
      margin: 0 0 2mm;
      color: {brand.primary_color};
      border-bottom: 0.3mm solid {brand.primary_color};
    }}
    .subject .label, .bold {{ font-weight: 700; }}
    .place-date {{ text-align: right; }}
    .indent {{ padding-left: 5mm; text-align: left; }}
    .center {{ text-align: center; }}
    .muted {{ color: {brand.secondary_color}; font-size: 9pt; }}
    .bullet {{ padding-left: 5mm; margin-bottom: 1mm; }}
    .bullet::before {{ content: "•"; margin-left: -4mm; margin-right: 2mm; }}
    .numbered {{ padding-left: 5mm; margin-bottom: 1.5mm; }}
    .highlight-box {{
      border: 0.4mm solid {brand.primary_color};
      border-radius: 1.5mm;
      padding: 3mm 5mm;
      margin-bottom: 6mm;
      text-align: center;
    }}
    .highlight-box .box-label {{ font-size: 9pt; text-transform: uppercase; color: {brand.secondary_color}; }}
    .highlight-box .box-value {{ font-size: 14pt; font-weight: 700; color: {brand.primary_color}; }}
    .highlight-box .box-note {{ font-size: {SMALL_FONT_PT:.0f}pt; }}
    .highlight-box.tone-warning {{ border-color: {brand.accent_color}; }}
    .notice-box {{
      border-left: 1mm solid {brand.primary_color};
      background: #f7fafc;
      padding: 2mm 4mm;
      margin: 0 0 4mm 5mm;
      width: 160mm;
    }}
    .notice-box.tone-warning {{ border-left-color: {brand.accent_color}; background: #fffaf0; }}
    .notice-box .box-title {{ font-weight: 700; }}
    table.data {{ width: 100%; border-collapse: collapse; margin-bottom: 5mm; }}
    table.data th, table.data td {{
      border: 0.2mm solid #cbd5e0;
      padding: 0.8mm 2mm;
      line-height: 4.5mm;
      text-align: left;
    }}
    table.data th {{ background: {brand.primary_color}; color: #fff; font-weight: 600; }}
    table.data td.num, table.data th.num {{ text-align: right; white-space: nowrap; }}
    table.data tr.total td {{ font-weight: 700; background: #edf2f7; }}
    .legal {{ font-size: {SMALL_FONT_PT:.0f}pt; line-height: {line_height_mm(SMALL_FONT_PT):.1f}mm; color: #4a5568; }}
    .signature-row {{ display: flex; justify-content: space-between; gap: 10mm; }}
    .signature-col {{ flex: 1; }}
    .sig-role {{ font-weight: 700; }}
    .sig-hint {{ font-size: {SMALL_FONT_PT:.0f}pt; font-style: italic; color: #4a5568; }}
    .sig-area {{ height: 25mm; border-bottom: 0.3mm solid #a0aec0; }}
    """


def build_document_html(title: str, plan: PagePlan, brand: BrandConfig, document_number: str) -> str:
    total_pages = plan.page_count
    page_html = [
        _build_page_shell(
            body_html=render_page_body(blocks),
            brand=brand,
            page_no=i,
            total_pages=total_pages,
            document_number=document_number,
        )
        for i, blocks in enumerate(plan.pages, start=1)
    ]
    return f"""
<!doctype html>
<html lang="fr">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <meta name="author" content="{_esc(brand.company_name)}" />
  <title>{_esc(title)}</title>
  <style>{_document_css(brand)}</style>
</head>
<body>
  {''.join(page_html)}
</body>
</html>
    """.strip()


def render_sections(
    title: str,
    sections: Iterable[list[Block] | str],
    brand: BrandConfig,
    document_number: str,
) -> RenderedDocument:
    """Paginate `sections` and wrap every planned page in the letterhead shell."""
    plan = paginate(sections, LayoutCursor())
    return RenderedDocument(
        title=title,
        html=build_document_html(title, plan, brand, document_number),
        page_count=plan.page_count,
        breaks=plan.breaks,
    )
