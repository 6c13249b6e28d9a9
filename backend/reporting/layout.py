"""
Deterministic pagination for A4 portrait documents.

Every document (fixed-layout letters and the lease contract alike) is a list
of sections, each a list of `Block`s whose height is estimated up front from
the number of wrapped lines at a fixed text width. A `LayoutCursor` walks the
blocks top to bottom, forcing a page break whenever the next block (or a
heading plus the block that follows it) would cross the overflow threshold.
The HTML is then cut along those breaks, so the printed pages match the plan
instead of relying on the browser to break wherever it likes.
"""
from __future__ import annotations

import html
import logging
import math
import textwrap
from dataclasses import dataclass, field, replace
from typing import Iterable

logger = logging.getLogger(__name__)

A4_PORTRAIT_MM = (210.0, 297.0)
PAGE_MARGIN_MM = 20.0
PAGE_TOP_MM = 20.0
OVERFLOW_THRESHOLD_MM = 270.0
TEXT_WIDTH_MM = A4_PORTRAIT_MM[0] - 2 * PAGE_MARGIN_MM

BASE_FONT_PT = 10.0
PT_TO_MM = 25.4 / 72.0
# Average glyph advance of a proportional sans font, in em.
AVG_CHAR_EM = 0.54
# Line height as a multiple of the font size (10pt -> 5mm).
LINE_HEIGHT_RATIO = 0.5


def line_height_mm(font_pt: float = BASE_FONT_PT) -> float:
    return round(font_pt * LINE_HEIGHT_RATIO, 2)


def chars_per_line(width_mm: float = TEXT_WIDTH_MM, font_pt: float = BASE_FONT_PT) -> int:
    """Character budget of one printed line (170mm at 10pt is 89 characters)."""
    return max(10, int(width_mm / (font_pt * PT_TO_MM * AVG_CHAR_EM)))


def wrap_lines(text: str, budget: int) -> list[str]:
    """Wrap text to `budget` characters, keeping explicit line breaks and blank lines."""
    out: list[str] = []
    for raw in str(text or "").split("\n"):
        cleaned = " ".join(raw.split())
        if not cleaned:
            out.append("")
            continue
        out.extend(textwrap.wrap(cleaned, width=max(1, budget), break_long_words=True) or [""])
    while out and not out[-1]:
        out.pop()
    return out or [""]


def _wrap_line_count(value: str, budget: int) -> int:
    return len(wrap_lines(value, budget))


@dataclass(frozen=True)
class Block:
    """
    One unbreakable unit of output.

    `text` is kept for blocks that may be split across pages: a block taller
    than a page is cut into continuation blocks along its wrapped lines.
    Consecutive blocks sharing a `group` (table rows) are rendered inside one
    table per page, with `group_header` repeated on every page.
    """
    kind: str
    html: str
    lines: int = 1
    line_height_mm: float = BASE_FONT_PT * LINE_HEIGHT_RATIO
    space_after_mm: float = 2.0
    text: str | None = None
    tag: str = "p"
    css_class: str = ""
    width_mm: float = TEXT_WIDTH_MM
    font_pt: float = BASE_FONT_PT
    group: str | None = None
    group_header: str = ""
    group_header_mm: float = 0.0
    continuation: bool = False

    @property
    def height_mm(self) -> float:
        return self.lines * self.line_height_mm + self.space_after_mm


def text_block(
    kind: str,
    text: str,
    *,
    html_body: str | None = None,
    tag: str = "p",
    css_class: str = "",
    font_pt: float = BASE_FONT_PT,
    width_mm: float = TEXT_WIDTH_MM,
    space_after_mm: float = 2.0,
    extra_lines: int = 0,
) -> Block:
    """
    Block for a run of text. `html_body` lets callers keep inline markup
    (bold amounts); it is only used while the block is not split.
    """
    budget = chars_per_line(width_mm, font_pt)
    lines = _wrap_line_count(text, budget) + max(0, extra_lines)
    body = html_body if html_body is not None else _esc_lines(text)
    cls = f' class="{css_class}"' if css_class else ""
    return Block(
        kind=kind,
        html=f"<{tag}{cls}>{body}</{tag}>",
        lines=lines,
        line_height_mm=line_height_mm(font_pt),
        space_after_mm=space_after_mm,
        text=text,
        tag=tag,
        css_class=css_class,
        width_mm=width_mm,
        font_pt=font_pt,
    )


def _esc_lines(text: str) -> str:
    return "<br />".join(html.escape(part) for part in str(text or "").split("\n"))


def split_block(block: Block, max_height_mm: float) -> list[Block]:
    """
    Cut a block into pieces no taller than `max_height_mm`. Blocks that fit,
    and blocks without source text, are returned unchanged.
    """
    if block.height_mm <= max_height_mm or block.text is None:
        return [block]
    budget = chars_per_line(block.width_mm, block.font_pt)
    lines = wrap_lines(block.text, budget)
    per_piece = max(1, math.floor((max_height_mm - block.space_after_mm) / block.line_height_mm))
    pieces: list[Block] = []
    for idx in range(0, len(lines), per_piece):
        chunk = lines[idx : idx + per_piece]
        classes = " ".join(c for c in (block.css_class, "cont" if idx else "") if c)
        cls = f' class="{classes}"' if classes else ""
        chunk_text = " ".join(line for line in chunk if line)
        pieces.append(
            replace(
                block,
                html=f"<{block.tag}{cls}>{html.escape(chunk_text)}</{block.tag}>",
                lines=len(chunk),
                text=chunk_text,
                continuation=idx > 0,
            )
        )
    return pieces


@dataclass(frozen=True)
class PageBreak:
    page_no: int
    reason: str
    at_mm: float


@dataclass
class LayoutCursor:
    """
    Vertical cursor over a sequence of A4 pages.

    y_mm is the position of the next block on the current page. Content may
    run from `top_mm` down to `threshold_mm`.
    """
    top_mm: float = PAGE_TOP_MM
    threshold_mm: float = OVERFLOW_THRESHOLD_MM
    y_mm: float = PAGE_TOP_MM
    pages: list[list[Block]] = field(default_factory=lambda: [[]])
    breaks: list[PageBreak] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.y_mm = self.top_mm

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def usable_height_mm(self) -> float:
        return self.threshold_mm - self.top_mm

    @property
    def remaining_mm(self) -> float:
        return self.threshold_mm - self.y_mm

    def force_break(self, reason: str = "forced") -> None:
        """Start a fresh page. A page that is still empty is reused, never left blank."""
        if not self.pages[-1]:
            return
        at = self.y_mm
        self.pages.append([])
        self.y_mm = self.top_mm
        self.breaks.append(PageBreak(page_no=len(self.pages), reason=reason, at_mm=at))

    def check_overflow(self, height_mm: float) -> bool:
        """Break before content of `height_mm` that would cross the threshold. True when a break happened."""
        if self.y_mm + height_mm > self.threshold_mm and self.pages[-1]:
            self.force_break("overflow")
            return True
        return False

    def place(self, block: Block) -> None:
        pieces = split_block(block, self.usable_height_mm)
        if len(pieces) > 1:
            logger.debug("LAYOUT_SPLIT kind=%s pieces=%d", block.kind, len(pieces))
        for piece in pieces:
            self.check_overflow(piece.height_mm + self._header_cost(piece))
            if piece.height_mm > self.usable_height_mm:
                logger.warning("LAYOUT_OVERSIZED kind=%s height_mm=%.1f", piece.kind, piece.height_mm)
            self.y_mm += piece.height_mm + self._header_cost(piece)
            self.pages[-1].append(piece)

    def _header_cost(self, block: Block) -> float:
        """Table rows opening a table on the current page also pay for the repeated header."""
        if block.group is None:
            return 0.0
        page = self.pages[-1]
        if page and page[-1].group == block.group:
            return 0.0
        return block.group_header_mm

    def place_section(self, blocks: Iterable[Block]) -> None:
        """
        Place a section. A heading is never left alone at the bottom of a
        page: the heading and the first piece of the next block move together.
        """
        items = [b for b in blocks if b is not None]
        if not items:
            return
        lead = items[0].height_mm
        if items[0].kind == "heading" and len(items) > 1:
            first_piece = split_block(items[1], self.usable_height_mm)[0]
            lead += first_piece.height_mm
        self.check_overflow(min(lead, self.usable_height_mm))
        for block in items:
            self.place(block)


@dataclass
class PagePlan:
    pages: list[list[Block]]
    breaks: list[PageBreak]

    @property
    def page_count(self) -> int:
        return len(self.pages)


def paginate(sections: Iterable[list[Block] | str], cursor: LayoutCursor | None = None) -> PagePlan:
    """
    Lay out sections in order. A plain string in the sequence is a forced
    break whose reason is that string (e.g. "signature").
    """
    active = cursor or LayoutCursor()
    for section in sections:
        if isinstance(section, str):
            active.force_break(section)
            continue
        active.place_section(section)
    return PagePlan(pages=active.pages, breaks=list(active.breaks))


def render_page_body(blocks: list[Block]) -> str:
    """Concatenate block HTML, merging consecutive rows of one table group."""
    out: list[str] = []
    i = 0
    while i < len(blocks):
        block = blocks[i]
        if block.group is None:
            out.append(block.html)
            i += 1
            continue
        rows: list[str] = []
        group = block.group
        header = block.group_header
        while i < len(blocks) and blocks[i].group == group:
            rows.append(blocks[i].html)
            i += 1
        out.append(f'<table class="data">{header}<tbody>{"".join(rows)}</tbody></table>')
    return "".join(out)
