"""
Export a research document to PDF (PyMuPDF) or DOCX (python-docx).

Section HTML is first sanitized down to a small tag allow-list, then walked
into a flat stream of blocks (headings, paragraphs, list items).  Both
renderers consume the same block stream.

Public API
----------
sanitize_html(html)                    -> str
html_to_blocks(html)                   -> List[Block]
ExportDocument.from_project(project, sections)
render_pdf(document)                   -> bytes
render_docx(document)                  -> bytes
export_filename(title, fmt)            -> str
"""
from __future__ import annotations

import dataclasses
import io
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from docx import Document as DocxDocument
from docx.shared import Pt

from researchdoc.utils.helpers import safe_filename

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset({"h2", "h3", "p", "strong", "b", "em", "i", "ul", "ol", "li", "br"})
DROPPED_TAGS = ("script", "style", "iframe", "object", "embed", "noscript", "template")
_BOLD_TAGS = {"strong", "b"}
_ITALIC_TAGS = {"em", "i"}

EXPORT_FORMATS = {
    "pdf": ("application/pdf", "-Research-Document.pdf"),
    "docx": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "-Research-Document.docx",
    ),
}


# ---------------------------------------------------------------------------
# Sanitizing
# ---------------------------------------------------------------------------

def sanitize_html(html: str) -> str:
    """
    Reduce *html* to the allow-listed tags with no attributes.

    Dangerous containers are removed together with their content; any other
    unknown tag is unwrapped so its children survive.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    for tag in soup.find_all(DROPPED_TAGS):
        if not tag.decomposed:
            tag.decompose()

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        if tag.name in ALLOWED_TAGS:
            tag.attrs = {}
        else:
            tag.unwrap()

    return str(soup)


# ---------------------------------------------------------------------------
# Block stream
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class Run:
    text: str
    bold: bool = False
    italic: bool = False


@dataclasses.dataclass
class Block:
    """One renderable unit: a heading, a paragraph or a list item."""

    kind: str  # "heading" | "paragraph" | "list_item"
    runs: List[Run]
    level: int = 0  # heading level, or list nesting depth
    marker: str = ""  # list item marker ("•", "1.", ...)

    @property
    def text(self) -> str:
        return _tidy("".join(run.text for run in self.runs))


def _tidy(text: str) -> str:
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def _collect_runs(node, bold: bool = False, italic: bool = False) -> List[Run]:
    """Inline runs of *node*, skipping nested lists."""
    runs: List[Run] = []
    for child in node.children:
        if isinstance(child, NavigableString):
            text = re.sub(r"\s+", " ", str(child))
            if text:
                runs.append(Run(text, bold, italic))
        elif isinstance(child, Tag):
            if child.name == "br":
                runs.append(Run("\n", bold, italic))
            elif child.name in ("ul", "ol"):
                continue
            else:
                runs.extend(
                    _collect_runs(
                        child,
                        bold or child.name in _BOLD_TAGS,
                        italic or child.name in _ITALIC_TAGS,
                    )
                )
    return runs


class _BlockWalker:
    def __init__(self) -> None:
        self.blocks: List[Block] = []
        self._pending: List[Run] = []

    def flush_text(self) -> None:
        """Turn accumulated bare inline content into paragraphs."""
        if not self._pending:
            return
        joined = "".join(run.text for run in self._pending)
        if "\n\n" in joined and all(not (r.bold or r.italic) for r in self._pending):
            for chunk in re.split(r"\n\s*\n", joined):
                if chunk.strip():
                    self.blocks.append(Block("paragraph", [Run(chunk)]))
        elif joined.strip():
            self.blocks.append(Block("paragraph", list(self._pending)))
        self._pending = []

    def visit(self, node, depth: int = 0) -> None:
        for child in node.children:
            if isinstance(child, NavigableString):
                self._pending.append(Run(str(child)))
                continue
            if not isinstance(child, Tag):
                continue

            name = child.name
            if name in _BOLD_TAGS or name in _ITALIC_TAGS:
                self._pending.extend(
                    _collect_runs(child, name in _BOLD_TAGS, name in _ITALIC_TAGS)
                )
            elif name == "br":
                self._pending.append(Run("\n\n"))
            elif name in ("h2", "h3"):
                self.flush_text()
                self._add(Block("heading", _collect_runs(child, bold=True), level=int(name[1])))
            elif name == "p":
                self.flush_text()
                self._add(Block("paragraph", _collect_runs(child)))
            elif name in ("ul", "ol"):
                self.flush_text()
                self._visit_list(child, ordered=name == "ol", depth=depth)
            elif name == "li":
                self.flush_text()
                self._add(Block("list_item", _collect_runs(child), level=depth, marker="•"))
                self.visit_nested_lists(child, depth + 1)
            else:
                self.visit(child, depth)
        if depth == 0:
            self.flush_text()

    def _visit_list(self, list_tag: Tag, ordered: bool, depth: int) -> None:
        number = 0
        for item in list_tag.find_all("li", recursive=False):
            number += 1
            marker = f"{number}." if ordered else "•"
            self._add(Block("list_item", _collect_runs(item), level=depth, marker=marker))
            self.visit_nested_lists(item, depth + 1)

    def visit_nested_lists(self, item: Tag, depth: int) -> None:
        for nested in item.find_all(("ul", "ol"), recursive=False):
            self._visit_list(nested, ordered=nested.name == "ol", depth=depth)

    def _add(self, block: Block) -> None:
        if block.text:
            self.blocks.append(block)


def html_to_blocks(html: str) -> List[Block]:
    """Sanitize *html* and flatten it into renderable blocks."""
    soup = BeautifulSoup(sanitize_html(html), "html.parser")
    walker = _BlockWalker()
    walker.visit(soup)
    return walker.blocks


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ExportDocument:
    title: str
    sections: List[Tuple[str, str]]
    industry: Optional[str] = None
    generated_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_project(cls, project, sections: Iterable) -> "ExportDocument":
        """Build from ORM rows; hidden sections are left out."""
        return cls(
            title=project.title,
            industry=project.industry,
            sections=[
                (section.title, section.content or "")
                for section in sorted(sections, key=lambda s: s.order_index)
                if section.is_visible
            ],
        )


def export_filename(title: str, fmt: str) -> str:
    _, suffix = EXPORT_FORMATS[fmt]
    return safe_filename(title, suffix)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

_PAGE_WIDTH, _PAGE_HEIGHT = fitz.paper_size("a4")
_MARGIN = 50
_BODY_WIDTH = _PAGE_WIDTH - 2 * _MARGIN
_LIST_INDENT = 14

_TITLE_SIZE = 22
_SECTION_SIZE = 15
_H3_SIZE = 13
_BODY_SIZE = 11
_META_SIZE = 10
_LINE_FACTOR = 1.45

_REGULAR_FONT = "helv"
_BOLD_FONT = "hebo"
_TEXT_COLOR = (0.12, 0.12, 0.12)
_MUTED_COLOR = (0.45, 0.45, 0.45)
_DIVIDER_COLOR = (0.82, 0.82, 0.82)


def wrap_text(text: str, fontname: str, fontsize: float, max_width: float) -> List[str]:
    """Greedy word wrap using PyMuPDF font metrics."""
    lines: List[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if fitz.get_text_length(candidate, fontname=fontname, fontsize=fontsize) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            # Hard-break words wider than the line
            while fitz.get_text_length(word, fontname=fontname, fontsize=fontsize) > max_width and len(word) > 1:
                cut = len(word) - 1
                while cut > 1 and fitz.get_text_length(word[:cut], fontname=fontname, fontsize=fontsize) > max_width:
                    cut -= 1
                lines.append(word[:cut])
                word = word[cut:]
            current = word
        if current:
            lines.append(current)
    return lines


class _PdfWriter:
    """Cursor-based writer that starts a new page whenever a line would not fit."""

    def __init__(self) -> None:
        self.doc = fitz.open()
        self.page = None
        self.y = 0.0
        self.new_page()

    def new_page(self) -> None:
        self.page = self.doc.new_page(width=_PAGE_WIDTH, height=_PAGE_HEIGHT)
        self.y = _MARGIN

    def ensure_room(self, height: float) -> None:
        if self.y + height > _PAGE_HEIGHT - _MARGIN:
            self.new_page()

    def space(self, amount: float) -> None:
        self.y += amount

    def write(
        self,
        text: str,
        fontsize: float,
        fontname: str = _REGULAR_FONT,
        indent: float = 0,
        marker: str = "",
        color=_TEXT_COLOR,
    ) -> None:
        line_height = fontsize * _LINE_FACTOR
        x = _MARGIN + indent
        lines = wrap_text(text, fontname, fontsize, _BODY_WIDTH - indent)
        for i, line in enumerate(lines):
            self.ensure_room(line_height)
            self.y += line_height
            if marker and i == 0:
                self.page.insert_text(
                    (x - _LIST_INDENT, self.y), marker,
                    fontname=fontname, fontsize=fontsize, color=color,
                )
            self.page.insert_text((x, self.y), line, fontname=fontname, fontsize=fontsize, color=color)

    def divider(self, color=_DIVIDER_COLOR, width: float = 0.5) -> None:
        self.ensure_room(12)
        self.y += 6
        self.page.draw_line(
            fitz.Point(_MARGIN, self.y),
            fitz.Point(_PAGE_WIDTH - _MARGIN, self.y),
            color=color,
            width=width,
        )
        self.y += 6


def _write_blocks(writer: _PdfWriter, blocks: Sequence[Block]) -> None:
    for block in blocks:
        if block.kind == "heading":
            size = _SECTION_SIZE if block.level == 2 else _H3_SIZE
            writer.space(size * 0.4)
            writer.write(block.text, size, fontname=_BOLD_FONT)
            writer.space(2)
        elif block.kind == "list_item":
            indent = _LIST_INDENT * (block.level + 1)
            writer.write(block.text, _BODY_SIZE, indent=indent, marker=block.marker)
        else:
            writer.write(block.text, _BODY_SIZE)
            writer.space(4)


def render_pdf(document: ExportDocument) -> bytes:
    """Render an A4, paginated PDF of *document*."""
    writer = _PdfWriter()

    writer.write(document.title, _TITLE_SIZE, fontname=_BOLD_FONT)
    writer.space(4)
    if document.industry:
        writer.write(f"Industry: {document.industry}", _META_SIZE, color=_MUTED_COLOR)
    writer.write(
        f"Generated: {document.generated_at.strftime('%B %d, %Y')}",
        _META_SIZE,
        color=_MUTED_COLOR,
    )
    writer.divider(color=_MUTED_COLOR, width=0.8)

    for index, (title, content) in enumerate(document.sections):
        if index > 0:
            writer.divider()
        writer.space(6)
        writer.write(title, _SECTION_SIZE, fontname=_BOLD_FONT)
        writer.space(4)
        _write_blocks(writer, html_to_blocks(content))

    writer.doc.set_metadata({"title": document.title, "subject": "Research Document"})
    data = writer.doc.tobytes()
    logger.info(
        "Rendered PDF export '%s': %d sections, %d pages, %d bytes",
        document.title, len(document.sections), writer.doc.page_count, len(data),
    )
    writer.doc.close()
    return data


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def _add_runs(paragraph, runs: Sequence[Run]) -> None:
    for run in runs:
        text = re.sub(r"[ \t\r\f\v]+", " ", run.text)
        if not text:
            continue
        docx_run = paragraph.add_run(text)
        docx_run.bold = run.bold or None
        docx_run.italic = run.italic or None


def render_docx(document: ExportDocument) -> bytes:
    """Render *document* as a Word file using the default template styles."""
    doc = DocxDocument()
    doc.core_properties.title = document.title

    doc.add_heading(document.title, level=0)
    meta = []
    if document.industry:
        meta.append(f"Industry: {document.industry}")
    meta.append(f"Generated: {document.generated_at.strftime('%B %d, %Y')}")
    for line in meta:
        paragraph = doc.add_paragraph(line)
        for run in paragraph.runs:
            run.font.size = Pt(9)

    for title, content in document.sections:
        doc.add_heading(title, level=1)
        for block in html_to_blocks(content):
            if block.kind == "heading":
                doc.add_heading(block.text, level=block.level)
            elif block.kind == "list_item":
                style = "List Number" if block.marker[:1].isdigit() else "List Bullet"
                if block.level > 0:
                    style = f"{style} 2"
                _add_runs(doc.add_paragraph(style=style), block.runs)
            else:
                _add_runs(doc.add_paragraph(), block.runs)

    buffer = io.BytesIO()
    doc.save(buffer)
    data = buffer.getvalue()
    logger.info("Rendered DOCX export '%s': %d bytes", document.title, len(data))
    return data


def render(document: ExportDocument, fmt: str) -> bytes:
    if fmt == "pdf":
        return render_pdf(document)
    if fmt == "docx":
        return render_docx(document)
    raise ValueError(f"Unsupported export format: {fmt}")
