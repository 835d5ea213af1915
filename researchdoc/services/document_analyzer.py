"""
Import analysis for uploaded PDF / DOCX files.

The uploaded bytes are validated (extension, size, magic bytes), text is
scraped heuristically with explicit bounds, and the model is asked once for
a structured ``DocumentAnalysis``.  The text scraping is intentionally lossy:
it is good enough to seed a prompt, not a document parser.

Public API
----------
DocumentAnalyzer.analyze(data, filename)       -> DocumentAnalysis
validate_upload(data, filename)                -> str  (".pdf" | ".docx")
extract_pdf_text(data, filename)               -> str
extract_docx_text(data, filename)              -> str
"""
from __future__ import annotations

import dataclasses
import io
import logging
import os
import re
import time
import zipfile
from typing import Any, Dict, Iterator, List, Mapping, Optional

from researchdoc.config import settings
from researchdoc.exceptions import FileTooLarge, InvalidFileFormat, MalformedModelOutput
from researchdoc.services.llm_client import LLMGatewayClient
from researchdoc.services.templates import DEFAULT_TEMPLATES, GENERAL_INDUSTRY, SectionTemplates
from researchdoc.utils.helpers import normalize_whitespace, parse_json_object

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
ZIP_MAGIC = b"PK\x03\x04"
DOCX_MARKER = b"word/document.xml"

# A failed attempt stops at the next paren, so unclosed "(" runs stay linear
_LITERAL_RE = re.compile(r"\(([^()\n]{3,500})\)")
_STREAM_OPEN = "stream"
_STREAM_CLOSE = "endstream"
_TAG_RE = re.compile(r"<[^>]+>")
_TOKEN_RE = re.compile(r"^[a-zA-Z0-9.,!?;:'\"()-]+$")
_LETTER_RE = re.compile(r"[a-zA-Z]")

_DOCX_MIN_CHARS = 50
_TRUNCATION_SUFFIX = "... [truncated]"


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ExistingSection:
    title: str
    summary: str = ""


@dataclasses.dataclass
class SuggestedSection:
    title: str
    reason: str = ""


@dataclasses.dataclass
class DocumentAnalysis:
    """Structured view of an uploaded document, produced by one model call."""

    summary: str = ""
    detected_industry: str = GENERAL_INDUSTRY
    extracted_problem_statement: str = ""
    existing_sections: List[ExistingSection] = dataclasses.field(default_factory=list)
    suggested_additional_sections: List[SuggestedSection] = dataclasses.field(default_factory=list)
    extracted_content: Dict[str, str] = dataclasses.field(default_factory=dict)

    @classmethod
    def default(cls) -> "DocumentAnalysis":
        return cls(summary="Document was uploaded but could not be fully analyzed.")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DocumentAnalysis":
        """Build from the snake_case shape used by the HTTP API."""
        return cls(
            summary=data.get("summary") or "",
            detected_industry=data.get("detected_industry") or GENERAL_INDUSTRY,
            extracted_problem_statement=data.get("extracted_problem_statement") or "",
            existing_sections=[
                ExistingSection(title=item["title"], summary=item.get("summary") or "")
                for item in data.get("existing_sections") or []
            ],
            suggested_additional_sections=[
                SuggestedSection(title=item["title"], reason=item.get("reason") or "")
                for item in data.get("suggested_additional_sections") or []
            ],
            extracted_content=dict(data.get("extracted_content") or {}),
        )

    @classmethod
    def from_model_reply(cls, data: Mapping[str, Any]) -> "DocumentAnalysis":
        """Build from the camelCase JSON shape the model is asked to return."""
        return cls(
            summary=_as_str(data.get("summary")),
            detected_industry=_as_str(data.get("detectedIndustry")) or GENERAL_INDUSTRY,
            extracted_problem_statement=_as_str(data.get("extractedProblemStatement")),
            existing_sections=[
                ExistingSection(title=_as_str(item.get("title")), summary=_as_str(item.get("summary")))
                for item in _as_list(data.get("existingSections"))
                if _as_str(item.get("title"))
            ],
            suggested_additional_sections=[
                SuggestedSection(title=_as_str(item.get("title")), reason=_as_str(item.get("reason")))
                for item in _as_list(data.get("suggestedAdditionalSections"))
                if _as_str(item.get("title"))
            ],
            extracted_content={
                str(title): content
                for title, content in _as_dict(data.get("extractedContent")).items()
                if isinstance(content, str)
            },
        )


def _as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert UX research analyst. Analyze documents and identify their "
    "structure, content, and what additional research sections would make the "
    "document complete. Always return valid JSON."
)

_ANALYSIS_PROMPT = """\
You are a UX research document analyst. A user has uploaded an existing document \
to create a new research project. Analyze the extracted text content and:
1. Summarize what the document is about (2-3 sentences)
2. Identify the industry/domain (one of: {industries})
3. Extract the core problem statement from the document
4. List what sections/topics are ALREADY covered in the document
5. Predict what ADDITIONAL sections would be needed for a complete UX research document

DOCUMENT FILENAME: {filename}

EXTRACTED TEXT:
{text}

Return valid JSON in this exact format:
{{
  "summary": "Brief summary of the document",
  "detectedIndustry": "{industry_choices}",
  "extractedProblemStatement": "The core problem from the document",
  "existingSections": [
    {{"title": "Section name", "summary": "Brief description of what's covered"}}
  ],
  "suggestedAdditionalSections": [
    {{"title": "Section name", "reason": "Why this section is needed"}}
  ],
  "extractedContent": {{
    "Section Title": "Content extracted or inferred for this section in HTML format"
  }}
}}\
"""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_upload(data: bytes, filename: str) -> str:
    """
    Check extension, size and magic bytes before any extraction runs.

    Returns:
        The normalized extension (".pdf" or ".docx")

    Raises:
        InvalidFileFormat: unsupported extension or content/extension mismatch
        FileTooLarge: more than MAX_UPLOAD_SIZE bytes
    """
    ext = file_extension(filename)
    if ext not in settings.SUPPORTED_UPLOAD_TYPES:
        raise InvalidFileFormat(
            f"Unsupported file type '{ext or filename}'. Please upload PDF or DOCX files."
        )
    if len(data) > settings.MAX_UPLOAD_SIZE:
        raise FileTooLarge(
            f"File too large ({len(data)} bytes). Maximum is {settings.MAX_UPLOAD_SIZE} bytes."
        )
    if ext == ".pdf" and not data.startswith(PDF_MAGIC):
        raise InvalidFileFormat("File does not look like a PDF document.")
    if ext == ".docx":
        if not data.startswith(ZIP_MAGIC):
            raise InvalidFileFormat("File does not look like a DOCX document.")
        if DOCX_MARKER not in data:
            raise InvalidFileFormat("DOCX archive has no word/document.xml part.")
    return ext


# ---------------------------------------------------------------------------
# Heuristic extraction
# ---------------------------------------------------------------------------

class _Budget:
    """Wall-clock and size bounds shared by one extraction run."""

    def __init__(self) -> None:
        self.deadline = time.monotonic() + settings.EXTRACTION_TIME_BUDGET
        self.matches_left = settings.EXTRACTION_MAX_MATCHES
        self.max_chars = settings.EXTRACTION_MAX_CHARS

    def exhausted(self) -> bool:
        return self.matches_left <= 0 or time.monotonic() > self.deadline


def _readable_literals(text: str, budget: _Budget) -> str:
    """Join the ``(...)`` literal runs in *text* that look like words."""
    parts: List[str] = []
    length = 0
    for match in _LITERAL_RE.finditer(text):
        budget.matches_left -= 1
        run = match.group(1)
        if len(run) > 2 and _LETTER_RE.search(run):
            parts.append(run)
            length += len(run) + 1
        if length >= budget.max_chars or budget.exhausted():
            break
    return " ".join(parts)[: budget.max_chars]


def _stream_bodies(raw: str, budget: _Budget) -> Iterator[str]:
    """
    Yield ``stream ... endstream`` bodies in order.

    Each scan step is a plain ``str.find``; the budget is checked on every
    step and the walk ends as soon as no ``endstream`` remains.
    """
    pos = 0
    for _ in range(settings.EXTRACTION_MAX_STREAMS):
        if budget.exhausted():
            return
        start = raw.find(_STREAM_OPEN, pos)
        if start == -1:
            return
        body_start = start + len(_STREAM_OPEN)
        if raw.startswith("\r\n", body_start):
            body_start += 2
        elif raw.startswith("\n", body_start):
            body_start += 1
        else:
            # "endstream" or a keyword that merely contains "stream"
            pos = body_start
            continue
        end = raw.find(_STREAM_CLOSE, body_start)
        if end == -1:
            return
        yield raw[body_start:end]
        pos = end + len(_STREAM_CLOSE)


def extract_pdf_text(data: bytes, filename: str) -> str:
    """
    Scrape readable text from raw PDF bytes.

    Literal runs from the whole file are collected first; any single content
    stream whose literals are longer replaces that result.
    """
    raw = data.decode("latin-1")
    budget = _Budget()

    text = _readable_literals(raw, budget)

    streams_seen = 0
    for body in _stream_bodies(raw, budget):
        streams_seen += 1
        stream_text = _readable_literals(body, budget)
        if len(stream_text) > len(text):
            text = stream_text
    if budget.exhausted():
        logger.info("PDF extraction bound reached for %s after %d streams", filename, streams_seen)

    if not text.strip():
        return (
            f"[PDF content of {filename} could not be fully extracted. "
            "The AI will analyze based on the filename and any available metadata.]"
        )
    return text


def _docx_xml(data: bytes) -> str:
    """Return the document.xml part, bounded; fall back to the raw buffer."""
    limit = settings.EXTRACTION_MAX_CHARS * 8
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            with archive.open("word/document.xml") as part:
                return part.read(limit).decode("utf-8", errors="ignore")
    except (zipfile.BadZipFile, KeyError, OSError, RuntimeError) as e:
        logger.warning("Could not open DOCX archive, using raw bytes: %s", e)
        return data[:limit].decode("utf-8", errors="ignore")


def extract_docx_text(data: bytes, filename: str) -> str:
    """Strip XML tags from the main document part and keep word-like tokens."""
    xml = _docx_xml(data)
    plain = normalize_whitespace(_TAG_RE.sub(" ", xml))
    words = [word for word in plain.split(" ") if _TOKEN_RE.match(word)]
    text = " ".join(words)[: settings.EXTRACTION_MAX_CHARS]

    if len(text) < _DOCX_MIN_CHARS:
        return (
            f"[Document: {filename}. Content extraction was limited. "
            "The AI will infer structure from available text.]"
        )
    return text


def truncate_for_analysis(text: str) -> str:
    limit = settings.ANALYSIS_TEXT_LIMIT
    if len(text) <= limit:
        return text
    return text[:limit] + _TRUNCATION_SUFFIX


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class DocumentAnalyzer:
    """Validates an upload, extracts its text and asks the model to analyze it."""

    def __init__(
        self,
        llm: LLMGatewayClient,
        templates: SectionTemplates = DEFAULT_TEMPLATES,
    ) -> None:
        self.llm = llm
        self.templates = templates

    def extract_text(self, data: bytes, filename: str) -> str:
        ext = validate_upload(data, filename)
        if ext == ".pdf":
            text = extract_pdf_text(data, filename)
        else:
            text = extract_docx_text(data, filename)
        text = truncate_for_analysis(text)
        logger.info("Extracted %d chars from %s", len(text), filename)
        return text

    async def analyze(self, data: bytes, filename: str) -> DocumentAnalysis:
        """
        Analyze one uploaded file.

        Validation errors and upstream gateway errors propagate; an
        unparseable model reply yields ``DocumentAnalysis.default()``.
        """
        text = self.extract_text(data, filename)

        industries = self.templates.industries
        prompt = _ANALYSIS_PROMPT.format(
            industries=", ".join(industries),
            industry_choices="|".join(industries),
            filename=filename,
            text=text,
        )
        reply = await self.llm.complete(
            _ANALYSIS_SYSTEM_PROMPT,
            prompt,
            max_tokens=settings.ANALYSIS_MAX_TOKENS,
        )

        try:
            analysis = DocumentAnalysis.from_model_reply(parse_json_object(reply))
        except MalformedModelOutput as e:
            logger.error("Failed to parse analysis reply: %s", e)
            return DocumentAnalysis.default()

        return self._normalize(analysis)

    def _normalize(self, analysis: DocumentAnalysis) -> DocumentAnalysis:
        """Coerce the industry and drop suggestions the template already covers."""
        industry = analysis.detected_industry
        if industry not in self.templates.industry_sections:
            logger.info("Unknown industry '%s' coerced to %s", industry, GENERAL_INDUSTRY)
            industry = GENERAL_INDUSTRY

        covered = {title.lower() for title in self.templates.sections_for(industry)}
        suggestions = []
        for suggestion in analysis.suggested_additional_sections:
            key = suggestion.title.lower()
            if key in covered:
                continue
            covered.add(key)
            suggestions.append(suggestion)

        return dataclasses.replace(
            analysis,
            detected_industry=industry,
            suggested_additional_sections=suggestions,
        )
