"""Tests for upload validation, heuristic text extraction and analysis parsing."""
import io
import json
import time
import zipfile

import pytest
from docx import Document as DocxDocument
from httpx import AsyncClient

from researchdoc.config import settings
from researchdoc.exceptions import FileTooLarge, InvalidFileFormat, UpstreamQuotaExhausted
from researchdoc.services import document_analyzer
from researchdoc.services.document_analyzer import (
    DocumentAnalysis,
    DocumentAnalyzer,
    extract_docx_text,
    extract_pdf_text,
    truncate_for_analysis,
    validate_upload,
)
from tests.conftest import AUTH_HEADERS, FakeLLM


def make_pdf(*literals: str) -> bytes:
    body = " ".join(f"({text}) Tj" for text in literals)
    return (
        b"%PDF-1.4\n1 0 obj\n<< /Length 44 >>\nstream\nBT /F1 12 Tf "
        + body.encode("latin-1")
        + b" ET\nendstream\nendobj\n%%EOF\n"
    )


def make_docx(*paragraphs: str) -> bytes:
    doc = DocxDocument()
    for text in paragraphs:
        doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


ANALYSIS_REPLY = {
    "summary": "A study of clinician alert fatigue.",
    "detectedIndustry": "Healthcare",
    "extractedProblemStatement": "Clinicians ignore most EHR alerts.",
    "existingSections": [{"title": "Background", "summary": "Alert volumes"}],
    "suggestedAdditionalSections": [
        {"title": "User Personas", "reason": "Already in the Healthcare template"},
        {"title": "Alert Taxonomy", "reason": "Classify alert types"},
    ],
    "extractedContent": {"Background": "<p>Alerts per shift: 120</p>"},
}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_unsupported_extension_is_rejected():
    with pytest.raises(InvalidFileFormat):
        validate_upload(b"hello", "notes.txt")


def test_pdf_extension_with_wrong_magic_bytes_is_rejected(monkeypatch):
    called = []
    monkeypatch.setattr(document_analyzer, "extract_pdf_text", lambda *a: called.append(a) or "")

    analyzer = DocumentAnalyzer(FakeLLM())
    with pytest.raises(InvalidFileFormat):
        analyzer.extract_text(b"PK\x03\x04 this is really a zip", "report.pdf")
    assert called == []


def test_docx_without_document_part_is_rejected():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("something/else.xml", "<x/>")
    with pytest.raises(InvalidFileFormat):
        validate_upload(buffer.getvalue(), "report.docx")


def test_docx_with_pdf_content_is_rejected():
    with pytest.raises(InvalidFileFormat):
        validate_upload(make_pdf("Hello world"), "report.docx")


def test_oversized_upload_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 100)
    with pytest.raises(FileTooLarge):
        validate_upload(b"%PDF-" + b"0" * 200, "big.pdf")


def test_extension_check_is_case_insensitive():
    assert validate_upload(make_pdf("Hello"), "REPORT.PDF") == ".pdf"


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def test_pdf_literals_with_letters_are_kept():
    text = extract_pdf_text(make_pdf("Alert fatigue study", "12", "ok", "Nurses respond late"), "a.pdf")
    assert "Alert fatigue study" in text
    assert "Nurses respond late" in text
    assert "12" not in text.split()
    assert "ok" not in text.split()


def test_pdf_without_text_gets_placeholder_naming_file():
    text = extract_pdf_text(b"%PDF-1.4\n%%EOF\n", "empty.pdf")
    assert "empty.pdf" in text
    assert text.startswith("[PDF content")


def test_pdf_extraction_stops_at_match_bound(monkeypatch):
    monkeypatch.setattr(settings, "EXTRACTION_MAX_MATCHES", 3)
    literals = [f"Word{i}" for i in range(50)]
    text = extract_pdf_text(make_pdf(*literals), "many.pdf")
    assert "Word0" in text
    assert "Word40" not in text


@pytest.mark.parametrize(
    "body",
    [
        b"(" * 200_000,
        b"stream\n" * 50_000,
        b"(Alert fatigue" * 50_000,
    ],
    ids=["unclosed-parens", "unterminated-streams", "unclosed-literals"],
)
def test_pdf_extraction_stays_within_time_budget(body):
    started = time.monotonic()
    text = extract_pdf_text(b"%PDF-1.4\n" + body, "crafted.pdf")
    elapsed = time.monotonic() - started

    assert elapsed < settings.EXTRACTION_TIME_BUDGET + 1.0
    assert text.startswith("[PDF content of crafted.pdf")


def test_pdf_with_unterminated_trailing_stream_still_extracts():
    data = make_pdf("Nurses respond late") + b"stream\n(Dangling literal text)"
    text = extract_pdf_text(data, "a.pdf")
    assert "Nurses respond late" in text


def test_docx_text_is_extracted_from_document_part():
    data = make_docx(
        "Clinicians override most medication alerts during busy shifts.",
        "This study interviews twelve nurses across three hospital wards.",
    )
    text = extract_docx_text(data, "study.docx")
    assert "Clinicians override most medication alerts" in text
    assert "<w:" not in text


def test_short_docx_gets_placeholder():
    text = extract_docx_text(make_docx("Hi"), "tiny.docx")
    assert text.startswith("[Document: tiny.docx.")


def test_long_text_is_truncated_with_marker():
    text = truncate_for_analysis("a" * (settings.ANALYSIS_TEXT_LIMIT + 10))
    assert text.endswith("... [truncated]")
    assert len(text) == settings.ANALYSIS_TEXT_LIMIT + len("... [truncated]")


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_analysis_is_parsed_and_normalized():
    llm = FakeLLM()
    llm.reply = "```json\n" + json.dumps(ANALYSIS_REPLY) + "\n```"

    analysis = await DocumentAnalyzer(llm).analyze(make_pdf("Alert fatigue study"), "alerts.pdf")

    assert analysis.detected_industry == "Healthcare"
    assert analysis.extracted_problem_statement == "Clinicians ignore most EHR alerts."
    assert [s.title for s in analysis.existing_sections] == ["Background"]
    # "User Personas" is already in the Healthcare template
    assert [s.title for s in analysis.suggested_additional_sections] == ["Alert Taxonomy"]
    assert analysis.extracted_content == {"Background": "<p>Alerts per shift: 120</p>"}

    prompt = llm.calls[0]["user"]
    assert "DOCUMENT FILENAME: alerts.pdf" in prompt
    assert "Alert fatigue study" in prompt
    assert llm.calls[0]["max_tokens"] == settings.ANALYSIS_MAX_TOKENS


@pytest.mark.asyncio
async def test_unknown_industry_is_coerced_to_general():
    llm = FakeLLM()
    llm.reply = json.dumps({**ANALYSIS_REPLY, "detectedIndustry": "Aerospace"})

    analysis = await DocumentAnalyzer(llm).analyze(make_pdf("Rocket telemetry"), "r.pdf")

    assert analysis.detected_industry == "General/Other"
    # "User Personas" is in the General/Other template too
    assert [s.title for s in analysis.suggested_additional_sections] == ["Alert Taxonomy"]


@pytest.mark.asyncio
async def test_unparseable_reply_returns_default_analysis():
    llm = FakeLLM()
    llm.reply = "I could not read this document, sorry."

    analysis = await DocumentAnalyzer(llm).analyze(make_pdf("Some text here"), "x.pdf")

    assert analysis == DocumentAnalysis.default()
    assert analysis.detected_industry == "General/Other"
    assert analysis.existing_sections == []


@pytest.mark.asyncio
async def test_invalid_file_never_reaches_the_model():
    llm = FakeLLM()
    with pytest.raises(InvalidFileFormat):
        await DocumentAnalyzer(llm).analyze(b"not a pdf", "x.pdf")
    assert llm.calls == []


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_analyze_endpoint(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.reply = json.dumps(ANALYSIS_REPLY)

    resp = await client.post(
        "/api/documents/analyze",
        files={"file": ("alerts.pdf", make_pdf("Alert fatigue study"), "application/pdf")},
        headers=AUTH_HEADERS,
    )

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["detected_industry"] == "Healthcare"
    assert data["suggested_additional_sections"] == [
        {"title": "Alert Taxonomy", "reason": "Classify alert types"}
    ]
    assert data["existing_sections"][0]["summary"] == "Alert volumes"


@pytest.mark.asyncio
async def test_analyze_endpoint_rejects_mismatched_content(client: AsyncClient, fake_llm: FakeLLM):
    resp = await client.post(
        "/api/documents/analyze",
        files={"file": ("fake.pdf", b"MZ\x90\x00 executable", "application/pdf")},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidFileFormat"
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_analyze_endpoint_enforces_size_limit(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 1024)
    resp = await client.post(
        "/api/documents/analyze",
        files={"file": ("big.pdf", b"%PDF-" + b"0" * 4096, "application/pdf")},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_analyze_endpoint_maps_quota_error(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.error = UpstreamQuotaExhausted()
    resp = await client.post(
        "/api/documents/analyze",
        files={"file": ("a.pdf", make_pdf("Alert fatigue study"), "application/pdf")},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 402
    assert resp.json()["detail"] == "AI credits exhausted. Please add credits to continue."
