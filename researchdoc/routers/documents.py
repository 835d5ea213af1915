"""
Document import analysis and generation preview endpoints.

POST /analyze   — analyze an uploaded PDF or DOCX (multipart ``file``).
POST /generate  — generate document sections without persisting anything.
"""
from __future__ import annotations

import dataclasses
import logging

from fastapi import APIRouter, Depends, File, UploadFile

from researchdoc.config import settings
from researchdoc.dependencies.auth import get_current_user_id, get_llm_client
from researchdoc.exceptions import FileTooLarge, InvalidFileFormat
from researchdoc.models.schemas import (
    DocumentAnalysisSchema,
    GenerateDocumentRequest,
    GenerateDocumentResponse,
    GeneratedSectionSchema,
)
from researchdoc.services.document_analyzer import DocumentAnalysis, DocumentAnalyzer
from researchdoc.services.document_generator import DocumentGenerator
from researchdoc.services.llm_client import LLMGatewayClient

logger = logging.getLogger(__name__)

router = APIRouter()

_READ_CHUNK = 1024 * 1024  # 1 MB slices


async def read_upload(file: UploadFile) -> bytes:
    """Read an upload into memory, enforcing the size limit while streaming."""
    if not file.filename:
        raise InvalidFileFormat("Upload must include a filename.")

    data = bytearray()
    while True:
        chunk = await file.read(_READ_CHUNK)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > settings.MAX_UPLOAD_SIZE:
            raise FileTooLarge(
                f"File exceeds the {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} MB size limit."
            )
    return bytes(data)


# ---------------------------------------------------------------------------
# Analyze
# ---------------------------------------------------------------------------

@router.post("/analyze", response_model=DocumentAnalysisSchema)
async def analyze_document(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    llm: LLMGatewayClient = Depends(get_llm_client),
) -> DocumentAnalysisSchema:
    """
    Analyze an existing document to seed a new project.

    - Accepted: .pdf, .docx up to MAX_UPLOAD_SIZE
    - Content must match the extension (magic bytes)
    - An unparseable model reply yields a default analysis, not an error
    """
    data = await read_upload(file)
    logger.info("Analyzing %r (%d bytes) for user=%s", file.filename, len(data), user_id)

    analysis = await DocumentAnalyzer(llm).analyze(data, file.filename)
    return DocumentAnalysisSchema.model_validate(dataclasses.asdict(analysis))


# ---------------------------------------------------------------------------
# Generate (preview)
# ---------------------------------------------------------------------------

@router.post("/generate", response_model=GenerateDocumentResponse)
async def generate_document(
    body: GenerateDocumentRequest,
    user_id: str = Depends(get_current_user_id),
    llm: LLMGatewayClient = Depends(get_llm_client),
) -> GenerateDocumentResponse:
    """Generate reconciled sections for a problem statement; nothing is saved."""
    analysis = DocumentAnalysis.from_dict(body.analysis.model_dump()) if body.analysis else None

    sections = await DocumentGenerator(llm).generate(
        problem_statement=body.problem_statement,
        industry=body.industry,
        timeline=body.timeline,
        target_users=body.target_users,
        additional_context=body.additional_context,
        analysis=analysis,
    )
    logger.info("Generated %d preview sections for user=%s", len(sections), user_id)

    return GenerateDocumentResponse(
        sections=[GeneratedSectionSchema.model_validate(s) for s in sections]
    )
