"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime


# ---------------------------------------------------------------------------
# Import analysis
# ---------------------------------------------------------------------------

class ExistingSectionSchema(BaseModel):
    """A section the analyzer found in an uploaded file."""

    title: str
    summary: str = ""


class SuggestedSectionSchema(BaseModel):
    """A section the analyzer proposes adding to the document."""

    title: str
    reason: str = ""


class DocumentAnalysisSchema(BaseModel):
    """Structured analysis of an uploaded document."""

    summary: str = ""
    detected_industry: str = "General/Other"
    extracted_problem_statement: str = ""
    existing_sections: List[ExistingSectionSchema] = []
    suggested_additional_sections: List[SuggestedSectionSchema] = []
    extracted_content: Dict[str, str] = {}

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerateDocumentRequest(BaseModel):
    """Inputs for a document generation call."""

    problem_statement: str
    industry: str
    timeline: Optional[str] = None
    target_users: Optional[str] = None
    additional_context: Optional[str] = None
    analysis: Optional[DocumentAnalysisSchema] = None


class GeneratedSectionSchema(BaseModel):
    """One reconciled section produced by the generator."""

    title: str
    content: str
    order_index: int

    model_config = ConfigDict(from_attributes=True)


class GenerateDocumentResponse(BaseModel):
    """Response for POST /api/documents/generate."""

    sections: List[GeneratedSectionSchema]


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

class ProjectCreateRequest(GenerateDocumentRequest):
    """Create a project and its generated document in one step."""

    title: Optional[str] = Field(None, max_length=255)
    generate_content: bool = True


class ProjectUpdateRequest(BaseModel):
    """Rename a project."""

    title: str = Field(..., min_length=1, max_length=255)


class ProjectResponse(BaseModel):
    """Schema for project responses."""

    id: int
    title: str
    problem_statement: str
    industry: str
    timeline: Optional[str] = None
    target_users: Optional[str] = None
    additional_context: Optional[str] = None
    section_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class SectionResponse(BaseModel):
    """Schema for section responses."""

    id: int
    project_id: int
    title: str
    content: str = ""
    order_index: int
    is_visible: bool = True
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectDetailResponse(ProjectResponse):
    """A project together with its ordered sections."""

    sections: List[SectionResponse] = []


class SectionCreateRequest(BaseModel):
    """Append a new section to a project."""

    title: str
    content: Optional[str] = None
    order_index: Optional[int] = None


class SectionUpdateRequest(BaseModel):
    """Partial update of a section; omitted fields are left unchanged."""

    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = None
    is_visible: Optional[bool] = None


class SectionReorderRequest(BaseModel):
    """Full ordered list of a project's section ids."""

    section_ids: List[int]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TemplateSectionSchema(BaseModel):
    title: str
    guidance: str


class IndustryTemplateResponse(BaseModel):
    """Ordered section template for one industry."""

    industry: str
    sections: List[TemplateSectionSchema]


class IndustryListResponse(BaseModel):
    industries: List[str]
    default_industry: str


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------

class AssistantRequest(BaseModel):
    """Request body for POST /api/assistant/ask."""

    question: str = Field(..., min_length=1)
    document_context: str = ""
    section_title: str = ""
    section_content: str = ""


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    llm_gateway: str
    timestamp: datetime
    version: str = "0.1.0"
