"""Database and schema models for the research document backend."""
from researchdoc.models.database_models import (
    Project,
    Section,
    User,
    PROBLEM_STATEMENT_TITLE,
    DEFAULT_PROJECT_TITLE,
)
from researchdoc.models.schemas import (
    DocumentAnalysisSchema,
    GenerateDocumentRequest,
    GenerateDocumentResponse,
    ProjectCreateRequest,
    ProjectResponse,
    ProjectDetailResponse,
    SectionResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "Project",
    "Section",
    "User",
    "PROBLEM_STATEMENT_TITLE",
    "DEFAULT_PROJECT_TITLE",
    # Pydantic schemas
    "DocumentAnalysisSchema",
    "GenerateDocumentRequest",
    "GenerateDocumentResponse",
    "ProjectCreateRequest",
    "ProjectResponse",
    "ProjectDetailResponse",
    "SectionResponse",
    "HealthCheckResponse",
]
