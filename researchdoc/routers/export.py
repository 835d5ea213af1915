"""
Document export.

GET /api/projects/{project_id}/export?format=pdf|docx — download the document.
"""
import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from researchdoc.database import get_db
from researchdoc.dependencies.auth import get_authorized_project
from researchdoc.models.database_models import Project
from researchdoc.routers.projects import load_sections
from researchdoc.services.export_renderer import (
    EXPORT_FORMATS,
    ExportDocument,
    export_filename,
    render,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{project_id}/export")
async def export_project(
    fmt: str = Query("pdf", alias="format", pattern="^(pdf|docx)$"),
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Render the project's visible sections, in order, as a file attachment."""
    sections = await load_sections(db, project.id)
    document = ExportDocument.from_project(project, sections)

    data = render(document, fmt)
    media_type, _ = EXPORT_FORMATS[fmt]
    filename = export_filename(project.title, fmt)

    logger.info("Exported project id=%d as %s (%d bytes)", project.id, fmt, len(data))
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
