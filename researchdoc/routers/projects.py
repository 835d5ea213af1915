"""
Project endpoints.

Route summary
-------------
POST   /api/projects                 — generate a document and create the project
GET    /api/projects                 — list the user's projects
GET    /api/projects/{project_id}    — project detail with ordered sections
PATCH  /api/projects/{project_id}    — rename
DELETE /api/projects/{project_id}    — delete (sections cascade)
"""
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from researchdoc.database import get_db
from researchdoc.dependencies.auth import (
    get_authorized_project,
    get_current_user_id,
    get_llm_client,
    get_or_create_user,
)
from researchdoc.models.database_models import DEFAULT_PROJECT_TITLE, Project, Section, User
from researchdoc.models.schemas import (
    ProjectCreateRequest,
    ProjectDetailResponse,
    ProjectResponse,
    ProjectUpdateRequest,
    SectionResponse,
)
from researchdoc.services.document_analyzer import DocumentAnalysis
from researchdoc.services.document_generator import DocumentGenerator
from researchdoc.services.llm_client import LLMGatewayClient

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _project_response(project: Project, section_count: int) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        title=project.title,
        problem_statement=project.problem_statement,
        industry=project.industry,
        timeline=project.timeline,
        target_users=project.target_users,
        additional_context=project.additional_context,
        section_count=section_count,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


async def load_sections(db: AsyncSession, project_id: int) -> List[Section]:
    """Sections of a project in display order."""
    result = await db.execute(
        select(Section)
        .where(Section.project_id == project_id)
        .order_by(Section.order_index, Section.id)
    )
    return list(result.scalars().all())


async def _detail(db: AsyncSession, project: Project) -> ProjectDetailResponse:
    sections = await load_sections(db, project.id)
    base = _project_response(project, len(sections))
    return ProjectDetailResponse(
        **base.model_dump(),
        sections=[SectionResponse.model_validate(s) for s in sections],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# PROJECT CRUD
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("", response_model=ProjectDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreateRequest,
    user: User = Depends(get_or_create_user),
    llm: LLMGatewayClient = Depends(get_llm_client),
    db: AsyncSession = Depends(get_db),
) -> ProjectDetailResponse:
    """
    Create a project together with its document.

    Generation runs first; the project and every section are written in the
    request's single transaction, so a failed generation leaves no rows.
    With ``generate_content=false`` the template sections are created blank.
    """
    generator = DocumentGenerator(llm)
    if body.generate_content:
        analysis = DocumentAnalysis.from_dict(body.analysis.model_dump()) if body.analysis else None
        generated = await generator.generate(
            problem_statement=body.problem_statement,
            industry=body.industry,
            timeline=body.timeline,
            target_users=body.target_users,
            additional_context=body.additional_context,
            analysis=analysis,
        )
    else:
        generated = generator.blank_sections(body.problem_statement, body.industry)

    project = Project(
        user_id=user.id,
        title=(body.title or "").strip() or DEFAULT_PROJECT_TITLE,
        problem_statement=body.problem_statement.strip(),
        industry=body.industry.strip(),
        timeline=body.timeline,
        target_users=body.target_users,
        additional_context=body.additional_context,
    )
    db.add(project)
    await db.flush()

    db.add_all(
        Section(
            project_id=project.id,
            title=g.title,
            content=g.content,
            order_index=g.order_index,
        )
        for g in generated
    )
    await db.flush()

    logger.info(
        "Created project id=%d title=%r with %d sections for user=%s",
        project.id, project.title, len(generated), user.id,
    )
    return await _detail(db, project)


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[ProjectResponse]:
    """List all projects belonging to the authenticated user, newest first."""
    result = await db.execute(
        select(Project)
        .where(Project.user_id == user_id)
        .order_by(Project.updated_at.desc(), Project.id.desc())
    )
    projects = result.scalars().all()

    # Batch-fetch section counts
    project_ids = [p.id for p in projects]
    section_counts: Dict[int, int] = {}
    if project_ids:
        count_result = await db.execute(
            select(Section.project_id, func.count(Section.id).label("cnt"))
            .where(Section.project_id.in_(project_ids))
            .group_by(Section.project_id)
        )
        section_counts = {row.project_id: row.cnt for row in count_result}

    return [_project_response(p, section_counts.get(p.id, 0)) for p in projects]


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> ProjectDetailResponse:
    """Project detail with its sections ordered by order index."""
    return await _detail(db, project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def rename_project(
    body: ProjectUpdateRequest,
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    """Rename a project."""
    project.title = body.title.strip() or DEFAULT_PROJECT_TITLE
    await db.flush()
    await db.refresh(project)

    count = (
        await db.execute(select(func.count(Section.id)).where(Section.project_id == project.id))
    ).scalar() or 0
    logger.info("Renamed project id=%d to %r", project.id, project.title)
    return _project_response(project, count)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a project and all of its sections."""
    for section in await load_sections(db, project.id):
        await db.delete(section)
    await db.delete(project)
    await db.flush()
    logger.info("Deleted project id=%d", project.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
