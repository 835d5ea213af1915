"""
Section endpoints, scoped to one project.

GET    /api/projects/{project_id}/sections               — ordered list
POST   /api/projects/{project_id}/sections               — append a section
PUT    /api/projects/{project_id}/sections/order         — batched reorder
PATCH  /api/projects/{project_id}/sections/{section_id}  — edit title/content/visibility
DELETE /api/projects/{project_id}/sections/{section_id}  — delete (not the Problem Statement)
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from researchdoc.database import get_db
from researchdoc.dependencies.auth import get_authorized_project
from researchdoc.exceptions import InvalidInput, NotFound, ProtectedSectionError
from researchdoc.models.database_models import PROBLEM_STATEMENT_TITLE, Project, Section
from researchdoc.models.schemas import (
    SectionCreateRequest,
    SectionReorderRequest,
    SectionResponse,
    SectionUpdateRequest,
)
from researchdoc.routers.projects import load_sections

logger = logging.getLogger(__name__)

router = APIRouter()


def placeholder_content(title: str) -> str:
    return f"<p>Add your content here for {title}...</p>"


async def _get_section(db: AsyncSession, project: Project, section_id: int) -> Section:
    result = await db.execute(
        select(Section).where(Section.id == section_id, Section.project_id == project.id)
    )
    section = result.scalar_one_or_none()
    if section is None:
        raise NotFound(f"Section {section_id} not found.")
    return section


async def _touch(db: AsyncSession, project: Project) -> None:
    project.updated_at = func.now()
    await db.flush()


@router.get("", response_model=List[SectionResponse])
async def list_sections(
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> List[SectionResponse]:
    return [SectionResponse.model_validate(s) for s in await load_sections(db, project.id)]


@router.post("", response_model=SectionResponse, status_code=status.HTTP_201_CREATED)
async def create_section(
    body: SectionCreateRequest,
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> SectionResponse:
    """
    Append a section.

    Without an explicit ``order_index`` the section goes after the current
    last one (``max(order_index) + 1``, or 0 for an empty project).
    """
    title = body.title.strip()
    if not title:
        raise InvalidInput("Section title is required.")

    order_index = body.order_index
    if order_index is None:
        max_order = (
            await db.execute(
                select(func.max(Section.order_index)).where(Section.project_id == project.id)
            )
        ).scalar()
        order_index = (max_order if max_order is not None else -1) + 1

    section = Section(
        project_id=project.id,
        title=title,
        content=body.content if body.content is not None else placeholder_content(title),
        order_index=order_index,
    )
    db.add(section)
    await _touch(db, project)
    await db.refresh(section)

    logger.info("Added section id=%d %r to project id=%d at %d", section.id, title, project.id, order_index)
    return SectionResponse.model_validate(section)


@router.put("/order", response_model=List[SectionResponse])
async def reorder_sections(
    body: SectionReorderRequest,
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> List[SectionResponse]:
    """
    Rewrite every section's order index from the given id list.

    The list must name each section of the project exactly once; all rows are
    updated in one transaction.
    """
    sections = await load_sections(db, project.id)
    by_id = {s.id: s for s in sections}

    if len(body.section_ids) != len(set(body.section_ids)):
        raise InvalidInput("Section ids must not repeat.")
    if set(body.section_ids) != set(by_id):
        raise InvalidInput("Section ids must name every section of the project exactly once.")

    for index, section_id in enumerate(body.section_ids):
        by_id[section_id].order_index = index
    await _touch(db, project)

    ordered = [by_id[section_id] for section_id in body.section_ids]
    for section in ordered:
        await db.refresh(section)
    logger.info("Reordered %d sections of project id=%d", len(ordered), project.id)
    return [SectionResponse.model_validate(s) for s in ordered]


@router.patch("/{section_id}", response_model=SectionResponse)
async def update_section(
    section_id: int,
    body: SectionUpdateRequest,
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> SectionResponse:
    """Update any of title, content and visibility; omitted fields are unchanged."""
    section = await _get_section(db, project, section_id)

    if body.title is not None:
        title = body.title.strip()
        if not title:
            raise InvalidInput("Section title is required.")
        section.title = title
    if body.content is not None:
        section.content = body.content
    if body.is_visible is not None:
        section.is_visible = body.is_visible

    await _touch(db, project)
    await db.refresh(section)
    return SectionResponse.model_validate(section)


@router.delete("/{section_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_section(
    section_id: int,
    project: Project = Depends(get_authorized_project),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a section. The Problem Statement section is protected."""
    section = await _get_section(db, project, section_id)
    if section.title == PROBLEM_STATEMENT_TITLE:
        raise ProtectedSectionError()

    await db.delete(section)
    await _touch(db, project)
    logger.info("Deleted section id=%d from project id=%d", section_id, project.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
