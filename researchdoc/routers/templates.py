"""
Section template browsing.

GET /api/templates             — known industries
GET /api/templates/{industry}  — ordered section titles with guidance
"""
from fastapi import APIRouter

from researchdoc.models.schemas import (
    IndustryListResponse,
    IndustryTemplateResponse,
    TemplateSectionSchema,
)
from researchdoc.services.templates import DEFAULT_TEMPLATES

router = APIRouter()


@router.get("", response_model=IndustryListResponse)
async def list_industries() -> IndustryListResponse:
    return IndustryListResponse(
        industries=list(DEFAULT_TEMPLATES.industries),
        default_industry=DEFAULT_TEMPLATES.default_industry,
    )


@router.get("/{industry:path}", response_model=IndustryTemplateResponse)
async def get_industry_template(industry: str) -> IndustryTemplateResponse:
    """
    Ordered template for *industry*.

    Unknown industries resolve to the default template; the response names
    the industry actually used.
    """
    resolved = DEFAULT_TEMPLATES.resolve_industry(industry)
    return IndustryTemplateResponse(
        industry=resolved,
        sections=[
            TemplateSectionSchema(title=title, guidance=DEFAULT_TEMPLATES.guidance_for(title))
            for title in DEFAULT_TEMPLATES.sections_for(resolved)
        ],
    )
