"""
Research document generation.

Turns a problem statement and an industry into one ordered list of titled
HTML sections.  The model is called exactly once; whatever it returns is
reconciled onto the canonical title list so the result always has one entry
per title, in template order, even when the reply is unusable.

Public API
----------
DocumentGenerator.generate(problem_statement, industry, ...) -> List[GeneratedSection]
DocumentGenerator.blank_sections(problem_statement, industry) -> List[GeneratedSection]
reconcile_sections(titles, section_content, templates, problem_statement) -> List[GeneratedSection]
"""
from __future__ import annotations

import dataclasses
import html
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from researchdoc.config import settings
from researchdoc.exceptions import InvalidInput, MalformedModelOutput
from researchdoc.models.database_models import PROBLEM_STATEMENT_TITLE
from researchdoc.services.document_analyzer import DocumentAnalysis
from researchdoc.services.llm_client import LLMGatewayClient
from researchdoc.services.templates import DEFAULT_TEMPLATES, SectionTemplates
from researchdoc.utils.helpers import parse_json_object, truncate_text

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class GeneratedSection:
    """One reconciled section, ready to be persisted or previewed."""

    title: str
    content: str  # HTML
    order_index: int


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_GENERATION_SYSTEM_PROMPT = (
    "You are an expert UX researcher. Generate unique, specific content for each "
    "document section. Never repeat content between sections. Always return valid "
    "JSON with section titles as keys."
)

_GENERATION_PROMPT = """\
You are a UX research expert helping create a comprehensive research document. \
Generate UNIQUE and SPECIFIC starter content for EACH section listed below.

CRITICAL REQUIREMENTS:
- Each section MUST have COMPLETELY DIFFERENT content, focused on that section's purpose
- Include concrete, quantitative detail typical of the {industry} industry \
(figures, percentages, time frames, sample sizes)
- End every section with at least one actionable recommendation
- Later sections MUST reference named entities introduced in earlier sections \
(personas, metrics, findings) by their exact names
- Reference the problem statement naturally throughout
- Format content as semantic HTML using only <h3>, <p>, <strong>, <em>, <ul>, <ol> and <li>
- Do NOT use markdown

PROJECT CONTEXT:
{context}

SECTIONS TO GENERATE (each must be unique and section-specific):
{section_list}
{analysis_block}
IMPORTANT: Return valid JSON with the exact section names as keys and HTML strings as values.

Example format:
{{
  "Problem Statement": "<p>Content specifically about defining the problem...</p>",
  "Research Objectives": "<ul><li>DIFFERENT content about research goals...</li></ul>"
}}\
"""

_ANALYSIS_BLOCK = """
EXISTING DOCUMENT ANALYSIS (build on this material rather than starting over):
Summary: {summary}
{existing_sections}{extracted_content}"""


# ---------------------------------------------------------------------------
# Placeholder content
# ---------------------------------------------------------------------------

def _problem_excerpt(problem_statement: str) -> str:
    return html.escape(truncate_text(problem_statement, max_length=100, suffix="") + "...")


def unparsed_placeholder(title: str, templates: SectionTemplates, problem_statement: str) -> str:
    """Content used for every section when the model reply cannot be parsed."""
    guidance = html.escape(templates.guidance_for(title))
    return (
        f"<p>{guidance}</p>"
        f"<p>Add your content here for {html.escape(title)}. "
        f"Consider how this relates to: {_problem_excerpt(problem_statement)}</p>"
    )


def missing_placeholder(title: str, templates: SectionTemplates, problem_statement: str) -> str:
    """Content used for a single title the model reply left out."""
    guidance = html.escape(templates.guidance_for(title))
    return (
        f"<p>{guidance}</p>"
        f"<p>Add your content here for {html.escape(title)}...</p>"
        f"<p><em>Problem: {_problem_excerpt(problem_statement)}</em></p>"
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def _usable(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _match_content(title: str, section_content: Mapping[str, Any]) -> Optional[str]:
    """
    Find the model's content for *title*.

    Order: exact key, case-insensitive exact key, then case-insensitive
    substring in either direction.  Within each pass the first usable key in
    the reply's own order wins.
    """
    value = section_content.get(title)
    if _usable(value):
        return value

    lowered = title.lower()
    usable = [(key, value) for key, value in section_content.items() if _usable(value)]

    for key, value in usable:
        if key.lower() == lowered:
            return value

    for key, value in usable:
        key_lower = key.lower()
        if key_lower and (lowered in key_lower or key_lower in lowered):
            return value

    return None


def reconcile_sections(
    titles: Tuple[str, ...],
    section_content: Mapping[str, Any],
    templates: SectionTemplates,
    problem_statement: str,
) -> List[GeneratedSection]:
    """Map a parsed model reply onto the canonical titles, in order."""
    sections: List[GeneratedSection] = []
    missing = 0
    for index, title in enumerate(titles):
        content = _match_content(title, section_content)
        if content is None:
            missing += 1
            content = missing_placeholder(title, templates, problem_statement)
        sections.append(GeneratedSection(title=title, content=content, order_index=index))

    if missing:
        logger.warning("Model reply missing %d/%d sections; placeholders used", missing, len(titles))
    return sections


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class DocumentGenerator:
    """Builds the prompt, calls the model once and reconciles the reply."""

    def __init__(
        self,
        llm: LLMGatewayClient,
        templates: SectionTemplates = DEFAULT_TEMPLATES,
    ) -> None:
        self.llm = llm
        self.templates = templates

    def plan_sections(
        self,
        industry: str,
        analysis: Optional[DocumentAnalysis] = None,
    ) -> Tuple[Tuple[str, ...], SectionTemplates]:
        """
        Return the canonical title list and the registry to use for this call.

        Analysis suggestions not already in the template are appended; their
        guidance goes into a derived registry so the shared one is untouched.
        """
        titles = list(self.templates.sections_for(industry))
        if analysis is None:
            return tuple(titles), self.templates

        present = {title.lower() for title in titles}
        extra_guidance: Dict[str, str] = {}
        for suggestion in analysis.suggested_additional_sections:
            title = suggestion.title.strip()
            if not title or title.lower() in present:
                continue
            present.add(title.lower())
            titles.append(title)
            if not self.templates.has_guidance(title) and suggestion.reason.strip():
                extra_guidance[title] = suggestion.reason.strip()

        templates = self.templates.extend(extra_guidance) if extra_guidance else self.templates
        return tuple(titles), templates

    async def generate(
        self,
        problem_statement: str,
        industry: str,
        timeline: Optional[str] = None,
        target_users: Optional[str] = None,
        additional_context: Optional[str] = None,
        analysis: Optional[DocumentAnalysis] = None,
    ) -> List[GeneratedSection]:
        """
        Generate one HTML section per canonical title.

        Raises:
            InvalidInput: blank problem statement or industry
            UpstreamRateLimited, UpstreamQuotaExhausted, UpstreamUnavailable,
            MissingConfiguration: propagated from the gateway client
        """
        _require(problem_statement, "Problem statement is required")
        _require(industry, "Industry is required")

        titles, templates = self.plan_sections(industry, analysis)
        prompt = self.build_prompt(
            titles,
            templates,
            problem_statement=problem_statement,
            industry=industry,
            timeline=timeline,
            target_users=target_users,
            additional_context=additional_context,
            analysis=analysis,
        )

        logger.info("Generating %d sections for industry '%s'", len(titles), industry)
        reply = await self.llm.complete(
            _GENERATION_SYSTEM_PROMPT,
            prompt,
            max_tokens=settings.GENERATION_MAX_TOKENS,
        )

        try:
            section_content = parse_json_object(reply)
        except MalformedModelOutput as e:
            logger.error("Failed to parse generation reply: %s", e)
            section_content = {
                title: unparsed_placeholder(title, templates, problem_statement)
                for title in titles
            }

        return reconcile_sections(titles, section_content, templates, problem_statement)

    def blank_sections(self, problem_statement: str, industry: str) -> List[GeneratedSection]:
        """Template sections without a model call; only the problem statement is filled."""
        _require(problem_statement, "Problem statement is required")
        _require(industry, "Industry is required")

        sections = []
        for index, title in enumerate(self.templates.sections_for(industry)):
            content = f"<p>{html.escape(problem_statement)}</p>" if title == PROBLEM_STATEMENT_TITLE else ""
            sections.append(GeneratedSection(title=title, content=content, order_index=index))
        return sections

    def build_prompt(
        self,
        titles: Tuple[str, ...],
        templates: SectionTemplates,
        *,
        problem_statement: str,
        industry: str,
        timeline: Optional[str] = None,
        target_users: Optional[str] = None,
        additional_context: Optional[str] = None,
        analysis: Optional[DocumentAnalysis] = None,
    ) -> str:
        context_lines = [
            f"Problem Statement: {problem_statement}",
            f"Industry: {industry}",
        ]
        if timeline:
            context_lines.append(f"Timeline: {timeline}")
        if target_users:
            context_lines.append(f"Target Users: {target_users}")
        if additional_context:
            context_lines.append(f"Additional Context: {additional_context}")

        section_list = "\n".join(
            f'{i}. "{title}" - {templates.guidance_for(title)}'
            for i, title in enumerate(titles, start=1)
        )

        return _GENERATION_PROMPT.format(
            industry=industry,
            context="\n".join(context_lines),
            section_list=section_list,
            analysis_block=_render_analysis(analysis),
        )


def _render_analysis(analysis: Optional[DocumentAnalysis]) -> str:
    if analysis is None:
        return ""

    existing = ""
    if analysis.existing_sections:
        lines = [f"- {s.title}: {s.summary}" for s in analysis.existing_sections]
        existing = "Sections already covered:\n" + "\n".join(lines) + "\n"

    extracted = ""
    if analysis.extracted_content:
        blocks = [f"### {title}\n{content}" for title, content in analysis.extracted_content.items()]
        extracted = "Extracted content:\n" + "\n\n".join(blocks) + "\n"

    return _ANALYSIS_BLOCK.format(
        summary=analysis.summary or "(none)",
        existing_sections=existing,
        extracted_content=extracted,
    )


def _require(value: Optional[str], message: str) -> None:
    if value is None or not value.strip():
        raise InvalidInput(message)
