"""
Section template registry.

Maps an industry label to the ordered list of section titles that seed a new
research document, and each title to the guidance text used when prompting
the model.  The registry is an immutable value: ``extend`` returns a new
registry for a single generation call instead of touching the shared one.

Public API
----------
DEFAULT_TEMPLATES.sections_for(industry) -> Tuple[str, ...]
DEFAULT_TEMPLATES.guidance_for(title)    -> str
DEFAULT_TEMPLATES.extend(extra_guidance) -> SectionTemplates
"""
from __future__ import annotations

import dataclasses
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

GENERAL_INDUSTRY = "General/Other"

_INDUSTRY_SECTIONS: Dict[str, Tuple[str, ...]] = {
    "Healthcare": (
        "Problem Statement",
        "Research Objectives",
        "User Requirements",
        "Regulatory Context (HIPAA/FDA)",
        "Clinical Workflow Analysis",
        "User Personas",
        "FMEA Analysis",
        "Patient Safety Requirements",
        "Cybersecurity Requirements",
        "Research Findings",
        "Design Implications",
    ),
    "Financial Services": (
        "Problem Statement",
        "Research Objectives",
        "User Requirements",
        "Regulatory Compliance (SEC/KYC/AML)",
        "Security & Privacy Requirements",
        "Risk Analysis",
        "User Personas",
        "Fraud Prevention Considerations",
        "Market Analysis",
        "Research Findings",
        "Design Implications",
    ),
    "B2B SaaS": (
        "Problem Statement",
        "Research Objectives",
        "User Requirements",
        "Stakeholder Analysis",
        "Integration Requirements",
        "User Personas",
        "Implementation & Adoption Considerations",
        "ROI & Success Metrics",
        "Market Analysis",
        "Research Findings",
        "Design Implications",
    ),
    "E-commerce": (
        "Problem Statement",
        "Research Objectives",
        "User Requirements",
        "Conversion Funnel Analysis",
        "Cart Abandonment Insights",
        "User Personas",
        "Competitive Benchmarking",
        "Customer Journey Mapping",
        "Market Analysis",
        "Research Findings",
        "Design Implications",
    ),
    GENERAL_INDUSTRY: (
        "Problem Statement",
        "Research Objectives",
        "User Requirements",
        "Competitive Analysis",
        "User Personas",
        "Technical Constraints",
        "Success Metrics",
        "Market Analysis",
        "Research Findings",
        "Design Implications",
    ),
}

_SECTION_GUIDANCE: Dict[str, str] = {
    "Problem Statement": "Define the core problem being investigated. State the issue clearly and explain its impact.",
    "Research Objectives": "List specific goals, questions, and hypotheses this research will answer.",
    "User Requirements": "Document what users need from the solution - functional and non-functional requirements.",
    "Regulatory Context (HIPAA/FDA)": "Outline compliance requirements, regulatory considerations, and legal constraints.",
    "Clinical Workflow Analysis": "Map current workflows, processes, and identify pain points in clinical settings.",
    "User Personas": "Describe key user types, their characteristics, goals, and pain points.",
    "FMEA Analysis": "Document failure modes, effects analysis, and risk assessment.",
    "Patient Safety Requirements": "Outline safety considerations, risk mitigation, and patient protection needs.",
    "Cybersecurity Requirements": "Detail security requirements, data protection, and threat considerations.",
    "Research Findings": "Space for documenting research results, insights, and data collected.",
    "Design Implications": "How findings translate to design decisions and recommendations.",
    "Regulatory Compliance (SEC/KYC/AML)": "Document compliance requirements for financial regulations.",
    "Security & Privacy Requirements": "Outline data security and user privacy requirements.",
    "Risk Analysis": "Assess potential risks and mitigation strategies.",
    "Fraud Prevention Considerations": "Document fraud risks and prevention measures.",
    "Market Analysis": "Analyze market conditions, competitors, and opportunities.",
    "Stakeholder Analysis": "Identify and analyze key stakeholders and their interests.",
    "Integration Requirements": "Document technical integration needs and dependencies.",
    "Implementation & Adoption Considerations": "Plan for rollout, training, and user adoption.",
    "ROI & Success Metrics": "Define success criteria and expected return on investment.",
    "Conversion Funnel Analysis": "Analyze user journey through conversion steps.",
    "Cart Abandonment Insights": "Investigate why users abandon carts and potential solutions.",
    "Competitive Benchmarking": "Compare against competitors and industry standards.",
    "Customer Journey Mapping": "Map the complete customer experience journey.",
    "Competitive Analysis": "Analyze competitors, their strengths and weaknesses.",
    "Technical Constraints": "Document technical limitations and requirements.",
    "Success Metrics": "Define how success will be measured.",
}


@dataclasses.dataclass(frozen=True)
class SectionTemplates:
    """Immutable industry → titles and title → guidance configuration."""

    industry_sections: Mapping[str, Tuple[str, ...]]
    guidance: Mapping[str, str]
    default_industry: str = GENERAL_INDUSTRY

    @property
    def industries(self) -> Tuple[str, ...]:
        """Known industries in display order."""
        return tuple(self.industry_sections)

    def resolve_industry(self, industry: str) -> str:
        """Return *industry* if it has a template, else the default industry."""
        return industry if industry in self.industry_sections else self.default_industry

    def sections_for(self, industry: str) -> Tuple[str, ...]:
        return self.industry_sections[self.resolve_industry(industry)]

    def guidance_for(self, title: str) -> str:
        return self.guidance.get(title) or f"Document relevant information for {title}."

    def has_guidance(self, title: str) -> bool:
        return title in self.guidance

    def extend(self, extra_guidance: Mapping[str, str]) -> "SectionTemplates":
        """Return a new registry whose guidance table also holds *extra_guidance*.

        Existing entries win; the receiver is left untouched.
        """
        merged = dict(extra_guidance)
        merged.update(self.guidance)
        return dataclasses.replace(self, guidance=MappingProxyType(merged))


DEFAULT_TEMPLATES = SectionTemplates(
    industry_sections=MappingProxyType(dict(_INDUSTRY_SECTIONS)),
    guidance=MappingProxyType(dict(_SECTION_GUIDANCE)),
)
