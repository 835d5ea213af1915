"""
Conversational assistant over a research document.

Answers a free-form question about the document, anchored on one section,
streaming the model's answer token by token.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Iterable, Tuple

from researchdoc.config import settings
from researchdoc.exceptions import InvalidInput
from researchdoc.services.llm_client import LLMGatewayClient
from researchdoc.utils.sse import iter_sse_tokens

logger = logging.getLogger(__name__)

_ASSISTANT_SYSTEM_PROMPT = """\
You are a UX research assistant helping a user write a research document. \
Answer the user's question using the document below as context. \
Focus on the section the user is currently working on. \
Format your answer as semantic HTML using only <h3>, <p>, <strong>, <em>, <ul>, <ol> and <li>, \
so it can be inserted directly into the document. Do not use markdown.

FULL DOCUMENT:
{document_context}

CURRENT SECTION: {section_title}
{section_content}\
"""


def build_document_context(sections: Iterable[Tuple[str, str]]) -> str:
    """Serialize ``(title, content)`` pairs as ``## title\\ncontent`` blocks."""
    return "\n\n".join(f"## {title}\n{content}" for title, content in sections)


class Assistant:
    def __init__(self, llm: LLMGatewayClient) -> None:
        self.llm = llm

    def stream_answer(
        self,
        question: str,
        document_context: str = "",
        section_title: str = "",
        section_content: str = "",
    ) -> AsyncIterator[str]:
        """
        Return an async iterator of answer tokens.

        Nothing is sent upstream until the iterator is first awaited; upstream
        errors surface from that first ``__anext__``.
        """
        if not question or not question.strip():
            raise InvalidInput("Question is required")

        system = _ASSISTANT_SYSTEM_PROMPT.format(
            document_context=document_context or "(empty document)",
            section_title=section_title or "(none)",
            section_content=section_content,
        )
        logger.info("Assistant question on section '%s' (%d chars)", section_title, len(question))
        chunks = self.llm.stream_chat(system, question.strip(), max_tokens=settings.ASSISTANT_MAX_TOKENS)
        return iter_sse_tokens(chunks)
