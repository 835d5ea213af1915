"""
Ask-AI endpoint.

POST /api/assistant/ask — stream an answer as ``text/event-stream``:
``data: {"content": "..."}`` events followed by ``data: [DONE]``.
"""
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from researchdoc.dependencies.auth import get_current_user_id, get_llm_client
from researchdoc.exceptions import ResearchDocError
from researchdoc.models.schemas import AssistantRequest
from researchdoc.services.assistant import Assistant
from researchdoc.services.llm_client import LLMGatewayClient
from researchdoc.utils.sse import format_sse, format_sse_done

logger = logging.getLogger(__name__)

router = APIRouter()


async def _relay(first: str, tokens: AsyncIterator[str]) -> AsyncIterator[str]:
    if first:
        yield format_sse({"content": first})
    try:
        async for token in tokens:
            yield format_sse({"content": token})
    except ResearchDocError as exc:
        # Headers are already sent; report in-band and end the stream
        logger.error("Assistant stream interrupted: %s", exc.detail)
        yield format_sse({"error": exc.detail})
    yield format_sse_done()


@router.post("/ask")
async def ask_assistant(
    body: AssistantRequest,
    user_id: str = Depends(get_current_user_id),
    llm: LLMGatewayClient = Depends(get_llm_client),
) -> StreamingResponse:
    """
    Ask a question about the document.

    The first token is awaited before the response starts, so upstream
    failures (rate limit, quota, gateway errors) come back as a normal JSON
    error with the matching HTTP status.
    """
    tokens = Assistant(llm).stream_answer(
        question=body.question,
        document_context=body.document_context,
        section_title=body.section_title,
        section_content=body.section_content,
    )

    try:
        first = await tokens.__anext__()
    except StopAsyncIteration:
        first = ""

    logger.info("Streaming assistant answer for user=%s", user_id)
    return StreamingResponse(
        _relay(first, tokens),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
