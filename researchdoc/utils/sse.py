"""
Server-sent-event decoding for streamed model answers.

Both the gateway's chat-completion stream and this service's own
``/api/assistant/ask`` stream are framed as ``data: {json}\\n`` lines ending
with ``data: [DONE]``.  ``iter_sse_payloads`` turns an async iterator of raw
text chunks into decoded JSON payloads; ``iter_sse_tokens`` goes one step
further and yields only the text deltas.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Optional

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


async def iter_sse_payloads(chunks: AsyncIterable[str]) -> AsyncIterator[Any]:
    """
    Yield each JSON payload carried by ``data:`` lines in *chunks*.

    * A trailing partial line is held back until the next chunk completes it.
    * Blank lines and ``:`` comment lines are skipped.
    * ``data: [DONE]`` ends the stream.
    * A payload that fails to parse is held and re-merged with the following
      continuation line; if the next line starts a new event instead, the
      held fragment is dropped.
    * End of input without ``[DONE]`` is a normal end of stream.
    """
    buffer = ""
    held: Optional[str] = None

    async for chunk in chunks:
        buffer += chunk
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            done, payload, held = _consume_line(line, held)
            if done:
                return
            if payload is not None:
                yield payload

    # Stream closed: the remainder is a final, unterminated line
    if buffer:
        done, payload, held = _consume_line(buffer, held)
        if payload is not None and not done:
            yield payload
    if held:
        logger.debug("Dropping unparseable SSE payload at end of stream: %r", held[:120])


def _consume_line(line: str, held: Optional[str]):
    """Process one complete line.  Returns ``(done, payload, held)``."""
    if line.endswith("\r"):
        line = line[:-1]

    if held is not None and not line.startswith("data:") and line.strip():
        candidate = held + line
        try:
            return False, json.loads(candidate), None
        except json.JSONDecodeError:
            return False, None, candidate

    if held is not None:
        logger.debug("Dropping unparseable SSE payload: %r", held[:120])
        held = None

    if not line.strip() or line.startswith(":"):
        return False, None, None
    if not line.startswith("data:"):
        return False, None, None

    data = line[5:].strip()
    if data == DONE_SENTINEL:
        return True, None, None

    try:
        return False, json.loads(data), None
    except json.JSONDecodeError:
        return False, None, data


def extract_delta(payload: Any) -> str:
    """
    Pull the text delta out of one decoded payload.

    Understands the OpenAI chat-completion chunk shape
    (``choices[0].delta.content``) and this service's ``{"content": ...}``.
    """
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0] if isinstance(choices[0], dict) else {}
        delta = first.get("delta") or first.get("message") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return content if isinstance(content, str) else ""
    content = payload.get("content")
    return content if isinstance(content, str) else ""


async def iter_sse_tokens(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield the non-empty text deltas of an SSE chat stream."""
    async for payload in iter_sse_payloads(chunks):
        token = extract_delta(payload)
        if token:
            yield token


def format_sse(payload: Any) -> str:
    """Frame one payload as an SSE ``data:`` event."""
    return f"data: {json.dumps(payload)}\n\n"


def format_sse_done() -> str:
    return f"data: {DONE_SENTINEL}\n\n"
