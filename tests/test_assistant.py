"""Tests for the streaming Ask-AI endpoint and its service."""
import json

import pytest
from httpx import AsyncClient

from researchdoc.exceptions import (
    InvalidInput,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from researchdoc.services.assistant import Assistant, build_document_context
from tests.conftest import AUTH_HEADERS, FakeLLM, sse_delta

ASK = {
    "question": "What personas should I add?",
    "document_context": "## Problem Statement\n<p>Nurses ignore alerts</p>",
    "section_title": "User Personas",
    "section_content": "<p>Charge nurse</p>",
}


def _events(body: str):
    return [line[len("data: "):] for line in body.split("\n\n") if line.startswith("data: ")]


def test_document_context_format():
    assert build_document_context([("A", "<p>a</p>"), ("B", "")]) == "## A\n<p>a</p>\n\n## B\n"


def test_blank_question_is_rejected_before_calling_the_model():
    llm = FakeLLM()
    with pytest.raises(InvalidInput):
        Assistant(llm).stream_answer("   ")
    assert llm.calls == []


@pytest.mark.asyncio
async def test_answer_is_relayed_as_sse(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.stream_chunks = [sse_delta("<p>Consider"), sse_delta(" a pharmacist.</p>"), "data: [DONE]\n\n"]

    resp = await client.post("/api/assistant/ask", json=ASK, headers=AUTH_HEADERS)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = _events(resp.text)
    assert events[-1] == "[DONE]"
    tokens = [json.loads(e)["content"] for e in events[:-1]]
    assert "".join(tokens) == "<p>Consider a pharmacist.</p>"

    call = fake_llm.calls[0]
    assert call["user"] == "What personas should I add?"
    assert "CURRENT SECTION: User Personas" in call["system"]
    assert "Nurses ignore alerts" in call["system"]


@pytest.mark.asyncio
async def test_empty_answer_still_terminates(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.stream_chunks = ["data: [DONE]\n\n"]

    resp = await client.post("/api/assistant/ask", json=ASK, headers=AUTH_HEADERS)

    assert resp.status_code == 200
    assert _events(resp.text) == ["[DONE]"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, status_code",
    [(UpstreamRateLimited(), 429), (UpstreamQuotaExhausted(), 402)],
)
async def test_upstream_errors_map_to_status(client: AsyncClient, fake_llm: FakeLLM, error, status_code):
    fake_llm.error = error

    resp = await client.post("/api/assistant/ask", json=ASK, headers=AUTH_HEADERS)

    assert resp.status_code == status_code
    assert resp.json()["detail"] == error.detail


@pytest.mark.asyncio
async def test_blank_question_is_400(client: AsyncClient, fake_llm: FakeLLM):
    resp = await client.post("/api/assistant/ask", json={**ASK, "question": "  "}, headers=AUTH_HEADERS)
    assert resp.status_code == 400
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_missing_question_is_422(client: AsyncClient):
    resp = await client.post("/api/assistant/ask", json={"document_context": ""}, headers=AUTH_HEADERS)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_failure_after_first_token_is_sent_in_band(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.stream_chunks = [sse_delta("<p>Partial")]
    fake_llm.stream_error = UpstreamUnavailable()

    resp = await client.post("/api/assistant/ask", json=ASK, headers=AUTH_HEADERS)

    assert resp.status_code == 200
    events = _events(resp.text)
    assert [json.loads(e) for e in events[:-1]] == [
        {"content": "<p>Partial"},
        {"error": "AI gateway error"},
    ]
    assert events[-1] == "[DONE]"
