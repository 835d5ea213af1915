"""Tests for LLMGatewayClient against a scripted httpx.MockTransport."""
import json

import httpx
import pytest

from researchdoc.exceptions import (
    MissingConfiguration,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from researchdoc.services.llm_client import LLMGatewayClient
from researchdoc.utils.sse import iter_sse_tokens


def _client(handler) -> LLMGatewayClient:
    return LLMGatewayClient(
        api_key="secret",
        base_url="https://gateway.test/v1",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_complete_sends_openai_payload_and_returns_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "hello"}}]})

    reply = await _client(handler).complete("sys", "user prompt", max_tokens=123)

    assert reply == "hello"
    assert seen["url"] == "https://gateway.test/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["max_tokens"] == 123
    assert seen["body"]["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "user prompt"},
    ]
    assert "stream" not in seen["body"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, error",
    [
        (429, UpstreamRateLimited),
        (402, UpstreamQuotaExhausted),
        (500, UpstreamUnavailable),
        (401, UpstreamUnavailable),
    ],
)
async def test_complete_maps_upstream_status(status_code, error):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code, text="nope")

    with pytest.raises(error):
        await _client(handler).complete("sys", "user", max_tokens=10)
    # never retried
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_complete_maps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        await _client(handler).complete("sys", "user", max_tokens=10)


@pytest.mark.asyncio
async def test_complete_with_unexpected_body_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(UpstreamUnavailable):
        await _client(handler).complete("sys", "user", max_tokens=10)


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_any_request():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = LLMGatewayClient(api_key="", transport=httpx.MockTransport(handler))
    assert not client.is_configured
    with pytest.raises(MissingConfiguration):
        await client.complete("sys", "user", max_tokens=10)
    assert calls == []


@pytest.mark.asyncio
async def test_stream_chat_yields_raw_sse_text():
    body = (
        'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
        "data: [DONE]\n\n"
    )
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, content=body.encode(), headers={"Content-Type": "text/event-stream"}
        )

    tokens = [t async for t in iter_sse_tokens(_client(handler).stream_chat("sys", "q", max_tokens=50))]

    assert "".join(tokens) == "Hello"
    assert seen["body"]["stream"] is True


@pytest.mark.asyncio
async def test_stream_chat_raises_on_first_item_for_rate_limit():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    stream = _client(handler).stream_chat("sys", "q", max_tokens=50)
    with pytest.raises(UpstreamRateLimited):
        await stream.__anext__()
