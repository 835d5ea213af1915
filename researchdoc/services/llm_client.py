"""
Client for the language-model gateway (OpenAI-compatible chat completions).

One blocking request/response call (``complete``) used by the generator and
the import analyzer, and one streaming call (``stream_chat``) used by the
assistant.  Upstream failures are mapped onto the error taxonomy and are
never retried.

Public API
----------
LLMGatewayClient.complete(system, user, max_tokens)    -> str
LLMGatewayClient.stream_chat(system, user, max_tokens) -> AsyncIterator[str]  (raw SSE text)
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from researchdoc.config import settings
from researchdoc.exceptions import (
    MissingConfiguration,
    ResearchDocError,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


def error_for_upstream_status(status_code: int) -> ResearchDocError:
    """429 → rate limited, 402 → quota exhausted, anything else → unavailable."""
    if status_code == 429:
        return UpstreamRateLimited()
    if status_code == 402:
        return UpstreamQuotaExhausted()
    return UpstreamUnavailable()


class LLMGatewayClient:
    """
    Thin async wrapper over ``POST {LLM_BASE_URL}/chat/completions``.

    ``transport`` is an optional httpx transport; tests pass an
    ``httpx.MockTransport`` to script gateway replies.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.model = model or settings.LLM_MODEL
        self.timeout = httpx.Timeout(settings.LLM_TIMEOUT, connect=settings.LLM_CONNECT_TIMEOUT)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ------------------------------------------------------------------
    # Public calls
    # ------------------------------------------------------------------

    async def complete(self, system: str, user: str, max_tokens: int) -> str:
        """Send one chat completion and return the assistant message text."""
        payload = self._payload(system, user, max_tokens, stream=False)

        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.HTTPError as exc:
            logger.error("LLM gateway request failed: %s", exc)
            raise UpstreamUnavailable() from exc

        if resp.status_code != 200:
            logger.error("LLM gateway error: %d %s", resp.status_code, resp.text[:200])
            raise error_for_upstream_status(resp.status_code)

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("LLM gateway returned an unexpected body: %s", resp.text[:200])
            raise UpstreamUnavailable() from exc

        logger.info("LLM completion received (%d chars)", len(content or ""))
        return content or ""

    async def stream_chat(self, system: str, user: str, max_tokens: int) -> AsyncIterator[str]:
        """
        Open a streaming chat completion and yield the raw SSE text chunks.

        The status check happens before the first chunk is yielded, so a
        caller that awaits the first item sees upstream errors immediately.
        """
        payload = self._payload(system, user, max_tokens, stream=True)
        headers = self._headers()

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                ) as resp:
                    if resp.status_code != 200:
                        body = await resp.aread()
                        logger.error(
                            "LLM gateway stream error: %d %s",
                            resp.status_code,
                            body[:200],
                        )
                        raise error_for_upstream_status(resp.status_code)

                    async for text in resp.aiter_text():
                        yield text
        except httpx.HTTPError as exc:
            logger.error("LLM gateway stream failed: %s", exc)
            raise UpstreamUnavailable() from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise MissingConfiguration()
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, system: str, user: str, max_tokens: int, *, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload
