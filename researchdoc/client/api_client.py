"""
Async Python client for the research document HTTP API.

Wraps an ``httpx.AsyncClient`` and maps error responses back onto the
``researchdoc.exceptions`` taxonomy, so callers handle the same exception
classes the server raises.

Public API
----------
ResearchDocClient.create_project(...)             -> dict
ResearchDocClient.get_project(project_id)         -> dict
ResearchDocClient.list_sections(project_id)       -> List[dict]
ResearchDocClient.update_section(...)             -> dict
ResearchDocClient.reorder_sections(...)           -> List[dict]
ResearchDocClient.ask_assistant(...)              -> AsyncIterator[str]
ResearchDocClient.export(project_id, fmt)         -> bytes
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from researchdoc.exceptions import PersistenceFailure, UpstreamUnavailable, error_for_status
from researchdoc.utils.sse import extract_delta, iter_sse_payloads

logger = logging.getLogger(__name__)


class ResearchDocClient:
    """
    One authenticated user's view of the API.

    ``http_client`` lets tests pass an ``httpx.AsyncClient`` bound to the
    ASGI app; otherwise a client is created for ``base_url`` and owned here.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.user_id = user_id
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "ResearchDocClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @property
    def headers(self) -> Dict[str, str]:
        return {"X-User-Id": self.user_id} if self.user_id else {}

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") if isinstance(body.get("detail"), str) else None
        logger.warning("API error %d on %s: %s", resp.status_code, resp.request.url.path, detail)
        raise error_for_status(resp.status_code, detail, body.get("error"))

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._http.request(method, path, headers=self.headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("API request %s %s failed: %s", method, path, exc)
            raise PersistenceFailure(f"API unreachable: {exc}") from exc
        self._raise_for_status(resp)
        return resp

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def list_industries(self) -> Dict[str, Any]:
        return (await self._request("GET", "/api/templates")).json()

    async def get_template(self, industry: str) -> Dict[str, Any]:
        return (await self._request("GET", f"/api/templates/{industry}")).json()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def analyze_document(self, filename: str, data: bytes) -> Dict[str, Any]:
        files = {"file": (filename, data, "application/octet-stream")}
        return (await self._request("POST", "/api/documents/analyze", files=files)).json()

    async def generate(self, problem_statement: str, industry: str, **fields: Any) -> List[Dict[str, Any]]:
        body = {"problem_statement": problem_statement, "industry": industry, **fields}
        resp = await self._request("POST", "/api/documents/generate", json=body)
        return resp.json()["sections"]

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(self, problem_statement: str, industry: str, **fields: Any) -> Dict[str, Any]:
        body = {"problem_statement": problem_statement, "industry": industry, **fields}
        return (await self._request("POST", "/api/projects", json=body)).json()

    async def list_projects(self) -> List[Dict[str, Any]]:
        return (await self._request("GET", "/api/projects")).json()

    async def get_project(self, project_id: int) -> Dict[str, Any]:
        return (await self._request("GET", f"/api/projects/{project_id}")).json()

    async def rename_project(self, project_id: int, title: str) -> Dict[str, Any]:
        resp = await self._request("PATCH", f"/api/projects/{project_id}", json={"title": title})
        return resp.json()

    async def delete_project(self, project_id: int) -> None:
        await self._request("DELETE", f"/api/projects/{project_id}")

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    async def list_sections(self, project_id: int) -> List[Dict[str, Any]]:
        return (await self._request("GET", f"/api/projects/{project_id}/sections")).json()

    async def create_section(
        self,
        project_id: int,
        title: str,
        content: Optional[str] = None,
        order_index: Optional[int] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"title": title}
        if content is not None:
            body["content"] = content
        if order_index is not None:
            body["order_index"] = order_index
        resp = await self._request("POST", f"/api/projects/{project_id}/sections", json=body)
        return resp.json()

    async def update_section(self, project_id: int, section_id: int, **fields: Any) -> Dict[str, Any]:
        resp = await self._request(
            "PATCH", f"/api/projects/{project_id}/sections/{section_id}", json=fields
        )
        return resp.json()

    async def delete_section(self, project_id: int, section_id: int) -> None:
        await self._request("DELETE", f"/api/projects/{project_id}/sections/{section_id}")

    async def reorder_sections(self, project_id: int, section_ids: List[int]) -> List[Dict[str, Any]]:
        resp = await self._request(
            "PUT",
            f"/api/projects/{project_id}/sections/order",
            json={"section_ids": list(section_ids)},
        )
        return resp.json()

    # ------------------------------------------------------------------
    # Assistant / export
    # ------------------------------------------------------------------

    async def ask_assistant(
        self,
        question: str,
        document_context: str = "",
        section_title: str = "",
        section_content: str = "",
    ) -> AsyncIterator[str]:
        """
        Yield answer tokens as the server streams them.

        An ``{"error": ...}`` event (upstream failure after streaming began)
        raises ``UpstreamUnavailable``; tokens already yielded stand.
        """
        body = {
            "question": question,
            "document_context": document_context,
            "section_title": section_title,
            "section_content": section_content,
        }
        try:
            async with self._http.stream(
                "POST", "/api/assistant/ask", headers=self.headers, json=body
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    self._raise_for_status(resp)
                async for payload in iter_sse_payloads(resp.aiter_text()):
                    if isinstance(payload, dict) and payload.get("error"):
                        logger.error("Assistant stream failed: %s", payload["error"])
                        raise UpstreamUnavailable(str(payload["error"]))
                    token = extract_delta(payload)
                    if token:
                        yield token
        except httpx.HTTPError as exc:
            logger.error("Assistant request failed: %s", exc)
            raise UpstreamUnavailable(f"API unreachable: {exc}") from exc

    async def export(self, project_id: int, fmt: str = "pdf") -> bytes:
        resp = await self._request(
            "GET", f"/api/projects/{project_id}/export", params={"format": fmt}
        )
        return resp.content
