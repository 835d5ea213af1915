"""Tests for authentication boundaries.

Verifies that user-scoped endpoints require X-User-Id and that
users cannot access other users' projects.
"""
import pytest
from httpx import AsyncClient

from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, create_project


@pytest.mark.asyncio
async def test_projects_requires_auth_header(client: AsyncClient):
    """GET /api/projects without X-User-Id should return 401."""
    resp = await client.get("/api/projects")
    assert resp.status_code == 401
    assert resp.json()["error"] == "Unauthorized"


@pytest.mark.asyncio
async def test_create_project_requires_auth_header(client: AsyncClient):
    resp = await client.post(
        "/api/projects",
        json={"problem_statement": "p", "industry": "Healthcare", "generate_content": False},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_blank_user_id_is_rejected(client: AsyncClient):
    resp = await client.get("/api/projects", headers={"X-User-Id": "   "})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_assistant_and_documents_require_auth(client: AsyncClient):
    resp = await client.post("/api/assistant/ask", json={"question": "Why?"})
    assert resp.status_code == 401

    resp = await client.post(
        "/api/documents/generate",
        json={"problem_statement": "p", "industry": "Healthcare"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_wrong_user_cannot_access_project(client: AsyncClient):
    """User 2 should get 404 when accessing user 1's project."""
    project = await create_project(client)

    resp = await client.get(f"/api/projects/{project['id']}", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 404

    resp = await client.get(f"/api/projects/{project['id']}/sections", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 404

    resp = await client.get(f"/api/projects/{project['id']}/export", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_wrong_user_cannot_modify_project(client: AsyncClient):
    project = await create_project(client)
    section_id = project["sections"][1]["id"]

    resp = await client.patch(
        f"/api/projects/{project['id']}/sections/{section_id}",
        json={"content": "<p>hijacked</p>"},
        headers=AUTH_HEADERS_USER2,
    )
    assert resp.status_code == 404

    resp = await client.delete(f"/api/projects/{project['id']}", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 404

    # Still intact for the owner
    resp = await client.get(f"/api/projects/{project['id']}", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["sections"][1]["content"] == ""


@pytest.mark.asyncio
async def test_nonexistent_project_returns_404(client: AsyncClient):
    resp = await client.get("/api/projects/999999", headers=AUTH_HEADERS)
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"
