"""Tests for the generation preview endpoint."""
import json

import pytest
from httpx import AsyncClient

from researchdoc.exceptions import UpstreamUnavailable
from researchdoc.models.database_models import Project
from researchdoc.services.templates import DEFAULT_TEMPLATES
from tests.conftest import AUTH_HEADERS, FakeLLM, count_rows


@pytest.mark.asyncio
async def test_generate_preview_returns_sections_without_saving(
    client: AsyncClient, fake_llm: FakeLLM, session_factory
):
    fake_llm.reply = json.dumps({"Problem Statement": "<p>Alerts are ignored.</p>"})

    resp = await client.post(
        "/api/documents/generate",
        json={"problem_statement": "Nurses ignore alerts", "industry": "Healthcare"},
        headers=AUTH_HEADERS,
    )

    assert resp.status_code == 200, resp.text
    sections = resp.json()["sections"]
    assert [s["title"] for s in sections] == list(DEFAULT_TEMPLATES.sections_for("Healthcare"))
    assert sections[0]["content"] == "<p>Alerts are ignored.</p>"
    assert await count_rows(session_factory, Project) == 0


@pytest.mark.asyncio
async def test_generate_preview_with_analysis_adds_suggested_sections(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.reply = "{}"

    resp = await client.post(
        "/api/documents/generate",
        json={
            "problem_statement": "Nurses ignore alerts",
            "industry": "Healthcare",
            "analysis": {
                "summary": "Prior study",
                "detected_industry": "Healthcare",
                "suggested_additional_sections": [{"title": "Alert Taxonomy", "reason": "Classify"}],
                "extracted_content": {"Background": "<p>120 alerts per shift</p>"},
            },
        },
        headers=AUTH_HEADERS,
    )

    assert resp.status_code == 200
    titles = [s["title"] for s in resp.json()["sections"]]
    assert "Alert Taxonomy" in titles
    assert "120 alerts per shift" in fake_llm.calls[0]["user"]


@pytest.mark.asyncio
async def test_generate_preview_gateway_error(client: AsyncClient, fake_llm: FakeLLM):
    fake_llm.error = UpstreamUnavailable()
    resp = await client.post(
        "/api/documents/generate",
        json={"problem_statement": "Nurses ignore alerts", "industry": "Healthcare"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_generate_preview_requires_auth(client: AsyncClient):
    resp = await client.post(
        "/api/documents/generate",
        json={"problem_statement": "x", "industry": "Healthcare"},
    )
    assert resp.status_code == 401
