"""
Shared fixtures for the research document backend tests.

Each test gets its own in-memory SQLite database (aiosqlite, one shared
connection via StaticPool) with tables created from the ORM metadata.  The DB
dependency is overridden with a per-request session that commits on success
and rolls back on error, like the production ``get_db``.  The model gateway is
replaced by ``FakeLLM``, which returns scripted replies and records prompts.
"""
from __future__ import annotations

import json
import os
from typing import Any, AsyncGenerator, AsyncIterator, List, Optional

# Point settings at SQLite *before* any app module is imported, so the global
# engine never tries to reach PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["LLM_API_KEY"] = "test-key"

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from researchdoc.database import Base, get_db  # noqa: E402
from researchdoc.dependencies.auth import get_llm_client  # noqa: E402
from researchdoc.main import app  # noqa: E402


# ---------------------------------------------------------------------------
# Fake model gateway
# ---------------------------------------------------------------------------

class FakeLLM:
    """
    Stand-in for ``LLMGatewayClient``.

    ``reply`` is returned by ``complete``; ``stream_chunks`` are yielded by
    ``stream_chat`` as raw SSE text.  Set ``error`` to an exception instance
    to make the next call raise it, or ``stream_error`` to fail a stream after
    its chunks.
    """

    def __init__(self) -> None:
        self.reply: str = "{}"
        self.stream_chunks: List[str] = []
        self.stream_error: Optional[Exception] = None
        self.error: Optional[Exception] = None
        self.calls: List[dict] = []
        self.is_configured = True

    async def complete(self, system: str, user: str, max_tokens: int) -> str:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return self.reply

    async def stream_chat(self, system: str, user: str, max_tokens: int) -> AsyncIterator[str]:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens, "stream": True})
        if self.error is not None:
            raise self.error
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error


def sse_delta(text: str) -> str:
    """One OpenAI-style streaming chunk carrying *text*."""
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}) + "\n\n"


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker,
    fake_llm: FakeLLM,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB and gateway
    dependencies overridden.
    """

    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_llm_client] = lambda: fake_llm

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AUTH_HEADERS = {
    "X-User-Id": "test-user-1",
    "X-User-Email": "test1@example.com",
    "X-User-Name": "Test User 1",
}

AUTH_HEADERS_USER2 = {
    "X-User-Id": "test-user-2",
    "X-User-Email": "test2@example.com",
    "X-User-Name": "Test User 2",
}


async def count_rows(session_factory: async_sessionmaker, model: Any) -> int:
    """Count rows of *model* in a fresh, short-lived session."""
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


async def create_project(
    client: AsyncClient,
    problem_statement: str = "Nurses miss medication alerts during shift handover",
    industry: str = "Healthcare",
    headers: Optional[dict] = None,
    **fields: Any,
) -> dict:
    """Create a project without a model call (blank template sections)."""
    body = {
        "problem_statement": problem_statement,
        "industry": industry,
        "generate_content": False,
        **fields,
    }
    resp = await client.post("/api/projects", json=body, headers=headers or AUTH_HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()
