"""
Authentication and shared service dependencies for FastAPI routes.

User identity comes from the X-User-Id header set by the upstream auth proxy.
Every project-scoped route resolves the project through
``get_authorized_project`` so non-owners see 404, never 403.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from researchdoc.database import get_db
from researchdoc.exceptions import NotFound, Unauthorized
from researchdoc.models.database_models import Project, User
from researchdoc.services.llm_client import LLMGatewayClient

logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """Extract the authenticated user ID from the request header. Raises 401 if missing."""
    if not x_user_id or not x_user_id.strip():
        raise Unauthorized("Missing X-User-Id header.")
    return x_user_id.strip()


async def get_or_create_user(
    user_id: str = Depends(get_current_user_id),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Ensure the user exists in the local users table. Creates if needed."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            id=user_id,
            email=x_user_email or f"{user_id}@researchdoc.local",
            name=x_user_name,
        )
        db.add(user)
        await db.flush()
        logger.info("Created new user: id=%s email=%s", user_id, user.email)

    return user


async def get_authorized_project(
    project_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Project:
    """
    Verify that the given project belongs to the current user.
    Returns the Project ORM object or raises 404.
    """
    result = await db.execute(
        select(Project).where(
            Project.id == project_id,
            Project.user_id == user_id,
        )
    )
    project = result.scalar_one_or_none()

    if project is None:
        raise NotFound(f"Project {project_id} not found.")

    return project


def get_llm_client() -> LLMGatewayClient:
    """Gateway client for the request; overridden in tests."""
    return LLMGatewayClient()
