"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime
import logging

from researchdoc.database import get_db
from researchdoc.dependencies.auth import get_llm_client
from researchdoc.models.schemas import HealthCheckResponse
from researchdoc.services.llm_client import LLMGatewayClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    llm: LLMGatewayClient = Depends(get_llm_client),
):
    """
    Health check endpoint to verify system status.

    The gateway is reported as configured or not; it is never called here so
    polling does not spend model credits.

    Returns:
        HealthCheckResponse with status of database and model gateway
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "error"

    gateway_status = "ok" if llm.is_configured else "not_configured"

    # Overall status
    overall_status = "healthy" if db_status == "ok" and gateway_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        llm_gateway=gateway_status,
        timestamp=datetime.utcnow()
    )
