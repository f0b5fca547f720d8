"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import logging

from app.database import get_db
from app.models.schemas import HealthCheckResponse
from app.services.llm_service import LLMService, get_llm_service
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of database and LLM endpoint
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        db_status = "error"

    # Check LLM endpoint
    llm_status = "ok"
    if not llm.is_configured:
        llm_status = "not_configured"
    elif not await llm.check_health():
        llm_status = "error"

    # Overall status
    overall_status = "healthy" if db_status == "ok" and llm_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        llm=llm_status,
        timestamp=utcnow(),
    )
