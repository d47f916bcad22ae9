"""Health check and metrics endpoints."""

import structlog
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.database import get_db
from ticketflow.schemas.common import HealthResponse

logger = structlog.get_logger()
router = APIRouter(tags=["health"])

# Prometheus metrics
TICKETS_CREATED = Counter("tickets_created_total", "Tickets created", ["source"])
ACTIVITY_APPENDED = Counter("activity_appended_total", "Activity entries appended", ["activity_type"])
ERRORS = Counter("errors_total", "Total errors", ["type"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint."""
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("health_db_unreachable", error=str(e))
        db_status = "error"

    return HealthResponse(status="healthy" if db_status == "ok" else "degraded", db=db_status)


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
