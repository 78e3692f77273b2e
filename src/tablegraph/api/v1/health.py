"""
Health check endpoints.

``/health`` answers without touching the database; ``/ready`` checks the
connection and, on PostgreSQL, that the bulk procedures are installed.
"""

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from tablegraph.api.deps import DbSession
from tablegraph.core.config import settings
from tablegraph.core.logging import get_logger
from tablegraph.db.procedures import missing_procedures
from tablegraph.services.bulk import LocalStrategy, select_strategy

logger = get_logger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    environment: str
    version: str


class ReadinessResponse(BaseModel):
    status: str
    database: str
    bulk_strategy: str
    missing_procedures: list[str] = []


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness for load balancers."""
    return HealthResponse(
        status="healthy",
        environment=settings.environment,
        version=settings.app_version,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(db: DbSession) -> ReadinessResponse:
    """
    Readiness check.

    Missing procedures do not make the service unready; bulk operations fall
    back to row-by-row writes, which the response reports.
    """
    strategy = select_strategy(settings).name
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
        return ReadinessResponse(status="unhealthy", database=f"error: {e}", bulk_strategy=strategy)

    dialect = db.bind.dialect.name
    missing: list[str] = []
    if dialect == "postgresql":
        missing = await missing_procedures(await db.connection())
    if dialect != "postgresql" or missing:
        strategy = LocalStrategy.name
    return ReadinessResponse(
        status="ready",
        database=dialect,
        bulk_strategy=strategy,
        missing_procedures=missing,
    )
