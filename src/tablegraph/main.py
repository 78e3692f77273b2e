"""
TableGraph application entry point.

Run with ``uvicorn tablegraph.main:app``. Deployed databases are migrated
with ``alembic upgrade head`` before start; development databases are
created on startup unless ``AUTO_CREATE_SCHEMA`` is off.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tablegraph.api.errors import register_exception_handlers
from tablegraph.api.v1 import health
from tablegraph.api.v1 import router as v1_router
from tablegraph.core.config import Settings, settings
from tablegraph.core.logging import get_logger, setup_logging
from tablegraph.db.session import close_db, init_db
from tablegraph.services.bulk import select_strategy

logger = get_logger(__name__)


def should_create_schema(config: Settings) -> bool:
    return config.auto_create_schema and config.environment != "production"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version}",
        extra={
            "environment": settings.environment,
            "bulk_strategy": select_strategy(settings).name,
            "recompute_max_depth": settings.recompute_max_depth,
        },
    )
    await init_db(create_schema=should_create_schema(settings))

    yield

    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Build the application: logging, middleware, error envelope and routes."""
    setup_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs or settings.environment == "production",
    )

    app = FastAPI(
        title=settings.app_name,
        description="Tables with relations, rollups and formulas that stay up to date",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(v1_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()
