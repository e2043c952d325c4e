"""FastAPI application for the CMS fee-schedule importer"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from cms_fee_import import models  # noqa: F401  (registers tables on Base.metadata)
from cms_fee_import.config import settings
from cms_fee_import.database import Base, engine
from cms_fee_import.logging_config import configure_logging
from cms_fee_import.middleware import LoggingMiddleware
from cms_fee_import.routers import admin_import, health

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting CMS fee import API", version=settings.app_version)

    # Create database tables
    Base.metadata.create_all(bind=engine)

    logger.info("CMS fee import API started successfully")

    yield

    logger.info("Shutting down CMS fee import API")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Imports CMS fee schedules, GPCIs and ZIP crosswalks into the benchmark store",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

app.include_router(health.router, tags=["health"])
app.include_router(admin_import.router, prefix="/admin", tags=["admin"])
