"""
Storefront SEO Audit - FastAPI Backend
Main application entry point with health check and API routing.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_queue_settings
from database import create_engine, create_schema, create_session_maker
from routers import audit, health
from services.audit import build_audit_service
from services.audit_queue import get_job_runner, recover_stalled_audits

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    configure_logging()
    logger.info("Starting Storefront SEO Audit API...")
    validate_queue_settings()

    engine = create_engine()
    session_maker = create_session_maker(engine)
    app.state.engine = engine
    app.state.session_maker = session_maker

    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            await create_schema(engine)
            logger.info("Database schema verified.")
        except Exception as e:
            logger.warning(f"Database bootstrap skipped: {e}")
    try:
        recovered = await recover_stalled_audits(session_maker)
        if recovered:
            logger.info(f"Recovered {recovered} stalled audits after startup.")
    except Exception as exc:
        logger.warning(f"Stalled audit recovery skipped: {exc}")

    # Auto mode pings Redis with a blocking client.
    job_runner = await asyncio.to_thread(get_job_runner)
    service = build_audit_service(session_maker, job_runner=job_runner)
    app.state.audit_service = service
    logger.info(f"Audit jobs run via the {service.job_runner.name} runner.")
    yield
    # Shutdown
    await service.close()
    await engine.dispose()
    logger.info("Shutting down API...")


app = FastAPI(
    title="Storefront SEO Audit API",
    description="Audit Shopify storefront content for common SEO problems",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(audit.router, prefix="/audits", tags=["Audit"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Storefront SEO Audit API",
        "version": "0.1.0",
        "status": "running"
    }
