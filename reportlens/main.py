"""
FastAPI Application Entry Point
Medical Report Insights

Upload a medical report, analyze it in the background with Gemini and
serve the structured analysis back.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reportlens.core.config import settings
from reportlens.core.errors import AIUnavailableError
from reportlens.core.logging_config import configure_logging
from reportlens.database.session import AsyncSessionLocal, engine, init_db
from reportlens.api.middleware.rate_limiter import RateLimitMiddleware
from reportlens.api.middleware.logging_middleware import LoggingMiddleware
from reportlens.api.routes import reports, health
from reportlens.services.ai_service import GeminiAnalysisClient
from reportlens.services.prompt_builder import PromptBuilder
from reportlens.services.report_pipeline import ReportPipeline
from reportlens.services.report_store import ReportStore
from reportlens.services.text_extractor import text_extractor

# Configure logging before anything else
configure_logging()
logger = logging.getLogger(__name__)


# -- Lifespan (startup/shutdown) -----------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"  Environment: {settings.app_env}")
    logger.info(f"  AI Model:    {settings.ai_model}")

    # Initialize database tables (auto-create in dev mode)
    await init_db()
    logger.info("  Database: initialized")

    # AI client is created once; without a key every report fails fast
    try:
        ai_client = GeminiAnalysisClient(settings)
        logger.info("  AI API key: configured")
    except AIUnavailableError as e:
        ai_client = None
        logger.warning(f"  AI API key WARNING: {e}")

    store = ReportStore(AsyncSessionLocal)
    prompt_builder = PromptBuilder(settings.prompt_template_path)
    pipeline = ReportPipeline(store, text_extractor, prompt_builder, ai_client)

    app.state.report_store = store
    app.state.pipeline = pipeline
    app.state.ai_client = ai_client

    if settings.resume_pending_on_startup:
        await pipeline.resume_pending(settings.resume_pending_limit)

    logger.info(f"  {settings.app_name} is ready at http://localhost:{settings.port}")
    yield

    # Cleanup
    logger.info("Shutting down... (%d report(s) in flight)", pipeline.in_flight)
    try:
        await asyncio.wait_for(
            pipeline.drain(),
            timeout=settings.ai_timeout_seconds + settings.shutdown_grace_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "Shutdown: %d report(s) still in flight after the grace period", pipeline.in_flight
        )
    if ai_client is not None:
        await ai_client.close()
    await engine.dispose()
    logger.info("Shutdown complete.")


# -- FastAPI App ---------------------------------------------------------------
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "AI-powered medical report analysis. Upload a lab or medical report; "
        "the service extracts health metrics, scores them, and produces "
        "clinical and plain-language summaries.\n\n"
        "**DISCLAIMER:** This system is for informational purposes only "
        "and does not provide medical diagnosis."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# -- Middleware (outermost first) ----------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RateLimitMiddleware)

# -- Routes -------------------------------------------------------------------
app.include_router(health.router)
app.include_router(reports.router)


# -- Global Exception Handler -------------------------------------------------
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
            "disclaimer": settings.disclaimer,
        },
    )


# -- Root API Info ------------------------------------------------------------
@app.get("/api", include_in_schema=False)
async def api_info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "disclaimer": settings.disclaimer,
        "docs": "/docs",
        "health": "/api/v1/health",
    }


def run() -> None:
    import uvicorn
    uvicorn.run(
        "reportlens.main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production(),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
