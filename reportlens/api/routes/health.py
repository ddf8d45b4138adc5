"""
Health & Diagnostics Routes
Medical Report Insights

Endpoints:
  GET /api/v1/health      System health check
  GET /api/v1/test-llm    Quick LLM connectivity test
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from reportlens.database.session import check_database_connection
from reportlens.schemas.report import HealthResponse
from reportlens.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="System health check",
    description="Returns the health of the database and whether the AI service is configured.",
)
async def health_check(request: Request):
    db_ok = await check_database_connection()
    ai_client = getattr(request.app.state, "ai_client", None)

    overall = "healthy" if db_ok and ai_client is not None else "degraded"

    return HealthResponse(
        status=overall,
        version=settings.app_version,
        database="healthy" if db_ok else "unhealthy",
        ai="configured" if ai_client is not None else "unavailable",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/test-llm",
    summary="Test LLM connectivity",
    description=(
        "Sends a simple 'Hello' message to Gemini and returns the response. "
        "Use this to verify that the AI API key and model are correctly configured."
    ),
    responses={
        200: {"description": "LLM responded successfully"},
        503: {"description": "LLM unavailable or misconfigured"},
    },
)
async def test_llm(request: Request):
    logger.info("LLM connectivity test requested")
    ai_client = getattr(request.app.state, "ai_client", None)
    if ai_client is None:
        result = {"status": "error", "error": "AI service not available - missing API key"}
    else:
        result = await ai_client.test_connection()

    if result.get("status") == "ok":
        return {
            "status": "ok",
            "model": result.get("model"),
            "response": result.get("response"),
            "disclaimer": settings.disclaimer,
        }

    # Return 503 on failure so load balancers / monitoring picks it up
    return JSONResponse(
        status_code=503,
        content={
            "status": "error",
            "error": result.get("error", "Unknown error"),
            "hint": "Check MEDICAL_AI_API_KEY in your .env file and verify the model name.",
            "disclaimer": settings.disclaimer,
        },
    )
