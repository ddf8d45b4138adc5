"""
Structured Logging Configuration
Medical Report Insights

Provides application logging with request and AI-call context.
"""

import logging
import sys
from datetime import datetime, timezone

from reportlens.core.config import settings


def configure_logging() -> None:
    """Configure application-wide logging."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
        if settings.log_format != "json"
        else "%(message)s",
        stream=sys.stdout,
    )

    # Quieten noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


class RequestLogger:
    """Contextual logger for HTTP request and AI call tracking."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_request(
        self,
        request_id: str,
        method: str,
        path: str,
        status: int,
        duration_ms: float,
        client: str = "unknown",
    ) -> None:
        level = logging.WARNING if status >= 400 else logging.INFO
        self.logger.log(
            level,
            "[%s] %s %s -> %d (%.1fms) client=%s",
            request_id, method, path, status, duration_ms, client,
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    def log_ai_call(self, model: str, tokens: int, duration_ms: float, outcome: str) -> None:
        self.logger.info(
            "AI API call model=%s tokens=%d duration=%.0fms outcome=%s",
            model, tokens, duration_ms, outcome,
            extra={
                "model": model,
                "tokens_used": tokens,
                "duration_ms": round(duration_ms, 2),
                "outcome": outcome,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
