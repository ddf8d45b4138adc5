"""
Rate Limiting Middleware
Medical Report Insights

Sliding window rate limiting per IP address on report uploads.
Status polling and reads are never throttled.
"""

import time
import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from reportlens.core.config import settings

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/v1/reports/upload"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window rate limiter for uploads.
    Default: 10 uploads per 60 seconds per IP.
    """

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        trusted_proxies: Optional[List[str]] = None,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self.trusted_proxies = set(
            settings.trusted_proxies_list if trusted_proxies is None else trusted_proxies
        )
        self._windows: Dict[str, Deque[float]] = {}
        self._last_sweep = time.time()
        logger.info(
            f"Rate limiter: {self.max_requests} uploads/{self.window_seconds}s per IP"
        )

    def _get_client_ip(self, request: Request) -> str:
        """Client IP; X-Forwarded-For is honoured only from a trusted proxy."""
        peer = request.client.host if request.client else "unknown"
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for and peer in self.trusted_proxies:
            return forwarded_for.split(",")[0].strip()
        return peer

    def _sweep(self, now: float) -> None:
        """Drop clients with no upload inside the current window."""
        cutoff = now - self.window_seconds
        stale = [ip for ip, window in self._windows.items() if not window or window[-1] < cutoff]
        for ip in stale:
            del self._windows[ip]
        self._last_sweep = now

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path != UPLOAD_PATH:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        now = time.time()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)
        window = self._windows.setdefault(client_ip, deque())

        # Remove timestamps outside the window
        while window and window[0] < now - self.window_seconds:
            window.popleft()

        if len(window) >= self.max_requests:
            remaining_wait = int(window[0] + self.window_seconds - now + 1)
            logger.warning(f"Upload rate limit exceeded for IP {client_ip}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "detail": f"Maximum {self.max_requests} uploads per {self.window_seconds} seconds.",
                    "retry_after_seconds": remaining_wait,
                    "disclaimer": settings.disclaimer,
                },
                headers={"Retry-After": str(remaining_wait)},
            )

        window.append(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(self.max_requests - len(window))
        response.headers["X-RateLimit-Window"] = str(self.window_seconds)
        return response
