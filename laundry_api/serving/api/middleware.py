"""
API Middleware

- Request logging with a request id bound to every log line of the request
- Per-client rate limiting, health probes exempt
- Security and caching headers
"""

import asyncio
from collections import defaultdict, deque
import time
from typing import Callable, Deque, Dict, Iterable, Tuple
import uuid

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its duration, tagged with the request id"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        laundry_id = request.query_params.get("laundry_id")
        start_time = time.perf_counter()

        structlog.contextvars.bind_contextvars(request_id=request_id)
        if laundry_id:
            structlog.contextvars.bind_contextvars(laundry_id=laundry_id)
        try:
            logger.info("Request started", method=request.method, path=request.url.path)
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000
            log = logger.warning if response.status_code >= 500 else logger.info
            log(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "laundry_id")

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter kept in process memory.

    Requests are counted per client host. Paths under ``exempt_prefixes``
    (orchestrator probes) are never limited. With several gunicorn workers
    each worker counts on its own. Clients idle for a whole window are
    forgotten, at most once per window.
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 60,
        exempt_prefixes: Iterable[str] = ("/api/v1/health",),
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.exempt_prefixes: Tuple[str, ...] = tuple(exempt_prefixes)
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    def _evict_idle(self, now: float) -> None:
        idle = [
            client_id
            for client_id, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window_seconds
        ]
        for client_id in idle:
            del self._hits[client_id]
        self._last_sweep = now

    async def _register(self, client_id: str) -> int:
        """Record one hit and return how many remain, or -1 when over the limit."""
        now = self._clock()
        async with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._evict_idle(now)
            hits = self._hits[client_id]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return -1
            hits.append(now)
            return self.max_requests - len(hits)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"
        remaining = await self._register(client_id)
        if remaining < 0:
            logger.warning("Rate limit exceeded", client=client_id, path=request.url.path)
            return JSONResponse(
                {"detail": "Rate limit exceeded"},
                status_code=429,
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Security headers on every response; dashboards are never cached"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # customer and revenue figures are per tenant and change with every order
        response.headers.setdefault("Cache-Control", "no-store")

        return response
