from __future__ import annotations

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("fieldpunch.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with the acting user and the elapsed time."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        started = time.perf_counter()
        actor = request.headers.get("X-User-Id") or "-"
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.exception("%s %s failed actor=%s %.1fms", request.method, request.url.path, actor, elapsed_ms)
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %s actor=%s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            actor,
            elapsed_ms,
        )
        return response
