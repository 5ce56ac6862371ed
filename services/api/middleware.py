"""FastAPI middleware binding a correlation ID to each request."""

import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from shared.logging_config import set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reuses the caller's X-Correlation-ID or mints one, and logs request timing under it"""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get('X-Correlation-ID') or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        started = time.perf_counter()

        response = await call_next(request)
        response.headers['X-Correlation-ID'] = correlation_id

        logging.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }
        )
        return response
