import logging
import os
import random
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

LOG_SAMPLE_2XX = float(os.getenv("LOG_SAMPLE_2XX", "0.1"))

logger = logging.getLogger("api")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Emit one structured access log line per request.

    Successful responses are sampled at ``LOG_SAMPLE_2XX``; errors are always
    logged.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = int((time.perf_counter() - start) * 1000)
        status = response.status_code

        if 200 <= status < 300 and random.random() >= LOG_SAMPLE_2XX:
            return response

        log_fn = logger.error if status >= 500 else logger.info
        log_fn(
            "%s %s -> %s",
            request.method,
            request.url.path,
            status,
            extra={
                "route": request.url.path,
                "status": status,
                "latency_ms": dur_ms,
            },
        )
        return response
