from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..routes_metrics import http_errors_total

AREAS = {"menu", "ordering-window", "orders", "admin", "caterer"}


def area_for(path: str) -> str:
    """Return the API area a path belongs to, e.g. ``orders`` or ``caterer``."""
    parts = path.strip("/").split("/")
    if len(parts) > 1 and parts[0] == "api" and parts[1] in AREAS:
        return parts[1]
    return "other"


class HttpErrorCounterMiddleware(BaseHTTPMiddleware):
    """Count 4xx and 5xx responses by status and API area."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if response.status_code >= 400:
            http_errors_total.labels(
                status=str(response.status_code), area=area_for(request.url.path)
            ).inc()
        return response
