"""JSON envelopes returned by routes and exception handlers."""

from __future__ import annotations

from typing import Any, Dict

from ..errors import DomainError, OrderingWindowClosed, Unauthorized
from ..middlewares.request_id import request_id_ctx

HINTS: dict[type[DomainError], str] = {
    Unauthorized: "sign in again to get a fresh token",
    OrderingWindowClosed: "see /api/ordering-window for the dates still open",
}


def ok(data: Any) -> Dict[str, Any]:
    """Return a success envelope."""
    return {"ok": True, "data": data}


def err(
    code: int | str,
    message: str,
    details: Dict[str, Any] | None = None,
    hint: str | None = None,
) -> Dict[str, Any]:
    """Return an error envelope tagged with the current request id."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if hint:
        error["hint"] = hint
    if details:
        error["details"] = details
    return {"ok": False, "request_id": request_id_ctx.get(None), "error": error}


def domain_err(exc: DomainError) -> Dict[str, Any]:
    hint = next((text for cls, text in HINTS.items() if isinstance(exc, cls)), None)
    return err(exc.code, exc.message, exc.details or None, hint)
