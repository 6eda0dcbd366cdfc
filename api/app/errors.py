"""Domain error taxonomy.

Every failure the ordering engine reports to a caller is a subclass of
:class:`DomainError`. Each carries a stable ``code``, an HTTP status used by
the exception handler in :mod:`api.app.main` and a ``details`` mapping with
enough structure for clients to render a specific message.
"""

from __future__ import annotations

from typing import Any, Iterable


class DomainError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """Bad input shape or values; the caller must correct and resubmit."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, errors: Iterable[str] | None = None, **details: Any) -> None:
        errs = list(errors or [])
        if errs:
            details["errors"] = errs
        super().__init__(message, details)
        self.errors = errs


class NotFound(DomainError):
    """A referenced tenant, user, item, variant or order does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any) -> None:
        super().__init__(
            f"{resource} {resource_id} not found",
            {"resource": resource, "id": str(resource_id)},
        )
        self.resource = resource
        self.resource_id = resource_id


class Unauthorized(DomainError):
    """Missing, malformed, expired or revoked credential."""

    code = "UNAUTHORIZED"
    status_code = 401


class AccessDenied(DomainError):
    """Role or tenant scoping violation."""

    code = "ACCESS_DENIED"
    status_code = 403


class InvalidTransition(DomainError):
    """Order state machine violation."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: str, requested: str, message: str | None = None) -> None:
        super().__init__(
            message or f"cannot move order from {current} to {requested}",
            {"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class OrderingWindowClosed(DomainError):
    """The ordering window for the requested date is closed."""

    code = "ORDERING_WINDOW_CLOSED"
    status_code = 422

    RULES = ("cutoff", "min_advance", "max_advance", "weekend")

    def __init__(self, rule: str, message: str, **details: Any) -> None:
        if rule not in self.RULES:
            raise ValueError(f"unknown ordering rule {rule!r}")
        super().__init__(message, {"rule": rule, **details})
        self.rule = rule


class InvalidItem(DomainError):
    """A cart line references an item or variant that cannot be ordered."""

    code = "INVALID_ITEM"
    status_code = 400

    def __init__(
        self,
        item_id: Any,
        variant_id: Any = None,
        reason: str = "not_found",
        message: str | None = None,
    ) -> None:
        target = f"variant {variant_id}" if variant_id is not None else f"menu item {item_id}"
        super().__init__(
            message or f"{target} is not available",
            {
                "item_id": str(item_id),
                "variant_id": None if variant_id is None else str(variant_id),
                "reason": reason,
            },
        )
        self.item_id = item_id
        self.variant_id = variant_id
        self.reason = reason


__all__ = [
    "DomainError",
    "ValidationError",
    "NotFound",
    "Unauthorized",
    "AccessDenied",
    "InvalidTransition",
    "OrderingWindowClosed",
    "InvalidItem",
]
