"""Error reporting helpers.

Unhandled exceptions go to Sentry when ``error_dsn`` is configured.
:class:`~api.app.errors.DomainError` instances are expected outcomes of
business rules and are never reported.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import sentry_sdk

from config import get_settings

from ..errors import DomainError

logger = logging.getLogger("obs")


def _drop_domain_errors(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], DomainError):
        return None
    return event


def init_sentry(dsn: Optional[str] = None, env: Optional[str] = None) -> None:
    """Initialize Sentry if a DSN is configured."""
    settings = get_settings()
    dsn = dsn or settings.error_dsn
    if not dsn:
        logger.info("ERROR_DSN not set; error sink disabled")
        return
    sentry_sdk.init(
        dsn=dsn,
        environment=env or settings.env,
        before_send=_drop_domain_errors,
        send_default_pii=False,
    )


def capture_exception(exc: Exception) -> None:
    """Forward an exception to Sentry if configured, else log it."""
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc)
    else:
        logger.error("unreported exception: %r", exc)
