# main.py

"""FastAPI application for hostel meal pre-ordering."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import from_url

from config import get_settings

from . import db as app_db
from .errors import DomainError, Unauthorized
from .middlewares import (
    HttpErrorCounterMiddleware,
    LoggingMiddleware,
    RequestIdMiddleware,
)
from .obs import capture_exception, init_sentry
from .obs.logging import configure_logging
from .routes_admin_menu import router as admin_menu_router
from .routes_admin_orders import router as admin_orders_router
from .routes_admin_users import router as admin_users_router
from .routes_caterer import router as caterer_router
from .routes_menu import router as menu_router
from .routes_metrics import router as metrics_router
from .routes_orders import router as orders_router
from .services.notifications import OutboxNotifier
from .utils.responses import domain_err, err, ok

settings = get_settings()
configure_logging(getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("api")
init_sentry(env=settings.env)

app = FastAPI(title="Hostel Meals API", version="1.0.0")
app.state.redis = from_url(settings.redis_url, decode_responses=True)
app.state.notifier = OutboxNotifier()
app.add_middleware(HttpErrorCounterMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.warning(
        "%s: %s",
        exc.code,
        exc.message,
        extra={"status": exc.status_code, "route": request.url.path},
    )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(domain_err(exc), status_code=exc.status_code, headers=headers)


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error", extra={"status": 500, "route": request.url.path}
    )
    capture_exception(exc)
    return JSONResponse(err(500, "Internal Server Error"), status_code=500)


@app.on_event("startup")
async def create_schema() -> None:
    await app_db.init_models()


@app.on_event("shutdown")
async def close_resources() -> None:
    await app_db.dispose()
    await app.state.redis.aclose()


@app.get("/health")
async def health() -> dict:
    return ok({"status": "ok", "env": settings.env})


app.include_router(menu_router)
app.include_router(orders_router)
app.include_router(admin_menu_router)
app.include_router(admin_orders_router)
app.include_router(admin_users_router)
app.include_router(caterer_router)
app.include_router(metrics_router)
