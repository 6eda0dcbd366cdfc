"""Slow query logging for SQLAlchemy engines."""

from __future__ import annotations

import logging
import os
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..routes_metrics import db_slow_queries_total

SLOW_QUERY_MS = int(os.getenv("DB_SLOW_QUERY_MS", "200"))

logger = logging.getLogger("obs")


def _verb(statement: str) -> str:
    head = statement.lstrip().split(None, 1)
    return head[0].upper() if head else "UNKNOWN"


def add_query_logger(engine: Engine, label: str) -> None:
    """Log and count statements on ``engine`` slower than ``DB_SLOW_QUERY_MS``.

    Only the statement text is logged, never its bound parameters.
    """
    target = getattr(engine, "sync_engine", engine)

    @event.listens_for(target, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start", []).append(time.perf_counter())

    @event.listens_for(target, "after_cursor_execute")
    def _finish(conn, cursor, statement, parameters, context, executemany):
        started = conn.info["query_start"].pop()
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms <= SLOW_QUERY_MS:
            return
        verb = _verb(statement)
        db_slow_queries_total.labels(db=label, verb=verb).inc()
        sql = " ".join(statement.split())
        if len(sql) > 200:
            sql = sql[:197] + "..."
        logger.warning(
            "slow query %dms db=%s sql=%s",
            int(elapsed_ms),
            label,
            sql,
            extra={"latency_ms": int(elapsed_ms)},
        )
