# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# Counters
orders_created_total = Counter("orders_created_total", "Total orders created")
orders_created_total.inc(0)

order_transitions_total = Counter(
    "order_transitions_total", "Total order status transitions", ["status"]
)
order_transitions_total.labels(status="SERVED").inc(0)

notifications_failed_total = Counter(
    "notifications_failed_total", "Total status notifications that failed"
)
notifications_failed_total.inc(0)

menu_cache_hits_total = Counter(
    "menu_cache_hits_total", "Total menu listings served from cache"
)
menu_cache_hits_total.inc(0)

forced_logouts_total = Counter(
    "forced_logouts_total", "Total forced logouts of all students"
)
forced_logouts_total.inc(0)

db_slow_queries_total = Counter(
    "db_slow_queries_total", "Statements slower than DB_SLOW_QUERY_MS", ["db", "verb"]
)

http_errors_total = Counter(
    "http_errors_total", "Total HTTP error responses", ["status", "area"]
)
http_errors_total.labels(status="0", area="other").inc(0)

router = APIRouter()


@router.get("/metrics")
async def metrics_endpoint() -> Response:
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
