"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and ledger business metrics
(committed operations, their amounts and transaction retries).
Restrict /metrics to the internal network or the monitoring system.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through files in this directory
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

_metric_registry = None if MULTIPROCESS_MODE else REGISTRY

# HTTP
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry,
    multiprocess_mode='livesum'
)

# Ledger
ledger_operations_total = Counter(
    'storeflex_ledger_operations_total',
    'Committed ledger operations',
    ['operation'],
    registry=_metric_registry
)

ledger_amount = Histogram(
    'storeflex_ledger_amount',
    'Money moved by committed ledger operations (store currency)',
    ['operation'],
    registry=_metric_registry,
    buckets=(100, 500, 1000, 5000, 10000, 50000, 100000, 500000)
)

transaction_retries_total = Counter(
    'storeflex_transaction_retries_total',
    'Ledger transactions rolled back and retried after a write conflict',
    registry=_metric_registry
)


def record_ledger_operation(operation: str, amount=None) -> None:
    """Count a committed ledger operation and, when given, the amount it moved."""
    ledger_operations_total.labels(operation=operation).inc()
    if amount is not None:
        ledger_amount.labels(operation=operation).observe(float(amount))


def setup_metrics_instrumentation(app):
    """Register the request hooks that feed the HTTP metrics."""

    @app.before_request
    def start_request_timer():
        g.request_started_at = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started_at = g.pop('request_started_at', None)
        if started_at is None:
            return response

        endpoint = request.endpoint or 'unknown'
        try:
            http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(
                time.time() - started_at
            )
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        except ValueError as e:
            app.logger.warning(f"Failed to record metrics for {endpoint}: {e}")
        finally:
            http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (not authenticated)."""
    if MULTIPROCESS_MODE:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
    else:
        registry = REGISTRY
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
