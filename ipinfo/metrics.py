"""
Prometheus metrics for the IP info API
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
import time

from .config import API_VERSION

# Build info
BUILD_INFO = Gauge(
    'ipinfo_build_info',
    'Build information',
    ['version']
)

# Request counters
REQUESTS_TOTAL = Counter(
    'ipinfo_requests_total',
    'Total number of requests',
    ['status_class', 'path_group']
)

REQUEST_LATENCY = Histogram(
    'ipinfo_request_latency_ms',
    'Request latency in milliseconds',
    buckets=[0.5, 1, 2.5, 5, 10, 25, 50, 100, 250, 1000]
)

# Lookups against the databases
LOOKUPS_TOTAL = Counter(
    'ipinfo_lookups_total',
    'Database lookups by outcome',
    ['database', 'outcome']
)

# Reloads
RELOADS_TOTAL = Counter(
    'ipinfo_reloads_total',
    'Database reload attempts by outcome',
    ['database', 'outcome']
)

DATABASE_LOADED = Gauge(
    'ipinfo_database_loaded',
    'Whether the database is loaded (1) or not (0)',
    ['database']
)

DATABASE_LAST_RELOAD = Gauge(
    'ipinfo_database_last_reload_timestamp',
    'Unix time the serving database was loaded',
    ['database']
)


class PrometheusMetrics:
    """Service for managing Prometheus metrics."""

    def __init__(self):
        BUILD_INFO.labels(version=API_VERSION).set(1)

    def increment_requests(self, status_code: int, path: str = "/unknown"):
        """Increment request counter."""
        if 200 <= status_code < 300:
            status_class = "2xx"
        elif 400 <= status_code < 500:
            status_class = "4xx"
        elif 500 <= status_code < 600:
            status_class = "5xx"
        else:
            status_class = "other"

        if path.endswith("/reload"):
            path_group = "reload"
        elif path.startswith("/asn/"):
            path_group = "asn"
        elif path.startswith("/geo/"):
            path_group = "geo"
        elif path.startswith("/ipinfo/"):
            path_group = "ipinfo"
        else:
            path_group = "other"

        REQUESTS_TOTAL.labels(status_class=status_class, path_group=path_group).inc()

    def observe_request_latency(self, latency_ms: float):
        REQUEST_LATENCY.observe(latency_ms)

    def increment_lookups(self, database: str, outcome: str):
        LOOKUPS_TOTAL.labels(database=database, outcome=outcome).inc()

    def increment_reloads(self, database: str, outcome: str):
        RELOADS_TOTAL.labels(database=database, outcome=outcome).inc()

    def set_database_loaded(self, database: str, loaded: bool,
                            loaded_at: Optional[float] = None):
        DATABASE_LOADED.labels(database=database).set(1 if loaded else 0)
        if loaded:
            DATABASE_LAST_RELOAD.labels(database=database).set(loaded_at or time.time())

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics instance
prometheus_metrics = PrometheusMetrics()
