import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import logging
from .logging_config import trace_id_var
from .metrics import prometheus_metrics

logger = logging.getLogger("ipinfo.http")

EXCLUDE_PATHS = {"/healthz", "/metrics"}


class TracingMiddleware(BaseHTTPMiddleware):
    """Request tracing and structured access logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Generate or reuse trace ID
        trace_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = trace_id_var.set(trace_id)

        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            latency_ms = round((time.time() - start_time) * 1000, 2)
            logger.error(f"Request failed: {e}", extra={
                "method": request.method,
                "path": path,
                "status": 500,
                "latency_ms": latency_ms,
                "client_ip": client_ip,
                "component": "http",
            })
            prometheus_metrics.increment_requests(500, path)
            raise
        finally:
            trace_id_var.reset(token)

        latency_ms = round((time.time() - start_time) * 1000, 2)
        prometheus_metrics.increment_requests(response.status_code, path)
        prometheus_metrics.observe_request_latency(latency_ms)
        self._log_request(request.method, path, response.status_code, latency_ms,
                          client_ip, trace_id)

        response.headers["X-Request-ID"] = trace_id
        return response

    def _log_request(self, method: str, path: str, status: int, latency_ms: float,
                     client_ip: str, trace_id: str):
        if path in EXCLUDE_PATHS and status < 400:
            return

        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        logger.log(level, f"{method} {path} {status} {latency_ms}ms", extra={
            "method": method,
            "path": path,
            "status": status,
            "latency_ms": latency_ms,
            "client_ip": client_ip,
            "trace_id": trace_id,
            "component": "http",
        })
