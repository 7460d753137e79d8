import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from personal_cloud.core.config import get_settings


_REQ_COUNT = Counter(
    "pc_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
_REQ_LATENCY = Histogram(
    "pc_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 120),
)

UPLOADS_TOTAL = Counter(
    "pc_uploads_total",
    "Upload attempts by outcome",
    ["outcome"],
)
UPLOAD_BYTES = Counter(
    "pc_upload_bytes_total",
    "Bytes stored by successful uploads",
)

_SKIP_METRICS_ROUTES = ("/metrics", "/health", "/healthz", "/readyz")


def _release() -> Optional[str]:
    return os.getenv("GIT_SHA") or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Adds a request ID and logs one JSON line per request.
    5xx responses and unhandled exceptions are logged at ERROR with full context.
    """

    async def dispatch(self, request: Request, call_next):
        # Propagate a request id if provided by upstream (proxy), else generate.
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.time()
        logger = logging.getLogger("pc.http")
        try:
            response = await call_next(request)
        except Exception:
            payload = self._payload(request, request_id, 500, start)
            payload["event"] = "http_exception"
            logger.exception(json.dumps(payload, ensure_ascii=False))
            raise

        payload = self._payload(request, request_id, response.status_code, start)
        if response.status_code >= 500:
            logger.error(json.dumps(payload, ensure_ascii=False))
        elif response.status_code >= 400:
            logger.warning(json.dumps(payload, ensure_ascii=False))
        else:
            logger.info(json.dumps(payload, ensure_ascii=False))

        route = payload["route"]
        if route not in _SKIP_METRICS_ROUTES:
            _REQ_COUNT.labels(request.method, route, str(response.status_code)).inc()
            _REQ_LATENCY.labels(request.method, route).observe(time.time() - start)

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _payload(request: Request, request_id: str, status_code: int, start: float) -> dict:
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or request.url.path
        return {
            "event": "http_request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "route": route,
            "status_code": status_code,
            "status_class": int(status_code // 100),
            "duration_ms": int((time.time() - start) * 1000),
            "client_ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
            "release": _release(),
        }


def configure_logging() -> None:
    """Configure a sane default logging setup for the backend."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    # Ensure our loggers are visible even if uvicorn already configured logging
    for name in ("pc.http", "pc.tracing", "pc.documents", "pc.storage", "pc.capacity"):
        logging.getLogger(name).setLevel(logging.INFO)
    # Security events must never be filtered below WARNING
    logging.getLogger("pc.security").setLevel(logging.WARNING)


def init_tracing(app: FastAPI) -> None:
    """
    Attach request logging and, if configured, error tracing (Sentry).
    """
    settings = get_settings()
    configure_logging()

    app.add_middleware(RequestLoggingMiddleware)

    dsn: Optional[str] = settings.sentry_dsn
    if not dsn:
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
    except ImportError:
        logging.getLogger("pc.tracing").warning("sentry-sdk not installed; skipping Sentry tracing setup")
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.sentry_env or settings.environment,
        release=_release(),
        integrations=[FastApiIntegration()],
        # Can be overridden in env; keep low by default
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
    )
    logging.getLogger("pc.tracing").info("Sentry tracing initialized")
