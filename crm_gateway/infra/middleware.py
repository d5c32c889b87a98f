"""Request middleware: request ids, access logging and CORS."""

import os
import uuid
import time
import logging
from typing import Callable
from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from crm_gateway.infra.config import config
from crm_gateway.infra.metrics import request_count, request_duration

request_logger = logging.getLogger("crm_gateway.request")

# Probes and scrapes are neither logged nor counted
UNTRACKED_PATHS = frozenset({"/metrics", "/api/health/live"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach an X-Request-ID (caller-supplied or generated) to every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log plus the http_requests_* metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in UNTRACKED_PATHS:
            return await call_next(request)

        request_id = getattr(request.state, "request_id", "unknown")
        fields = {"request_id": request_id, "method": request.method, "path": path}

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                "Request failed",
                extra={**fields, "error": str(e), "duration_ms": int((time.time() - start_time) * 1000)},
                exc_info=True,
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        request_logger.log(
            level,
            f"{request.method} {path} {response.status_code}",
            extra={**fields, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        request_count.labels(method=request.method, endpoint=path, status=str(response.status_code)).inc()
        request_duration.labels(method=request.method, endpoint=path).observe(duration_ms / 1000.0)

        response.headers["X-Response-Time-Ms"] = str(duration_ms)
        return response


def setup_cors(app):
    """
    Allow origins listed in CORS_ORIGINS (comma separated).

    Without CORS_ORIGINS, development allows any origin and every other
    environment allows none. A "*" entry is ignored outside development.
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
        if config.APP_ENV != "development":
            allowed_origins = [origin for origin in allowed_origins if origin != "*"]
    elif config.APP_ENV == "development":
        allowed_origins = ["*"]
    else:
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time-Ms"],
    )
