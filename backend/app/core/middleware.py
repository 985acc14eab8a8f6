"""
MockExam - HTTP middleware

- RequestLoggingMiddleware: request id, timing headers, one log line per request
- SecurityHeadersMiddleware: fixed response headers
- RequestSizeLimitMiddleware: 413 when the declared body is over the limit
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.logging_config import logger, generate_request_id, set_request_id, set_user_id


# Probes and docs are served but not logged
QUIET_PATHS = frozenset({"/", "/health", "/api/v1/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico"})

SLOW_REQUEST_MS = 1000

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags the request with X-Request-ID (client supplied or generated) and logs its outcome"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

            path = request.url.path
            if path not in QUIET_PATHS:
                logger.log_request(request.method, path, response.status_code, elapsed_ms)
                if elapsed_ms > SLOW_REQUEST_MS:
                    logger.log_performance(f"{request.method} {path}", elapsed_ms, SLOW_REQUEST_MS)
            return response
        finally:
            set_request_id("")
            set_user_id("")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app: ASGIApp, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_size:
            logger.warning(
                f"[HTTP] Rejected {request.method} {request.url.path}: "
                f"{declared} bytes exceeds {self.max_size}"
            )
            message = f"Request body too large (limit {self.max_size} bytes)"
            return JSONResponse(
                status_code=413,
                content={
                    "success": False,
                    "message": message,
                    "error": {"code": "PAYLOAD_TOO_LARGE", "message": message,
                              "details": {"max_size": self.max_size}},
                },
            )
        return await call_next(request)
