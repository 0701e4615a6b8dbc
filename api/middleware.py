"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from connectors.errors import ConnectorError

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_MAX_AGE = 86400

# dropped when a preflight answer is re-emitted without a body
_BODY_HEADERS = {"content-length", "content-type"}


def register_middleware(app: FastAPI) -> None:
    """
    Attach app-level middleware.  ``app.state.settings`` must already be set.

    Starlette runs the last-added middleware first, so the order here is
    innermost → outermost: timer, error catch-all, CORS, OPTIONS handling.
    """

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response

    @app.middleware("http")
    async def unhandled_errors(request: Request, call_next):
        # inside CORSMiddleware, so a 500 still gets CORS headers
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(status_code=500, content={"error": "An internal error occurred"})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[app.state.settings.allowed_origin],
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        max_age=CORS_MAX_AGE,
    )

    @app.middleware("http")
    async def options_without_body(request: Request, call_next):
        if request.method != "OPTIONS":
            return await call_next(request)
        headers = request.headers
        if "origin" not in headers or "access-control-request-method" not in headers:
            return Response(status_code=200)
        # CORS preflight: CORSMiddleware decides, the body is dropped
        preflight = await call_next(request)
        kept = {k: v for k, v in preflight.headers.items() if k.lower() not in _BODY_HEADERS}
        return Response(status_code=preflight.status_code, headers=kept)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConnectorError)
    async def connector_error_handler(request: Request, exc: ConnectorError) -> JSONResponse:
        level = logging.ERROR if exc.http_status >= 500 else logging.INFO
        logger.log(level, "%s %s → %d %s", request.method, request.url.path, exc.http_status, exc.kind.value)
        return JSONResponse(status_code=exc.http_status, content=exc.to_payload())
