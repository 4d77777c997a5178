"""API middleware: CORS, request logging, and error handling.

Starlette runs middleware last-added-first, so ``main.create_app`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware``; the
logger then records the status code the client actually received.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import CollectionNotFoundError, ProviderUnavailableError, RagVaultError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Most specific class first; anything else is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[RagVaultError], int], ...] = (
    (CollectionNotFoundError, 404),
    (ProviderUnavailableError, 503),
)


def parse_origins(raw: str) -> list[str]:
    """Split a comma-separated ``CORS_ORIGINS`` value; empty means ``["*"]``."""
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware so a chat frontend on another origin can call the API.

    Credentials are only allowed when the origins are explicit; browsers
    reject ``*`` combined with credentials.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log method, path, status and duration.

    The id is taken from an incoming ``X-Request-ID`` header when present,
    bound into the structlog context for everything logged while the
    request runs, and echoed on the response.  For the streaming upload
    endpoint the duration covers only the time to the first byte.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        response: Response | None = None

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                _logger.info(
                    "http_request",
                    method=request.method,
                    path=str(request.url.path),
                    status=response.status_code if response else 500,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )


def status_for(exc: RagVaultError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn uncaught ``RagVaultError`` subclasses into ``{error, detail}`` bodies.

    A missing collection becomes a 404 and an unreachable provider a 503;
    everything else is a 500.  Other exceptions fall through to FastAPI's
    default handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except RagVaultError as exc:
            status = status_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status, content=body.model_dump())
