"""FastAPI application factory."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import cast

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.v1 import api_router
from core import ApiError, settings
from core.logging import configure_logging
from services.rate_limiter import RateLimitMiddleware, get_rate_limiter

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("blogsphere.requests")

HEALTH_PATH = "/health"
INTERNAL_ERROR_MESSAGE = "Internal server error"


def format_validation_errors(exc: RequestValidationError) -> str:
    """Flatten pydantic errors into ``field: message`` pairs."""
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(
            str(part) for part in error.get("loc", ()) if part not in {"body", "query", "path"}
        )
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


async def handle_api_error(_request: Request, exc: Exception) -> JSONResponse:
    api_error = cast(ApiError, exc)
    return JSONResponse(api_error.to_body(), status_code=api_error.status_code)


async def handle_validation_error(_request: Request, exc: Exception) -> JSONResponse:
    validation_error = cast(RequestValidationError, exc)
    return JSONResponse(
        {"error": "Validation failed", "details": format_validation_errors(validation_error)},
        status_code=400,
    )


async def handle_http_exception(_request: Request, exc: Exception) -> JSONResponse:
    http_error = cast(StarletteHTTPException, exc)
    if http_error.status_code == 404 and http_error.detail == "Not Found":
        body = {"error": "Route not found"}
    else:
        body = {"error": str(http_error.detail)}
    return JSONResponse(body, status_code=http_error.status_code, headers=http_error.headers)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    body = {"error": INTERNAL_ERROR_MESSAGE}
    if settings.is_development:
        body["details"] = str(exc)
    return JSONResponse(body, status_code=500)


async def log_requests(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    request_logger.info(
        "%s %s - %s - %.1fms - %s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        client,
    )
    return response


def create_app() -> FastAPI:
    configure_logging(settings.log_level)

    application = FastAPI(title=settings.app_name)

    application.middleware("http")(log_requests)
    application.add_middleware(
        RateLimitMiddleware,
        limiter_factory=get_rate_limiter,
        exempt_paths={HEALTH_PATH},
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(ApiError, handle_api_error)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(StarletteHTTPException, handle_http_exception)
    application.add_exception_handler(Exception, handle_unexpected_error)

    application.include_router(api_router)

    @application.get(HEALTH_PATH, include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return application
