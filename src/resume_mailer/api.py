"""FastAPI application factory for the resume mailer.

Endpoints:

- ``GET /api/health``: liveness
- ``GET /api``: API root information
- ``OPTIONS /api/send-resume``: CORS preflight
- ``POST /api/send-resume``: email the resume to the posted address
- ``GET /api/metrics``: Prometheus metrics

Per-process state (dispatcher, rate limiter, configuration, metrics) lives
on ``app.state``; nothing is module-global.

Example:
    Creating and running the API application::

        from resume_mailer.api import create_app

        app = create_app(dispatcher, rate_limiter, config)
        uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from datetime import datetime, timezone
from typing import AsyncContextManager, Callable, Optional
import json
import logging
from urllib.parse import urlsplit

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ServiceConfig
from .dispatcher import ResumeDispatcher
from .errors import DispatchError, EnvelopeInvalid, ResourceUnavailable, SERVICE_UNAVAILABLE_ERRORS
from .models import (
    ErrorResponse,
    HealthResponse,
    RootResponse,
    SendResumePayload,
    SendResumeResponse,
)
from .prometheus import ResumeMetrics
from .rate_limit import RateLimiter, client_id_from_headers
from .validation import EmailValidationError, validate_email

logger = logging.getLogger(__name__)

SEND_RESUME_PATH = "/api/send-resume"
CORS_METHODS = "POST, OPTIONS"
CORS_HEADERS = "Content-Type"


def _error(status_code: int, error: str, message: str, headers: Optional[dict] = None, **extra) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, **extra).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _referer_origin(referer: Optional[str]) -> Optional[str]:
    """Scheme and host of a Referer URL, the form browsers send as Origin."""
    if not referer:
        return None
    parts = urlsplit(referer)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def _cors_headers(request: Request, config: ServiceConfig) -> dict[str, str]:
    """CORS headers for the send-resume endpoint.

    The allow-origin header is only echoed for allow-listed origins, or for
    any origin when ``FRONTEND_URL`` is ``*``.
    """
    headers = {
        "Access-Control-Allow-Methods": CORS_METHODS,
        "Access-Control-Allow-Headers": CORS_HEADERS,
        "Access-Control-Allow-Credentials": "true",
    }
    origin = request.headers.get("origin") or _referer_origin(request.headers.get("referer"))
    if origin and (config.allow_any_origin or origin in config.allowed_origins):
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


def create_app(
    dispatcher: ResumeDispatcher,
    rate_limiter: RateLimiter,
    config: ServiceConfig,
    metrics: Optional[ResumeMetrics] = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    dispatcher:
        :class:`ResumeDispatcher` that sends the resume.
    rate_limiter:
        :class:`RateLimiter` guarding the send endpoint.
    config:
        Service configuration.
    metrics:
        Optional Prometheus collector. Defaults to the dispatcher's, or a
        new one.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn.
    """
    api = FastAPI(title="Portfolio API", version=config.api_version, lifespan=lifespan)
    api.state.dispatcher = dispatcher
    api.state.rate_limiter = rate_limiter
    api.state.config = config
    api.state.metrics = metrics or dispatcher.metrics or ResumeMetrics()

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors with full details."""
        logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    @api.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            return JSONResponse(status_code=405, content={"error": "Method not allowed"})
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return _error(404, "Not found", "The requested endpoint does not exist")
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @api.get("/api/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint for container monitoring."""
        return HealthResponse(
            status="OK",
            message="Server is running",
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )

    @api.get("/api", response_model=RootResponse)
    async def root():
        return RootResponse(message="Welcome to Portfolio API", version=api.state.config.api_version)

    @api.get("/api/metrics")
    async def metrics_endpoint():
        """Expose Prometheus metrics."""
        return Response(content=api.state.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    @api.api_route(SEND_RESUME_PATH, methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def send_resume(request: Request):
        """Validate the posted address and email the resume to it."""
        state = request.app.state
        cfg: ServiceConfig = state.config
        limiter: RateLimiter = state.rate_limiter
        collector: ResumeMetrics = state.metrics
        headers = _cors_headers(request, cfg)

        if request.method == "OPTIONS":
            return Response(status_code=200, headers=headers)
        if request.method != "POST":
            return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers=headers)

        client_id = client_id_from_headers(request.headers, request.client.host if request.client else None)
        admitted = await limiter.admit(client_id)
        collector.set_tracked_clients(len(limiter.records))
        if not admitted:
            collector.inc_rate_limited()
            logger.warning("Rate limit exceeded for client %s", client_id)
            retry_after = limiter.retry_after(client_id)
            return _error(
                429,
                "Too many requests",
                f"Rate limit exceeded. Maximum {limiter.max_requests} requests per "
                f"{_window_label(limiter.window_seconds)} per IP.",
                headers={**headers, "Retry-After": str(retry_after)},
            )

        try:
            raw_body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raw_body = {}
        try:
            payload = SendResumePayload.model_validate(raw_body if isinstance(raw_body, dict) else {})
        except ValidationError:
            payload = SendResumePayload()

        try:
            email = validate_email(payload.email)
        except EmailValidationError as exc:
            collector.inc_rejected(exc.kind.value)
            logger.warning("Rejected email from client %s: %s", client_id, exc.kind.value)
            return _error(400, exc.error, exc.user_message, headers=headers, reason=exc.kind.value)

        try:
            result = await state.dispatcher.dispatch(email)
        except EnvelopeInvalid as exc:
            return _error(400, "Invalid email", "Please provide a valid email address.", headers=headers, reason="EnvelopeInvalid")
        except ResourceUnavailable:
            return _error(
                503,
                "Service unavailable",
                "Resume file not found. Please contact the site administrator.",
                headers=headers,
            )
        except SERVICE_UNAVAILABLE_ERRORS:
            return _error(
                503,
                "Service unavailable",
                "Email service is currently unavailable. Please try again later.",
                headers=headers,
            )
        except DispatchError as exc:
            logger.error("Unclassified dispatch error [%s]: %s", exc.code, exc)
            return _internal_error(cfg, exc, headers)
        except Exception as exc:
            logger.exception("Error in %s", SEND_RESUME_PATH)
            return _internal_error(cfg, exc, headers)

        body = SendResumeResponse(success=True, message=result.message, messageId=result.message_id)
        return JSONResponse(status_code=200, content=body.model_dump(), headers=headers)

    return api


def _internal_error(config: ServiceConfig, exc: Exception, headers: dict[str, str]) -> JSONResponse:
    return _error(
        500,
        "Internal server error",
        "Failed to send resume. Please try again later.",
        headers=headers,
        detail=str(exc) if config.development else None,
    )


def _window_label(seconds: int) -> str:
    if seconds == 3600:
        return "hour"
    if seconds % 3600 == 0:
        return f"{seconds // 3600} hours"
    if seconds % 60 == 0:
        return f"{seconds // 60} minutes"
    return f"{seconds} seconds"
