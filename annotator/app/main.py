import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from annotator.app.api import annotations_router, images_router
from annotator.app.core.clock import Clock, system_clock
from annotator.app.core.config import settings
from annotator.app.core.logging import get_logger, setup_logging
from annotator.app.db.async_session import close_async_engine
from annotator.app.db.init_db import init_database, verify_connection
from annotator.app.exceptions import AnnotatorException, PayloadTooLargeError, http_error_code
from annotator.app.middleware.rate_limit import RateLimiter
from annotator.app.middleware.request_id import RequestIdMiddleware, get_request_id
from annotator.app.middleware.request_size import RequestSizeLimitMiddleware, SizeExceededError
from annotator.app.services.storage import MinioObjectStorage, ObjectStorage


def _validation_message(exc: RequestValidationError) -> tuple[str, Optional[str]]:
    """Summarize the first validation error as (message, field)."""
    errors = exc.errors()
    if not errors:
        return "Invalid request", None
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc) or None
    message = first.get("msg", "Invalid request")
    return (f"{field}: {message}" if field else message), field


def create_app(
    rate_limiter: Optional[RateLimiter] = None,
    storage: Optional[ObjectStorage] = None,
    clock: Clock = system_clock,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        rate_limiter: Limiter to admit requests with; built from settings if omitted
        storage: Object storage backend; MinIO from settings if omitted
        clock: Time source (epoch milliseconds) for the default limiter

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Verify the database, ensure tables and bucket, run the limiter sweep."""
        if not await verify_connection():
            logger.error("Database connection failed!")
            raise RuntimeError("Cannot connect to database")

        await init_database()
        await asyncio.to_thread(app.state.storage.ensure_bucket)

        limiter: RateLimiter = app.state.rate_limiter
        limiter.start()

        logger.info(
            "Application startup complete",
            extra={"debug_mode": settings.debug},
        )

        yield

        await limiter.stop()
        await close_async_engine()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Image Annotation Service",
        description="Image upload, circular annotations and threaded comments with share links",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.rate_limiter = rate_limiter or RateLimiter.from_settings(settings, clock=clock)
    app.state.storage = storage or MinioObjectStorage.from_settings(settings)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
        max_age=600,
    )

    # Sized for base64 image bodies
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.max_request_body_bytes)

    # Request ID middleware for tracing
    app.add_middleware(RequestIdMiddleware)

    app.include_router(images_router)
    app.include_router(annotations_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with database status and limiter table size."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}

        if await verify_connection():
            health_status["components"]["database"] = {"status": "ok"}
        else:
            health_status["status"] = "degraded"
            health_status["components"]["database"] = {"status": "error"}

        limiter: RateLimiter = request.app.state.rate_limiter
        health_status["components"]["rate_limiter"] = {
            "status": "ok",
            "tracked_clients": limiter.size(),
            "sweeping": limiter.running,
        }
        return health_status

    @app.exception_handler(AnnotatorException)
    async def annotator_exception_handler(request: Request, exc: AnnotatorException) -> JSONResponse:
        """Map service exceptions to their HTTP status and JSON body."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.headers(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Give framework HTTP errors the same {error, message} body.

        FastAPI reports a failed body read as a 400; when the read failed
        because the size limit tripped mid-stream, answer 413 instead.
        """
        if isinstance(exc.__cause__, SizeExceededError):
            too_large = PayloadTooLargeError(str(exc.__cause__))
            return JSONResponse(status_code=too_large.status_code, content=too_large.to_response())

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": http_error_code(exc.status_code), "message": str(exc.detail)},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Report malformed requests as invalid_argument (HTTP 400)."""
        message, field = _validation_message(exc)
        content: dict[str, Any] = {"error": "invalid_argument", "message": message}
        if field:
            content["field"] = field
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled exceptions server-side and return a generic 500.

        Tracebacks never leave the server; debug mode adds the exception
        message and type to the body.
        """
        request_id = get_request_id(request)

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            },
        )

        content: dict[str, Any] = {
            "error": "internal_error",
            "message": "Internal server error",
            "request_id": request_id,
        }
        if settings.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
