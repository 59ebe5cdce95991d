"""FastAPI Application Setup for the Nova API.

Provides the FastAPI application factory with middleware, exception handlers
and lifespan management of the SQLite adapter and the data cache.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nova import __version__
from nova.api.models import PROBLEM_MEDIA_TYPE, ProblemDetails, ProblemError
from nova.api.question_routes import router as question_router
from nova.api.routes import router
from nova.config import ConfigError, Settings, get_settings, load_nova_config
from nova.db import ConstraintError, DatabaseError, SQLiteAdapter
from nova.db.schema import init_db
from nova.observability import (
    configure_logging,
    set_app_info,
    start_debug_server,
    track_request_latency,
)
from nova.services import (
    AlreadyExistsError,
    InvalidRequestError,
    NotFoundError,
    QuestionService,
    ServiceError,
    UserService,
    build_cache,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Application Metadata
# =============================================================================

API_TITLE = "Nova API"
API_DESCRIPTION = """
## Nova

User and question management backed by an embedded SQLite store.

- **Users**: create, replace, modify, read and delete user records
- **Questions**: single-choice, multiple-choice, judgement and essay questions

Errors are returned as `application/problem+json`.
"""

API_VERSION = __version__

TAGS_METADATA = [
    {"name": "user", "description": "User management"},
    {"name": "question", "description": "Question management"},
    {"name": "system", "description": "Liveness and health checks"},
]

SLOW_REQUEST_MS = 1000

_ID_SEGMENT = re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


# =============================================================================
# Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown lifecycle.

    Handles:
    - Opening the SQLite adapter and applying the schema migrations
    - Building the data cache and warming it from the database
    - Closing both on shutdown
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting {API_TITLE} v{API_VERSION}")
    logger.info(f"Environment: {settings.APP_ENV}")

    db: SQLiteAdapter | None = None
    cache = None
    try:
        logger.info(f"Opening database {settings.DATABASE_PATH}")
        db = await SQLiteAdapter.open(settings.DATABASE_PATH, settings.db_config())
        applied = await init_db(db)
        if applied:
            logger.info(f"Applied schema migrations {applied}")

        cache = await build_cache(settings)
        users = await UserService(db, cache).warm_cache()
        questions = await QuestionService(db, cache).warm_cache()
        logger.info(f"Cache warmed with {users} users and {questions} questions")

        app.state.db = db
        app.state.cache = cache
        logger.info(f"{API_TITLE} started successfully")

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        if cache is not None:
            await cache.close()
        if db is not None:
            await db.close()
        raise

    yield

    # Shutdown
    logger.info("Shutting down...")

    try:
        await cache.close()
        logger.info("Cache closed")
    except Exception as e:
        logger.warning(f"Cache shutdown error: {e}")

    try:
        await db.close()
        logger.info("Database closed")
    except Exception as e:
        logger.warning(f"Database shutdown error: {e}")

    logger.info(f"{API_TITLE} shutdown complete")


# =============================================================================
# Exception Handlers
# =============================================================================


def problem_response(status_code: int, cause: str, headers: dict[str, str] | None = None) -> JSONResponse:
    """Render a problem envelope for the given status."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ProblemDetails.for_status(status_code, cause)),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )


async def problem_exception_handler(request: Request, exc: ProblemError) -> JSONResponse:
    return problem_response(exc.status, exc.cause)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (routing errors, 503 from dependencies)."""
    cause = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return problem_response(exc.status_code, cause, headers=exc.headers)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle request validation errors.

    Malformed bodies and path parameters are client errors answered with
    400 rather than FastAPI's default 422.
    """
    errors = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        errors.append(f"{loc}: {error['msg']}")

    return problem_response(status.HTTP_400_BAD_REQUEST, "; ".join(errors) or "invalid request")


async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map domain errors onto HTTP statuses."""
    if isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, AlreadyExistsError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, InvalidRequestError):
        status_code = status.HTTP_400_BAD_REQUEST
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return problem_response(status_code, str(exc))


async def database_exception_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    if isinstance(exc, ConstraintError):
        return problem_response(status.HTTP_409_CONFLICT, str(exc))

    request_id = getattr(request.state, "request_id", None)
    logger.error(f"Database error: {exc}", extra={"request_id": request_id})
    return problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, _internal_cause(request, exc))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception(f"Unhandled exception: {exc}", extra={"request_id": request_id})
    return problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, _internal_cause(request, exc))


def _internal_cause(request: Request, exc: Exception) -> str:
    # Don't leak internal errors in production
    settings: Settings = getattr(request.app.state, "settings", None) or get_settings()
    if settings.is_production:
        return "An internal error occurred"
    return str(exc)


# =============================================================================
# Middleware
# =============================================================================


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    """Add unique request ID to each request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


def endpoint_label(path: str) -> str:
    """Collapse identifiers in a path so latency series stay bounded."""
    return _ID_SEGMENT.sub("/{id}", path)


async def timing_middleware(request: Request, call_next: Callable) -> Response:
    """Add request timing information and record request latency."""
    start_time = time.perf_counter()

    with track_request_latency(endpoint_label(request.url.path), request.method) as outcome:
        response = await call_next(request)
        outcome["status"] = response.status_code

    duration_ms = (time.perf_counter() - start_time) * 1000
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    if duration_ms > SLOW_REQUEST_MS:
        logger.warning(
            f"Slow request: {request.method} {request.url.path} took {duration_ms:.2f}ms"
        )

    return response


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(settings)
    set_app_info(API_VERSION, settings.APP_ENV)

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
        debug=settings.DEBUG,
    )
    app.state.settings = settings

    # First added is innermost
    app.middleware("http")(timing_middleware)
    app.middleware("http")(request_id_middleware)

    app.add_exception_handler(ProblemError, problem_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ServiceError, service_exception_handler)
    app.add_exception_handler(DatabaseError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(router)
    app.include_router(question_router)

    logger.info(f"Created {API_TITLE} application")

    return app


# =============================================================================
# Application Instance
# =============================================================================

# Create the default application instance for uvicorn
app = create_app()


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Run the API server using uvicorn.

    The listener port and TLS material come from the YAML file named by
    ``NOVA_CONFIG_FILE`` when set, otherwise from the environment.
    """
    import uvicorn

    settings = get_settings()

    host = settings.API_HOST
    port = settings.API_PORT
    ssl_options: dict = {}
    if settings.NOVA_CONFIG_FILE:
        try:
            nova_config = load_nova_config(settings.NOVA_CONFIG_FILE)
            nova_config.validate_tls_files()
        except ConfigError as e:
            logger.error(f"Invalid listener configuration: {e}")
            raise SystemExit(1) from e
        host = nova_config.ipv4_addr or host
        port = nova_config.port or port
        ssl_options = nova_config.uvicorn_ssl_options()

    if settings.DEBUG:
        start_debug_server(settings.DEBUG_PORT)

    uvicorn.run(
        "nova.api.main:app",
        host=host,
        port=port,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=settings.DEBUG,
        timeout_keep_alive=30,
        **ssl_options,
    )


if __name__ == "__main__":
    main()
