"""FastAPI application initialization."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vertiblock import __version__
from vertiblock.api.auth import router as auth_router
from vertiblock.api.middleware import CorrelationIdMiddleware
from vertiblock.api.routes import router
from vertiblock.config import get_settings
from vertiblock.errors import AuthError
from vertiblock.models.envelope import ApiFailure
from vertiblock.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    # Initialize database connection pool and run migrations
    try:
        from vertiblock.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        logger.info("database_initialized")

        if settings.purge_expired_on_startup:
            from vertiblock.services.refresh_token_store import RefreshTokenStore

            await RefreshTokenStore().purge_expired()
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - auth endpoints will fail until it is reachable",
        )

    logger.info(
        "application_started",
        environment=settings.environment,
        log_level=settings.log_level,
    )

    yield

    try:
        from vertiblock.database import close_database

        await close_database()
    except Exception as e:
        logger.warning("database_close_failed", error=str(e))

    logger.info("application_shutdown")


app = FastAPI(
    title="VertiBlock Dashboard - Auth API",
    description="Account registration, login and token refresh for the greenhouse dashboard",
    version=__version__,
    lifespan=lifespan,
)


def _failure(error: str, status: int) -> JSONResponse:
    return JSONResponse(status_code=status, content=ApiFailure(error=error, status=status).to_envelope())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map domain errors to the failure envelope."""
    structlog.get_logger().info(
        "auth_request_rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
    )
    return _failure(exc.message, exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report the first invalid field as a 400 failure envelope."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]) if loc != "body")
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}" if field else message
    else:
        detail = "Request validation failed"

    structlog.get_logger().warning("validation_error", path=request.url.path, detail=detail)
    return _failure(detail, 400)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404 route, 405 method) in the envelope."""
    return _failure(str(exc.detail), exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and answer with a generic 500 envelope."""
    structlog.get_logger().error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _failure("Internal Server Error", 500)


settings = get_settings()

# Credentialed CORS so browsers send the refresh cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(router)
