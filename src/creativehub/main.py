"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from creativehub import __version__
from creativehub.api.middleware import RequestIDMiddleware
from creativehub.api.router import api_router
from creativehub.config import settings
from creativehub.database import create_database
from creativehub.exceptions import AuthFlowError, DependencyError, MissingFields, ValidationError
from creativehub.logging import setup_logging

setup_logging()

logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.sentry_dsn:
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Schema is managed by Alembic migrations; the engine connects on first use
    app.state.database = create_database()
    yield
    await app.state.database.close()


app = FastAPI(
    title="Creative Hub Auth API",
    description="Account login with emailed one-time-code step-up for privileged users",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
    openapi_url="/api/openapi.json" if settings.debug_enabled else None,
)


@app.exception_handler(AuthFlowError)
async def auth_flow_error_handler(_request: Request, exc: AuthFlowError) -> JSONResponse:
    """Render auth errors as ``{"detail", "code", ...details}``."""
    message = exc.message
    if isinstance(exc, DependencyError):
        logger.error(f"{exc.code}: {exc.message}", exc_info=exc)
        message = type(exc).default_message
    else:
        logger.info(f"{exc.code}: {exc.message}")

    headers = {}
    wait_seconds = exc.details.get("wait_seconds")
    if exc.status_code == 429 and wait_seconds is not None:
        headers["Retry-After"] = str(wait_seconds)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": message, "code": exc.code, **exc.details},
        headers=headers or None,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies are client errors (400), not 422s."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    missing = any(error["type"] == "missing" for error in errors)
    error_class = MissingFields if missing else ValidationError
    return JSONResponse(
        status_code=400,
        content={
            "detail": error_class.default_message,
            "code": error_class.code,
            "errors": errors,
        },
    )


# Request ID middleware for log correlation
app.add_middleware(RequestIDMiddleware)  # type: ignore[arg-type]

# CORS middleware
app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

# Include API router
app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    from creativehub.logging import get_uvicorn_log_config

    uvicorn.run(
        "creativehub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
