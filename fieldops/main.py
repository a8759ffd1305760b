"""
Field-Service Dispatch API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from sqlalchemy import text

from fieldops.api.v1 import router as api_v1_router
from fieldops.core.config import get_settings
from fieldops.core.database import get_session_context, get_session_factory
from fieldops.core.errors import DomainError
from fieldops.core.logging_config import configure_logging
from fieldops.core.middleware import SecurityHeadersMiddleware
from fieldops_shared.schemas.common import ErrorBody, ErrorResponse

settings = get_settings()
log = structlog.get_logger()

# Codes for HTTPExceptions raised outside the domain taxonomy (auth, routing).
HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def error_response(status: int, code: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=ErrorBody(code=code, message=message, status=status)).model_dump(),
        headers=headers,
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, str(exc.detail))


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "ERROR")
    return error_response(exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
    return error_response(422, "VALIDATION_ERROR", "; ".join(messages) or "Invalid request")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    log.info("Dispatch API starting", debug=settings.debug)
    yield
    log.info("Dispatch API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Field-Service Dispatch",
        description="Task lifecycle and search for field-service work orders.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware (outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # DomainError subclasses HTTPException, so register the narrower handler too.
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(session_factory=Depends(get_session_factory)):
        """Readiness check endpoint for startup probes: the database must answer."""
        try:
            async with get_session_context(session_factory) as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            log.warning("Database not ready", error=str(exc))
            return error_response(503, "NOT_READY", "Database unavailable")
        return {"status": "ready"}

    return app


app = create_app()
