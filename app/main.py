"""FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import assignments, cycles, health, meters
from app.core.config import settings
from app.core.database import Base, engine
from app.core.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from app.core.logging_utils import configure_logging

# Import models for Base.metadata.create_all - order matters for foreign keys
from app.models import (  # noqa: F401
    assignment,
    building,
    cycle,
    household,
    meter,
    reading,
    service,
    staff,
)

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup: Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Meter reading assignment and collection API",
    lifespan=lifespan,
)

ERROR_STATUS: dict[type[ServiceError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    DependencyError: 503,
}


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        400,
    )
    if status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


# Include API routers
app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(assignments.router, prefix="/api")
app.include_router(cycles.router, prefix="/api")
app.include_router(meters.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
