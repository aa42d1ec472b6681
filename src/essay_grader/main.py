# src/essay_grader/main.py
"""Main entry point for the essay grading API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from essay_grader.api.v1 import auth_router, essays_router
from essay_grader.core.errors import AppError, ValidationFailedError
from essay_grader.core.settings import settings
from essay_grader.db.session import create_tables

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Set the root log level from ``LOG_LEVEL``."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Essay submission and correction API",
    version=settings.app_version,
)

# Credentials travel as cookies, so CORS must allow them.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid data") if errors else "Invalid data"
    error = ValidationFailedError(str(message))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    error = AppError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(essays_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.environment == "development":
        create_tables()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("essay_grader.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
