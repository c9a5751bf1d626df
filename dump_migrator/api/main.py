"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import ConfigError, DatastoreConnectionError, MigrationError, UnknownTargetError
from .routes import migrations, preview, targets

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dump Migrator API",
    description="Preview and migrate legacy SQL dumps into the hospital record schema",
    version=__version__,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def status_for(error: MigrationError) -> int:
    """HTTP status of a call-level error."""
    if isinstance(error, UnknownTargetError):
        return 404
    if isinstance(error, ConfigError):
        return 500
    if isinstance(error, DatastoreConnectionError):
        return 503
    return 400


@app.exception_handler(MigrationError)
async def migration_error_handler(request: Request, exc: MigrationError):
    status_code = status_for(exc)
    logger.warning(f"{request.method} {request.url.path} failed ({status_code}): {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Include routers
app.include_router(targets.router, prefix="/api/targets", tags=["targets"])
app.include_router(preview.router, prefix="/api/preview", tags=["preview"])
app.include_router(migrations.router, prefix="/api/migrations", tags=["migrations"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
