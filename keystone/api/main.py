"""
KEYSTONE API - Main Application Entry Point

FastAPI backend exposing role-based access control and the audit trail.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from keystone.api.config import settings
from keystone.api.db.session import Database
from keystone.api.errors import InternalError, KeystoneError
from keystone.api.services.background_tasks import SessionSweepWorker

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map errors onto {"success": false, "error": {...}} responses."""

    @app.exception_handler(KeystoneError)
    async def keystone_error_handler(request: Request, exc: KeystoneError):
        if not exc.operational:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Validation failed",
                    "errors": errors,
                },
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        error = InternalError("An unexpected error occurred")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    database: Database = app.state.database
    if settings.DEBUG:
        await database.create_all()

    worker: Optional[SessionSweepWorker] = None
    if settings.SESSION_SWEEP_ENABLED:
        worker = SessionSweepWorker(database)
        await worker.start()
    app.state.session_sweeper = worker
    yield
    # Shutdown
    if worker:
        await worker.stop()
    await database.dispose()


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="KEYSTONE - Role-based access control and audit trail API",
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.database = database or Database()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    from keystone.api.auth.routes import router as auth_router
    from keystone.api.users.routes import router as users_router
    from keystone.api.roles.routes import router as roles_router
    from keystone.api.permissions.routes import router as permissions_router
    from keystone.api.audit_logs.routes import router as audit_logs_router

    app.include_router(auth_router, prefix="/api/v1/auth", tags=["Authentication"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(roles_router, prefix="/api/v1/roles", tags=["Roles"])
    app.include_router(permissions_router, prefix="/api/v1/permissions", tags=["Permissions"])
    app.include_router(audit_logs_router, prefix="/api/v1/audit-logs", tags=["Audit Logs"])

    # Health check endpoint
    @app.get("/api/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "service": settings.APP_NAME,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    setup_logging("DEBUG" if settings.DEBUG else "INFO")
    uvicorn.run(
        create_app(),
        host=settings.HOST,
        port=settings.PORT,
    )
