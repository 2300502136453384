"""
EasyQ Service - Main Application Entry Point

HTTP surface over one EasyQ runtime: connection management, search,
random generation and key distribution.

Security Notes:
- Binds to 127.0.0.1 only (no external access)
- All /api/v1 endpoints except token issuance require a bearer JWT
- Key material and backend credentials are never logged
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api import auth, connection, keys, randomness, search
from .config import Settings, settings
from .connection.manager import ResourceFactory
from .exceptions import EasyQError, Status
from .resources import create_resource
from .runtime import EasyQRuntime

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

HTTP_STATUS = {
    Status.GENERAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    Status.NOT_INITIALIZED: status.HTTP_409_CONFLICT,
    Status.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    Status.RUNTIME_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    Status.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    Status.AUTHENTICATION_ERROR: status.HTTP_502_BAD_GATEWAY,
    Status.CONNECTION_ERROR: status.HTTP_502_BAD_GATEWAY,
}


async def easyq_error_handler(request: Request, exc: EasyQError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_STATUS.get(exc.status, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={
            "status": exc.status.name,
            "code": int(exc.status),
            "detail": exc.detail,
        },
    )


def create_app(
    app_settings: Optional[Settings] = None,
    resource_factory: ResourceFactory = create_resource,
) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info("Starting %s v%s", app_settings.app_name, app_settings.app_version)
        logger.info("Binding to %s:%d (localhost only)", app_settings.host, app_settings.port)

        runtime = EasyQRuntime(app_settings, resource_factory)
        runtime.initialize()
        app.state.runtime = runtime

        yield

        logger.info("Shutting down %s", app_settings.app_name)
        await runtime.shutdown()

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="Quantum search, randomness and key distribution runtime",
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
        lifespan=lifespan,
    )
    app.add_exception_handler(EasyQError, easyq_error_handler)

    app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
    app.include_router(connection.router, prefix="/api/v1/connection", tags=["Connection"])
    app.include_router(search.router, prefix="/api/v1/search", tags=["Search"])
    app.include_router(randomness.router, prefix="/api/v1/random", tags=["Randomness"])
    app.include_router(keys.router, prefix="/api/v1/keys", tags=["Key Distribution"])

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        runtime = request.app.state.runtime
        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "connection_state": runtime.manager.state.value,
        }

    return app


app = create_app()


def run() -> None:
    uvicorn.run(
        "easyq.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
