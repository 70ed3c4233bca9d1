"""
FastAPI REST API Server for fusevol

HTTP surface over the volume driver.
"""

import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from fusevol.config import DriverConfig
from fusevol.driver import DRIVER_VERSION, VolumeDriver
from fusevol.types import Source, Volume, VolumeLocator, VolumeSpec
from fusevol.errors import (
    VolumeError,
    VolumeNotFoundError,
    VolumeAlreadyExistsError,
    VolumeAlreadyMountedError,
    VolumeNotMountedError,
    BackingStoreError,
    VolumeMountError,
    MountProviderError,
    SessionEstablishError,
    SessionMountError,
    MountReadyTimeoutError,
    VolumeUnmountError,
    UnsupportedOperationError,
    InvalidRequestError,
    StoreError,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Request/Response Models
# =============================================================================


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CreateVolumeRequest(BaseModel):
    """Request to create a new volume"""
    locator: VolumeLocator = Field(default_factory=VolumeLocator)
    source: Source = Field(default_factory=Source)
    spec: VolumeSpec = Field(default_factory=VolumeSpec)


class CreateVolumeResponse(BaseModel):
    """Created volume ID"""
    volume_id: str = Field(..., description="ID of the new volume")


class MountRequest(BaseModel):
    """Request to mount a volume"""
    mount_path: str = Field(..., min_length=1, description="Absolute mount point")
    options: Dict[str, str] = Field(default_factory=dict)


class UnmountRequest(BaseModel):
    """Request to unmount a volume"""
    mount_path: Optional[str] = Field(
        default=None,
        description="Expected mount point; the recorded one is always used"
    )
    options: Dict[str, str] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Overall health status")
    version: str = Field(..., description="Driver version")
    driver: str = Field(..., description="Driver name")
    active_sessions: int = Field(default=0, description="Live mount sessions")
    timestamp: str = Field(default_factory=_utc_now, description="Response timestamp")


class VolumeErrorResponse(BaseModel):
    """Uniform error response"""
    error_code: str = Field(..., description="Error code (see fusevol.errors.ERROR_CODES)")
    message: str = Field(..., description="Human readable description")
    details: Dict[str, Any] = Field(default_factory=dict, description="Extra error details")
    request_id: str = Field(..., description="Request tracking ID")
    timestamp: str = Field(default_factory=_utc_now, description="Error time (ISO 8601)")


# =============================================================================
# Error Code Mapping
# =============================================================================

ERROR_CODE_MAP = {
    VolumeNotFoundError: 404,
    VolumeAlreadyExistsError: 409,
    VolumeAlreadyMountedError: 409,
    VolumeNotMountedError: 409,
    BackingStoreError: 500,
    MountProviderError: 502,
    SessionEstablishError: 500,
    SessionMountError: 500,
    MountReadyTimeoutError: 504,
    VolumeMountError: 500,
    VolumeUnmountError: 500,
    UnsupportedOperationError: 501,
    InvalidRequestError: 400,
    StoreError: 503,
}


def status_code_for(exc: VolumeError) -> int:
    """HTTP status for an error, falling back to its nearest mapped base class."""
    for cls in type(exc).__mro__:
        if cls in ERROR_CODE_MAP:
            return ERROR_CODE_MAP[cls]
    return 500


def parse_label_filters(values: List[str]) -> Dict[str, str]:
    """
    Parse `key=value` label filters from the query string.

    Raises:
        InvalidRequestError: If a filter has no `=` or an empty key
    """
    labels: Dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise InvalidRequestError("label", item, "label filters must look like key=value")
        labels[key.strip()] = value
    return labels


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    config: Optional[DriverConfig] = None,
    driver: Optional[VolumeDriver] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        config: Optional driver configuration
        driver: Optional pre-built driver (built from config on first use otherwise)

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = DriverConfig.load(os.environ.get("FUSEVOL_CONFIG") or None)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if getattr(app.state, "driver", None) is not None:
            await app.state.driver.shutdown()

    app = FastAPI(
        title="fusevol API",
        version=DRIVER_VERSION,
        description="FUSE volume lifecycle driver",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.config = config
    if driver is not None:
        app.state.driver = driver

    register_exception_handlers(app)
    register_routes(app)

    logger.info(f"FastAPI application created with config: {config}")
    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers"""

    @app.exception_handler(VolumeError)
    async def volume_error_handler(request: Request, exc: VolumeError):
        """Handle VolumeError exceptions"""
        status_code = status_code_for(exc)
        request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

        error_response = VolumeErrorResponse(
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        )

        logger.error(
            f"VolumeError: {exc.error_code} - {exc.message}",
            extra={"request_id": request_id}
        )

        return JSONResponse(
            status_code=status_code,
            content=error_response.model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

        logger.error(
            f"Unexpected error: {exc}",
            exc_info=True,
            extra={"request_id": request_id}
        )

        error_response = VolumeErrorResponse(
            error_code="INTERNAL_ERROR",
            message=str(exc) or "An unexpected error occurred",
            details={},
            request_id=request_id,
        )

        return JSONResponse(
            status_code=500,
            content=error_response.model_dump(),
        )


def register_routes(app: FastAPI) -> None:
    """Register all API routes"""

    async def get_driver() -> VolumeDriver:
        """Get the volume driver instance"""
        if getattr(app.state, "driver", None) is None:
            app.state.driver = VolumeDriver.from_config(app.state.config)
        return app.state.driver

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request.state.request_id = str(uuid.uuid4())
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/v1/health", response_model=HealthStatus, tags=["System"])
    async def health_check(driver: VolumeDriver = Depends(get_driver)):
        """Driver health and live session count"""
        return HealthStatus(
            status="healthy",
            version=driver.version().version,
            driver=driver.name,
            active_sessions=len(driver.active_sessions()),
        )

    # =========================================================================
    # Volumes
    # =========================================================================

    @app.post(
        "/v1/volumes",
        response_model=CreateVolumeResponse,
        status_code=201,
        tags=["Volumes"]
    )
    async def create_volume(
        request: CreateVolumeRequest,
        driver: VolumeDriver = Depends(get_driver)
    ):
        """Create a volume and its backing directory"""
        logger.info(f"Creating volume: {request.locator.name or '<unnamed>'}")
        volume_id = await driver.create(request.locator, request.source, request.spec)
        return CreateVolumeResponse(volume_id=volume_id)

    @app.get("/v1/volumes", response_model=List[Volume], tags=["Volumes"])
    async def list_volumes(
        name: Optional[str] = None,
        label: List[str] = Query(default=[], description="Label filter as key=value; repeatable"),
        driver: VolumeDriver = Depends(get_driver)
    ):
        """List volumes, optionally by locator name and labels"""
        locator = VolumeLocator(name=name) if name else None
        labels = parse_label_filters(label)
        return await driver.list_volumes(locator=locator, labels=labels or None)

    @app.get("/v1/volumes/{volume_id}", response_model=Volume, tags=["Volumes"])
    async def get_volume(
        volume_id: str,
        driver: VolumeDriver = Depends(get_driver)
    ):
        """Get a volume record"""
        volumes = await driver.inspect([volume_id])
        if not volumes:
            raise VolumeNotFoundError(volume_id)
        return volumes[0]

    @app.delete("/v1/volumes/{volume_id}", status_code=204, tags=["Volumes"])
    async def delete_volume(
        volume_id: str,
        driver: VolumeDriver = Depends(get_driver)
    ):
        """Delete a volume's backing directory and record"""
        logger.info(f"Deleting volume: {volume_id}")
        await driver.delete(volume_id)

    @app.post("/v1/volumes/{volume_id}/mount", response_model=Volume, tags=["Volumes"])
    async def mount_volume(
        volume_id: str,
        request: MountRequest,
        driver: VolumeDriver = Depends(get_driver)
    ):
        """Mount a volume; returns once the mount point is live"""
        logger.info(f"Mounting volume {volume_id} at {request.mount_path}")
        await driver.mount(volume_id, request.mount_path, request.options)
        return (await driver.inspect([volume_id]))[0]

    @app.post("/v1/volumes/{volume_id}/unmount", response_model=Volume, tags=["Volumes"])
    async def unmount_volume(
        volume_id: str,
        request: UnmountRequest,
        driver: VolumeDriver = Depends(get_driver)
    ):
        """Unmount a volume"""
        logger.info(f"Unmounting volume {volume_id}")
        await driver.unmount(volume_id, request.mount_path, request.options)
        return (await driver.inspect([volume_id]))[0]

    # =========================================================================
    # Root Endpoint
    # =========================================================================

    @app.get("/", tags=["Root"])
    async def root():
        """API root endpoint"""
        return {
            "name": "fusevol API",
            "version": DRIVER_VERSION,
            "docs": "/docs",
            "health": "/v1/health",
        }


# =============================================================================
# Application Instance
# =============================================================================

# Create default application instance
app = create_app()


# =============================================================================
# Entry Point
# =============================================================================

def main():
    """CLI entry point for fusevol-api command."""
    import argparse
    import uvicorn

    from fusevol.utils.logger import configure_logging

    parser = argparse.ArgumentParser(
        description="fusevol API server",
        prog="fusevol-api"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML or JSON config file (default: from FUSEVOL_CONFIG env)"
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind to (default: from FUSEVOL_API_HOST env or 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: from FUSEVOL_API_PORT env or 8080)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: from FUSEVOL_LOG_LEVEL env or info)"
    )

    args = parser.parse_args()

    config = DriverConfig.load(args.config or os.environ.get("FUSEVOL_CONFIG") or None)
    log_level = args.log_level or config.log_level
    configure_logging(level=log_level, file_path=config.log_file or None)

    uvicorn.run(
        create_app(config),
        host=args.host or config.api_host,
        port=args.port or config.api_port,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
