"""
fusevol API module

REST API over the volume driver.
"""

from fusevol.api.rest import (
    create_app,
    app,
    VolumeErrorResponse,
    HealthStatus,
    CreateVolumeRequest,
    CreateVolumeResponse,
    MountRequest,
    UnmountRequest,
)

__all__ = [
    "create_app",
    "app",
    "VolumeErrorResponse",
    "HealthStatus",
    "CreateVolumeRequest",
    "CreateVolumeResponse",
    "MountRequest",
    "UnmountRequest",
]
