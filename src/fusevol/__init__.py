"""
fusevol: lifecycle driver for FUSE backed volumes

Creates backing directories for volumes, mounts them as live FUSE
sessions, and unmounts and deletes them again.
"""

__version__ = "1.0.0"

from fusevol.driver import VolumeDriver
from fusevol.config import DriverConfig
from fusevol.types import (
    FSType,
    DriverType,
    StorageVersion,
    VolumeLocator,
    Source,
    VolumeSpec,
    Volume,
)
from fusevol.store import (
    VolumeStore,
    MemoryVolumeStore,
    FileVolumeStore,
    create_volume_store,
)
from fusevol.mount import (
    MountProvider,
    MountSession,
    SessionBackend,
    FuseSessionBackend,
)
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

__all__ = [
    "VolumeDriver",
    "DriverConfig",
    # Types
    "FSType",
    "DriverType",
    "StorageVersion",
    "VolumeLocator",
    "Source",
    "VolumeSpec",
    "Volume",
    # Stores
    "VolumeStore",
    "MemoryVolumeStore",
    "FileVolumeStore",
    "create_volume_store",
    # Mounting
    "MountProvider",
    "MountSession",
    "SessionBackend",
    "FuseSessionBackend",
    # Exception classes
    "VolumeError",
    "VolumeNotFoundError",
    "VolumeAlreadyExistsError",
    "VolumeAlreadyMountedError",
    "VolumeNotMountedError",
    "BackingStoreError",
    "VolumeMountError",
    "MountProviderError",
    "SessionEstablishError",
    "SessionMountError",
    "MountReadyTimeoutError",
    "VolumeUnmountError",
    "UnsupportedOperationError",
    "InvalidRequestError",
    "StoreError",
]
