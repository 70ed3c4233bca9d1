"""
fusevol type definitions

Volume records and the caller-supplied metadata attached to them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

__all__ = [
    "FSType",
    "DriverType",
    "StorageVersion",
    "VolumeLocator",
    "Source",
    "VolumeSpec",
    "Volume",
]


class FSType(str, Enum):
    """Storage representation of a volume"""
    FUSE = "fuse"


class DriverType(str, Enum):
    """Kind of storage a driver exposes"""
    FILE = "file"


class StorageVersion(BaseModel):
    """Driver name and version"""

    driver: str = Field(..., description="Driver name")
    version: str = Field(..., description="Driver version")


class VolumeLocator(BaseModel):
    """Caller-supplied naming and labeling metadata"""

    name: str = Field(default="", description="Human readable volume name")
    volume_labels: Dict[str, str] = Field(
        default_factory=dict,
        description="Arbitrary labels used to look the volume up"
    )


class Source(BaseModel):
    """Provenance of a volume"""

    parent: str = Field(default="", description="ID of the volume this one was cloned from")
    seed: str = Field(default="", description="URI the volume was seeded from")


class VolumeSpec(BaseModel):
    """Filesystem type and options requested for a volume"""

    format: str = Field(default=FSType.FUSE.value, description="Filesystem format")
    size: int = Field(default=0, ge=0, description="Size hint in bytes (0 = unbounded)")
    options: Dict[str, str] = Field(
        default_factory=dict,
        description="Provider specific options used to configure the mount session"
    )
    labels: Dict[str, str] = Field(default_factory=dict, description="Spec labels")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Volume(BaseModel):
    """
    Persisted volume record.

    Attributes:
        id: Unique identifier generated at creation time
        locator: Naming metadata supplied by the caller
        source: Provenance metadata
        spec: Requested filesystem options, consumed by the mount provider
        device_path: Backing directory on the host, set once at creation
        attach_path: Active mount point; empty when unmounted, one entry when mounted
        fs_type: Storage representation (always FUSE for this driver)
        ctime: ISO format creation timestamp
    """

    id: str = Field(..., min_length=1, description="Volume ID")
    locator: VolumeLocator = Field(default_factory=VolumeLocator)
    source: Source = Field(default_factory=Source)
    spec: VolumeSpec = Field(default_factory=VolumeSpec)
    device_path: str = Field(default="", description="Backing directory on the host")
    attach_path: List[str] = Field(
        default_factory=list,
        description="Mount point of the live session (at most one)"
    )
    fs_type: FSType = Field(default=FSType.FUSE)
    ctime: str = Field(default_factory=_utc_now, description="Creation timestamp")

    @property
    def is_mounted(self) -> bool:
        """Check if the volume has a recorded mount point"""
        return bool(self.attach_path) and bool(self.attach_path[0])

    @property
    def mount_path(self) -> Optional[str]:
        """Recorded mount point, if any"""
        return self.attach_path[0] if self.is_mounted else None
