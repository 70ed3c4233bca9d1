"""
Mount session and mount provider exports.
"""

from fusevol.mount.provider import (
    MountProvider,
    UnconfiguredMountProvider,
    load_mount_provider,
)
from fusevol.mount.session import (
    MountSession,
    SessionBackend,
    FuseSessionBackend,
    SessionClosedError,
    parse_mount_options,
)

__all__ = [
    "MountProvider",
    "UnconfiguredMountProvider",
    "load_mount_provider",
    "MountSession",
    "SessionBackend",
    "FuseSessionBackend",
    "SessionClosedError",
    "parse_mount_options",
]
