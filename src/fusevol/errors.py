"""
fusevol error definitions

Standard exceptions raised by the volume driver, the volume stores
and the mount session layer.
"""

from typing import Optional, Dict, Any


class VolumeError(Exception):
    """Base exception for all fusevol errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "UNKNOWN"
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class VolumeNotFoundError(VolumeError):
    """Volume does not exist"""

    def __init__(self, volume_id: str):
        super().__init__(
            message=f"Volume '{volume_id}' not found",
            error_code="VOL_NOT_FOUND",
            details={"volume_id": volume_id}
        )
        self.volume_id = volume_id


class VolumeAlreadyExistsError(VolumeError):
    """A record with this volume ID is already stored"""

    def __init__(self, volume_id: str):
        super().__init__(
            message=f"Volume '{volume_id}' already exists",
            error_code="VOL_EXISTS",
            details={"volume_id": volume_id}
        )
        self.volume_id = volume_id


class VolumeAlreadyMountedError(VolumeError):
    """Volume already has an attach path"""

    def __init__(self, volume_id: str, mount_path: str):
        super().__init__(
            message=f"Volume '{volume_id}' already mounted at '{mount_path}'",
            error_code="VOL_ALREADY_MOUNTED",
            details={"volume_id": volume_id, "mount_path": mount_path}
        )
        self.volume_id = volume_id
        self.mount_path = mount_path


class VolumeNotMountedError(VolumeError):
    """Volume has no attach path"""

    def __init__(self, volume_id: str):
        super().__init__(
            message=f"Volume '{volume_id}' is not mounted",
            error_code="VOL_NOT_MOUNTED",
            details={"volume_id": volume_id}
        )
        self.volume_id = volume_id


class BackingStoreError(VolumeError):
    """Backing directory could not be created or removed"""

    def __init__(self, volume_id: str, path: str, reason: str):
        super().__init__(
            message=f"Backing store failure for volume '{volume_id}' at {path}: {reason}",
            error_code="BACKING_STORE_ERROR",
            details={"volume_id": volume_id, "path": path, "reason": reason}
        )
        self.volume_id = volume_id
        self.path = path
        self.reason = reason


class VolumeMountError(VolumeError):
    """Failed to mount volume"""

    def __init__(
        self,
        volume_id: str,
        reason: str,
        error_code: str = "MOUNT_FAILED",
        mount_path: Optional[str] = None,
    ):
        super().__init__(
            message=f"Failed to mount volume '{volume_id}': {reason}",
            error_code=error_code,
            details={"volume_id": volume_id, "mount_path": mount_path, "reason": reason}
        )
        self.volume_id = volume_id
        self.mount_path = mount_path
        self.reason = reason


class MountProviderError(VolumeMountError):
    """Mount provider could not supply options or a filesystem handler"""

    def __init__(self, volume_id: str, reason: str):
        super().__init__(volume_id, reason, error_code="MOUNT_PROVIDER_ERROR")


class SessionEstablishError(VolumeMountError):
    """OS-level mount setup failed before serving started"""

    def __init__(self, volume_id: str, mount_path: str, reason: str):
        super().__init__(
            volume_id,
            reason,
            error_code="SESSION_ESTABLISH_FAILED",
            mount_path=mount_path,
        )


class SessionMountError(VolumeMountError):
    """Session signalled ready but reported a terminal mount error"""

    def __init__(self, volume_id: str, mount_path: str, cause: BaseException):
        super().__init__(
            volume_id,
            str(cause) or type(cause).__name__,
            error_code="SESSION_MOUNT_FAILED",
            mount_path=mount_path,
        )
        self.cause = cause


class MountReadyTimeoutError(VolumeMountError):
    """Session did not signal ready in time"""

    def __init__(self, volume_id: str, mount_path: str, timeout_sec: float):
        super().__init__(
            volume_id,
            f"mount at '{mount_path}' not ready after {timeout_sec}s",
            error_code="MOUNT_READY_TIMEOUT",
            mount_path=mount_path,
        )
        self.timeout_sec = timeout_sec


class VolumeUnmountError(VolumeError):
    """Failed to unmount volume"""

    def __init__(self, volume_id: str, mount_path: str, reason: str):
        super().__init__(
            message=f"Failed to unmount volume '{volume_id}' from '{mount_path}': {reason}",
            error_code="UNMOUNT_FAILED",
            details={"volume_id": volume_id, "mount_path": mount_path, "reason": reason}
        )
        self.volume_id = volume_id
        self.mount_path = mount_path
        self.reason = reason


class UnsupportedOperationError(VolumeError):
    """Operation is permanently unsupported by this driver"""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Operation '{operation}' is not supported",
            error_code="UNSUPPORTED",
            details={"operation": operation}
        )
        self.operation = operation


class InvalidRequestError(VolumeError):
    """Invalid request parameters"""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid field '{field}': {reason}",
            error_code="INVALID_REQUEST",
            details={"field": field}
        )
        self.field = field
        self.value = value
        self.reason = reason


class StoreError(VolumeError):
    """Volume store could not read or write a record"""

    def __init__(self, reason: str, volume_id: Optional[str] = None):
        super().__init__(
            message=f"Volume store failure: {reason}",
            error_code="STORE_ERROR",
            details={"volume_id": volume_id}
        )
        self.volume_id = volume_id
        self.reason = reason


# Error codes
ERROR_CODES = {
    # Record errors (VOL_xxx)
    "VOL_NOT_FOUND": "Volume does not exist",
    "VOL_EXISTS": "Volume already exists",
    "VOL_ALREADY_MOUNTED": "Volume already mounted",
    "VOL_NOT_MOUNTED": "Volume not mounted",

    # Backing storage
    "BACKING_STORE_ERROR": "Backing directory create/remove failed",
    "STORE_ERROR": "Volume store failure",

    # Mount session errors
    "MOUNT_FAILED": "Mount failed",
    "MOUNT_PROVIDER_ERROR": "Mount provider failure",
    "SESSION_ESTABLISH_FAILED": "Mount session could not be established",
    "SESSION_MOUNT_FAILED": "Mount session reported a mount error",
    "MOUNT_READY_TIMEOUT": "Mount session not ready in time",
    "UNMOUNT_FAILED": "Unmount failed",

    # Request errors
    "UNSUPPORTED": "Operation not supported",
    "INVALID_REQUEST": "Invalid request parameter",
}
