"""
Path validation utilities for fusevol.

Volume IDs are joined with the driver's base directory, so they must
never escape it. Mount paths must be absolute.
"""

import os
from pathlib import Path
from typing import Union

from fusevol.errors import InvalidRequestError


def validate_path_component(value: str, field_name: str = "path") -> None:
    """
    Validate that a user-supplied path component is safe to join
    with a base directory.

    Rules:
    - Must not be empty
    - Must not be an absolute path
    - Must not contain '..' segments or path separators

    Args:
        value: The user-supplied path component (e.g. a volume ID).
        field_name: Human-readable field name for error messages.

    Raises:
        InvalidRequestError: If the path component is unsafe.
    """
    if not value or not value.strip():
        raise InvalidRequestError(
            field=field_name,
            value=value,
            reason=f"{field_name} cannot be empty",
        )

    if os.path.isabs(value) or value.startswith("/") or value.startswith("\\"):
        raise InvalidRequestError(
            field=field_name,
            value=value,
            reason="Absolute paths are not allowed",
        )

    normalized = os.path.normpath(value)
    if ".." in normalized.split(os.sep):
        raise InvalidRequestError(
            field=field_name,
            value=value,
            reason="Path traversal ('..') is not allowed",
        )

    if os.sep in normalized:
        raise InvalidRequestError(
            field=field_name,
            value=value,
            reason="Nested paths are not allowed",
        )


def validate_mount_path(value: Union[str, Path], field_name: str = "mount_path") -> str:
    """
    Validate a mount point and return it normalized.

    Raises:
        InvalidRequestError: If the path is empty or relative.
    """
    path = str(value) if value is not None else ""
    if not path.strip():
        raise InvalidRequestError(
            field=field_name,
            value=value,
            reason=f"{field_name} cannot be empty",
        )
    if not os.path.isabs(path):
        raise InvalidRequestError(
            field=field_name,
            value=value,
            reason="Mount path must be absolute",
        )
    return os.path.normpath(path)
