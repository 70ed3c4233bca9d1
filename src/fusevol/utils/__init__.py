"""
fusevol utilities

Logging helpers.
"""

from fusevol.utils.logger import (
    configure_logging,
    DEFAULT_FORMAT,
)

__all__ = [
    "configure_logging",
    "DEFAULT_FORMAT",
]
