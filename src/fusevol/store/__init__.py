"""
Volume record persistence for fusevol

Provides record stores keyed by volume ID.
"""

from .volumes import (
    VolumeStore,
    MemoryVolumeStore,
    FileVolumeStore,
    create_volume_store,
)

__all__ = [
    "VolumeStore",
    "MemoryVolumeStore",
    "FileVolumeStore",
    "create_volume_store",
]
