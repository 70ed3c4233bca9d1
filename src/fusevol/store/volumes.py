"""
Volume record stores for fusevol

Provides the persistence layer the volume driver relies on:
- VolumeStore: Abstract base class for record stores
- MemoryVolumeStore: Process-local store
- FileVolumeStore: One JSON document per volume, replaced atomically

Every call is linearizable with respect to other calls on the same
volume ID. Stores hand out copies; mutating a returned record never
changes stored state until it is written back with update().
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List
import asyncio
import logging
import os

from pydantic import ValidationError

from ..errors import (
    StoreError,
    VolumeAlreadyExistsError,
    VolumeNotFoundError,
)
from ..path_utils import validate_path_component
from ..types import Volume

logger = logging.getLogger(__name__)


class VolumeStore(ABC):
    """
    Abstract base class for volume record stores.

    Implementations must define:
    - get(): Fetch a record
    - create(): Insert a new record
    - update(): Replace an existing record
    - delete(): Remove a record
    - list(): List all records
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()

    @abstractmethod
    async def get(self, volume_id: str) -> Volume:
        """
        Get a volume record by ID.

        Raises:
            VolumeNotFoundError: If no record exists
        """
        pass

    @abstractmethod
    async def create(self, volume: Volume) -> None:
        """
        Insert a new volume record.

        Raises:
            VolumeAlreadyExistsError: If a record with the same ID exists
        """
        pass

    @abstractmethod
    async def update(self, volume: Volume) -> None:
        """
        Replace an existing volume record.

        Raises:
            VolumeNotFoundError: If no record exists
        """
        pass

    @abstractmethod
    async def delete(self, volume_id: str) -> None:
        """
        Delete a volume record.

        Raises:
            VolumeNotFoundError: If no record exists
        """
        pass

    @abstractmethod
    async def list(self) -> List[Volume]:
        """List every stored volume record"""
        pass


class MemoryVolumeStore(VolumeStore):
    """Volume records held in a dictionary for the life of the process."""

    def __init__(self, name: str = "memory"):
        super().__init__(name)
        self._volumes: Dict[str, Volume] = {}

    async def get(self, volume_id: str) -> Volume:
        async with self._lock:
            volume = self._volumes.get(volume_id)
            if volume is None:
                raise VolumeNotFoundError(volume_id)
            return volume.model_copy(deep=True)

    async def create(self, volume: Volume) -> None:
        async with self._lock:
            if volume.id in self._volumes:
                raise VolumeAlreadyExistsError(volume.id)
            self._volumes[volume.id] = volume.model_copy(deep=True)
            logger.debug(f"Stored volume {volume.id}")

    async def update(self, volume: Volume) -> None:
        async with self._lock:
            if volume.id not in self._volumes:
                raise VolumeNotFoundError(volume.id)
            self._volumes[volume.id] = volume.model_copy(deep=True)
            logger.debug(f"Updated volume {volume.id}")

    async def delete(self, volume_id: str) -> None:
        async with self._lock:
            if self._volumes.pop(volume_id, None) is None:
                raise VolumeNotFoundError(volume_id)
            logger.debug(f"Deleted volume {volume_id}")

    async def list(self) -> List[Volume]:
        async with self._lock:
            return [v.model_copy(deep=True) for v in self._volumes.values()]


class FileVolumeStore(VolumeStore):
    """
    Volume records stored as JSON documents under a directory.

    Each record lives in ``<base_path>/<volume_id>.json``. Writes go to a
    temporary file first and are moved into place with os.replace(), so a
    reader never sees a partially written record.
    """

    SUFFIX = ".json"

    def __init__(self, base_path: str, name: str = "file"):
        super().__init__(name)
        self.base_path = Path(base_path)
        self._initialized = False

    def initialize(self) -> None:
        """Create the record directory if needed."""
        if self._initialized:
            return

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            self._initialized = True
            logger.info(f"Volume store '{self.name}' initialized at {self.base_path}")
        except OSError as e:
            raise StoreError(f"Failed to initialize store at {self.base_path}: {e}")

    def _record_path(self, volume_id: str) -> Path:
        validate_path_component(volume_id, "volume_id")
        return self.base_path / f"{volume_id}{self.SUFFIX}"

    def _read(self, path: Path, volume_id: str) -> Volume:
        try:
            return Volume.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise VolumeNotFoundError(volume_id)
        except ValidationError as e:
            raise StoreError(f"Corrupt record {path}: {e}", volume_id=volume_id)
        except OSError as e:
            raise StoreError(f"Failed to read {path}: {e}", volume_id=volume_id)

    def _write(self, path: Path, volume: Volume) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            tmp_path.write_text(volume.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StoreError(f"Failed to write {path}: {e}", volume_id=volume.id)

    async def get(self, volume_id: str) -> Volume:
        self.initialize()
        async with self._lock:
            return self._read(self._record_path(volume_id), volume_id)

    async def create(self, volume: Volume) -> None:
        self.initialize()
        async with self._lock:
            path = self._record_path(volume.id)
            if path.exists():
                raise VolumeAlreadyExistsError(volume.id)
            self._write(path, volume)
            logger.debug(f"Stored volume {volume.id} at {path}")

    async def update(self, volume: Volume) -> None:
        self.initialize()
        async with self._lock:
            path = self._record_path(volume.id)
            if not path.exists():
                raise VolumeNotFoundError(volume.id)
            self._write(path, volume)
            logger.debug(f"Updated volume {volume.id}")

    async def delete(self, volume_id: str) -> None:
        self.initialize()
        async with self._lock:
            path = self._record_path(volume_id)
            try:
                path.unlink()
            except FileNotFoundError:
                raise VolumeNotFoundError(volume_id)
            except OSError as e:
                raise StoreError(f"Failed to delete {path}: {e}", volume_id=volume_id)
            logger.debug(f"Deleted volume {volume_id}")

    async def list(self) -> List[Volume]:
        self.initialize()
        async with self._lock:
            volumes = []
            for path in sorted(self.base_path.glob(f"*{self.SUFFIX}")):
                volumes.append(self._read(path, path.stem))
            return volumes


# Factory function for creating volume stores
def create_volume_store(store_path: str = "") -> VolumeStore:
    """
    Create a volume store.

    Args:
        store_path: Directory for JSON records; empty selects the in-memory store

    Returns:
        VolumeStore instance
    """
    if store_path:
        return FileVolumeStore(base_path=store_path)
    return MemoryVolumeStore()


__all__ = [
    "VolumeStore",
    "MemoryVolumeStore",
    "FileVolumeStore",
    "create_volume_store",
]
