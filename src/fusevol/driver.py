"""
FUSE volume driver

Drives volumes through Create → Mount → Unmount → Delete.

- create() makes a backing directory under the base path and records it
- mount() starts a FUSE session for the volume and returns only once the
  mount point is live
- unmount() tears the session down at the recorded mount point
- delete() unmounts a live session, then removes the backing directory
  and the record

Lifecycle operations on the same volume ID are serialised by a
per-volume asyncio.Lock, so two concurrent mounts cannot both pass the
"not mounted" check.
"""

import asyncio
import functools
import logging
import os
import shutil
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Set

from .config import DriverConfig
from .errors import (
    BackingStoreError,
    MountProviderError,
    MountReadyTimeoutError,
    SessionEstablishError,
    SessionMountError,
    UnsupportedOperationError,
    VolumeAlreadyMountedError,
    VolumeError,
    VolumeNotFoundError,
    VolumeNotMountedError,
    VolumeUnmountError,
)
from .mount.provider import MountProvider, load_mount_provider
from .mount.session import FuseSessionBackend, MountSession, SessionBackend
from .path_utils import validate_mount_path, validate_path_component
from .store.volumes import MemoryVolumeStore, VolumeStore, create_volume_store
from .types import (
    DriverType,
    FSType,
    Source,
    StorageVersion,
    Volume,
    VolumeLocator,
    VolumeSpec,
)

logger = logging.getLogger(__name__)

DRIVER_VERSION = "1.0.0"


class VolumeDriver:
    """
    Manages the lifecycle of FUSE backed volumes.

    Records are kept in a VolumeStore, mount options and filesystem
    handlers come from a MountProvider, and the OS-level mount work is
    done by a SessionBackend.
    """

    def __init__(
        self,
        name: str,
        base_dir_path: str,
        provider: MountProvider,
        store: Optional[VolumeStore] = None,
        session_backend: Optional[SessionBackend] = None,
        ready_timeout_sec: Optional[float] = 30.0,
        unmount_wait_sec: float = 5.0,
    ):
        """
        Initialize the volume driver.

        Args:
            name: Driver name
            base_dir_path: Directory under which backing directories are created
            provider: Mount provider for session options and filesystem handlers
            store: Volume record store (default: in-memory)
            session_backend: OS mount primitives (default: fusepy)
            ready_timeout_sec: Seconds to wait for a session to become ready;
                None or 0 waits forever
            unmount_wait_sec: Seconds to wait for the serving loop to exit after unmount
        """
        self.name = name
        self.base_dir_path = Path(base_dir_path)
        self.provider = provider
        self.store = store if store is not None else MemoryVolumeStore()
        self.session_backend = session_backend or FuseSessionBackend()
        self.ready_timeout_sec = ready_timeout_sec or None
        self.unmount_wait_sec = unmount_wait_sec
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._sessions: Dict[str, MountSession] = {}
        self._release_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: DriverConfig,
        provider: Optional[MountProvider] = None,
        session_backend: Optional[SessionBackend] = None,
    ) -> "VolumeDriver":
        """Build a driver from configuration, loading the configured provider if none is given."""
        return cls(
            name=config.driver_name,
            base_dir_path=config.base_dir_path,
            provider=provider or load_mount_provider(config.mount_provider),
            store=create_volume_store(config.store_path),
            session_backend=session_backend,
            ready_timeout_sec=config.ready_timeout,
            unmount_wait_sec=config.unmount_wait_sec,
        )

    def _get_lock(self, volume_id: str) -> asyncio.Lock:
        """Get or create a lock for a specific volume."""
        if volume_id not in self._locks:
            self._locks[volume_id] = asyncio.Lock()
        return self._locks[volume_id]

    async def _cleanup_lock(self, volume_id: str) -> None:
        """Remove lock reference when no tasks are using it."""
        lock = self._locks.get(volume_id)
        if lock and not lock.locked() and not self._lock_users.get(volume_id):
            self._locks.pop(volume_id, None)

    @asynccontextmanager
    async def _volume_lock(self, volume_id: str):
        """
        Hold the lock for a volume.

        Holders and waiters are counted so the lock is only dropped once
        the last of them is done.
        """
        lock = self._get_lock(volume_id)
        self._lock_users[volume_id] = self._lock_users.get(volume_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[volume_id] -= 1
            if not self._lock_users[volume_id]:
                del self._lock_users[volume_id]
                await self._cleanup_lock(volume_id)

    def volume_path(self, volume_id: str) -> Path:
        """Backing directory for a volume ID."""
        validate_path_component(volume_id, "volume_id")
        return self.base_dir_path / volume_id

    # =========================================================================
    # Driver identity
    # =========================================================================

    def driver_type(self) -> DriverType:
        return DriverType.FILE

    def version(self) -> StorageVersion:
        return StorageVersion(driver=self.name, version=DRIVER_VERSION)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create(
        self,
        locator: Optional[VolumeLocator] = None,
        source: Optional[Source] = None,
        spec: Optional[VolumeSpec] = None,
    ) -> str:
        """
        Create a volume and its backing directory.

        Returns:
            The new volume ID

        Raises:
            BackingStoreError: If the backing directory cannot be created
        """
        volume_id = str(uuid.uuid4())
        dir_path = self.volume_path(volume_id)

        async with self._volume_lock(volume_id):
            try:
                dir_path.mkdir(mode=0o777, parents=True, exist_ok=True)
                logger.info(f"Created volume directory: {dir_path}")
            except OSError as e:
                raise BackingStoreError(volume_id, str(dir_path), str(e))

            volume = Volume(
                id=volume_id,
                locator=locator or VolumeLocator(),
                source=source or Source(),
                spec=spec or VolumeSpec(),
                fs_type=FSType.FUSE,
                device_path=str(dir_path),
            )

            inserted = False
            try:
                await self.store.create(volume)
                inserted = True
                await self.store.update(volume)
            except Exception as e:
                logger.error(f"Failed to record volume '{volume_id}': {e}")
                # Cleanup on failure
                if inserted:
                    await self._discard_record(volume_id)
                shutil.rmtree(dir_path, ignore_errors=True)
                raise

        logger.info(f"Volume '{volume_id}' created at {dir_path}")
        return volume_id

    async def _discard_record(self, volume_id: str) -> None:
        try:
            await self.store.delete(volume_id)
        except VolumeError as e:
            logger.warning(f"Failed to discard record for volume '{volume_id}': {e}")

    async def delete(self, volume_id: str) -> None:
        """
        Delete a volume's backing directory and record.

        A live session held by this driver is unmounted first. The
        directory goes next; if it cannot be removed the record is kept.

        Raises:
            VolumeNotFoundError: If the volume doesn't exist
            VolumeUnmountError: If a live session cannot be unmounted
            BackingStoreError: If the backing directory cannot be removed
        """
        async with self._volume_lock(volume_id):
            await self.store.get(volume_id)

            session = self._sessions.get(volume_id)
            if session is not None:
                logger.info(f"Volume '{volume_id}' is mounted at {session.mount_path}, unmounting before delete")
                await self._stop_session(volume_id, session.mount_path)

            dir_path = self.volume_path(volume_id)
            try:
                shutil.rmtree(dir_path)
                logger.info(f"Deleted volume directory: {dir_path}")
            except FileNotFoundError:
                logger.debug(f"Volume directory already gone: {dir_path}")
            except OSError as e:
                raise BackingStoreError(volume_id, str(dir_path), str(e))

            await self.store.delete(volume_id)

        logger.info(f"Volume '{volume_id}' deleted")

    async def mount(
        self,
        volume_id: str,
        mount_path: str,
        options: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Mount a volume at mount_path.

        Returns once the mount point is live and recorded.

        Raises:
            VolumeNotFoundError: If the volume doesn't exist
            VolumeAlreadyMountedError: If the volume already has a mount point
            MountProviderError: If the provider cannot configure the session
            SessionEstablishError: If the mount cannot be set up
            MountReadyTimeoutError: If the session is not ready in time
            SessionMountError: If the session became ready with a mount error
        """
        mount_path = validate_mount_path(mount_path)

        async with self._volume_lock(volume_id):
            volume = await self.store.get(volume_id)
            if volume.is_mounted:
                raise VolumeAlreadyMountedError(volume_id, volume.attach_path[0])

            try:
                mount_options = self.provider.get_mount_options(volume.spec)
                filesystem = self.provider.get_filesystem(volume.spec)
            except VolumeError:
                raise
            except Exception as e:
                raise MountProviderError(volume_id, str(e)) from e

            try:
                session = self.session_backend.establish(mount_path, mount_options)
            except Exception as e:
                logger.error(f"Failed to establish session for volume '{volume_id}' at {mount_path}: {e}")
                raise SessionEstablishError(volume_id, mount_path, str(e)) from e

            session.start(functools.partial(self.session_backend.serve, session, filesystem))

            try:
                mount_error = await session.wait_ready(self.ready_timeout_sec)
            except asyncio.TimeoutError:
                logger.error(f"Volume '{volume_id}' not ready at {mount_path} after {self.ready_timeout_sec}s")
                await self._abort_session(volume_id, session)
                raise MountReadyTimeoutError(volume_id, mount_path, self.ready_timeout_sec)

            if mount_error is not None:
                logger.error(f"Mount of volume '{volume_id}' at {mount_path} failed: {mount_error}")
                raise SessionMountError(volume_id, mount_path, mount_error) from mount_error

            volume.attach_path = [mount_path]
            try:
                await self.store.update(volume)
            except Exception as e:
                logger.error(f"Failed to record mount of volume '{volume_id}': {e}")
                await self._abort_session(volume_id, session)
                raise

            self._track_session(volume_id, session)

        logger.info(f"Mounted volume {volume_id} at {mount_path}")

    async def unmount(
        self,
        volume_id: str,
        mount_path: Optional[str] = None,
        options: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Unmount a volume.

        The recorded mount point is what gets unmounted; mount_path is
        only checked against it.

        Raises:
            VolumeNotFoundError: If the volume doesn't exist
            VolumeNotMountedError: If the volume has no mount point
            VolumeUnmountError: If the OS-level unmount fails
        """
        async with self._volume_lock(volume_id):
            volume = await self.store.get(volume_id)
            if not volume.is_mounted:
                raise VolumeNotMountedError(volume_id)

            recorded_path = volume.attach_path[0]
            if mount_path and os.path.normpath(mount_path) != recorded_path:
                logger.warning(
                    f"Unmount of volume '{volume_id}' requested at {mount_path}, "
                    f"unmounting recorded path {recorded_path}"
                )

            await self._stop_session(volume_id, recorded_path)

            volume.attach_path = []
            await self.store.update(volume)

        logger.info(f"Unmounted volume {volume_id} (was: {recorded_path})")

    # =========================================================================
    # Session tracking
    # =========================================================================

    def _track_session(self, volume_id: str, session: MountSession) -> None:
        self._sessions[volume_id] = session
        if session.closed:
            self._on_session_exit(volume_id, session)
            return
        session.add_exit_callback(functools.partial(self._on_session_exit, volume_id))

    def _on_session_exit(self, volume_id: str, session: MountSession) -> None:
        """
        Serving loop ended without an unmount from this driver.

        The stale mount point is released in the background so the volume
        can be mounted again.
        """
        if self._sessions.get(volume_id) is not session:
            return
        self._sessions.pop(volume_id)
        logger.warning(
            f"Session for volume '{volume_id}' at {session.mount_path} exited without unmount"
        )
        task = asyncio.create_task(
            self._release_dead_mount(volume_id, session.mount_path),
            name=f"fuse-release:{volume_id}",
        )
        self._release_tasks.add(task)
        task.add_done_callback(self._release_tasks.discard)

    async def _release_dead_mount(self, volume_id: str, mount_path: str) -> None:
        """Clear the recorded mount point of a volume whose serving loop died."""
        try:
            async with self._volume_lock(volume_id):
                try:
                    volume = await self.store.get(volume_id)
                except VolumeNotFoundError:
                    return
                # Unmounted or mounted again in the meantime
                if volume.attach_path != [mount_path] or volume_id in self._sessions:
                    return

                try:
                    await asyncio.to_thread(self.session_backend.terminate, mount_path)
                except Exception as e:
                    logger.debug(f"Unmount of dead mount {mount_path} failed: {e}")

                volume.attach_path = []
                await self.store.update(volume)
                logger.info(f"Released mount point {mount_path} of volume '{volume_id}'")
        except VolumeError as e:
            logger.error(f"Failed to release mount point {mount_path} of volume '{volume_id}': {e}")

    async def _stop_session(self, volume_id: str, mount_path: str) -> None:
        """
        Unmount mount_path and wait for the volume's serving loop to exit.

        An unmount that fails after the serving loop is already gone counts
        as done.

        Raises:
            VolumeUnmountError: If the OS-level unmount fails and the session is still serving
        """
        session = self._sessions.pop(volume_id, None)
        try:
            await asyncio.to_thread(self.session_backend.terminate, mount_path)
        except Exception as e:
            if session is not None and session.closed:
                logger.warning(
                    f"Unmount of {mount_path} failed after its serving loop exited, "
                    f"treating volume '{volume_id}' as unmounted: {e}"
                )
                return
            if session is not None:
                self._sessions[volume_id] = session
            logger.error(f"Failed to unmount volume '{volume_id}' from {mount_path}: {e}")
            raise VolumeUnmountError(volume_id, mount_path, str(e)) from e

        if session is not None and not await session.wait_closed(self.unmount_wait_sec):
            logger.warning(
                f"Serving loop for volume '{volume_id}' still running "
                f"{self.unmount_wait_sec}s after unmount"
            )

    async def _abort_session(self, volume_id: str, session: MountSession) -> None:
        try:
            await asyncio.to_thread(self.session_backend.terminate, session.mount_path)
        except Exception as e:
            logger.warning(f"Failed to tear down session for volume '{volume_id}' at {session.mount_path}: {e}")

    def session_active(self, volume_id: str) -> bool:
        """Check whether this driver holds a live serving loop for the volume."""
        session = self._sessions.get(volume_id)
        return session is not None and not session.closed

    def active_sessions(self) -> Dict[str, str]:
        """Volume ID → mount path for every live session."""
        return {
            volume_id: session.mount_path
            for volume_id, session in self._sessions.items()
            if not session.closed
        }

    # =========================================================================
    # Queries
    # =========================================================================

    async def inspect(self, volume_ids: List[str]) -> List[Volume]:
        """Records for the given IDs; unknown IDs are skipped."""
        volumes = []
        for volume_id in volume_ids:
            try:
                volumes.append(await self.store.get(volume_id))
            except VolumeNotFoundError:
                logger.debug(f"Inspect skipped unknown volume {volume_id}")
        return volumes

    async def list_volumes(
        self,
        locator: Optional[VolumeLocator] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> List[Volume]:
        """
        List volumes, optionally filtered.

        Args:
            locator: Match on locator name and locator labels
            labels: Labels that must appear on the locator or the volume spec

        Returns:
            List of Volume objects
        """
        volumes = await self.store.list()

        if locator is not None:
            if locator.name:
                volumes = [v for v in volumes if v.locator.name == locator.name]
            if locator.volume_labels:
                volumes = [
                    v for v in volumes
                    if _has_labels(v.locator.volume_labels, locator.volume_labels)
                ]

        if labels:
            volumes = [
                v for v in volumes
                if _has_labels({**v.spec.labels, **v.locator.volume_labels}, labels)
            ]

        return volumes

    # =========================================================================
    # Fixed responses
    # =========================================================================

    def mounted_at(self, mount_path: str) -> str:
        """Reverse mount lookup is not tracked; always empty."""
        return ""

    def status(self) -> List[List[str]]:
        return []

    def set_volume(self, volume_id: str, locator=None, spec=None) -> None:
        raise UnsupportedOperationError("set")

    def catalog(self, volume_id: str, path: str = "", depth: str = "") -> None:
        raise UnsupportedOperationError("catalog")

    def vol_service(self, volume_id: str, request=None) -> None:
        raise UnsupportedOperationError("vol_service")

    def get_volume_watcher(self, locator=None, labels=None) -> None:
        raise UnsupportedOperationError("get_volume_watcher")

    def snapshot(self, volume_id: str, read_only: bool = True, locator=None) -> None:
        raise UnsupportedOperationError("snapshot")

    def stats(self, volume_id: str) -> None:
        raise UnsupportedOperationError("stats")

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> None:
        """Unmount every volume this driver is still serving."""
        logger.info(f"Shutting down volume driver '{self.name}'")
        for volume_id, session in list(self._sessions.items()):
            try:
                await self.unmount(volume_id)
            except (VolumeNotFoundError, VolumeNotMountedError):
                # No mount point on record; tear the session down directly
                try:
                    await self._stop_session(volume_id, session.mount_path)
                except VolumeError as e:
                    logger.warning(f"Failed to unmount volume {volume_id} during shutdown: {e}")
            except VolumeError as e:
                logger.warning(f"Failed to unmount volume {volume_id} during shutdown: {e}")

        if self._release_tasks:
            await asyncio.gather(*self._release_tasks, return_exceptions=True)

    async def cleanup_stale_locks(self) -> int:
        """
        Clean up any stale lock references.

        Returns:
            Number of locks cleaned up
        """
        cleaned = 0
        for volume_id in list(self._locks.keys()):
            lock = self._locks.get(volume_id)
            if lock and not lock.locked() and not self._lock_users.get(volume_id):
                self._locks.pop(volume_id, None)
                cleaned += 1
        return cleaned


def _has_labels(have: Dict[str, str], want: Dict[str, str]) -> bool:
    return all(have.get(key) == value for key, value in want.items())


__all__ = ["VolumeDriver", "DRIVER_VERSION"]
