"""
Pytest configuration and fixtures for fusevol tests.

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import sys
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import pytest
import pytest_asyncio

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fusevol.driver import VolumeDriver  # noqa: E402
from fusevol.errors import StoreError  # noqa: E402
from fusevol.mount.provider import MountProvider  # noqa: E402
from fusevol.mount.session import MountSession, SessionBackend, parse_mount_options  # noqa: E402
from fusevol.store.volumes import MemoryVolumeStore  # noqa: E402
from fusevol.types import Volume, VolumeSpec  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "api: API endpoint tests"
    )


# =============================================================================
# Fakes
# =============================================================================

class FakeProvider(MountProvider):
    """Mount provider returning canned options and an opaque handler."""

    def __init__(self):
        self.options: List[str] = ["fsname=fusevol", "ro"]
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    def get_mount_options(self, spec: VolumeSpec) -> List[str]:
        self.calls.append("options")
        if self.error is not None:
            raise self.error
        return list(self.options)

    def get_filesystem(self, spec: VolumeSpec) -> Any:
        self.calls.append("filesystem")
        return {"format": spec.format}


class FakeSessionBackend(SessionBackend):
    """
    Scripted session backend.

    serve() signals ready (optionally with mount_error) and then blocks
    until terminate() is called for its mount path.
    """

    SERVE_LIMIT_SEC = 5

    def __init__(self):
        self.mount_error: Optional[BaseException] = None
        self.establish_error: Optional[Exception] = None
        self.terminate_error: Optional[Exception] = None
        self.never_ready = False
        self.exit_before_ready = False
        self.established: List[str] = []
        self.served: List[Any] = []
        self.terminated: List[str] = []
        self._stops: Dict[str, threading.Event] = {}

    def establish(self, mount_path: str, options: List[str]) -> MountSession:
        if self.establish_error is not None:
            raise self.establish_error
        self.established.append(mount_path)
        self._stops[mount_path] = threading.Event()
        return MountSession(mount_path, parse_mount_options(options))

    def serve(self, session: MountSession, handler: Any) -> None:
        self.served.append(handler)
        if self.exit_before_ready:
            return
        if self.mount_error is not None:
            session.signal_ready(self.mount_error)
            return
        if not self.never_ready:
            session.signal_ready()
        self._stops[session.mount_path].wait(timeout=self.SERVE_LIMIT_SEC)

    def terminate(self, mount_path: str) -> None:
        if self.terminate_error is not None:
            raise self.terminate_error
        self.terminated.append(mount_path)
        self.kill(mount_path)

    def kill(self, mount_path: str) -> None:
        """End a serving loop without going through terminate()."""
        stop = self._stops.get(mount_path)
        if stop is not None:
            stop.set()

    def release_all(self) -> None:
        for stop in self._stops.values():
            stop.set()


class RecordingStore(MemoryVolumeStore):
    """Memory store that counts writes and can be told to fail them."""

    def __init__(self):
        super().__init__()
        self.creates = 0
        self.updates = 0
        self.fail_create = False
        self.fail_update = False

    async def create(self, volume: Volume) -> None:
        if self.fail_create:
            raise StoreError("insert refused", volume_id=volume.id)
        self.creates += 1
        await super().create(volume)

    async def update(self, volume: Volume) -> None:
        if self.fail_update:
            raise StoreError("update refused", volume_id=volume.id)
        self.updates += 1
        await super().update(volume)


# =============================================================================
# Temporary Directories
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def base_dir(temp_dir) -> Path:
    """Base directory for backing directories."""
    path = temp_dir / "volumes"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def store_dir(temp_dir) -> Path:
    """Directory for JSON volume records."""
    return temp_dir / "records"


# =============================================================================
# Driver Fixtures
# =============================================================================

@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def session_backend() -> FakeSessionBackend:
    return FakeSessionBackend()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest_asyncio.fixture
async def driver(base_dir, provider, session_backend, store):
    """Create a VolumeDriver wired to fakes."""
    volume_driver = VolumeDriver(
        name="fuse",
        base_dir_path=str(base_dir),
        provider=provider,
        store=store,
        session_backend=session_backend,
        ready_timeout_sec=2.0,
        unmount_wait_sec=2.0,
    )
    yield volume_driver
    session_backend.release_all()
    for session in list(volume_driver._sessions.values()):
        await session.wait_closed(timeout=2.0)
    if volume_driver._release_tasks:
        await asyncio.gather(*volume_driver._release_tasks, return_exceptions=True)
