"""
Mount session primitives

A MountSession is one live OS-level mount plus the loop that serves
filesystem requests for it. The serving loop is blocking, so it runs on a
worker thread wrapped in an asyncio Task owned by the session:

- readiness is a one-shot asyncio.Event set from the serving thread
- mount_error holds the terminal error, readable once ready has fired
- the task's completion marks the session closed; a loop that exits
  before signalling ready marks the session ready with that exit as its
  mount error, so waiters never block on a dead session

SessionBackend implementations provide establish/serve/terminate. The
fusepy backend runs ``fuse.FUSE`` in the foreground on the worker thread
and reports readiness from the FUSE ``init`` callback.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging
import os
import subprocess

logger = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    """Serving loop exited before the mount became ready"""


def parse_mount_options(options: List[str]) -> Dict[str, Any]:
    """
    Turn fusermount style options into FUSE keyword arguments.

    ``["ro", "fsname=vol1", "max_read=131072"]`` becomes
    ``{"ro": True, "fsname": "vol1", "max_read": "131072"}``.
    Comma separated entries are split.
    """
    parsed: Dict[str, Any] = {}
    for option in options or []:
        for item in str(option).split(","):
            item = item.strip()
            if not item:
                continue
            key, sep, value = item.partition("=")
            parsed[key.strip()] = value.strip() if sep else True
    return parsed


class MountSession:
    """
    A live mount at mount_path and its serving task.

    Must be created from inside a running event loop; the serving thread
    uses that loop to report readiness.
    """

    def __init__(self, mount_path: str, options: Optional[Dict[str, Any]] = None):
        self.mount_path = mount_path
        self.options = options or {}
        self.mount_error: Optional[BaseException] = None
        self.serve_error: Optional[BaseException] = None
        self._loop = asyncio.get_running_loop()
        self._ready = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._exit_callbacks: List[Callable[["MountSession"], None]] = []

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def closed(self) -> bool:
        return self._task is not None and self._task.done()

    def signal_ready(self, error: Optional[BaseException] = None) -> None:
        """Report readiness. Safe to call from any thread; only the first call counts."""
        self._loop.call_soon_threadsafe(self._set_ready, error)

    def _set_ready(self, error: Optional[BaseException]) -> None:
        if self._ready.is_set():
            return
        self.mount_error = error
        self._ready.set()

    def add_exit_callback(self, callback: Callable[["MountSession"], None]) -> None:
        """Run callback(session) on the event loop once the serving loop exits."""
        self._exit_callbacks.append(callback)

    def start(self, serve: Callable[[], None]) -> asyncio.Task:
        """Run the blocking serve callable on a worker thread."""
        if self._task is not None:
            raise RuntimeError(f"Session at {self.mount_path} already started")
        self._task = asyncio.create_task(
            asyncio.to_thread(serve),
            name=f"fuse-serve:{self.mount_path}",
        )
        self._task.add_done_callback(self._on_serve_exit)
        return self._task

    def _on_serve_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.serve_error = asyncio.CancelledError()
        else:
            self.serve_error = task.exception()

        if self.serve_error is not None:
            logger.warning(f"Serving loop for {self.mount_path} exited with error: {self.serve_error}")
        else:
            logger.info(f"Serving loop for {self.mount_path} exited")

        self._set_ready(
            self.serve_error
            or SessionClosedError(f"session at {self.mount_path} closed before ready")
        )

        for callback in self._exit_callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Session exit callback failed for {self.mount_path}: {e}")

    async def wait_ready(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        """
        Wait until the session is ready.

        Returns:
            The session's mount error, or None if the mount is live

        Raises:
            asyncio.TimeoutError: If timeout elapses first
        """
        await asyncio.wait_for(self._ready.wait(), timeout)
        return self.mount_error

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Wait for the serving loop to exit. Returns True if it has."""
        if self._task is None:
            return True
        await asyncio.wait({self._task}, timeout=timeout)
        return self._task.done()


class SessionBackend(ABC):
    """
    OS-level mount primitives.

    Implementations must define:
    - establish(): Prepare a session at a mount path
    - serve(): Serve filesystem requests until the mount goes away (blocking)
    - terminate(): Unmount a path, which ends its serving loop
    """

    @abstractmethod
    def establish(self, mount_path: str, options: List[str]) -> MountSession:
        """
        Establish a session at mount_path.

        Raises:
            OSError: If the mount cannot be set up
        """
        pass

    @abstractmethod
    def serve(self, session: MountSession, handler: Any) -> None:
        """
        Serve requests for session using handler. Runs on a worker thread
        and must call session.signal_ready() once the mount is visible.
        """
        pass

    @abstractmethod
    def terminate(self, mount_path: str) -> None:
        """
        Unmount mount_path.

        Raises:
            OSError: If the unmount fails
        """
        pass


class FuseSessionBackend(SessionBackend):
    """
    fusepy backed sessions.

    Handlers are ``fuse.Operations`` instances. fusepy mounts and serves in
    a single blocking call, so establish() only validates the mount point;
    a mount failure surfaces as the session's mount error.
    """

    UNMOUNT_COMMANDS = (["fusermount", "-u"], ["umount"])
    HANDLER_FLAGS = ("use_ns", "flag_nullpath_ok", "flag_nopath", "flag_utime_omit_ok")

    def __init__(self, unmount_timeout_sec: float = 10.0):
        self.unmount_timeout_sec = unmount_timeout_sec

    def establish(self, mount_path: str, options: List[str]) -> MountSession:
        if not os.path.isdir(mount_path):
            raise NotADirectoryError(f"Mount point {mount_path} is not a directory")
        if os.path.ismount(mount_path):
            raise OSError(f"Mount point {mount_path} is already in use")
        if not os.access(mount_path, os.R_OK | os.W_OK | os.X_OK):
            raise PermissionError(f"No access to mount point {mount_path}")

        kwargs = parse_mount_options(options)
        kwargs.pop("foreground", None)
        return MountSession(mount_path, kwargs)

    def serve(self, session: MountSession, handler: Any) -> None:
        import fuse

        class _ReadyOperations(fuse.Operations):
            """Forwards every call to handler, reporting readiness on init."""

            def __call__(self, op, *args):
                if op == "init":
                    session.signal_ready()
                return handler(op, *args)

        operations = _ReadyOperations()
        # fusepy reads these flags off the operations object itself
        for name in self.HANDLER_FLAGS:
            if hasattr(handler, name):
                setattr(operations, name, getattr(handler, name))

        logger.info(f"Starting FUSE session at {session.mount_path} with options: {session.options}")
        fuse.FUSE(
            operations,
            session.mount_path,
            foreground=True,
            nothreads=False,
            **session.options,
        )

    def terminate(self, mount_path: str) -> None:
        failures = []
        for cmd in self.UNMOUNT_COMMANDS:
            try:
                result = subprocess.run(
                    cmd + [mount_path],
                    capture_output=True,
                    text=True,
                    timeout=self.unmount_timeout_sec,
                )
            except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
                logger.debug(f"Unmount command {cmd[0]} failed: {exc}")
                failures.append(f"{cmd[0]}: {exc}")
                continue

            if result.returncode == 0:
                logger.info(f"Unmounted {mount_path}")
                return
            logger.debug(
                f"{' '.join(cmd)} failed (rc={result.returncode}): {result.stderr.strip()}"
            )
            failures.append(f"{cmd[0]}: {result.stderr.strip() or result.returncode}")

        raise OSError(f"Could not unmount {mount_path} ({'; '.join(failures)})")


__all__ = [
    "MountSession",
    "SessionBackend",
    "FuseSessionBackend",
    "SessionClosedError",
    "parse_mount_options",
]
