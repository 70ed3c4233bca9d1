"""
Mount providers

A mount provider turns a volume spec into the option list for a mount
session and the handler that serves its filesystem requests. What the
handler does with reads and writes is entirely the provider's business.
"""

from abc import ABC, abstractmethod
from importlib import import_module
from typing import Any, List
import logging

from ..types import VolumeSpec

logger = logging.getLogger(__name__)


class MountProvider(ABC):
    """Supplies session options and a filesystem handler for a volume spec."""

    @abstractmethod
    def get_mount_options(self, spec: VolumeSpec) -> List[str]:
        """
        Mount options for a session serving spec.

        Returns:
            fusermount style options, e.g. ["ro", "fsname=vol"]
        """
        pass

    @abstractmethod
    def get_filesystem(self, spec: VolumeSpec) -> Any:
        """
        Filesystem handler for spec.

        Returns:
            An object the session backend can serve (fuse.Operations for fusepy)
        """
        pass


class UnconfiguredMountProvider(MountProvider):
    """Placeholder used when no provider is configured; every request fails."""

    def get_mount_options(self, spec: VolumeSpec) -> List[str]:
        raise RuntimeError("no mount provider configured")

    def get_filesystem(self, spec: VolumeSpec) -> Any:
        raise RuntimeError("no mount provider configured")


def load_mount_provider(import_string: str) -> MountProvider:
    """
    Load a mount provider from a ``module:attribute`` import string.

    The attribute may be a MountProvider instance, or a class or factory
    that returns one when called without arguments. An empty string
    yields UnconfiguredMountProvider.

    Raises:
        ValueError: If the string is malformed or does not name a provider
    """
    if not import_string:
        logger.warning("No mount provider configured; mounts will fail")
        return UnconfiguredMountProvider()

    module_name, sep, attr = import_string.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Mount provider must be 'module:attribute', got '{import_string}'")

    target = getattr(import_module(module_name), attr)
    provider = target if isinstance(target, MountProvider) else target()
    if not isinstance(provider, MountProvider):
        raise ValueError(f"'{import_string}' is not a MountProvider")

    logger.info(f"Loaded mount provider {type(provider).__name__} from {import_string}")
    return provider


__all__ = [
    "MountProvider",
    "UnconfiguredMountProvider",
    "load_mount_provider",
]
