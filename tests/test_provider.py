"""
Unit tests for mount provider loading.
"""

from typing import Any, List

import pytest

from fusevol.mount.provider import (
    MountProvider,
    UnconfiguredMountProvider,
    load_mount_provider,
)
from fusevol.types import VolumeSpec


class EchoProvider(MountProvider):
    def get_mount_options(self, spec: VolumeSpec) -> List[str]:
        return [f"subtype={spec.format}"]

    def get_filesystem(self, spec: VolumeSpec) -> Any:
        return spec.format


ECHO_PROVIDER = EchoProvider()


def make_provider() -> MountProvider:
    return EchoProvider()


class TestLoadMountProvider:
    """Tests for load_mount_provider."""

    def test_empty_string_gives_unconfigured(self):
        provider = load_mount_provider("")

        assert isinstance(provider, UnconfiguredMountProvider)
        with pytest.raises(RuntimeError, match="no mount provider configured"):
            provider.get_mount_options(VolumeSpec())
        with pytest.raises(RuntimeError, match="no mount provider configured"):
            provider.get_filesystem(VolumeSpec())

    def test_class(self):
        provider = load_mount_provider(f"{__name__}:EchoProvider")

        assert isinstance(provider, EchoProvider)
        assert provider.get_mount_options(VolumeSpec()) == ["subtype=fuse"]

    def test_instance(self):
        assert load_mount_provider(f"{__name__}:ECHO_PROVIDER") is ECHO_PROVIDER

    def test_factory(self):
        assert isinstance(load_mount_provider(f"{__name__}:make_provider"), EchoProvider)

    @pytest.mark.parametrize("import_string", ["no_colon", ":EchoProvider", f"{__name__}:"])
    def test_malformed(self, import_string):
        with pytest.raises(ValueError, match="module:attribute"):
            load_mount_provider(import_string)

    def test_not_a_provider(self):
        with pytest.raises(ValueError, match="not a MountProvider"):
            load_mount_provider("os:getcwd")

    def test_missing_module(self):
        with pytest.raises(ImportError):
            load_mount_provider("fusevol_missing_module:Provider")
