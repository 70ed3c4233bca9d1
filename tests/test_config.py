"""
Unit tests for driver configuration.
"""

import json

import pytest
import yaml
from pydantic import ValidationError

from fusevol.config import DriverConfig


class TestDriverConfigDefaults:
    """Tests for default values and validation."""

    def test_defaults(self):
        config = DriverConfig()

        assert config.driver_name == "fuse"
        assert config.base_dir_path == "/var/lib/fusevol/volumes"
        assert config.store_path == ""
        assert config.mount_provider == ""
        assert config.ready_timeout_sec == 30.0
        assert config.ready_timeout == 30.0
        assert config.api_port == 8080
        assert config.log_level == "info"

    def test_zero_ready_timeout_is_unbounded(self):
        assert DriverConfig(ready_timeout_sec=0).ready_timeout is None

    @pytest.mark.parametrize("field,value", [
        ("ready_timeout_sec", -1),
        ("ready_timeout_sec", 7200),
        ("unmount_wait_sec", -0.5),
        ("api_port", 0),
        ("driver_name", ""),
    ])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            DriverConfig(**{field: value})


class TestDriverConfigFromEnv:
    """Tests for environment loading."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("FUSEVOL_DRIVER_NAME", "fuse-test")
        monkeypatch.setenv("FUSEVOL_BASE_DIR", "/srv/volumes")
        monkeypatch.setenv("FUSEVOL_STORE_PATH", "/srv/records")
        monkeypatch.setenv("FUSEVOL_MOUNT_PROVIDER", "pkg.mod:Provider")
        monkeypatch.setenv("FUSEVOL_READY_TIMEOUT", "12.5")
        monkeypatch.setenv("FUSEVOL_UNMOUNT_WAIT", "1")
        monkeypatch.setenv("FUSEVOL_API_HOST", "0.0.0.0")
        monkeypatch.setenv("FUSEVOL_API_PORT", "9090")
        monkeypatch.setenv("FUSEVOL_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("FUSEVOL_LOG_FILE", "/tmp/fusevol.log")

        config = DriverConfig.from_env()

        assert config.driver_name == "fuse-test"
        assert config.base_dir_path == "/srv/volumes"
        assert config.store_path == "/srv/records"
        assert config.mount_provider == "pkg.mod:Provider"
        assert config.ready_timeout_sec == 12.5
        assert config.unmount_wait_sec == 1.0
        assert config.api_host == "0.0.0.0"
        assert config.api_port == 9090
        assert config.log_level == "debug"
        assert config.log_file == "/tmp/fusevol.log"

    def test_from_env_without_variables(self, monkeypatch):
        monkeypatch.delenv("FUSEVOL_BASE_DIR", raising=False)
        monkeypatch.delenv("FUSEVOL_READY_TIMEOUT", raising=False)

        config = DriverConfig.from_env()

        assert config.base_dir_path == "/var/lib/fusevol/volumes"
        assert config.ready_timeout_sec == 30.0


class TestDriverConfigFromFile:
    """Tests for file loading."""

    def test_yaml(self, temp_dir):
        path = temp_dir / "fusevol.yaml"
        path.write_text(yaml.safe_dump({
            "base_dir_path": "/data/volumes",
            "ready_timeout_sec": 5,
        }))

        config = DriverConfig.from_file(str(path))

        assert config.base_dir_path == "/data/volumes"
        assert config.ready_timeout_sec == 5.0

    def test_json(self, temp_dir):
        path = temp_dir / "fusevol.json"
        path.write_text(json.dumps({"mount_provider": "pkg:Provider"}))

        assert DriverConfig.from_file(str(path)).mount_provider == "pkg:Provider"

    def test_empty_yaml(self, temp_dir):
        path = temp_dir / "empty.yml"
        path.write_text("")

        assert DriverConfig.from_file(str(path)) == DriverConfig()

    def test_unsupported_format(self, temp_dir):
        path = temp_dir / "fusevol.toml"
        path.write_text("driver_name = 'fuse'")

        with pytest.raises(ValueError, match="Unsupported config format"):
            DriverConfig.from_file(str(path))


class TestDriverConfigLoad:
    """Tests for combining file and environment."""

    def test_environment_overrides_file(self, temp_dir, monkeypatch):
        path = temp_dir / "fusevol.yaml"
        path.write_text(yaml.safe_dump({
            "base_dir_path": "/data/volumes",
            "ready_timeout_sec": 5,
            "api_port": 9000,
        }))
        monkeypatch.setenv("FUSEVOL_READY_TIMEOUT", "12")
        monkeypatch.delenv("FUSEVOL_BASE_DIR", raising=False)
        monkeypatch.delenv("FUSEVOL_API_PORT", raising=False)

        config = DriverConfig.load(str(path))

        assert config.ready_timeout_sec == 12.0
        assert config.base_dir_path == "/data/volumes"
        assert config.api_port == 9000
        assert config.unmount_wait_sec == 5.0

    def test_without_file(self, monkeypatch):
        monkeypatch.setenv("FUSEVOL_DRIVER_NAME", "fuse-env")
        monkeypatch.delenv("FUSEVOL_BASE_DIR", raising=False)

        config = DriverConfig.load()

        assert config.driver_name == "fuse-env"
        assert config.base_dir_path == "/var/lib/fusevol/volumes"
