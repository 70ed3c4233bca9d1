from pydantic import BaseModel, Field
from typing import Optional


class DriverConfig(BaseModel):
    """
    Runtime configuration for the fusevol driver.

    Use load() to combine the sources:
    1. Environment variables (FUSEVOL_*)
    2. Configuration file (if provided)
    3. Default values (hardcoded)

    Priority: Environment variables > Config file > Defaults
    """

    driver_name: str = Field(
        default="fuse",
        min_length=1,
        description="Name the driver reports for itself"
    )

    # Volume storage
    base_dir_path: str = Field(
        default="/var/lib/fusevol/volumes",
        description="Base directory under which each volume gets its backing directory"
    )

    store_path: str = Field(
        default="",
        description="Directory for JSON volume records. If empty, records are kept in memory."
    )

    # Mounting
    mount_provider: str = Field(
        default="",
        description="Mount provider as a 'module:attribute' import string"
    )

    ready_timeout_sec: float = Field(
        default=30.0,
        ge=0,
        le=3600,
        description="Seconds to wait for a mount session to become ready (0 = wait forever)"
    )

    unmount_wait_sec: float = Field(
        default=5.0,
        ge=0,
        le=600,
        description="Seconds to wait for the serving loop to exit after unmount"
    )

    # API server
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host"
    )

    api_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="API server port"
    )

    # Logging
    log_level: str = Field(
        default="info",
        description="Log level (debug/info/warning/error)"
    )

    log_file: str = Field(
        default="",
        description="Optional log file path"
    )

    @property
    def ready_timeout(self) -> Optional[float]:
        """Ready timeout in seconds, or None when the wait is unbounded"""
        return self.ready_timeout_sec or None

    @classmethod
    def from_env(cls) -> "DriverConfig":
        """
        Load configuration from environment variables.

        Environment variables (FUSEVOL_*) override defaults:

        - FUSEVOL_DRIVER_NAME: Driver name
        - FUSEVOL_BASE_DIR: Base directory for backing directories
        - FUSEVOL_STORE_PATH: Directory for JSON volume records
        - FUSEVOL_MOUNT_PROVIDER: Mount provider import string
        - FUSEVOL_READY_TIMEOUT: Mount readiness timeout in seconds
        - FUSEVOL_UNMOUNT_WAIT: Serving loop exit wait in seconds
        - FUSEVOL_API_HOST / FUSEVOL_API_PORT: API server bind address
        - FUSEVOL_LOG_LEVEL / FUSEVOL_LOG_FILE: Logging
        """
        import os

        kwargs = {}

        if "FUSEVOL_DRIVER_NAME" in os.environ:
            kwargs["driver_name"] = os.environ["FUSEVOL_DRIVER_NAME"]
        if "FUSEVOL_BASE_DIR" in os.environ:
            kwargs["base_dir_path"] = os.environ["FUSEVOL_BASE_DIR"]
        if "FUSEVOL_STORE_PATH" in os.environ:
            kwargs["store_path"] = os.environ["FUSEVOL_STORE_PATH"]

        # Mounting
        if "FUSEVOL_MOUNT_PROVIDER" in os.environ:
            kwargs["mount_provider"] = os.environ["FUSEVOL_MOUNT_PROVIDER"]
        if "FUSEVOL_READY_TIMEOUT" in os.environ:
            kwargs["ready_timeout_sec"] = float(os.environ["FUSEVOL_READY_TIMEOUT"])
        if "FUSEVOL_UNMOUNT_WAIT" in os.environ:
            kwargs["unmount_wait_sec"] = float(os.environ["FUSEVOL_UNMOUNT_WAIT"])

        # API
        if "FUSEVOL_API_HOST" in os.environ:
            kwargs["api_host"] = os.environ["FUSEVOL_API_HOST"]
        if "FUSEVOL_API_PORT" in os.environ:
            kwargs["api_port"] = int(os.environ["FUSEVOL_API_PORT"])

        if "FUSEVOL_LOG_LEVEL" in os.environ:
            kwargs["log_level"] = os.environ["FUSEVOL_LOG_LEVEL"].lower()
        if "FUSEVOL_LOG_FILE" in os.environ:
            kwargs["log_file"] = os.environ["FUSEVOL_LOG_FILE"]

        return cls(**kwargs)

    @classmethod
    def from_file(cls, config_path: str) -> "DriverConfig":
        """
        Load configuration from a YAML or JSON file.

        Supported formats: .yaml, .yml, .json
        """
        import yaml

        with open(config_path, "r") as f:
            if config_path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(f)
            elif config_path.endswith(".json"):
                import json
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {config_path}")

        return cls(**(data or {}))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "DriverConfig":
        """
        Load configuration from an optional file, then apply environment overrides.

        Only values actually present in the file or the environment are
        taken from them; everything else keeps its default.
        """
        values = {}
        if config_path:
            values.update(cls.from_file(config_path).model_dump(exclude_unset=True))
        values.update(cls.from_env().model_dump(exclude_unset=True))
        return cls(**values)
