"""
Configuration management (SSOT).

This module defines ALL configuration for the expense capture application.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The row sink URL is the single switch for remote delivery; without it every
  sync attempt fails fast and records stay pending
- The asset sink is optional; without it the raw photo payload is sent as the
  photo reference
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


DEFAULT_PROJECTS = [
    "Administración",
    "Operaciones",
    "Ventas",
    "Proyectos Especiales",
]


@dataclass
class SinkConfig:
    """Remote spreadsheet endpoint configuration.

    SSOT for remote URLs:
    - url: Web-app endpoint receiving rows (action=addRow)
    - asset_url: Endpoint receiving images (action=uploadImage)

    If asset_url is not set, falls back to url.
    """

    url: str | None = None
    asset_url: str | None = None
    # Upload photos to the asset sink before submitting the row
    upload_images: bool = True
    # Request timeout (seconds)
    timeout_seconds: int = 30
    # Connect-phase retries per request
    max_retries: int = 2

    def is_configured(self) -> bool:
        """Check if the row sink has an endpoint."""
        return bool(self.url)

    def get_asset_url(self) -> str | None:
        """Get the asset sink URL, or None when images are not uploaded."""
        if not self.upload_images:
            return None
        return self.asset_url or self.url


@dataclass
class ConnectivityConfig:
    """Connectivity monitor settings."""

    # Window in which online/offline flaps collapse into one sync run
    debounce_seconds: float = 3.0
    # How often the background probe checks the network interface
    poll_interval_seconds: float = 10.0
    # Settling delay before the startup sync run
    startup_delay_seconds: float = 2.0
    # Address used by the interface probe (no packet is sent)
    probe_host: str = "8.8.8.8"
    probe_port: int = 53


@dataclass
class CaptureConfig:
    """Capture form settings."""

    projects: list[str] = field(default_factory=lambda: list(DEFAULT_PROJECTS))
    # Project choice that enables the free-text project field
    other_project_value: str = "otro"
    # Tesseract language code
    ocr_language: str = "spa"


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    sink: SinkConfig = field(default_factory=SinkConfig)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/capture.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        for name, url in (("sink.url", self.sink.url), ("sink.asset_url", self.sink.asset_url)):
            if url and not url.startswith(("http://", "https://")):
                errors.append(f"{name} must be an http(s) URL")

        if self.sink.timeout_seconds <= 0:
            errors.append("sink.timeout_seconds must be positive")
        if self.sink.max_retries < 0:
            errors.append("sink.max_retries must be >= 0")

        if self.connectivity.debounce_seconds < 0:
            errors.append("connectivity.debounce_seconds must be >= 0")
        if self.connectivity.poll_interval_seconds <= 0:
            errors.append("connectivity.poll_interval_seconds must be positive")
        if self.connectivity.startup_delay_seconds < 0:
            errors.append("connectivity.startup_delay_seconds must be >= 0")

        if not self.capture.projects:
            errors.append("capture.projects must list at least one project")

        return errors


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - EXPENSE_SINK_URL
    - EXPENSE_ASSET_URL
    - EXPENSE_UPLOAD_IMAGES (true/false)
    - EXPENSE_STATE_DB
    - EXPENSE_DEBOUNCE_SECONDS

    Raises:
        ConfigValidationError: If the file is not a mapping or values are invalid
    """
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    if not isinstance(data, dict):
        raise ConfigValidationError(f"{config_path} must contain a YAML mapping")

    # Sink config
    sink_data = data.get("sink", {}) or {}
    sink = SinkConfig(
        url=os.environ.get("EXPENSE_SINK_URL", sink_data.get("url")) or None,
        asset_url=os.environ.get("EXPENSE_ASSET_URL", sink_data.get("asset_url")) or None,
        upload_images=_env_bool("EXPENSE_UPLOAD_IMAGES", sink_data.get("upload_images", True)),
        timeout_seconds=int(sink_data.get("timeout_seconds", 30)),
        max_retries=int(sink_data.get("max_retries", 2)),
    )

    # Connectivity config
    conn_data = data.get("connectivity", {}) or {}
    debounce = conn_data.get("debounce_seconds", 3.0)
    debounce_env = os.environ.get("EXPENSE_DEBOUNCE_SECONDS", "")
    if debounce_env:
        try:
            debounce = float(debounce_env)
        except ValueError:
            pass  # Keep file/default value

    connectivity = ConnectivityConfig(
        debounce_seconds=float(debounce),
        poll_interval_seconds=float(conn_data.get("poll_interval_seconds", 10.0)),
        startup_delay_seconds=float(conn_data.get("startup_delay_seconds", 2.0)),
        probe_host=conn_data.get("probe_host", "8.8.8.8"),
        probe_port=int(conn_data.get("probe_port", 53)),
    )

    # Capture config
    capture_data = data.get("capture", {}) or {}
    capture = CaptureConfig(
        projects=list(capture_data.get("projects", DEFAULT_PROJECTS)),
        other_project_value=capture_data.get("other_project_value", "otro"),
        ocr_language=capture_data.get("ocr_language", "spa"),
    )

    # State DB
    state_db = os.environ.get("EXPENSE_STATE_DB", data.get("state_db_path", "data/capture.db"))

    config = Config(
        sink=sink,
        connectivity=connectivity,
        capture=capture,
        state_db_path=Path(state_db),
    )

    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))

    return config


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Expense Capture Configuration
#
# Remote delivery (SSOT):
# - sink.url: web-app endpoint that appends rows to the spreadsheet
# - sink.asset_url: endpoint that stores receipt images (defaults to sink.url)
#
# Without sink.url every record stays pending until one is configured.

sink:
  url: null                              # e.g. https://script.google.com/macros/s/<id>/exec
  asset_url: null                        # Image endpoint (set if different from url)
  upload_images: true                    # false: send the photo payload inline
  timeout_seconds: 30
  max_retries: 2                         # Connect-phase retries only

# Connectivity monitor
connectivity:
  debounce_seconds: 3.0                  # Collapse online/offline flaps into one sync
  poll_interval_seconds: 10.0            # Network interface probe interval
  startup_delay_seconds: 2.0             # Settling delay before the startup sync
  probe_host: "8.8.8.8"
  probe_port: 53

# Capture form
capture:
  projects:
    - "Administración"
    - "Operaciones"
    - "Ventas"
    - "Proyectos Especiales"
  other_project_value: "otro"            # Choice that enables free-text project
  ocr_language: "spa"                    # Tesseract language

# Local queue database path
state_db_path: "data/capture.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(default_config)
