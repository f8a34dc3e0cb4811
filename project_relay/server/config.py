"""Configuration management with validation.

This module provides centralized configuration for project relay instances:
- YAML file support (project_relay.yml)
- Environment variable overrides
- Type-safe, validated configuration classes

Configuration precedence (highest to lowest):
1. Environment variables (PROJECT_RELAY_*)
2. YAML config file
3. Default values

Example project_relay.yml:
    registry:
      path: "~/.project-relay-router.json"
      default_port: 60100
      max_port: 63999
      locking: true

    transport:
      host: "127.0.0.1"
      min_client_version: "0.0.2"
      version_warning_cooldown_seconds: 300

    workspace:
      switch_strategy: "all"
      verification_retries: 5
      verification_delay_seconds: 3
      switch_timeout_seconds: 15

    logging:
      level: "INFO"
      json: false

Usage:
    config = load_config()
    allocator = PortAllocator(store, config.registry.default_port, config.registry.max_port)
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from project_relay.registry.store import DEFAULT_REGISTRY_FILENAME

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "project_relay.yml"

SWITCH_STRATEGIES = ("all", "current-window", "new-window", "handover")

DEFAULT_PROJECT_MARKERS = (
    ".vscode",
    "package.json",
    "pom.xml",
    "build.gradle",
    ".project",
    ".classpath",
)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class RegistryConfig:
    """Router table and port range configuration.

    Attributes:
        path: Router table file shared by all instances and the relay
        default_port: First port tried for a new instance
        max_port: Last port of the scan range
        locking: Serialize read-modify-write cycles across processes
        check_host: Address used for the live bind check
    """

    path: str = str(Path("~") / DEFAULT_REGISTRY_FILENAME)
    default_port: int = 60100
    max_port: int = 63999
    locking: bool = True
    check_host: str = "127.0.0.1"

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not (1 <= self.default_port <= 65535):
            msg = f"default_port must be 1-65535, got {self.default_port}"
            raise ValueError(msg)

        if not (self.default_port <= self.max_port <= 65535):
            msg = f"max_port must be between default_port ({self.default_port}) and 65535, got {self.max_port}"
            raise ValueError(msg)

        object.__setattr__(self, "path", str(Path(self.path).expanduser()))


@dataclass(frozen=True)
class TransportConfig:
    """HTTP transport configuration.

    Attributes:
        host: Bind address for instance servers
        min_client_version: Oldest relay version that is not warned about
        version_warning_cooldown_seconds: Minimum gap between operator notices
    """

    host: str = "127.0.0.1"
    min_client_version: str = "0.0.2"
    version_warning_cooldown_seconds: float = 300.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.min_client_version.strip():
            msg = "min_client_version must not be empty"
            raise ValueError(msg)

        if self.version_warning_cooldown_seconds < 0:
            msg = (
                "version_warning_cooldown_seconds must be >= 0, "
                f"got {self.version_warning_cooldown_seconds}"
            )
            raise ValueError(msg)


@dataclass(frozen=True)
class WorkspaceConfig:
    """Workspace handover configuration.

    Attributes:
        switch_strategy: "all" | "current-window" | "new-window" | "handover"
        verification_retries: Polls after a switch before giving up
        verification_delay_seconds: Gap between verification polls
        switch_timeout_seconds: Settle time for a newly opened window
        verify_new_window: Confirm a new-window switch through the router table
        project_markers: Entries of which at least one marks a folder as a project
    """

    switch_strategy: str = "all"
    verification_retries: int = 5
    verification_delay_seconds: float = 3.0
    switch_timeout_seconds: float = 15.0
    verify_new_window: bool = True
    project_markers: tuple[str, ...] = DEFAULT_PROJECT_MARKERS

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.switch_strategy not in SWITCH_STRATEGIES:
            msg = f"switch_strategy must be one of {list(SWITCH_STRATEGIES)}, got '{self.switch_strategy}'"
            raise ValueError(msg)

        if self.verification_retries < 1:
            msg = f"verification_retries must be >= 1, got {self.verification_retries}"
            raise ValueError(msg)

        if self.verification_delay_seconds < 0 or self.switch_timeout_seconds < 0:
            msg = "verification_delay_seconds and switch_timeout_seconds must be >= 0"
            raise ValueError(msg)

        # YAML yields lists; keep the frozen config hashable
        object.__setattr__(self, "project_markers", tuple(self.project_markers))
        if not self.project_markers:
            msg = "project_markers must not be empty"
            raise ValueError(msg)


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration.

    Attributes:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json: Emit JSON lines instead of plain text
        file: Optional log file path
    """

    level: str = "INFO"
    json: bool = False
    file: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.level.upper() not in VALID_LOG_LEVELS:
            msg = f"level must be one of {list(VALID_LOG_LEVELS)}, got '{self.level}'"
            raise ValueError(msg)
        object.__setattr__(self, "level", self.level.upper())


@dataclass
class Config:
    """Root configuration object."""

    registry: RegistryConfig = field(default_factory=RegistryConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a plain dictionary."""
        return {
            "registry": dict(self.registry.__dict__),
            "transport": dict(self.transport.__dict__),
            "workspace": {
                **self.workspace.__dict__,
                "project_markers": list(self.workspace.project_markers),
            },
            "logging": dict(self.logging.__dict__),
        }


def _section(cls: type, values: dict[str, Any] | None, section: str) -> Any:
    """Build a config section from a YAML mapping, ignoring unknown keys."""
    values = values or {}
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        logger.warning("Ignoring unknown keys in '%s' section: %s", section, ", ".join(unknown))
    return cls(**{k: v for k, v in values.items() if k in known})


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# (env var, section, key, converter)
_ENV_OVERRIDES: tuple[tuple[str, str, str, Any], ...] = (
    ("PROJECT_RELAY_REGISTRY_FILE", "registry", "path", str),
    ("PROJECT_RELAY_DEFAULT_PORT", "registry", "default_port", int),
    ("PROJECT_RELAY_MAX_PORT", "registry", "max_port", int),
    ("PROJECT_RELAY_REGISTRY_LOCKING", "registry", "locking", _env_bool),
    ("PROJECT_RELAY_HOST", "transport", "host", str),
    ("PROJECT_RELAY_MIN_CLIENT_VERSION", "transport", "min_client_version", str),
    ("PROJECT_RELAY_SWITCH_STRATEGY", "workspace", "switch_strategy", str),
    ("PROJECT_RELAY_LOG_LEVEL", "logging", "level", str),
    ("PROJECT_RELAY_LOG_JSON", "logging", "json", _env_bool),
)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Optional path to config YAML file (default: ./project_relay.yml)

    Returns:
        Config object

    Raises:
        ValueError: If a value fails validation
    """
    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_FILENAME)

    raw: dict[str, Any] = {}
    if config_path.exists():
        logger.info("Loading configuration from %s", config_path)
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            msg = f"Configuration file {config_path} must contain a mapping"
            raise ValueError(msg)

    sections: dict[str, dict[str, Any]] = {
        name: dict(raw.get(name) or {}) for name in ("registry", "transport", "workspace", "logging")
    }

    for env_var, section, key, convert in _ENV_OVERRIDES:
        value = os.getenv(env_var)
        if value:
            sections[section][key] = convert(value)

    try:
        config = Config(
            registry=_section(RegistryConfig, sections["registry"], "registry"),
            transport=_section(TransportConfig, sections["transport"], "transport"),
            workspace=_section(WorkspaceConfig, sections["workspace"], "workspace"),
            logging=_section(LoggingConfig, sections["logging"], "logging"),
        )
    except ValueError as e:
        logger.exception("Configuration validation failed: %s", e)
        raise

    return config


# Global config instance (lazy-loaded)
_global_config: Config | None = None


def get_config() -> Config:
    """Get global config instance (singleton pattern).

    Returns:
        Config object
    """
    global _global_config

    if _global_config is None:
        _global_config = load_config()

    return _global_config
