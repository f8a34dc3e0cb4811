"""Shared router table and port allocation."""

from project_relay.registry.paths import normalize_project_path, to_native_path
from project_relay.registry.ports import (
    DEFAULT_PORT,
    MAX_PORT,
    PortAllocator,
    PortStatus,
    check_port,
)
from project_relay.registry.schema import RegistryEntry, RegistryTable
from project_relay.registry.store import RegistryStore, default_registry_path

__all__ = [
    "DEFAULT_PORT",
    "MAX_PORT",
    "PortAllocator",
    "PortStatus",
    "RegistryEntry",
    "RegistryStore",
    "RegistryTable",
    "default_registry_path",
    "normalize_project_path",
    "check_port",
    "to_native_path",
]
