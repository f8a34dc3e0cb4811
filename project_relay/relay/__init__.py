"""Caller side: resolve project paths and forward calls to instances."""

from project_relay.relay.catalog import (
    WORKSPACE_ARGUMENT,
    WORKSPACE_PROPERTY,
    with_workspace_property,
    workspace_of,
)
from project_relay.relay.client import RelayClient

__all__ = [
    "WORKSPACE_ARGUMENT",
    "WORKSPACE_PROPERTY",
    "RelayClient",
    "with_workspace_property",
    "workspace_of",
]
