"""
Project Relay: per-project tool instances behind one discoverable endpoint.

Each running instance serves JSON-RPC over plain HTTP on its own local port and
advertises itself in a shared router table keyed by project path. A relay
resolves a project path to a port and forwards calls there, asking the instance
to hand over focus when the requested project is not the active one.

Public API modules:
- project_relay.registry: Router table persistence and port allocation
- project_relay.server: Duplex HTTP transport, RPC dispatch and instance lifecycle
- project_relay.workspace: Workspace handover coordination
- project_relay.relay: Caller-side client
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("project-relay")
except PackageNotFoundError:
    # Development checkout, not installed via pip
    __version__ = "0.1.0"

__all__ = ["__version__"]
