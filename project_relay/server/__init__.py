"""
Instance-side server components.

- transport: HTTP POST to asynchronous JSON-RPC bridge
- rpc: method dispatch and tool registry
- instance: port allocation, binding and registration lifecycle
- config: YAML and environment configuration
"""

from project_relay.server.config import Config, get_config, load_config
from project_relay.server.instance import ProjectInstance
from project_relay.server.rpc import RpcServer, ToolRegistry
from project_relay.server.transport import DuplexHttpTransport
from project_relay.server.versioning import VersionGate, compare_versions

__all__ = [
    "Config",
    "DuplexHttpTransport",
    "ProjectInstance",
    "RpcServer",
    "ToolRegistry",
    "VersionGate",
    "compare_versions",
    "get_config",
    "load_config",
]
