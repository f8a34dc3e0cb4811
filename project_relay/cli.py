"""Project Relay CLI - run instances and inspect the router table.

This module provides command-line tools for:
- Serving a project instance (headless)
- Listing and pruning router table entries
- Pinging the instance serving a project

Example:
    # Serve a project on the first free port from 60100
    project-relay serve --project ~/code/app

    # Show what is registered
    project-relay routes list

    # Drop a stale entry left by a crashed instance
    project-relay routes remove --port 60101

    # Check that the instance for a project answers
    project-relay ping --project ~/code/app
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

from project_relay import __version__
from project_relay.framework.errors import RelayError
from project_relay.observability.logging import configure_logging
from project_relay.registry.store import RegistryStore
from project_relay.relay.client import RelayClient
from project_relay.server.config import Config, load_config
from project_relay.server.instance import ProjectInstance
from project_relay.server.rpc import RpcServer
from project_relay.workspace.coordinator import WorkspaceCoordinator
from project_relay.workspace.host import StaticHost

logger = logging.getLogger(__name__)


def _store(config: Config) -> RegistryStore:
    return RegistryStore(config.registry.path, locking=config.registry.locking)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


# =============================================================================
# Serve
# =============================================================================


def build_instance(project_path: str, config: Config, port: int | None = None) -> ProjectInstance:
    """Wire a headless instance for ``project_path`` with its built-in tools."""
    store = _store(config)
    coordinator = WorkspaceCoordinator(StaticHost(project_path), store=store, config=config.workspace)
    server = RpcServer("project-relay", __version__, coordinator=coordinator)
    instance = ProjectInstance(project_path, server, store, config=config, port=port)

    async def project_info(arguments: dict[str, Any]) -> dict[str, Any]:
        return {
            "project": project_path,
            "port": instance.port,
            "pid": os.getpid(),
            "version": __version__,
        }

    server.tools.register(
        "project_info",
        "Describe the project instance answering this call",
        project_info,
        requires_workspace=True,
    )
    return instance


async def _serve(instance: ProjectInstance) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await instance.start()
    try:
        await stop.wait()
    finally:
        await instance.stop()


def serve(args: argparse.Namespace, config: Config) -> int:
    """Serve one project until interrupted.

    Returns:
        Exit code (0 for clean shutdown, 1 for startup failure)
    """
    project_path = str(Path(args.project).expanduser().resolve())
    instance = build_instance(project_path, config, port=args.port)
    try:
        asyncio.run(_serve(instance))
    except RelayError as e:
        logger.error("Failed to start: %s", e.message)
        return 1
    return 0


# =============================================================================
# Routes
# =============================================================================


def routes_list(args: argparse.Namespace, config: Config) -> int:
    entries = _store(config).list_entries()
    _print_json([entry.to_document() for entry in entries])
    return 0


def routes_remove(args: argparse.Namespace, config: Config) -> int:
    """Remove entries by port or by project path."""
    store = _store(config)
    if args.port is not None:
        removed = store.unregister_by_port(args.port)
    else:
        removed = store.unregister(args.project)
    _print_json({"removed": removed})
    return 0 if removed else 1


# =============================================================================
# Ping
# =============================================================================


def ping(args: argparse.Namespace, config: Config) -> int:
    client = RelayClient(
        _store(config), host=config.transport.host, default_port=config.registry.default_port
    )
    try:
        with client:
            _print_json(client.ping(args.project))
    except RelayError as e:
        logger.error("%s", e.message)
        return 1
    return 0


# =============================================================================
# Parser
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="project-relay",
        description="Project Relay - per-project JSON-RPC instances behind a shared router table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="Path to project_relay.yml")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured logging level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    serve_parser = subparsers.add_parser("serve", help="Serve a project instance")
    serve_parser.add_argument("--project", required=True, help="Project folder to serve")
    serve_parser.add_argument("--port", type=int, help="Fixed port (default: first free port)")
    serve_parser.set_defaults(func=serve)

    routes_parser = subparsers.add_parser("routes", help="Router table commands")
    routes_subparsers = routes_parser.add_subparsers(dest="routes_command")

    list_parser = routes_subparsers.add_parser("list", help="List registered instances")
    list_parser.set_defaults(func=routes_list)

    remove_parser = routes_subparsers.add_parser("remove", help="Remove registered instances")
    target = remove_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--port", type=int, help="Remove every entry on this port")
    target.add_argument("--project", help="Remove the entry for this project")
    remove_parser.set_defaults(func=routes_remove)

    ping_parser = subparsers.add_parser("ping", help="Ping the instance serving a project")
    ping_parser.add_argument("--project", help="Project path (default: the default port)")
    ping_parser.set_defaults(func=ping)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(
        level=args.log_level or config.logging.level,
        json_format=config.logging.json,
        log_file=config.logging.file,
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
