"""
Lifecycle of one project instance.

Startup order matters: a port is allocated, the transport binds it, and only
then is the project advertised in the router table. Shutdown closes the
transport, which removes the entry again.

Usage:
    instance = ProjectInstance("/home/me/app", rpc_server, store)
    await instance.start()
    ...
    await instance.stop()
"""

import logging
import os

from project_relay.framework.errors import BindError
from project_relay.registry.ports import PortAllocator
from project_relay.registry.schema import RegistryEntry
from project_relay.registry.store import RegistryStore
from project_relay.server.config import Config, get_config
from project_relay.server.notices import OperatorNotifier
from project_relay.server.rpc import RpcServer
from project_relay.server.transport import DuplexHttpTransport
from project_relay.server.versioning import VersionGate

logger = logging.getLogger(__name__)


class ProjectInstance:
    """Serve one project: allocate a port, bind, register, and clean up."""

    def __init__(
        self,
        project_path: str,
        server: RpcServer,
        store: RegistryStore,
        config: Config | None = None,
        port: int | None = None,
        notifier: OperatorNotifier | None = None,
    ) -> None:
        self.project_path = project_path
        self.server = server
        self.store = store
        self.config = config or get_config()
        self.requested_port = port
        self.notifier = notifier
        self.transport: DuplexHttpTransport | None = None

    @property
    def port(self) -> int | None:
        return self.transport.port if self.transport else None

    def _allocate_port(self) -> int:
        if self.requested_port is not None:
            return self.requested_port
        allocator = PortAllocator(
            self.store,
            default_port=self.config.registry.default_port,
            max_port=self.config.registry.max_port,
            host=self.config.registry.check_host,
        )
        return allocator.find_available_port()

    async def start(self) -> RegistryEntry:
        """Bring the instance up and advertise it.

        Returns:
            The router table entry written for this instance

        Raises:
            NoAvailablePortError: If no port in the range is usable
            BindError: If the chosen port cannot be bound
        """
        if self.transport is not None:
            msg = f"Instance for {self.project_path} already started"
            raise RuntimeError(msg)

        port = self._allocate_port()
        transport_config = self.config.transport
        transport = DuplexHttpTransport(
            port,
            project_path=self.project_path,
            store=self.store,
            host=transport_config.host,
            version_gate=VersionGate(
                min_version=transport_config.min_client_version,
                cooldown_seconds=transport_config.version_warning_cooldown_seconds,
                notifier=self.notifier,
            ),
            notifier=self.notifier,
        )

        try:
            await self.server.connect(transport)
        except BindError:
            logger.exception("Could not start instance for %s", self.project_path)
            raise

        self.transport = transport
        entry = self.store.register(self.project_path, transport.port, pid=os.getpid())
        logger.info(
            "Instance for %s ready on %s",
            self.project_path,
            transport.url,
            extra={"project": self.project_path, "port": transport.port, "pid": entry.pid},
        )
        return entry

    def refresh_registration(self) -> RegistryEntry:
        """Rewrite this instance's entry, e.g. after another process overwrote it."""
        if self.transport is None:
            msg = "Instance is not running"
            raise RuntimeError(msg)
        return self.store.register(self.project_path, self.transport.port, pid=os.getpid())

    async def stop(self) -> None:
        """Close the transport, which unregisters the project, then end the RPC session."""
        if self.transport is None:
            return
        transport, self.transport = self.transport, None
        await transport.close()
        await self.server.detach()
        logger.info("Instance for %s stopped", self.project_path, extra={"project": self.project_path})
