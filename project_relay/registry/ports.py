"""Port allocation for new instances.

A port is usable only when no router table entry claims it *and* a live bind
bind check on loopback succeeds. The table alone misses ports held by unrelated
processes; the bind check alone misses instances that are registered but briefly
not listening.
"""

import logging
import socket
from enum import Enum

from project_relay.framework.errors import NoAvailablePortError
from project_relay.registry.store import RegistryStore

logger = logging.getLogger(__name__)

DEFAULT_PORT = 60100
MAX_PORT = 63999
CHECK_HOST = "127.0.0.1"


class PortStatus(str, Enum):
    """Outcome of a live bind attempt."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


def check_port(port: int, host: str = CHECK_HOST) -> PortStatus:
    """Bind, listen and release ``port`` on ``host``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
        sock.listen(1)
    except OSError as e:
        logger.debug("Port %s unavailable: %s", port, e)
        return PortStatus.UNAVAILABLE
    finally:
        sock.close()
    return PortStatus.AVAILABLE


class PortAllocator:
    """Pick the first unclaimed, bindable port starting at the default."""

    def __init__(
        self,
        store: RegistryStore,
        default_port: int = DEFAULT_PORT,
        max_port: int = MAX_PORT,
        host: str = CHECK_HOST,
    ) -> None:
        if not (1 <= default_port <= max_port <= 65535):
            msg = f"Invalid port range {default_port}-{max_port}"
            raise ValueError(msg)
        self.store = store
        self.default_port = default_port
        self.max_port = max_port
        self.host = host

    def is_usable(self, port: int, claimed: set[int]) -> bool:
        return port not in claimed and check_port(port, self.host) is PortStatus.AVAILABLE

    def find_available_port(self) -> int:
        """Return a free port for a new instance.

        Returns:
            The default port if usable, otherwise the lowest usable port above it

        Raises:
            NoAvailablePortError: If every port up to ``max_port`` is claimed or taken
        """
        claimed = self.store.load().ports()

        for port in range(self.default_port, self.max_port + 1):
            if self.is_usable(port, claimed):
                if port != self.default_port:
                    logger.info("Default port %s in use, allocated %s", self.default_port, port)
                return port

        msg = f"No available port between {self.default_port} and {self.max_port}"
        raise NoAvailablePortError(msg, self.default_port, self.max_port)
