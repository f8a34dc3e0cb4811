"""Caller version checks for the duplex transport.

Relays announce themselves with the ``X-Relay-Version`` header. The check is
advisory: outdated callers are warned about, never rejected.
"""

import logging
import time
from collections.abc import Callable

from project_relay.server.notices import LoggingNotifier, OperatorNotifier

logger = logging.getLogger(__name__)

VERSION_HEADER = "X-Relay-Version"
MIN_CLIENT_VERSION = "0.0.2"
WARNING_COOLDOWN_SECONDS = 300.0


def _components(version: str) -> list[int]:
    parts = []
    for raw in version.strip().split("."):
        try:
            parts.append(int(raw))
        except ValueError:
            parts.append(0)
    return parts


def compare_versions(left: str, right: str) -> int:
    """Compare dot-separated numeric versions.

    Missing and non-numeric components count as 0, so ``"1"`` equals
    ``"1.0.0"``.

    Returns:
        -1 if ``left`` is older, 0 if equal, 1 if newer
    """
    a, b = _components(left), _components(right)
    width = max(len(a), len(b))
    a += [0] * (width - len(a))
    b += [0] * (width - len(b))
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


class VersionGate:
    """Warn about outdated callers, rate-limiting the operator notice."""

    def __init__(
        self,
        min_version: str = MIN_CLIENT_VERSION,
        cooldown_seconds: float = WARNING_COOLDOWN_SECONDS,
        notifier: OperatorNotifier | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_version = min_version
        self.cooldown_seconds = cooldown_seconds
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock
        self._last_notice: float | None = None

    def is_outdated(self, client_version: str | None) -> bool:
        """A missing version is treated as older than any minimum."""
        if not client_version:
            return True
        return compare_versions(client_version, self.min_version) < 0

    def check(self, client_version: str | None) -> bool:
        """Check a ``tools/call`` caller; returns True when it is outdated.

        Logs a warning on every outdated call and raises an operator notice
        at most once per cooldown window.
        """
        if not self.is_outdated(client_version):
            return False

        shown = client_version or "unknown"
        logger.warning(
            "Relay version %s is older than required %s", shown, self.min_version
        )

        now = self._clock()
        if self._last_notice is None or now - self._last_notice >= self.cooldown_seconds:
            self._last_notice = now
            self.notifier.warn(
                f"The connected relay (version {shown}) is older than {self.min_version}. "
                "Update the relay to avoid incompatibilities."
            )
        return True
