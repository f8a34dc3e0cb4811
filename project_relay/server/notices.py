"""Operator-facing notices.

Hosts that have a UI (an editor status bar, a notification area) implement
:class:`OperatorNotifier`; headless instances fall back to the log.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class OperatorNotifier(Protocol):
    """Surface a message to whoever operates the instance."""

    def info(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...


class LoggingNotifier:
    """Notifier that writes notices to this module's logger."""

    def info(self, message: str) -> None:
        logger.info("NOTICE: %s", message)

    def warn(self, message: str) -> None:
        logger.warning("NOTICE: %s", message)
