"""Logging setup for relay processes: plain text for terminals, JSON for collectors."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Extra attributes copied into JSON records when present
_EXTRA_FIELDS = ("project", "port", "pid", "request_id", "method", "strategy")


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str = "INFO", json_format: bool = False, log_file: str | None = None
) -> None:
    """Install handlers on the root logger.

    Output goes to stderr so that stdout stays free for protocol traffic.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines instead of the plain text format
        log_file: Optional file that receives the same records
    """
    formatter: logging.Formatter = (
        JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT)
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level.upper(), handlers=handlers, force=True)
