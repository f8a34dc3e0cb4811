"""Tests for error serialization and the JSON log formatter."""

import json
import logging
import sys
from pathlib import Path

import pytest

from project_relay.framework.errors import (
    BindError,
    ErrorCode,
    ErrorSeverity,
    InvalidTargetProjectError,
)
from project_relay.observability.logging import JSONFormatter
from project_relay.registry.store import RegistryStore
from project_relay.workspace.coordinator import WorkspaceSwitchResult


class TestErrors:
    """Test error taxonomy serialization."""

    def test_bind_error_to_dict(self) -> None:
        """Test startup errors serialize with code, details and severity."""
        error = BindError("Failed to bind to port 60100", 60100, "127.0.0.1")

        assert error.to_dict() == {
            "error": "BIND_ERROR",
            "message": "Failed to bind to port 60100",
            "details": {"port": 60100, "host": "127.0.0.1"},
            "severity": "fatal",
        }

    def test_workspace_error_details(self) -> None:
        """Test workspace errors are user errors carrying both projects."""
        error = InvalidTargetProjectError("bad", requested_project="/b", current_project="/a")

        details = error.to_details()

        assert details.code == ErrorCode.INVALID_TARGET_PROJECT
        assert details.severity == ErrorSeverity.USER_ERROR
        assert details.context == {"current_project": "/a", "requested_project": "/b"}

    def test_result_from_error(self) -> None:
        """Test a workspace error converts into a failed switch result."""
        error = InvalidTargetProjectError("bad", requested_project="/b", current_project="/a")

        result = WorkspaceSwitchResult.from_error(error)

        assert result == WorkspaceSwitchResult(
            success=False,
            message="bad",
            current_project="/a",
            requested_project="/b",
            error_code=ErrorCode.INVALID_TARGET_PROJECT,
        )


class TestJSONFormatter:
    """Test JSONFormatter."""

    def test_formats_record_with_extras(self) -> None:
        """Test known extras are included and absent ones omitted."""
        record = logging.LogRecord(
            "project_relay.test", logging.INFO, __file__, 1, "bound %s", (60100,), None
        )
        record.port = 60100

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "project_relay.test"
        assert data["message"] == "bound 60100"
        assert data["port"] == 60100  # noqa: PLR2004
        assert "project" not in data

    def test_includes_exception(self) -> None:
        """Test exception text is attached."""
        try:
            msg = "broken"
            raise RuntimeError(msg)
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: broken" in data["exception"]

    def test_registry_log_carries_fields(
        self, registry_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test registry writes log project, port and pid as structured fields."""
        store = RegistryStore(registry_path)

        with caplog.at_level(logging.INFO, logger="project_relay.registry.store"):
            store.register("/home/me/app", 60105, pid=42)

        record = next(r for r in caplog.records if r.getMessage().startswith("Registered"))
        data = json.loads(JSONFormatter().format(record))

        assert data["project"] == "/home/me/app"
        assert data["port"] == 60105  # noqa: PLR2004
        assert data["pid"] == 42  # noqa: PLR2004
