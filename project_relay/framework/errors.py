"""
Error taxonomy for the relay, the project registry and workspace handover.

Components raise these typed exceptions; the boundaries translate them:
startup failures abort the instance, workspace errors become
WorkspaceSwitchResult values and tool failures become in-band RPC results.

Key features:
- Error code enums (avoid typos)
- Severity levels (fatal, transient, user_error)
- Pydantic models for structured error details
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Error Codes and Severity
# ============================================================================


class ErrorCode(str, Enum):
    """Enumeration of all error codes in the system."""

    # Startup errors
    BIND_ERROR = "BIND_ERROR"
    NO_AVAILABLE_PORT = "NO_AVAILABLE_PORT"

    # Workspace errors
    NO_ACTIVE_PROJECT = "NO_ACTIVE_PROJECT"
    INVALID_TARGET_PROJECT = "INVALID_TARGET_PROJECT"
    HANDOVER_FAILED = "HANDOVER_FAILED"

    # Registry and relay errors
    REGISTRY_ERROR = "REGISTRY_ERROR"
    RELAY_REQUEST_ERROR = "RELAY_REQUEST_ERROR"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorSeverity(str, Enum):
    """Error severity for retry decisions and operator alerting."""

    FATAL = "fatal"  # Unrecoverable, requires intervention
    TRANSIENT = "transient"  # Temporary, retryable
    USER_ERROR = "user_error"  # User mistake, not retryable


# ============================================================================
# Pydantic Error Models
# ============================================================================


class ErrorDetails(BaseModel):
    """Structured error details for serialization."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: ErrorCode = Field(..., description="Error code enum")
    message: str = Field(..., description="Human-readable error message")
    context: dict[str, Any] = Field(default_factory=dict, description="Additional context")
    severity: ErrorSeverity = Field(default=ErrorSeverity.FATAL, description="Error severity")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump(mode="json")


# ============================================================================
# Base Exception Class
# ============================================================================


class RelayError(Exception):
    """Base class for all project relay errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: dict[str, Any] | None = None,
        severity: ErrorSeverity = ErrorSeverity.FATAL,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.severity = severity

    def to_details(self) -> ErrorDetails:
        """Convert to structured ErrorDetails."""
        return ErrorDetails(
            code=self.code, message=self.message, context=self.details, severity=self.severity
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
        }


# ============================================================================
# Startup Errors
# ============================================================================


class BindError(RelayError):
    """The transport could not bind its listening port."""

    def __init__(self, message: str, port: int, host: str | None = None) -> None:
        details: dict[str, Any] = {"port": port}
        if host:
            details["host"] = host
        super().__init__(message, ErrorCode.BIND_ERROR, details)
        self.port = port


class NoAvailablePortError(RelayError):
    """Every port in the scan range is claimed or unbindable."""

    def __init__(self, message: str, start_port: int, end_port: int) -> None:
        super().__init__(
            message,
            ErrorCode.NO_AVAILABLE_PORT,
            {"start_port": start_port, "end_port": end_port},
        )


# ============================================================================
# Workspace Errors
# ============================================================================


class WorkspaceError(RelayError):
    """Base class for handover failures, always a user-facing condition."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        current_project: str | None = None,
        requested_project: str | None = None,
    ) -> None:
        details = {}
        if current_project:
            details["current_project"] = current_project
        if requested_project:
            details["requested_project"] = requested_project
        super().__init__(message, code, details, severity=ErrorSeverity.USER_ERROR)
        self.current_project = current_project
        self.requested_project = requested_project


class NoActiveProjectError(WorkspaceError):
    """The host has no focused project to compare against."""

    def __init__(self, message: str, requested_project: str | None = None) -> None:
        super().__init__(
            message, ErrorCode.NO_ACTIVE_PROJECT, requested_project=requested_project
        )


class InvalidTargetProjectError(WorkspaceError):
    """The requested project is missing, not a directory or has no project marker."""

    def __init__(
        self, message: str, requested_project: str, current_project: str | None = None
    ) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_TARGET_PROJECT,
            current_project=current_project,
            requested_project=requested_project,
        )


class HandoverFailedError(WorkspaceError):
    """Every switch strategy failed to bring the requested project into focus."""

    def __init__(
        self, message: str, requested_project: str, current_project: str | None = None
    ) -> None:
        super().__init__(
            message,
            ErrorCode.HANDOVER_FAILED,
            current_project=current_project,
            requested_project=requested_project,
        )


# ============================================================================
# Registry and Relay Errors
# ============================================================================


class RegistryError(RelayError):
    """Unexpected failure writing the shared registry file."""

    def __init__(self, message: str, path: str | None = None) -> None:
        details = {}
        if path:
            details["path"] = path
        super().__init__(message, ErrorCode.REGISTRY_ERROR, details, severity=ErrorSeverity.TRANSIENT)


class RelayRequestError(RelayError):
    """An HTTP call from the relay to an instance failed."""

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        details: dict[str, Any] = {"url": url}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message, ErrorCode.RELAY_REQUEST_ERROR, details, severity=ErrorSeverity.TRANSIENT
        )
        self.status_code = status_code
