"""Framework-level building blocks shared by every component."""

from project_relay.framework.errors import (
    BindError,
    ErrorCode,
    ErrorDetails,
    ErrorSeverity,
    HandoverFailedError,
    InvalidTargetProjectError,
    NoActiveProjectError,
    NoAvailablePortError,
    RegistryError,
    RelayError,
    RelayRequestError,
    WorkspaceError,
)

__all__ = [
    "BindError",
    "ErrorCode",
    "ErrorDetails",
    "ErrorSeverity",
    "HandoverFailedError",
    "InvalidTargetProjectError",
    "NoActiveProjectError",
    "NoAvailablePortError",
    "RegistryError",
    "RelayError",
    "RelayRequestError",
    "WorkspaceError",
]
