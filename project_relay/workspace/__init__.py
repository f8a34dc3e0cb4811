"""Workspace handover: keep the focused project in line with what callers ask for."""

from project_relay.workspace.coordinator import (
    WorkspaceCoordinator,
    WorkspaceState,
    WorkspaceSwitchResult,
    build_remediation_message,
)
from project_relay.workspace.host import HostBridge, HostControlError, StaticHost
from project_relay.workspace.strategies import (
    CurrentWindowStrategy,
    HandoverOnlyStrategy,
    NewWindowStrategy,
    StrategyOutcome,
    SwitchPolicy,
    SwitchStrategy,
    build_strategies,
)

__all__ = [
    "CurrentWindowStrategy",
    "HandoverOnlyStrategy",
    "HostBridge",
    "HostControlError",
    "NewWindowStrategy",
    "StrategyOutcome",
    "SwitchPolicy",
    "StaticHost",
    "SwitchStrategy",
    "WorkspaceCoordinator",
    "WorkspaceState",
    "WorkspaceSwitchResult",
    "build_remediation_message",
    "build_strategies",
]
