"""
Workspace handover coordination.

Before a project-bound tool runs, the coordinator compares the project the
caller asked for with the project focused in this host:

- NO_REQUEST: the caller named no project, nothing to do
- NO_CURRENT: the host has nothing open, the call cannot be served here
- MATCH: same project after normalization, nothing to do
- MISMATCH: validate the target, then run the switch strategies

A strategy that reports success only counts once the host reports the
requested project as focused; otherwise the next strategy is tried.

Every outcome is returned as a :class:`WorkspaceSwitchResult`; failures are
never raised to the caller.

Example:
    coordinator = WorkspaceCoordinator(host, store=RegistryStore())
    result = await coordinator.handle_workspace_requirement("/home/me/other")
    if not result.success:
        print(coordinator.format_workspace_error(result))
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from project_relay.framework.errors import (
    ErrorCode,
    HandoverFailedError,
    InvalidTargetProjectError,
    NoActiveProjectError,
    WorkspaceError,
)
from project_relay.registry.paths import normalize_project_path, to_native_path
from project_relay.registry.store import RegistryStore
from project_relay.server.config import WorkspaceConfig
from project_relay.workspace.host import HostBridge
from project_relay.workspace.strategies import (
    Sleep,
    StrategyOutcome,
    SwitchPolicy,
    SwitchStrategy,
    build_strategies,
)

logger = logging.getLogger(__name__)


class WorkspaceState(str, Enum):
    NO_REQUEST = "no_request"
    NO_CURRENT = "no_current"
    MATCH = "match"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class WorkspaceSwitchResult:
    """Outcome of a workspace requirement check."""

    success: bool
    message: str | None = None
    current_project: str | None = None
    requested_project: str | None = None
    error_code: ErrorCode | None = None
    strategy: str | None = None

    @classmethod
    def from_error(cls, error: WorkspaceError) -> "WorkspaceSwitchResult":
        return cls(
            success=False,
            message=error.message,
            current_project=error.current_project,
            requested_project=error.requested_project,
            error_code=error.code,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.message is not None:
            data["message"] = self.message
        if self.current_project is not None:
            data["currentProject"] = self.current_project
        if self.requested_project is not None:
            data["requestedProject"] = self.requested_project
        if self.error_code is not None:
            data["errorCode"] = self.error_code.value
        if self.strategy is not None:
            data["strategy"] = self.strategy
        return data


def build_remediation_message(current_project: str, requested_project: str) -> str:
    """Manual steps shown when no strategy could switch the project."""
    return f"""Project mismatch detected and the automatic switch failed.

Current project: {current_project}
Requested project: {requested_project}

Choose one of the following:

Option 1: Open the project manually
1. Open the command palette (Ctrl+Shift+P or Cmd+Shift+P)
2. Run "File: Open Folder"
3. Select {requested_project}
4. Wait for the project to finish loading, then retry

Option 2: Use the status item
1. Find the relay status item in the editor's status bar
2. Click it to activate the relay for the target project
3. Retry the operation

Option 3: Reopen the editor on the target project
1. Close the current editor window
2. Reopen the editor and open {requested_project}
3. Wait for the project to finish loading, then retry

Option 4: Use a multi-root workspace
1. Create a .code-workspace file listing every project you need
2. Open it with "File > Open Workspace from File"

If the problem persists, check that:
- the target path exists and is readable
- the target folder is a project (it contains a project marker such as package.json)
- the editor extension serving the relay is installed and enabled

Switching can take several seconds. If a new window opened, let it finish
loading before checking the relay status again."""


class WorkspaceCoordinator:
    """Decide whether a call can run here and retarget the host when it cannot."""

    def __init__(
        self,
        host: HostBridge,
        store: RegistryStore | None = None,
        config: WorkspaceConfig | None = None,
        sleep: Sleep = asyncio.sleep,
        strategies: list[SwitchStrategy] | None = None,
    ) -> None:
        self.host = host
        self.store = store
        self.sleep = sleep
        self.config = config or WorkspaceConfig()
        self.policy = SwitchPolicy.from_config(self.config)
        self.strategies = (
            strategies
            if strategies is not None
            else build_strategies(
                self.config.switch_strategy, host, self.policy, sleep=sleep, store=store
            )
        )

    def current_project(self) -> str | None:
        current = self.host.current_project()
        logger.debug("Current project: %s", current or "none")
        return current

    def classify(self, requested: str | None) -> WorkspaceState:
        return self._classify(requested, self.current_project())

    @staticmethod
    def _classify(requested: str | None, current: str | None) -> WorkspaceState:
        if not requested:
            return WorkspaceState.NO_REQUEST
        if not current:
            return WorkspaceState.NO_CURRENT
        if normalize_project_path(current) == normalize_project_path(requested):
            return WorkspaceState.MATCH
        return WorkspaceState.MISMATCH

    def is_valid_project(self, path: str) -> bool:
        """Existing directory containing at least one project marker."""
        folder = Path(to_native_path(path))
        try:
            if not folder.is_dir():
                return False
            return any((folder / marker).exists() for marker in self.config.project_markers)
        except OSError as e:
            logger.warning("Cannot inspect %s: %s", folder, e)
            return False

    async def handle_workspace_requirement(self, requested: str | None) -> WorkspaceSwitchResult:
        """Make sure ``requested`` is the focused project before a tool runs.

        Args:
            requested: Project path named by the caller, or None

        Returns:
            Success when no switch was needed or a strategy succeeded; otherwise
            a failure carrying an error code and a human-readable message
        """
        try:
            return await self._handle(requested)
        except WorkspaceError as e:
            logger.warning("Workspace requirement failed (%s): %s", e.code.value, e.message.splitlines()[0])
            return WorkspaceSwitchResult.from_error(e)

    async def _handle(self, requested: str | None) -> WorkspaceSwitchResult:
        current = self.current_project() if requested else None
        state = self._classify(requested, current)
        logger.info("Workspace requirement %s: %s", requested or "none", state.value)

        if state is WorkspaceState.NO_REQUEST or not requested:
            return WorkspaceSwitchResult(success=True)

        if state is WorkspaceState.NO_CURRENT or not current:
            msg = "No project is open in this editor. Open a project first."
            raise NoActiveProjectError(msg, requested_project=requested)

        if state is WorkspaceState.MATCH:
            return WorkspaceSwitchResult(
                success=True, current_project=current, requested_project=requested
            )

        if not self.is_valid_project(requested):
            msg = f"Target project is invalid or does not exist: {requested}"
            raise InvalidTargetProjectError(msg, requested_project=requested, current_project=current)

        return await self._attempt_switch(current, requested)

    async def _attempt_switch(self, current: str, requested: str) -> WorkspaceSwitchResult:
        logger.info("Switching from %s to %s", current, requested)

        for strategy in self.strategies:
            try:
                outcome = await strategy.attempt(requested)
            except Exception as e:
                logger.warning("Strategy %s raised: %s", strategy.name, e)
                outcome = StrategyOutcome(False, str(e))

            if not outcome.success:
                logger.info(
                    "Strategy %s failed: %s",
                    strategy.name,
                    outcome.detail,
                    extra={"strategy": strategy.name, "project": requested},
                )
                continue

            focused = outcome.focused or await self._confirm_focus(requested)
            if focused is None:
                logger.warning(
                    "Strategy %s reported success but %s never got focus",
                    strategy.name,
                    requested,
                )
                continue

            logger.info(
                "Strategy %s succeeded: %s",
                strategy.name,
                outcome.detail,
                extra={"strategy": strategy.name, "project": focused},
            )
            return WorkspaceSwitchResult(
                success=True,
                message=outcome.detail or f"Switched from {current} to {requested}",
                current_project=focused,
                requested_project=requested,
                strategy=strategy.name,
            )

        raise HandoverFailedError(
            build_remediation_message(current, requested),
            requested_project=requested,
            current_project=current,
        )

    async def _confirm_focus(self, requested: str) -> str | None:
        """Poll the host until ``requested`` is focused; returns the focused path or None."""
        retries = self.policy.verification_retries
        wanted = normalize_project_path(requested)
        for attempt in range(1, retries + 1):
            await self.sleep(self.policy.verification_delay_seconds)
            focused = self.host.current_project()
            logger.debug("Focus check %s/%s: focused=%s", attempt, retries, focused)
            if focused and normalize_project_path(focused) == wanted:
                return focused
        return None

    def format_workspace_error(self, result: WorkspaceSwitchResult) -> str:
        """Render a failed result for display in a tool response; empty on success."""
        if result.success:
            return ""

        text = f"WorkspaceError: {result.message}"
        if result.requested_project:
            text += "\n\nTo resolve this:"
            text += f"\n1. Open the target project ({result.requested_project}) in the editor"
            text += "\n2. Click the relay status item to activate the relay for that project"
            text += "\n3. Then retry this operation"
            if result.current_project:
                text += f"\n\nCurrent project: {result.current_project}"
                text += f"\nRequested project: {result.requested_project}"
        return text
