"""Boundary between the coordinator and the editor hosting an instance."""

from typing import Protocol


class HostBridge(Protocol):
    """Editor capabilities the workspace coordinator relies on.

    ``open_project`` and ``activate_handover`` may raise; the coordinator
    treats an exception as the failure of the strategy that made the call.
    """

    def current_project(self) -> str | None:
        """Path of the project focused in this host, or None when nothing is open."""
        ...

    async def open_project(self, path: str, new_window: bool) -> None:
        """Open ``path`` in place or in a new host window."""
        ...

    async def activate_handover(self) -> None:
        """Ask whichever instance is focused to take over as the active one."""
        ...


class HostControlError(RuntimeError):
    """The host cannot perform the requested window operation."""


class StaticHost:
    """Host for headless instances: one fixed project, no window control."""

    def __init__(self, project_path: str) -> None:
        self.project_path = project_path

    def current_project(self) -> str | None:
        return self.project_path

    async def open_project(self, path: str, new_window: bool) -> None:
        msg = f"Headless instance for {self.project_path} cannot open {path}"
        raise HostControlError(msg)

    async def activate_handover(self) -> None:
        msg = "Headless instance has no window to hand over to"
        raise HostControlError(msg)
