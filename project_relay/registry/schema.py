"""Pydantic models for the shared router table file.

The on-disk document is keyed with the camelCase names other tooling already
reads (``workspace``, ``lastUpdated``); Python code uses the snake_case field
names. Both spellings are accepted on input.

Example:
    {
      "entries": [
        {"workspace": "/home/me/app", "port": 60100, "pid": 4242, "lastUpdated": 1718000000000}
      ]
    }
"""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class RegistryEntry(BaseModel):
    """One running instance advertised in the router table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project_path: str = Field(
        ..., alias="workspace", min_length=1, description="Project path as reported by the host"
    )
    port: int = Field(..., ge=1, le=65535, description="Loopback port the instance serves on")
    pid: int | None = Field(default=None, description="Owning process id")
    last_updated: int = Field(
        default_factory=now_ms, alias="lastUpdated", description="Epoch milliseconds"
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize with the on-disk key names, omitting an absent pid."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RegistryTable(BaseModel):
    """Ordered list of entries; the whole table is the file content."""

    model_config = ConfigDict(extra="ignore")

    entries: list[RegistryEntry] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {"entries": [entry.to_document() for entry in self.entries]}

    def ports(self) -> set[int]:
        """Ports currently claimed by any entry."""
        return {entry.port for entry in self.entries}
