"""Shared pieces of the tool catalog the relay publishes.

Every project-bound tool takes a ``workspace`` argument naming the project it
should run against; the relay routes the call by it.
"""

import copy
from typing import Any

WORKSPACE_ARGUMENT = "workspace"

WORKSPACE_PROPERTY: dict[str, Any] = {
    "type": "string",
    "description": "Absolute path of the project folder the tool should operate on",
}


def with_workspace_property(schema: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``schema`` with a required ``workspace`` string property."""
    result = copy.deepcopy(schema)
    result.setdefault("type", "object")
    result.setdefault("properties", {})[WORKSPACE_ARGUMENT] = dict(WORKSPACE_PROPERTY)
    required = result.setdefault("required", [])
    if WORKSPACE_ARGUMENT not in required:
        required.append(WORKSPACE_ARGUMENT)
    return result


def workspace_of(envelope: dict[str, Any]) -> str | None:
    """Project path named by a ``tools/call`` envelope, if any."""
    if envelope.get("method") != "tools/call":
        return None
    params = envelope.get("params") or {}
    arguments = params.get("arguments") or {}
    value = arguments.get(WORKSPACE_ARGUMENT) if isinstance(arguments, dict) else None
    return value if isinstance(value, str) and value else None
