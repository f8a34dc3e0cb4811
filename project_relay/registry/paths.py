"""Project path normalization.

Hosts report the same folder in several spellings: native Windows paths
(``C:\\Proj\\``), URI paths (``/c%3A/proj``) and POSIX paths with a trailing
slash. Registry lookups and workspace comparisons both go through
:func:`normalize_project_path` so these spellings compare equal.
"""

import re

_DRIVE_AFTER_SLASH = re.compile(r"^/([A-Za-z]:)")
_ENCODED_COLON = re.compile(r"%3a", re.IGNORECASE)


def _unify(path: str) -> str:
    unified = path.replace("\\", "/")
    unified = _ENCODED_COLON.sub(":", unified)
    unified = _DRIVE_AFTER_SLASH.sub(r"\1", unified)
    stripped = unified.rstrip("/")
    # Keep the bare root rather than collapsing it to an empty string
    if not stripped and unified.startswith("/"):
        return "/"
    return stripped


def normalize_project_path(path: str) -> str:
    """Canonical, case-folded comparison key for a project path.

    Idempotent: ``normalize_project_path(normalize_project_path(p))`` equals
    ``normalize_project_path(p)``.

    Args:
        path: Path as reported by a host or a caller

    Returns:
        Forward-slash separated, lower-case path without trailing separators

    Example:
        >>> normalize_project_path("C:\\\\Proj\\\\")
        'c:/proj'
        >>> normalize_project_path("/c%3A/proj")
        'c:/proj'
    """
    return _unify(path).lower()


def to_native_path(path: str) -> str:
    """Decode URI artifacts without case folding, for filesystem access."""
    return _unify(path)
