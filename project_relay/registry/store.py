"""Router table persistence.

The router table is one JSON file in the user's home directory shared by every
running instance and by the relay. Each instance owns only its own entry:
it registers after binding its port and unregisters on clean shutdown.
Entries of crashed processes are never reaped; they are overwritten the next
time an instance starts for the same project.

Every mutation is a full read-modify-write of the file. With ``locking``
enabled (the default) the read-modify-write runs under an exclusive
``fcntl.flock`` on a sibling ``.lock`` file and the new content is renamed into
place atomically, so concurrent instances starting at the same time do not
lose each other's entries. Readers never take the lock.

Example:
    store = RegistryStore()
    store.register("/home/me/app", 60100, pid=os.getpid())
    store.get_port("/home/me/app")  # -> 60100
"""

import fcntl
import json
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from project_relay.framework.errors import RegistryError
from project_relay.registry.paths import normalize_project_path
from project_relay.registry.schema import RegistryEntry, RegistryTable, now_ms

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_FILENAME = ".project-relay-router.json"

T = TypeVar("T")


def default_registry_path() -> Path:
    """Registry path, respecting the PROJECT_RELAY_REGISTRY_FILE env var."""
    env_path = os.getenv("PROJECT_RELAY_REGISTRY_FILE")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / DEFAULT_REGISTRY_FILENAME


class RegistryStore:
    """Load, query and mutate the shared router table."""

    def __init__(self, path: Path | str | None = None, locking: bool = True) -> None:
        self.path = Path(path).expanduser() if path else default_registry_path()
        self.locking = locking
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def load(self) -> RegistryTable:
        """Read the table; any unreadable or corrupt file yields an empty table."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return RegistryTable()
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable router table %s: %s", self.path, e)
            return RegistryTable()

        if not isinstance(raw, dict) or not isinstance(raw.get("entries"), list):
            logger.warning("Ignoring malformed router table %s", self.path)
            return RegistryTable()

        entries = []
        for item in raw["entries"]:
            try:
                entries.append(RegistryEntry.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping invalid router table entry %r: %s", item, e)
        return RegistryTable(entries=entries)

    def save(self, table: RegistryTable) -> None:
        """Overwrite the file with the whole table.

        Raises:
            RegistryError: If the file cannot be written
        """
        content = json.dumps(table.to_document(), indent=2)
        tmp = self.path.with_name(self.path.name + f".{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            if tmp.exists():
                tmp.unlink()
            msg = f"Failed to write router table {self.path}: {e}"
            raise RegistryError(msg, path=str(self.path)) from e

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self.locking:
            yield
            return

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock_path.open("w") as lock_fd:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)

    def _mutate(self, fn: Callable[[RegistryTable], T]) -> T:
        """Run a load-mutate-save cycle, under the lock when enabled."""
        with self._exclusive():
            table = self.load()
            result = fn(table)
            self.save(table)
            return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_entries(self) -> list[RegistryEntry]:
        return list(self.load().entries)

    def find(self, project_path: str) -> RegistryEntry | None:
        """Entry whose normalized path matches, or None."""
        key = normalize_project_path(project_path)
        for entry in self.load().entries:
            if normalize_project_path(entry.project_path) == key:
                return entry
        return None

    def get_port(self, project_path: str) -> int | None:
        entry = self.find(project_path)
        return entry.port if entry else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(self, project_path: str, port: int, pid: int | None = None) -> RegistryEntry:
        """Advertise ``project_path`` on ``port``, replacing any previous entry.

        Args:
            project_path: Raw project path; stored as given, matched normalized
            port: Port the instance is serving on
            pid: Owning process id

        Returns:
            The entry that was written
        """
        entry = RegistryEntry(
            project_path=project_path, port=port, pid=pid, last_updated=now_ms()
        )
        key = normalize_project_path(project_path)

        def _do_register(table: RegistryTable) -> RegistryEntry:
            table.entries = [
                e for e in table.entries if normalize_project_path(e.project_path) != key
            ]
            table.entries.append(entry)
            return entry

        self._mutate(_do_register)
        logger.info(
            "Registered %s on port %s",
            project_path,
            port,
            extra={"project": project_path, "port": port, "pid": pid},
        )
        return entry

    def unregister(self, project_path: str) -> int:
        """Remove the entry for ``project_path``; returns the number removed."""
        key = normalize_project_path(project_path)

        def _do_unregister(table: RegistryTable) -> int:
            before = len(table.entries)
            table.entries = [
                e for e in table.entries if normalize_project_path(e.project_path) != key
            ]
            return before - len(table.entries)

        removed = self._mutate(_do_unregister)
        if removed:
            logger.info("Unregistered %s", project_path, extra={"project": project_path})
        return removed

    def unregister_by_port(self, port: int) -> int:
        """Remove every entry claiming ``port``; returns the number removed."""

        def _do_unregister(table: RegistryTable) -> int:
            before = len(table.entries)
            table.entries = [e for e in table.entries if e.port != port]
            return before - len(table.entries)

        removed = self._mutate(_do_unregister)
        if removed:
            logger.info("Unregistered %s entries on port %s", removed, port, extra={"port": port})
        return removed
