"""Shared fixtures for project relay tests."""

import os
from pathlib import Path

import pytest

from project_relay.registry.store import RegistryStore


class FakeHost:
    """In-memory HostBridge recording every request made of it."""

    def __init__(self, current: str | None = None) -> None:
        self.current = current
        self.opened: list[tuple[str, bool]] = []
        self.handovers = 0
        self.switch_on_open = False
        self.fail_open = False
        self.fail_handover = False
        self.focus_on_handover: str | None = None
        self.on_open = None

    def current_project(self) -> str | None:
        return self.current

    async def open_project(self, path: str, new_window: bool) -> None:
        self.opened.append((path, new_window))
        if self.fail_open:
            msg = "open failed"
            raise RuntimeError(msg)
        if self.switch_on_open and not new_window:
            self.current = path
        if self.on_open is not None:
            self.on_open(path, new_window)

    async def activate_handover(self) -> None:
        self.handovers += 1
        if self.fail_handover:
            msg = "handover failed"
            raise RuntimeError(msg)
        if self.focus_on_handover is not None:
            self.current = self.focus_on_handover


class RecordingSleep:
    """Async sleep replacement that returns immediately and keeps the delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingNotifier:
    def __init__(self) -> None:
        self.infos: list[str] = []
        self.warnings: list[str] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)


@pytest.fixture(autouse=True)
def _clean_relay_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep PROJECT_RELAY_* settings of the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("PROJECT_RELAY_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def registry_path(tmp_path: Path) -> Path:
    return tmp_path / "router.json"


@pytest.fixture
def store(registry_path: Path) -> RegistryStore:
    return RegistryStore(registry_path)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A folder that qualifies as a project (has package.json)."""
    folder = tmp_path / "target-project"
    folder.mkdir()
    (folder / "package.json").write_text("{}")
    return folder


@pytest.fixture
def host(tmp_path: Path) -> FakeHost:
    current = tmp_path / "current-project"
    current.mkdir()
    return FakeHost(str(current))


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
