"""
Workspace switch strategies.

Each strategy makes one attempt to bring the requested project into focus and
reports a :class:`StrategyOutcome`. The coordinator runs them in order and
stops at the first success that leaves the requested project focused.

- ``current-window``: open the project in place, then poll the host
- ``new-window``: open a new window, let it settle, signal handover, then
  confirm through the router table that an instance for the project came up
- ``handover``: only send the handover signal
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from project_relay.registry.paths import normalize_project_path, to_native_path
from project_relay.registry.schema import now_ms
from project_relay.registry.store import RegistryStore
from project_relay.server.config import WorkspaceConfig
from project_relay.workspace.host import HostBridge

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Opening a folder in place reloads the window; poll sparingly and slowly
CURRENT_WINDOW_MAX_POLLS = 3
CURRENT_WINDOW_MIN_DELAY_SECONDS = 5.0
NEW_WINDOW_MIN_SETTLE_SECONDS = 8.0


@dataclass(frozen=True)
class SwitchPolicy:
    """Retry and timing knobs shared by all strategies."""

    verification_retries: int = 5
    verification_delay_seconds: float = 3.0
    switch_timeout_seconds: float = 15.0
    verify_new_window: bool = True

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> "SwitchPolicy":
        return cls(
            verification_retries=config.verification_retries,
            verification_delay_seconds=config.verification_delay_seconds,
            switch_timeout_seconds=config.switch_timeout_seconds,
            verify_new_window=config.verify_new_window,
        )


@dataclass(frozen=True)
class StrategyOutcome:
    success: bool
    detail: str = ""
    # Focused path already observed by the strategy, if it checked
    focused: str | None = None


class SwitchStrategy(ABC):
    """One way of retargeting the active instance."""

    name: str = ""

    def __init__(
        self,
        host: HostBridge,
        policy: SwitchPolicy,
        sleep: Sleep = asyncio.sleep,
        store: RegistryStore | None = None,
    ) -> None:
        self.host = host
        self.policy = policy
        self.sleep = sleep
        self.store = store

    @abstractmethod
    async def attempt(self, target: str) -> StrategyOutcome:
        """Try to make ``target`` the focused project."""


class CurrentWindowStrategy(SwitchStrategy):
    name = "current-window"

    async def attempt(self, target: str) -> StrategyOutcome:
        await self.host.open_project(to_native_path(target), new_window=False)

        polls = min(self.policy.verification_retries, CURRENT_WINDOW_MAX_POLLS)
        delay = max(self.policy.verification_delay_seconds, CURRENT_WINDOW_MIN_DELAY_SECONDS)
        wanted = normalize_project_path(target)

        for attempt in range(1, polls + 1):
            await self.sleep(delay)
            current = self.host.current_project()
            logger.debug("current-window check %s/%s: focused=%s", attempt, polls, current)
            if current and normalize_project_path(current) == wanted:
                return StrategyOutcome(
                    True, f"Opened {target} in the current window", focused=current
                )

        return StrategyOutcome(False, f"Focused project did not change after {polls} checks")


class NewWindowStrategy(SwitchStrategy):
    name = "new-window"

    async def attempt(self, target: str) -> StrategyOutcome:
        started = now_ms()
        await self.host.open_project(to_native_path(target), new_window=True)

        settle = max(self.policy.switch_timeout_seconds, NEW_WINDOW_MIN_SETTLE_SECONDS)
        logger.info("Waiting %ss for the new window to start", settle)
        await self.sleep(settle)

        await self.host.activate_handover()
        await self.sleep(self.policy.verification_delay_seconds)

        if not self.policy.verify_new_window or self.store is None:
            return StrategyOutcome(True, f"Opened {target} in a new window")

        return await self._verify_registration(target, started)

    async def _verify_registration(self, target: str, started: int) -> StrategyOutcome:
        """Wait for an instance for ``target`` to (re)register after ``started``."""
        retries = self.policy.verification_retries
        for attempt in range(1, retries + 1):
            entry = self.store.find(target) if self.store else None
            if entry is not None and entry.last_updated >= started:
                return StrategyOutcome(
                    True, f"Instance for {target} registered on port {entry.port}"
                )
            logger.debug("new-window check %s/%s: no fresh registration", attempt, retries)
            if attempt < retries:
                await self.sleep(self.policy.verification_delay_seconds)

        return StrategyOutcome(False, f"No instance for {target} registered after {retries} checks")


class HandoverOnlyStrategy(SwitchStrategy):
    name = "handover"

    async def attempt(self, target: str) -> StrategyOutcome:
        await self.host.activate_handover()
        return StrategyOutcome(True, "Handover signal sent")


_STRATEGY_ORDER: dict[str, tuple[type[SwitchStrategy], ...]] = {
    "all": (CurrentWindowStrategy, NewWindowStrategy, HandoverOnlyStrategy),
    "current-window": (CurrentWindowStrategy,),
    "new-window": (NewWindowStrategy,),
    "handover": (HandoverOnlyStrategy,),
}


def build_strategies(
    selection: str,
    host: HostBridge,
    policy: SwitchPolicy,
    sleep: Sleep = asyncio.sleep,
    store: RegistryStore | None = None,
) -> list[SwitchStrategy]:
    """Instantiate the strategies named by a ``switch_strategy`` setting.

    Raises:
        ValueError: If ``selection`` is not a known strategy name
    """
    try:
        classes = _STRATEGY_ORDER[selection]
    except KeyError:
        msg = f"Unknown switch strategy '{selection}', expected one of {list(_STRATEGY_ORDER)}"
        raise ValueError(msg) from None
    return [cls(host, policy, sleep=sleep, store=store) for cls in classes]
