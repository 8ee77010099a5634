"""
Single-slot restart scheduler.

At most one recognition restart may be outstanding: scheduling a new one
replaces whatever was pending.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RestartScheduler(ABC):

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``delay`` seconds, replacing any pending callback."""

    @abstractmethod
    def cancel(self) -> None: ...

    @property
    @abstractmethod
    def pending(self) -> bool: ...


class AsyncioRestartScheduler(RestartScheduler):
    """Restart slot backed by ``loop.call_later``."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()

        def fire():
            self._handle = None
            callback()

        self._handle = self._get_loop().call_later(max(0.0, delay), fire)
        logger.debug(f"[RestartScheduler] Restart scheduled in {delay:.3f}s")

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("[RestartScheduler] Pending restart cancelled")

    @property
    def pending(self) -> bool:
        return self._handle is not None
