"""Debounced scheduling of asynchronous work.

A trigger arms a timer; triggers arriving while the timer is armed are
absorbed, and the work runs once when the timer fires. The work itself
reads the latest state when it runs, so absorbed triggers lose nothing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class DebouncedTask:
    """Collapses bursts of triggers into a single delayed invocation."""

    def __init__(
        self,
        func: Callable[[], Awaitable[Any]],
        delay: float,
        name: str = "debounced-task",
    ) -> None:
        """Initialize debounced task.

        Args:
            func: Coroutine function to run after the delay
            delay: Seconds to wait after the first trigger of a burst
            name: Task name for diagnostics
        """
        self._func = func
        self._delay = delay
        self._name = name
        self._armed = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def armed(self) -> bool:
        """True while a scheduled run is still waiting for its delay."""
        return self._armed

    def trigger(self) -> bool:
        """Schedule a run unless one is already armed.

        Returns:
            True if a new run was scheduled, False if absorbed

        Raises:
            RuntimeError: If there is no running event loop
        """
        if self._armed:
            return False

        task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        self._armed = True
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self._delay)
        finally:
            self._armed = False

        try:
            await self._func()
        except Exception:
            logger.exception(f"Debounced task '{self._name}' failed")

    async def wait(self) -> None:
        """Wait for scheduled and running invocations to finish.

        Cancelling the caller (for example through ``asyncio.wait_for``)
        stops the wait only; the scheduled work keeps running.
        """
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def cancel(self) -> None:
        """Cancel every scheduled or running invocation."""
        for task in list(self._tasks):
            task.cancel()
        self._armed = False
