"""Named, cancel-before-rearm timers for one session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ...domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerTable:
    """Each slot holds at most one pending ``asyncio.Task``.

    Scheduling a name that is already pending cancels the old task first,
    unless the old task is the one doing the scheduling (a timer may re-arm
    its own slot). A fired timer is advisory: callbacks re-check the state
    they were armed against.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __contains__(self, name: str) -> bool:
        return self.is_pending(name)

    def schedule(self, name: str, delay_ms: int, callback: TimerCallback) -> asyncio.Task[None]:
        self.cancel(name)
        task = asyncio.get_running_loop().create_task(
            self._run(name, max(0, delay_ms), callback), name=f"timer:{name}"
        )
        self._tasks[name] = task
        return task

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def cancel_all(self, prefix: str | None = None) -> int:
        names = [n for n in self._tasks if prefix is None or n.startswith(prefix)]
        return sum(1 for name in names if self.cancel(name))

    def is_pending(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    def pending(self) -> list[str]:
        return [name for name, task in self._tasks.items() if not task.done()]

    async def aclose(self) -> None:
        """Cancel every timer and wait for the cancellations to land."""
        current = asyncio.current_task()
        tasks = [t for t in self._tasks.values() if t is not current and not t.done()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, name: str, delay_ms: int, callback: TimerCallback) -> None:
        try:
            await asyncio.sleep(delay_ms / 1000)
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(LogTemplates.TIMER_CALLBACK_FAILED, name)
        finally:
            if self._tasks.get(name) is asyncio.current_task():
                del self._tasks[name]
