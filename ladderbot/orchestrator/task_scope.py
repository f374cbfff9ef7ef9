"""
TaskScope: named asyncio tasks sharing one cancellation scope.

Every timer the orchestrator runs (price poll, fill monitor, heartbeat,
no-fill window) and every one-shot background job is registered here by
name, so teardown is a single cancel_all() instead of chasing handles.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional

from ladderbot.core.json_utils import dumps

log = logging.getLogger("ladderbot")


class TaskScope:
    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._tasks: Dict[str, asyncio.Task] = {}

    def spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run coro as task `name`, replacing (and cancelling) any task already holding that name."""
        previous = self._tasks.get(name)
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()
        task = asyncio.get_running_loop().create_task(coro, name=f"{self.name}:{name}")
        self._tasks[name] = task
        task.add_done_callback(lambda t, n=name: self._on_done(n, t))
        return task

    def every(
        self,
        name: str,
        interval: float,
        fn: Callable[[], Awaitable[Any]],
        initial_delay: Optional[float] = None,
    ) -> asyncio.Task:
        """Call fn every `interval` seconds until cancelled; errors are logged, not fatal."""
        async def _loop() -> None:
            await asyncio.sleep(interval if initial_delay is None else initial_delay)
            while True:
                try:
                    await fn()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    log.error(dumps({"event": "timer_error", "timer": name, "err": str(exc)}))
                await asyncio.sleep(interval)

        return self.spawn(name, _loop())

    def cancel(self, *names: str) -> int:
        current = asyncio.current_task()
        cancelled = 0
        for name in names:
            task = self._tasks.get(name)
            if task is None or task is current:
                continue
            if not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    def cancel_all(self) -> int:
        """Cancel every task in the scope except the caller's own."""
        return self.cancel(*list(self._tasks))

    async def join(self, timeout: float = 5.0) -> None:
        """Wait for cancelled tasks to unwind (the calling task excluded)."""
        current = asyncio.current_task()
        pending = [t for t in self._tasks.values() if t is not current and not t.done()]
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    def task(self, name: str) -> Optional[asyncio.Task]:
        return self._tasks.get(name)

    def is_active(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    def names(self) -> List[str]:
        return [n for n, t in self._tasks.items() if not t.done()]

    def __contains__(self, name: str) -> bool:
        return self.is_active(name)

    def _on_done(self, name: str, task: asyncio.Task) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(dumps({"event": "task_failed", "task": name, "err": str(exc)}))
