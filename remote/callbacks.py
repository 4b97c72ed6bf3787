"""Host callback invocation and background task tracking."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Set

log = logging.getLogger(__name__)


async def invoke_callback(callback: Optional[Callable[..., Any]], *args: Any, logger: Any = None) -> None:
    """Call a sync or async host callback; host errors are logged, not raised."""
    if callback is None:
        return
    try:
        outcome = callback(*args)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        (logger or log).exception("Host callback %s failed", getattr(callback, "__name__", callback))


class TaskTracker:
    """Spawn fire-and-forget coroutines on the running loop and drain them later."""

    def __init__(self, logger: Any = None):
        self._tasks: Set[asyncio.Task[Any]] = set()
        self.logger = logger or log

    def spawn(self, coro: Awaitable[Any], name: Optional[str] = None) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        if name:
            try:
                task.set_name(name)
            except AttributeError:
                pass
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


@dataclass
class HostCallbacks:
    """Hooks the embedding application registers for session outcomes."""

    on_success: Optional[Callable[..., Any]] = None
    on_error: Optional[Callable[..., Any]] = None
    on_data_complete: Optional[Callable[..., Any]] = None
    on_prompt_complete: Optional[Callable[..., Any]] = None
    on_configuration_updated: Optional[Callable[..., Any]] = None
