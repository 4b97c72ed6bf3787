"""Re-run script-bearing commands after a navigation wipes page state."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .context import SessionContext
from .models import Command

log = logging.getLogger(__name__)


class ReinjectionCoordinator:
    """
    After each completed navigation, pick the command to re-run:
    in record mode the last ``injectScript`` command, otherwise the last
    ``wait`` command. The re-run keeps the original command id.
    """

    def __init__(
        self,
        context: SessionContext,
        execute: Callable[[Command], Awaitable[Any]],
        delay: float = 1.0,
        logger: Any = None,
    ):
        self.context = context
        self._execute = execute
        self.delay = delay
        self.logger = logger or log

    def select(self) -> Optional[Command]:
        if self.context.record_mode and self.context.last_inject_script_command is not None:
            return self.context.last_inject_script_command
        return self.context.last_wait_command

    async def after_navigation(self) -> Optional[Command]:
        command = self.select()
        if command is None:
            return None
        self.logger.info("Re-injecting %s command after navigation: %s", command.type.value, command.id)
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        # The page may have navigated again or the session ended while waiting.
        if command is not self.select():
            self.logger.debug("Reinjection target changed during delay, skipping %s", command.id)
            return None
        await self._execute(command)
        return command
