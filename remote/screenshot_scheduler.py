"""Periodic capture-and-report loop for screenshot-enabled sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .constants import Surfaces
from .context import SessionContext
from .engine import BrowserEngine
from .log_utils import truncate_url
from .result_sender import ResultSender, utc_now_iso

log = logging.getLogger(__name__)


class ScreenshotScheduler:
    """Capture a fresh screenshot immediately and then every ``interval`` seconds."""

    def __init__(
        self,
        engine: BrowserEngine,
        context: SessionContext,
        sender: ResultSender,
        logger: Any = None,
    ):
        self.engine = engine
        self.context = context
        self.sender = sender
        self.logger = logger or log
        self._task: Optional[asyncio.Task[None]] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> float:
        return self.context.claims.capture_screenshot_interval

    def start(self) -> bool:
        if not self.context.claims.capture_screenshot:
            self.logger.debug("Screenshot capture disabled for this session")
            return False
        if self.running:
            return True
        self.logger.info("Starting screenshot capture every %ss", self.interval)
        self._task = asyncio.ensure_future(self._run())
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Screenshot capture stopped after %s captures", self.ticks)

    async def _run(self) -> None:
        while True:
            try:
                await self.capture_and_send()
            except Exception:
                self.logger.exception("Screenshot capture failed")
            await asyncio.sleep(self.interval)

    async def capture_and_send(self) -> bool:
        self.ticks += 1
        record_mode = self.context.record_mode
        optimization = self.context.configuration.image_optimization
        screenshot = await self.engine.capture_screenshot(optimization, whole_ui=record_mode)
        url = await self.engine.current_url(Surfaces.AUTOMATION)
        self.logger.debug(
            "Captured screenshot %s for %s",
            f"{len(screenshot)} chars" if screenshot else "nil",
            truncate_url(url),
        )
        metadata = {
            "capturedAt": utc_now_iso(),
            "source": "screen" if record_mode else Surfaces.AUTOMATION,
            "format": optimization.format,
        }
        return await self.sender.post_browser_state(url, screenshot, metadata)
