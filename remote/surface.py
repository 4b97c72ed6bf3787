"""Decides which browser surface is visible to the user."""

from __future__ import annotations

import logging
from typing import Any

from .constants import Surfaces
from .engine import BrowserEngine

log = logging.getLogger(__name__)


class SurfaceCoordinator:
    """
    Emit visibility directives for the user-facing and automation surfaces.

    Switching is driven by the orchestrator's ``userActionRequired`` signal.
    A lock (taken while a success finalization runs) suppresses automatic
    switching, and is only consulted in record mode.
    """

    def __init__(self, engine: BrowserEngine, record_mode: bool = False, logger: Any = None):
        self.engine = engine
        self.record_mode = bool(record_mode)
        self.current = Surfaces.UI
        self.locked = False
        self.logger = logger or log

    async def on_user_action_required(self, user_action_required: bool) -> None:
        self.logger.info(
            "userActionRequired=%s (current surface: %s, locked: %s)",
            user_action_required,
            self.current,
            self.locked,
        )
        if self.record_mode and self.locked:
            self.logger.info("Surface lock held, skipping automatic switch")
            return
        if user_action_required:
            await self.show_automation()
        else:
            await self.show_primary()

    async def show_automation(self) -> None:
        if self.current == Surfaces.AUTOMATION:
            return
        self.logger.info("Switching to automation surface")
        self.current = Surfaces.AUTOMATION
        await self.engine.show_automation_surface()

    async def show_primary(self, lock: bool = False) -> None:
        if lock:
            self.locked = True
        if self.current == Surfaces.UI:
            return
        self.logger.info("Switching to primary surface%s", " (locked)" if lock else "")
        self.current = Surfaces.UI
        await self.engine.show_primary_surface(lock=lock)

    async def switch_to(self, surface: str) -> None:
        """Manual switch requested by a page script."""
        if surface == Surfaces.AUTOMATION:
            await self.show_automation()
        elif surface == Surfaces.UI:
            await self.show_primary()
        else:
            self.logger.warning("Ignoring switch to unknown surface: %s", surface)

    def reset(self) -> None:
        self.current = Surfaces.UI
        self.locked = False
