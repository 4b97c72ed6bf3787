"""Playwright session lifecycle for the two browser surfaces."""

from __future__ import annotations

import time
from typing import Any, Optional

from playwright.async_api import async_playwright

from .models import AUTOMATION_SURFACE, UI_SURFACE, EngineConfig, EngineState


class BrowserSessionManager:
    """Manage Playwright browser/context and the ui + automation pages."""

    async def start(self, config: EngineConfig) -> EngineState:
        pw = await async_playwright().start()
        browser = None
        try:
            browser = await pw.chromium.launch(
                headless=bool(config.headless),
                args=list(config.launch_args),
            )
            context_kwargs = {
                "viewport": {"width": int(config.viewport_width), "height": int(config.viewport_height)},
            }
            if config.user_agent:
                context_kwargs["user_agent"] = config.user_agent
            context = await browser.new_context(**context_kwargs)
        except Exception:
            if browser is not None:
                await browser.close()
            await pw.stop()
            raise

        context.set_default_timeout(float(config.navigation_timeout_ms))
        context.set_default_navigation_timeout(float(config.navigation_timeout_ms))

        pages = {}
        for surface in (UI_SURFACE, AUTOMATION_SURFACE):
            page = await context.new_page()
            page.set_default_timeout(float(config.navigation_timeout_ms))
            page.set_default_navigation_timeout(float(config.navigation_timeout_ms))
            pages[surface] = page

        return EngineState(
            active=True,
            started_at=time.time(),
            playwright=pw,
            browser=browser,
            browser_context=context,
            pages=pages,
            metadata={
                "headless": bool(config.headless),
                "timeout_ms": int(config.navigation_timeout_ms),
                "user_agent": config.user_agent,
            },
        )

    def get_page(self, state: Optional[EngineState], surface: str) -> Any:
        if state is None:
            return None
        page = state.pages.get(surface)
        if page is None:
            return None
        try:
            if page.is_closed():
                return None
        except Exception:
            return None
        return page

    async def shutdown(self, state: Optional[EngineState]) -> None:
        if state is None:
            return

        try:
            if state.browser_context is not None:
                await state.browser_context.close()
        except Exception:
            pass

        try:
            if state.browser is not None:
                await state.browser.close()
        except Exception:
            pass

        try:
            if state.playwright is not None:
                await state.playwright.stop()
        except Exception:
            pass

        state.active = False
        state.ended_at = time.time()
