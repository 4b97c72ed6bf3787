"""Playwright implementation of the remote-control browser engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from remote.callbacks import TaskTracker
from remote.configuration import ImageOptimization
from remote.engine import BrowserEngine, EngineListener
from remote.log_utils import truncate_url

from .models import AUTOMATION_SURFACE, UI_SURFACE, EngineConfig, EngineState
from .screenshots import capture_page
from .session import BrowserSessionManager

log = logging.getLogger(__name__)

BRIDGE_BINDING = "__passageBridge"

BRIDGE_SCRIPT = """
(() => {
    if (window.passage && window.passage.__bridge) {
        return;
    }
    const send = (message) => window.%(binding)s(message);
    window.passage = {
        __bridge: true,
        postMessage: (data) => send({ type: 'passage_message', data: data }),
        switchWebView: (target) => send({ type: 'SWITCH_WEBVIEW', targetWebView: target }),
        sendCommandResult: (commandId, status, data, error) =>
            send({ type: 'commandResult', commandId, status, data, error }),
    };
})();
""" % {"binding": BRIDGE_BINDING}


class PlaywrightBrowserEngine(BrowserEngine):
    """
    Two Chromium pages in one context: ``ui`` faces the user, ``automation``
    runs remote commands. Page events are translated into listener signals.

    Long-running page work (navigation, script evaluation, page-data
    collection) runs as tracked tasks so directives return immediately.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        session_manager: Optional[BrowserSessionManager] = None,
        logger: Any = None,
    ):
        self.config = config or EngineConfig()
        self.session_manager = session_manager or BrowserSessionManager()
        self.logger = logger or log
        self.state: Optional[EngineState] = None
        self.listener: Optional[EngineListener] = None
        self.tracker = TaskTracker(logger=self.logger)
        self.global_javascript = ""

    def bind(self, listener: Optional[EngineListener]) -> None:
        self.listener = listener

    async def start(self) -> EngineState:
        if self.state is not None and self.state.active:
            return self.state
        self.state = await self.session_manager.start(self.config)
        context = self.state.browser_context
        await context.expose_binding(BRIDGE_BINDING, self._on_bridge_message)
        await context.add_init_script(BRIDGE_SCRIPT)
        for surface, page in self.state.pages.items():
            self._attach(page, surface)
        self.logger.info("Browser engine started (headless=%s)", self.config.headless)
        return self.state

    async def shutdown(self) -> None:
        await self.tracker.cancel_all()
        await self.session_manager.shutdown(self.state)
        self.state = None

    def _page(self, surface: str) -> Any:
        page = self.session_manager.get_page(self.state, surface)
        if page is None:
            raise RuntimeError(f"Browser surface '{surface}' is not available")
        return page

    def _attach(self, page: Any, surface: str) -> None:
        def on_request(request: Any) -> None:
            try:
                if not request.is_navigation_request() or request.frame != page.main_frame:
                    return
            except PlaywrightError:
                return
            if self.listener is not None:
                self.tracker.spawn(self.listener.navigation_started(request.url, surface), name="navigation-started")

        def on_load(_page: Any) -> None:
            if self.listener is not None:
                self.tracker.spawn(self.listener.navigation_completed(page.url, surface), name="navigation-completed")

        page.on("request", on_request)
        page.on("load", on_load)

    async def _on_bridge_message(self, source: Dict[str, Any], message: Any) -> None:
        if self.listener is None or not isinstance(message, dict):
            return
        page = source.get("page") if isinstance(source, dict) else None
        surface = UI_SURFACE
        if self.state is not None and page is self.state.pages.get(AUTOMATION_SURFACE):
            surface = AUTOMATION_SURFACE
        self.logger.debug("Bridge message from %s surface: %s", surface, message.get("type"))
        await self.listener.handle_surface_message(dict(message, webViewType=surface))

    async def apply_configuration(
        self,
        user_agent: str,
        integration_url: Optional[str],
        global_javascript: str,
    ) -> None:
        automation = self._page(AUTOMATION_SURFACE)
        if user_agent:
            try:
                session = await automation.context.new_cdp_session(automation)
                await session.send("Network.setUserAgentOverride", {"userAgent": user_agent})
            except PlaywrightError as e:
                self.logger.debug("CDP user agent override unavailable, using header: %s", e)
                await automation.set_extra_http_headers({"User-Agent": user_agent})
            self.logger.info("Automation user agent set (%s chars)", len(user_agent))
        if global_javascript and global_javascript != self.global_javascript:
            await automation.add_init_script(global_javascript)
            self.global_javascript = global_javascript
            self.logger.info("Global JavaScript installed (%s chars)", len(global_javascript))
        if integration_url:
            self.state.metadata["integration_url"] = integration_url

    async def navigate_in_automation(self, url: str) -> None:
        self.tracker.spawn(self._goto(AUTOMATION_SURFACE, url), name="navigate-automation")

    async def navigate_in_primary(self, url: str) -> None:
        self.tracker.spawn(self._goto(UI_SURFACE, url), name="navigate-ui")

    async def _goto(self, surface: str, url: str) -> None:
        try:
            page = self._page(surface)
            await page.goto(url, wait_until="load", timeout=float(self.config.navigation_timeout_ms))
        except (PlaywrightError, RuntimeError) as e:
            self.logger.error("Navigation to %s failed: %s", truncate_url(url), e)
            if self.listener is not None:
                await self.listener.navigation_failed(url, str(e), surface)

    async def inject_script(self, script: str, command_id: str, command_type: str) -> None:
        self.tracker.spawn(self._run_script(script, command_id, command_type), name=f"script:{command_id}")

    async def _run_script(self, script: str, command_id: str, command_type: str) -> None:
        reports_via_bridge = "window.passage.postMessage" in script
        is_async = "async function" in script or command_type == "wait"
        try:
            page = self._page(AUTOMATION_SURFACE)
            if is_async and reports_via_bridge:
                await page.evaluate(script + "; undefined;")
                self.logger.debug("Async script for %s injected, result expected via bridge", command_id)
                return
            result = await page.evaluate(script)
        except (PlaywrightError, RuntimeError) as e:
            self.logger.error("Script injection for %s failed: %s", command_id, e)
            if self.listener is not None:
                await self.listener.script_execution_result(command_id, False, error=str(e))
            return
        if self.listener is not None:
            await self.listener.script_execution_result(command_id, True, result=result)

    async def show_automation_surface(self) -> None:
        await self._show(AUTOMATION_SURFACE)

    async def show_primary_surface(self, lock: bool = False) -> None:
        await self._show(UI_SURFACE)

    async def _show(self, surface: str) -> None:
        try:
            await self._page(surface).bring_to_front()
        except (PlaywrightError, RuntimeError) as e:
            self.logger.warning("Could not show %s surface: %s", surface, e)
            return
        if self.state is not None:
            self.state.visible_surface = surface

    async def collect_page_data(self, script: str) -> None:
        self.tracker.spawn(self._collect_page_data(script), name="page-data")

    async def _collect_page_data(self, script: str) -> None:
        try:
            data = await self._page(AUTOMATION_SURFACE).evaluate(script)
        except (PlaywrightError, RuntimeError) as e:
            self.logger.error("Page data script failed: %s", e)
            return
        if not isinstance(data, dict) or self.listener is None:
            return
        await self.listener.page_data_collected(
            data.get("url"),
            data.get("html"),
            data.get("localStorage"),
            data.get("sessionStorage"),
        )

    async def get_cookies(self) -> List[Dict[str, Any]]:
        if self.state is None or self.state.browser_context is None:
            return []
        return await self.state.browser_context.cookies()

    async def clear_cookies(self) -> None:
        if self.state is None or self.state.browser_context is None:
            return
        await self.state.browser_context.clear_cookies()
        self.logger.info("Cleared all cookies")

    async def current_url(self, surface: str) -> Optional[str]:
        page = self.session_manager.get_page(self.state, surface)
        return page.url if page is not None else None

    async def capture_screenshot(
        self,
        optimization: ImageOptimization,
        whole_ui: bool = False,
    ) -> Optional[str]:
        if self.state is None:
            return None
        surface = self.state.visible_surface if whole_ui else AUTOMATION_SURFACE
        page = self.session_manager.get_page(self.state, surface)
        screenshot = await capture_page(page, optimization, logger=self.logger)
        self.state.remember_screenshot(screenshot)
        return screenshot

    def current_screenshot(self) -> Optional[str]:
        return self.state.current_screenshot if self.state is not None else None

    def previous_screenshot(self) -> Optional[str]:
        return self.state.previous_screenshot if self.state is not None else None

    async def detected_user_agent(self) -> Optional[str]:
        page = self.session_manager.get_page(self.state, UI_SURFACE)
        if page is None:
            return None
        try:
            return await page.evaluate("() => navigator.userAgent")
        except PlaywrightError:
            return None
