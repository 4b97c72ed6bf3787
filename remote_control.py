"""Per-session remote-control facade wiring the protocol core to a browser engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from remote.callbacks import HostCallbacks, TaskTracker, invoke_callback
from remote.claims import decode_session_claims
from remote.config import ClientConfig
from remote.configuration import AutomationConfiguration, ConfigurationFetcher
from remote.connection import ConnectionManager
from remote.constants import Events
from remote.context import SessionContext
from remote.dispatcher import CommandDispatcher
from remote.engine import BrowserEngine, EngineListener
from remote.log_utils import token_preview, truncate
from remote.models import (
    DataResult,
    ErrorData,
    PromptResponse,
    SuccessData,
    parse_history,
)
from remote.page_data import PageDataCollector
from remote.result_sender import ResultSender
from remote.screenshot_scheduler import ScreenshotScheduler
from remote.success_urls import SuccessUrlMatcher
from remote.surface import SurfaceCoordinator

log = logging.getLogger("remote_control")

DATA_READY_STATUSES = {"connected", "data_available"}


class RemoteControlSession(EngineListener):
    """
    One remote-controlled browser session.

    ``start(token)`` decodes claims, fetches configuration, configures the
    engine and opens the channel. Commands then flow from the channel through
    the dispatcher to the engine, and results flow back over HTTP.
    ``stop()`` tears everything down and resets the session state.
    """

    def __init__(
        self,
        engine: BrowserEngine,
        config: Optional[ClientConfig] = None,
        callbacks: Optional[HostCallbacks] = None,
        journal: Any = None,
        client_factory: Optional[Callable[[], Any]] = None,
        http_session_factory: Optional[Callable[[], Any]] = None,
        logger: Any = None,
    ):
        self.config = config or ClientConfig()
        self.engine = engine
        self.callbacks = callbacks or HostCallbacks()
        self.journal = journal
        self.logger = logger or log
        self.active = False

        self.context = SessionContext(redirect_on_done=self.config.redirect_on_done)
        self.tracker = TaskTracker(logger=self.logger)
        self.fetcher = ConfigurationFetcher(self.config, session_factory=http_session_factory, logger=self.logger)
        self.fetcher.set_configuration_callback(self._on_configuration_updated)
        self.surfaces = SurfaceCoordinator(engine, logger=self.logger)
        self.success_urls = SuccessUrlMatcher(self.surfaces, logger=self.logger)
        self.collector = PageDataCollector(
            engine,
            self.context,
            timeout=self.config.page_data_timeout,
            logger=self.logger,
        )
        self.sender = ResultSender(
            self.config,
            self.tracker,
            lambda: self.context.intent_token,
            session_factory=http_session_factory,
            logger=self.logger,
        )
        self.dispatcher = CommandDispatcher(
            self.config,
            self.context,
            engine,
            self.surfaces,
            self.success_urls,
            self.collector,
            self.sender,
            self.tracker,
            callbacks=self.callbacks,
            journal=journal,
            logger=self.logger,
        )
        self.screenshots = ScreenshotScheduler(engine, self.context, self.sender, logger=self.logger)
        self.connection = ConnectionManager(
            self.config,
            self.context,
            client_factory=client_factory,
            journal=journal,
            logger=self.logger,
        )
        self.connection.on(Events.COMMAND, self.dispatcher.handle_command)
        self.connection.on(Events.WELCOME, self._on_welcome)
        self.connection.on(Events.ERROR, self._on_error_event)
        self.connection.on(Events.CONNECTION, self._on_connection_event)
        self.connection.on(Events.DATA_COMPLETE, self._on_data_complete)
        self.connection.on(Events.PROMPT_COMPLETE, self._on_prompt_complete)
        self.connection.on(Events.CONNECTION_SUCCESS, self._on_connection_success)
        self.connection.on(Events.CONNECTION_ERROR, self._on_connection_error)
        engine.bind(self)

    # Lifecycle

    async def start(self, intent_token: str) -> bool:
        if self.active:
            await self.stop(status="restarted")

        self.context.reset()
        self.context.finished.clear()
        self.context.intent_token = intent_token
        self.context.redirect_on_done = self.config.redirect_on_done
        self.context.claims = decode_session_claims(intent_token)
        self.surfaces.reset()
        self.surfaces.record_mode = self.context.claims.record

        claims = self.context.claims
        self.logger.info(
            "Starting session (token %s): record=%s captureScreenshot=%s interval=%ss clearAllCookies=%s",
            token_preview(intent_token),
            claims.record,
            claims.capture_screenshot,
            claims.capture_screenshot_interval,
            claims.clear_all_cookies,
        )
        if self.journal is not None:
            self.context.session_id = self.journal.start_session(
                token_preview(intent_token),
                self.config.agent_name,
                record_mode=claims.record,
                capture_screenshot=claims.capture_screenshot,
            )

        detected_user_agent = await self.engine.detected_user_agent()
        configuration = await self.fetcher.fetch(intent_token, detected_user_agent)
        self.context.configuration = configuration
        await self._apply_configuration(configuration)

        if claims.clear_all_cookies:
            try:
                await self.engine.clear_cookies()
            except Exception as e:
                self.logger.warning("Failed to clear cookies: %s", e)

        self.active = True
        connected = await self.connection.connect(intent_token)
        self.screenshots.start()
        return connected

    async def _apply_configuration(self, configuration: AutomationConfiguration) -> None:
        try:
            await self.engine.apply_configuration(
                configuration.automation_user_agent,
                configuration.integration_url,
                configuration.global_javascript,
            )
        except Exception as e:
            self.logger.error("Engine rejected configuration: %s", e)

    async def stop(self, status: str = "stopped", drain: bool = True) -> None:
        if not self.active:
            self.context.finished.set()
            return
        self.logger.info("Stopping session (%s)", status)
        await self.screenshots.stop()
        await self.connection.emit_modal_exit()
        await self.connection.disconnect()
        if drain:
            await self.tracker.drain()
        else:
            await self.tracker.cancel_all()
        if self.journal is not None and self.context.session_id:
            self.journal.end_session(self.context.session_id, status)
        self.success_urls.clear()
        self.surfaces.reset()
        self.context.reset()
        self.active = False
        self.context.finished.set()

    async def wait_finished(self, timeout: Optional[float] = None) -> bool:
        """Resolve once a ``done`` command is finalized or the session stops."""
        try:
            await asyncio.wait_for(self.context.finished.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def app_state_changed(self, state: str) -> bool:
        return await self.connection.emit_app_state(state)

    # Host-driven results

    async def complete_recording(self, data: Any) -> bool:
        return await self.dispatcher.complete_recording(data)

    async def capture_recording_data(self, data: Any) -> bool:
        return await self.dispatcher.capture_recording_data(data)

    def send_command_result(self, command_id: str, data: Any, page_data: Optional[Dict[str, Any]] = None) -> bool:
        return self.dispatcher.send_command_result(command_id, data, page_data)

    def get_stored_connection_data(self) -> Tuple[Optional[List[Any]], Optional[str]]:
        return self.context.connection_data, self.context.connection_id

    # Engine signals

    async def navigation_started(self, url: str, surface: str) -> None:
        await self.dispatcher.navigation_started(url, surface)

    async def navigation_completed(self, url: str, surface: str) -> None:
        await self.dispatcher.navigation_completed(url, surface)

    async def navigation_failed(self, url: str, error: str, surface: str) -> None:
        await self.dispatcher.navigation_failed(url, error, surface)

    async def script_execution_result(
        self,
        command_id: str,
        success: bool,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        await self.dispatcher.script_execution_result(command_id, success, result, error)

    async def page_data_collected(
        self,
        url: Optional[str],
        html: Optional[str],
        local_storage: Any,
        session_storage: Any,
    ) -> None:
        await self.dispatcher.page_data_collected(url, html, local_storage, session_storage)

    async def handle_surface_message(self, message: Dict[str, Any]) -> None:
        await self.dispatcher.handle_surface_message(message)

    # Channel events

    async def _on_configuration_updated(self, user_agent: str, integration_url: Optional[str]) -> None:
        await invoke_callback(self.callbacks.on_configuration_updated, user_agent, integration_url, logger=self.logger)

    async def _on_welcome(self, data: Any = None) -> None:
        self.logger.info("Welcome message received")
        self.logger.debug("Welcome data: %s", truncate(data))

    async def _on_error_event(self, data: Any = None) -> None:
        message = data.get("error") if isinstance(data, dict) else None
        if not isinstance(message, str) or not message:
            message = f"Socket error: {data}"
        self.logger.error("Channel error: %s", message)
        await invoke_callback(self.callbacks.on_error, ErrorData(error=message, data=data), logger=self.logger)

    async def _on_connection_event(self, data: Any = None) -> None:
        if not isinstance(data, dict):
            self.logger.error("Invalid connection data format: %s", truncate(data))
            return

        user_action_required = data.get("userActionRequired")
        if isinstance(user_action_required, bool):
            await self.surfaces.on_user_action_required(user_action_required)

        status = data.get("status")
        progress = data.get("progress")
        self.logger.info(
            "Connection status=%s progress=%s message=%s",
            status,
            progress,
            data.get("statusMessage"),
        )

        items = data.get("data")
        if status in DATA_READY_STATUSES and progress == 100 and isinstance(items, list) and items:
            connection_id = data.get("id")
            self.context.connection_data = items
            self.context.connection_id = connection_id if isinstance(connection_id, str) else None
            self.logger.info("Stored %s connection data items (id %s)", len(items), self.context.connection_id)
            if status == "data_available":
                prompts = data.get("promptResults")
                await invoke_callback(
                    self.callbacks.on_data_complete,
                    DataResult(data=items, prompts=prompts if isinstance(prompts, list) else None),
                    logger=self.logger,
                )
        elif status in DATA_READY_STATUSES:
            self.logger.debug("Connection data not stored: progress=%s, items=%s", progress, type(items).__name__)

    async def _on_data_complete(self, data: Any = None) -> None:
        if not isinstance(data, dict):
            return
        prompts = data.get("prompts")
        await invoke_callback(
            self.callbacks.on_data_complete,
            DataResult(data=data.get("data"), prompts=prompts if isinstance(prompts, list) else None),
            logger=self.logger,
        )

    async def _on_prompt_complete(self, data: Any = None) -> None:
        if not isinstance(data, dict):
            return
        key = data.get("key")
        value = data.get("value")
        if not isinstance(key, str) or not isinstance(value, str):
            self.logger.debug("PROMPT_COMPLETE without key/value ignored")
            return
        await invoke_callback(
            self.callbacks.on_prompt_complete,
            PromptResponse(key=key, value=value, response=data.get("response")),
            logger=self.logger,
        )

    async def _on_connection_success(self, data: Any = None) -> None:
        payload = data if isinstance(data, dict) else {}
        connection_id = payload.get("connectionId")
        if not isinstance(connection_id, str):
            connection_id = self.context.connection_id or ""
        await invoke_callback(
            self.callbacks.on_success,
            SuccessData(history=parse_history(payload), connection_id=connection_id),
            logger=self.logger,
        )

    async def _on_connection_error(self, data: Any = None) -> None:
        message = data.get("error") if isinstance(data, dict) else None
        if not isinstance(message, str) or not message:
            message = "Connection error"
        await invoke_callback(self.callbacks.on_error, ErrorData(error=message, data=data), logger=self.logger)
