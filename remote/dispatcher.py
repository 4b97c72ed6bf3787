"""Command dispatch and per-command state machine."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote, urlencode

from .callbacks import HostCallbacks, TaskTracker, invoke_callback
from .config import ClientConfig
from .constants import UNSUPPORTED_COMMAND, Paths, Surfaces
from .context import SessionContext
from .engine import BrowserEngine
from .errors import CommandDecodeError, UnsupportedCommandError
from .log_utils import truncate, truncate_url
from .models import (
    SCRIPT_COMMAND_TYPES,
    Command,
    CommandResult,
    CommandType,
    DoneCommand,
    ErrorData,
    HistoryItem,
    NavigateCommand,
    NavigationType,
    PageData,
    SuccessData,
    decode_command,
    parse_history,
)
from .page_data import PageDataCollector
from .reinjection import ReinjectionCoordinator
from .result_sender import ResultSender
from .success_urls import SuccessUrlMatcher
from .surface import SurfaceCoordinator

log = logging.getLogger(__name__)

SCRIPT_MESSAGE_TYPES = {CommandType.WAIT.value, CommandType.INJECT_SCRIPT.value}


class CommandDispatcher:
    """
    Receives one command at a time, drives the engine, and finalizes results.

    The newest command always becomes current; nothing in flight is
    cancelled. Protocol errors are answered with error results, never raised.
    """

    def __init__(
        self,
        config: ClientConfig,
        context: SessionContext,
        engine: BrowserEngine,
        surfaces: SurfaceCoordinator,
        success_urls: SuccessUrlMatcher,
        collector: PageDataCollector,
        sender: ResultSender,
        tracker: TaskTracker,
        callbacks: Optional[HostCallbacks] = None,
        journal: Any = None,
        logger: Any = None,
    ):
        self.config = config
        self.context = context
        self.engine = engine
        self.surfaces = surfaces
        self.success_urls = success_urls
        self.collector = collector
        self.sender = sender
        self.tracker = tracker
        self.callbacks = callbacks or HostCallbacks()
        self.journal = journal
        self.logger = logger or log
        self.reinjection = ReinjectionCoordinator(
            context,
            self._reinject,
            delay=config.reinjection_delay,
            logger=self.logger,
        )

    # Inbound commands

    async def handle_command(self, payload: Any) -> Optional[Command]:
        self.logger.info("Processing command: %s", truncate(payload))
        try:
            command = decode_command(payload)
        except UnsupportedCommandError as e:
            self.logger.error("Unknown command type: %s", e.command_type)
            self._send_failure(e.command_id or "", str(e), error_type=UNSUPPORTED_COMMAND, command_type=e.command_type)
            return None
        except CommandDecodeError as e:
            if not e.command_id:
                self.logger.error("Dropping command: %s", e)
                return None
            self.logger.error("Rejecting command %s: %s", e.command_id, e)
            self._send_failure(e.command_id, str(e))
            return None

        self.logger.info(
            "Command %s type=%s script=%s cookieDomains=%s userActionRequired=%s",
            command.id,
            command.type.value,
            f"{len(command.inject_script)} chars" if command.inject_script else "none",
            list(command.cookie_domains or ()),
            command.user_action_required,
        )
        self._remember(command)
        self.context.current_command = command
        self._journal(command.id, command.type.value, "received")

        if command.type == CommandType.NAVIGATE:
            await self._navigate(command)
        elif command.type in SCRIPT_COMMAND_TYPES:
            await self.execute_script(command)
        elif command.type == CommandType.DONE:
            await self._done(command)
        return command

    def _remember(self, command: Command) -> None:
        if command.user_action_required:
            self.context.last_user_action_command = command
        if command.type == CommandType.WAIT:
            self.context.last_wait_command = command
            self.logger.debug("Stored wait command for reinjection: %s", command.id)
        elif command.type == CommandType.INJECT_SCRIPT:
            self.context.last_inject_script_command = command
            self.logger.debug("Stored injectScript command for reinjection: %s", command.id)

    async def _navigate(self, command: Command) -> None:
        url = command.url if isinstance(command, NavigateCommand) else None
        if not url:
            self._finish_current(command.id)
            self._send_failure(command.id, "No URL provided")
            return
        rules = command.success_urls if isinstance(command, NavigateCommand) else None
        self.success_urls.set_rules(rules)
        self.logger.info("Navigating automation surface to: %s", truncate_url(url))
        try:
            await self.engine.navigate_in_automation(url)
        except Exception as e:
            await self.navigation_failed(url, str(e), Surfaces.AUTOMATION)

    async def execute_script(self, command: Command) -> None:
        script = command.inject_script
        if not script:
            self._send_failure(command.id, "No script provided for execution")
            return
        self.logger.info("Executing %s script for command %s (%s chars)", command.type.value, command.id, len(script))
        try:
            await self.engine.inject_script(script, command.id, command.type.value)
        except Exception as e:
            await self.script_execution_result(command.id, False, error=str(e) or "Script execution failed")

    async def _reinject(self, command: Command) -> None:
        self._journal(command.id, command.type.value, "reinjected")
        await self.execute_script(command)

    async def _done(self, command: Command) -> None:
        success = command.success if isinstance(command, DoneCommand) else True
        data = command.data if isinstance(command, DoneCommand) else None
        self.logger.info("Handling done command %s - success: %s", command.id, success)

        await self.surfaces.show_primary(lock=success)
        self._finish_current(command.id)

        if success:
            self.tracker.spawn(
                self._finalize_success(command.id, data, command.cookie_domains),
                name=f"done:{command.id}",
            )
            payload = data if isinstance(data, dict) else {}
            connection_id = payload.get("connectionId")
            success_data = SuccessData(
                history=parse_history(data),
                connection_id=connection_id if isinstance(connection_id, str) else "",
            )
            await invoke_callback(self.callbacks.on_success, success_data, logger=self.logger)
            if self.context.redirect_on_done:
                await self._navigate_primary(self.build_connect_url(True))
        else:
            message = data.get("error") if isinstance(data, dict) else None
            if not isinstance(message, str) or not message:
                message = "Done command indicates failure"
            self._send_failure(command.id, message)
            await invoke_callback(self.callbacks.on_error, ErrorData(error=message, data=data), logger=self.logger)
            if self.context.redirect_on_done:
                await self._navigate_primary(self.build_connect_url(False, message))

        self.context.finished.set()

    async def _navigate_primary(self, url: str) -> None:
        self.logger.info("Navigating primary surface to: %s", truncate_url(url))
        try:
            await self.engine.navigate_in_primary(url)
        except Exception as e:
            self.logger.error("Primary surface navigation failed: %s", e)

    def build_connect_url(self, success: bool, error: Optional[str] = None) -> str:
        params = [
            ("intentToken", self.context.intent_token or ""),
            ("success", "true" if success else "false"),
            ("appAgentName", self.config.agent_name),
        ]
        if error is not None:
            params.append(("error", error))
        return f"{self.config.base_url}{Paths.CONNECT}?{urlencode(params, quote_via=quote)}"

    # Engine signals

    async def navigation_started(self, url: str, surface: str) -> None:
        self.logger.debug("Navigation started on %s: %s", surface, truncate_url(url))
        if surface == Surfaces.AUTOMATION:
            await self.success_urls.evaluate(url, NavigationType.NAVIGATION_START)

    async def navigation_completed(self, url: str, surface: str) -> None:
        self.logger.info("Navigation completed on %s: %s", surface, truncate_url(url))
        if surface != Surfaces.AUTOMATION:
            return
        await self.success_urls.evaluate(url, NavigationType.NAVIGATION_END)

        command = self.context.current_command
        if command is not None and command.type == CommandType.NAVIGATE:
            self.logger.info("Completing navigation command: %s", command.id)
            self._finish_current(command.id)
            self.tracker.spawn(
                self._finalize_success(command.id, {"url": url}, command.cookie_domains),
                name=f"navigate:{command.id}",
            )

        if self.reinjection.select() is not None:
            self.tracker.spawn(self.reinjection.after_navigation(), name="reinjection")

    async def navigation_failed(self, url: str, error: str, surface: str) -> None:
        command = self.context.current_command
        if surface != Surfaces.AUTOMATION or command is None or command.type != CommandType.NAVIGATE:
            self.logger.warning("Navigation failed on %s (%s): %s", surface, truncate_url(url), error)
            return
        self.logger.error("Navigation command %s failed: %s", command.id, error)
        self._finish_current(command.id)
        self._send_failure(command.id, error or "Navigation failed")

    async def script_execution_result(
        self,
        command_id: str,
        success: bool,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        self.logger.info("Script execution result for command %s, success: %s", command_id, success)
        wait_command = self.context.last_wait_command
        if wait_command is not None and wait_command.id == command_id:
            self.logger.debug("Clearing completed wait command: %s", command_id)
            self.context.last_wait_command = None

        if success:
            command = self._command_for(command_id)
            self.tracker.spawn(
                self._finalize_success(command_id, result, command.cookie_domains if command else None),
                name=f"script:{command_id}",
            )
        else:
            self._send_failure(command_id, error or "Script execution failed")

    async def page_data_collected(
        self,
        url: Optional[str],
        html: Optional[str],
        local_storage: Any,
        session_storage: Any,
    ) -> None:
        self.collector.deliver(url, html, local_storage, session_storage)

    async def handle_surface_message(self, message: Dict[str, Any]) -> None:
        if not isinstance(message, dict):
            return
        message_type = message.get("type")
        self.logger.debug("Handling surface message: %s", message_type or "unknown")

        if message_type == "commandResult":
            command_id = message.get("commandId")
            status = message.get("status")
            if isinstance(command_id, str) and isinstance(status, str):
                if status == "success":
                    await self.script_execution_result(command_id, True, message.get("data"))
                else:
                    error = message.get("error")
                    await self.script_execution_result(
                        command_id, False, error=error if isinstance(error, str) else "Command failed"
                    )
        elif message_type == "SWITCH_WEBVIEW":
            target = message.get("targetWebView")
            self.logger.debug("Manual surface switch requested to %s", target)
            await self.surfaces.switch_to(str(target))
        elif message_type == "passage_message":
            await self._handle_passage_message(message.get("data"))
        elif message_type == "pageData":
            data = message.get("data")
            if isinstance(data, dict):
                self.collector.deliver(
                    data.get("url"), data.get("html"), data.get("localStorage"), data.get("sessionStorage")
                )
        else:
            self.logger.debug("Unhandled surface message type: %s", message_type)

    async def _handle_passage_message(self, raw: Any) -> None:
        parsed: Optional[Dict[str, Any]] = None
        if isinstance(raw, str):
            try:
                loaded = json.loads(raw)
            except ValueError:
                self.logger.warning("Ignoring passage message with invalid JSON")
                return
            parsed = loaded if isinstance(loaded, dict) else None
        elif isinstance(raw, dict):
            parsed = raw
        if parsed is None:
            return

        command_id = parsed.get("commandId")
        command_type = parsed.get("type")
        if not isinstance(command_id, str) or not isinstance(command_type, str):
            return
        if command_type not in SCRIPT_MESSAGE_TYPES:
            self.logger.debug("Unhandled passage message type: %s", command_type)
            return

        error = parsed.get("error")
        if error is None:
            await self.script_execution_result(command_id, True, parsed.get("value"))
        else:
            await self.script_execution_result(
                command_id, False, error=error if isinstance(error, str) else "Script execution failed"
            )

    # Host-driven results

    async def complete_recording(self, data: Any) -> bool:
        command = self.context.current_command
        if command is None:
            self.logger.error("No current command available to complete")
            return False
        self.logger.debug("Completing recording for command: %s", command.id)
        page_data = await self.collector.collect(command.cookie_domains)
        self.sender.send(CommandResult.success(command.id, data, page_data))
        self._journal(command.id, command.type.value, "success", {"recording": "complete"})

        if self.context.connection_data and self.context.connection_id:
            history = [HistoryItem(structured_data=item) for item in self.context.connection_data]
            await invoke_callback(
                self.callbacks.on_success,
                SuccessData(history=history, connection_id=self.context.connection_id),
                logger=self.logger,
            )
        self.logger.info("Recording completed")
        return True

    async def capture_recording_data(self, data: Any) -> bool:
        command = self.context.current_command
        if command is None:
            self.logger.error("No current command available to capture")
            return False
        page_data = await self.collector.collect(command.cookie_domains)
        self.sender.send(CommandResult.success(command.id, data, page_data))
        self._journal(command.id, command.type.value, "success", {"recording": "capture"})
        self.logger.info("Recording data captured for command: %s", command.id)
        return True

    def send_command_result(self, command_id: str, data: Any, page_data: Optional[Dict[str, Any]] = None) -> bool:
        structured = PageData.from_dict(page_data)
        if structured is not None:
            structured.screenshot = None
        return self.sender.send(CommandResult.success(command_id, data, structured))

    # Internals

    async def _finalize_success(
        self,
        command_id: str,
        data: Any,
        cookie_domains: Optional[Sequence[str]] = None,
    ) -> None:
        page_data = await self.collector.collect(cookie_domains)
        self.sender.send(CommandResult.success(command_id, data, page_data))
        command = self._command_for(command_id)
        self._journal(command_id, command.type.value if command else None, "success")

    def _send_failure(
        self,
        command_id: str,
        message: str,
        error_type: Optional[str] = None,
        command_type: Optional[str] = None,
    ) -> None:
        self.sender.send(CommandResult.failure(command_id, message, error_type=error_type))
        if command_type is None:
            command = self._command_for(command_id)
            command_type = command.type.value if command else None
        self._journal(
            command_id,
            command_type,
            "unsupported" if error_type == UNSUPPORTED_COMMAND else "error",
            {"error": message},
        )

    def _finish_current(self, command_id: str) -> None:
        if self.context.is_current(command_id):
            self.context.current_command = None

    def _command_for(self, command_id: str) -> Optional[Command]:
        for command in (
            self.context.current_command,
            self.context.last_wait_command,
            self.context.last_inject_script_command,
            self.context.last_user_action_command,
        ):
            if command is not None and command.id == command_id:
                return command
        return None

    def _journal(self, command_id: Optional[str], command_type: Optional[str], event_type: str, detail: Any = None) -> None:
        if self.journal is None:
            return
        self.journal.log_command_event(self.context.session_id, command_id, command_type, event_type, detail)
