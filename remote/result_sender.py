"""Best-effort delivery of command results and browser-state updates."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import aiohttp

from .callbacks import TaskTracker
from .config import ClientConfig
from .constants import Headers, Paths
from .log_utils import truncate, truncate_html, truncate_url
from .models import CommandResult

log = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ResultSender:
    """
    POST each command result to the result endpoint and the session-record
    endpoint. Both posts run as background tasks; failures are logged and
    never reach the caller.
    """

    def __init__(
        self,
        config: ClientConfig,
        tracker: TaskTracker,
        token_provider: Callable[[], Optional[str]],
        session_factory: Optional[Callable[[], Any]] = None,
        logger: Any = None,
    ):
        self.config = config
        self.tracker = tracker
        self._token_provider = token_provider
        self._session_factory = session_factory or self._default_session
        self.logger = logger or log

    def url_for(self, path: str) -> str:
        return f"{self.config.socket_url}{path}"

    def send(self, result: CommandResult) -> bool:
        """Schedule delivery of ``result``; False when no session token is known."""
        token = self._token_provider()
        if not token:
            self.logger.error("No intent token available for sending result %s", result.id)
            return False

        self._log_result(result)
        payload = result.to_dict()
        self.tracker.spawn(
            self._post(Paths.COMMAND_RESULT, payload, token),
            name=f"command-result:{result.id}",
        )
        self.tracker.spawn(
            self._post(Paths.SESSION_RECORD, {"commandResponse": {"at": utc_now_iso(), "data": payload}}, token),
            name=f"session-record:{result.id}",
        )
        return True

    async def post_browser_state(self, url: Optional[str], screenshot: Optional[str], metadata: Dict[str, Any]) -> bool:
        token = self._token_provider()
        if not token:
            self.logger.debug("No intent token available for browser state")
            return False
        body: Dict[str, Any] = {"url": url, **metadata}
        if screenshot:
            body["screenshot"] = screenshot
        return await self._post(Paths.BROWSER_STATE, body, token)

    async def _post(self, path: str, body: Dict[str, Any], token: str) -> bool:
        url = self.url_for(path)
        headers = {"Content-Type": "application/json", Headers.INTENT_TOKEN: token}
        try:
            async with self._session_factory() as session:
                async with session.post(url, json=body, headers=headers) as response:
                    text = await response.text()
                    if response.status >= 400:
                        self.logger.error(
                            "POST %s failed with status %s: %s",
                            path,
                            response.status,
                            truncate(text, 500),
                        )
                        return False
                    self.logger.info("POST %s sent - status: %s", path, response.status)
                    self.logger.debug("POST %s response: %s", path, truncate(text))
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Error sending POST %s: %s", path, e)
        except (TypeError, ValueError) as e:
            self.logger.error("Error encoding POST %s body: %s", path, e)
        return False

    def _log_result(self, result: CommandResult) -> None:
        self.logger.info("Sending result for command %s, status: %s", result.id, result.status.value)
        page_data = result.page_data
        if page_data is None:
            if result.error:
                self.logger.info("Result error: %s", result.error)
            return
        self.logger.debug(
            "Result page data: cookies=%s, localStorage=%s, sessionStorage=%s, html=%s, screenshot=%s, url=%s",
            len(page_data.cookies or []),
            len(page_data.local_storage or []),
            len(page_data.session_storage or []),
            truncate_html(page_data.html),
            f"{len(page_data.screenshot)} chars" if page_data.screenshot else "nil",
            truncate_url(page_data.url),
        )

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.http_timeout))
