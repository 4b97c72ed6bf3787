"""Socket.IO channel to the orchestrator."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import socketio
from socketio import exceptions as sio_exceptions

from .callbacks import invoke_callback
from .config import ClientConfig
from .constants import Events
from .context import SessionContext
from .log_utils import token_preview, truncate
from .result_sender import utc_now_iso

log = logging.getLogger(__name__)

FORWARDED_EVENTS = (
    Events.COMMAND,
    Events.WELCOME,
    Events.ERROR,
    Events.CONNECTION,
    Events.DATA_COMPLETE,
    Events.PROMPT_COMPLETE,
    Events.CONNECTION_SUCCESS,
    Events.CONNECTION_ERROR,
)


class ConnectionManager:
    """
    Own the reconnecting Socket.IO client for one session.

    Lifecycle signals (connect, disconnect, reconnect, errors) only feed the
    logs and the journal. Server events listed in ``FORWARDED_EVENTS`` go to
    the handler registered with :meth:`on`.
    """

    def __init__(
        self,
        config: ClientConfig,
        context: SessionContext,
        client_factory: Optional[Callable[[], Any]] = None,
        journal: Any = None,
        logger: Any = None,
    ):
        self.config = config
        self.context = context
        self._client_factory = client_factory or self._default_client
        self.journal = journal
        self.logger = logger or log
        self.sio: Any = None
        self.connected = False
        self.connect_count = 0
        self.failed_attempts = 0
        self._handlers: Dict[str, Callable[..., Any]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers[event] = handler

    @property
    def namespace(self) -> str:
        return self.config.socket_namespace

    def connect_url(self, intent_token: str) -> str:
        return f"{self.config.socket_url}?{urlencode({'intentToken': intent_token})}"

    async def connect(self, intent_token: str) -> bool:
        self.logger.info(
            "Connecting to %s namespace %s (token %s)",
            self.config.socket_url,
            self.namespace,
            token_preview(intent_token),
        )
        self.sio = self._client_factory()
        self._register(self.sio)
        try:
            await self.sio.connect(
                self.connect_url(intent_token),
                namespaces=[self.namespace],
                socketio_path=self.config.socket_path,
                transports=["websocket"],
                retry=True,
            )
        except sio_exceptions.ConnectionError as e:
            self.logger.error("Socket connection failed: %s", e)
            self._journal("connect_error", {"error": str(e)})
            await self._forward(Events.ERROR, {"error": f"Socket connection failed: {e}"})
            return False
        return True

    def _register(self, sio: Any) -> None:
        sio.on("connect", self._on_connect, namespace=self.namespace)
        sio.on("connect_error", self._on_connect_error, namespace=self.namespace)
        sio.on("disconnect", self._on_disconnect, namespace=self.namespace)
        for event in FORWARDED_EVENTS:
            sio.on(event, self._forwarder(event), namespace=self.namespace)

    def _forwarder(self, event: str) -> Callable[..., Any]:
        async def forward(*args: Any) -> None:
            self.logger.debug("Socket event %s: %s", event, truncate(args))
            await self._forward(event, *args)

        return forward

    async def _forward(self, event: str, *args: Any) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            self.logger.debug("No handler for socket event %s", event)
            return
        await invoke_callback(handler, *args, logger=self.logger)

    async def _on_connect(self) -> None:
        reconnect = self.connect_count > 0
        self.connect_count += 1
        self.connected = True
        self.failed_attempts = 0
        sid = getattr(self.sio, "sid", None)
        if reconnect:
            self.logger.info("Reconnected to server (sid %s)", sid)
            self._journal("reconnect", {"sid": sid, "connects": self.connect_count})
        else:
            self.logger.info("Connected to server (sid %s)", sid)
            self._journal("connect", {"sid": sid})

    async def _on_connect_error(self, data: Any = None) -> None:
        self.logger.error("Socket connect error: %s", data)
        self._journal("connect_error", {"error": data})
        await self._forward(Events.ERROR, {"error": f"Socket error: {data}", "data": data})
        self.failed_attempts += 1
        if self.failed_attempts <= self.config.reconnect_attempts:
            self.logger.info("Reconnect attempt %s of %s", self.failed_attempts, self.config.reconnect_attempts)
            self._journal("reconnect_attempt", {"attempt": self.failed_attempts})

    async def _on_disconnect(self, *args: Any) -> None:
        self.connected = False
        reason = args[0] if args else None
        self.logger.warning("Disconnected from server (reason: %s)", reason)
        self._journal("disconnect", {"reason": reason})

    async def emit_app_state(self, state: str) -> bool:
        """Fire-and-forget app state signal; dropped when not connected."""
        if not self.connected or self.sio is None:
            self.logger.debug("Socket not connected, dropping app state %s", state)
            return False
        payload = {
            "state": state,
            "timestamp": utc_now_iso(),
            "intentToken": self.context.intent_token or "",
        }
        try:
            await self.sio.emit(Events.APP_STATE_UPDATE, payload, namespace=self.namespace)
        except sio_exceptions.SocketIOError as e:
            self.logger.warning("Failed to emit app state: %s", e)
            return False
        self.logger.debug("Emitted app state: %s", state)
        return True

    async def emit_modal_exit(self) -> bool:
        """Emit ``modalExit`` and wait for the server ack, at most ``modal_exit_timeout``."""
        if not self.connected or self.sio is None:
            self.logger.debug("Socket not connected, skipping modalExit")
            return False
        payload = {"timestamp": utc_now_iso(), "intentToken": self.context.intent_token or ""}
        try:
            await self.sio.call(
                Events.MODAL_EXIT,
                payload,
                namespace=self.namespace,
                timeout=self.config.modal_exit_timeout,
            )
        except sio_exceptions.TimeoutError:
            self.logger.debug("modalExit timeout, proceeding anyway")
            return False
        except sio_exceptions.SocketIOError as e:
            self.logger.warning("modalExit failed: %s", e)
            return False
        self.logger.debug("Received modalExit acknowledgment")
        return True

    async def disconnect(self) -> None:
        sio, self.sio = self.sio, None
        self.connected = False
        if sio is None:
            self.logger.debug("Socket already closed")
            return
        try:
            await sio.disconnect()
        except Exception as e:
            self.logger.warning("Socket disconnect raised: %s", e)
        self.logger.info("Socket disconnected")

    def _journal(self, event_type: str, detail: Any = None) -> None:
        if self.journal is None:
            return
        self.journal.log_connection_event(self.context.session_id, event_type, detail)

    def _default_client(self) -> socketio.AsyncClient:
        return socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=self.config.reconnect_attempts,
            reconnection_delay=self.config.reconnect_delay,
            reconnection_delay_max=self.config.reconnect_delay_max,
            randomization_factor=self.config.randomization_factor,
            logger=self.config.debug,
            engineio_logger=self.config.debug,
        )
