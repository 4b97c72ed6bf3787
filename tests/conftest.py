"""Shared fakes: browser engine, HTTP session and Socket.IO client."""

from __future__ import annotations

import base64
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from socketio import exceptions as sio_exceptions

from remote.callbacks import HostCallbacks, TaskTracker
from remote.claims import SessionClaims
from remote.config import ClientConfig
from remote.context import SessionContext
from remote.dispatcher import CommandDispatcher
from remote.engine import BrowserEngine
from remote.page_data import PageDataCollector
from remote.result_sender import ResultSender
from remote.success_urls import SuccessUrlMatcher
from remote.surface import SurfaceCoordinator

SAMPLE_PAGE_DATA = {
    "url": "https://pay.bank.com/accounts",
    "html": "<html><body>accounts</body></html>",
    "localStorage": [{"name": "theme", "value": "dark"}],
    "sessionStorage": [{"name": "sid", "value": "abc"}],
}


def make_token(payload: Any) -> str:
    segment = base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii").rstrip("=")
    return f"eyJhbGciOiJIUzI1NiJ9.{segment}.signature"


class FakeEngine(BrowserEngine):
    """Records every directive; answers page-data requests from ``page_data``."""

    def __init__(
        self,
        page_data: Optional[Dict[str, Any]] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
        screenshot: Optional[str] = None,
        cached_screenshot: Optional[str] = None,
        automation_url: Optional[str] = "https://pay.bank.com/accounts",
    ):
        self.listener: Any = None
        self.calls: List[tuple] = []
        self.page_data = page_data
        self.cookies = list(cookies or [])
        self.screenshot = screenshot
        self.cached_screenshot = cached_screenshot
        self.urls = {"ui": None, "automation": automation_url}
        self.user_agent: Optional[str] = None
        self.navigation_error: Optional[Exception] = None

    def bind(self, listener: Any) -> None:
        self.listener = listener

    def directives(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def apply_configuration(self, user_agent, integration_url, global_javascript):
        self.calls.append(("apply_configuration", user_agent, integration_url, global_javascript))

    async def navigate_in_automation(self, url):
        self.calls.append(("navigate_in_automation", url))
        if self.navigation_error is not None:
            raise self.navigation_error

    async def navigate_in_primary(self, url):
        self.calls.append(("navigate_in_primary", url))

    async def inject_script(self, script, command_id, command_type):
        self.calls.append(("inject_script", script, command_id, command_type))

    async def show_automation_surface(self):
        self.calls.append(("show_automation_surface",))

    async def show_primary_surface(self, lock=False):
        self.calls.append(("show_primary_surface", lock))

    async def collect_page_data(self, script):
        self.calls.append(("collect_page_data",))
        if self.page_data is not None and self.listener is not None:
            data = self.page_data
            await self.listener.page_data_collected(
                data.get("url"), data.get("html"), data.get("localStorage"), data.get("sessionStorage")
            )

    async def get_cookies(self):
        return list(self.cookies)

    async def clear_cookies(self):
        self.calls.append(("clear_cookies",))
        self.cookies = []

    async def current_url(self, surface):
        return self.urls.get(surface)

    async def capture_screenshot(self, optimization, whole_ui=False):
        self.calls.append(("capture_screenshot", whole_ui))
        return self.screenshot

    def current_screenshot(self):
        return self.cached_screenshot

    async def detected_user_agent(self):
        return self.user_agent


class FakeResponse:
    def __init__(self, status: int = 200, body: str = ""):
        self.status = status
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return self.body


class FakeHttp:
    """``session_factory`` stand-in; every request lands in ``requests``."""

    def __init__(self, get_body: str = "{}", get_status: int = 200, post_status: int = 200, error: Exception = None):
        self.get_body = get_body
        self.get_status = get_status
        self.post_status = post_status
        self.error = error
        self.requests: List[Dict[str, Any]] = []

    def __call__(self):
        return FakeHttpSession(self)

    def posts(self, path: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["method"] == "POST" and r["url"].endswith(path)]


class FakeHttpSession:
    def __init__(self, http: FakeHttp):
        self.http = http

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, headers=None):
        self.http.requests.append({"method": "GET", "url": url, "headers": dict(headers or {})})
        if self.http.error is not None:
            raise self.http.error
        return FakeResponse(self.http.get_status, self.http.get_body)

    def post(self, url, json=None, headers=None):
        self.http.requests.append({"method": "POST", "url": url, "json": json, "headers": dict(headers or {})})
        if self.http.error is not None:
            raise self.http.error
        return FakeResponse(self.http.post_status, "ok")


class FakeSocketClient:
    """In-memory replacement for ``socketio.AsyncClient``."""

    def __init__(self, ack: bool = True, fail_connect: bool = False):
        self.ack = ack
        self.fail_connect = fail_connect
        self.handlers: Dict[str, Any] = {}
        self.namespaces: Dict[str, str] = {}
        self.connect_kwargs: Dict[str, Any] = {}
        self.emitted: List[tuple] = []
        self.calls: List[tuple] = []
        self.disconnected = False
        self.sid = "sid-1"

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler
        self.namespaces[event] = namespace

    async def connect(self, url, **kwargs):
        self.connect_kwargs = dict(kwargs, url=url)
        if self.fail_connect:
            raise sio_exceptions.ConnectionError("Connection refused by the server")
        await self.handlers["connect"]()

    async def emit(self, event, data=None, namespace=None):
        self.emitted.append((event, data, namespace))

    async def call(self, event, data=None, namespace=None, timeout=60):
        self.calls.append((event, data, namespace, timeout))
        if not self.ack:
            raise sio_exceptions.TimeoutError()
        return "ack"

    async def disconnect(self):
        self.disconnected = True
        await self.handlers["disconnect"]("client disconnect")

    async def trigger(self, event, *args):
        await self.handlers[event](*args)


def build_stack(
    engine: FakeEngine,
    claims: Optional[SessionClaims] = None,
    config: Optional[ClientConfig] = None,
    http: Optional[FakeHttp] = None,
    callbacks: Optional[HostCallbacks] = None,
    journal: Any = None,
    token: str = "intent-token",
) -> SimpleNamespace:
    """Wire a dispatcher against fakes; must be called inside a running loop."""
    config = config or ClientConfig(reinjection_delay=0.0, page_data_timeout=0.2)
    http = http or FakeHttp()
    context = SessionContext(intent_token=token, claims=claims or SessionClaims())
    tracker = TaskTracker()
    surfaces = SurfaceCoordinator(engine, record_mode=context.claims.record)
    matcher = SuccessUrlMatcher(surfaces)
    collector = PageDataCollector(engine, context, timeout=config.page_data_timeout)
    sender = ResultSender(config, tracker, lambda: context.intent_token, session_factory=http)
    dispatcher = CommandDispatcher(
        config,
        context,
        engine,
        surfaces,
        matcher,
        collector,
        sender,
        tracker,
        callbacks=callbacks,
        journal=journal,
    )
    engine.bind(dispatcher)
    return SimpleNamespace(
        config=config,
        context=context,
        tracker=tracker,
        surfaces=surfaces,
        matcher=matcher,
        collector=collector,
        sender=sender,
        dispatcher=dispatcher,
        http=http,
        engine=engine,
    )


def results(http: FakeHttp) -> List[Dict[str, Any]]:
    return [r["json"] for r in http.posts("/automation/command-result")]


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine(page_data=dict(SAMPLE_PAGE_DATA))


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()
