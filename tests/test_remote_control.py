"""End-to-end tests for the session facade over fake engine, channel and HTTP."""

import json

from conftest import SAMPLE_PAGE_DATA, FakeEngine, FakeHttp, FakeSocketClient, make_token, results
from remote.callbacks import HostCallbacks
from remote.config import ClientConfig
from remote.constants import Surfaces
from remote.models import DataResult, PromptResponse
from remote_control import RemoteControlSession

CONFIG_BODY = json.dumps({"automationUserAgent": "Automation UA", "integration": {"url": "https://pay.bank.com"}})


class Recorder:
    def __init__(self):
        self.events = []

    def callbacks(self):
        return HostCallbacks(
            on_success=lambda d: self.events.append(("success", d)),
            on_error=lambda d: self.events.append(("error", d)),
            on_data_complete=lambda d: self.events.append(("data", d)),
            on_prompt_complete=lambda d: self.events.append(("prompt", d)),
            on_configuration_updated=lambda ua, url: self.events.append(("config", ua, url)),
        )

    def of(self, kind):
        return [e[1:] if len(e) > 2 else e[1] for e in self.events if e[0] == kind]


class RecordingJournal:
    def __init__(self):
        self.sessions = []
        self.ended = []
        self.connection_events = []
        self.command_events = []

    def start_session(self, token_preview, agent_name, record_mode=False, capture_screenshot=False):
        self.sessions.append((token_preview, agent_name, record_mode))
        return "session-1"

    def end_session(self, session_id, status, error=None):
        self.ended.append((session_id, status))

    def log_connection_event(self, session_id, event_type, detail=None):
        self.connection_events.append((session_id, event_type))

    def log_command_event(self, session_id, command_id, command_type, event_type, detail=None):
        self.command_events.append((session_id, command_id, event_type))


def make_session(engine=None, claims=None, journal=None, socket=None):
    engine = engine or FakeEngine(page_data=dict(SAMPLE_PAGE_DATA))
    http = FakeHttp(get_body=CONFIG_BODY)
    socket = socket or FakeSocketClient()
    recorder = Recorder()
    session = RemoteControlSession(
        engine,
        config=ClientConfig(socket_url="https://api.test", reinjection_delay=0.0, page_data_timeout=0.2),
        callbacks=recorder.callbacks(),
        journal=journal,
        client_factory=lambda: socket,
        http_session_factory=http,
    )
    token = make_token(claims or {})
    return session, engine, http, socket, recorder, token


class TestLifecycle:
    async def test_start_configures_engine_and_connects(self):
        session, engine, http, socket, recorder, token = make_session()
        engine.user_agent = "Detected UA"

        assert await session.start(token) is True

        config_request = http.requests[0]
        assert config_request["url"] == "https://api.test/automation/configuration"
        assert config_request["headers"]["x-webview-user-agent"] == "Detected UA"
        assert engine.directives("apply_configuration") == [
            ("apply_configuration", "Automation UA", "https://pay.bank.com", "")
        ]
        assert recorder.of("config") == [("Automation UA", "https://pay.bank.com")]
        assert socket.connect_kwargs["url"].startswith("https://api.test?intentToken=")
        assert session.active is True
        assert session.screenshots.running is False
        await session.stop()

    async def test_clear_all_cookies_claim(self):
        session, engine, _, _, _, token = make_session(claims={"clearAllCookies": True})
        await session.start(token)
        assert engine.directives("clear_cookies") == [("clear_cookies",)]
        await session.stop()

    async def test_screenshots_start_with_claim(self):
        session, engine, http, socket, recorder, token = make_session(
            claims={"captureScreenshot": True, "captureScreenshotInterval": 60}
        )
        await session.start(token)
        assert session.screenshots.running is True
        await session.stop()
        assert session.screenshots.running is False

    async def test_stop_tears_down_and_resets(self):
        journal = RecordingJournal()
        session, engine, http, socket, recorder, token = make_session(journal=journal)
        await session.start(token)

        await session.stop()

        assert [c[0] for c in socket.calls] == ["modalExit"]
        assert socket.disconnected is True
        assert session.active is False
        assert session.context.intent_token is None
        assert session.context.finished.is_set()
        assert journal.sessions[0][1] == "passage-python"
        assert journal.ended == [("session-1", "stopped")]
        assert ("session-1", "connect") in journal.connection_events

    async def test_connect_failure_reports_error(self):
        session, engine, http, socket, recorder, token = make_session(socket=FakeSocketClient(fail_connect=True))
        assert await session.start(token) is False
        [error] = recorder.of("error")
        assert "Socket connection failed" in error.error
        await session.stop()

    async def test_wait_finished_times_out_then_resolves(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)
        assert await session.wait_finished(timeout=0.01) is False

        await socket.trigger("command", {"id": "d1", "type": "done", "args": {"success": True}})
        assert await session.wait_finished(timeout=1.0) is True
        await session.stop()

    async def test_app_state_forwarded(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)
        assert await session.app_state_changed("background") is True
        assert socket.emitted[0][0] == "appStateUpdate"
        await session.stop()


class TestCommandFlow:
    async def test_navigate_round_trip(self):
        journal = RecordingJournal()
        session, engine, http, socket, recorder, token = make_session(journal=journal)
        await session.start(token)

        await socket.trigger("command", {"id": "n1", "type": "navigate", "args": {"url": "https://pay.bank.com"}})
        await session.navigation_completed("https://pay.bank.com/accounts", Surfaces.AUTOMATION)
        await session.tracker.drain()

        [result] = results(http)
        assert result["id"] == "n1"
        assert result["data"] == {"url": "https://pay.bank.com/accounts"}
        assert result["pageData"]["localStorage"] == SAMPLE_PAGE_DATA["localStorage"]
        assert http.posts("/automation/command-result")[0]["headers"]["x-intent-token"] == token
        assert ("session-1", "n1", "received") in journal.command_events
        assert ("session-1", "n1", "success") in journal.command_events
        await session.stop()

    async def test_done_fires_success_callback(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)
        data = {"history": [{"structuredData": {"x": 1}}], "connectionId": "conn-1"}
        await socket.trigger("command", {"id": "d1", "type": "done", "args": {"success": True, "data": data}})
        await session.stop()

        [success] = recorder.of("success")
        assert success.connection_id == "conn-1"
        assert success.history[0].structured_data == {"x": 1}


class TestChannelEvents:
    async def test_connection_event_drives_surface(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)

        await socket.trigger("connection", {"userActionRequired": True, "status": "pending"})
        assert session.surfaces.current == Surfaces.AUTOMATION
        await socket.trigger("connection", {"userActionRequired": False, "status": "pending"})
        assert session.surfaces.current == Surfaces.UI
        await session.stop()

    async def test_connection_data_stored_when_complete(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)

        await socket.trigger("connection", {"status": "connected", "progress": 50, "data": [{"a": 1}], "id": "c1"})
        assert session.get_stored_connection_data() == (None, None)

        await socket.trigger("connection", {"status": "connected", "progress": 100, "data": [{"a": 1}], "id": "c1"})
        assert session.get_stored_connection_data() == ([{"a": 1}], "c1")
        assert recorder.of("data") == []
        await session.stop()

    async def test_data_available_fires_data_complete(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)

        prompts = [{"key": "k", "value": "v"}]
        await socket.trigger(
            "connection",
            {"status": "data_available", "progress": 100, "data": [{"b": 2}], "id": "c2", "promptResults": prompts},
        )

        assert recorder.of("data") == [DataResult(data=[{"b": 2}], prompts=prompts)]
        assert session.get_stored_connection_data() == ([{"b": 2}], "c2")
        await session.stop()

    async def test_invalid_connection_payload_ignored(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)
        await socket.trigger("connection", "garbage")
        assert session.get_stored_connection_data() == (None, None)
        await session.stop()

    async def test_data_and_prompt_complete_events(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)

        await socket.trigger("DATA_COMPLETE", {"data": {"rows": 2}, "prompts": [{"key": "k"}]})
        await socket.trigger("PROMPT_COMPLETE", {"key": "balance", "value": "10", "response": {"ok": True}})
        await socket.trigger("PROMPT_COMPLETE", {"key": "missing-value"})

        assert recorder.of("data") == [DataResult(data={"rows": 2}, prompts=[{"key": "k"}])]
        assert recorder.of("prompt") == [PromptResponse(key="balance", value="10", response={"ok": True})]
        await session.stop()

    async def test_connection_success_and_error_events(self):
        session, engine, http, socket, recorder, token = make_session()
        await session.start(token)

        await socket.trigger("CONNECTION_SUCCESS", {"connectionId": "c9", "history": [{"structuredData": 1}]})
        await socket.trigger("CONNECTION_ERROR", {"error": "Bank rejected login"})
        await socket.trigger("error", {"error": "server exploded"})

        [success] = recorder.of("success")
        assert success.connection_id == "c9"
        assert [e.error for e in recorder.of("error")] == ["Bank rejected login", "server exploded"]
        await session.stop()

    async def test_complete_recording_uses_stored_connection_data(self):
        session, engine, http, socket, recorder, token = make_session(claims={"record": True})
        await session.start(token)
        await socket.trigger("connection", {"status": "connected", "progress": 100, "data": [{"a": 1}], "id": "c1"})
        await socket.trigger("command", {"id": "i1", "type": "injectScript", "injectScript": "rec()"})

        assert await session.complete_recording({"finished": True}) is True
        await session.stop()

        [success] = recorder.of("success")
        assert success.connection_id == "c1"
        assert results(http)[0]["data"] == {"finished": True}
