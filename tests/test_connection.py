"""Tests for the Socket.IO connection manager."""

from conftest import FakeSocketClient
from remote.config import ClientConfig
from remote.connection import FORWARDED_EVENTS, ConnectionManager
from remote.context import SessionContext


class RecordingJournal:
    def __init__(self):
        self.events = []

    def log_connection_event(self, session_id, event_type, detail=None):
        self.events.append(event_type)


def make_manager(client=None, journal=None):
    client = client or FakeSocketClient()
    context = SessionContext(intent_token="tok")
    manager = ConnectionManager(
        ClientConfig(socket_url="https://api.test"),
        context,
        client_factory=lambda: client,
        journal=journal,
    )
    return manager, client


async def test_connect_uses_namespace_and_websocket():
    manager, client = make_manager()
    assert await manager.connect("tok en") is True

    assert client.connect_kwargs["url"] == "https://api.test?intentToken=tok+en"
    assert client.connect_kwargs["namespaces"] == ["/ws"]
    assert client.connect_kwargs["transports"] == ["websocket"]
    assert client.connect_kwargs["socketio_path"] == "socket.io"
    assert client.connect_kwargs["retry"] is True
    assert manager.connected is True
    assert set(FORWARDED_EVENTS) <= set(client.handlers)
    assert set(client.namespaces.values()) == {"/ws"}


async def test_events_are_routed_to_handlers():
    manager, client = make_manager()
    received = []

    async def on_command(payload):
        received.append(payload)

    manager.on("command", on_command)
    await manager.connect("tok")
    await client.trigger("command", {"id": "c1"})
    await client.trigger("welcome", {"hello": True})

    assert received == [{"id": "c1"}]


async def test_connect_failure_reports_error():
    journal = RecordingJournal()
    manager, client = make_manager(FakeSocketClient(fail_connect=True), journal=journal)
    errors = []
    manager.on("error", errors.append)

    assert await manager.connect("tok") is False
    assert manager.connected is False
    assert journal.events == ["connect_error"]
    assert "Socket connection failed" in errors[0]["error"]


async def test_second_connect_is_journaled_as_reconnect():
    journal = RecordingJournal()
    manager, client = make_manager(journal=journal)
    await manager.connect("tok")
    await client.trigger("disconnect", "transport close")
    assert manager.connected is False
    await client.trigger("connect")

    assert journal.events == ["connect", "disconnect", "reconnect"]
    assert manager.connected is True


async def test_reconnect_attempts_are_journaled_up_to_limit():
    journal = RecordingJournal()
    manager, client = make_manager(journal=journal)
    manager.config = ClientConfig(socket_url="https://api.test", reconnect_attempts=2)
    await manager.connect("tok")
    await client.trigger("disconnect", "transport close")
    for _ in range(3):
        await client.trigger("connect_error", "refused")

    assert journal.events.count("reconnect_attempt") == 2
    assert manager.failed_attempts == 3

    await client.trigger("connect")
    assert manager.failed_attempts == 0
    assert journal.events[-1] == "reconnect"


async def test_app_state_emitted_only_when_connected():
    manager, client = make_manager()
    assert await manager.emit_app_state("background") is False

    await manager.connect("tok")
    assert await manager.emit_app_state("active") is True
    [(event, payload, namespace)] = client.emitted
    assert event == "appStateUpdate"
    assert payload["state"] == "active"
    assert payload["intentToken"] == "tok"
    assert namespace == "/ws"


async def test_modal_exit_acknowledged():
    manager, client = make_manager()
    await manager.connect("tok")
    assert await manager.emit_modal_exit() is True
    [(event, payload, namespace, timeout)] = client.calls
    assert event == "modalExit"
    assert payload["intentToken"] == "tok"
    assert timeout == 1.0


async def test_modal_exit_timeout_proceeds():
    manager, client = make_manager(FakeSocketClient(ack=False))
    await manager.connect("tok")
    assert await manager.emit_modal_exit() is False


async def test_disconnect_is_idempotent():
    manager, client = make_manager()
    await manager.connect("tok")
    await manager.disconnect()
    await manager.disconnect()
    assert client.disconnected is True
    assert manager.sio is None
    assert manager.connected is False
