"""Tests for the SQLite session journal."""

import pytest

from browser.event_logger import SessionEventLogger


@pytest.fixture
def journal(tmp_path):
    logger = SessionEventLogger(tmp_path / "journal" / "events.db")
    logger.start()
    yield logger
    logger.close()


def test_session_lifecycle(journal):
    sid = journal.start_session("eyJhbGciOi...abc123", "passage-python", record_mode=True)

    row = journal.get_session(sid)
    assert row["status"] == "running"
    assert row["record_mode"] == 1
    assert row["ended_at"] is None

    journal.end_session(sid, "finished")
    row = journal.get_session(sid)
    assert row["status"] == "finished"
    assert row["ended_at"] is not None


def test_events_are_recorded_in_order(journal):
    sid = journal.start_session("tok", "agent", session_id="fixed")
    assert sid == "fixed"

    journal.log_connection_event(sid, "connect", {"sid": "abc"})
    journal.log_connection_event(sid, "disconnect", {"reason": "transport close"})
    journal.log_command_event(sid, "c1", "navigate", "received")
    journal.log_command_event(sid, "c1", "navigate", "error", {"error": "No URL provided"})

    connection = journal.list_events("connection_events", sid)
    assert [e["event_type"] for e in connection] == ["connect", "disconnect"]
    commands = journal.list_events("command_events", sid)
    assert [(e["command_id"], e["event_type"]) for e in commands] == [("c1", "received"), ("c1", "error")]
    assert commands[1]["payload_json"] == '{"error": "No URL provided"}'


def test_unserializable_detail_is_stringified(journal):
    journal.log_command_event("s", "c", "wait", "success", {"value": object()})
    [event] = journal.list_events("command_events", "s")
    assert event["payload_json"].startswith('{"value": "<object object')


def test_unknown_table_rejected(journal):
    with pytest.raises(ValueError):
        journal.list_events("sessions; DROP TABLE sessions", "s")


def test_lazy_start_and_missing_session(tmp_path):
    journal = SessionEventLogger(tmp_path / "lazy.db")
    journal.log_connection_event("s", "connect")
    assert len(journal.list_events("connection_events", "s")) == 1
    assert journal.get_session("nope") is None
    journal.close()
    journal.close()
