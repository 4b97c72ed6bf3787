"""Tests for the command line entry point."""

from typer.testing import CliRunner

from remote import cli

runner = CliRunner()


def test_build_config_prefers_options(monkeypatch, tmp_path):
    monkeypatch.setenv("PASSAGE_SOCKET_URL", "https://env.example.com")
    monkeypatch.setenv("PASSAGE_BASE_URL", "https://env-ui.example.com")

    config = cli.build_config(socket_url="https://cli.example.com/", debug=True, journal=tmp_path / "j.db")

    assert config.socket_url == "https://cli.example.com"
    assert config.base_url == "https://env-ui.example.com"
    assert config.debug is True
    assert config.journal_path == str(tmp_path / "j.db")


def test_run_reports_finished_session(monkeypatch):
    seen = {}

    async def fake_run_session(config, token, headless, user_agent):
        seen.update(token=token, headless=headless, user_agent=user_agent, socket_url=config.socket_url)
        return "finished"

    monkeypatch.setattr(cli, "run_session", fake_run_session)
    result = runner.invoke(
        cli.app,
        ["run", "--token", "abc.def.ghi", "--socket-url", "https://api.test", "--headed", "--user-agent", "UA"],
    )

    assert result.exit_code == 0, result.output
    assert "Session finished" in result.output
    assert seen == {"token": "abc.def.ghi", "headless": False, "user_agent": "UA", "socket_url": "https://api.test"}


def test_run_exits_non_zero_when_connect_fails(monkeypatch):
    async def fake_run_session(config, token, headless, user_agent):
        return "connect_failed"

    monkeypatch.setattr(cli, "run_session", fake_run_session)
    result = runner.invoke(cli.app, ["run", "--token", "t"])

    assert result.exit_code == 1
    assert "Session connect_failed" in result.output


def test_token_is_required():
    result = runner.invoke(cli.app, ["run"])
    assert result.exit_code != 0
