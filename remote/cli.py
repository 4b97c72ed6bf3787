"""Command line entry point: drive one remote-control session in Chromium."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from browser.engine import PlaywrightBrowserEngine
from browser.event_logger import SessionEventLogger
from browser.models import EngineConfig
from remote_control import RemoteControlSession

from .config import ClientConfig

app = typer.Typer(add_completion=False, help="Run a remotely controlled browser session.")

log = logging.getLogger("remote.cli")


@app.callback()
def main() -> None:
    """Remote browser-automation client."""


def build_config(
    socket_url: Optional[str] = None,
    base_url: Optional[str] = None,
    debug: bool = False,
    journal: Optional[Path] = None,
) -> ClientConfig:
    """Environment first, explicit options override."""
    return ClientConfig.from_env(
        socket_url=socket_url,
        base_url=base_url,
        debug=True if debug else None,
        journal_path=str(journal) if journal else None,
    )


async def run_session(config: ClientConfig, token: str, headless: bool, user_agent: Optional[str]) -> str:
    engine = PlaywrightBrowserEngine(
        EngineConfig(
            headless=headless,
            user_agent=user_agent,
            navigation_timeout_ms=config.navigation_timeout_ms,
        )
    )
    journal = SessionEventLogger(Path(config.journal_path)) if config.journal_path else None
    session = RemoteControlSession(engine, config=config, journal=journal)
    status = "finished"
    await engine.start()
    try:
        connected = await session.start(token)
        if not connected:
            status = "connect_failed"
            return status
        await session.wait_finished()
    except asyncio.CancelledError:
        status = "interrupted"
        raise
    finally:
        await session.stop(status=status)
        await engine.shutdown()
        if journal is not None:
            journal.close()
    return status


@app.command()
def run(
    token: str = typer.Option(..., "--token", help="Session (intent) token."),
    socket_url: Optional[str] = typer.Option(None, "--socket-url"),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    headless: bool = typer.Option(True, "--headless/--headed"),
    debug: bool = typer.Option(False, "--debug"),
    journal: Optional[Path] = typer.Option(None, "--journal", help="SQLite activity journal path."),
    user_agent: Optional[str] = typer.Option(None, "--user-agent"),
) -> None:
    config = build_config(socket_url=socket_url, base_url=base_url, debug=debug, journal=journal)
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        status = asyncio.run(run_session(config, token, headless, user_agent))
    except KeyboardInterrupt:
        log.info("Interrupted")
        raise typer.Exit(code=130)
    typer.echo(f"Session {status}")
    if status != "finished":
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
