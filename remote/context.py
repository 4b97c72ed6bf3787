"""Per-session runtime state, created on connect and reset on teardown."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from .claims import SessionClaims
from .configuration import AutomationConfiguration
from .models import Command


@dataclass
class SessionContext:
    intent_token: Optional[str] = None
    claims: SessionClaims = field(default_factory=SessionClaims)
    configuration: AutomationConfiguration = field(default_factory=AutomationConfiguration)
    redirect_on_done: bool = True
    session_id: Optional[str] = None

    current_command: Optional[Command] = None
    last_user_action_command: Optional[Command] = None
    last_wait_command: Optional[Command] = None
    last_inject_script_command: Optional[Command] = None

    # Accumulated by ``connection`` events, consumed at success finalization.
    connection_data: Any = None
    connection_id: Optional[str] = None

    finished: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def record_mode(self) -> bool:
        return self.claims.record

    @property
    def screenshots_enabled(self) -> bool:
        return self.claims.screenshots_enabled

    def is_current(self, command_id: str) -> bool:
        return self.current_command is not None and self.current_command.id == command_id

    def reset(self) -> None:
        self.intent_token = None
        self.session_id = None
        self.claims = SessionClaims()
        self.configuration = AutomationConfiguration()
        self.current_command = None
        self.last_user_action_command = None
        self.last_wait_command = None
        self.last_inject_script_command = None
        self.connection_data = None
        self.connection_id = None
