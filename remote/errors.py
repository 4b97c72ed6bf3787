"""Exceptions raised while decoding remote-control traffic."""

from __future__ import annotations

from typing import Optional


class RemoteControlError(Exception):
    """Base error for the remote-control core."""


class CommandDecodeError(RemoteControlError):
    """Inbound command payload is structurally unusable."""

    def __init__(self, message: str, command_id: Optional[str] = None):
        super().__init__(message)
        self.command_id = command_id


class UnsupportedCommandError(CommandDecodeError):
    """Inbound command carries a type this client does not execute."""

    def __init__(self, command_type: str, command_id: Optional[str] = None):
        super().__init__(f"Unsupported command type: {command_type}", command_id=command_id)
        self.command_type = command_type
