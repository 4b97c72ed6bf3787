"""Remote command protocol core."""

from .callbacks import HostCallbacks
from .claims import SessionClaims, decode_session_claims
from .config import ClientConfig
from .configuration import AutomationConfiguration, ImageOptimization
from .engine import BrowserEngine, EngineListener
from .errors import CommandDecodeError, RemoteControlError, UnsupportedCommandError
from .models import Command, CommandResult, PageData, SuccessUrlRule, decode_command

__all__ = [
    "AutomationConfiguration",
    "BrowserEngine",
    "ClientConfig",
    "Command",
    "CommandDecodeError",
    "CommandResult",
    "EngineListener",
    "HostCallbacks",
    "ImageOptimization",
    "PageData",
    "RemoteControlError",
    "SessionClaims",
    "SuccessUrlRule",
    "UnsupportedCommandError",
    "decode_command",
    "decode_session_claims",
]
