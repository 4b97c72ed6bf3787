"""Playwright browser engine for remote-controlled sessions."""

from .engine import PlaywrightBrowserEngine
from .event_logger import SessionEventLogger
from .models import AUTOMATION_SURFACE, UI_SURFACE, EngineConfig, EngineState
from .session import BrowserSessionManager

__all__ = [
    "AUTOMATION_SURFACE",
    "BrowserSessionManager",
    "EngineConfig",
    "EngineState",
    "PlaywrightBrowserEngine",
    "SessionEventLogger",
    "UI_SURFACE",
]
