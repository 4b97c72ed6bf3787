"""Shared models for the Playwright browser engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

UI_SURFACE = "ui"
AUTOMATION_SURFACE = "automation"


@dataclass(frozen=True)
class EngineConfig:
    """Immutable browser-level configuration."""

    headless: bool = True
    user_agent: Optional[str] = None
    navigation_timeout_ms: int = 15000
    viewport_width: int = 1280
    viewport_height: int = 720
    launch_args: Tuple[str, ...] = ("--no-sandbox", "--disable-dev-shm-usage")


@dataclass
class EngineState:
    """Mutable runtime state for a started browser."""

    active: bool = False
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    playwright: Any = None
    browser: Any = None
    browser_context: Any = None
    pages: Dict[str, Any] = field(default_factory=dict)
    visible_surface: str = UI_SURFACE
    current_screenshot: Optional[str] = None
    previous_screenshot: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def remember_screenshot(self, screenshot: Optional[str]) -> None:
        if not screenshot:
            return
        self.previous_screenshot = self.current_screenshot
        self.current_screenshot = screenshot
