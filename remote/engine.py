"""Browser-engine collaborator interface consumed by the remote-control core."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .configuration import ImageOptimization


class EngineListener(ABC):
    """Inbound signals the engine reports back into the core."""

    @abstractmethod
    async def navigation_started(self, url: str, surface: str) -> None:
        """A main-frame navigation began on ``surface``."""

    @abstractmethod
    async def navigation_completed(self, url: str, surface: str) -> None:
        """A main-frame navigation finished loading on ``surface``."""

    @abstractmethod
    async def navigation_failed(self, url: str, error: str, surface: str) -> None:
        """A navigation could not be completed."""

    @abstractmethod
    async def script_execution_result(
        self,
        command_id: str,
        success: bool,
        result: Any = None,
        error: Optional[str] = None,
    ) -> None:
        """A script injected for ``command_id`` finished."""

    @abstractmethod
    async def page_data_collected(
        self,
        url: Optional[str],
        html: Optional[str],
        local_storage: Any,
        session_storage: Any,
    ) -> None:
        """The page-data collection script reported its result."""

    @abstractmethod
    async def handle_surface_message(self, message: Dict[str, Any]) -> None:
        """A page script posted a message through the bridge."""


class BrowserEngine(ABC):
    """Directives the core emits; implemented by the host browser layer."""

    @abstractmethod
    def bind(self, listener: Optional[EngineListener]) -> None:
        """Attach the listener that receives inbound signals."""

    @abstractmethod
    async def apply_configuration(
        self,
        user_agent: str,
        integration_url: Optional[str],
        global_javascript: str,
    ) -> None:
        """Configure the engine before the first automation navigation."""

    @abstractmethod
    async def navigate_in_automation(self, url: str) -> None:
        """Load ``url`` in the automation surface."""

    @abstractmethod
    async def navigate_in_primary(self, url: str) -> None:
        """Load ``url`` in the user-facing surface."""

    @abstractmethod
    async def inject_script(self, script: str, command_id: str, command_type: str) -> None:
        """Run ``script`` in the automation surface for ``command_id``."""

    @abstractmethod
    async def show_automation_surface(self) -> None:
        """Make the automation surface visible."""

    @abstractmethod
    async def show_primary_surface(self, lock: bool = False) -> None:
        """Make the user-facing surface visible."""

    @abstractmethod
    async def collect_page_data(self, script: str) -> None:
        """Run the page-data script; the result arrives via ``page_data_collected``."""

    @abstractmethod
    async def get_cookies(self) -> List[Dict[str, Any]]:
        """Return every cookie in the engine's persistent store."""

    @abstractmethod
    async def clear_cookies(self) -> None:
        """Drop every cookie in the engine's persistent store."""

    @abstractmethod
    async def current_url(self, surface: str) -> Optional[str]:
        """Return the URL currently loaded in ``surface``."""

    @abstractmethod
    async def capture_screenshot(
        self,
        optimization: ImageOptimization,
        whole_ui: bool = False,
    ) -> Optional[str]:
        """Capture a fresh, optimized screenshot as a data URI."""

    @abstractmethod
    def current_screenshot(self) -> Optional[str]:
        """Return the most recent cached screenshot, if any."""

    async def detected_user_agent(self) -> Optional[str]:
        """User agent the rendering engine reports, when it can tell."""
        return None
