"""Session-scoped configuration fetched once from the orchestrator."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import aiohttp

from .callbacks import invoke_callback
from .config import ClientConfig
from .constants import Headers, Paths
from .log_utils import truncate

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageOptimization:
    """Screenshot reduction parameters."""

    quality: float = 0.6
    max_width: float = 960.0
    max_height: float = 540.0
    format: str = "jpeg"

    @classmethod
    def from_dict(cls, raw: Any) -> "ImageOptimization":
        base = cls()
        if not isinstance(raw, dict):
            return base

        def _num(key: str, default: float) -> float:
            value = raw.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
                return float(value)
            return default

        fmt = str(raw.get("format") or base.format).strip().lower()
        return cls(
            quality=min(1.0, _num("quality", base.quality)),
            max_width=_num("maxWidth", base.max_width),
            max_height=_num("maxHeight", base.max_height),
            format=fmt if fmt in {"jpeg", "jpg", "png"} else base.format,
        )

    @property
    def is_jpeg(self) -> bool:
        return self.format in {"jpeg", "jpg"}

    @property
    def mime_type(self) -> str:
        return "image/jpeg" if self.is_jpeg else "image/png"

    def target_size(self, width: float, height: float) -> Tuple[float, float]:
        """Largest size within the max bounds that keeps the aspect ratio; never upscales."""
        if width <= 0 or height <= 0:
            return width, height
        scale = min(1.0, self.max_width / width, self.max_height / height)
        return width * scale, height * scale


@dataclass(frozen=True)
class AutomationConfiguration:
    cookie_domains: Tuple[str, ...] = ()
    global_javascript: str = ""
    automation_user_agent: str = ""
    integration_url: Optional[str] = None
    image_optimization: ImageOptimization = field(default_factory=ImageOptimization)

    @classmethod
    def from_dict(cls, raw: Any) -> "AutomationConfiguration":
        if not isinstance(raw, dict):
            return cls()
        domains = raw.get("cookieDomains")
        integration = raw.get("integration")
        integration_url = integration.get("url") if isinstance(integration, dict) else None
        global_js = raw.get("globalJavascript")
        user_agent = raw.get("automationUserAgent")
        return cls(
            cookie_domains=tuple(d for d in domains if isinstance(d, str) and d.strip())
            if isinstance(domains, list)
            else (),
            global_javascript=global_js if isinstance(global_js, str) else "",
            automation_user_agent=user_agent if isinstance(user_agent, str) else "",
            integration_url=integration_url if isinstance(integration_url, str) and integration_url else None,
            image_optimization=ImageOptimization.from_dict(raw.get("imageOptimization")),
        )


class ConfigurationFetcher:
    """One-shot GET of the automation configuration; never fatal."""

    def __init__(
        self,
        config: ClientConfig,
        session_factory: Optional[Callable[[], Any]] = None,
        logger: Any = None,
    ):
        self.config = config
        self._session_factory = session_factory or self._default_session
        self.logger = logger or log
        self._on_configuration_updated: Optional[Callable[[str, Optional[str]], Any]] = None

    def set_configuration_callback(self, callback: Optional[Callable[[str, Optional[str]], Any]]) -> None:
        self._on_configuration_updated = callback

    @property
    def url(self) -> str:
        return f"{self.config.socket_url}{Paths.AUTOMATION_CONFIG}"

    async def fetch(self, intent_token: str, detected_user_agent: Optional[str] = None) -> AutomationConfiguration:
        headers: Dict[str, str] = {Headers.INTENT_TOKEN: intent_token}
        if detected_user_agent:
            headers[Headers.WEBVIEW_USER_AGENT] = detected_user_agent

        result = AutomationConfiguration()
        self.logger.info("Fetching configuration from: %s", self.url)
        try:
            async with self._session_factory() as session:
                async with session.get(self.url, headers=headers) as response:
                    body = await response.text()
                    if response.status != 200:
                        self.logger.warning(
                            "Configuration fetch returned status %s: %s",
                            response.status,
                            truncate(body, 500),
                        )
                    else:
                        result = self._parse(body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("Configuration fetch error: %s", e)

        await invoke_callback(
            self._on_configuration_updated,
            result.automation_user_agent,
            result.integration_url,
            logger=self.logger,
        )
        return result

    def _parse(self, body: str) -> AutomationConfiguration:
        try:
            parsed = json.loads(body)
        except ValueError as e:
            self.logger.error("Configuration JSON parsing error: %s", e)
            return AutomationConfiguration()
        if not isinstance(parsed, dict):
            self.logger.error("Configuration payload is not an object")
            return AutomationConfiguration()

        result = AutomationConfiguration.from_dict(parsed)
        self.logger.info(
            "Configuration parsed: %s cookie domains, global JS %s chars, user agent %s, integration URL %s",
            len(result.cookie_domains),
            len(result.global_javascript),
            f"provided ({len(result.automation_user_agent)} chars)" if result.automation_user_agent else "empty",
            result.integration_url or "none",
        )
        return result

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.http_timeout))
