"""Session-token claim decoding (payload parsing only, no signature check)."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .constants import Defaults

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    """Control flags carried by the session token. Missing means disabled."""

    record: bool = False
    capture_screenshot: bool = False
    capture_screenshot_interval: float = Defaults.SCREENSHOT_INTERVAL
    cookie_domains: Optional[Tuple[str, ...]] = None
    clear_all_cookies: bool = False

    @property
    def screenshots_enabled(self) -> bool:
        return self.record or self.capture_screenshot


def add_padding(segment: str) -> str:
    remainder = len(segment) % 4
    if remainder:
        return segment + "=" * (4 - remainder)
    return segment


def decode_token_payload(token: Any) -> Dict[str, Any]:
    """Return the JSON object in the middle token segment, or ``{}``."""
    if not isinstance(token, str):
        return {}
    parts = token.split(".")
    if len(parts) != 3:
        return {}
    try:
        raw = base64.urlsafe_b64decode(add_padding(parts[1]))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        log.debug("Failed to decode session token payload: %s", e)
        return {}
    return payload if isinstance(payload, dict) else {}


def decode_session_claims(token: Any) -> SessionClaims:
    """Decode claims; every malformed field falls back to its default."""
    payload = decode_token_payload(token)

    interval = payload.get("captureScreenshotInterval")
    interval_val = Defaults.SCREENSHOT_INTERVAL
    if isinstance(interval, (int, float)) and not isinstance(interval, bool) and interval > 0:
        interval_val = float(interval)

    domains = payload.get("cookieDomains")
    cookie_domains = None
    if isinstance(domains, list):
        cookie_domains = tuple(d for d in domains if isinstance(d, str) and d.strip())

    return SessionClaims(
        record=payload.get("record") is True,
        capture_screenshot=payload.get("captureScreenshot") is True,
        capture_screenshot_interval=interval_val,
        cookie_domains=cookie_domains,
        clear_all_cookies=payload.get("clearAllCookies") is True,
    )
