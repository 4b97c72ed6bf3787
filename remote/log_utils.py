"""Truncation helpers so large page payloads stay out of the logs."""

from __future__ import annotations

from typing import Any, Optional

from .constants import LogLimits


def truncate(value: Any, max_length: int = LogLimits.MAX_DATA_LENGTH) -> str:
    text = value if isinstance(value, str) else str(value)
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}... ({len(text)} chars)"


def truncate_url(url: Optional[str], max_length: int = LogLimits.MAX_URL_LENGTH) -> str:
    if not url:
        return "nil"
    return truncate(url, max_length)


def truncate_html(html: Optional[str]) -> str:
    if html is None:
        return "nil"
    return truncate(html, LogLimits.MAX_HTML_LENGTH)


def token_preview(token: Optional[str]) -> str:
    if not token:
        return "nil"
    return f"{token[:12]}... ({len(token)} chars)"
