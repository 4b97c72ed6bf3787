"""Success-URL checkpoint detection."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional
from urllib.parse import urlparse

from .log_utils import truncate_url
from .models import NavigationType, SuccessUrlRule
from .surface import SurfaceCoordinator

log = logging.getLogger(__name__)

_BOUNDARIES = ("/", "?", "#")


def _host(url: str) -> str:
    try:
        return urlparse(url).netloc
    except ValueError:
        return ""


def _prefix_matches(url: str, prefix: str) -> bool:
    # https://x.com must not cover https://x.com.evil.io
    if not prefix or not url.startswith(prefix):
        return False
    if len(url) == len(prefix) or prefix.endswith(_BOUNDARIES):
        return True
    if url[len(prefix)] in _BOUNDARIES:
        return True
    return bool(_host(prefix)) and _host(url) == _host(prefix)


def url_matches_pattern(url: str, pattern: str) -> bool:
    """
    Match in priority order: exact, ``*`` wildcard prefix, literal prefix,
    then same host. Prefix matches must end at a path, query or fragment
    boundary, or stay on the pattern's host.
    """
    if not url or not pattern:
        return False
    if url == pattern:
        return True
    if "*" in pattern:
        if _prefix_matches(url, pattern.replace("*", "")):
            return True
    elif _prefix_matches(url, pattern):
        return True
    url_host = _host(url)
    return bool(url_host) and url_host == _host(pattern)


class SuccessUrlMatcher:
    """Holds the rule set of the latest navigate command."""

    def __init__(self, surfaces: SurfaceCoordinator, logger: Any = None):
        self.surfaces = surfaces
        self.rules: List[SuccessUrlRule] = []
        self.last_match: Optional[SuccessUrlRule] = None
        self.logger = logger or log

    def set_rules(self, rules: Optional[Iterable[SuccessUrlRule]]) -> None:
        """Replace the rule set; ``None`` clears it."""
        self.rules = list(rules or [])
        self.last_match = None
        self.logger.debug("Success URL rules set: %s", [r.url_pattern for r in self.rules])

    def clear(self) -> None:
        self.set_rules(None)

    def find_match(self, url: str, navigation_type: NavigationType) -> Optional[SuccessUrlRule]:
        for rule in self.rules:
            if rule.navigation_type != navigation_type:
                continue
            if url_matches_pattern(url, rule.url_pattern):
                return rule
        return None

    async def evaluate(self, url: str, navigation_type: NavigationType) -> Optional[SuccessUrlRule]:
        rule = self.find_match(url, navigation_type)
        if rule is None:
            return None
        self.logger.info(
            "Success URL matched on %s: %s (pattern %s)",
            navigation_type.value,
            truncate_url(url),
            rule.url_pattern,
        )
        self.last_match = rule
        await self.surfaces.show_primary()
        return rule
