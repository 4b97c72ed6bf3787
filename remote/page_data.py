"""Page-data collection: storage, HTML, cookies and an optional screenshot."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlparse

from .configuration import ImageOptimization
from .context import SessionContext
from .engine import BrowserEngine
from .log_utils import truncate_html, truncate_url
from .models import CookieRecord, PageData, parse_storage_items

log = logging.getLogger(__name__)


PAGE_DATA_SCRIPT = """
(() => {
    const readStorage = (storage) => {
        const items = [];
        for (let i = 0; i < storage.length; i++) {
            const key = storage.key(i);
            items.push({ name: key, value: storage.getItem(key) });
        }
        return items;
    };
    return {
        url: window.location.href,
        html: document.documentElement.outerHTML,
        localStorage: readStorage(window.localStorage),
        sessionStorage: readStorage(window.sessionStorage),
    };
})()
"""

SAME_SITE_VALUES = {"strict": "Strict", "lax": "Lax"}


def derive_cookie_domains(url: Optional[str]) -> List[str]:
    """
    Domains whose cookies belong to ``url``: the host, its dotted form and,
    for hosts with more than two labels, the two-label root in both forms.
    """
    if not url:
        return []
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return []
    if not host:
        return []
    domains = [host, "." + host]
    labels = host.split(".")
    if len(labels) > 2:
        root = ".".join(labels[-2:])
        domains.extend([root, "." + root])
    return domains


def cookie_matches_domain(cookie_domain: str, domain: str) -> bool:
    cookie_dotted = cookie_domain if cookie_domain.startswith(".") else "." + cookie_domain
    target = domain if domain.startswith(".") else "." + domain
    return cookie_dotted == target or cookie_dotted.endswith(target)


def normalize_same_site(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value:
        return None
    return SAME_SITE_VALUES.get(value.strip().lower(), "None")


def filter_cookies(cookies: Iterable[dict], domains: Sequence[str]) -> List[CookieRecord]:
    """Cookies matching any of ``domains``, each (name, domain, path) kept once."""
    seen: Set[Tuple[str, str, str]] = set()
    out: List[CookieRecord] = []
    for raw in cookies:
        if not isinstance(raw, dict):
            continue
        cookie_domain = str(raw.get("domain") or "")
        if not cookie_domain:
            continue
        if not any(cookie_matches_domain(cookie_domain, d) for d in domains):
            continue
        key = (str(raw.get("name") or ""), cookie_domain, str(raw.get("path") or ""))
        if key in seen:
            continue
        seen.add(key)
        record = CookieRecord.from_dict(raw)
        out.append(
            CookieRecord(
                name=record.name,
                value=record.value,
                domain=record.domain,
                path=record.path,
                expires=record.expires,
                secure=record.secure,
                http_only=record.http_only,
                same_site=normalize_same_site(raw.get("sameSite")),
            )
        )
    return out


class PageDataCollector:
    """
    Ask the engine to run the collection script and wait for its report.

    Only one report is awaited at a time per caller; concurrent callers each
    get their own future and all of them are resolved by the next report.
    A missing report within ``timeout`` seconds degrades to ``PageData.minimal()``.
    """

    def __init__(
        self,
        engine: BrowserEngine,
        context: SessionContext,
        timeout: float = 5.0,
        optimization: Optional[Callable[[], ImageOptimization]] = None,
        logger: Any = None,
    ):
        self.engine = engine
        self.context = context
        self.timeout = timeout
        self._optimization = optimization or (lambda: self.context.configuration.image_optimization)
        self._waiters: List["asyncio.Future[dict]"] = []
        self.logger = logger or log

    async def collect(self, cookie_domains: Optional[Sequence[str]] = None) -> PageData:
        loop = asyncio.get_running_loop()
        waiter: "asyncio.Future[dict]" = loop.create_future()
        self._waiters.append(waiter)
        self.logger.debug("Collecting page data from automation surface")
        try:
            await self.engine.collect_page_data(PAGE_DATA_SCRIPT)
            raw = await asyncio.wait_for(waiter, timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Page data collection timeout - returning minimal data")
            return PageData.minimal()
        except Exception as e:
            self.logger.error("Page data script failed: %s", e)
            return PageData.minimal()
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

        url = raw.get("url") if isinstance(raw.get("url"), str) else None
        html = raw.get("html") if isinstance(raw.get("html"), str) else None
        cookies = await self.collect_cookies(url, cookie_domains)
        screenshot = await self.collect_screenshot()
        page_data = PageData(
            cookies=cookies,
            local_storage=parse_storage_items(raw.get("localStorage")),
            session_storage=parse_storage_items(raw.get("sessionStorage")),
            html=html,
            url=url,
            screenshot=screenshot,
        )
        self.logger.debug(
            "Page data collected: html=%s, localStorage=%s items, sessionStorage=%s items, "
            "cookies=%s items, screenshot=%s, url=%s",
            truncate_html(html),
            len(page_data.local_storage or []),
            len(page_data.session_storage or []),
            len(cookies),
            f"{len(screenshot)} chars" if screenshot else "nil",
            truncate_url(url),
        )
        return page_data

    def deliver(self, url: Optional[str], html: Optional[str], local_storage: Any, session_storage: Any) -> bool:
        """Resolve pending collections with a script report; False if nobody waits."""
        pending = [w for w in self._waiters if not w.done()]
        if not pending:
            self.logger.debug("Page data arrived with no pending collection, ignoring")
            return False
        payload = {"url": url, "html": html, "localStorage": local_storage, "sessionStorage": session_storage}
        for waiter in pending:
            waiter.set_result(payload)
        return True

    def cookie_domains_for(self, url: Optional[str], explicit: Optional[Sequence[str]] = None) -> List[str]:
        if explicit:
            return list(explicit)
        if self.context.configuration.cookie_domains:
            return list(self.context.configuration.cookie_domains)
        if self.context.claims.cookie_domains:
            return list(self.context.claims.cookie_domains)
        return derive_cookie_domains(url)

    async def collect_cookies(
        self,
        url: Optional[str],
        explicit_domains: Optional[Sequence[str]] = None,
    ) -> List[CookieRecord]:
        domains = self.cookie_domains_for(url, explicit_domains)
        if not domains:
            self.logger.debug("No cookie domains available, returning empty cookie list")
            return []
        try:
            all_cookies = await self.engine.get_cookies()
        except Exception as e:
            self.logger.warning("Cookie store query failed: %s", e)
            return []
        cookies = filter_cookies(all_cookies, domains)
        self.logger.debug("Collected %s cookies for domains %s", len(cookies), domains)
        return cookies

    async def collect_screenshot(self) -> Optional[str]:
        if not self.context.screenshots_enabled:
            return None
        cached = self.engine.current_screenshot()
        if cached:
            return cached
        try:
            return await self.engine.capture_screenshot(
                self._optimization(),
                whole_ui=self.context.record_mode,
            )
        except Exception as e:
            self.logger.warning("On-demand screenshot failed: %s", e)
            return None
