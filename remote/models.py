"""Protocol models exchanged with the orchestrator."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import CommandDecodeError, UnsupportedCommandError


class CommandType(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    INPUT = "input"
    WAIT = "wait"
    INJECT_SCRIPT = "injectScript"
    DONE = "done"


SCRIPT_COMMAND_TYPES = frozenset(
    {CommandType.CLICK, CommandType.INPUT, CommandType.WAIT, CommandType.INJECT_SCRIPT}
)


class NavigationType(str, Enum):
    NAVIGATION_START = "navigationStart"
    NAVIGATION_END = "navigationEnd"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class SuccessUrlRule:
    """URL pattern that marks a checkpoint in the remote flow."""

    url_pattern: str
    navigation_type: NavigationType = NavigationType.NAVIGATION_END

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["SuccessUrlRule"]:
        if not isinstance(raw, dict):
            return None
        pattern = raw.get("urlPattern")
        if not isinstance(pattern, str) or not pattern.strip():
            return None
        try:
            nav_type = NavigationType(str(raw.get("navigationType") or "navigationEnd"))
        except ValueError:
            nav_type = NavigationType.NAVIGATION_END
        return cls(url_pattern=pattern.strip(), navigation_type=nav_type)

    def to_dict(self) -> Dict[str, Any]:
        return {"urlPattern": self.url_pattern, "navigationType": self.navigation_type.value}


@dataclass(frozen=True)
class Command:
    """Immutable command received from the orchestrator."""

    id: str
    type: CommandType
    args: Dict[str, Any] = field(default_factory=dict)
    inject_script: Optional[str] = None
    cookie_domains: Optional[Tuple[str, ...]] = None
    user_action_required: bool = False


@dataclass(frozen=True)
class NavigateCommand(Command):
    url: Optional[str] = None
    success_urls: Optional[Tuple[SuccessUrlRule, ...]] = None


@dataclass(frozen=True)
class ScriptCommand(Command):
    """click / input / wait / injectScript: all carry a script to run."""


@dataclass(frozen=True)
class DoneCommand(Command):
    success: bool = True
    data: Any = None


def decode_command(payload: Any) -> Command:
    """
    Validate an inbound ``command`` event payload and build its typed command.

    Raises:
        CommandDecodeError: payload has no usable id or type.
        UnsupportedCommandError: type is not one of the known command kinds.
    """
    if not isinstance(payload, dict):
        raise CommandDecodeError("Command payload must be an object")

    command_id = payload.get("id")
    if not isinstance(command_id, str) or not command_id:
        raise CommandDecodeError("Missing command ID")

    type_raw = payload.get("type")
    if not isinstance(type_raw, str) or not type_raw:
        raise CommandDecodeError("Missing command type", command_id=command_id)
    try:
        command_type = CommandType(type_raw)
    except ValueError:
        raise UnsupportedCommandError(type_raw, command_id=command_id) from None

    args = payload.get("args") if isinstance(payload.get("args"), dict) else {}
    script = payload.get("injectScript")
    domains_raw = payload.get("cookieDomains")
    cookie_domains = None
    if isinstance(domains_raw, list):
        cookie_domains = tuple(str(d) for d in domains_raw if isinstance(d, str) and d.strip())

    common: Dict[str, Any] = {
        "id": command_id,
        "type": command_type,
        "args": dict(args),
        "inject_script": script if isinstance(script, str) else None,
        "cookie_domains": cookie_domains,
        "user_action_required": payload.get("userActionRequired") is True,
    }

    if command_type == CommandType.NAVIGATE:
        url = args.get("url")
        rules_raw = args.get("successUrls")
        rules: Optional[Tuple[SuccessUrlRule, ...]] = None
        if isinstance(rules_raw, list):
            parsed = (SuccessUrlRule.from_dict(r) for r in rules_raw)
            rules = tuple(r for r in parsed if r is not None)
        return NavigateCommand(
            url=url.strip() if isinstance(url, str) and url.strip() else None,
            success_urls=rules,
            **common,
        )
    if command_type == CommandType.DONE:
        success = args.get("success")
        return DoneCommand(
            success=success if isinstance(success, bool) else True,
            data=args.get("data"),
            **common,
        )
    return ScriptCommand(**common)


@dataclass(frozen=True)
class CookieRecord:
    name: str
    value: str
    domain: str
    path: Optional[str] = None
    expires: Optional[float] = None
    secure: Optional[bool] = None
    http_only: Optional[bool] = None
    same_site: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CookieRecord":
        """Build from a wire dict or a Playwright cookie (same camelCase keys)."""
        expires = raw.get("expires")
        try:
            expires_val = float(expires) if expires is not None else None
        except (TypeError, ValueError):
            expires_val = None
        # Playwright marks session cookies with expires == -1.
        if expires_val is not None and expires_val < 0:
            expires_val = None
        return cls(
            name=str(raw.get("name") or ""),
            value=str(raw.get("value") or ""),
            domain=str(raw.get("domain") or ""),
            path=raw.get("path") if isinstance(raw.get("path"), str) else None,
            expires=expires_val,
            secure=raw.get("secure") if isinstance(raw.get("secure"), bool) else None,
            http_only=raw.get("httpOnly") if isinstance(raw.get("httpOnly"), bool) else None,
            same_site=raw.get("sameSite") if isinstance(raw.get("sameSite"), str) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "expires": self.expires,
            "secure": self.secure,
            "httpOnly": self.http_only,
            "sameSite": self.same_site,
        }


@dataclass(frozen=True)
class StorageItem:
    name: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


def parse_storage_items(items: Any) -> List[StorageItem]:
    """Keep only well-formed ``{name, value}`` string pairs."""
    if not isinstance(items, list):
        return []
    out: List[StorageItem] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        value = item.get("value")
        if isinstance(name, str) and isinstance(value, str):
            out.append(StorageItem(name=name, value=value))
    return out


@dataclass
class PageData:
    """Snapshot of the automation surface attached to a command result."""

    cookies: Optional[List[CookieRecord]] = None
    local_storage: Optional[List[StorageItem]] = None
    session_storage: Optional[List[StorageItem]] = None
    html: Optional[str] = None
    url: Optional[str] = None
    screenshot: Optional[str] = None

    @classmethod
    def minimal(cls) -> "PageData":
        return cls(cookies=[], local_storage=[], session_storage=[], html=None, url=None, screenshot=None)

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["PageData"]:
        if not isinstance(raw, dict):
            return None
        cookies_raw = raw.get("cookies")
        return cls(
            cookies=[CookieRecord.from_dict(c) for c in cookies_raw if isinstance(c, dict)]
            if isinstance(cookies_raw, list)
            else None,
            local_storage=parse_storage_items(raw.get("localStorage"))
            if isinstance(raw.get("localStorage"), list)
            else None,
            session_storage=parse_storage_items(raw.get("sessionStorage"))
            if isinstance(raw.get("sessionStorage"), list)
            else None,
            html=raw.get("html") if isinstance(raw.get("html"), str) else None,
            url=raw.get("url") if isinstance(raw.get("url"), str) else None,
            screenshot=raw.get("screenshot") if isinstance(raw.get("screenshot"), str) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cookies": [c.to_dict() for c in self.cookies] if self.cookies is not None else None,
            "localStorage": [s.to_dict() for s in self.local_storage]
            if self.local_storage is not None
            else None,
            "sessionStorage": [s.to_dict() for s in self.session_storage]
            if self.session_storage is not None
            else None,
            "html": self.html,
            "url": self.url,
            "screenshot": self.screenshot,
        }


@dataclass
class CommandResult:
    """Outcome of one command, delivered at least once per command id."""

    id: str
    status: ResultStatus
    data: Any = None
    page_data: Optional[PageData] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success(cls, command_id: str, data: Any = None, page_data: Optional[PageData] = None) -> "CommandResult":
        return cls(id=command_id, status=ResultStatus.SUCCESS, data=data, page_data=page_data)

    @classmethod
    def failure(cls, command_id: str, error: str, error_type: Optional[str] = None) -> "CommandResult":
        return cls(id=command_id, status=ResultStatus.ERROR, error=error, error_type=error_type)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "data": self.data,
            "pageData": self.page_data.to_dict() if self.page_data is not None else None,
            "error": self.error,
        }
        if self.error_type is not None:
            out["errorType"] = self.error_type
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CommandResult":
        return cls(
            id=str(raw.get("id") or ""),
            status=ResultStatus(str(raw.get("status") or "error")),
            data=raw.get("data"),
            page_data=PageData.from_dict(raw.get("pageData")),
            error=raw.get("error") if isinstance(raw.get("error"), str) else None,
            error_type=raw.get("errorType") if isinstance(raw.get("errorType"), str) else None,
        )

    @classmethod
    def from_json(cls, text: str) -> "CommandResult":
        return cls.from_dict(json.loads(text))


@dataclass(frozen=True)
class HistoryItem:
    structured_data: Any = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SuccessData:
    history: List[HistoryItem]
    connection_id: str


@dataclass(frozen=True)
class ErrorData:
    error: str
    data: Any = None


@dataclass(frozen=True)
class DataResult:
    data: Any = None
    prompts: Optional[List[Dict[str, Any]]] = None


@dataclass(frozen=True)
class PromptResponse:
    key: str
    value: str
    response: Any = None


def parse_history(data: Any) -> List[HistoryItem]:
    """
    Convert a done-command payload into ordered history items.

    Accepts ``{"history": [...]}`` or one level of wrapping, either
    ``{"history": {"history": [...]}}`` or ``{"data": {"history": [...]}}``.
    """
    if not isinstance(data, dict):
        return []
    history = data.get("history")
    if isinstance(history, dict):
        history = history.get("history")
    if history is None and isinstance(data.get("data"), dict):
        history = data["data"].get("history")
    if not isinstance(history, list):
        return []

    items: List[HistoryItem] = []
    for entry in history:
        if not isinstance(entry, dict):
            continue
        additional = dict(entry)
        structured = additional.pop("structuredData", None)
        items.append(HistoryItem(structured_data=structured, additional_data=additional))
    return items
