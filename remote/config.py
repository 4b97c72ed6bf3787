"""Client configuration for the remote-control session."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .constants import Defaults

ENV_PREFIX = "PASSAGE_"


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client-level configuration."""

    base_url: str = Defaults.BASE_URL
    socket_url: str = Defaults.SOCKET_URL
    socket_namespace: str = Defaults.SOCKET_NAMESPACE
    socket_path: str = Defaults.SOCKET_PATH
    agent_name: str = Defaults.AGENT_NAME
    debug: bool = False
    redirect_on_done: bool = True
    reconnect_attempts: int = 5
    reconnect_delay: float = 2.0
    reconnect_delay_max: float = 10.0
    randomization_factor: float = 0.0
    page_data_timeout: float = Defaults.PAGE_DATA_TIMEOUT
    reinjection_delay: float = Defaults.REINJECTION_DELAY
    modal_exit_timeout: float = Defaults.MODAL_EXIT_TIMEOUT
    navigation_timeout_ms: int = Defaults.NAVIGATION_TIMEOUT_MS
    http_timeout: float = 30.0
    journal_path: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ClientConfig":
        """Normalize a loose config mapping, keeping defaults for bad values."""
        p: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
        base = cls()
        return cls(
            base_url=_str(p.get("base_url"), base.base_url).rstrip("/"),
            socket_url=_str(p.get("socket_url"), base.socket_url).rstrip("/"),
            socket_namespace=_namespace(p.get("socket_namespace"), base.socket_namespace),
            socket_path=_str(p.get("socket_path"), base.socket_path).strip("/"),
            agent_name=_str(p.get("agent_name"), base.agent_name),
            debug=_bool(p.get("debug"), base.debug),
            redirect_on_done=_bool(p.get("redirect_on_done"), base.redirect_on_done),
            reconnect_attempts=max(0, int(_num(p.get("reconnect_attempts"), base.reconnect_attempts))),
            reconnect_delay=max(0.0, _num(p.get("reconnect_delay"), base.reconnect_delay)),
            reconnect_delay_max=max(0.0, _num(p.get("reconnect_delay_max"), base.reconnect_delay_max)),
            randomization_factor=min(1.0, max(0.0, _num(p.get("randomization_factor"), base.randomization_factor))),
            page_data_timeout=_positive(p.get("page_data_timeout"), base.page_data_timeout),
            reinjection_delay=max(0.0, _num(p.get("reinjection_delay"), base.reinjection_delay)),
            modal_exit_timeout=_positive(p.get("modal_exit_timeout"), base.modal_exit_timeout),
            navigation_timeout_ms=int(_positive(p.get("navigation_timeout_ms"), base.navigation_timeout_ms)),
            http_timeout=_positive(p.get("http_timeout"), base.http_timeout),
            journal_path=(str(p.get("journal_path")).strip() or None) if p.get("journal_path") else None,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "ClientConfig":
        """Read ``PASSAGE_*`` variables, then apply non-None keyword overrides."""
        env = os.environ if environ is None else environ
        payload: Dict[str, Any] = {}
        for name in cls.__dataclass_fields__:
            value = env.get(ENV_PREFIX + name.upper())
            if value is not None:
                payload[name] = value
        payload.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(payload)


def _str(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


def _bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _num(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return float(default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _positive(value: Any, default: float) -> float:
    num = _num(value, default)
    return num if num > 0 else float(default)


def _namespace(value: Any, default: str) -> str:
    text = _str(value, default)
    return text if text.startswith("/") else "/" + text
