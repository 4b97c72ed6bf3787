"""Wire-level constants shared with the orchestrator."""

from __future__ import annotations


class Surfaces:
    UI = "ui"
    AUTOMATION = "automation"


class Paths:
    CONNECT = "/connect"
    AUTOMATION_CONFIG = "/automation/configuration"
    COMMAND_RESULT = "/automation/command-result"
    SESSION_RECORD = "/automation/session-record"
    BROWSER_STATE = "/automation/browser-state"


class Headers:
    INTENT_TOKEN = "x-intent-token"
    WEBVIEW_USER_AGENT = "x-webview-user-agent"


class Events:
    COMMAND = "command"
    WELCOME = "welcome"
    ERROR = "error"
    CONNECTION = "connection"
    DATA_COMPLETE = "DATA_COMPLETE"
    PROMPT_COMPLETE = "PROMPT_COMPLETE"
    CONNECTION_SUCCESS = "CONNECTION_SUCCESS"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    APP_STATE_UPDATE = "appStateUpdate"
    MODAL_EXIT = "modalExit"


class Defaults:
    BASE_URL = "https://ui.getpassage.ai"
    SOCKET_URL = "https://api.getpassage.ai"
    SOCKET_NAMESPACE = "/ws"
    SOCKET_PATH = "socket.io"
    AGENT_NAME = "passage-python"
    SCREENSHOT_INTERVAL = 5.0
    PAGE_DATA_TIMEOUT = 5.0
    REINJECTION_DELAY = 1.0
    MODAL_EXIT_TIMEOUT = 1.0
    NAVIGATION_TIMEOUT_MS = 15000


class LogLimits:
    MAX_DATA_LENGTH = 1000
    MAX_COOKIE_LENGTH = 200
    MAX_HTML_LENGTH = 500
    MAX_URL_LENGTH = 100


UNSUPPORTED_COMMAND = "unsupported_command"
