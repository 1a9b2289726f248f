"""
User-facing error text.

Everything persisted on an entry (and shown in notifications) goes through
`user_message`: short, non-technical, no stack traces or URLs.
"""
from __future__ import annotations

from typing import Any

import httpx

from outbox.core.errors import AuthenticationError, ServerRejection, TransportError

MAX_MESSAGE_CHARS = 120
MAX_SERVER_MESSAGE_CHARS = 150

GENERIC_MESSAGE = "An unexpected error occurred"

# Keys servers commonly use for a human readable error
SERVER_MESSAGE_KEYS = (
    "message", "error", "error_description", "errorMessage",
    "detail", "details", "title", "msg",
)

STATUS_MESSAGES: dict[int, str] = {
    401: "Unauthorised, please log in again",
    403: "Access denied, insufficient permissions",
    408: "Request timeout",
    429: "Too many requests, please wait before retrying",
    500: "Internal server error, please try again later",
    502: "Bad gateway, please try again later",
    503: "Service unavailable, please try again later",
    504: "Gateway timeout, please try again later",
}

# Server message wins over these when the body carries one
STATUS_FALLBACKS: dict[int, str] = {
    400: "Bad request, please check your data",
    404: "Resource not found on server",
    409: "Conflict, record may already exist",
    422: "Validation error, check your input",
}

TRANSPORT_MESSAGES: dict[str, str] = {
    "timeout": "Connection timed out, check your internet connection",
    "connect": "Cannot reach server",
    "protocol": "Connection was closed unexpectedly",
}


def extract_server_message(body: Any) -> str | None:
    if body is None:
        return None
    if isinstance(body, str):
        text = body.strip()
        if not text:
            return None
        if len(text) > MAX_SERVER_MESSAGE_CHARS:
            return text[: MAX_SERVER_MESSAGE_CHARS - 3] + "..."
        return text
    if isinstance(body, dict):
        for key in SERVER_MESSAGE_KEYS:
            val = body.get(key)
            if isinstance(val, str) and val:
                return extract_server_message(val)
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            return extract_server_message(str(errors[0]))
    return None


def status_message(status_code: int, body: Any = None) -> str:
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]

    server_msg = extract_server_message(body)
    if server_msg:
        return server_msg
    if status_code in STATUS_FALLBACKS:
        return STATUS_FALLBACKS[status_code]
    if 400 <= status_code < 500:
        return f"Client error ({status_code})"
    if status_code >= 500:
        return f"Server error ({status_code})"
    return "Unexpected server response"


def _transport_message(e: TransportError) -> str:
    if e.kind in TRANSPORT_MESSAGES:
        return TRANSPORT_MESSAGES[e.kind]

    raw = str(e).lower()
    if "name or service not known" in raw or "nodename nor servname" in raw or "getaddrinfo" in raw:
        return "No internet connection"
    if "network is unreachable" in raw:
        return "Network unavailable"
    if "ssl" in raw or "certificate" in raw:
        return "SSL / security error"
    return "Network error, check your connection"


def _clean(message: str) -> str:
    for prefix in ("Exception: ", "Error: "):
        if message.startswith(prefix):
            message = message[len(prefix):]
    message = message.strip()
    if ", url=" in message:
        message = message.split(", url=")[0]
    if len(message) > MAX_MESSAGE_CHARS:
        return "An error occurred, please try again"
    if not message:
        return GENERIC_MESSAGE
    return message


def user_message(error: Any) -> str:
    """Concise, non-technical text for any caught error (or a bare status code)."""
    if isinstance(error, int) and not isinstance(error, bool):
        return status_message(error)
    if isinstance(error, ServerRejection):
        return status_message(error.status_code, error.body)
    if isinstance(error, TransportError):
        return _transport_message(error)
    if isinstance(error, httpx.TimeoutException):
        return TRANSPORT_MESSAGES["timeout"]
    if isinstance(error, httpx.ConnectError):
        return TRANSPORT_MESSAGES["connect"]
    if isinstance(error, httpx.RequestError):
        return "Network error, check your connection"
    if isinstance(error, AuthenticationError):
        return "Not signed in, please log in again"
    if isinstance(error, ValueError):
        return "Invalid response format from server"
    if isinstance(error, TimeoutError):
        return "Request timed out, please try again"
    if isinstance(error, Exception):
        # Internal errors can carry paths or reprs; never persist them verbatim.
        return GENERIC_MESSAGE
    return _clean(str(error))
