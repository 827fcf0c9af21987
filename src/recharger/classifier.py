# ABOUTME: Classifies Recharge API failures into domain errors
# ABOUTME: Decides which failures signal an expired session and which propagate

import json
import logging
import re
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from recharger.exceptions import (
    APIError,
    PermissionDeniedError,
    RechargerError,
    RedirectError,
    SessionExpiredError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)

FORBIDDEN_EXPIRY_KEYWORDS = ("session", "token", "expired", "invalid", "unauthorized")
UNPROCESSABLE_EXPIRY_KEYWORDS = ("token", "session", "expired")

# Longest response excerpt kept in error details
SNIPPET_LIMIT = 500

_SENSITIVE_PATTERNS = [
    (re.compile(r"X-Recharge-Access-Token[:\s=]+[a-zA-Z0-9_.-]+", re.IGNORECASE), "X-Recharge-Access-Token: ***"),
    (re.compile(r"Bearer\s+[a-zA-Z0-9_.-]+", re.IGNORECASE), "Bearer ***"),
    (re.compile(r"token[s]?[:\s=]+[a-zA-Z0-9_.-]+", re.IGNORECASE), "token=***"),
    (re.compile(r"key[s]?[:\s=]+[a-zA-Z0-9_.-]+", re.IGNORECASE), "key=***"),
    (re.compile(r"password[s]?[:\s=]+\S+", re.IGNORECASE), "password=***"),
    (re.compile(r"secret[s]?[:\s=]+\S+", re.IGNORECASE), "secret=***"),
]


class FailureKind(str, Enum):
    SESSION_EXPIRED = "session_expired"
    PERMISSION = "permission"
    VALIDATION = "validation"
    REDIRECT = "redirect"
    API = "api"


class Classification(BaseModel):
    """Verdict for a failed response: what kind of failure, and the error to raise."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: FailureKind
    error: RechargerError

    @property
    def is_session_expired(self) -> bool:
        return self.kind is FailureKind.SESSION_EXPIRED


def sanitize_error_message(message: Any) -> str:
    """Mask credentials that may appear in error text."""
    if not isinstance(message, str):
        return "Invalid error message format"
    for pattern, replacement in _SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def _stringify(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, default=str)


def extract_error_message(data: Any, status: int | None = None) -> str:
    """
    Pull the most useful message out of a Recharge error body.

    Priority: message, error, errors (first entry), error_description.
    """
    if isinstance(data, dict):
        if data.get("message"):
            return _stringify(data["message"])
        if data.get("error"):
            return _stringify(data["error"])
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict) and first.get("message"):
                return _stringify(first["message"])
            return _stringify(first)
        if isinstance(errors, dict) and errors:
            return _stringify(errors)
        if isinstance(errors, str) and errors:
            return errors
        if data.get("error_description"):
            return _stringify(data["error_description"])
    if status:
        return f"HTTP {status} Error"
    return "Unknown API error"


def is_session_expired(status: int | None, message: str | None) -> bool:
    """
    Decide whether a failed response means the session token expired.

    401 always does. 403 and 422 only when the message mentions the session,
    since both statuses are also used for ordinary permission and validation
    failures.
    """
    text = (message or "").lower()
    if status == 401:
        return True
    if status == 403:
        return any(keyword in text for keyword in FORBIDDEN_EXPIRY_KEYWORDS)
    if status == 422:
        return any(keyword in text for keyword in UNPROCESSABLE_EXPIRY_KEYWORDS)
    return False


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _snippet(data: Any) -> str | None:
    if data is None:
        return None
    return sanitize_error_message(_stringify(data)[:SNIPPET_LIMIT])


def classify_response(response: httpx.Response, method: str, path: str) -> Classification:
    """
    Turn a non-success response into a Classification.

    Args:
        response: The failed HTTP response
        method: Request method, for diagnostics
        path: Request path (no host, no credentials), for diagnostics
    """
    status = response.status_code

    if response.is_redirect:
        location = response.headers.get("location")
        details = {"method": method, "path": path, "location": location}
        logger.debug(f"Redirect from {method} {path} to {location}")
        return Classification(
            kind=FailureKind.REDIRECT,
            error=RedirectError(
                f"API returned redirect ({status}). This usually indicates incorrect "
                "endpoint or authentication issues.",
                status_code=status,
                error_code="REDIRECT_ERROR",
                details=details,
            ),
        )

    data = _decode_body(response)
    message = extract_error_message(data, status)
    error_code = data.get("error_code") if isinstance(data, dict) else None
    details = {"method": method, "path": path, "response": _snippet(data)}
    kwargs = {"status_code": status, "error_code": error_code, "details": details}

    if is_session_expired(status, message):
        return Classification(
            kind=FailureKind.SESSION_EXPIRED, error=SessionExpiredError(message, **kwargs)
        )
    if status == 403:
        return Classification(
            kind=FailureKind.PERMISSION, error=PermissionDeniedError(message, **kwargs)
        )
    if status == 422:
        return Classification(kind=FailureKind.VALIDATION, error=ValidationError(message, **kwargs))

    logger.debug(f"API error {status} for {method} {path}: {message}")
    return Classification(kind=FailureKind.API, error=APIError(message, **kwargs))


def classify_transport_error(exc: httpx.TransportError, method: str, path: str) -> TransportError:
    """Map a request that got no response to a TransportError."""
    timeout = isinstance(exc, httpx.TimeoutException)
    message = (
        "Request timeout - the server took too long to respond"
        if timeout
        else "Network error: No response received from server"
    )
    return TransportError(
        message,
        timeout=timeout,
        details={
            "method": method,
            "path": path,
            "cause": sanitize_error_message(str(exc)) or type(exc).__name__,
        },
    )
