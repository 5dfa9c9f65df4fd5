"""Typed errors for Google Drive operations.

Every failure coming out of the Google client stack is turned into one of:

- ``DriveAuthError``: credentials rejected (revoked consent, invalid grant).
  Terminal for the account until the user links it again.
- ``DriveTransientError``: network trouble, timeouts, rate limits, 5xx.
  Safe to retry on a later sync.
- ``DriveOperationError``: anything else.

``classify_error`` trusts structured fields first (OAuth error codes, HTTP
status and reason) and only falls back to message keywords when the
exception carries nothing better.
"""

from __future__ import annotations

import asyncio
import json
import re
import socket
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from drivehub.db.models import LinkedAccount

# OAuth token endpoint error codes that mean the grant is gone for good
AUTH_ERROR_CODES = frozenset({"invalid_grant", "unauthorized_client", "invalid_client"})

# Drive API 403 reasons that are really rate limits
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Fallback keyword lists, used only when no status or error code is available
AUTH_ERROR_PATTERN = re.compile(
    r"invalid_grant|token.*(?:revoked|expired)|revoked", re.IGNORECASE
)
TRANSIENT_ERROR_KEYWORDS = [
    "timeout",
    "timed out",
    "connection",
    "network",
    "rate limit",
    "temporar",
    "unavailable",
    "throttl",
]


class DriveError(Exception):
    """Base exception for Google Drive operations."""

    def __init__(
        self,
        message: str,
        account_id: str | None = None,
        email: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.account_id = account_id
        self.email = email
        self.cause = cause

    def with_account(self, account_id: str | None, email: str | None) -> DriveError:
        """Attach account identity unless already present."""
        if self.account_id is None:
            self.account_id = account_id
        if self.email is None:
            self.email = email
        return self


class DriveAuthError(DriveError):
    """Raised when an account's credentials can no longer authenticate."""

    status_code = 401

    def to_dict(self) -> dict[str, Any]:
        """Payload telling the client which account needs reconnecting."""
        return {
            "error": self.message,
            "needs_reconnect": True,
            "account_id": self.account_id,
            "account_email": self.email,
        }


class DriveAccountRevokedError(DriveAuthError):
    """Raised when an operation targets an account already marked revoked."""

    def __init__(self, account_id: str, email: str):
        super().__init__(
            "Drive account is disconnected. Please reconnect your Google Drive account.",
            account_id=account_id,
            email=email,
        )


class DriveTransientError(DriveError):
    """Raised for failures that may succeed on a later attempt."""

    pass


class DriveOperationError(DriveError):
    """Raised for failures that are neither auth nor transient."""

    pass


def classify_error(
    exc: BaseException, account: LinkedAccount | None = None
) -> DriveError:
    """Map any exception from the Google client stack onto the Drive taxonomy.

    Args:
        exc: The exception to classify.
        account: Account the failing call was made for, if known.

    Returns:
        A DriveError subclass instance chained to ``exc`` via ``cause``.
    """
    account_id = account.id if account is not None else None
    email = account.email if account is not None else None

    if isinstance(exc, DriveError):
        return exc.with_account(account_id, email)

    error_cls = _classify_structured(exc)
    if error_cls is None:
        error_cls = _classify_message(str(exc))

    return error_cls(
        _describe(exc),
        account_id=account_id,
        email=email,
        cause=exc,
    )


def _classify_structured(exc: BaseException) -> type[DriveError] | None:
    """Classify using status codes and error codes carried by the exception."""
    from google.auth.exceptions import RefreshError, TransportError
    from googleapiclient.errors import HttpError

    if isinstance(exc, RefreshError):
        code = _refresh_error_code(exc)
        if code in AUTH_ERROR_CODES:
            return DriveAuthError
        if code is not None:
            return DriveTransientError if exc.retryable else DriveOperationError
        if AUTH_ERROR_PATTERN.search(str(exc)):
            return DriveAuthError
        return DriveTransientError if exc.retryable else None

    if isinstance(exc, HttpError):
        status = int(exc.resp.status)
        if status == 401:
            return DriveAuthError
        if status in TRANSIENT_STATUS_CODES:
            return DriveTransientError
        if status == 403 and _http_error_reasons(exc) & RATE_LIMIT_REASONS:
            return DriveTransientError
        return DriveOperationError

    if isinstance(
        exc, (TransportError, asyncio.TimeoutError, TimeoutError, ConnectionError, socket.timeout)
    ):
        return DriveTransientError

    import httplib2
    import httpx

    if isinstance(exc, (httplib2.HttpLib2Error, httpx.TransportError)):
        return DriveTransientError

    return None


def _classify_message(message: str) -> type[DriveError]:
    """Keyword fallback for exceptions without structured fields."""
    if AUTH_ERROR_PATTERN.search(message):
        return DriveAuthError
    lowered = message.lower()
    if any(keyword in lowered for keyword in TRANSIENT_ERROR_KEYWORDS):
        return DriveTransientError
    return DriveOperationError


def _refresh_error_code(exc: BaseException) -> str | None:
    """Extract the OAuth ``error`` field from a RefreshError, if any."""
    for arg in exc.args[1:]:
        if isinstance(arg, dict) and isinstance(arg.get("error"), str):
            return arg["error"]
        if isinstance(arg, (str, bytes)):
            try:
                data = json.loads(arg)
            except (TypeError, ValueError):
                continue
            if isinstance(data, dict) and isinstance(data.get("error"), str):
                return data["error"]
    return None


def _http_error_reasons(exc: Any) -> set[str]:
    """Collect the ``reason`` fields of a googleapiclient HttpError."""
    reasons: set[str] = set()
    for detail in getattr(exc, "error_details", None) or []:
        if isinstance(detail, dict) and detail.get("reason"):
            reasons.add(detail["reason"])
    if not reasons:
        try:
            content = json.loads(exc.content.decode("utf-8"))
            for item in content.get("error", {}).get("errors", []):
                if item.get("reason"):
                    reasons.add(item["reason"])
        except (AttributeError, TypeError, ValueError):
            pass
    return reasons


def _describe(exc: BaseException) -> str:
    """Human-readable message for an exception."""
    # google-auth errors carry the response body as extra args
    if exc.args and isinstance(exc.args[0], str):
        message = exc.args[0].strip()
    else:
        message = str(exc).strip()
    return message or exc.__class__.__name__
