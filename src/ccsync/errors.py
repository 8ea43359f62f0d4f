"""Error types for ccsync.

ConfigurationError  -> missing credentials/env; HTTP 400 (500 for the token proxy).
TokenRefreshError   -> authorization server refused or was unreachable; never retried.
ExternalAPIError    -> non-2xx from the contacts API.
ValidationError     -> malformed client input, rejected before any network call.
"""
from __future__ import annotations

from typing import Any, Optional


class CCSyncError(Exception):
    """Base exception for all ccsync errors."""


class ConfigurationError(CCSyncError):
    """Required credential or environment value is missing."""


class TokenRefreshError(CCSyncError):
    """Refresh-token exchange failed.

    status is None when no response was received (network error).
    """

    def __init__(self, message: str, *, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ExternalAPIError(CCSyncError):
    """Non-2xx response from the Constant Contact data API.

    payload is the parsed JSON body when the service sent one, else None;
    body always holds the raw text.
    """

    def __init__(self, message: str, *, status: int, body: str = "", payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.payload = payload


class ValidationError(CCSyncError):
    """Client input is malformed."""


class InvalidMemberError(ValidationError):
    """A single member record cannot be turned into a contact."""
