"""Constant Contact OAuth: refresh_token -> access_token.

Caches the access token until 10 minutes before expiry; refreshes on demand.
The cache lives in this process only and is not locked: concurrent callers may
both refresh, which the authorization server tolerates.
"""
from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from .config import DEFAULT_TIMEOUT, DEFAULT_TOKEN_URL, CCConfig
from .errors import TokenRefreshError

logger = logging.getLogger(__name__)

EXPIRY_MARGIN_SECONDS = 600
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float  # epoch seconds


def compute_expires_at(now: float, expires_in: int) -> float:
    return now + (expires_in - EXPIRY_MARGIN_SECONDS)


def token_is_fresh(cached: Optional[AccessToken], now: float) -> bool:
    return cached is not None and now < cached.expires_at


def refresh_access_token(
    *,
    refresh_token: str,
    api_key: str,
    client_secret: str = "",
    token_url: str = DEFAULT_TOKEN_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """
    POST grant_type=refresh_token to the authorization server and return its JSON.

    With a client secret the call uses HTTP Basic (api_key:client_secret);
    PKCE-issued refresh tokens have no secret and send client_id in the form instead.
    """
    data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
    auth = None
    if client_secret:
        auth = (api_key, client_secret)
    else:
        data["client_id"] = api_key

    try:
        r = requests.post(
            token_url,
            data=data,
            auth=auth,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise TokenRefreshError(f"Token refresh failed: {e}") from e

    if not r.ok:
        logger.error("Token refresh failed: %s %s", r.status_code, r.text)
        raise TokenRefreshError(
            f"Token refresh failed: {r.status_code} {r.reason}",
            status=r.status_code,
            body=r.text,
        )

    try:
        payload = r.json()
    except ValueError as e:
        raise TokenRefreshError("Token refresh returned a non-JSON body", status=r.status_code, body=r.text) from e
    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise TokenRefreshError("Token refresh response has no access_token", status=r.status_code, body=r.text)
    try:
        int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (TypeError, ValueError) as e:
        raise TokenRefreshError(
            f"Token refresh returned an invalid expires_in: {payload.get('expires_in')!r}",
            status=r.status_code,
            body=r.text,
        ) from e
    return payload


class ConstantContactOAuth:
    """Exchanges a long-lived refresh token for short-lived access tokens."""

    def __init__(
        self,
        api_key: str,
        refresh_token: str,
        client_secret: str = "",
        token_url: str = DEFAULT_TOKEN_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_key = api_key
        self.refresh_token = refresh_token
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self.clock = clock
        self._cached: AccessToken | None = None

    def get_access_token(self, now: Optional[float] = None) -> str:
        now = self.clock() if now is None else now
        if token_is_fresh(self._cached, now):
            return self._cached.token  # type: ignore[union-attr]
        return self.refresh(now).token

    def refresh(self, now: Optional[float] = None) -> AccessToken:
        now = self.clock() if now is None else now
        data = refresh_access_token(
            refresh_token=self.refresh_token,
            api_key=self.api_key,
            client_secret=self.client_secret,
            token_url=self.token_url,
            timeout=self.timeout,
        )
        rotated = data.get("refresh_token")
        if rotated and rotated != self.refresh_token:
            # credentials are fixed for the process lifetime
            logger.warning("Authorization server issued a new refresh token; update CONSTANT_CONTACT_REFRESH_TOKEN")

        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        self._cached = AccessToken(token=data["access_token"], expires_at=compute_expires_at(now, expires_in))
        logger.debug("Refreshed access token, valid for %ss", expires_in - EXPIRY_MARGIN_SECONDS)
        return self._cached


@functools.lru_cache(maxsize=16)
def shared_oauth(config: CCConfig) -> ConstantContactOAuth:
    """One OAuth object (and token cache) per credential set for the life of the process."""
    return ConstantContactOAuth(
        api_key=config.api_key,
        refresh_token=config.refresh_token,
        client_secret=config.client_secret,
        token_url=config.token_url,
        timeout=config.timeout,
    )
