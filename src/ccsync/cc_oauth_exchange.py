"""One-time setup: Constant Contact authorization code -> refresh_token.

Run during setup; output CONSTANT_CONTACT_REFRESH_TOKEN goes into .env.
Supports the PKCE flow (no client secret) and the classic secret-based flow.
"""
from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from .config import DEFAULT_TOKEN_URL

AUTHORIZE_URL = "https://authz.constantcontact.com/oauth2/default/v1/authorize"
DEFAULT_SCOPE = "contact_data offline_access"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> Tuple[str, str]:
    """Return (code_verifier, code_challenge) using the S256 method."""
    verifier = _b64url(secrets.token_bytes(32))
    challenge = _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge


def generate_state() -> str:
    return "ccsync_" + secrets.token_hex(16)


def build_authorization_url(
    *,
    api_key: str,
    redirect_uri: str,
    state: str,
    code_challenge: Optional[str] = None,
    scope: str = DEFAULT_SCOPE,
    authorize_url: str = AUTHORIZE_URL,
) -> str:
    params = {
        "response_type": "code",
        "client_id": api_key,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    if code_challenge:
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "S256"
    return f"{authorize_url}?{urlencode(params)}"


def parse_redirect_url(url: str, expected_state: Optional[str] = None) -> str:
    """
    Pull the authorization code out of the URL the browser was redirected to.
    Raises ValueError on a provider error, a missing code, or a state mismatch.
    """
    qs = parse_qs(urlparse(url.strip()).query)
    error = (qs.get("error") or [""])[0]
    if error:
        desc = (qs.get("error_description") or [""])[0]
        raise ValueError(f"Authorization error: {error}" + (f" ({desc})" if desc else ""))
    code = (qs.get("code") or [""])[0]
    if not code:
        raise ValueError("No authorization code found in redirect URL")
    if expected_state is not None and (qs.get("state") or [""])[0] != expected_state:
        raise ValueError("State parameter mismatch")
    return code


def exchange_code_for_tokens(
    *,
    code: str,
    api_key: str,
    redirect_uri: str,
    code_verifier: Optional[str] = None,
    client_secret: str = "",
    token_url: str = DEFAULT_TOKEN_URL,
) -> Dict[str, Any]:
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    auth = None
    if code_verifier:
        data["client_id"] = api_key
        data["code_verifier"] = code_verifier
    else:
        auth = (api_key, client_secret)

    r = requests.post(token_url, data=data, auth=auth, timeout=30)
    r.raise_for_status()
    return r.json()
