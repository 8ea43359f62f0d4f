"""Environment configuration.

Loads .env (or .env.example), then secrets/private.env if present.
If DATA_DIR or CCSYNC_DATA_DIR is set, that path is used as project root (for Docker).

Constant Contact credentials are read once per request/command into an immutable
CCConfig; nothing is validated at import time.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError

DEFAULT_TOKEN_URL = "https://authz.constantcontact.com/oauth2/default/v1/token"
DEFAULT_API_BASE = "https://api.cc.email/v3"
DEFAULT_TIMEOUT = 30.0


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "on"}


# Project root: DATA_DIR / CCSYNC_DATA_DIR (Docker) or discover via .env
_data_dir = os.environ.get("DATA_DIR") or os.environ.get("CCSYNC_DATA_DIR")
if _data_dir:
    PROJECT_ROOT = Path(_data_dir).resolve()
    _env_file = PROJECT_ROOT / ".env"
    if not _env_file.exists():
        _env_file = PROJECT_ROOT / ".env.example" if (PROJECT_ROOT / ".env.example").exists() else None
    _env_path = str(_env_file) if _env_file and _env_file.exists() else None
else:
    _env_path = find_dotenv(".env", usecwd=True)
    if not _env_path:
        _env_path = find_dotenv(".env.example", usecwd=True)
    PROJECT_ROOT = Path(_env_path).resolve().parent if _env_path else Path.cwd()

if _env_path:
    load_dotenv(_env_path)

# secrets/private.env overrides the base file
_private_env = PROJECT_ROOT / "secrets" / "private.env"
if _private_env.exists():
    load_dotenv(_private_env, override=True)


def verbose_enabled() -> bool:
    return _truthy(os.environ.get("CCSYNC_VERBOSE"))


def env(name: str) -> str:
    v = os.environ.get(name)
    if not v:
        raise ConfigurationError(f"Missing env var: {name}")
    return v


def _lookup(environ: Mapping[str, str], name: str) -> str:
    """CONSTANT_CONTACT_X, falling back to the legacy VITE_CONSTANT_CONTACT_X."""
    return (environ.get(name) or environ.get(f"VITE_{name}") or "").strip()


@dataclass(frozen=True)
class CCConfig:
    api_key: str
    refresh_token: str
    list_id: str
    client_secret: str = ""  # empty under PKCE
    token_url: str = DEFAULT_TOKEN_URL
    api_base: str = DEFAULT_API_BASE
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CCConfig":
        e = os.environ if environ is None else environ
        timeout_raw = (e.get("CONSTANT_CONTACT_TIMEOUT") or "").strip()
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except ValueError:
            raise ConfigurationError(f"Bad CONSTANT_CONTACT_TIMEOUT: {timeout_raw!r}")
        return cls(
            api_key=_lookup(e, "CONSTANT_CONTACT_API_KEY"),
            refresh_token=_lookup(e, "CONSTANT_CONTACT_REFRESH_TOKEN"),
            list_id=_lookup(e, "CONSTANT_CONTACT_LIST_ID"),
            client_secret=_lookup(e, "CONSTANT_CONTACT_CLIENT_SECRET"),
            token_url=_lookup(e, "CONSTANT_CONTACT_TOKEN_URL") or DEFAULT_TOKEN_URL,
            api_base=(_lookup(e, "CONSTANT_CONTACT_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
            timeout=timeout,
        )

    def missing(self) -> List[str]:
        names = []
        if not self.api_key:
            names.append("CONSTANT_CONTACT_API_KEY")
        if not self.refresh_token:
            names.append("CONSTANT_CONTACT_REFRESH_TOKEN")
        if not self.list_id:
            names.append("CONSTANT_CONTACT_LIST_ID")
        return names

    def require(self) -> "CCConfig":
        missing = self.missing()
        if missing:
            raise ConfigurationError(
                "Missing required Constant Contact environment variables: " + ", ".join(missing)
            )
        return self
