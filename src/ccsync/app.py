"""FastAPI application: token proxy, list-members, sync-members.

Each request loads CCConfig once and runs blocking Constant Contact calls in the
threadpool. The only state shared between requests is the per-credential token cache.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .cc_auth import refresh_access_token
from .cc_contacts import client_from_config
from .config import CCConfig
from .errors import ConfigurationError, TokenRefreshError, ValidationError
from .reconcile import sync_members

logger = logging.getLogger(__name__)

TOKEN_PATH = "/api/constant-contact-token"
LIST_MEMBERS_PATH = "/api/constant-contact/list-members"
SYNC_MEMBERS_PATH = "/api/constant-contact/sync-members"
TEST_CONNECTION_PATH = "/api/constant-contact/test-connection"

app = FastAPI(title="ccsync")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def get_config() -> CCConfig:
    return CCConfig.from_env()


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "message": message or "Unknown error"}, status_code=status_code)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code != 405:
        return await http_exception_handler(request, exc)
    if request.url.path == TOKEN_PATH:
        return JSONResponse({"error": "Method not allowed"}, status_code=405)
    return _fail(405, "Method not allowed")


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    if request.url.path == TOKEN_PATH:
        return JSONResponse({"error": str(exc)}, status_code=500)
    return _fail(400, str(exc))


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    if request.url.path == TOKEN_PATH:
        return JSONResponse({"error": str(exc)}, status_code=400)
    return _fail(400, str(exc))


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "ccsync"}


@app.options(TOKEN_PATH)
async def token_preflight():
    return Response(status_code=200)


@app.post(TOKEN_PATH)
async def token_refresh(request: Request, config: CCConfig = Depends(get_config)):
    body = await _json_body(request)
    refresh_token = body.get("refreshToken") if isinstance(body, dict) else None
    if not refresh_token:
        raise ValidationError("Refresh token is required")
    if not config.api_key:
        raise ConfigurationError("Constant Contact API key not configured")

    try:
        data = await run_in_threadpool(
            refresh_access_token,
            refresh_token=refresh_token,
            api_key=config.api_key,
            client_secret=config.client_secret,
            token_url=config.token_url,
            timeout=config.timeout,
        )
    except TokenRefreshError as e:
        if e.status is None:
            logger.error("Token refresh error: %s", e)
            return JSONResponse({"error": "Internal server error", "details": str(e)}, status_code=500)
        return JSONResponse({"error": str(e), "details": e.body}, status_code=e.status)
    return data


@app.get(LIST_MEMBERS_PATH)
async def list_members(config: CCConfig = Depends(get_config)):
    client = client_from_config(config.require())
    try:
        members = await run_in_threadpool(client.list_members)
    except Exception as e:
        logger.exception("list-members failed")
        return _fail(500, str(e))
    return {"ok": True, "members": [m.to_dict() for m in members]}


@app.post(SYNC_MEMBERS_PATH)
async def sync_members_route(request: Request, config: CCConfig = Depends(get_config)):
    config.require()
    body = await _json_body(request)
    members = body.get("members") if isinstance(body, dict) else None
    if not isinstance(members, list):
        raise ValidationError("Missing or invalid members array")

    client = client_from_config(config)
    try:
        result = await run_in_threadpool(sync_members, members, client)
    except Exception as e:
        logger.exception("sync-members failed")
        return _fail(500, str(e))
    return {"ok": True, **result.to_dict()}


@app.get(TEST_CONNECTION_PATH)
async def test_connection(config: CCConfig = Depends(get_config)):
    client = client_from_config(config.require())
    try:
        members = await run_in_threadpool(client.list_members)
    except Exception as e:
        logger.exception("test-connection failed")
        return _fail(500, str(e))
    return {"ok": True, "message": "Connection successful", "memberCount": len(members)}
