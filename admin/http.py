from __future__ import annotations

import hmac
import json
from typing import Any

from aiohttp import web


PUBLIC_PATHS = {"/api/health"}


def ok(**data: Any) -> web.Response:
    return web.json_response({"success": True, **data})


def fail(error: str, status: int = 400, **data: Any) -> web.Response:
    return web.json_response({"success": False, "error": error, **data}, status=status)


async def read_json(request: web.Request) -> dict[str, Any]:
    """Request body as a dict; an empty body is {}."""
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(
            text=json.dumps({"success": False, "error": "Invalid JSON body"}),
            content_type="application/json",
        )
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"success": False, "error": "JSON body must be an object"}),
            content_type="application/json",
        )
    return body


def guild_param(request: web.Request) -> str | None:
    """The `?guild=` query value; only numeric guild ids are accepted."""
    guild_id = request.query.get("guild")
    if not guild_id:
        return None
    if not guild_id.isdigit():
        raise web.HTTPBadRequest(
            text=json.dumps({"success": False, "error": "Invalid guild id"}),
            content_type="application/json",
        )
    return guild_id


def parse_limit(raw: str | None, default: int, maximum: int = 1000) -> int | None:
    """None when `raw` is not a non-negative integer."""
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return None
    if value < 0:
        return None
    return min(max(value, 1), maximum)


def token_matches(provided: str | None, expected: str) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def make_auth_middleware(admin_token: str | None):
    @web.middleware
    async def auth_middleware(request: web.Request, handler):
        if admin_token is None or request.path in PUBLIC_PATHS:
            return await handler(request)
        header = request.headers.get("Authorization", "")
        provided = header[7:].strip() if header.startswith("Bearer ") else None
        # browsers cannot set headers on websocket upgrades
        provided = provided or request.query.get("token")
        if not token_matches(provided, admin_token):
            print(f"[Admin] Unauthorized request to {request.path} from {request.remote}")
            return fail("Unauthorized", status=401)
        return await handler(request)

    return auth_middleware


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        print(f"[Admin] {request.method} {request.path} failed: {e}")
        return fail(str(e) or type(e).__name__, status=500)
