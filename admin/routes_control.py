from __future__ import annotations

import asyncio

from aiohttp import WSMsgType
from aiohttp import web

from admin.deps import AdminDeps
from admin.http import fail
from admin.http import ok
from admin.http import parse_limit
from admin.http import read_json
from config.defaults import DEFAULT_LOG_LIMIT


async def _read_until_closed(ws: web.WebSocketResponse) -> None:
    async for msg in ws:
        if msg.type == WSMsgType.ERROR:
            return


def register(app: web.Application, *, deps: AdminDeps) -> None:
    bot = deps.bot

    async def status(request: web.Request) -> web.Response:
        return ok(status=bot.status())

    async def start(request: web.Request) -> web.Response:
        result = await bot.start()
        if result.get("success"):
            await deps.record_event("bot_start", {"source": "admin"})
        return web.json_response(result)

    async def restart(request: web.Request) -> web.Response:
        result = await bot.restart()
        if result.get("success"):
            await deps.record_event("bot_restart", {"source": "admin"})
        return web.json_response(result)

    async def shutdown(request: web.Request) -> web.Response:
        body = await read_json(request)
        emergency = body.get("emergency") is True
        stopped = await bot.shutdown(emergency=emergency)
        if not stopped:
            return fail("Bot is not running or another operation is in progress", status=409)
        await deps.record_event("bot_shutdown", {"emergency": emergency})
        return ok(message="Bot shutdown initiated")

    async def logs(request: web.Request) -> web.Response:
        limit = parse_limit(request.query.get("limit"), DEFAULT_LOG_LIMIT)
        if limit is None:
            return fail("Invalid limit parameter - must be a non-negative integer")
        include_crash = request.query.get("includeCrash") == "true"
        data = bot.get_logs(include_crash)
        data["current"] = data["current"][-limit:]
        return ok(logs=data)

    async def clear_logs(request: web.Request) -> web.Response:
        bot.clear_logs()
        return ok(message="Logs cleared")

    async def logs_ws(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)
        queue = bot.subscribe()
        reader = asyncio.create_task(_read_until_closed(ws))
        try:
            await ws.send_json({"type": "bot:backlog", "data": {"lines": list(bot.logs)[-DEFAULT_LOG_LIMIT:]}})
            while not reader.done():
                getter = asyncio.create_task(queue.get())
                done, _pending = await asyncio.wait({getter, reader}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    await ws.send_json(getter.result())
                else:
                    getter.cancel()
        finally:
            bot.unsubscribe(queue)
            reader.cancel()
            await ws.close()
        return ws

    app.router.add_get("/api/control/status", status)
    app.router.add_post("/api/control/start", start)
    app.router.add_post("/api/control/restart", restart)
    app.router.add_post("/api/control/shutdown", shutdown)
    app.router.add_get("/api/control/logs", logs)
    app.router.add_post("/api/control/logs/clear", clear_logs)
    app.router.add_get("/api/control/logs/ws", logs_ws)
