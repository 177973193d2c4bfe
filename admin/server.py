from __future__ import annotations

from aiohttp import web

from admin import routes_config
from admin import routes_control
from admin import routes_update
from admin.deps import AdminDeps
from admin.http import error_middleware
from admin.http import make_auth_middleware
from admin.http import ok


def build_app(deps: AdminDeps) -> web.Application:
    app = web.Application(middlewares=[error_middleware, make_auth_middleware(deps.admin_token)])

    async def health(request: web.Request) -> web.Response:
        return ok(status="ok", bot=deps.bot.is_running(), safeMode=deps.safety.is_in_safe_mode())

    app.router.add_get("/api/health", health)
    routes_control.register(app, deps=deps)
    routes_update.register(app, deps=deps)
    routes_config.register(app, deps=deps)
    return app


async def start_admin_server(deps: AdminDeps, host: str, port: int) -> web.AppRunner:
    if not deps.admin_token and host not in ("127.0.0.1", "localhost"):
        print(f"[Admin] ADMIN_TOKEN not set; binding to 127.0.0.1 instead of {host}")
        host = "127.0.0.1"
    runner = web.AppRunner(build_app(deps))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    print(f"[Admin] API listening on http://{host}:{port}")
    return runner
