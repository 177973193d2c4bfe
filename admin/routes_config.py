from __future__ import annotations

import asyncio

from aiohttp import web

from admin.deps import AdminDeps
from admin.http import fail
from admin.http import guild_param
from admin.http import ok
from admin.http import read_json
from config.env import CREDENTIAL_KEYS
from config.env import DERIVED_KEY
from config.env import credential_status
from config.env import invalid_snowflakes
from config.env import is_placeholder
from config.env import load_credentials
from config.env import save_credentials
from config.env import validate_credentials


def register(app: web.Application, *, deps: AdminDeps) -> None:
    config = deps.config
    settings = deps.settings
    data_dir = deps.paths.data_dir

    # config files
    async def list_files(request: web.Request) -> web.Response:
        files = [
            {
                "id": meta.file_id,
                "name": meta.name,
                "description": meta.description,
                "module": meta.module_name,
                "hasSchema": bool(meta.properties),
            }
            for meta in config.list_config_files()
        ]
        return ok(files=files)

    def _known_file(request: web.Request) -> str | None:
        file_id = request.match_info["file"]
        return file_id if config.config_file_meta(file_id) is not None else None

    async def get_file(request: web.Request) -> web.Response:
        file_id = _known_file(request)
        if file_id is None:
            return fail("Config file not found", status=404)
        guild_id = guild_param(request)
        if guild_id:
            data = config.load_guild_config(file_id, guild_id)
        else:
            data = config.load_global_config(file_id)
        return ok(file=file_id, guild=guild_id, data=data)

    async def put_file(request: web.Request) -> web.Response:
        file_id = _known_file(request)
        if file_id is None:
            return fail("Config file not found", status=404)
        body = await read_json(request)
        guild_id = guild_param(request)
        if guild_id:
            await asyncio.to_thread(config.save_guild_config, file_id, guild_id, body)
        else:
            await asyncio.to_thread(config.save_global_config, file_id, body)
        await deps.record_event("config_saved", {"file": file_id, "guild": guild_id})
        return ok(message="Config saved")

    async def merged_file(request: web.Request) -> web.Response:
        file_id = _known_file(request)
        if file_id is None:
            return fail("Config file not found", status=404)
        return ok(config=config.get_merged_config(file_id, guild_param(request)))

    # module settings
    async def list_settings(request: web.Request) -> web.Response:
        modules = [
            {
                "name": m.name,
                "displayName": m.display_name,
                "category": m.category,
                "settingsCount": len(m.schema.settings),
            }
            for m in settings.discovery.modules_with_settings(force_refresh=True)
        ]
        return ok(modules=modules)

    async def get_settings(request: web.Request) -> web.Response:
        module_name = request.match_info["module"]
        merged = settings.load_module_settings(module_name, guild_param(request))
        if merged is None:
            return fail("Module has no settings", status=404)
        return ok(
            module=module_name,
            values=merged.values,
            sources=merged.sources,
            schema=merged.schema.to_dict(),
            hardLimits=settings.load_hard_limits(module_name),
        )

    async def put_settings(request: web.Request) -> web.Response:
        module_name = request.match_info["module"]
        if settings.discovery.get_schema(module_name) is None:
            return fail("Module has no settings", status=404)
        body = await read_json(request)
        errors = settings.validate_updates(module_name, body)
        if errors:
            return fail("Validation failed", errors=errors)
        if not settings.save_module_settings(module_name, body, guild_param(request)):
            return fail("Failed to save settings", status=500)
        await deps.record_event("settings_saved", {"module": module_name, "keys": sorted(body)})
        return ok(message="Settings saved")

    async def reset_setting(request: web.Request) -> web.Response:
        module_name = request.match_info["module"]
        if settings.discovery.get_schema(module_name) is None:
            return fail("Module has no settings", status=404)
        if not settings.reset_module_setting(module_name, request.match_info["key"], guild_param(request)):
            return fail("Failed to reset setting", status=500)
        return ok(message="Setting reset to default")

    async def put_limit(request: web.Request) -> web.Response:
        module_name = request.match_info["module"]
        body = await read_json(request)
        saved, error = settings.save_hard_limit(module_name, request.match_info["key"], body)
        if error:
            return fail(error)
        if not saved:
            return fail("Failed to save hard limit", status=500)
        return ok(message="Hard limit saved")

    async def export_settings(request: web.Request) -> web.Response:
        module_name = request.match_info["module"]
        if settings.discovery.get_schema(module_name) is None:
            return fail("Module has no settings", status=404)
        return ok(module=module_name, payload=settings.export_module_settings(module_name, guild_param(request)))

    async def import_settings(request: web.Request) -> web.Response:
        module_name = request.match_info["module"]
        body = await read_json(request)
        payload = body.get("payload", body)
        success, errors = settings.import_module_settings(module_name, payload, guild_param(request))
        if not success:
            return fail("Import failed", errors=errors)
        return ok(message="Settings imported")

    # first-run setup
    async def get_credentials(request: web.Request) -> web.Response:
        creds = load_credentials(data_dir)
        valid, missing, _error = validate_credentials(creds)
        return ok(valid=valid, missing=missing, credentials=credential_status(creds))

    async def post_credentials(request: web.Request) -> web.Response:
        body = await read_json(request)
        creds = load_credentials(data_dir)
        for key in creds.pop(DERIVED_KEY, []):
            creds[key] = None
        for key in CREDENTIAL_KEYS:
            value = body.get(key)
            if value is not None and not is_placeholder(str(value)):
                creds[key] = str(value).strip()
        valid, missing, error = validate_credentials(creds)
        if not valid:
            return fail(error or "Invalid credentials", missing=missing)
        invalid = invalid_snowflakes(creds)
        if invalid:
            return fail(f"Invalid Discord ids (17+ digits expected): {', '.join(invalid)}", invalid=invalid)
        saved, save_error = save_credentials(data_dir, creds)
        if not saved:
            return fail(save_error or "Failed to save credentials", status=500)
        await deps.record_event("credentials_saved", {"keys": [k for k in CREDENTIAL_KEYS if body.get(k)]})
        return ok(message="Credentials saved. Restart the bot to apply them.")

    app.router.add_get("/api/config/files", list_files)
    app.router.add_get("/api/config/{file}", get_file)
    app.router.add_put("/api/config/{file}", put_file)
    app.router.add_get("/api/config/{file}/merged", merged_file)

    app.router.add_get("/api/settings", list_settings)
    app.router.add_get("/api/settings/{module}", get_settings)
    app.router.add_put("/api/settings/{module}", put_settings)
    app.router.add_delete("/api/settings/{module}/{key}", reset_setting)
    app.router.add_put("/api/settings/{module}/limits/{key}", put_limit)
    app.router.add_get("/api/settings/{module}/export", export_settings)
    app.router.add_post("/api/settings/{module}/import", import_settings)

    app.router.add_get("/api/setup/credentials", get_credentials)
    app.router.add_post("/api/setup/credentials", post_credentials)
