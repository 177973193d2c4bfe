from __future__ import annotations

import json
import os
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

from config.defaults import DEFAULT_HEALTH_GRACE_SECONDS


MAIN_CONFIG_FILENAME = "config.json"

MAIN_CONFIG_SCHEMA: dict[str, Any] = {
    "testMode": False,
    "DEVS": [],
    "adminPanel.itemsPerPage": 10,
    "adminPanel.enablePagination": True,
    "adminPanel.defaultCategory": "General",
    "interaction.buttonTimeoutMs": 900000,
    "interaction.dropdownTimeoutMs": 900000,
    "system.healthGraceSeconds": DEFAULT_HEALTH_GRACE_SECONDS,
    "system.keepBackups": 5,
}

MAIN_CONFIG_DESCRIPTIONS: dict[str, str] = {
    "testMode": "Only register test-only commands, scoped to the test guild",
    "DEVS": "Discord user ids allowed to run developer commands",
    "adminPanel.itemsPerPage": "Panels per page in the admin panel list",
    "adminPanel.enablePagination": "Paginate the admin panel list",
    "adminPanel.defaultCategory": "Category for panels that do not declare one",
    "interaction.buttonTimeoutMs": "Timeout for non-persistent button views",
    "interaction.dropdownTimeoutMs": "Timeout for non-persistent select views",
    "system.healthGraceSeconds": "Seconds the bot must stay up before a start counts as successful",
    "system.keepBackups": "Number of update backups kept on disk",
}


@dataclass(frozen=True)
class ConfigFileMeta:
    file_id: str
    name: str
    description: str = ""
    module_name: str | None = None
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)


def _json_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def main_config_meta() -> ConfigFileMeta:
    props = {
        key: {
            "type": _json_type(default),
            "default": default,
            "description": MAIN_CONFIG_DESCRIPTIONS.get(key, ""),
        }
        for key, default in MAIN_CONFIG_SCHEMA.items()
    }
    return ConfigFileMeta(
        file_id=MAIN_CONFIG_FILENAME,
        name="Bot configuration",
        description="Core framework configuration",
        properties=props,
    )


def config_metas_from_manifests(manifests) -> list[ConfigFileMeta]:
    out: list[ConfigFileMeta] = []
    for manifest in manifests:
        schema = getattr(manifest, "config_schema", None) or {}
        file_id = str(schema.get("id") or "").strip()
        if not file_id:
            continue
        out.append(
            ConfigFileMeta(
                file_id=file_id,
                name=str(schema.get("name") or file_id),
                description=str(schema.get("description") or ""),
                module_name=manifest.name,
                properties=dict(schema.get("properties") or {}),
            )
        )
    return out


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        raw = path.read_text(encoding="utf-8")
        return json.loads(raw or "null") if raw.strip() else default
    except (OSError, json.JSONDecodeError) as e:
        print(f"[ConfigManager] Error reading/parsing {path.name}: {e}")
        return default


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _env_placeholder(value: str) -> bool:
    return value.startswith("OPTIONAL") or value.startswith("REPLACE")


class ConfigManager:
    def __init__(self, data_dir: Path, *, environ: dict[str, str] | None = None) -> None:
        self.data_dir = Path(data_dir)
        self._environ = environ
        self._metas: dict[str, ConfigFileMeta] = {MAIN_CONFIG_FILENAME: main_config_meta()}

    @property
    def main_config_path(self) -> Path:
        return self.data_dir / "bot" / MAIN_CONFIG_FILENAME

    @property
    def guild_configs_dir(self) -> Path:
        return self.data_dir / "guildConfigs"

    def register_config_files(self, metas: list[ConfigFileMeta]) -> None:
        for meta in metas:
            existing = self._metas.get(meta.file_id)
            if existing is not None and existing.module_name and existing.module_name != meta.module_name:
                print(
                    f"[ConfigManager] Config file {meta.file_id} claimed by {existing.module_name} "
                    f"and {meta.module_name}; keeping {existing.module_name}"
                )
                continue
            self._metas[meta.file_id] = meta

    def config_file_meta(self, file_id: str) -> ConfigFileMeta | None:
        return self._metas.get(file_id)

    def list_config_files(self) -> list[ConfigFileMeta]:
        return sorted(self._metas.values(), key=lambda m: (m.module_name or "", m.file_id))

    def ensure_config_populated(self) -> dict[str, int]:
        existing = _read_json(self.main_config_path, {})
        if not isinstance(existing, dict):
            print("[ConfigManager] Existing config is not an object, regenerating")
            existing = {}

        populated: dict[str, Any] = {}
        added = 0
        preserved = 0
        for key, default in MAIN_CONFIG_SCHEMA.items():
            if key in existing:
                populated[key] = existing[key]
                preserved += 1
            else:
                populated[key] = default
                added += 1

        orphaned = [key for key in existing if key not in MAIN_CONFIG_SCHEMA]
        if orphaned:
            print(f"[ConfigManager] Removing orphaned properties from config.json: {', '.join(orphaned)}")

        _write_json(self.main_config_path, populated)
        print(
            f"[ConfigManager] Config synchronized with schema "
            f"({added} added, {preserved} preserved, {len(orphaned)} removed)"
        )
        return {"added": added, "preserved": preserved, "removed": len(orphaned)}

    def get_config_property(self, key: str) -> Any:
        file_config = _read_json(self.main_config_path, {})
        if isinstance(file_config, dict) and key in file_config:
            return file_config[key]

        environ = os.environ if self._environ is None else self._environ
        env_value = environ.get(key)
        if env_value and not _env_placeholder(env_value):
            if key == "DEVS":
                return [part.strip() for part in env_value.split(",") if part.strip()]
            try:
                return json.loads(env_value)
            except json.JSONDecodeError:
                return env_value

        return MAIN_CONFIG_SCHEMA.get(key)

    def get_config_property_for_guild(self, key: str, guild_id: str | int | None) -> Any:
        base = self.get_config_property(key)
        if not guild_id:
            return base
        guild_config = _read_json(self._guild_file_path(MAIN_CONFIG_FILENAME, guild_id), {})
        if isinstance(guild_config, dict) and key in guild_config:
            return guild_config[key]
        return base

    def devs(self) -> set[int]:
        out: set[int] = set()
        for raw in self.get_config_property("DEVS") or []:
            try:
                out.add(int(raw))
            except (TypeError, ValueError):
                continue
        return out

    def _module_file_path(self, scope_dir: Path, filename: str) -> Path:
        meta = self._metas.get(filename)
        if meta is not None and meta.module_name:
            return scope_dir / meta.module_name / filename
        return scope_dir / filename

    def _guild_file_path(self, filename: str, guild_id: str | int) -> Path:
        if not str(guild_id).isdigit():
            raise ValueError(f"Invalid guild id: {guild_id!r}")
        if filename == MAIN_CONFIG_FILENAME:
            return self.guild_configs_dir / f"{guild_id}.json"
        return self._module_file_path(self.data_dir / str(guild_id), filename)

    def _global_file_path(self, filename: str) -> Path:
        if filename == MAIN_CONFIG_FILENAME:
            return self.main_config_path
        return self._module_file_path(self.data_dir / "global", filename)

    def load_guild_config(self, filename: str, guild_id: str | int) -> dict[str, Any]:
        data = _read_json(self._guild_file_path(filename, guild_id), {})
        return data if isinstance(data, dict) else {}

    def save_guild_config(self, filename: str, guild_id: str | int, data: dict[str, Any]) -> Path:
        path = self._guild_file_path(filename, guild_id)
        _write_json(path, data)
        print(f"[ConfigManager] Saved guild config: {path}")
        return path

    def load_global_config(self, filename: str) -> dict[str, Any]:
        data = _read_json(self._global_file_path(filename), {})
        return data if isinstance(data, dict) else {}

    def save_global_config(self, filename: str, data: dict[str, Any]) -> Path:
        path = self._global_file_path(filename)
        _write_json(path, data)
        print(f"[ConfigManager] Saved global config: {path}")
        return path

    def get_merged_config(self, file_id: str, guild_id: str | int | None = None) -> dict[str, Any]:
        meta = self._metas.get(file_id)
        fields = dict(meta.properties) if meta else {}

        if guild_id:
            saved = self.load_guild_config(file_id, guild_id)
            global_values = self.load_global_config(file_id)
        else:
            saved = self.load_global_config(file_id)
            global_values = {}

        keys: list[str] = list(fields.keys())
        for key in list(saved.keys()) + list(global_values.keys()):
            if key not in keys:
                keys.append(key)

        properties: dict[str, dict[str, Any]] = {}
        for key in keys:
            field_schema = fields.get(key) or {}
            if key in saved:
                value, source = saved[key], "file"
            elif key in global_values:
                value, source = global_values[key], "global"
            else:
                value, source = field_schema.get("default"), "default"
            properties[key] = {
                "value": value,
                "is_set": source != "default",
                "source": source,
                "description": field_schema.get("description"),
                "type": field_schema.get("type") or _json_type(value),
            }

        return {
            "properties": properties,
            "metadata": {
                "id": file_id,
                "name": meta.name if meta else file_id,
                "description": meta.description if meta else "",
                "has_schema": bool(meta and meta.properties),
            },
        }
