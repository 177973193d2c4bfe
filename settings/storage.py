from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from settings.validation import hard_limit_keys
from settings.validation import validate_hard_limits
from settings.validation import validate_setting_value


SETTINGS_FILENAME = "settings.json"
HARD_LIMITS_KEY = "_hardLimits"


@dataclass
class MergedSettings:
    values: dict[str, Any]
    sources: dict[str, str]
    schema: Any


class SettingsStore:
    """Per-module settings: `<data>/global/<module>/settings.json` and `<data>/<guild>/<module>/settings.json`."""

    def __init__(self, data_dir: Path, discovery) -> None:
        self.data_dir = Path(data_dir)
        self.discovery = discovery

    def settings_path(self, module_name: str, guild_id: str | int | None = None) -> Path:
        if guild_id:
            if not str(guild_id).isdigit():
                raise ValueError(f"Invalid guild id: {guild_id!r}")
            return self.data_dir / str(guild_id) / module_name / SETTINGS_FILENAME
        return self.data_dir / "global" / module_name / SETTINGS_FILENAME

    def _load_raw(self, module_name: str, guild_id: str | int | None = None) -> dict[str, Any]:
        path = self.settings_path(module_name, guild_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            print(f"[SettingsStorage] Error reading {module_name}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save_raw(self, module_name: str, data: dict[str, Any], guild_id: str | int | None = None) -> bool:
        path = self.settings_path(module_name, guild_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            print(f"[SettingsStorage] Error saving {module_name}: {e}")
            return False
        return True

    def load_module_settings(self, module_name: str, guild_id: str | int | None = None) -> MergedSettings | None:
        schema = self.discovery.get_schema(module_name)
        if schema is None:
            return None
        global_values = self._load_raw(module_name)
        guild_values = self._load_raw(module_name, guild_id) if guild_id else {}

        values: dict[str, Any] = {}
        sources: dict[str, str] = {}
        for key, definition in schema.settings.items():
            if guild_id and key in guild_values:
                values[key], sources[key] = guild_values[key], "guild"
            elif key in global_values:
                values[key], sources[key] = global_values[key], "global"
            else:
                values[key], sources[key] = definition.default, "default"
        return MergedSettings(values=values, sources=sources, schema=schema)

    def get_module_setting(self, module_name: str, key: str, guild_id: str | int | None = None, default: Any = None) -> Any:
        merged = self.load_module_settings(module_name, guild_id)
        if merged is None or key not in merged.values:
            return default
        return merged.values[key]

    def save_module_setting(self, module_name: str, key: str, value: Any, guild_id: str | int | None = None) -> bool:
        schema = self.discovery.get_schema(module_name)
        if schema is None or key not in schema.settings:
            return False
        return self.save_module_settings(module_name, {key: value}, guild_id)

    def save_module_settings(self, module_name: str, updates: dict[str, Any], guild_id: str | int | None = None) -> bool:
        schema = self.discovery.get_schema(module_name)
        if schema is None:
            return False
        raw = self._load_raw(module_name, guild_id)
        for key, value in updates.items():
            if key in schema.settings:
                raw[key] = value
        return self._save_raw(module_name, raw, guild_id)

    def validate_updates(self, module_name: str, updates: dict[str, Any]) -> list[str]:
        schema = self.discovery.get_schema(module_name)
        if schema is None:
            return ["No schema found"]
        hard_limits = self.load_hard_limits(module_name)
        errors: list[str] = []
        for key, value in updates.items():
            definition = schema.settings.get(key)
            if definition is None:
                errors.append(f"Unknown: {key}")
                continue
            error = validate_setting_value(value, definition, hard_limits.get(key))
            if error:
                errors.append(f"{key}: {error}")
        return errors

    def reset_module_setting(self, module_name: str, key: str, guild_id: str | int | None = None) -> bool:
        raw = self._load_raw(module_name, guild_id)
        if key not in raw:
            return True
        del raw[key]
        return self._save_raw(module_name, raw, guild_id)

    def reset_all_module_settings(self, module_name: str, guild_id: str | int | None = None) -> bool:
        raw = self._load_raw(module_name, guild_id)
        keep = {HARD_LIMITS_KEY: raw[HARD_LIMITS_KEY]} if not guild_id and HARD_LIMITS_KEY in raw else {}
        if keep:
            return self._save_raw(module_name, keep, guild_id)
        path = self.settings_path(module_name, guild_id)
        if not path.exists():
            return True
        try:
            path.unlink()
        except OSError as e:
            print(f"[SettingsStorage] Error resetting {module_name}: {e}")
            return False
        return True

    def export_module_settings(self, module_name: str, guild_id: str | int | None = None) -> str:
        raw = self._load_raw(module_name, guild_id)
        raw.pop(HARD_LIMITS_KEY, None)
        return json.dumps(raw, indent=2)

    def import_module_settings(self, module_name: str, payload: str | dict[str, Any], guild_id: str | int | None = None) -> tuple[bool, list[str]]:
        if self.discovery.get_schema(module_name) is None:
            return False, ["No schema found"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                return False, ["Invalid JSON"]
        if not isinstance(payload, dict):
            return False, ["Invalid JSON"]

        errors: list[str] = []
        valid: dict[str, Any] = {}
        for key, value in payload.items():
            key_errors = self.validate_updates(module_name, {key: value})
            if key_errors:
                errors.extend(key_errors)
            else:
                valid[key] = value

        if valid and not self.save_module_settings(module_name, valid, guild_id):
            return False, ["Failed to save"]
        return not errors, errors

    # hard limits live under `_hardLimits` in the global file
    def load_hard_limits(self, module_name: str) -> dict[str, dict[str, Any]]:
        limits = self._load_raw(module_name).get(HARD_LIMITS_KEY) or {}
        return limits if isinstance(limits, dict) else {}

    def get_hard_limit(self, module_name: str, key: str) -> dict[str, Any] | None:
        return self.load_hard_limits(module_name).get(key)

    def save_hard_limit(self, module_name: str, key: str, limits: dict[str, Any]) -> tuple[bool, str | None]:
        schema = self.discovery.get_schema(module_name)
        definition = schema.settings.get(key) if schema else None
        if definition is None:
            return False, f"Unknown setting: {key}"
        limits = limits or {}
        cleaned = {k: limits[k] for k in hard_limit_keys(definition.type) if limits.get(k) is not None}
        error = validate_hard_limits(cleaned, definition.validation, definition.type)
        if error:
            return False, error

        raw = self._load_raw(module_name)
        hard = dict(raw.get(HARD_LIMITS_KEY) or {})
        if cleaned:
            hard[key] = cleaned
        else:
            hard.pop(key, None)
        if hard:
            raw[HARD_LIMITS_KEY] = hard
        else:
            raw.pop(HARD_LIMITS_KEY, None)
        return self._save_raw(module_name, raw), None

    def reset_hard_limit(self, module_name: str, key: str) -> bool:
        ok, _err = self.save_hard_limit(module_name, key, {})
        return ok
