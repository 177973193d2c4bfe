from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

import yaml


SETTING_TYPES = (
    "boolean",
    "string",
    "number",
    "color",
    "select",
    "multiSelect",
    "channel",
    "role",
    "multiChannel",
    "multiRole",
)
MULTI_TYPES = ("multiSelect", "multiChannel", "multiRole")
SCOPES = ("global", "guild", "both")

COLOR_PRESETS = (
    ("0xE74C3C", "Red"),
    ("0xF39C12", "Orange"),
    ("0xF1C40F", "Yellow"),
    ("0x2ECC71", "Green"),
    ("0x3498DB", "Blue"),
    ("0x9B59B6", "Purple"),
    ("0x2C3E50", "Dark"),
    ("0xECF0F1", "Light"),
    ("0x8B4513", "Brown"),
    ("0x5865F2", "Discord Blurple"),
    ("0x57F287", "Discord Green"),
    ("0xFEE75C", "Discord Yellow"),
    ("0xEB459E", "Discord Fuchsia"),
    ("0xED4245", "Discord Red"),
)


class SettingsSchemaError(ValueError):
    pass


@dataclass(frozen=True)
class SectionDefinition:
    id: str
    name: str
    description: str = ""
    order: int = 0


@dataclass(frozen=True)
class SettingDefinition:
    key: str
    type: str
    default: Any
    label: str
    section: str = ""
    order: int = 0
    description: str = ""
    validation: dict[str, Any] = field(default_factory=dict)
    conditions: dict[str, Any] = field(default_factory=dict)
    options: list[dict[str, Any]] = field(default_factory=list)
    placeholder: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "default": self.default,
            "label": self.label,
            "section": self.section,
            "order": self.order,
            "description": self.description,
            "validation": dict(self.validation),
            "conditions": dict(self.conditions),
            "options": list(self.options),
            "placeholder": self.placeholder,
        }


@dataclass(frozen=True)
class SettingsSchema:
    id: str
    version: str
    name: str
    scope: str
    description: str = ""
    sections: tuple[SectionDefinition, ...] = ()
    settings: dict[str, SettingDefinition] = field(default_factory=dict)

    def defaults(self) -> dict[str, Any]:
        return {key: definition.default for key, definition in self.settings.items()}

    def settings_in_section(self, section_id: str) -> list[SettingDefinition]:
        out = [d for d in self.settings.values() if d.section == section_id]
        return sorted(out, key=lambda d: (d.order, d.key))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "name": self.name,
            "scope": self.scope,
            "description": self.description,
            "sections": [
                {"id": s.id, "name": s.name, "description": s.description, "order": s.order}
                for s in sorted(self.sections, key=lambda s: s.order)
            ],
            "settings": {key: d.to_dict() for key, d in self.settings.items()},
        }


def parse_settings_schema(data: dict[str, Any]) -> SettingsSchema:
    if not isinstance(data, dict):
        raise SettingsSchemaError("Settings schema must be a mapping")
    for key in ("id", "name", "scope"):
        if not data.get(key):
            raise SettingsSchemaError(f"Settings schema missing required field: {key}")
    scope = str(data["scope"])
    if scope not in SCOPES:
        raise SettingsSchemaError(f"Invalid settings scope: {scope}")

    sections = tuple(
        SectionDefinition(
            id=str(s.get("id") or ""),
            name=str(s.get("name") or s.get("id") or ""),
            description=str(s.get("description") or ""),
            order=int(s.get("order") or 0),
        )
        for s in data.get("sections") or []
    )

    settings: dict[str, SettingDefinition] = {}
    for key, raw in (data.get("settings") or {}).items():
        if not isinstance(raw, dict):
            raise SettingsSchemaError(f"Setting {key!r} must be a mapping")
        setting_type = str(raw.get("type") or "")
        if setting_type not in SETTING_TYPES:
            raise SettingsSchemaError(f"Setting {key!r} has unknown type {setting_type!r}")
        settings[str(key)] = SettingDefinition(
            key=str(key),
            type=setting_type,
            default=raw.get("default"),
            label=str(raw.get("label") or key),
            section=str(raw.get("section") or ""),
            order=int(raw.get("order") or 0),
            description=str(raw.get("description") or ""),
            validation=dict(raw.get("validation") or {}),
            conditions=dict(raw.get("conditions") or {}),
            options=list(raw.get("options") or []),
            placeholder=str(raw.get("placeholder") or ""),
        )

    return SettingsSchema(
        id=str(data["id"]),
        version=str(data.get("version") or "1.0.0"),
        name=str(data["name"]),
        scope=scope,
        description=str(data.get("description") or ""),
        sections=sections,
        settings=settings,
    )


def load_settings_schema(path: Path) -> SettingsSchema:
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SettingsSchemaError(f"Invalid settings file {path}: {e}") from e
    return parse_settings_schema(data)
