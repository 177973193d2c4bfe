from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from config.defaults import SETTINGS_FILENAMES
from framework.loader import find_module_dirs
from framework.manifest import ManifestError
from framework.manifest import load_manifest
from settings.schema import SettingsSchema
from settings.schema import SettingsSchemaError
from settings.schema import load_settings_schema


@dataclass(frozen=True)
class ModuleWithSettings:
    name: str
    display_name: str
    category: str
    path: Path
    schema: SettingsSchema


def _settings_file(module_dir: Path) -> Path | None:
    for filename in SETTINGS_FILENAMES:
        candidate = module_dir / filename
        if candidate.is_file():
            return candidate
    return None


class SettingsDiscovery:
    def __init__(self, source_dir: Path) -> None:
        self.source_dir = Path(source_dir)
        self._cache: dict[str, ModuleWithSettings] | None = None

    def refresh(self) -> list[ModuleWithSettings]:
        found: dict[str, ModuleWithSettings] = {}
        for module_dir in find_module_dirs(self.source_dir):
            settings_path = _settings_file(module_dir)
            if settings_path is None:
                continue
            try:
                schema = load_settings_schema(settings_path)
            except (OSError, SettingsSchemaError) as e:
                print(f"[SettingsDiscovery] Invalid schema at {settings_path}: {e}")
                continue

            name, display_name, category = module_dir.name, schema.name, "misc"
            for manifest_name in ("module.yml", "module.yaml", "module.json"):
                manifest_path = module_dir / manifest_name
                if not manifest_path.is_file():
                    continue
                try:
                    manifest = load_manifest(manifest_path)
                    name = manifest.name or name
                    display_name = manifest.display_name or display_name
                    category = manifest.category or category
                except (OSError, ManifestError) as e:
                    print(f"[SettingsDiscovery] Could not read manifest for {module_dir.name}: {e}")
                break

            found[name] = ModuleWithSettings(
                name=name,
                display_name=display_name,
                category=category,
                path=module_dir,
                schema=schema,
            )
        self._cache = found
        return self.modules_with_settings()

    def modules_with_settings(self, force_refresh: bool = False) -> list[ModuleWithSettings]:
        if self._cache is None or force_refresh:
            self.refresh()
        return sorted(self._cache.values(), key=lambda m: (m.category, m.display_name.lower()))

    def get_schema(self, module_name: str) -> SettingsSchema | None:
        if self._cache is None:
            self.refresh()
        entry = self._cache.get(module_name)
        return entry.schema if entry else None
