from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

from framework.manifest import ModuleManifest


@dataclass
class LoadedModule:
    manifest: ModuleManifest
    path: Path
    commands: list[Any] = field(default_factory=list)
    events: dict[str, list[Any]] = field(default_factory=dict)
    panels: list[Any] = field(default_factory=list)
    exports: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.manifest.name


class ModuleRegistry:
    def __init__(self) -> None:
        self._modules: dict[str, LoadedModule] = {}

    def register(self, module: LoadedModule) -> None:
        self._modules[module.name] = module

    def unregister(self, module_name: str) -> None:
        self._modules.pop(module_name, None)

    def clear(self) -> None:
        self._modules.clear()

    def get(self, module_name: str) -> LoadedModule | None:
        return self._modules.get(module_name)

    def all(self) -> list[LoadedModule]:
        return list(self._modules.values())

    def by_category(self, category: str) -> list[LoadedModule]:
        return [m for m in self._modules.values() if m.manifest.category == category]

    def is_loaded(self, module_name: str) -> bool:
        return module_name in self._modules

    def is_enabled(self, module_name: str) -> bool:
        module = self._modules.get(module_name)
        return bool(module and module.manifest.enabled)

    def get_export(self, module_name: str, export_name: str, default: Any = None) -> Any:
        module = self._modules.get(module_name)
        if module is None:
            return default
        return module.exports.get(export_name, default)

    def has_export(self, module_name: str, export_name: str) -> bool:
        module = self._modules.get(module_name)
        return bool(module and export_name in module.exports)

    def validate_dependencies(self, manifest: ModuleManifest) -> tuple[bool, list[str]]:
        missing = [dep for dep in manifest.required_dependencies if not self.is_loaded(dep)]
        return not missing, missing

    def get_dependencies(self, module_name: str, _visited: set[str] | None = None) -> list[str]:
        visited = _visited if _visited is not None else set()
        module = self._modules.get(module_name)
        if module is None or module_name in visited:
            return []
        visited.add(module_name)

        out: list[str] = []
        for dep in module.manifest.required_dependencies:
            for name in [dep] + self.get_dependencies(dep, visited):
                if name not in out:
                    out.append(name)
        return out

    def get_dependents(self, module_name: str) -> list[str]:
        out: list[str] = []
        for name, module in self._modules.items():
            manifest = module.manifest
            if module_name in manifest.required_dependencies or module_name in manifest.optional_dependencies:
                out.append(name)
        return out

    def stats(self) -> dict[str, Any]:
        modules = self.all()
        by_category: dict[str, int] = {}
        for module in modules:
            by_category[module.manifest.category] = by_category.get(module.manifest.category, 0) + 1
        enabled = sum(1 for m in modules if m.manifest.enabled)
        return {
            "total": len(modules),
            "enabled": enabled,
            "disabled": len(modules) - enabled,
            "by_category": by_category,
            "total_exports": sum(len(m.exports) for m in modules),
        }
