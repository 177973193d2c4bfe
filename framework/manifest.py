from __future__ import annotations

import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

import yaml

from config.defaults import STANDARD_MODULE_CATEGORIES


MODULE_NAME_RE = re.compile(r"^[a-z0-9-]+$")
SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+")
REQUIRED_FIELDS = ("name", "version", "displayName", "description", "author", "category")


class ManifestError(ValueError):
    pass


@dataclass(frozen=True)
class ModuleManifest:
    name: str
    version: str
    display_name: str
    description: str
    author: str
    category: str
    required_intents: list[str] = field(default_factory=list)
    required_permissions: list[str] = field(default_factory=list)
    required_dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    config_schema: dict[str, Any] = field(default_factory=dict)
    data_schema: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    exports: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModuleManifest":
        deps = data.get("dependencies") or {}
        return cls(
            name=str(data.get("name") or ""),
            version=str(data.get("version") or ""),
            display_name=str(data.get("displayName") or ""),
            description=str(data.get("description") or ""),
            author=str(data.get("author") or ""),
            category=str(data.get("category") or ""),
            required_intents=[str(x) for x in data.get("requiredIntents") or []],
            required_permissions=[str(x) for x in data.get("requiredPermissions") or []],
            required_dependencies={str(k): str(v) for k, v in (deps.get("required") or {}).items()},
            optional_dependencies={str(k): str(v) for k, v in (deps.get("optional") or {}).items()},
            config_schema=dict(data.get("configSchema") or {}),
            data_schema=dict(data.get("dataSchema") or {}),
            enabled=data.get("enabled", True) is not False,
            exports={str(k): str(v) for k, v in (data.get("exports") or {}).items()},
            raw=dict(data),
        )


def load_manifest(path: Path) -> ModuleManifest:
    # module.json parses through the same loader since JSON is a YAML subset.
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid manifest {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest {path} must be a mapping")
    return ModuleManifest.from_dict(data)


def validate_manifest(data: dict[str, Any]) -> tuple[list[str], list[str]]:
    errors: list[str] = []
    warnings: list[str] = []

    for key in REQUIRED_FIELDS:
        if not data.get(key):
            errors.append(f"Missing required field: {key}")

    name = data.get("name")
    if name and not MODULE_NAME_RE.match(str(name)):
        errors.append('Module name must be lowercase kebab-case (e.g., "my-module")')

    version = data.get("version")
    if version and not SEMVER_RE.match(str(version)):
        warnings.append('Version should follow semver format (e.g., "1.0.0")')

    category = data.get("category")
    if category and category not in STANDARD_MODULE_CATEGORIES:
        warnings.append(
            f'Category "{category}" is not standard. Consider using: {", ".join(STANDARD_MODULE_CATEGORIES)}'
        )
    return errors, warnings


@dataclass
class DependencyGraph:
    load_order: list[str]
    dependencies: dict[str, list[str]]
    circular: list[list[str]]
    missing: list[tuple[str, str]]


def build_dependency_graph(manifests: list[ModuleManifest]) -> DependencyGraph:
    dependencies: dict[str, list[str]] = {m.name: list(m.required_dependencies.keys()) for m in manifests}
    order: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()
    circular: list[list[str]] = []
    missing: list[tuple[str, str]] = []

    def visit(name: str, chain: list[str]) -> None:
        if name in visited:
            return
        if name in visiting:
            circular.append(chain + [name])
            return
        visiting.add(name)
        for dep in dependencies.get(name, []):
            if dep not in dependencies:
                missing.append((name, dep))
                continue
            visit(dep, chain + [name])
        visiting.discard(name)
        visited.add(name)
        order.append(name)

    for manifest in manifests:
        visit(manifest.name, [])

    # A module is unusable if any required dependency is missing, directly or transitively.
    blocked = {module for module, _dep in missing}
    changed = True
    while changed:
        changed = False
        for name, deps in dependencies.items():
            if name not in blocked and any(dep in blocked for dep in deps):
                blocked.add(name)
                changed = True

    return DependencyGraph(
        load_order=[name for name in order if name not in blocked],
        dependencies=dependencies,
        circular=circular,
        missing=missing,
    )
