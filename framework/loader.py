from __future__ import annotations

import importlib.util
import re
from pathlib import Path
from types import ModuleType
from typing import Any

from config.defaults import MANIFEST_FILENAMES
from framework.manifest import ManifestError
from framework.manifest import ModuleManifest
from framework.manifest import build_dependency_graph
from framework.manifest import load_manifest
from framework.manifest import validate_manifest
from framework.registry import LoadedModule
from framework.registry import ModuleRegistry


class ModuleLoadError(RuntimeError):
    pass


_IMPORT_NAME_RE = re.compile(r"[^a-zA-Z0-9_]+")


def _is_disabled_name(name: str) -> bool:
    return name == "disabled" or name.endswith(".disabled") or name.endswith(".disabled.py")


def _find_manifest(module_dir: Path) -> Path | None:
    for filename in MANIFEST_FILENAMES:
        candidate = module_dir / filename
        if candidate.is_file():
            return candidate
    return None


def find_module_dirs(source_dir: Path) -> list[Path]:
    """`modules/<name>/` plus dev checkouts at `modules_dev/<repo>/Modules/<name>/`."""
    out: list[Path] = []
    modules_dir = Path(source_dir) / "modules"
    if modules_dir.is_dir():
        for entry in sorted(modules_dir.iterdir()):
            if entry.is_dir() and not _is_disabled_name(entry.name) and _find_manifest(entry):
                out.append(entry)

    dev_dir = Path(source_dir) / "modules_dev"
    if dev_dir.is_dir():
        for repo in sorted(dev_dir.iterdir()):
            if not repo.is_dir() or repo.name.startswith("."):
                continue
            repo_modules = repo / "Modules"
            if not repo_modules.is_dir():
                continue
            for entry in sorted(repo_modules.iterdir()):
                if entry.is_dir() and not _is_disabled_name(entry.name) and _find_manifest(entry):
                    out.append(entry)
    return out


def iter_python_files(directory: Path) -> list[Path]:
    out: list[Path] = []
    if not directory.is_dir():
        return out
    for entry in sorted(directory.iterdir()):
        if _is_disabled_name(entry.name) or entry.name.startswith(("_", ".")):
            continue
        if entry.is_dir():
            out.extend(iter_python_files(entry))
        elif entry.is_file() and entry.suffix == ".py":
            out.append(entry)
    return out


def import_file(path: Path, *, module_name: str) -> ModuleType:
    import_name = "fmdb_module_" + _IMPORT_NAME_RE.sub("_", f"{module_name}_{path.stem}_{abs(hash(str(path)))}")
    spec = importlib.util.spec_from_file_location(import_name, str(path))
    if spec is None or spec.loader is None:
        raise ModuleLoadError(f"Could not load module file: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def resolve_export(module_path: Path, export_path: str) -> tuple[Path, str | None]:
    rel, _, name = export_path.partition("#")
    file_path = Path(module_path) / rel
    if file_path.suffix != ".py":
        file_path = file_path.with_suffix(".py")
    return file_path, (name or None)


class ModuleLoader:
    def __init__(self, source_dir: Path, registry: ModuleRegistry) -> None:
        self.source_dir = Path(source_dir)
        self.registry = registry
        self.manifests: list[ModuleManifest] = []

    def discover(self) -> list[tuple[ModuleManifest, Path]]:
        found: list[tuple[ModuleManifest, Path]] = []
        for module_dir in find_module_dirs(self.source_dir):
            manifest_path = _find_manifest(module_dir)
            try:
                manifest = load_manifest(manifest_path)
            except (OSError, ManifestError) as e:
                print(f"[ModuleLoader] Failed to load manifest {manifest_path}: {e}")
                continue

            errors, warnings = validate_manifest(manifest.raw)
            if errors:
                print(f"[ModuleLoader] Module {manifest.name or module_dir.name!r} validation failed: {errors}")
                continue
            if warnings:
                print(f"[ModuleLoader] Module {manifest.name!r} warnings: {warnings}")
            if not manifest.enabled:
                print(f"[ModuleLoader] Skipping disabled module: {manifest.name}")
                continue
            if any(m.name == manifest.name for m, _p in found):
                print(f"[ModuleLoader] Duplicate module name {manifest.name!r} at {module_dir}; skipping")
                continue
            found.append((manifest, module_dir))
        return found

    def load_all(self) -> list[LoadedModule]:
        print("[ModuleLoader] Starting module discovery...")
        found = self.discover()
        print(f"[ModuleLoader] Found {len(found)} enabled modules")
        self.manifests = [m for m, _p in found]
        if not found:
            return []

        graph = build_dependency_graph(self.manifests)
        if graph.circular:
            print(f"[ModuleLoader] Circular dependencies detected: {graph.circular}")
        for module_name, dep in graph.missing:
            print(f"[ModuleLoader] Module {module_name!r} is missing required dependency {dep!r}; not loading")

        by_name = {m.name: (m, p) for m, p in found}
        loaded: list[LoadedModule] = []
        for name in graph.load_order:
            manifest, path = by_name[name]
            try:
                module = self.load_module(manifest, path)
            except Exception as e:
                print(f"[ModuleLoader] Failed to load module {name}: {e}")
                continue
            self.registry.register(module)
            loaded.append(module)
            print(f"[ModuleLoader] Loaded module: {manifest.display_name} v{manifest.version}")

        print(f"[ModuleLoader] Successfully loaded {len(loaded)} modules")
        return loaded

    def load_module(self, manifest: ModuleManifest, path: Path) -> LoadedModule:
        module = LoadedModule(manifest=manifest, path=Path(path))
        module.commands = self._load_commands(module)
        module.events = self._load_events(module)
        module.panels = self._load_panels(module)
        module.exports = self._load_exports(module)
        return module

    def _import_all(self, module: LoadedModule, directory: Path) -> list[tuple[Path, ModuleType]]:
        out: list[tuple[Path, ModuleType]] = []
        for file_path in iter_python_files(directory):
            try:
                out.append((file_path, import_file(file_path, module_name=module.name)))
            except Exception as e:
                print(f"[ModuleLoader] Failed to import {file_path}: {e}")
        return out

    def _load_commands(self, module: LoadedModule) -> list[Any]:
        commands: list[Any] = []
        for file_path, imported in self._import_all(module, module.path / "commands"):
            single = getattr(imported, "COMMAND", None)
            many = getattr(imported, "COMMANDS", None) or []
            for command in ([single] if single is not None else []) + list(many):
                if not getattr(command, "name", None):
                    print(f"[ModuleLoader] Ignoring command without a name in {file_path}")
                    continue
                command.module_name = module.name
                commands.append(command)
        return commands

    def _load_events(self, module: LoadedModule) -> dict[str, list[Any]]:
        events: dict[str, list[Any]] = {}
        events_dir = module.path / "events"
        if not events_dir.is_dir():
            return events
        for event_dir in sorted(events_dir.iterdir()):
            if not event_dir.is_dir() or _is_disabled_name(event_dir.name) or event_dir.name.startswith(("_", ".")):
                continue
            handlers = []
            for file_path, imported in self._import_all(module, event_dir):
                handler = getattr(imported, "handle", None)
                if callable(handler):
                    handlers.append(handler)
                else:
                    print(f"[ModuleLoader] Event file {file_path} has no handle() function")
            if handlers:
                events[event_dir.name] = handlers
        return events

    def _load_panels(self, module: LoadedModule) -> list[Any]:
        panels: list[Any] = []
        for _file_path, imported in self._import_all(module, module.path / "panels"):
            panel = getattr(imported, "PANEL", None)
            if panel is not None and getattr(panel, "id", None):
                panel.module_name = module.name
                panels.append(panel)
        return panels

    def _load_exports(self, module: LoadedModule) -> dict[str, Any]:
        exports: dict[str, Any] = {}
        for export_name, export_path in module.manifest.exports.items():
            file_path, attr = resolve_export(module.path, export_path)
            try:
                imported = import_file(file_path, module_name=module.name)
                exports[export_name] = getattr(imported, attr) if attr else imported
            except Exception as e:
                print(f"[ModuleLoader] Failed to load export {export_name!r} from {module.name}: {e}")
        return exports


def collect_required_intents(modules: list[LoadedModule]) -> set[str]:
    out: set[str] = set()
    for module in modules:
        out.update(module.manifest.required_intents)
    return out


# manifest intent names follow the gateway's PascalCase flags
_INTENT_ALIASES = {
    "GuildMembers": "members",
    "GuildPresences": "presences",
    "GuildModeration": "moderation",
    "GuildBans": "moderation",
    "GuildEmojisAndStickers": "emojis_and_stickers",
    "DirectMessages": "dm_messages",
    "DirectMessageReactions": "dm_reactions",
    "DirectMessageTyping": "dm_typing",
}
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def intent_attr_name(name: str) -> str:
    name = str(name).strip()
    if name in _INTENT_ALIASES:
        return _INTENT_ALIASES[name]
    return _CAMEL_RE.sub("_", name).lower()


def apply_intents(intents, names) -> list[str]:
    """Turn on each named intent flag; returns the names that match no flag."""
    valid = getattr(intents, "VALID_FLAGS", {})
    unknown: list[str] = []
    for name in sorted(names):
        attr = intent_attr_name(name)
        if attr in valid:
            setattr(intents, attr, True)
        else:
            unknown.append(name)
    return unknown
