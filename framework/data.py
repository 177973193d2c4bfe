from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any


GUILD_DIR_RE = re.compile(r"^\d+$")
SCOPES = ("guild", "global")


class DataManager:
    """Guild-isolated JSON storage: `<data>/<guild>/<category>/<file>` or `<data>/global/<category>/<file>`."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def data_directory(self, *, guild_id: str | int | None = None, scope: str = "guild", category: str | None = None) -> Path:
        if scope not in SCOPES:
            raise ValueError(f"Unknown data scope: {scope}")
        if scope == "global":
            base = self.data_dir / "global"
        else:
            if not guild_id:
                raise ValueError("guild_id is required for guild-scoped data")
            base = self.data_dir / str(guild_id)
        return base / category if category else base

    def data_file_path(self, filename: str, **options) -> Path:
        return self.data_directory(**options) / filename

    def load_data(self, filename: str, default: Any = None, **options) -> Any:
        path = self.data_file_path(filename, **options)
        if not path.exists():
            return default
        try:
            raw = path.read_text(encoding="utf-8")
            if not raw.strip():
                return default
            return json.loads(raw)
        except (OSError, json.JSONDecodeError) as e:
            print(f"[DataManager] Error loading {filename}: {e}")
            return default

    def save_data(self, filename: str, data: Any, **options) -> bool:
        try:
            path = self.data_file_path(filename, **options)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            return True
        except (OSError, TypeError, ValueError) as e:
            print(f"[DataManager] Error saving {filename}: {e}")
            return False

    def data_exists(self, filename: str, **options) -> bool:
        return self.data_file_path(filename, **options).exists()

    def delete_data(self, filename: str, **options) -> bool:
        path = self.data_file_path(filename, **options)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            print(f"[DataManager] Error deleting {filename}: {e}")
            return False
        print(f"[DataManager] Deleted {path}")
        return True

    def list_guilds(self) -> list[str]:
        if not self.data_dir.exists():
            return []
        return sorted(p.name for p in self.data_dir.iterdir() if p.is_dir() and GUILD_DIR_RE.match(p.name))

    def _list_json(self, directory: Path) -> list[str]:
        if not directory.exists():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_file() and p.suffix == ".json")

    def list_guild_data_files(self, guild_id: str | int, category: str | None = None) -> list[str]:
        return self._list_json(self.data_directory(guild_id=guild_id, scope="guild", category=category))

    def list_global_data_files(self, category: str | None = None) -> list[str]:
        return self._list_json(self.data_directory(scope="global", category=category))

    # module-namespaced helpers
    def load_module_data(self, filename: str, guild_id: str | int, module_name: str, default: Any = None) -> Any:
        return self.load_data(filename, default, guild_id=guild_id, scope="guild", category=module_name)

    def save_module_data(self, filename: str, guild_id: str | int, module_name: str, data: Any) -> bool:
        return self.save_data(filename, data, guild_id=guild_id, scope="guild", category=module_name)

    def load_global_module_data(self, filename: str, module_name: str, default: Any = None) -> Any:
        return self.load_data(filename, default, scope="global", category=module_name)

    def save_global_module_data(self, filename: str, module_name: str, data: Any) -> bool:
        return self.save_data(filename, data, scope="global", category=module_name)
